"""
CLI Commands for Vuelve.

Provides Flask CLI commands for scheduled tasks and administration.

Usage:
    flask visits reconcile              # Settle visit rows left pending
    flask visits reconcile --dry-run    # Count them without touching anything

    flask reviews dispatch              # Send due review requests
"""
from .scheduled import init_app as init_scheduled_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_scheduled_commands(app)
