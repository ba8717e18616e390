"""
CLI Commands for Scheduled Tasks.

These commands can be run manually or via cron jobs:

# Orphan visit reconciliation (every 15 minutes)
*/15 * * * * cd /app && flask visits reconcile

# Review request dispatch (every 10 minutes)
*/10 * * * * cd /app && flask reviews dispatch
"""

import click
from flask import current_app
from flask.cli import with_appcontext

from ..services.gamification_service import GamificationSettings
from ..services.notification_service import PushGateway, dispatch_due_review_requests
from ..services.reconciliation_service import reconcile_orphan_visits


@click.group('visits')
def visits_cli():
    """Visit ledger maintenance commands."""
    pass


@visits_cli.command('reconcile')
@click.option('--grace-minutes', type=int, help='Minimum age of a pending visit row (defaults to config)')
@click.option('--dry-run', is_flag=True, help='Count orphan visits without settling them')
@with_appcontext
def reconcile_visits(grace_minutes, dry_run):
    """
    Settle visit rows whose counter update never landed.
    """
    if grace_minutes is None:
        grace_minutes = current_app.config.get('ORPHAN_VISIT_GRACE_MINUTES', 15)

    result = reconcile_orphan_visits(
        grace_minutes=grace_minutes,
        settings=GamificationSettings.from_config(current_app.config),
        dry_run=dry_run,
    )

    click.echo(f"{'[DRY RUN] ' if dry_run else ''}Orphan visits found: {result['found']}")
    if not dry_run:
        click.echo(f"  Reconciled: {result['reconciled']}")
        click.echo(f"  Discarded: {result['discarded']}")
        if result['errors']:
            click.echo(f"  Errors: {result['errors']}")


@click.group('reviews')
def reviews_cli():
    """Review request commands."""
    pass


@reviews_cli.command('dispatch')
@click.option('--limit', type=int, default=100, help='Maximum requests to send')
@with_appcontext
def dispatch_reviews(limit):
    """
    Send review requests whose scheduled time has passed.
    """
    config = current_app.config
    gateway = PushGateway(
        config.get('PUSH_GATEWAY_URL'),
        config.get('PUSH_GATEWAY_TOKEN'),
        timeout=config.get('PUSH_TIMEOUT_SECONDS', 10),
    )
    if not gateway.is_enabled():
        click.echo('Push gateway not configured (PUSH_GATEWAY_URL)')
        return

    result = dispatch_due_review_requests(gateway, config.get('APP_URL', ''), limit=limit)
    click.echo(f"Review requests sent: {result['sent']}, failed: {result['failed']}")


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(visits_cli)
    app.cli.add_command(reviews_cli)
