"""
Vuelve Loyalty Platform
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.errors import ErrorCode, error_response
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, overrides: dict = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        overrides: Config values applied on top of the environment config

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if overrides:
        app.config.update(overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Configure CORS - allow the customer web app and admin panel
    cors_origins = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')
    CORS(app, origins=[o.strip() for o in cors_origins if o.strip()], allow_headers=['Content-Type', 'Authorization'])

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Background scheduler for review dispatch and visit reconciliation
    from .utils.scheduler import init_scheduler
    init_scheduler(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'vuelve'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.stamp import stamp_bp
    from .api.membership import membership_bp

    # Visit engine
    app.register_blueprint(stamp_bp, url_prefix='/api/stamp')

    # Membership activation
    app.register_blueprint(membership_bp, url_prefix='/api/membership')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(400)
    def bad_request(error):
        return error_response('Solicitud inválida', ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Recurso no encontrado', ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response('Método no permitido', ErrorCode.INVALID_REQUEST, 405, log_error=False)

    @app.errorhandler(500)
    def internal_error(error):
        return error_response('Error interno', ErrorCode.INTERNAL_ERROR, 500)
