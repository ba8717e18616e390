"""
Configuration management for the Vuelve loyalty platform.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Anti-fraud geofence (meters around the tenant's configured center)
    GEOFENCE_RADIUS_METERS = float(os.getenv('GEOFENCE_RADIUS_METERS', '200'))

    # Gamification - weekly streak cadence and lifetime-point tier thresholds
    STREAK_WINDOW_DAYS = 7
    STREAK_BREAK_DAYS = 14
    TIER_THRESHOLDS = {
        'plata': 30,
        'oro': 100,
    }

    # Side effects
    REVIEW_REQUEST_DELAY_HOURS = 2
    PUSH_GATEWAY_URL = os.getenv('PUSH_GATEWAY_URL', '')
    PUSH_GATEWAY_TOKEN = os.getenv('PUSH_GATEWAY_TOKEN', '')
    PUSH_TIMEOUT_SECONDS = int(os.getenv('PUSH_TIMEOUT_SECONDS', '10'))
    PUSH_DISPATCH_ASYNC = True

    # Public review page, used by the deferred review request push
    APP_URL = os.getenv('APP_URL', 'http://localhost:3000')

    # Reconciliation sweep for visit rows whose counter update never landed
    ORPHAN_VISIT_GRACE_MINUTES = int(os.getenv('ORPHAN_VISIT_GRACE_MINUTES', '15'))


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///vuelve_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing, empty, or contains unsafe values
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Production deployments MUST have a secure SECRET_KEY.\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        insecure_patterns = ['dev', 'change', 'default', 'test', 'secret', 'password']
        lower_key = cls._secret_key.lower()
        for pattern in insecure_patterns:
            if pattern in lower_key:
                raise RuntimeError(
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!\n"
                    "Production deployments require a unique, random SECRET_KEY."
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!"
            )

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    PUSH_GATEWAY_URL = ''  # Tests inject their own gateway
    PUSH_DISPATCH_ASYNC = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
