"""
Logging setup for the Vuelve loyalty platform.

Usage:
    from app.utils.logging_config import setup_logging

    setup_logging()
    logger = logging.getLogger(__name__)
"""
import os
import sys
import logging

LOG_FORMAT = '[%(asctime)s] %(levelname)s %(name)s: %(message)s'

_configured = False


def setup_logging(level: str = None) -> None:
    """Configure the root logger once per process."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    _configured = True
