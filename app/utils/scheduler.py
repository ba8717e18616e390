"""
Background scheduler for automated tasks.

Handles:
- Review request dispatch (every 10 minutes)
- Orphan visit reconciliation (every 15 minutes)
"""
import os
import logging

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None
_flask_app = None  # Store Flask app reference for context


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs in production or when ENABLE_SCHEDULER=true.
    Only the main gunicorn process should run the scheduler.
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        return

    if not (os.getenv('FLASK_ENV') == 'production' or os.getenv('ENABLE_SCHEDULER') == 'true'):
        logger.info('[Scheduler] Disabled (set FLASK_ENV=production or ENABLE_SCHEDULER=true)')
        return

    # Prevent multiple scheduler instances (important for gunicorn workers)
    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('[Scheduler] Already running in another process')
        return

    from apscheduler.schedulers.background import BackgroundScheduler
    from apscheduler.triggers.cron import CronTrigger

    try:
        _scheduler = BackgroundScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Prevent concurrent runs
                'misfire_grace_time': 600
            }
        )

        _scheduler.add_job(
            run_review_dispatch,
            trigger=CronTrigger(minute='*/10'),
            id='review_dispatch',
            name='Send due review requests',
            replace_existing=True
        )

        _scheduler.add_job(
            run_visit_reconciliation,
            trigger=CronTrigger(minute='*/15'),
            id='visit_reconciliation',
            name='Reconcile orphan visit rows',
            replace_existing=True
        )

        _scheduler.start()
        os.environ['SCHEDULER_RUNNING'] = 'true'

        logger.info('[Scheduler] Started with 2 scheduled jobs: review dispatch (*/10), visit reconciliation (*/15)')

        import atexit
        atexit.register(shutdown_scheduler)

    except Exception as e:
        logger.error(f'[Scheduler] Failed to initialize: {e}')


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def run_review_dispatch():
    """Send review requests whose scheduled time has passed."""
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    with _flask_app.app_context():
        from ..services.notification_service import PushGateway, dispatch_due_review_requests

        config = _flask_app.config
        gateway = PushGateway(
            config.get('PUSH_GATEWAY_URL'),
            config.get('PUSH_GATEWAY_TOKEN'),
            timeout=config.get('PUSH_TIMEOUT_SECONDS', 10),
        )
        if not gateway.is_enabled():
            return

        try:
            result = dispatch_due_review_requests(gateway, config.get('APP_URL', ''))
            if result['sent'] or result['failed']:
                logger.info(f"[Scheduler] Review dispatch: {result['sent']} sent, {result['failed']} failed")
        except Exception as e:
            logger.error(f'[Scheduler] Review dispatch failed: {e}')


def run_visit_reconciliation():
    """Settle visit rows left pending past the grace window."""
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    with _flask_app.app_context():
        from ..services.gamification_service import GamificationSettings
        from ..services.reconciliation_service import reconcile_orphan_visits

        config = _flask_app.config
        try:
            result = reconcile_orphan_visits(
                grace_minutes=config.get('ORPHAN_VISIT_GRACE_MINUTES', 15),
                settings=GamificationSettings.from_config(config),
            )
            if result['found']:
                logger.info(
                    f"[Scheduler] Reconciliation: {result['reconciled']} reconciled, "
                    f"{result['discarded']} discarded, {result['errors']} errors"
                )
        except Exception as e:
            logger.error(f'[Scheduler] Reconciliation failed: {e}')
