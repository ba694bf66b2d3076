"""
Celery worker entry point
Runs calendar sync, channel renewal and slot generation tasks
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from slotsync.config.celery_config import celery_app
from slotsync.config.settings import get_settings
from slotsync.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

# Register task modules with the shared app
import slotsync.tasks.calendar_tasks  # noqa: E402,F401
import slotsync.tasks.slot_tasks  # noqa: E402,F401


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(t for t in celery_app.tasks.keys() if t.startswith('slotsync.'))}")
    logger.info(f"Channel renewal sweep every {settings.RENEWAL_CHECK_INTERVAL_MINUTES} minutes")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    # Run worker directly
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4',
        '--max-tasks-per-child=1000',
        '--queues=calendar_sync,calendar_channels,slots',
    ])
