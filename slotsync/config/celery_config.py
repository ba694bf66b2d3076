# slotsync/config/celery_config.py
"""Celery configuration and task routing"""
from celery import Celery
from kombu import Queue

from slotsync.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure Celery application"""

    celery_app = Celery(
        "slotsync",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    # Configure Celery
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Task routing
        task_routes={
            "slotsync.tasks.calendar_tasks.process_calendar_notification": {"queue": "calendar_sync"},
            "slotsync.tasks.calendar_tasks.*": {"queue": "calendar_channels"},
            "slotsync.tasks.slot_tasks.*": {"queue": "slots"},
        },

        # Queue definitions
        task_queues=(
            Queue("calendar_sync", routing_key="calendar_sync"),
            Queue("calendar_channels", routing_key="calendar_channels"),
            Queue("slots", routing_key="slots"),
        ),

        # Periodic channel renewal sweep
        beat_schedule={
            "renew-expiring-calendar-channels": {
                "task": "slotsync.tasks.calendar_tasks.renew_expiring_channels",
                "schedule": settings.RENEWAL_CHECK_INTERVAL_MINUTES * 60.0,
                "kwargs": {"threshold_hours": settings.RENEWAL_THRESHOLD_HOURS},
            },
        },

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        # Retry settings
        task_retry_max_retries=3,
        task_retry_delay=60,  # 1 minute

        broker_connection_retry_on_startup=True,
    )

    # Auto-discover tasks
    celery_app.autodiscover_tasks([
        "slotsync.tasks.calendar_tasks",
        "slotsync.tasks.slot_tasks",
    ])

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
