# ===== slotsync/tasks/slot_tasks.py =====
from datetime import date
from uuid import UUID
import logging
import asyncio

from slotsync.config.celery_config import celery_app
from slotsync.config.database import SessionLocal
from slotsync.core.exceptions import SlotSyncError
from slotsync.services.scheduling.slot_generator import SlotGenerator
from slotsync.tasks.calendar_tasks import worker_locks

logger = logging.getLogger(__name__)


@celery_app.task
def generate_slots(
        provider_id: str,
        start_date: str,
        end_date: str,
        appointment_type_id: str,
        include_weekends: bool = False
):
    """
    Generate bookable slots in the background for long ranges

    Args:
        provider_id: Provider UUID
        start_date: First day, ISO format
        end_date: Last day (inclusive), ISO format
        appointment_type_id: Appointment type UUID
        include_weekends: Also generate on Saturday and Sunday
    """
    db = SessionLocal()
    try:
        generator = SlotGenerator(db, locks=worker_locks())
        result = asyncio.run(generator.generate_slots(
            provider_id=UUID(provider_id),
            start_date=date.fromisoformat(start_date),
            end_date=date.fromisoformat(end_date),
            appointment_type_id=UUID(appointment_type_id),
            include_weekends=include_weekends,
        ))
        return {
            "status": "success",
            "generated": result.generated,
            "skipped": result.skipped.model_dump(),
            "message": result.message,
        }

    except SlotSyncError as exc:
        logger.error(f"Slot generation failed for provider {provider_id}: {exc}")
        return {"status": "failed", "reason": str(exc)}

    finally:
        db.close()
