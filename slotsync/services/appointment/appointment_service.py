# ============================================================================
# slotsync/services/appointment/appointment_service.py
# ============================================================================
"""Service for booking slots and moving appointments through their lifecycle"""
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from slotsync.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from slotsync.models import Appointment, AppointmentHistory, AppointmentStatus, Slot
from slotsync.models.appointment import ALLOWED_TRANSITIONS, ACTIVE_STATUSES
from slotsync.services.availability.availability_service import AvailabilityService
from slotsync.services.slot.slot_store import SlotStore
from slotsync.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

EXTERNAL_CALENDAR_ACTOR = "external_calendar"

# Statuses that give the slot back to the pool
RELEASING_STATUSES = {AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED}


class AppointmentService:
    """Handles appointment operations"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: UUID) -> Appointment:
        appointment = db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def find_by_external_event(db: Session, provider_id: UUID, external_event_id: str) -> Optional[Appointment]:
        """Appointment bound to a calendar event, directly or through its slot"""
        appointment = db.query(Appointment).filter(
            Appointment.provider_id == provider_id,
            Appointment.external_event_id == external_event_id,
        ).order_by(Appointment.created_at.desc()).first()
        if appointment:
            return appointment

        return db.query(Appointment).join(Slot, Appointment.slot_id == Slot.id).filter(
            Slot.provider_id == provider_id,
            Slot.external_event_id == external_event_id,
            Appointment.status.in_(list(ACTIVE_STATUSES)),
        ).first()

    @staticmethod
    def book_slot(
            db: Session,
            slot_id: UUID,
            client_name: str,
            client_email: Optional[str] = None,
            client_phone: Optional[str] = None,
            reason_for_visit: Optional[str] = None,
            notes: Optional[str] = None,
            performed_by: str = "client",
            now: Optional[datetime] = None
    ) -> Appointment:
        """Create a scheduled appointment on an available slot"""
        now = now or utc_now()
        slot = SlotStore(db).get(slot_id)
        if not slot:
            raise NotFoundError(f"Slot {slot_id} not found")
        if not slot.is_available:
            raise ValidationError(f"Slot {slot_id} is not available")

        rules = AvailabilityService.get_booking_rules(db, slot.provider_id)
        if slot.start_time < now + timedelta(hours=rules.min_lead_time or 0):
            raise ValidationError(f"Slot must be booked at least {rules.min_lead_time} hours in advance")

        if rules.max_appointments_per_day:
            day_start = slot.start_time.replace(hour=0, minute=0, second=0, microsecond=0)
            booked_that_day = db.query(Appointment).join(Slot, Appointment.slot_id == Slot.id).filter(
                Appointment.provider_id == slot.provider_id,
                Appointment.status.in_(list(ACTIVE_STATUSES)),
                Slot.start_time >= day_start,
                Slot.start_time < day_start + timedelta(days=1),
            ).count()
            if booked_that_day >= rules.max_appointments_per_day:
                raise ValidationError("Maximum appointments for this day reached")

        appointment = Appointment(
            slot_id=slot.id,
            provider_id=slot.provider_id,
            client_name=client_name,
            client_email=client_email,
            client_phone=client_phone,
            reason_for_visit=reason_for_visit,
            notes=notes,
            status=AppointmentStatus.SCHEDULED,
            external_event_id=slot.external_event_id,
        )
        slot.is_available = False
        db.add(appointment)
        db.flush()

        AppointmentService._add_history(
            db, appointment, "created", None, AppointmentStatus.SCHEDULED, performed_by, None, now
        )
        db.commit()
        db.refresh(appointment)

        logger.info(f"Booked slot {slot.id} for appointment {appointment.id}")
        return appointment

    @staticmethod
    def transition(
            db: Session,
            appointment: Appointment,
            to_status: AppointmentStatus,
            performed_by: Optional[str] = None,
            reason: Optional[str] = None,
            enforce_notice: bool = False,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Move an appointment to ``to_status`` and record it in history.

        ``enforce_notice`` applies the provider's cancellation and
        reschedule rules; set it for client-initiated changes.
        """
        now = now or utc_now()
        to_status = AppointmentStatus(to_status)

        if enforce_notice:
            AppointmentService._check_notice(db, appointment, to_status, now)

        AppointmentService._apply(db, appointment, to_status, performed_by, reason, now)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def cancel_externally(
            db: Session,
            appointment: Appointment,
            reason: str,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Cancel because the calendar event disappeared; flushes, caller commits.

        Already-terminal appointments are left untouched so repeated
        deliveries of the same deletion converge.
        """
        if not appointment.is_active:
            logger.debug(f"Appointment {appointment.id} already {appointment.status.value}, nothing to cancel")
            return appointment

        AppointmentService._apply(
            db, appointment, AppointmentStatus.CANCELLED, EXTERNAL_CALENDAR_ACTOR, reason, now or utc_now()
        )
        return appointment

    @staticmethod
    def _apply(
            db: Session,
            appointment: Appointment,
            to_status: AppointmentStatus,
            performed_by: Optional[str],
            reason: Optional[str],
            now: datetime
    ) -> None:
        from_status = appointment.status
        if to_status not in ALLOWED_TRANSITIONS.get(from_status, set()):
            raise InvalidTransitionError(
                f"Cannot move appointment {appointment.id} from {from_status.value} to {to_status.value}"
            )

        appointment.status = to_status
        if to_status == AppointmentStatus.CANCELLED:
            appointment.cancellation_reason = reason
            appointment.cancelled_by = performed_by
            appointment.cancelled_at = now

        if to_status in RELEASING_STATUSES and appointment.slot is not None:
            SlotStore(db).release(appointment.slot)

        AppointmentService._add_history(db, appointment, to_status.value, from_status, to_status, performed_by, reason, now)
        db.flush()

        logger.info(f"Appointment {appointment.id}: {from_status.value} -> {to_status.value}")

    @staticmethod
    def _check_notice(db: Session, appointment: Appointment, to_status: AppointmentStatus, now: datetime) -> None:
        rules = AvailabilityService.get_booking_rules(db, appointment.provider_id)
        starts_in = appointment.slot.start_time - now

        if to_status == AppointmentStatus.CANCELLED:
            if not rules.allow_cancellation:
                raise ValidationError("Cancellations are not allowed for this provider")
            if starts_in < timedelta(hours=rules.min_cancellation_notice or 0):
                raise ValidationError(
                    f"Cancellations require at least {rules.min_cancellation_notice} hours notice"
                )

        if to_status == AppointmentStatus.RESCHEDULED:
            if not rules.allow_reschedule:
                raise ValidationError("Rescheduling is not allowed for this provider")
            if starts_in < timedelta(hours=rules.min_reschedule_notice or 0):
                raise ValidationError(
                    f"Rescheduling requires at least {rules.min_reschedule_notice} hours notice"
                )

    @staticmethod
    def _add_history(db, appointment, action, from_status, to_status, performed_by, notes, now):
        db.add(AppointmentHistory(
            appointment_id=appointment.id,
            action=action,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            performed_by=performed_by,
            notes=notes,
            timestamp=now,
        ))
