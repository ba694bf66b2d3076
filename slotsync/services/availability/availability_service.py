# slotsync/services/availability/availability_service.py
from typing import List, Optional
from datetime import datetime, timedelta, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from slotsync.core.exceptions import NotFoundError, ValidationError
from slotsync.models import Provider, AvailabilityRule, AppointmentType, BookingRules, BlockedInterval, Slot
from slotsync.schemas.scheduling import (
    AvailabilityRuleIn,
    AppointmentTypeIn,
    BookingRulesIn,
    BlockedIntervalIn,
    AvailabilitySettings,
    AvailabilityRuleOut,
    AppointmentTypeOut,
    BookingRulesOut,
    BlockedIntervalOut,
)
from slotsync.services.slot.slot_store import SlotStore
from slotsync.utils.datetime_utils import utc_now
import logging

logger = logging.getLogger(__name__)

DEFAULT_BOOKING_RULES = {
    "min_lead_time": 1,
    "max_advance_booking": 90,
    "min_reschedule_notice": 24,
    "min_cancellation_notice": 24,
    "allow_reschedule": True,
    "allow_cancellation": True,
    "max_appointments_per_day": None,
}

# Mon-Fri, 9am-5pm
DEFAULT_WEEKLY_HOURS = [(day, "09:00", "17:00") for day in range(5)]

DEFAULT_APPOINTMENT_TYPES = [
    {"name": "Consultation", "duration": 30, "color": "#4CAF50"},
    {"name": "Cleaning", "duration": 45, "color": "#2196F3"},
    {"name": "Root Canal", "duration": 90, "color": "#F44336"},
    {"name": "Filling", "duration": 60, "color": "#FF9800"},
]


def _as_utc(value: datetime) -> datetime:
    # Naive query parameters are read as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AvailabilityService:
    """Weekly rules, appointment types, booking rules and blocked time per provider"""

    @staticmethod
    def get_provider(db: Session, provider_id: UUID) -> Provider:
        provider = db.get(Provider, provider_id)
        if not provider:
            raise NotFoundError(f"Provider {provider_id} not found")
        return provider

    @staticmethod
    def initialize_defaults(db: Session, provider_id: UUID) -> AvailabilitySettings:
        """Seed default hours, types and rules; existing settings are left alone"""
        AvailabilityService.get_provider(db, provider_id)

        if not db.query(AvailabilityRule).filter_by(provider_id=provider_id).first():
            for position, (day, start, end) in enumerate(DEFAULT_WEEKLY_HOURS):
                db.add(AvailabilityRule(
                    provider_id=provider_id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    enabled=True,
                    position=position,
                ))

        if not db.query(AppointmentType).filter_by(provider_id=provider_id).first():
            for type_data in DEFAULT_APPOINTMENT_TYPES:
                db.add(AppointmentType(provider_id=provider_id, enabled=True, **type_data))

        if not db.query(BookingRules).filter_by(provider_id=provider_id).first():
            db.add(BookingRules(provider_id=provider_id, **DEFAULT_BOOKING_RULES))

        db.commit()
        logger.info(f"Initialized default availability for provider {provider_id}")
        return AvailabilityService.get_settings(db, provider_id)

    @staticmethod
    def get_settings(db: Session, provider_id: UUID) -> AvailabilitySettings:
        AvailabilityService.get_provider(db, provider_id)
        return AvailabilitySettings(
            provider_id=provider_id,
            rules=[AvailabilityRuleOut.model_validate(r) for r in AvailabilityService.list_rules(db, provider_id)],
            appointment_types=[
                AppointmentTypeOut.model_validate(t)
                for t in db.query(AppointmentType).filter_by(provider_id=provider_id).order_by(AppointmentType.name).all()
            ],
            booking_rules=BookingRulesOut.model_validate(AvailabilityService.get_booking_rules(db, provider_id)),
            blocked_intervals=[
                BlockedIntervalOut.model_validate(b)
                for b in AvailabilityService.list_blocked_intervals(db, provider_id)
            ],
        )

    # ------------------------------------------------------------------
    # Weekly rules
    # ------------------------------------------------------------------

    @staticmethod
    def list_rules(db: Session, provider_id: UUID) -> List[AvailabilityRule]:
        """All rules in insertion order"""
        return db.query(AvailabilityRule).filter_by(
            provider_id=provider_id
        ).order_by(AvailabilityRule.position).all()

    @staticmethod
    def replace_rules(db: Session, provider_id: UUID, rules: List[AvailabilityRuleIn]) -> List[AvailabilityRule]:
        AvailabilityService.get_provider(db, provider_id)
        db.query(AvailabilityRule).filter_by(provider_id=provider_id).delete()

        for position, rule in enumerate(rules):
            db.add(AvailabilityRule(provider_id=provider_id, position=position, **rule.model_dump()))

        db.commit()
        return AvailabilityService.list_rules(db, provider_id)

    @staticmethod
    def add_rule(db: Session, provider_id: UUID, rule: AvailabilityRuleIn) -> AvailabilityRule:
        AvailabilityService.get_provider(db, provider_id)
        last = db.query(AvailabilityRule).filter_by(
            provider_id=provider_id
        ).order_by(AvailabilityRule.position.desc()).first()

        record = AvailabilityRule(
            provider_id=provider_id,
            position=(last.position + 1) if last else 0,
            **rule.model_dump()
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def find_enabled_rule(rules: List[AvailabilityRule], day_of_week: int) -> Optional[AvailabilityRule]:
        """First enabled rule for the weekday; later duplicates are never consulted"""
        return next((r for r in rules if r.day_of_week == day_of_week and r.enabled), None)

    # ------------------------------------------------------------------
    # Appointment types
    # ------------------------------------------------------------------

    @staticmethod
    def get_appointment_type(db: Session, provider_id: UUID, appointment_type_id: UUID) -> AppointmentType:
        appointment_type = db.query(AppointmentType).filter_by(
            id=appointment_type_id,
            provider_id=provider_id
        ).first()
        if not appointment_type:
            raise NotFoundError(f"Appointment type {appointment_type_id} not found")
        return appointment_type

    @staticmethod
    def add_appointment_type(db: Session, provider_id: UUID, data: AppointmentTypeIn) -> AppointmentType:
        AvailabilityService.get_provider(db, provider_id)
        appointment_type = AppointmentType(provider_id=provider_id, **data.model_dump())
        db.add(appointment_type)
        db.commit()
        db.refresh(appointment_type)
        return appointment_type

    @staticmethod
    def update_appointment_type(
            db: Session,
            provider_id: UUID,
            appointment_type_id: UUID,
            data: AppointmentTypeIn
    ) -> AppointmentType:
        """Administrative edit; existing slots keep their original duration"""
        appointment_type = AvailabilityService.get_appointment_type(db, provider_id, appointment_type_id)
        for field, value in data.model_dump().items():
            setattr(appointment_type, field, value)
        db.commit()
        db.refresh(appointment_type)
        return appointment_type

    # ------------------------------------------------------------------
    # Booking rules
    # ------------------------------------------------------------------

    @staticmethod
    def get_booking_rules(db: Session, provider_id: UUID) -> BookingRules:
        """Stored rules, or unsaved defaults when none were configured"""
        rules = db.query(BookingRules).filter_by(provider_id=provider_id).first()
        if rules is None:
            rules = BookingRules(provider_id=provider_id, **DEFAULT_BOOKING_RULES)
        return rules

    @staticmethod
    def update_booking_rules(db: Session, provider_id: UUID, data: BookingRulesIn) -> BookingRules:
        AvailabilityService.get_provider(db, provider_id)
        rules = db.query(BookingRules).filter_by(provider_id=provider_id).first()
        if rules is None:
            rules = BookingRules(provider_id=provider_id, **DEFAULT_BOOKING_RULES)
            db.add(rules)

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(rules, field, value)

        db.commit()
        db.refresh(rules)
        return rules

    # ------------------------------------------------------------------
    # Blocked intervals
    # ------------------------------------------------------------------

    @staticmethod
    def list_blocked_intervals(
            db: Session,
            provider_id: UUID,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None
    ) -> List[BlockedInterval]:
        """Blocks overlapping [start, end) when a window is given"""
        query = db.query(BlockedInterval).filter(BlockedInterval.provider_id == provider_id)
        if start is not None:
            query = query.filter(BlockedInterval.end_time > start)
        if end is not None:
            query = query.filter(BlockedInterval.start_time < end)
        return query.order_by(BlockedInterval.start_time).all()

    @staticmethod
    def add_blocked_interval(db: Session, provider_id: UUID, data: BlockedIntervalIn) -> BlockedInterval:
        AvailabilityService.get_provider(db, provider_id)
        block = BlockedInterval(provider_id=provider_id, **data.model_dump())
        db.add(block)
        db.commit()
        db.refresh(block)
        return block

    @staticmethod
    def remove_blocked_interval(db: Session, provider_id: UUID, block_id: UUID) -> None:
        block = db.query(BlockedInterval).filter_by(id=block_id, provider_id=provider_id).first()
        if not block:
            raise NotFoundError(f"Blocked interval {block_id} not found")
        db.delete(block)
        db.commit()

    @staticmethod
    def clear_blocked_intervals(db: Session, provider_id: UUID) -> int:
        cleared = db.query(BlockedInterval).filter_by(provider_id=provider_id).delete()
        db.commit()
        logger.info(f"Cleared {cleared} blocked intervals for provider {provider_id}")
        return cleared

    # ------------------------------------------------------------------
    # Bookable slots
    # ------------------------------------------------------------------

    @staticmethod
    def list_available_slots(
            db: Session,
            provider_id: UUID,
            start: Optional[datetime] = None,
            end: Optional[datetime] = None,
            type_name: Optional[str] = None,
            limit: int = 100,
            now: Optional[datetime] = None
    ) -> List[Slot]:
        """Available slots clipped to the lead-time / advance-booking window"""
        if limit <= 0:
            raise ValidationError("limit must be positive")

        now = now or utc_now()
        rules = AvailabilityService.get_booking_rules(db, provider_id)

        min_booking_time = now + timedelta(hours=rules.min_lead_time or 0)
        max_booking_time = now + timedelta(days=rules.max_advance_booking or 365)

        query_start = _as_utc(start) if start else now
        query_end = _as_utc(end) if end else now + timedelta(days=30)

        actual_start = max(query_start, min_booking_time)
        actual_end = min(query_end, max_booking_time)
        if actual_start > actual_end:
            return []

        return SlotStore(db).list_available(provider_id, actual_start, actual_end, type_name, limit)
