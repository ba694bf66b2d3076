# slotsync/models/availability.py
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey, JSON, Text, Index
from sqlalchemy.dialects.postgresql import UUID
from slotsync.models.base import Base, UTCDateTime
import uuid


class AvailabilityRule(Base):
    """Recurring weekly working hours for a provider"""
    __tablename__ = "availability_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_time = Column(String(5), nullable=False)  # "09:00"
    end_time = Column(String(5), nullable=False)  # "17:00"
    enabled = Column(Boolean, default=True)

    # Tie-break when several enabled rules share a weekday: lowest position wins
    position = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("ix_availability_rules_provider_day", "provider_id", "day_of_week"),
    )


class AppointmentType(Base):
    """Service offered by a provider (duration and buffers)"""
    __tablename__ = "appointment_types"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    name = Column(String(200), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    buffer_before = Column(Integer, default=0)  # minutes
    buffer_after = Column(Integer, default=0)  # minutes
    color = Column(String(20), default="#4CAF50")
    description = Column(Text, nullable=True)
    enabled = Column(Boolean, default=True)

    # [{"start_time": "09:00", "end_time": "12:00"}, ...]
    time_restrictions = Column(JSON, default=list)


class BookingRules(Base):
    """Lead time and horizon constraints for one provider"""
    __tablename__ = "booking_rules"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    min_lead_time = Column(Integer, default=1)  # hours
    max_advance_booking = Column(Integer, default=90)  # days
    min_reschedule_notice = Column(Integer, default=24)  # hours
    min_cancellation_notice = Column(Integer, default=24)  # hours
    allow_reschedule = Column(Boolean, default=True)
    allow_cancellation = Column(Boolean, default=True)
    max_appointments_per_day = Column(Integer, nullable=True)  # None means unlimited


class BlockedInterval(Base):
    """Explicitly blocked time (holidays, breaks), independent of the external calendar"""
    __tablename__ = "blocked_intervals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    reason = Column(String(255), nullable=True)  # "Holiday", "Lunch", etc.
    is_recurring = Column(Boolean, default=False)  # informational, never expanded

    __table_args__ = (
        Index("ix_blocked_intervals_provider_start", "provider_id", "start_time"),
    )
