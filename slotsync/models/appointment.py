# slotsync/models/appointment.py
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from slotsync.models.base import Base, UTCDateTime
import uuid
import enum


class AppointmentStatus(str, enum.Enum):
    """Appointment lifecycle states."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    RESCHEDULED = "rescheduled"


# Outgoing transitions; states missing here are terminal
ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    },
}

ACTIVE_STATUSES = frozenset(ALLOWED_TRANSITIONS)


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    slot_id = Column(UUID(as_uuid=True), ForeignKey("slots.id"), nullable=False)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    # Client info
    client_name = Column(String, nullable=False)
    client_email = Column(String, nullable=True)
    client_phone = Column(String, nullable=True)
    reason_for_visit = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(
        SQLEnum(AppointmentStatus, name="appointment_status"),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
    )

    # Calendar sync
    external_event_id = Column(String(255), nullable=True)

    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    slot = relationship("Slot")
    history = relationship(
        "AppointmentHistory",
        back_populates="appointment",
        order_by="AppointmentHistory.timestamp",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_appointments_provider_status", "provider_id", "status"),
        Index("ix_appointments_external_event", "external_event_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class AppointmentHistory(Base):
    """Append-only log of appointment status transitions"""
    __tablename__ = "appointment_history"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    appointment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    action = Column(String(20), nullable=False)  # created, confirmed, cancelled, ...
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    performed_by = Column(String, nullable=True)  # user id, "client", "external_calendar"
    notes = Column(Text, nullable=True)
    timestamp = Column(UTCDateTime, nullable=False)

    appointment = relationship("Appointment", back_populates="history")
