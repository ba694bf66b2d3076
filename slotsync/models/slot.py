# slotsync/models/slot.py
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from slotsync.models.base import Base, UTCDateTime
import uuid


class Slot(Base):
    """Bookable or blocked time interval owned by a provider"""
    __tablename__ = "slots"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(UUID(as_uuid=True), ForeignKey("providers.id", ondelete="CASCADE"), nullable=False)

    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    type = Column(String(255), nullable=False)  # appointment type name or blocking label
    is_available = Column(Boolean, default=True, nullable=False)

    # Set when the slot came from, or was bound to, an external calendar event
    external_event_id = Column(String(255), nullable=True)
    # Appointment type of a generated slot taken over by a blocking event
    absorbed_type = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("provider_id", "start_time", "end_time", name="uq_slots_provider_interval"),
        Index("ix_slots_provider_external_event", "provider_id", "external_event_id"),
        Index("ix_slots_provider_start_available", "provider_id", "start_time", "is_available"),
    )

    def __repr__(self):
        return f"<Slot {self.start_time.isoformat()}-{self.end_time.isoformat()} available={self.is_available}>"
