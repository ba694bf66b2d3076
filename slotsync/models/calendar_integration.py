# slotsync/models/calendar_integration.py
from sqlalchemy import Column, String, Boolean, DateTime, LargeBinary, ForeignKey, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from slotsync.models.base import Base, UTCDateTime
import uuid


class CalendarIntegration(Base):
    """External calendar credential and target calendar for one provider"""
    __tablename__ = "calendar_integrations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    calendar_provider = Column(String(20), default="google")  # only 'google' is wired up
    calendar_id = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)

    # OAuth tokens, Fernet-encrypted
    access_token_encrypted = Column(LargeBinary, nullable=True)
    refresh_token_encrypted = Column(LargeBinary, nullable=True)
    token_expires_at = Column(UTCDateTime, nullable=True)

    # Provider-specific config (calendar list, etc.)
    provider_config = Column(JSON, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    provider = relationship("Provider", back_populates="calendar_integration")
