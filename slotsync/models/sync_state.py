# slotsync/models/sync_state.py
from sqlalchemy import Column, String, Text, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from slotsync.models.base import Base, UTCDateTime
import uuid


class SyncState(Base):
    """Push channel identity and incremental sync cursor for one provider"""
    __tablename__ = "sync_states"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id = Column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    channel_id = Column(String(255), nullable=False, unique=True)
    resource_id = Column(String(255), nullable=True)
    sync_token = Column(Text, nullable=True)  # opaque, provider-issued
    expiration = Column(UTCDateTime, nullable=True, index=True)
    last_sync_time = Column(UTCDateTime, nullable=True)
