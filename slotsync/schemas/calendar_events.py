# slotsync/schemas/calendar_events.py
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class ResourceState(str, Enum):
    """Declared state carried by a push notification"""
    SYNC = "sync"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    UPDATE = "update"
    DELETE = "delete"


class ExternalEvent(BaseModel):
    """One event as returned by the calendar provider, immutable once parsed"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Provider event id")
    status: str = Field("confirmed", description="confirmed, tentative or cancelled")
    summary: Optional[str] = Field(None, description="Event title")
    description: Optional[str] = Field(None, description="Event body")
    start: Optional[datetime] = Field(None, description="Timed start instant")
    end: Optional[datetime] = Field(None, description="Timed end instant")
    start_date: Optional[date] = Field(None, description="Date of an all-day event")

    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @property
    def is_all_day(self) -> bool:
        return self.start is None and self.start_date is not None


class EventPage(BaseModel):
    """Result of a delta or range listing"""
    events: List[ExternalEvent] = Field(default_factory=list)
    next_token: Optional[str] = Field(None, description="Sync token for the next delta query")


class WatchResult(BaseModel):
    resource_id: str = Field(..., description="Provider id of the watched resource")
    expiration: Optional[datetime] = Field(None, description="Expiration granted by the provider")


class ChannelNotification(BaseModel):
    """Push notification from the calendar provider"""
    model_config = ConfigDict(frozen=True)

    channel_id: str = Field(..., min_length=1)
    resource_id: str = Field(..., min_length=1)
    resource_state: str = Field(..., min_length=1)
    message_number: int = Field(..., ge=0)
    channel_token: Optional[str] = Field(None, description="Shared secret echoed by the provider")

    @property
    def is_sync_ping(self) -> bool:
        return self.resource_state == ResourceState.SYNC.value


class ChannelInfo(BaseModel):
    """Channel established for a provider"""
    provider_id: UUID
    channel_id: str
    resource_id: str
    sync_token: Optional[str] = None
    expiration: datetime


class RenewalFailure(BaseModel):
    provider_id: UUID
    error: str


class ChannelStatus(BaseModel):
    """Where a provider's push channel stands right now"""
    provider_id: UUID
    provider_name: Optional[str] = None
    provider_email: Optional[str] = None
    status: str = Field(..., description="not_configured, active or expired")
    health: Optional[str] = Field(
        None, description="healthy, expiring_soon (within the renewal threshold) or expired"
    )
    channel_id: Optional[str] = None
    resource_id: Optional[str] = None
    expiration: Optional[datetime] = None
    hours_until_expiration: float = Field(0.0, description="Never negative, one decimal")
    last_sync_time: Optional[datetime] = None


class RenewalReport(BaseModel):
    """Outcome of an expiring-channel sweep"""
    checked: int = 0
    renewed: int = 0
    failed: List[RenewalFailure] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Outcome of handling one push notification"""
    status: str = Field(..., description="synced, ignored")
    reason: Optional[str] = None
    provider_id: Optional[UUID] = None
    processed: int = 0
    failed: int = 0
    full_resync: bool = False
    renewed: bool = False
    actions: Dict[str, int] = Field(default_factory=dict)

    @classmethod
    def ignored(cls, reason: str, **extra: Any) -> "SyncResult":
        return cls(status="ignored", reason=reason, **extra)
