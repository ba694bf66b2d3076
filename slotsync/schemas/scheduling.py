"""
Pydantic schemas for availability settings, slots and generation results
"""
from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date, datetime
from uuid import UUID


def _validate_hhmm(v: str) -> str:
    try:
        parsed = datetime.strptime(v, "%H:%M")
    except ValueError:
        raise ValueError("Time must be in HH:MM format")
    return parsed.strftime("%H:%M")


# ============================================================================
# Request Schemas (for incoming data)
# ============================================================================

class AvailabilityRuleIn(BaseModel):
    """One weekly working-hours rule"""
    day_of_week: int = Field(..., ge=0, le=6, description="Day of week (0=Monday, 6=Sunday)")
    start_time: str = Field(..., description="Start time (HH:MM)")
    end_time: str = Field(..., description="End time (HH:MM)")
    enabled: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_hhmm(v)

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class TimeRestriction(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _validate_hhmm(v)


class AppointmentTypeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    duration: int = Field(..., gt=0, le=24 * 60, description="Duration in minutes")
    buffer_before: int = Field(0, ge=0)
    buffer_after: int = Field(0, ge=0)
    color: str = "#4CAF50"
    description: Optional[str] = None
    enabled: bool = True
    time_restrictions: List[TimeRestriction] = Field(default_factory=list)


class BookingRulesIn(BaseModel):
    """Partial update; omitted fields keep their current value"""
    min_lead_time: Optional[int] = Field(None, ge=0, description="Hours")
    max_advance_booking: Optional[int] = Field(None, ge=1, description="Days")
    min_reschedule_notice: Optional[int] = Field(None, ge=0, description="Hours")
    min_cancellation_notice: Optional[int] = Field(None, ge=0, description="Hours")
    allow_reschedule: Optional[bool] = None
    allow_cancellation: Optional[bool] = None
    max_appointments_per_day: Optional[int] = Field(None, ge=1)


class BlockedIntervalIn(BaseModel):
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None
    is_recurring: bool = Field(
        False,
        description="Stored for display only; generation blocks just the literal start/end interval, "
                    "so add one block per date it applies to",
    )

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class GenerateSlotsRequest(BaseModel):
    start_date: date
    end_date: date
    appointment_type_id: UUID
    include_weekends: bool = False


# ============================================================================
# Response Schemas
# ============================================================================

class AvailabilityRuleOut(AvailabilityRuleIn):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int = 0


class AppointmentTypeOut(AppointmentTypeIn):
    model_config = ConfigDict(from_attributes=True)

    id: UUID

    @field_validator("time_restrictions", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class BookingRulesOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min_lead_time: int
    max_advance_booking: int
    min_reschedule_notice: int
    min_cancellation_notice: int
    allow_reschedule: bool
    allow_cancellation: bool
    max_appointments_per_day: Optional[int] = None


class BlockedIntervalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    start_time: datetime
    end_time: datetime
    reason: Optional[str] = None
    is_recurring: bool = False


class AvailabilitySettings(BaseModel):
    provider_id: UUID
    rules: List[AvailabilityRuleOut] = Field(default_factory=list)
    appointment_types: List[AppointmentTypeOut] = Field(default_factory=list)
    booking_rules: Optional[BookingRulesOut] = None
    blocked_intervals: List[BlockedIntervalOut] = Field(default_factory=list)


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider_id: UUID
    start_time: datetime
    end_time: datetime
    duration: int
    type: str
    is_available: bool
    external_event_id: Optional[str] = None


class SkipBreakdown(BaseModel):
    """Why days or candidate slots were not generated"""
    weekends: int = 0
    no_availability: List[str] = Field(default_factory=list, description="Day names without an enabled rule")
    no_time_remaining: int = 0
    beyond_horizon: int = 0
    blocked: int = 0
    duplicates: int = 0

    def counts(self) -> dict:
        return {
            "weekend": self.weekends,
            "no_availability": len(self.no_availability),
            "no_time_remaining": self.no_time_remaining,
            "beyond_horizon": self.beyond_horizon,
            "blocked": self.blocked,
            "duplicate": self.duplicates,
        }


class GenerationResult(BaseModel):
    generated: int = 0
    slots: List[SlotOut] = Field(default_factory=list)
    skipped: SkipBreakdown = Field(default_factory=SkipBreakdown)
    message: str = ""
