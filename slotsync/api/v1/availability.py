# ============================================================================
# FILE: slotsync/api/v1/availability.py
# Availability settings and slot endpoints - thin HTTP layer
# ============================================================================
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from slotsync.api.dependencies import get_slot_generator
from slotsync.config.database import get_db
from slotsync.schemas.scheduling import (
    AppointmentTypeIn,
    AppointmentTypeOut,
    AvailabilityRuleIn,
    AvailabilityRuleOut,
    AvailabilitySettings,
    BlockedIntervalIn,
    BlockedIntervalOut,
    BookingRulesIn,
    BookingRulesOut,
    GenerateSlotsRequest,
    GenerationResult,
    SlotOut,
)
from slotsync.services.availability.availability_service import AvailabilityService
from slotsync.services.scheduling.slot_generator import SlotGenerator

router = APIRouter(tags=["availability"])


@router.get("/{provider_id}", response_model=AvailabilitySettings)
async def get_availability(provider_id: UUID, db: Session = Depends(get_db)):
    return AvailabilityService.get_settings(db, provider_id)


@router.post("/{provider_id}/initialize", response_model=AvailabilitySettings)
async def initialize_availability(provider_id: UUID, db: Session = Depends(get_db)):
    """Seed Mon-Fri 09:00-17:00 with default appointment types and booking rules"""
    return AvailabilityService.initialize_defaults(db, provider_id)


# ========== WEEKLY RULES ==========

@router.put("/{provider_id}/rules", response_model=List[AvailabilityRuleOut])
async def replace_rules(
        provider_id: UUID,
        rules: List[AvailabilityRuleIn],
        db: Session = Depends(get_db)
):
    return AvailabilityService.replace_rules(db, provider_id, rules)


@router.post("/{provider_id}/rules", response_model=AvailabilityRuleOut)
async def add_rule(provider_id: UUID, rule: AvailabilityRuleIn, db: Session = Depends(get_db)):
    return AvailabilityService.add_rule(db, provider_id, rule)


# ========== APPOINTMENT TYPES ==========

@router.post("/{provider_id}/types", response_model=AppointmentTypeOut)
async def add_appointment_type(
        provider_id: UUID,
        appointment_type: AppointmentTypeIn,
        db: Session = Depends(get_db)
):
    return AvailabilityService.add_appointment_type(db, provider_id, appointment_type)


@router.put("/{provider_id}/types/{type_id}", response_model=AppointmentTypeOut)
async def update_appointment_type(
        provider_id: UUID,
        type_id: UUID,
        appointment_type: AppointmentTypeIn,
        db: Session = Depends(get_db)
):
    return AvailabilityService.update_appointment_type(db, provider_id, type_id, appointment_type)


# ========== BOOKING RULES ==========

@router.put("/{provider_id}/booking-rules", response_model=BookingRulesOut)
async def update_booking_rules(provider_id: UUID, rules: BookingRulesIn, db: Session = Depends(get_db)):
    return AvailabilityService.update_booking_rules(db, provider_id, rules)


# ========== BLOCKED INTERVALS ==========

@router.post("/{provider_id}/blocked", response_model=BlockedIntervalOut)
async def add_blocked_interval(provider_id: UUID, block: BlockedIntervalIn, db: Session = Depends(get_db)):
    return AvailabilityService.add_blocked_interval(db, provider_id, block)


@router.delete("/{provider_id}/blocked")
async def clear_blocked_intervals(provider_id: UUID, db: Session = Depends(get_db)):
    cleared = AvailabilityService.clear_blocked_intervals(db, provider_id)
    return {"success": True, "cleared": cleared}


@router.delete("/{provider_id}/blocked/{block_id}")
async def remove_blocked_interval(provider_id: UUID, block_id: UUID, db: Session = Depends(get_db)):
    AvailabilityService.remove_blocked_interval(db, provider_id, block_id)
    return {"success": True}


# ========== SLOTS ==========

@router.post("/{provider_id}/slots/generate", response_model=GenerationResult)
async def generate_slots(
        provider_id: UUID,
        request: GenerateSlotsRequest,
        generator: SlotGenerator = Depends(get_slot_generator)
):
    """Create available slots; the response explains every skipped day or slot"""
    return await generator.generate_slots(
        provider_id=provider_id,
        start_date=request.start_date,
        end_date=request.end_date,
        appointment_type_id=request.appointment_type_id,
        include_weekends=request.include_weekends,
    )


@router.get("/{provider_id}/slots/available", response_model=List[SlotOut])
async def list_available_slots(
        provider_id: UUID,
        start: Optional[datetime] = Query(None),
        end: Optional[datetime] = Query(None),
        type: Optional[str] = Query(None, description="Appointment type name"),
        limit: int = Query(100, ge=1, le=500),
        db: Session = Depends(get_db)
):
    return AvailabilityService.list_available_slots(db, provider_id, start, end, type, limit)
