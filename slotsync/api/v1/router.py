"""
API v1 router setup
Organized into: calendar channels and availability / slots
"""
from fastapi import APIRouter

from slotsync.api.v1 import availability, calendar

api_v1_router = APIRouter()

# ============================================================================
# CALENDAR CHANNEL ROUTES
# ============================================================================
api_v1_router.include_router(
    calendar.router,
    prefix="/calendar",
    tags=["Calendar"]
)

# ============================================================================
# AVAILABILITY & SLOT ROUTES
# ============================================================================
api_v1_router.include_router(
    availability.router,
    prefix="/availability",
    tags=["Availability"]
)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """
    API information and available endpoints.
    """
    return {
        "version": "1.0",
        "endpoints": {
            "calendar": "/api/v1/calendar/{provider_id}/channel",
            "availability": "/api/v1/availability/{provider_id}",
            "slots": "/api/v1/availability/{provider_id}/slots/available",
        }
    }
