# ============================================================================
# FILE: slotsync/api/error_handlers.py
# Engine exceptions -> HTTP responses
# ============================================================================
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slotsync.core.exceptions import (
    CalendarProviderError,
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    SyncFailedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (InvalidTransitionError, 400),
    (ConfigurationError, 409),
    (CalendarProviderError, 502),
    (SyncFailedError, 502),
    # Provider lock still held by another process
    (TimeoutError, 409),
]


def register_exception_handlers(app: FastAPI):
    for exc_class, status_code in STATUS_CODES:
        app.add_exception_handler(exc_class, _handler(status_code))


def _handler(status_code: int):
    async def handle(request: Request, exc: Exception):
        correlation_id = getattr(request.state, "correlation_id", "unknown")
        if status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path} ({correlation_id}): {exc}")
        else:
            logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handle
