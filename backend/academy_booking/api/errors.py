"""
Maps domain exceptions to HTTP responses.

Every BookingError becomes `{"detail": message, "error": code}` with the
status its class declares, plus `details` when the service attached any.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from academy_booking.core.exceptions import BookingError
from academy_booking.core.logging import get_logger

logger = get_logger(__name__)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "request_rejected",
        error=exc.code,
        status_code=exc.status_code,
        detail=exc.message,
    )
    content = {"detail": exc.message, "error": exc.code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
