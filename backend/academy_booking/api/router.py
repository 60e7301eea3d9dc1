"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from academy_booking.api.routes import academy, admin_batches, admin_settings, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(bookings.router)
api_router.include_router(academy.router)
api_router.include_router(admin_settings.router)
api_router.include_router(admin_batches.router)
