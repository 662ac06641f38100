"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from venue_booking.api.routes import admin, auth, bookings, events, holds, validation, webhooks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(events.router)
api_router.include_router(holds.router)
api_router.include_router(validation.router)
api_router.include_router(bookings.router)
api_router.include_router(admin.router)
api_router.include_router(webhooks.router)
