"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from tripzeo.api.v1 import (
    bookings,
    internal,
    payments,
    payouts,
    platform_settings,
    webhooks,
)

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Payments
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])

# Payouts
api_router.include_router(payouts.router, prefix="/payouts", tags=["Payouts"])

# Platform settings
api_router.include_router(platform_settings.router, prefix="/admin/settings", tags=["Admin"])

# Webhooks
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])

# Internal
api_router.include_router(internal.router, prefix="/internal", tags=["Internal"])
