"""API routes for Casework."""

from fastapi import APIRouter

from .cases import router as cases_router
from .dashboard import router as dashboard_router
from .organizations import router as organizations_router
from .referrals import router as referrals_router
from .registrations import router as registrations_router

# Main API router
api_router = APIRouter()

# Workflow entities
api_router.include_router(cases_router)
api_router.include_router(registrations_router)
api_router.include_router(referrals_router)

# Service-provider directory
api_router.include_router(organizations_router)

# Read side: dashboard counters and activity feed
api_router.include_router(dashboard_router)

__all__ = ["api_router"]
