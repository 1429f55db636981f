"""API v1 package."""

from fastapi import APIRouter

from waypoint.api.v1.endpoints import decisions, events

# Create the main API router
router = APIRouter(prefix="/api/v1")

router.include_router(decisions.router, prefix="/plans", tags=["decisions"])
router.include_router(events.router, prefix="/plans", tags=["events"])
