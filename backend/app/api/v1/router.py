"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import tracking, tracking_ops

router = APIRouter()

# Staff operations and backfill surface
router.include_router(tracking_ops.router)

# Driver device endpoints, one mount per partner environment
router.include_router(tracking.router)
router.include_router(tracking.staging_router)
