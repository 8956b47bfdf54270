"""
Driver Tracking API Endpoints.

Driver devices start a job, send location pings and complete the job.
The same endpoints are mounted twice: production traffic under /tracking
and staging traffic under /tracking/staging. The partner profile is bound
by the mount, never inferred from the request.
"""

from fastapi import APIRouter, Depends, Body
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.core.config import PartnerEnvironment, PartnerProfile
from backend.app.core.partner_client import get_partner_client, profile_dependency
from backend.app.schemas.tracking import (
    TokenRequest, TrackingStartResponse, VehicleSyncResult,
    LocationSubmitRequest, LocationSubmitResponse,
    TrackingCompleteRequest, TrackingCompleteResponse
)
from backend.app.services.partner_sync import PartnerSync
from backend.app.services.tracking_lifecycle import start_tracking, complete_tracking
from backend.app.services.location_ingest import submit_location


def build_tracking_router(environment: PartnerEnvironment, prefix: str) -> APIRouter:
    """Create the device-facing tracking routes for one partner environment."""
    tag = "Driver Tracking" if environment == PartnerEnvironment.PRODUCTION else "Driver Tracking - Staging"
    router = APIRouter(prefix=prefix, tags=[tag])
    get_partner_profile = profile_dependency(environment)
    mode_suffix = " (TEST MODE)" if environment == PartnerEnvironment.STAGING else ""

    @router.post("/start", response_model=TrackingStartResponse)
    async def start_job(
        request: TokenRequest = Body(...),
        db: AsyncSession = Depends(get_db),
        sync_client: PartnerSync = Depends(get_partner_client),
        profile: PartnerProfile = Depends(get_partner_profile)
    ):
        """
        Start tracking for a job.

        Idempotent while active. The driver/vehicle push result is reported
        in vehicle_sync and never fails the request.
        """
        tracking_token, outcome = await start_tracking(db, request.token, sync_client, profile)

        vehicle_sync = None
        if outcome is not None:
            vehicle_sync = VehicleSyncResult(
                success=outcome.success,
                error=outcome.error,
                http_code=outcome.http_code,
                response=outcome.response_body()
            )

        message = "Tracking started successfully" if outcome is not None else "Job already started"

        return TrackingStartResponse(
            status=tracking_token.status.value,
            started_at=tracking_token.started_at,
            tracking_interval=tracking_token.tracking_interval,
            environment=profile.label,
            message=message + mode_suffix,
            vehicle_sync=vehicle_sync
        )

    @router.post("/location", response_model=LocationSubmitResponse)
    async def send_location(
        location: LocationSubmitRequest = Body(...),
        db: AsyncSession = Depends(get_db),
        sync_client: PartnerSync = Depends(get_partner_client),
        profile: PartnerProfile = Depends(get_partner_profile)
    ):
        """
        Record a location ping and relay it to the partner.

        location_saved says the sample is stored; synced_to_partner says the
        partner acknowledged it.
        """
        result = await submit_location(
            db,
            token=location.token,
            latitude=location.latitude,
            longitude=location.longitude,
            accuracy=location.accuracy,
            tracking_status=location.status,
            sync_client=sync_client,
            profile=profile
        )

        return LocationSubmitResponse(
            location_saved=result.location_saved,
            synced_to_partner=result.synced_to_partner,
            sync_error=result.sync_error,
            http_code=result.http_code,
            total_locations_sent=result.total_locations_sent
        )

    @router.post("/complete", response_model=TrackingCompleteResponse)
    async def complete_job(
        request: TrackingCompleteRequest = Body(...),
        db: AsyncSession = Depends(get_db)
    ):
        """
        Complete a job as COMPLETED or NO_SHOW.

        Repeating the same completion is a no-op; a different one is a conflict.
        """
        tracking_token = await complete_tracking(db, request.token, request.status, request.notes)

        return TrackingCompleteResponse(
            status=tracking_token.status.value,
            completed_at=tracking_token.completed_at,
            completion_type=tracking_token.completion_type
        )

    return router


router = build_tracking_router(PartnerEnvironment.PRODUCTION, "/tracking")
staging_router = build_tracking_router(PartnerEnvironment.STAGING, "/tracking/staging")
