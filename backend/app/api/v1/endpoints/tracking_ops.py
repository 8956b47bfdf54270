"""
Tracking Operations API Endpoints.

Staff make assignments trackable and inspect sessions; the backfill job
reads undelivered samples from here.
"""

from fastapi import APIRouter, Depends, status, Path, Query, Body
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.core.config import PartnerEnvironment, settings
from backend.app.core.exceptions import ResourceNotFoundError, TrackingValidationError
from backend.app.core.observability import mask_secret
from backend.app.models.booking import DriverVehicleAssignment
from backend.app.models.tracking_enums import AssignmentStatus
from backend.app.schemas.tracking import (
    TrackingTokenCreate, TrackingTokenResponse, TrackingDiagnosticsResponse,
    LocationSampleResponse, SyncStatistics, PartnerProfileSummary, AuditEntryResponse
)
from backend.app.services.audit import log_event, get_audit_trail, AuditAction
from backend.app.services.location_ingest import PendingDelivery, list_undelivered_samples
from backend.app.services.tracking_diagnostics import get_latest_samples, get_sync_statistics
from backend.app.services.tracking_tokens import create_token, get_token

router = APIRouter(prefix="/tracking", tags=["Tracking Operations"])


@router.post("/tokens", response_model=TrackingTokenResponse, status_code=status.HTTP_201_CREATED)
async def create_tracking_token(
    token_data: TrackingTokenCreate = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """
    Make an assignment trackable.

    Validates:
    - Assignment exists and is not finished
    - Assignment has no open (pending/active) tracking token
    """
    assignment_result = await db.execute(
        select(DriverVehicleAssignment).where(DriverVehicleAssignment.id == token_data.assignment_id)
    )
    assignment = assignment_result.scalar_one_or_none()

    if not assignment:
        raise ResourceNotFoundError("Assignment", token_data.assignment_id)

    if assignment.status in (AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED):
        raise TrackingValidationError(
            message=f"Cannot track a finished assignment, current status: {assignment.status.value}",
            field="assignment_id"
        )

    tracking_token = await create_token(
        db,
        booking_ref=assignment.booking_ref,
        driver_id=assignment.driver_id,
        vehicle_id=assignment.vehicle_id,
        assignment_id=assignment.id,
        vehicle_identifier=token_data.vehicle_identifier,
        tracking_interval=token_data.tracking_interval or settings.tracking_default_interval_seconds
    )

    await log_event(
        db=db,
        action=AuditAction.TRACKING_TOKEN_CREATED,
        actor="staff",
        token_id=tracking_token.id,
        booking_ref=tracking_token.booking_ref,
        metadata={"assignment_id": assignment.id, "vehicle_identifier": token_data.vehicle_identifier}
    )

    await db.commit()
    await db.refresh(tracking_token)

    return TrackingTokenResponse.model_validate(tracking_token)


@router.get("/tokens/{token}/diagnostics", response_model=TrackingDiagnosticsResponse)
async def get_tracking_diagnostics(
    token: str = Path(..., description="Tracking token"),
    db: AsyncSession = Depends(get_db)
):
    """
    Diagnostic report for one tracking session.

    Returns the token, its five latest samples with sync status, sync
    statistics, the session's audit trail and both partner profiles with
    masked keys.
    """
    tracking_token = await get_token(db, token)
    samples = await get_latest_samples(db, tracking_token.id, limit=5)
    stats = await get_sync_statistics(db, tracking_token.id)
    audit_trail = await get_audit_trail(db, token_id=tracking_token.id, limit=20)

    profiles = []
    for environment in PartnerEnvironment:
        profile = settings.partner_profile(environment)
        profiles.append(PartnerProfileSummary(
            environment=environment.value,
            endpoint=profile.endpoint,
            version=profile.version,
            api_key=mask_secret(profile.api_key)
        ))

    return TrackingDiagnosticsResponse(
        token=TrackingTokenResponse.model_validate(tracking_token),
        latest_locations=[LocationSampleResponse.model_validate(s) for s in samples],
        sync_stats=SyncStatistics(**stats),
        audit_trail=[AuditEntryResponse.model_validate(e) for e in audit_trail],
        partner_profiles=profiles
    )


@router.get("/ops/undelivered", response_model=List[PendingDelivery])
async def get_undelivered_samples(
    limit: int = Query(100, ge=1, le=1000),
    booking_ref: Optional[str] = Query(None, max_length=50),
    db: AsyncSession = Depends(get_db)
):
    """
    Location samples the partner has not acknowledged, oldest first.

    Consumed by the backfill job.
    """
    return await list_undelivered_samples(db, limit=limit, booking_ref=booking_ref)
