"""
Tracking lifecycle coordinator.

Drives token transitions (start / complete), pushes the driver/vehicle
descriptor once on start, and propagates lifecycle status to the owning
assignment and booking.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import PartnerEnvironment, PartnerProfile, settings
from backend.app.core.exceptions import (
    TerminalStateViolationError, TrackingNotActiveError, TrackingValidationError
)
from backend.app.models.booking import Booking, DriverVehicleAssignment
from backend.app.models.driver import Driver, Vehicle
from backend.app.models.tracking_token import TrackingToken
from backend.app.models.tracking_enums import (
    TokenStatus, CompletionType, AssignmentStatus, BookingInternalStatus,
    ASSIGNMENT_STATUS_ON_COMPLETION, BOOKING_STATUS_ON_COMPLETION
)
from backend.app.services.audit import log_event, AuditAction
from backend.app.services.partner_sync import PartnerSync, SyncOutcome, VehicleDescriptor
from backend.app.services.tracking_tokens import get_token, transition_token

logger = logging.getLogger("transfer_tracking.lifecycle")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def start_tracking(
    db: AsyncSession,
    token: str,
    sync_client: PartnerSync,
    profile: PartnerProfile,
    actor: str = "driver"
) -> Tuple[TrackingToken, Optional[SyncOutcome]]:
    """
    Start a tracking session.

    Validates:
    - Token exists
    - Token is not completed

    Actions (pending tokens only):
    - pending -> active, started_at = now
    - assignment and booking -> in_progress
    - push driver/vehicle descriptor to the partner (best effort)

    Returns:
        (token, vehicle sync outcome). The outcome is None when the session
        was already active, in which case nothing was changed or sent.

    Raises:
        TokenNotFoundError: Unknown token
        TerminalStateViolationError: Token already completed
    """
    tracking_token = await get_token(db, token)
    _reject_if_completed(tracking_token)

    if tracking_token.status == TokenStatus.ACTIVE:
        return tracking_token, None

    started = await transition_token(
        db, tracking_token, TokenStatus.PENDING, TokenStatus.ACTIVE,
        started_at=_utcnow()
    )

    if started is None:
        # Another request moved the token first
        await db.rollback()
        current = await get_token(db, token)
        _reject_if_completed(current)
        return current, None

    await _propagate_status(
        db, started, AssignmentStatus.IN_PROGRESS, BookingInternalStatus.IN_PROGRESS
    )
    await log_event(
        db=db,
        action=AuditAction.TRACKING_STARTED,
        actor=actor,
        token_id=started.id,
        booking_ref=started.booking_ref,
        metadata={"environment": profile.environment.value}
    )
    await db.commit()
    # Keep the committed state readable even if a later audit write rolls back
    db.expunge(started)

    vehicle_sync = await _push_vehicle_descriptor(db, started, sync_client, profile)

    return started, vehicle_sync


async def complete_tracking(
    db: AsyncSession,
    token: str,
    reason,
    notes: Optional[str] = None,
    allow_from_pending: Optional[bool] = None,
    actor: str = "staff"
) -> TrackingToken:
    """
    Complete a tracking session.

    Completing an already completed session with the same reason returns it
    unchanged; a different reason is a conflict.

    Args:
        db: Database session
        token: Token secret
        reason: CompletionType (or its string value)
        notes: Free-text completion notes
        allow_from_pending: Whether a never-started session may be completed.
            Defaults to settings.tracking_allow_complete_from_pending.
        actor: Who requested completion

    Raises:
        TrackingValidationError: Unknown completion reason
        TokenNotFoundError: Unknown token
        TerminalStateViolationError: Completed earlier with another reason
        TrackingNotActiveError: Token pending and completion from pending disallowed
    """
    completion_type = _coerce_completion_type(reason)
    if allow_from_pending is None:
        allow_from_pending = settings.tracking_allow_complete_from_pending

    # Status only moves forward, so this settles within a few reads
    for _ in range(len(TokenStatus)):
        tracking_token = await get_token(db, token)

        if tracking_token.status == TokenStatus.COMPLETED:
            if tracking_token.completion_type != completion_type:
                raise TerminalStateViolationError(
                    message="This job has already been completed with a different status",
                    details={
                        "status": TokenStatus.COMPLETED.value,
                        "completion_type": tracking_token.completion_type.value if tracking_token.completion_type else None,
                        "requested": completion_type.value,
                    }
                )
            return tracking_token

        if tracking_token.status == TokenStatus.PENDING and not allow_from_pending:
            raise TrackingNotActiveError(
                current_status=tracking_token.status.value,
                message="Tracking has not been started for this job"
            )

        completed = await transition_token(
            db, tracking_token, tracking_token.status, TokenStatus.COMPLETED,
            completed_at=_utcnow(),
            completion_type=completion_type,
            completion_notes=notes
        )
        if completed is None:
            await db.rollback()
            continue

        await _propagate_status(
            db,
            completed,
            ASSIGNMENT_STATUS_ON_COMPLETION[completion_type],
            BOOKING_STATUS_ON_COMPLETION[completion_type]
        )
        await log_event(
            db=db,
            action=AuditAction.TRACKING_COMPLETED,
            actor=actor,
            token_id=completed.id,
            booking_ref=completed.booking_ref,
            metadata={
                "completion_type": completion_type.value,
                "from_status": tracking_token.status.value,
                "total_locations_sent": completed.total_locations_sent,
            }
        )
        await db.commit()
        return completed

    raise RuntimeError("Tracking token status did not settle")


def _reject_if_completed(tracking_token: TrackingToken) -> None:
    if tracking_token.status == TokenStatus.COMPLETED:
        raise TerminalStateViolationError(
            message="This job has already been completed",
            details={
                "status": TokenStatus.COMPLETED.value,
                "completed_at": tracking_token.completed_at.isoformat() if tracking_token.completed_at else None,
            }
        )


def _coerce_completion_type(reason) -> CompletionType:
    try:
        return CompletionType(reason)
    except ValueError:
        raise TrackingValidationError(
            message=f"Invalid completion status. Allowed: {', '.join(c.value for c in CompletionType)}",
            field="status"
        )


async def _propagate_status(
    db: AsyncSession,
    tracking_token: TrackingToken,
    assignment_status: AssignmentStatus,
    booking_status: BookingInternalStatus
) -> None:
    """Mirror lifecycle status into the assignment and booking. Missing rows are logged only."""
    assignment_result = await db.execute(
        update(DriverVehicleAssignment)
        .where(DriverVehicleAssignment.id == tracking_token.assignment_id)
        .values(status=assignment_status)
        .execution_options(synchronize_session=False)
    )
    if assignment_result.rowcount == 0:
        logger.warning(
            "Assignment missing for tracking token",
            extra={"token_id": tracking_token.id, "assignment_id": tracking_token.assignment_id}
        )

    booking_result = await db.execute(
        update(Booking)
        .where(Booking.booking_ref == tracking_token.booking_ref)
        .values(internal_status=booking_status)
        .execution_options(synchronize_session=False)
    )
    if booking_result.rowcount == 0:
        logger.warning(
            "Booking missing for tracking token",
            extra={"token_id": tracking_token.id, "booking_ref": tracking_token.booking_ref}
        )


async def build_vehicle_descriptor(
    db: AsyncSession,
    tracking_token: TrackingToken,
    profile: PartnerProfile
) -> Optional[VehicleDescriptor]:
    """Current driver/vehicle details for a token, or None if either record is gone."""
    driver_result = await db.execute(select(Driver).where(Driver.id == tracking_token.driver_id))
    driver = driver_result.scalar_one_or_none()

    vehicle_result = await db.execute(select(Vehicle).where(Vehicle.id == tracking_token.vehicle_id))
    vehicle = vehicle_result.scalar_one_or_none()

    if not driver or not vehicle:
        return None

    description = f"Office Contact: {settings.partner_office_contact}"
    if profile.environment == PartnerEnvironment.STAGING:
        description += " [TEST]"

    return VehicleDescriptor(
        driver_name=driver.name,
        driver_phone=driver.phone_number,
        license_number=driver.license_number,
        brand=vehicle.brand,
        model=vehicle.model,
        color=vehicle.color,
        registration=vehicle.registration,
        description=description
    )


async def _push_vehicle_descriptor(
    db: AsyncSession,
    tracking_token: TrackingToken,
    sync_client: PartnerSync,
    profile: PartnerProfile
) -> SyncOutcome:
    descriptor = await build_vehicle_descriptor(db, tracking_token, profile)

    if descriptor is None:
        logger.warning(
            "Driver or vehicle record missing, descriptor not sent",
            extra={"token_id": tracking_token.id, "booking_ref": tracking_token.booking_ref}
        )
        outcome = SyncOutcome(success=False, error="Driver or vehicle record not found")
    else:
        outcome = await sync_client.push_vehicle_descriptor(
            tracking_token.booking_ref,
            tracking_token.vehicle_identifier,
            descriptor,
            profile
        )

    if not outcome.success:
        try:
            await log_event(
                db=db,
                action=AuditAction.VEHICLE_SYNC_FAILED,
                token_id=tracking_token.id,
                booking_ref=tracking_token.booking_ref,
                metadata={
                    "environment": profile.environment.value,
                    "http_code": outcome.http_code,
                    "error": outcome.error,
                }
            )
            await db.commit()
        except SQLAlchemyError:
            # The session is already active; a lost audit row must not undo that
            logger.exception("Could not record vehicle sync failure", extra={"token_id": tracking_token.id})
            await db.rollback()

    return outcome
