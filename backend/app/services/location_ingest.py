"""
Location ingest.

Accepts location pings for active tracking sessions. A sample is committed
before any delivery attempt; the partner outcome is then written back onto
the same row. Also exposes the query surface used by the backfill job that
retries undelivered samples.
"""

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import PartnerProfile
from backend.app.core.exceptions import TrackingNotActiveError, TrackingValidationError
from backend.app.models.location_sample import LocationSample
from backend.app.models.tracking_token import TrackingToken
from backend.app.models.tracking_enums import TokenStatus, TrackingStatus
from backend.app.services.partner_sync import LocationReport, PartnerSync, SyncOutcome
from backend.app.services.tracking_tokens import get_token, get_sample_count, increment_sample_counter

logger = logging.getLogger("transfer_tracking.ingest")


class IngestResult(BaseModel):
    """Outcome of one submitted ping. Durability and delivery are reported separately."""
    sample_id: int
    location_saved: bool
    synced_to_partner: bool
    sync_error: Optional[str] = None
    http_code: Optional[int] = None
    total_locations_sent: int


class PendingDelivery(BaseModel):
    """An undelivered sample with everything needed to retry it."""
    sample_id: int
    token_id: int
    booking_ref: str
    vehicle_identifier: str
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    tracking_status: TrackingStatus
    tracked_at: datetime
    sync_attempts: int
    sync_http_code: Optional[int] = None
    sync_response: Optional[str] = None

    def to_report(self) -> LocationReport:
        """Rebuild the partner report from the stored capture time."""
        return LocationReport(
            latitude=self.latitude,
            longitude=self.longitude,
            status=self.tracking_status,
            tracked_at=self.tracked_at
        )


def coerce_tracking_status(value) -> TrackingStatus:
    try:
        return TrackingStatus(value)
    except ValueError:
        raise TrackingValidationError(
            message=f"Invalid status. Allowed: {', '.join(s.value for s in TrackingStatus)}",
            field="status"
        )


def validate_coordinates(latitude, longitude, accuracy=None) -> None:
    """Reject missing, non-numeric or out-of-range coordinates."""
    for field, value, bound in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if value is None or isinstance(value, bool):
            raise TrackingValidationError(message=f"{field} is required", field=field)
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise TrackingValidationError(message=f"{field} must be a number", field=field)
        if not math.isfinite(number) or abs(number) > bound:
            raise TrackingValidationError(message=f"{field} must be between -{bound:g} and {bound:g}", field=field)

    if accuracy is not None:
        try:
            accuracy_value = float(accuracy)
        except (TypeError, ValueError):
            raise TrackingValidationError(message="accuracy must be a number", field="accuracy")
        if not math.isfinite(accuracy_value) or accuracy_value < 0:
            raise TrackingValidationError(message="accuracy must be zero or positive", field="accuracy")


async def submit_location(
    db: AsyncSession,
    token: str,
    latitude: float,
    longitude: float,
    accuracy: Optional[float],
    tracking_status,
    sync_client: PartnerSync,
    profile: PartnerProfile
) -> IngestResult:
    """
    Record a location ping and relay it to the partner.

    Validates:
    - tracking_status is a TrackingStatus
    - coordinates in range
    - token exists and is active

    Actions:
    - insert sample (undelivered) and count it on the token, one commit
    - push to partner, bounded by the client timeout
    - write the delivery outcome onto the sample

    Raises:
        TrackingValidationError: Bad status or coordinates; nothing written
        TokenNotFoundError: Unknown token
        TrackingNotActiveError: Token not active; nothing written
    """
    status_value = coerce_tracking_status(tracking_status)
    validate_coordinates(latitude, longitude, accuracy)

    tracking_token = await get_token(db, token)
    if tracking_token.status != TokenStatus.ACTIVE:
        raise TrackingNotActiveError(current_status=tracking_token.status.value)

    token_id = tracking_token.id
    booking_ref = tracking_token.booking_ref
    vehicle_identifier = tracking_token.vehicle_identifier
    tracked_at = datetime.now(timezone.utc)

    sample = LocationSample(
        token_id=token_id,
        booking_ref=booking_ref,
        latitude=float(latitude),
        longitude=float(longitude),
        accuracy=float(accuracy) if accuracy is not None else None,
        tracking_status=status_value,
        tracked_at=tracked_at,
        synced_to_partner=False,
        sync_attempts=0
    )
    db.add(sample)
    await db.flush()
    sample_id = sample.id

    # Counted in the same transaction as the insert, and only while still active
    if not await increment_sample_counter(db, token_id, tracked_at):
        await db.rollback()
        current = await get_token(db, token)
        raise TrackingNotActiveError(current_status=current.status.value)

    total = await get_sample_count(db, token_id)
    await db.commit()

    report = LocationReport(
        latitude=float(latitude),
        longitude=float(longitude),
        status=status_value,
        tracked_at=tracked_at
    )
    outcome = await sync_client.push_location(booking_ref, vehicle_identifier, report, profile)

    try:
        await record_delivery_outcome(db, sample_id, outcome)
        await db.commit()
    except SQLAlchemyError:
        # Sample stays undelivered and the backfill picks it up
        logger.exception(
            "Could not record delivery outcome",
            extra={"sample_id": sample_id, "synced": outcome.success}
        )
        await db.rollback()

    return IngestResult(
        sample_id=sample_id,
        location_saved=True,
        synced_to_partner=outcome.success,
        sync_error=outcome.error,
        http_code=outcome.http_code,
        total_locations_sent=total
    )


async def record_delivery_outcome(
    db: AsyncSession,
    sample_id: int,
    outcome: SyncOutcome
) -> bool:
    """
    Write a delivery attempt onto a sample. Caller commits.

    Only delivery fields change. A sample already acknowledged by the
    partner is left as is.

    Returns:
        True if the sample was updated
    """
    result = await db.execute(
        update(LocationSample)
        .where(
            LocationSample.id == sample_id,
            LocationSample.synced_to_partner.is_(False)
        )
        .values(
            synced_to_partner=outcome.success,
            sync_http_code=outcome.http_code,
            sync_response=outcome.diagnostic(),
            sync_attempts=LocationSample.sync_attempts + 1,
            last_sync_at=datetime.now(timezone.utc)
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def list_undelivered_samples(
    db: AsyncSession,
    limit: int = 100,
    booking_ref: Optional[str] = None
) -> List[PendingDelivery]:
    """
    Samples not yet acknowledged by the partner, oldest capture first.

    Args:
        db: Database session
        limit: Maximum rows
        booking_ref: Restrict to one booking
    """
    query = (
        select(LocationSample, TrackingToken.vehicle_identifier)
        .join(TrackingToken, TrackingToken.id == LocationSample.token_id)
        .where(LocationSample.synced_to_partner.is_(False))
    )
    if booking_ref:
        query = query.where(LocationSample.booking_ref == booking_ref)

    query = query.order_by(LocationSample.tracked_at, LocationSample.id).limit(limit)

    result = await db.execute(query)

    return [
        PendingDelivery(
            sample_id=sample.id,
            token_id=sample.token_id,
            booking_ref=sample.booking_ref,
            vehicle_identifier=vehicle_identifier,
            latitude=sample.latitude,
            longitude=sample.longitude,
            accuracy=sample.accuracy,
            tracking_status=sample.tracking_status,
            tracked_at=sample.tracked_at,
            sync_attempts=sample.sync_attempts,
            sync_http_code=sample.sync_http_code,
            sync_response=sample.sync_response
        )
        for sample, vehicle_identifier in result.all()
    ]
