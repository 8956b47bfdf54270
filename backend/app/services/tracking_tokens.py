"""
Tracking token store.

Owns driver_tracking_tokens rows. Status changes and counter bumps are
single conditional UPDATE statements so concurrent requests never lose
a transition or a count.
"""

import secrets
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from backend.app.core.exceptions import TokenNotFoundError, OpenTokenConflictError
from backend.app.models.tracking_token import TrackingToken
from backend.app.models.tracking_enums import TokenStatus


def generate_token_secret() -> str:
    """Unguessable bearer token handed to the driver's device."""
    return secrets.token_urlsafe(32)


async def get_token(db: AsyncSession, token: str) -> TrackingToken:
    """
    Load a tracking token by its secret.

    Args:
        db: Database session
        token: Token secret presented by the device

    Returns:
        The tracking token row, freshly read from the database

    Raises:
        TokenNotFoundError: If no session matches
    """
    if not token:
        raise TokenNotFoundError()

    result = await db.execute(
        select(TrackingToken)
        .where(TrackingToken.token == token)
        .execution_options(populate_existing=True)
    )
    tracking_token = result.scalar_one_or_none()

    if not tracking_token:
        raise TokenNotFoundError()

    return tracking_token


async def create_token(
    db: AsyncSession,
    booking_ref: str,
    driver_id: int,
    vehicle_id: int,
    assignment_id: int,
    vehicle_identifier: str,
    tracking_interval: int
) -> TrackingToken:
    """
    Create a pending tracking token for an assignment.

    Args:
        db: Database session
        booking_ref: Booking the job belongs to
        driver_id: Assigned driver
        vehicle_id: Assigned vehicle
        assignment_id: Assignment being made trackable
        vehicle_identifier: Partner-side vehicle key
        tracking_interval: Expected seconds between pings

    Returns:
        Flushed token (caller commits)

    Raises:
        OpenTokenConflictError: Assignment already has a pending or active
            token. When raised by the flush the session must be rolled back.
    """
    if await get_open_token_id(db, assignment_id) is not None:
        raise OpenTokenConflictError(assignment_id)

    tracking_token = TrackingToken(
        token=generate_token_secret(),
        booking_ref=booking_ref,
        driver_id=driver_id,
        vehicle_id=vehicle_id,
        assignment_id=assignment_id,
        vehicle_identifier=vehicle_identifier,
        status=TokenStatus.PENDING,
        tracking_interval=tracking_interval,
        total_locations_sent=0
    )

    db.add(tracking_token)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent create won; the partial unique index rejected this one
        raise OpenTokenConflictError(assignment_id)

    return tracking_token


async def get_open_token_id(db: AsyncSession, assignment_id: int) -> Optional[int]:
    """Id of the assignment's pending or active token, if any."""
    result = await db.execute(
        select(TrackingToken.id).where(
            TrackingToken.assignment_id == assignment_id,
            TrackingToken.status != TokenStatus.COMPLETED
        )
    )
    return result.scalars().first()


async def transition_token(
    db: AsyncSession,
    tracking_token: TrackingToken,
    expected: TokenStatus,
    new_status: TokenStatus,
    **fields
) -> Optional[TrackingToken]:
    """
    Compare-and-set a token's status.

    The UPDATE only matches while the row still holds the expected status,
    so of two racing callers exactly one performs the transition.

    Args:
        db: Database session
        tracking_token: Token to transition
        expected: Status the row must currently hold
        new_status: Target status, strictly after expected
        **fields: Extra columns to set in the same statement

    Returns:
        The reloaded token, or None if the row no longer held `expected`

    Raises:
        ValueError: If the transition would not move forward
    """
    if new_status.rank <= expected.rank:
        raise ValueError(f"Illegal token transition {expected.value} -> {new_status.value}")

    result = await db.execute(
        update(TrackingToken)
        .where(
            TrackingToken.id == tracking_token.id,
            TrackingToken.status == expected
        )
        .values(status=new_status, **fields)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        return None

    reloaded = await db.execute(
        select(TrackingToken)
        .where(TrackingToken.id == tracking_token.id)
        .execution_options(populate_existing=True)
    )
    return reloaded.scalar_one()


async def increment_sample_counter(
    db: AsyncSession,
    token_id: int,
    at: datetime
) -> bool:
    """
    Count one accepted location sample against an active token.

    The increment happens in SQL, never as read-modify-write here.

    Args:
        db: Database session
        token_id: Token row id
        at: Capture time of the accepted sample

    Returns:
        True if counted, False if the token is no longer active
    """
    result = await db.execute(
        update(TrackingToken)
        .where(
            TrackingToken.id == token_id,
            TrackingToken.status == TokenStatus.ACTIVE
        )
        .values(
            total_locations_sent=TrackingToken.total_locations_sent + 1,
            last_location_at=at
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def get_sample_count(db: AsyncSession, token_id: int) -> int:
    """Current total_locations_sent straight from the database."""
    result = await db.execute(
        select(TrackingToken.total_locations_sent).where(TrackingToken.id == token_id)
    )
    return result.scalar_one()
