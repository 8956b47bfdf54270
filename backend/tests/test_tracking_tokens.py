"""
Tracking token store tests.

Status transitions are compare-and-set and only move forward.
"""

import pytest
from datetime import datetime, timezone
from sqlalchemy import select

from backend.app.core.exceptions import TokenNotFoundError, OpenTokenConflictError, ErrorKind
from backend.app.models.tracking_enums import TokenStatus
from backend.app.models.tracking_token import TrackingToken
from backend.app.services import tracking_tokens
from backend.app.services.tracking_tokens import (
    create_token, get_token, transition_token, increment_sample_counter, get_sample_count
)
from conftest import seed_assignment, seed_token


@pytest.mark.asyncio
async def test_create_token_starts_pending(db_session):
    assignment = await seed_assignment(db_session)

    tracking_token = await create_token(
        db_session,
        booking_ref=assignment.booking_ref,
        driver_id=assignment.driver_id,
        vehicle_id=assignment.vehicle_id,
        assignment_id=assignment.id,
        vehicle_identifier="VEH-001",
        tracking_interval=20
    )
    await db_session.commit()

    assert tracking_token.status == TokenStatus.PENDING
    assert tracking_token.total_locations_sent == 0
    assert tracking_token.started_at is None
    assert len(tracking_token.token) >= 32

    loaded = await get_token(db_session, tracking_token.token)
    assert loaded.id == tracking_token.id
    assert loaded.tracking_interval == 20


@pytest.mark.asyncio
async def test_token_secrets_are_unique(db_session):
    assignment = await seed_assignment(db_session)
    secrets = set()
    for _ in range(5):
        tracking_token = await create_token(
            db_session, assignment.booking_ref, assignment.driver_id, assignment.vehicle_id,
            assignment.id, "VEH-001", 30
        )
        secrets.add(tracking_token.token)
        # Close it so the assignment can take another token
        tracking_token.status = TokenStatus.COMPLETED
        await db_session.flush()

    assert len(secrets) == 5


@pytest.mark.asyncio
async def test_get_unknown_token(db_session):
    with pytest.raises(TokenNotFoundError) as exc_info:
        await get_token(db_session, "does-not-exist")

    assert exc_info.value.kind == ErrorKind.NOT_FOUND
    assert "does-not-exist" not in exc_info.value.message


@pytest.mark.asyncio
async def test_transition_forward(db_session):
    tracking_token = await seed_token(db_session)
    now = datetime.now(timezone.utc)

    active = await transition_token(db_session, tracking_token, TokenStatus.PENDING, TokenStatus.ACTIVE, started_at=now)
    await db_session.commit()

    assert active is not None
    assert active.status == TokenStatus.ACTIVE
    assert active.started_at is not None


@pytest.mark.asyncio
async def test_racing_transition_only_one_wins(db_session):
    """Second CAS with the same expected status sees the row already moved."""
    tracking_token = await seed_token(db_session)

    first = await transition_token(db_session, tracking_token, TokenStatus.PENDING, TokenStatus.ACTIVE)
    second = await transition_token(db_session, tracking_token, TokenStatus.PENDING, TokenStatus.ACTIVE)
    await db_session.commit()

    assert first is not None
    assert second is None
    assert (await get_token(db_session, "T1")).status == TokenStatus.ACTIVE


@pytest.mark.asyncio
@pytest.mark.parametrize("expected,new_status", [
    (TokenStatus.ACTIVE, TokenStatus.PENDING),
    (TokenStatus.COMPLETED, TokenStatus.ACTIVE),
    (TokenStatus.COMPLETED, TokenStatus.PENDING),
    (TokenStatus.ACTIVE, TokenStatus.ACTIVE),
])
async def test_backward_transitions_refused(db_session, expected, new_status):
    tracking_token = await seed_token(db_session, status=expected)

    with pytest.raises(ValueError):
        await transition_token(db_session, tracking_token, expected, new_status)

    assert (await get_token(db_session, "T1")).status == expected


@pytest.mark.asyncio
async def test_increment_only_counts_active_tokens(db_session):
    tracking_token = await seed_token(db_session, status=TokenStatus.PENDING)
    now = datetime.now(timezone.utc)

    assert await increment_sample_counter(db_session, tracking_token.id, now) is False
    assert await get_sample_count(db_session, tracking_token.id) == 0

    await transition_token(db_session, tracking_token, TokenStatus.PENDING, TokenStatus.ACTIVE)
    assert await increment_sample_counter(db_session, tracking_token.id, now) is True
    assert await increment_sample_counter(db_session, tracking_token.id, now) is True
    await db_session.commit()

    assert await get_sample_count(db_session, tracking_token.id) == 2
    assert (await get_token(db_session, "T1")).last_location_at is not None


async def create_for(db_session, assignment):
    return await create_token(
        db_session, assignment.booking_ref, assignment.driver_id, assignment.vehicle_id,
        assignment.id, "VEH-001", 30
    )


@pytest.mark.asyncio
async def test_second_open_token_for_assignment_refused(db_session):
    assignment = await seed_assignment(db_session)
    await create_for(db_session, assignment)
    await db_session.commit()

    with pytest.raises(OpenTokenConflictError) as exc_info:
        await create_for(db_session, assignment)

    assert exc_info.value.kind == ErrorKind.CONFLICT
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_unique_index_catches_concurrent_create(db_session, session_factory, mocker):
    """Two creates that both pass the open-token check: the store keeps one."""
    assignment = await seed_assignment(db_session)
    assignment_id = assignment.id
    await create_for(db_session, assignment)
    await db_session.commit()

    # The second caller read before the first one committed
    mocker.patch.object(tracking_tokens, "get_open_token_id", return_value=None)

    with pytest.raises(OpenTokenConflictError):
        await create_for(db_session, assignment)
    await db_session.rollback()

    async with session_factory() as session:
        open_ids = (await session.execute(
            select(TrackingToken.id).where(
                TrackingToken.assignment_id == assignment_id,
                TrackingToken.status != TokenStatus.COMPLETED
            )
        )).scalars().all()
    assert len(open_ids) == 1


@pytest.mark.asyncio
async def test_completed_token_frees_assignment(db_session):
    assignment = await seed_assignment(db_session)
    first = await create_for(db_session, assignment)
    first.status = TokenStatus.COMPLETED
    await db_session.commit()

    second = await create_for(db_session, assignment)
    await db_session.commit()

    assert second.status == TokenStatus.PENDING
    assert second.token != first.token
