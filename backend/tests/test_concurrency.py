"""
Concurrency Tests.

Validates that racing lifecycle requests resolve to a single winner.
"""

import pytest

from backend.app.core.exceptions import TerminalStateViolationError
from backend.app.models.tracking_enums import TokenStatus, CompletionType
from backend.app.services import tracking_lifecycle
from backend.app.services.tracking_lifecycle import start_tracking, complete_tracking
from backend.app.services.tracking_tokens import get_token, transition_token
from conftest import seed_token, reload_token


@pytest.mark.asyncio
async def test_stale_transition_loses(db_session, session_factory):
    """A session holding a stale pending token cannot overwrite a committed start."""
    await seed_token(db_session)
    stale = await get_token(db_session, "T1")

    async with session_factory() as other:
        winner = await get_token(other, "T1")
        assert await transition_token(other, winner, TokenStatus.PENDING, TokenStatus.ACTIVE) is not None
        await other.commit()

    assert await transition_token(db_session, stale, TokenStatus.PENDING, TokenStatus.ACTIVE) is None


@pytest.mark.asyncio
async def test_start_lost_race_is_idempotent(db_session, session_factory, partner, partner_client, staging_profile, mocker):
    """The request that loses the start race returns the winner's session and pushes nothing."""
    await seed_token(db_session)
    winner_started_at = {}

    async def start_elsewhere_first(db, tracking_token, expected, new_status, **fields):
        async with session_factory() as other:
            winner = await get_token(other, "T1")
            started = await transition_token(other, winner, TokenStatus.PENDING, TokenStatus.ACTIVE, **fields)
            winner_started_at["value"] = started.started_at
            await other.commit()
        return await transition_token(db, tracking_token, expected, new_status, **fields)

    mocker.patch.object(tracking_lifecycle, "transition_token", side_effect=start_elsewhere_first)

    tracking_token, outcome = await start_tracking(db_session, "T1", partner_client, staging_profile)

    assert outcome is None
    assert tracking_token.status == TokenStatus.ACTIVE
    assert tracking_token.started_at == winner_started_at["value"]
    assert partner.requests == []


@pytest.mark.asyncio
async def test_complete_racing_start(db_session, session_factory, partner_client, staging_profile):
    """Completion that lands between a stale read and a start still ends completed."""
    await seed_token(db_session)
    await start_tracking(db_session, "T1", partner_client, staging_profile)

    async with session_factory() as other:
        await complete_tracking(other, "T1", CompletionType.NO_SHOW)

    # A late start on the first session must not reopen the job
    with pytest.raises(TerminalStateViolationError):
        await start_tracking(db_session, "T1", partner_client, staging_profile)

    reloaded = await reload_token(session_factory, "T1")
    assert reloaded.status == TokenStatus.COMPLETED
    assert reloaded.completion_type == CompletionType.NO_SHOW


@pytest.mark.asyncio
async def test_repeated_submits_keep_counter_exact(client, db_session, session_factory):
    """Counter equals stored samples after a burst of pings."""
    tracking_token = await seed_token(db_session, status=TokenStatus.ACTIVE)
    body = {"token": "T1", "latitude": 7.88, "longitude": 98.39, "accuracy": 5, "status": "AFTER_PICKUP"}

    totals = []
    for _ in range(10):
        response = await client.post("/v1/tracking/location", json=body)
        totals.append(response.json()["total_locations_sent"])

    assert totals == list(range(1, 11))
    assert (await reload_token(session_factory, "T1")).total_locations_sent == 10
