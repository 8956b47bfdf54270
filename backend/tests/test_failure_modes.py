"""
Failure Injection Tests.

Validates that partner and storage failures degrade the way drivers and
operators expect.
"""

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.models.tracking_enums import TokenStatus
from backend.app.services import location_ingest
from backend.app.services.location_ingest import list_undelivered_samples
from conftest import seed_token, count_samples, raise_connect_error

LOCATION = {"token": "T1", "latitude": 7.8804, "longitude": 98.3923, "accuracy": 10, "status": "AFTER_PICKUP"}


@pytest.mark.asyncio
async def test_partner_down_sample_still_stored(client, db_session, session_factory, partner):
    """Partner unreachable: 200 with synced_to_partner false, sample kept for backfill."""
    tracking_token = await seed_token(db_session, status=TokenStatus.ACTIVE)
    partner.queue(raise_connect_error)

    response = await client.post("/v1/tracking/location", json=LOCATION)

    assert response.status_code == 200
    data = response.json()
    assert data["location_saved"] is True
    assert data["synced_to_partner"] is False
    assert data["sync_error"] == "transport error: ConnectError"
    assert await count_samples(session_factory, tracking_token.id) == 1


@pytest.mark.asyncio
async def test_outcome_write_failure_keeps_sample(db_session, session_factory, partner_client, staging_profile, mocker):
    """Losing the outcome write leaves the stored sample undelivered, not lost."""
    tracking_token = await seed_token(db_session, status=TokenStatus.ACTIVE)
    mocker.patch.object(
        location_ingest, "record_delivery_outcome",
        side_effect=OperationalError("UPDATE driver_location_logs", {}, Exception("disk I/O error"))
    )

    result = await location_ingest.submit_location(
        db_session, token="T1", latitude=7.88, longitude=98.39, accuracy=None,
        tracking_status="AFTER_PICKUP", sync_client=partner_client, profile=staging_profile
    )

    assert result.location_saved is True
    assert result.synced_to_partner is True
    assert await count_samples(session_factory, tracking_token.id) == 1

    async with session_factory() as session:
        pending = await list_undelivered_samples(session)
    assert [p.sample_id for p in pending] == [result.sample_id]


@pytest.mark.asyncio
async def test_database_error_during_start(client, db_session, mocker):
    """Storage failure on start surfaces as a generic infrastructure error."""
    await seed_token(db_session)
    mocker.patch(
        "backend.app.api.v1.endpoints.tracking.start_tracking",
        side_effect=OperationalError("UPDATE driver_tracking_tokens", {}, Exception("connection reset by db01"))
    )

    response = await client.post("/v1/tracking/start", json={"token": "T1"})

    assert response.status_code == 503
    body = response.json()
    assert body["kind"] == "INFRASTRUCTURE_ERROR"
    assert "db01" not in response.text
