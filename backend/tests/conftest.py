"""
Centralized Test Configuration.
"""

import os

# Keep the application engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, select, func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.config import PartnerEnvironment, settings
from backend.app.core.partner_client import get_partner_client
from backend.app.models.booking import Booking, DriverVehicleAssignment
from backend.app.models.driver import Driver, Vehicle
from backend.app.models.location_sample import LocationSample
from backend.app.models.tracking_token import TrackingToken
from backend.app.models.tracking_enums import TokenStatus
from backend.app.services.partner_sync import PartnerSyncClient

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Scripted partner platform
class PartnerStub:
    """
    Stands in for the partner API behind httpx.MockTransport.

    Queue entries are a status code, a (status, body) tuple, or a callable
    taking the request (use it to raise transport errors).
    """

    def __init__(self):
        self.requests = []
        self.responses = []
        self.default = (200, {"success": True})

    def queue(self, *items):
        self.responses.extend(items)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if self.responses else self.default

        if callable(item):
            return item(request)

        status_code, body = item if isinstance(item, tuple) else (item, None)
        if body is None:
            return httpx.Response(status_code)
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)


def raise_timeout(request):
    raise httpx.ReadTimeout("timed out", request=request)


def raise_connect_error(request):
    raise httpx.ConnectError("connection refused", request=request)


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", set_sqlite_pragma)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def partner():
    return PartnerStub()


@pytest.fixture
async def partner_client(partner):
    async with httpx.AsyncClient(transport=httpx.MockTransport(partner.handler)) as http_client:
        yield PartnerSyncClient(http_client)


@pytest.fixture
def staging_profile():
    return settings.partner_profile(PartnerEnvironment.STAGING)


@pytest.fixture
def production_profile():
    return settings.partner_profile(PartnerEnvironment.PRODUCTION)


@pytest.fixture
async def client(session_factory, partner_client):
    """Async client for testing."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_partner_client():
        return partner_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_partner_client] = override_get_partner_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def seed_assignment(session, booking_ref="HBEDS-25077304", license_number="DL-4471"):
    """Driver, vehicle, booking and assignment for one transfer job."""
    driver = Driver(name="Somchai Jaidee", phone_number="+66811112222", license_number=license_number)
    vehicle = Vehicle(registration="กข 1234", brand="Toyota", model="Commuter", color="Silver")
    booking = Booking(booking_ref=booking_ref, passenger_name="Jane Doe")
    session.add_all([driver, vehicle, booking])
    await session.flush()

    assignment = DriverVehicleAssignment(
        booking_ref=booking_ref,
        driver_id=driver.id,
        vehicle_id=vehicle.id
    )
    session.add(assignment)
    await session.commit()
    return assignment


async def seed_token(session, token="T1", status=TokenStatus.PENDING, booking_ref="HBEDS-25077304", **kwargs):
    """A tracking token (plus its assignment) in the given status."""
    assignment = await seed_assignment(session, booking_ref=booking_ref, **kwargs)
    tracking_token = TrackingToken(
        token=token,
        booking_ref=assignment.booking_ref,
        driver_id=assignment.driver_id,
        vehicle_id=assignment.vehicle_id,
        assignment_id=assignment.id,
        vehicle_identifier="VEH-001",
        status=status,
        tracking_interval=30,
        total_locations_sent=0
    )
    session.add(tracking_token)
    await session.commit()
    return tracking_token


async def count_samples(session_factory, token_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(LocationSample.id)).where(LocationSample.token_id == token_id)
        )
        return result.scalar_one()


async def reload_token(session_factory, token):
    async with session_factory() as session:
        result = await session.execute(select(TrackingToken).where(TrackingToken.token == token))
        return result.scalar_one()
