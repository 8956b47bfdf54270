"""
Database seeding script for a demo tracking job.

Creates a driver, vehicle, booking, assignment and a pending tracking token
so the device endpoints can be exercised against a fresh database.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.core.config import settings
from backend.app.models.booking import Booking, DriverVehicleAssignment
from backend.app.models.driver import Driver, Vehicle
from backend.app.models.tracking_token import TrackingToken
from backend.app.models.audit_log import AuditLog  # noqa: F401
from backend.app.models.location_sample import LocationSample  # noqa: F401
from backend.app.services.tracking_tokens import create_token
from sqlalchemy import select

DEMO_BOOKING_REF = "DEMO-0001"


async def seed_tracking_demo():
    """
    Seed one trackable transfer job.

    Creates:
    - 1 driver and 1 vehicle
    - 1 booking with its assignment
    - 1 pending tracking token
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting tracking demo seeding...")

        result = await db.execute(
            select(TrackingToken).where(TrackingToken.booking_ref == DEMO_BOOKING_REF)
        )
        existing = result.scalars().first()

        if existing:
            print(f"ℹ️  Demo job already exists, token: {existing.token}")
            return

        driver = Driver(name="Demo Driver", phone_number="+66800000000", license_number="DEMO-LIC-1")
        vehicle = Vehicle(registration="DEMO 1234", brand="Toyota", model="Commuter", color="White")
        booking = Booking(booking_ref=DEMO_BOOKING_REF, passenger_name="Demo Passenger")
        db.add_all([driver, vehicle, booking])
        await db.flush()

        assignment = DriverVehicleAssignment(
            booking_ref=DEMO_BOOKING_REF,
            driver_id=driver.id,
            vehicle_id=vehicle.id
        )
        db.add(assignment)
        await db.flush()

        tracking_token = await create_token(
            db,
            booking_ref=DEMO_BOOKING_REF,
            driver_id=driver.id,
            vehicle_id=vehicle.id,
            assignment_id=assignment.id,
            vehicle_identifier=f"VEH-{vehicle.id}",
            tracking_interval=settings.tracking_default_interval_seconds
        )

        await db.commit()

        print("\n🎉 Tracking demo seeding completed successfully!")
        print(f"\n  - Booking: {DEMO_BOOKING_REF}")
        print(f"  - Token:   {tracking_token.token}")
        print("\nStart the job with POST /v1/tracking/staging/start")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_tracking_demo())
