"""
Pre-Deploy and Smoke Test Script.

Runs the application in-process against the configured database and
executes a smoke test on the staging mount:
1. Health Check
2. Start a seeded demo job
3. Send one location ping
4. Read the diagnostics report

Seed a job first with backend/seed_tracking_demo.py and pass its token:

    python scripts/validate_deployment.py <token>

Only staging partner traffic is generated.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi.testclient import TestClient
from backend.app.main import app


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def main(token: str):
    print("🚀 Starting Deployment Validation...")

    with TestClient(app) as client:
        # 1. Health Check
        print_step("PRE-DEPLOY", "Checking /health...")
        response = client.get("/health")
        if response.status_code != 200:
            fail(f"Health check failed: {response.status_code} {response.text}")
        success(f"Health: {response.json()}")

        # 2. Start
        print_step("SMOKE", "Starting demo job on staging...")
        response = client.post("/v1/tracking/staging/start", json={"token": token})
        if response.status_code != 200:
            fail(f"Start failed: {response.status_code} {response.text}")
        started = response.json()
        success(f"Job {started['status']} ({started['message']})")
        if started["vehicle_sync"] and not started["vehicle_sync"]["success"]:
            print(f"⚠️ Vehicle sync failed: {started['vehicle_sync']['error']}")

        # 3. Location ping
        print_step("SMOKE", "Sending location ping...")
        response = client.post("/v1/tracking/staging/location", json={
            "token": token,
            "latitude": 7.8804,
            "longitude": 98.3923,
            "accuracy": 10,
            "status": "BEFORE_PICKUP"
        })
        if response.status_code != 200:
            fail(f"Location ping failed: {response.status_code} {response.text}")
        ping = response.json()
        if not ping["location_saved"]:
            fail("Location was not stored")
        if ping["synced_to_partner"]:
            success(f"Location delivered, total sent: {ping['total_locations_sent']}")
        else:
            print(f"⚠️ Location stored but not delivered: {ping['sync_error']}")

        # 4. Diagnostics
        print_step("VERIFY", "Reading diagnostics...")
        response = client.get(f"/v1/tracking/tokens/{token}/diagnostics")
        if response.status_code != 200:
            fail(f"Diagnostics failed: {response.status_code} {response.text}")
        success(f"Sync stats: {response.json()['sync_stats']}")

    success("Deployment Validation Passed!")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        fail("usage: validate_deployment.py <tracking token>")
    main(sys.argv[1])
