"""
Partner platform sync client.

Stateless adapter for the two outbound calls the tracking core makes:
the one-time driver/vehicle descriptor push and the per-ping location push.
Every call is bounded by a timeout and classified into a SyncOutcome;
nothing here retries and nothing here raises on delivery failure.
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import BaseModel

from backend.app.core.config import PartnerProfile, settings
from backend.app.core.exceptions import ErrorKind
from backend.app.models.tracking_enums import TrackingStatus

logger = logging.getLogger("transfer_tracking.partner_sync")

SUCCESS_CODES = frozenset({200, 201, 204})

CONTACT_METHODS = ["VOICE", "SMS", "WHATSAPP"]


class SyncOutcome(BaseModel):
    """Classified result of one partner call."""
    success: bool
    http_code: Optional[int] = None
    error: Optional[str] = None
    response_text: Optional[str] = None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return None if self.success else ErrorKind.DELIVERY_FAILURE

    def response_body(self) -> Any:
        """Partner response as JSON when it parses, raw text otherwise."""
        if not self.response_text:
            return None
        try:
            return json.loads(self.response_text)
        except ValueError:
            return self.response_text

    def diagnostic(self) -> str:
        """Text stored on the sample row."""
        return self.error or self.response_text or "No response"


class VehicleDescriptor(BaseModel):
    """Driver and vehicle details shown to the end customer."""
    driver_name: str
    driver_phone: str
    license_number: Optional[str] = None
    brand: str
    model: str
    color: Optional[str] = None
    registration: str
    description: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        driver = {
            "name": self.driver_name,
            "phoneNumber": self.driver_phone,
            "preferredContactMethod": "VOICE",
            "contactMethods": list(CONTACT_METHODS),
        }
        if self.license_number:
            driver["licenseNumber"] = self.license_number

        return {
            "driver": driver,
            "vehicle": {
                "brand": self.brand,
                "model": self.model,
                "color": self.color or "Unknown",
                "registration": self.registration,
                "description": self.description or "",
            },
        }


class LocationReport(BaseModel):
    """One position as reported to the partner."""
    latitude: float
    longitude: float
    status: TrackingStatus
    tracked_at: datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            "timestamp": format_partner_timestamp(self.tracked_at),
            "location": {"lat": self.latitude, "lng": self.longitude},
            "status": self.status.value,
        }


def format_partner_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with an explicit +00:00 offset, second precision."""
    if value.tzinfo is None:
        # Naive values are stored UTC
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S") + "+00:00"


class PartnerSync(Protocol):
    """What the tracking services need from a partner dispatcher."""

    async def push_vehicle_descriptor(
        self,
        booking_ref: str,
        vehicle_identifier: str,
        descriptor: VehicleDescriptor,
        profile: PartnerProfile
    ) -> SyncOutcome:
        ...

    async def push_location(
        self,
        booking_ref: str,
        vehicle_identifier: str,
        report: LocationReport,
        profile: PartnerProfile
    ) -> SyncOutcome:
        ...


class PartnerSyncClient:
    """
    httpx-backed PartnerSync.

    The profile is passed on every call so production and staging traffic
    can never be mixed by shared client state.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        location_timeout: float = None,
        vehicle_timeout: float = None
    ):
        self.http_client = http_client
        if location_timeout is None:
            location_timeout = settings.partner_location_timeout_seconds
        if vehicle_timeout is None:
            vehicle_timeout = settings.partner_vehicle_timeout_seconds
        self.location_timeout = location_timeout
        self.vehicle_timeout = vehicle_timeout

    @staticmethod
    def headers(profile: PartnerProfile) -> Dict[str, str]:
        return {
            "API_KEY": profile.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "VERSION": profile.version,
        }

    @staticmethod
    def vehicle_url(profile: PartnerProfile, booking_ref: str, vehicle_identifier: str) -> str:
        return f"{profile.endpoint.rstrip('/')}/bookings/{booking_ref}/vehicles/{vehicle_identifier}"

    async def push_vehicle_descriptor(
        self,
        booking_ref: str,
        vehicle_identifier: str,
        descriptor: VehicleDescriptor,
        profile: PartnerProfile
    ) -> SyncOutcome:
        """PUT the driver/vehicle descriptor for a booking."""
        url = self.vehicle_url(profile, booking_ref, vehicle_identifier)
        return await self._send("PUT", url, descriptor.to_payload(), profile, self.vehicle_timeout)

    async def push_location(
        self,
        booking_ref: str,
        vehicle_identifier: str,
        report: LocationReport,
        profile: PartnerProfile
    ) -> SyncOutcome:
        """POST one location report for a booking's vehicle."""
        url = self.vehicle_url(profile, booking_ref, vehicle_identifier) + "/location"
        return await self._send("POST", url, report.to_payload(), profile, self.location_timeout)

    async def _send(
        self,
        method: str,
        url: str,
        payload: Dict[str, Any],
        profile: PartnerProfile,
        timeout: float
    ) -> SyncOutcome:
        log_data = {
            "method": method,
            "url": url,
            "environment": profile.environment.value,
        }
        started = time.perf_counter()

        try:
            response = await self.http_client.request(
                method,
                url,
                json=payload,
                headers=self.headers(profile),
                timeout=timeout,
            )
        except httpx.TimeoutException:
            log_data["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            logger.warning("Partner call timed out", extra=log_data)
            return SyncOutcome(success=False, error=f"transport error: timed out after {timeout:g}s")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            log_data["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            log_data["error_type"] = type(exc).__name__
            logger.warning("Partner call failed", extra=log_data)
            return SyncOutcome(success=False, error=f"transport error: {type(exc).__name__}")

        log_data["status_code"] = response.status_code
        log_data["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        body = response.text

        if response.status_code in SUCCESS_CODES:
            logger.info("Partner call delivered", extra=log_data)
            return SyncOutcome(success=True, http_code=response.status_code, response_text=body or None)

        logger.warning("Partner call rejected", extra=log_data)
        return SyncOutcome(
            success=False,
            http_code=response.status_code,
            error=f"HTTP {response.status_code}: {body}",
            response_text=body or None,
        )
