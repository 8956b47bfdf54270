"""
Partner HTTP client initialization and connection management.

One pooled httpx client is shared by all requests; the environment profile
is chosen per call, never stored on the client.
"""

import httpx
from backend.app.core.config import PartnerEnvironment, PartnerProfile, settings
from backend.app.services.partner_sync import PartnerSyncClient


# Create async HTTP client
partner_http_client = httpx.AsyncClient(follow_redirects=True)


async def get_partner_client() -> PartnerSyncClient:
    """
    Get the partner sync client.

    Used as a FastAPI dependency; tests override it with a stubbed transport.
    """
    return PartnerSyncClient(partner_http_client)


def profile_dependency(environment: PartnerEnvironment):
    """Build a dependency that yields the profile for a fixed environment."""

    async def get_partner_profile() -> PartnerProfile:
        return settings.partner_profile(environment)

    return get_partner_profile


async def close_partner_client() -> None:
    """Release pooled partner connections on shutdown."""
    await partner_http_client.aclose()
