"""
Service health from statuspage.io.

Providers with a public status page expose ``/api/v2/status.json``; its
indicator is mapped onto StatusIndicator.
"""

from typing import Any, Optional

import httpx

from .base import MalformedResponseError, Provider, StatusIndicator, StatusInfo, UnsupportedProviderError
from .http import build_client, get_json

_INDICATORS = {
    "none": StatusIndicator.OPERATIONAL,
    "minor": StatusIndicator.MINOR,
    "major": StatusIndicator.MAJOR,
    "critical": StatusIndicator.CRITICAL,
    "maintenance": StatusIndicator.MAINTENANCE,
}


def parse_indicator(indicator: str) -> StatusIndicator:
    return _INDICATORS.get(indicator, StatusIndicator.UNKNOWN)


def parse_status(data: Any) -> StatusInfo:
    status = data.get("status") if isinstance(data, dict) else None
    if not isinstance(status, dict) or not isinstance(status.get("indicator"), str):
        raise MalformedResponseError("status page response has no status indicator")
    description = status.get("description")
    return StatusInfo(
        indicator=parse_indicator(status["indicator"]),
        description=description if isinstance(description, str) else None,
    )


async def fetch_status(provider: Provider, client: Optional[httpx.AsyncClient] = None) -> StatusInfo:
    """Fetch the current health status of a provider.

    Raises:
        UnsupportedProviderError: If the provider has no status page
    """
    base_url = provider.status_page_url
    if base_url is None:
        raise UnsupportedProviderError(f"{provider.display_name} has no status page")
    url = f"{base_url}/api/v2/status.json"
    if client is not None:
        return parse_status(await get_json(client, url))
    async with build_client() as own_client:
        return parse_status(await get_json(own_client, url))
