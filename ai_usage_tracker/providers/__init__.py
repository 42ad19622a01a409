"""
Provider integrations for AI Usage Tracker.

Defines the closed set of providers, their snapshot models and the
fetch clients bound to each of them.
"""

from .base import (
    CreditsSnapshot,
    MalformedResponseError,
    MissingAuthError,
    Provider,
    ProviderFetchError,
    ProviderIdentity,
    ProviderNetworkError,
    RateWindow,
    StatusIndicator,
    StatusInfo,
    UnsupportedProviderError,
    UsageSnapshot,
)

__all__ = [
    "CreditsSnapshot",
    "MalformedResponseError",
    "MissingAuthError",
    "Provider",
    "ProviderFetchError",
    "ProviderIdentity",
    "ProviderNetworkError",
    "RateWindow",
    "StatusIndicator",
    "StatusInfo",
    "UnsupportedProviderError",
    "UsageSnapshot",
]
