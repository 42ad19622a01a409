"""
Provider definitions and snapshot models.

Every AI service the tracker knows about is a member of the closed
``Provider`` enum. Fetch clients return a ``UsageSnapshot`` (rate-limit
windows and account identity) plus an optional ``CreditsSnapshot``, or
raise one of the ``ProviderFetchError`` subclasses below.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


class ProviderFetchError(Exception):
    """Base class for classified provider fetch failures."""
    kind = "internal_error"


class MissingAuthError(ProviderFetchError):
    """Raised when no credentials are available for a provider."""
    kind = "missing_auth"


class ProviderNetworkError(ProviderFetchError):
    """Raised when the provider endpoint cannot be reached or returns an HTTP error."""
    kind = "network_error"


class MalformedResponseError(ProviderFetchError):
    """Raised when a provider response cannot be interpreted."""
    kind = "malformed_response"


class UnsupportedProviderError(ProviderFetchError):
    """Raised for providers without a fetch client."""
    kind = "unsupported"


class Provider(Enum):
    """Known AI service providers, in display order (supported first, stubs last)."""
    CLAUDE = "claude"
    CODEX = "codex"
    COPILOT = "copilot"
    GEMINI = "gemini"
    WARP = "warp"
    KIMI = "kimi"
    KIMI_K2 = "kimi_k2"
    OPENROUTER = "openrouter"
    MINIMAX = "minimax"
    ZAI = "zai"
    KIRO = "kiro"
    JETBRAINS = "jetbrains"
    ANTIGRAVITY = "antigravity"
    SYNTHETIC = "synthetic"
    CURSOR = "cursor"
    OLLAMA = "ollama"
    AUGMENT = "augment"
    OPENCODE = "opencode"
    FACTORY = "factory"
    AMP = "amp"
    VERTEX_AI = "vertex_ai"

    @classmethod
    def from_id(cls, provider_id: str) -> Optional["Provider"]:
        """Look up a provider by id or alias (case-insensitive)."""
        key = provider_id.strip().lower()
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return None

    @property
    def id(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES.get(self, self.value.capitalize())

    @property
    def session_label(self) -> str:
        return "Pro" if self is Provider.GEMINI else "Session"

    @property
    def weekly_label(self) -> str:
        return "Flash" if self is Provider.GEMINI else "Weekly"

    @property
    def tertiary_label(self) -> str:
        return "Sonnet" if self is Provider.CLAUDE else "Model"

    @property
    def status_page_url(self) -> Optional[str]:
        return _STATUS_PAGES.get(self)

    @property
    def is_stub(self) -> bool:
        return self in _STUBS

    @property
    def auth_hint(self) -> str:
        if self.is_stub:
            return "planned"
        return _AUTH_HINTS[self]


_ALIASES = {
    "kimi-k2": "kimi_k2",
    "kimik2": "kimi_k2",
    "vertex-ai": "vertex_ai",
    "vertexai": "vertex_ai",
    "vertex": "vertex_ai",
}

_DISPLAY_NAMES = {
    Provider.KIMI_K2: "Kimi K2",
    Provider.OPENROUTER: "OpenRouter",
    Provider.MINIMAX: "MiniMax",
    Provider.JETBRAINS: "JetBrains",
    Provider.OPENCODE: "OpenCode",
    Provider.VERTEX_AI: "Vertex AI",
}

_STATUS_PAGES = {
    Provider.CLAUDE: "https://status.anthropic.com",
    Provider.CODEX: "https://status.openai.com",
    Provider.COPILOT: "https://www.githubstatus.com",
}

_STUBS = frozenset({
    Provider.CURSOR,
    Provider.OLLAMA,
    Provider.AUGMENT,
    Provider.OPENCODE,
    Provider.FACTORY,
    Provider.AMP,
    Provider.VERTEX_AI,
})

_AUTH_HINTS = {
    Provider.CLAUDE: "auto-detected (~/.claude/)",
    Provider.CODEX: "auto-detected (~/.codex/)",
    Provider.COPILOT: "GITHUB_TOKEN or gh CLI",
    Provider.GEMINI: "auto-detected (~/.gemini/)",
    Provider.WARP: "WARP_TOKEN",
    Provider.KIMI: "KIMI_TOKEN",
    Provider.KIMI_K2: "KIMI_K2_API_KEY",
    Provider.OPENROUTER: "OPENROUTER_API_KEY",
    Provider.MINIMAX: "MINIMAX_API_TOKEN",
    Provider.ZAI: "Z_AI_API_KEY",
    Provider.KIRO: "kiro-cli",
    Provider.JETBRAINS: "IDE config files",
    Provider.ANTIGRAVITY: "language server process",
    Provider.SYNTHETIC: "SYNTHETIC_API_KEY",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class RateWindow:
    """One rate-limit window as reported by a provider."""
    used_percent: float
    window_minutes: int
    resets_at: Optional[datetime] = None
    reset_description: Optional[str] = None

    def __post_init__(self):
        """Validate window values."""
        if self.window_minutes < 0:
            raise ValueError("window_minutes cannot be negative")

    @property
    def remaining_percent(self) -> float:
        return max(0.0, 100.0 - self.used_percent)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "used_percent": self.used_percent,
            "window_minutes": self.window_minutes,
            "resets_at": _iso(self.resets_at),
            "reset_description": self.reset_description,
        }


@dataclass(frozen=True)
class ProviderIdentity:
    """Account identity attached to a usage snapshot."""
    email: Optional[str] = None
    organization: Optional[str] = None
    plan: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "organization": self.organization, "plan": self.plan}


@dataclass(frozen=True)
class CreditsSnapshot:
    """Credit balance of a prepaid account, in dollars."""
    remaining: float
    has_credits: bool
    unlimited: bool = False
    used: Optional[float] = None
    limit: Optional[float] = None
    currency: Optional[str] = None
    period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "remaining": self.remaining,
            "has_credits": self.has_credits,
            "unlimited": self.unlimited,
        }
        for name in ("used", "limit", "currency", "period"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


@dataclass(frozen=True)
class UsageSnapshot:
    """Live usage of one provider account at fetch time."""
    provider: Provider
    source: str
    primary: Optional[RateWindow] = None
    secondary: Optional[RateWindow] = None
    tertiary: Optional[RateWindow] = None
    identity: Optional[ProviderIdentity] = None

    def windows(self) -> List[RateWindow]:
        return [w for w in (self.primary, self.secondary, self.tertiary) if w is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider.id,
            "source": self.source,
            "primary": self.primary.to_dict() if self.primary else None,
            "secondary": self.secondary.to_dict() if self.secondary else None,
            "tertiary": self.tertiary.to_dict() if self.tertiary else None,
            "identity": self.identity.to_dict() if self.identity else None,
        }


class StatusIndicator(Enum):
    """Service health as reported by a status page."""
    OPERATIONAL = "operational"
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return {
            StatusIndicator.OPERATIONAL: "Operational",
            StatusIndicator.MINOR: "Minor Issue",
            StatusIndicator.MAJOR: "Major Issue",
            StatusIndicator.CRITICAL: "Critical",
            StatusIndicator.MAINTENANCE: "Maintenance",
            StatusIndicator.UNKNOWN: "Unknown",
        }[self]


@dataclass(frozen=True)
class StatusInfo:
    """Health status of a provider's service."""
    indicator: StatusIndicator
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"indicator": self.indicator.value, "description": self.description}


# What a provider fetch returns: live usage plus an optional credit balance
FetchOutcome = Tuple[UsageSnapshot, Optional[CreditsSnapshot]]
FetchFn = Callable[[], Awaitable[FetchOutcome]]
StatusFn = Callable[[], Awaitable[StatusInfo]]
