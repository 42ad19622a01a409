"""
Configuration management and loading.

Handles the YAML config file: display settings, the provider list and
pricing overrides.
"""

import os
from dataclasses import dataclass, field, replace
from decimal import InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..core.pricing import PRICING_TABLE, ModelPricing, PricingTable, model_pricing
from ..providers.base import Provider

CONFIG_ENV = "AIT_CONFIG"
VALID_FORMATS = ("text", "json")
VALID_COLORS = ("auto", "always", "never")


class ConfigError(ValueError):
    """Raised when the config file cannot be read or is invalid."""


@dataclass(frozen=True)
class Settings:
    """Output and fetch settings."""
    default_format: str = "text"
    color: str = "auto"
    timeout_seconds: float = 15.0
    cost_days: int = 30


@dataclass(frozen=True)
class ProviderConfig:
    """One provider entry of the config file."""
    id: str
    enabled: bool = True
    api_key: Optional[str] = None

    def __post_init__(self):
        """Validate provider id is not empty."""
        if not self.id:
            raise ValueError("provider id cannot be empty")

    @property
    def provider(self) -> Optional[Provider]:
        return Provider.from_id(self.id)


def _default_providers() -> Tuple[ProviderConfig, ...]:
    return (
        ProviderConfig("claude", enabled=True),
        ProviderConfig("codex", enabled=True),
        ProviderConfig("copilot", enabled=False),
        ProviderConfig("openrouter", enabled=False),
    )


@dataclass(frozen=True)
class AppConfig:
    """Complete application configuration."""
    settings: Settings = field(default_factory=Settings)
    providers: Tuple[ProviderConfig, ...] = field(default_factory=_default_providers)
    pricing: Dict[str, ModelPricing] = field(default_factory=dict)

    def validate(self) -> List[str]:
        """Return semantic problems; an empty list means the config is usable."""
        issues = []
        if self.settings.default_format not in VALID_FORMATS:
            issues.append(
                f"settings.default_format must be one of {list(VALID_FORMATS)}, "
                f"got '{self.settings.default_format}'"
            )
        if self.settings.color not in VALID_COLORS:
            issues.append(f"settings.color must be one of {list(VALID_COLORS)}, got '{self.settings.color}'")
        if self.settings.timeout_seconds <= 0:
            issues.append("settings.timeout_seconds must be > 0")
        if self.settings.cost_days <= 0:
            issues.append("settings.cost_days must be > 0")

        seen = set()
        for entry in self.providers:
            provider = entry.provider
            if provider is None:
                issues.append(f"Unknown provider id: '{entry.id}'")
                continue
            if provider in seen:
                issues.append(f"Duplicate provider entry: '{entry.id}'")
            seen.add(provider)
        return issues

    def enabled_providers(self) -> List[Provider]:
        """Enabled, known providers in config order."""
        providers: List[Provider] = []
        for entry in self.providers:
            provider = entry.provider
            if entry.enabled and provider is not None and provider not in providers:
                providers.append(provider)
        return providers

    def with_provider_enabled(self, provider_id: str, enabled: bool) -> "AppConfig":
        """Return a copy with one provider switched on or off, adding it if absent."""
        provider = Provider.from_id(provider_id)
        if provider is None:
            raise ConfigError(f"Unknown provider id: '{provider_id}'")
        entries = []
        found = False
        for entry in self.providers:
            if entry.provider is provider:
                entries.append(replace(entry, enabled=enabled))
                found = True
            else:
                entries.append(entry)
        if not found:
            entries.append(ProviderConfig(provider.id, enabled=enabled))
        return replace(self, providers=tuple(entries))

    def api_key_for(self, provider: Provider) -> Optional[str]:
        for entry in self.providers:
            if entry.provider is provider and entry.api_key:
                return entry.api_key
        return None

    def api_keys(self) -> Dict[Provider, str]:
        keys = {}
        for entry in self.providers:
            if entry.provider is not None and entry.api_key:
                keys.setdefault(entry.provider, entry.api_key)
        return keys

    def pricing_table(self, base: PricingTable = PRICING_TABLE) -> PricingTable:
        return base.with_overrides(self.pricing) if self.pricing else base

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "settings": {
                "default_format": self.settings.default_format,
                "color": self.settings.color,
                "timeout_seconds": self.settings.timeout_seconds,
                "cost_days": self.settings.cost_days,
            },
            "providers": [],
        }
        for entry in self.providers:
            item: Dict[str, Any] = {"id": entry.id, "enabled": entry.enabled}
            if entry.api_key:
                item["api_key"] = entry.api_key
            data["providers"].append(item)
        if self.pricing:
            data["pricing"] = {
                model: {
                    "input": str(p.input_per_million),
                    "output": str(p.output_per_million),
                    "cache_read": str(p.cache_read_per_million),
                    "cache_write": str(p.cache_write_per_million),
                }
                for model, p in sorted(self.pricing.items())
            }
        return data


def config_path() -> Path:
    """Return the config file path, honouring AIT_CONFIG and XDG_CONFIG_HOME."""
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override)
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return Path(config_home) / "ait" / "config.yaml"


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load and validate the configuration file.

    Unknown keys and wrongly typed values are rejected rather than ignored,
    so a typo never silently falls back to a default.

    Args:
        path: Config file path (defaults to ``config_path()``)

    Returns:
        AppConfig; defaults when the file does not exist

    Raises:
        ConfigError: If the file is unreadable, not valid YAML or malformed
    """
    config_file = Path(path) if path is not None else config_path()
    if not config_file.exists():
        return AppConfig()

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {config_file}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_file}: {e}")

    if raw_config is None:
        return AppConfig()
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration file must contain a mapping")

    allowed_top_keys = {"settings", "providers", "pricing"}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ConfigError(f"Unknown configuration keys: {sorted(unknown_keys)}")

    settings = _parse_settings(raw_config.get("settings") or {})

    if "providers" in raw_config:
        providers_data = raw_config["providers"] or []
        if not isinstance(providers_data, list):
            raise ConfigError("'providers' must be a list")
        providers = tuple(
            _parse_provider(item, f"providers[{index}]") for index, item in enumerate(providers_data)
        )
    else:
        providers = _default_providers()

    pricing_data = raw_config.get("pricing") or {}
    if not isinstance(pricing_data, dict):
        raise ConfigError("'pricing' must be a dictionary")
    pricing = {str(model): _parse_pricing(data, f"pricing.{model}") for model, data in pricing_data.items()}

    return AppConfig(settings=settings, providers=providers, pricing=pricing)


def _parse_settings(data: Any) -> Settings:
    """Parse and validate the settings section.

    Raises:
        ConfigError: If the section is malformed
    """
    if not isinstance(data, dict):
        raise ConfigError("'settings' must be a dictionary")

    allowed_keys = {"default_format", "color", "timeout_seconds", "cost_days"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigError(f"Unknown settings keys: {sorted(unknown_keys)}")

    defaults = Settings()
    default_format = data.get("default_format", defaults.default_format)
    color = data.get("color", defaults.color)
    if not isinstance(default_format, str):
        raise ConfigError("'default_format' in settings must be a string")
    if not isinstance(color, str):
        raise ConfigError("'color' in settings must be a string")

    timeout = data.get("timeout_seconds", defaults.timeout_seconds)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ConfigError("'timeout_seconds' in settings must be a number")

    cost_days = data.get("cost_days", defaults.cost_days)
    if isinstance(cost_days, bool) or not isinstance(cost_days, int):
        raise ConfigError("'cost_days' in settings must be an integer")

    return Settings(
        default_format=default_format.lower(),
        color=color.lower(),
        timeout_seconds=float(timeout),
        cost_days=cost_days,
    )


def _parse_provider(data: Any, path: str) -> ProviderConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a dictionary")

    allowed_keys = {"id", "enabled", "api_key"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {sorted(unknown_keys)}")

    provider_id = data.get("id")
    if not isinstance(provider_id, str) or not provider_id.strip():
        raise ConfigError(f"Missing required 'id' in {path}")

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError(f"'enabled' in {path} must be true or false")

    api_key = data.get("api_key")
    if api_key is not None and not isinstance(api_key, str):
        raise ConfigError(f"'api_key' in {path} must be a string")

    return ProviderConfig(id=provider_id.strip().lower(), enabled=enabled, api_key=api_key or None)


def _parse_pricing(data: Any, path: str) -> ModelPricing:
    """Parse one pricing override (USD per million tokens)."""
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must be a dictionary")

    allowed_keys = {"input", "output", "cache_read", "cache_write"}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {sorted(unknown_keys)}")
    for required in ("input", "output"):
        if required not in data:
            raise ConfigError(f"Missing required '{required}' in {path}")

    try:
        return model_pricing(
            data["input"],
            data["output"],
            data.get("cache_read", 0),
            data.get("cache_write", 0),
        )
    except (InvalidOperation, TypeError, ValueError):
        raise ConfigError(f"Rates in {path} must be non-negative numbers")


def save_config(config: AppConfig, path: Optional[Union[str, Path]] = None) -> Path:
    """Write the configuration as YAML, creating parent directories.

    Returns:
        Path the file was written to
    """
    config_file = Path(path) if path is not None else config_path()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w", encoding="utf-8") as f:
        yaml.safe_dump(config.to_dict(), f, sort_keys=False)
    return config_file


def generate_config(enabled_ids: List[str]) -> AppConfig:
    """Config listing every non-stub provider, enabling only ``enabled_ids``."""
    enabled = {Provider.from_id(i) for i in enabled_ids}
    return AppConfig(
        providers=tuple(
            ProviderConfig(p.id, enabled=p in enabled)
            for p in Provider
            if not p.is_stub
        )
    )
