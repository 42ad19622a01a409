"""
Unit tests for configuration loading and validation.

Tests defaults, strict key checking and provider list editing.
"""

import os
import tempfile
from decimal import Decimal

import pytest
import yaml

from ai_usage_tracker.config.loader import (
    AppConfig,
    ConfigError,
    ProviderConfig,
    Settings,
    config_path,
    generate_config,
    load_config,
    save_config,
)
from ai_usage_tracker.providers.base import Provider


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data: dict, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_data = {
            "settings": {
                "default_format": "JSON",
                "color": "never",
                "timeout_seconds": 5,
                "cost_days": 7,
            },
            "providers": [
                {"id": "claude", "enabled": True},
                {"id": "OpenRouter", "enabled": True, "api_key": "sk-or-test"},
                {"id": "copilot", "enabled": False},
            ],
            "pricing": {
                "my-model": {"input": 1.5, "output": 6, "cache_read": "0.15"},
            },
        }

        config = load_config(self._write_config(config_data))

        assert config.settings == Settings("json", "never", 5.0, 7)
        assert config.enabled_providers() == [Provider.CLAUDE, Provider.OPENROUTER]
        assert config.api_key_for(Provider.OPENROUTER) == "sk-or-test"
        assert config.api_keys() == {Provider.OPENROUTER: "sk-or-test"}
        pricing = config.pricing["my-model"]
        assert pricing.input_per_million == Decimal("1.5")
        assert pricing.cache_read_per_million == Decimal("0.15")
        assert pricing.cache_write_per_million == Decimal("0")
        assert config.validate() == []

    def test_missing_file_returns_defaults(self):
        """A missing config file is not an error."""
        config = load_config(os.path.join(self.temp_dir, "nonexistent.yaml"))
        assert config == AppConfig()
        assert config.enabled_providers() == [Provider.CLAUDE, Provider.CODEX]
        assert config.settings.cost_days == 30

    def test_empty_file_returns_defaults(self):
        """An empty file behaves like a missing one."""
        path = os.path.join(self.temp_dir, "empty.yaml")
        with open(path, 'w') as f:
            f.write("")
        assert load_config(path) == AppConfig()

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises ConfigError."""
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("invalid: yaml: content: [")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_path)

    def test_unknown_top_level_key_raises_error(self):
        """Test that unknown top-level keys are rejected."""
        config_path = self._write_config({"settings": {}, "budget": {"daily": 1}})
        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            load_config(config_path)

    def test_unknown_settings_key_raises_error(self):
        """Test that a typo in settings is rejected."""
        config_path = self._write_config({"settings": {"timeout": 5}})
        with pytest.raises(ConfigError, match="Unknown settings keys"):
            load_config(config_path)

    def test_provider_without_id_raises_error(self):
        """Test that a provider entry needs an id."""
        config_path = self._write_config({"providers": [{"enabled": True}]})
        with pytest.raises(ConfigError, match="Missing required 'id'"):
            load_config(config_path)

    def test_provider_enabled_must_be_bool(self):
        """Test that enabled must be a boolean."""
        config_path = self._write_config({"providers": [{"id": "claude", "enabled": "yes"}]})
        with pytest.raises(ConfigError, match="must be true or false"):
            load_config(config_path)

    def test_providers_must_be_list(self):
        """Test that providers must be a list."""
        config_path = self._write_config({"providers": {"claude": True}})
        with pytest.raises(ConfigError, match="'providers' must be a list"):
            load_config(config_path)

    def test_negative_pricing_raises_error(self):
        """Test that negative rates are rejected."""
        config_path = self._write_config({"pricing": {"m": {"input": -1, "output": 2}}})
        with pytest.raises(ConfigError, match="non-negative"):
            load_config(config_path)

    def test_pricing_missing_output_raises_error(self):
        """Test that input and output rates are required."""
        config_path = self._write_config({"pricing": {"m": {"input": 1}}})
        with pytest.raises(ConfigError, match="Missing required 'output'"):
            load_config(config_path)

    def test_cost_days_must_be_integer(self):
        """Test that cost_days rejects floats."""
        config_path = self._write_config({"settings": {"cost_days": 1.5}})
        with pytest.raises(ConfigError, match="must be an integer"):
            load_config(config_path)


class TestConfigValidation:
    """Test semantic validation of loaded configs."""

    def test_unknown_provider_reported(self):
        """Unknown provider ids are reported and never enabled."""
        config = AppConfig(providers=(ProviderConfig("claude"), ProviderConfig("nope")))
        assert config.validate() == ["Unknown provider id: 'nope'"]
        assert config.enabled_providers() == [Provider.CLAUDE]

    def test_duplicate_provider_reported(self):
        """An alias and its id count as the same provider."""
        config = AppConfig(providers=(ProviderConfig("kimi_k2"), ProviderConfig("kimi-k2")))
        assert config.validate() == ["Duplicate provider entry: 'kimi-k2'"]
        assert config.enabled_providers() == [Provider.KIMI_K2]

    def test_bad_settings_reported(self):
        """Out-of-range settings are reported."""
        config = AppConfig(settings=Settings(default_format="xml", timeout_seconds=0))
        issues = config.validate()
        assert len(issues) == 2
        assert "default_format" in issues[0]
        assert "timeout_seconds" in issues[1]

    def test_empty_provider_id_rejected(self):
        """Verify ProviderConfig rejects an empty id."""
        with pytest.raises(ValueError):
            ProviderConfig("")


class TestConfigEditing:
    """Test provider toggling and writing configs."""

    def test_enable_existing_provider(self):
        """Enabling a listed provider flips its flag in place."""
        config = AppConfig().with_provider_enabled("copilot", True)
        assert config.enabled_providers() == [Provider.CLAUDE, Provider.CODEX, Provider.COPILOT]
        assert len(config.providers) == 4

    def test_enable_new_provider_appends(self):
        """Enabling an unlisted provider adds an entry."""
        config = AppConfig().with_provider_enabled("kimi-k2", True)
        assert config.providers[-1] == ProviderConfig("kimi_k2", enabled=True)

    def test_disable_provider(self):
        """Disabling keeps the entry but drops it from the enabled list."""
        config = AppConfig().with_provider_enabled("codex", False)
        assert config.enabled_providers() == [Provider.CLAUDE]

    def test_unknown_provider_raises(self):
        """Unknown ids cannot be toggled."""
        with pytest.raises(ConfigError):
            AppConfig().with_provider_enabled("nope", True)

    def test_save_and_reload(self, tmp_path):
        """A saved config loads back equal."""
        config = AppConfig(
            providers=(ProviderConfig("claude"), ProviderConfig("openrouter", api_key="k")),
            pricing={"m1": AppConfig().pricing_table().get_pricing("claude-sonnet-4-5")},
        )
        path = save_config(config, tmp_path / "nested" / "config.yaml")

        assert load_config(path) == config

    def test_pricing_table_overrides(self):
        """Config pricing is layered over the built-in table."""
        config = AppConfig(pricing={"m1": AppConfig().pricing_table().get_pricing("gpt-5")})
        table = config.pricing_table()
        assert table.is_priced("m1")
        assert table.is_priced("claude-sonnet-4-5")

    def test_generate_config(self):
        """Generated configs list real providers, enabling only the requested ones."""
        config = generate_config(["claude", "codex"])
        assert config.enabled_providers() == [Provider.CLAUDE, Provider.CODEX]
        assert all(not p.provider.is_stub for p in config.providers)

    def test_config_path_env_override(self, monkeypatch, tmp_path):
        """AIT_CONFIG wins over the XDG location."""
        monkeypatch.setenv("AIT_CONFIG", str(tmp_path / "c.yaml"))
        assert config_path() == tmp_path / "c.yaml"

    def test_config_path_xdg(self, monkeypatch, tmp_path):
        """Without an override the file lives under XDG_CONFIG_HOME."""
        monkeypatch.delenv("AIT_CONFIG", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert config_path() == tmp_path / "ait" / "config.yaml"
