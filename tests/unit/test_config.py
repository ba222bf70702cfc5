"""Tests for application settings."""

import json
from pathlib import Path

import pytest

from api.config import (
    AmbiguityPolicy,
    ScoringSettings,
    Settings,
    load_settings_overrides,
    merge_settings,
)
from api.exceptions import ConfigurationError


class TestScoringSettings:
    """Tests for score weight validation."""

    def test_defaults(self) -> None:
        """Default weights are 20/50/30."""
        scoring = ScoringSettings()

        assert (scoring.structural_weight, scoring.citation_weight, scoring.competitive_weight) == (
            0.2,
            0.5,
            0.3,
        )

    def test_weights_must_sum_to_one(self) -> None:
        """Weights that do not add up are rejected."""
        with pytest.raises(ValueError):
            ScoringSettings(structural_weight=0.5, citation_weight=0.5, competitive_weight=0.5)


class TestProviders:
    """Tests for provider enablement."""

    def test_no_keys_no_providers(self, settings: Settings) -> None:
        """Without API keys nothing is enabled."""
        assert settings.enabled_providers() == []

    def test_flat_key_enables_provider(self, settings: Settings) -> None:
        """A flat API key enables its provider."""
        settings.perplexity_api_key = "pplx"

        assert settings.enabled_providers() == ["perplexity"]
        assert settings.provider_api_key("perplexity") == "pplx"

    def test_nested_key_wins(self, settings: Settings) -> None:
        """The nested key takes precedence over the flat key."""
        settings.openai_api_key = "flat"
        settings.providers.openai.api_key = "nested"

        assert settings.provider_api_key("openai") == "nested"

    def test_explicitly_disabled(self, settings: Settings) -> None:
        """A provider switched off stays off even with a key."""
        settings.openai_api_key = "sk"
        settings.providers.openai.enabled = False

        assert settings.enabled_providers() == []

    def test_enabled_flag_needs_key(self, settings: Settings) -> None:
        """Switching a provider on without an API key does not enable it."""
        settings.providers.google.enabled = True

        assert settings.enabled_providers() == []

        settings.google_api_key = "gk"
        assert settings.enabled_providers() == ["google"]

    def test_unknown_provider(self, settings: Settings) -> None:
        """Unknown provider names are a configuration error."""
        with pytest.raises(ConfigurationError):
            settings.provider_settings("bing")

    def test_nested_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested sections load from double-underscore environment variables."""
        monkeypatch.setenv("PROVIDERS__ANTHROPIC__API_KEY", "ak")
        monkeypatch.setenv("GRAPH__AMBIGUITY_POLICY", "require_confirmation")

        settings = Settings(_env_file=None)

        assert settings.enabled_providers() == ["anthropic"]
        assert settings.graph.ambiguity_policy == AmbiguityPolicy.REQUIRE_CONFIRMATION


class TestSections:
    """Tests for the alert and general sections."""

    def test_alert_defaults(self, settings: Settings) -> None:
        """Alert thresholds default to 3 runs, 30%, 20 points and 10 USD."""
        alerts = settings.alerts

        assert alerts.enabled is True
        assert alerts.citation_lost_threshold == 3
        assert alerts.sentiment_drop_threshold == 30.0
        assert alerts.competitor_surge_threshold == 20.0
        assert alerts.cost_spike_threshold == 10.0

    def test_general_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The configured brand and its keywords load from the environment."""
        monkeypatch.setenv("GENERAL__BRAND_NAME", "HubSpot")
        monkeypatch.setenv("GENERAL__COMPETITORS", '["Salesforce", "Pipedrive"]')
        monkeypatch.setenv("MONITORING__KEYWORDS", '["crm"]')

        settings = Settings(_env_file=None)

        assert settings.general.brand_name == "HubSpot"
        assert settings.general.competitors == ["Salesforce", "Pipedrive"]
        assert settings.monitoring.keywords == ["crm"]


class TestMergeSettings:
    """Tests for merge_settings and override files."""

    def test_nested_merge(self, settings: Settings) -> None:
        """Nested keys merge; None values are ignored."""
        merged = merge_settings(
            settings,
            {"monitoring": {"batch_size": 5}, "log_level": None, "graph": {"backend": "neo4j"}},
        )

        assert merged.monitoring.batch_size == 5
        assert merged.monitoring.default_frequency == "weekly"
        assert merged.log_level == settings.log_level
        assert merged.graph.backend == "neo4j"

    def test_invalid_override_raises(self, settings: Settings) -> None:
        """Overrides that break the weights invariant are rejected."""
        with pytest.raises(ConfigurationError):
            merge_settings(settings, {"scoring": {"structural_weight": 0.9}})

    def test_load_overrides_file(self, tmp_path: Path) -> None:
        """Override files are JSON objects."""
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"general": {"brand_name": "HubSpot"}}))

        assert load_settings_overrides(path) == {"general": {"brand_name": "HubSpot"}}

    def test_missing_file_means_no_overrides(self, tmp_path: Path) -> None:
        """A missing file is not an error."""
        assert load_settings_overrides(tmp_path / "missing.json") == {}

    def test_non_object_file(self, tmp_path: Path) -> None:
        """A JSON array is rejected."""
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigurationError):
            load_settings_overrides(path)
