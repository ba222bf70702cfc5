"""Application configuration using pydantic-settings."""

import json
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from api.exceptions import ConfigurationError

# Tolerance when checking that score weights add up to 1.0
WEIGHT_SUM_TOLERANCE = 1e-6

PROVIDER_NAMES = ("openai", "anthropic", "google", "perplexity")


class AmbiguityPolicy(StrEnum):
    """How the knowledge graph handles a name matching several entities."""

    LONGEST_MATCH = "longest_match"
    REQUIRE_CONFIRMATION = "require_confirmation"


class ProviderSettings(BaseModel):
    """Per-provider settings."""

    # False switches the provider off. Otherwise it is enabled once it has an API key
    enabled: bool | None = None
    api_key: str = ""
    daily_budget: float = Field(default=5.0, ge=0)
    model: str | None = None


class ProvidersSettings(BaseModel):
    """Settings for every supported answer provider."""

    openai: ProviderSettings = Field(default_factory=ProviderSettings)
    anthropic: ProviderSettings = Field(default_factory=ProviderSettings)
    google: ProviderSettings = Field(default_factory=ProviderSettings)
    perplexity: ProviderSettings = Field(default_factory=ProviderSettings)


class ScoringSettings(BaseModel):
    """Composite score weights and citation validation limits."""

    structural_weight: float = 0.2
    citation_weight: float = 0.5
    competitive_weight: float = 0.3
    auto_validate: bool = True
    max_probe_queries: int = Field(default=5, ge=1)
    max_validation_providers: int = Field(default=3, ge=1)

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> "ScoringSettings":
        total = self.structural_weight + self.citation_weight + self.competitive_weight
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Score weights must sum to 1.0, got {total:.4f}")
        return self


class MonitoringSettings(BaseModel):
    """Batch probing and scheduling settings."""

    default_frequency: Literal["daily", "weekly", "monthly"] = "weekly"
    batch_size: int = Field(default=20, ge=1)
    schedule_hour: int = Field(default=9, ge=0, le=23)
    # Probes for the configured brand job, expanded into best-of, comparison
    # and recommendation queries
    keywords: list[str] = Field(default_factory=list)


class AlertSettings(BaseModel):
    """Alert rules run after monitoring batches."""

    enabled: bool = True
    citation_lost_threshold: int = Field(default=3, ge=1)  # Consecutive missed runs
    sentiment_drop_threshold: float = Field(default=30.0, ge=0)  # Percent negative
    competitor_surge_threshold: float = Field(default=20.0, ge=0)  # Percentage points
    cost_spike_threshold: float = Field(default=10.0, ge=0)  # USD per day


class GraphSettings(BaseModel):
    """Knowledge graph backend settings."""

    backend: Literal["memory", "neo4j"] = "memory"
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = ""
    ambiguity_policy: AmbiguityPolicy = AmbiguityPolicy.LONGEST_MATCH


class GeneralSettings(BaseModel):
    """The brand monitored by the scheduled job created at startup."""

    brand_name: str = ""
    brand_domain: str = ""
    competitors: list[str] = Field(default_factory=list)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["development", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Flat provider keys (OPENAI_API_KEY etc.), used when the nested key is empty
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    google_api_key: str | None = None
    perplexity_api_key: str | None = None

    # Transport
    request_timeout_seconds: float = 60.0

    # Optional JSON file with overrides merged on top of the environment
    settings_file: str | None = None

    providers: ProvidersSettings = Field(default_factory=ProvidersSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    general: GeneralSettings = Field(default_factory=GeneralSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.env == "production"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"

    def provider_settings(self, name: str) -> ProviderSettings:
        """Get the nested settings block for a provider."""
        if name not in PROVIDER_NAMES:
            raise ConfigurationError(f"Unknown provider: {name}")
        settings: ProviderSettings = getattr(self.providers, name)
        return settings

    def provider_api_key(self, name: str) -> str:
        """Get a provider API key: nested settings first, then the flat env key."""
        nested = self.provider_settings(name).api_key
        if nested:
            return nested
        return getattr(self, f"{name}_api_key") or ""

    def enabled_providers(self) -> list[str]:
        """
        Providers that are not switched off and have an API key.

        ``enabled=True`` without a key does not enable a provider.
        """
        enabled = []
        for name in PROVIDER_NAMES:
            flag = self.provider_settings(name).enabled
            if flag is False:
                continue
            if self.provider_api_key(name):
                enabled.append(name)
        return enabled


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_settings(base: Settings, overrides: dict[str, Any]) -> Settings:
    """
    Merge an override mapping on top of existing settings.

    Nested sections merge key by key, scalars and lists are replaced, and
    None values in the overrides are ignored. The result is validated again,
    so an override that breaks an invariant (e.g. weights not summing to 1.0)
    raises ConfigurationError.
    """
    merged = _deep_merge(base.model_dump(), overrides)
    try:
        return type(base).model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings override: {e}") from e


def load_settings_overrides(path: str | Path) -> dict[str, Any]:
    """Read a JSON override file. A missing file means no overrides."""
    file_path = Path(path)
    if not file_path.exists():
        return {}
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read settings file {file_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {file_path} must contain a JSON object")
    return data


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    if settings.settings_file:
        overrides = load_settings_overrides(settings.settings_file)
        if overrides:
            settings = merge_settings(settings, overrides)
    return settings
