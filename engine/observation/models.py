"""Data models for the answer-engine layer."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class ProviderType(StrEnum):
    """Supported answer providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    PERPLEXITY = "perplexity"
    MOCK = "mock"


class ProviderErrorType(StrEnum):
    """Why a provider produced no result."""

    API_ERROR = "api_error"
    TIMEOUT = "timeout"
    EXCEPTION = "exception"
    BUDGET_VETO = "budget_veto"
    EMPTY_RESPONSE = "empty_response"


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class UsageStats:
    """Token usage and cost tracking."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost_usd: float = 0.0

    def add(self, other: "UsageStats") -> "UsageStats":
        """Add another UsageStats to this one."""
        return UsageStats(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
            estimated_cost_usd=self.estimated_cost_usd + other.estimated_cost_usd,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost_usd": round(self.estimated_cost_usd, 6),
        }


@dataclass
class ProviderError:
    """A provider call (or vetoed call) that produced no result."""

    provider: str
    error_type: str
    message: str
    retryable: bool = True
    query: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "error_type": self.error_type,
            "message": self.message,
            "retryable": self.retryable,
            "query": self.query,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AskOptions:
    """Generation options passed to a provider."""

    temperature: float = 0.3  # Low for consistency
    max_tokens: int = 1024
    system_prompt: str | None = None


@dataclass
class AnswerResponse:
    """Response from one answer-engine call."""

    provider: str
    model: str
    text: str
    raw_response: dict = field(default_factory=dict)

    # Metrics
    usage: UsageStats = field(default_factory=UsageStats)
    latency_ms: float = 0.0

    # Status
    success: bool = True
    error: ProviderError | None = None

    created_at: datetime = field(default_factory=utc_now)

    @property
    def tokens_in(self) -> int:
        return self.usage.prompt_tokens

    @property
    def tokens_out(self) -> int:
        return self.usage.completion_tokens

    @property
    def cost(self) -> float:
        return self.usage.estimated_cost_usd

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "provider": self.provider,
            "model": self.model,
            "text": self.text[:500] + "..." if len(self.text) > 500 else self.text,
            "usage": self.usage.to_dict(),
            "latency_ms": round(self.latency_ms, 2),
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "created_at": self.created_at.isoformat(),
        }
