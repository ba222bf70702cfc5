"""Answer providers - unified interface for answer-engine queries."""

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from api.config import Settings
from engine.observation.models import (
    AnswerResponse,
    AskOptions,
    ProviderError,
    ProviderErrorType,
    ProviderType,
    UsageStats,
)

logger = structlog.get_logger(__name__)

# Approximate pricing per 1M tokens (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4o": (2.5, 10.0),
    "gpt-4o-mini": (0.15, 0.6),
    # Anthropic
    "claude-3-5-sonnet-latest": (3.0, 15.0),
    "claude-3-5-haiku-latest": (0.8, 4.0),
    # Google
    "gemini-1.5-flash": (0.075, 0.3),
    "gemini-1.5-pro": (1.25, 5.0),
    # Perplexity
    "sonar": (1.0, 1.0),
    "sonar-pro": (3.0, 15.0),
}
DEFAULT_PRICING = (1.0, 3.0)

DEFAULT_MODELS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "gpt-4o-mini",
    ProviderType.ANTHROPIC: "claude-3-5-haiku-latest",
    ProviderType.GOOGLE: "gemini-1.5-flash",
    ProviderType.PERPLEXITY: "sonar",
    ProviderType.MOCK: "mock-model",
}


@dataclass
class ProviderConfig:
    """Configuration for an answer provider."""

    api_key: str = ""
    base_url: str = ""
    model: str = ""
    timeout_seconds: float = 60.0


def estimate_cost(model: str, usage: UsageStats) -> float:
    """Estimate cost in USD from the model price table."""
    input_price, output_price = MODEL_PRICING.get(model, DEFAULT_PRICING)
    return (usage.prompt_tokens / 1_000_000) * input_price + (
        usage.completion_tokens / 1_000_000
    ) * output_price


class AnswerProvider(ABC):
    """Abstract base class for answer providers."""

    provider_type: ProviderType

    def __init__(self, config: ProviderConfig | None = None):
        self.config = config or ProviderConfig()
        if not self.config.model:
            self.config.model = DEFAULT_MODELS[self.provider_type]

    @property
    def name(self) -> str:
        return self.provider_type.value

    @property
    def model(self) -> str:
        return self.config.model

    @abstractmethod
    async def ask(self, prompt: str, options: AskOptions | None = None) -> AnswerResponse:
        """Send one prompt and return the answer."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is available."""
        ...

    def _failure(
        self,
        error_type: str,
        message: str,
        latency_ms: float = 0.0,
        retryable: bool = True,
    ) -> AnswerResponse:
        return AnswerResponse(
            provider=self.name,
            model=self.model,
            text="",
            success=False,
            latency_ms=latency_ms,
            error=ProviderError(
                provider=self.name,
                error_type=error_type,
                message=message,
                retryable=retryable,
            ),
        )


class HTTPAnswerProvider(AnswerProvider):
    """Provider that talks to a JSON HTTP API.

    Subclasses build the request and parse the response body; transport
    failures, non-200 statuses and timeouts come back as unsuccessful
    responses instead of exceptions.
    """

    default_base_url: str = ""

    def __init__(self, config: ProviderConfig | None = None):
        super().__init__(config)
        if not self.config.base_url:
            self.config.base_url = self.default_base_url

    @abstractmethod
    def _build_request(
        self, prompt: str, options: AskOptions
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, payload)."""
        ...

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> tuple[str, UsageStats]:
        """Return (text, usage) from a successful response body."""
        ...

    async def ask(self, prompt: str, options: AskOptions | None = None) -> AnswerResponse:
        """Run the prompt through the provider API."""
        options = options or AskOptions()
        url, headers, payload = self._build_request(prompt, options)

        start_time = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await client.post(url, headers=headers, json=payload)

            latency_ms = (time.perf_counter() - start_time) * 1000

            if response.status_code != 200:
                return self._failure(
                    ProviderErrorType.API_ERROR,
                    f"HTTP {response.status_code}: {response.text[:500]}",
                    latency_ms=latency_ms,
                    retryable=response.status_code >= 500 or response.status_code == 429,
                )

            data = response.json()
            text, usage = self._parse_response(data)
            usage.estimated_cost_usd = estimate_cost(self.model, usage)

            return AnswerResponse(
                provider=self.name,
                model=self.model,
                text=text,
                raw_response=data,
                usage=usage,
                latency_ms=latency_ms,
                success=True,
            )

        except httpx.TimeoutException:
            latency_ms = (time.perf_counter() - start_time) * 1000
            return self._failure(
                ProviderErrorType.TIMEOUT,
                f"Request timed out after {self.config.timeout_seconds}s",
                latency_ms=latency_ms,
            )
        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.warning("provider_request_failed", provider=self.name, error=str(e))
            return self._failure(ProviderErrorType.EXCEPTION, str(e), latency_ms=latency_ms)

    async def health_check(self) -> bool:
        """Check that the provider accepts a trivial prompt."""
        response = await self.ask("ping", AskOptions(max_tokens=5))
        return response.success


class OpenAIProvider(HTTPAnswerProvider):
    """OpenAI chat completions."""

    provider_type = ProviderType.OPENAI
    default_base_url = "https://api.openai.com/v1"

    def _messages(self, prompt: str, options: AskOptions) -> list[dict[str, str]]:
        messages = []
        if options.system_prompt:
            messages.append({"role": "system", "content": options.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _build_request(
        self, prompt: str, options: AskOptions
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": self._messages(prompt, options),
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        return f"{self.config.base_url}/chat/completions", headers, payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, UsageStats]:
        text = data["choices"][0]["message"]["content"] or ""
        usage_data = data.get("usage", {})
        usage = UsageStats(
            prompt_tokens=usage_data.get("prompt_tokens", 0),
            completion_tokens=usage_data.get("completion_tokens", 0),
            total_tokens=usage_data.get("total_tokens", 0),
        )
        return text, usage


class PerplexityProvider(OpenAIProvider):
    """Perplexity, which speaks the OpenAI chat completions format."""

    provider_type = ProviderType.PERPLEXITY
    default_base_url = "https://api.perplexity.ai"


class AnthropicProvider(HTTPAnswerProvider):
    """Anthropic messages API."""

    provider_type = ProviderType.ANTHROPIC
    default_base_url = "https://api.anthropic.com/v1"

    def _build_request(
        self, prompt: str, options: AskOptions
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": "2023-06-01",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
        }
        if options.system_prompt:
            payload["system"] = options.system_prompt
        return f"{self.config.base_url}/messages", headers, payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, UsageStats]:
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage_data = data.get("usage", {})
        prompt_tokens = usage_data.get("input_tokens", 0)
        completion_tokens = usage_data.get("output_tokens", 0)
        usage = UsageStats(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        )
        return text, usage


class GoogleProvider(HTTPAnswerProvider):
    """Google Gemini generateContent."""

    provider_type = ProviderType.GOOGLE
    default_base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _build_request(
        self, prompt: str, options: AskOptions
    ) -> tuple[str, dict[str, str], dict[str, Any]]:
        headers = {
            "x-goog-api-key": self.config.api_key,
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature,
                "maxOutputTokens": options.max_tokens,
            },
        }
        if options.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}
        url = f"{self.config.base_url}/models/{self.model}:generateContent"
        return url, headers, payload

    def _parse_response(self, data: dict[str, Any]) -> tuple[str, UsageStats]:
        candidates = data.get("candidates") or []
        text = ""
        if candidates:
            parts = candidates[0].get("content", {}).get("parts", [])
            text = "".join(part.get("text", "") for part in parts)
        usage_data = data.get("usageMetadata", {})
        usage = UsageStats(
            prompt_tokens=usage_data.get("promptTokenCount", 0),
            completion_tokens=usage_data.get("candidatesTokenCount", 0),
            total_tokens=usage_data.get("totalTokenCount", 0),
        )
        return text, usage


class MockProvider(AnswerProvider):
    """Scripted provider for tests and local runs."""

    provider_type = ProviderType.MOCK

    def __init__(
        self,
        name: str | None = None,
        default_response: str = "",
        config: ProviderConfig | None = None,
    ):
        super().__init__(config)
        self._name = name or self.provider_type.value
        self.default_response = default_response
        self.responses: list[tuple[str, str]] = []
        self.should_fail: bool = False
        self.fail_count: int = 0
        self.raise_error: Exception | None = None
        self.cost_per_call: float = 0.001
        self.calls: list[tuple[str, AskOptions]] = []

    @property
    def name(self) -> str:
        return self._name

    def set_response(self, prompt_contains: str, text: str) -> None:
        """Answer prompts containing a substring (case-insensitive) with fixed text."""
        self.responses.append((prompt_contains.lower(), text))

    def set_failure_mode(self, should_fail: bool, fail_count: int = 1) -> None:
        """Configure failure behavior."""
        self.should_fail = should_fail
        self.fail_count = fail_count

    async def ask(self, prompt: str, options: AskOptions | None = None) -> AnswerResponse:
        """Return the scripted answer for the prompt."""
        options = options or AskOptions()
        self.calls.append((prompt, options))

        if self.raise_error is not None:
            raise self.raise_error

        if self.should_fail and self.fail_count > 0:
            self.fail_count -= 1
            return self._failure(ProviderErrorType.API_ERROR, "Simulated failure", latency_ms=5.0)

        text = self.default_response
        lowered = prompt.lower()
        for needle, scripted in self.responses:
            if needle in lowered:
                text = scripted
                break

        usage = UsageStats(
            prompt_tokens=len(prompt.split()) * 4,
            completion_tokens=len(text.split()) * 4,
        )
        usage.total_tokens = usage.prompt_tokens + usage.completion_tokens
        usage.estimated_cost_usd = self.cost_per_call

        return AnswerResponse(
            provider=self.name,
            model=self.model,
            text=text,
            usage=usage,
            latency_ms=5.0,
            success=True,
        )

    async def health_check(self) -> bool:
        """Mock provider is always healthy."""
        return True


PROVIDER_CLASSES: dict[ProviderType, type[HTTPAnswerProvider]] = {
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GOOGLE: GoogleProvider,
    ProviderType.PERPLEXITY: PerplexityProvider,
}


def get_provider(
    provider_type: ProviderType | str,
    config: ProviderConfig | None = None,
) -> AnswerProvider:
    """Factory function to get an answer provider."""
    provider_type = ProviderType(provider_type)
    if provider_type == ProviderType.MOCK:
        return MockProvider(config=config)

    provider_class = PROVIDER_CLASSES.get(provider_type)
    if provider_class is None:
        raise ValueError(f"Unknown provider type: {provider_type}")
    return provider_class(config)


class ProviderRegistry:
    """Ordered set of enabled answer providers, keyed by name."""

    def __init__(self, providers: Iterable[AnswerProvider] = ()):
        self._providers: dict[str, AnswerProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: AnswerProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str) -> AnswerProvider | None:
        return self._providers.get(name)

    def enabled(self) -> list[AnswerProvider]:
        """All registered providers in registration order."""
        return list(self._providers.values())

    def names(self) -> list[str]:
        return list(self._providers)

    def subset(self, names: Iterable[str]) -> list[AnswerProvider]:
        """Registered providers among the given names, unknown names ignored."""
        return [self._providers[n] for n in names if n in self._providers]

    def select(self, count: int, preference: Iterable[str] = ()) -> list[AnswerProvider]:
        """Pick up to `count` providers, preferred names first, then registration order."""
        chosen: list[AnswerProvider] = []
        for name in preference:
            provider = self._providers.get(name)
            if provider is not None and provider not in chosen:
                chosen.append(provider)
        for provider in self._providers.values():
            if provider not in chosen:
                chosen.append(provider)
        return chosen[:count]

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Instantiate an HTTP provider for every enabled provider in settings."""
    registry = ProviderRegistry()
    for name in settings.enabled_providers():
        provider_settings = settings.provider_settings(name)
        config = ProviderConfig(
            api_key=settings.provider_api_key(name),
            model=provider_settings.model or "",
            timeout_seconds=settings.request_timeout_seconds,
        )
        registry.register(get_provider(name, config))
    logger.info("provider_registry_built", providers=registry.names())
    return registry
