"""Tests for answer providers."""

import httpx
import pytest

from api.config import Settings
from engine.observation.models import (
    AnswerResponse,
    AskOptions,
    ProviderError,
    ProviderErrorType,
    UsageStats,
)
from engine.observation.providers import (
    AnthropicProvider,
    GoogleProvider,
    MockProvider,
    OpenAIProvider,
    PerplexityProvider,
    ProviderConfig,
    ProviderRegistry,
    build_provider_registry,
    estimate_cost,
    get_provider,
)


@pytest.fixture
def mock_transport(monkeypatch: pytest.MonkeyPatch):
    """Route provider HTTP calls to a handler set by the test."""
    real_client = httpx.AsyncClient
    state: dict = {"requests": []}

    def install(handler):
        def record(request: httpx.Request) -> httpx.Response:
            state["requests"].append(request)
            return handler(request)

        def client(**kwargs):
            return real_client(transport=httpx.MockTransport(record), **kwargs)

        monkeypatch.setattr(httpx, "AsyncClient", client)
        return state["requests"]

    return install


class TestUsageStats:
    """Tests for UsageStats dataclass."""

    def test_add_usage_stats(self) -> None:
        """Can add usage stats together."""
        a = UsageStats(prompt_tokens=100, completion_tokens=50)
        b = UsageStats(prompt_tokens=200, completion_tokens=100)

        combined = a.add(b)

        assert combined.prompt_tokens == 300
        assert combined.completion_tokens == 150

    def test_to_dict(self) -> None:
        """Cost is rounded to six places."""
        usage = UsageStats(prompt_tokens=100, estimated_cost_usd=0.00123456)

        assert usage.to_dict()["estimated_cost_usd"] == 0.001235

    def test_estimate_cost(self) -> None:
        """Cost uses the per-million token price table."""
        usage = UsageStats(prompt_tokens=1_000_000, completion_tokens=1_000_000)

        assert estimate_cost("gpt-4o-mini", usage) == pytest.approx(0.75)
        assert estimate_cost("unknown-model", usage) == pytest.approx(4.0)


class TestAnswerResponse:
    """Tests for AnswerResponse."""

    def test_to_dict_truncates_text(self) -> None:
        """Long answers are truncated in the dict form."""
        response = AnswerResponse(provider="openai", model="gpt-4o-mini", text="x" * 600)

        assert len(response.to_dict()["text"]) == 503

    def test_error_to_dict(self) -> None:
        """Errors serialize with their timestamp."""
        error = ProviderError(provider="openai", error_type="timeout", message="slow")

        assert error.to_dict()["error_type"] == "timeout"
        assert "timestamp" in error.to_dict()


class TestRequestBuilding:
    """Tests for per-provider request and response formats."""

    def test_openai_request(self) -> None:
        """System prompt becomes a system message."""
        provider = OpenAIProvider(ProviderConfig(api_key="sk-test"))
        url, headers, payload = provider._build_request(
            "best crm?", AskOptions(system_prompt="Be brief", max_tokens=100)
        )

        assert url == "https://api.openai.com/v1/chat/completions"
        assert headers["Authorization"] == "Bearer sk-test"
        assert payload["model"] == "gpt-4o-mini"
        assert payload["messages"][0] == {"role": "system", "content": "Be brief"}
        assert payload["max_tokens"] == 100

    def test_perplexity_uses_openai_format(self) -> None:
        """Perplexity reuses the chat completions format on its own host."""
        url, _, payload = PerplexityProvider()._build_request("q", AskOptions())

        assert url == "https://api.perplexity.ai/chat/completions"
        assert payload["model"] == "sonar"

    def test_anthropic_request_and_response(self) -> None:
        """Anthropic takes a top-level system field and returns content blocks."""
        provider = AnthropicProvider(ProviderConfig(api_key="key"))
        _, headers, payload = provider._build_request("q", AskOptions(system_prompt="sys"))

        assert headers["x-api-key"] == "key"
        assert payload["system"] == "sys"

        text, usage = provider._parse_response(
            {
                "content": [{"type": "text", "text": "Hub"}, {"type": "text", "text": "Spot"}],
                "usage": {"input_tokens": 10, "output_tokens": 5},
            }
        )
        assert text == "HubSpot"
        assert usage.total_tokens == 15

    def test_google_request_and_response(self) -> None:
        """Gemini uses generateContent with candidate parts."""
        provider = GoogleProvider()
        url, _, payload = provider._build_request("q", AskOptions(max_tokens=50))

        assert url.endswith("/models/gemini-1.5-flash:generateContent")
        assert payload["generationConfig"]["maxOutputTokens"] == 50

        text, usage = provider._parse_response(
            {
                "candidates": [{"content": {"parts": [{"text": "Salesforce"}]}}],
                "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 1},
            }
        )
        assert text == "Salesforce"
        assert usage.prompt_tokens == 3

    def test_google_no_candidates(self) -> None:
        """A response without candidates has empty text."""
        text, _ = GoogleProvider()._parse_response({})

        assert text == ""


class TestHTTPProvider:
    """Tests for the shared HTTP call path."""

    @pytest.mark.asyncio
    async def test_success(self, mock_transport) -> None:
        """A 200 response is parsed and costed."""
        requests = mock_transport(
            lambda request: httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "HubSpot"}}],
                    "usage": {"prompt_tokens": 1000, "completion_tokens": 1000},
                },
            )
        )

        response = await OpenAIProvider(ProviderConfig(api_key="sk")).ask("best crm?")

        assert response.success is True
        assert response.text == "HubSpot"
        assert response.cost == pytest.approx(0.00075)
        assert requests[0].headers["Authorization"] == "Bearer sk"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable_failure(self, mock_transport) -> None:
        """Non-200 statuses return an unsuccessful response instead of raising."""
        mock_transport(lambda request: httpx.Response(429, text="slow down"))

        response = await OpenAIProvider().ask("q")

        assert response.success is False
        assert response.error.error_type == ProviderErrorType.API_ERROR
        assert response.error.retryable is True
        assert "HTTP 429" in response.error.message

    @pytest.mark.asyncio
    async def test_client_error_not_retryable(self, mock_transport) -> None:
        """4xx other than 429 is not retryable."""
        mock_transport(lambda request: httpx.Response(401, text="bad key"))

        response = await AnthropicProvider().ask("q")

        assert response.error.retryable is False

    @pytest.mark.asyncio
    async def test_timeout(self, mock_transport) -> None:
        """Timeouts are reported as timeout failures."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        mock_transport(handler)

        response = await GoogleProvider().ask("q")

        assert response.success is False
        assert response.error.error_type == ProviderErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_malformed_body(self, mock_transport) -> None:
        """An unexpected body shape is an exception failure."""
        mock_transport(lambda request: httpx.Response(200, json={"unexpected": True}))

        response = await OpenAIProvider().ask("q")

        assert response.success is False
        assert response.error.error_type == ProviderErrorType.EXCEPTION


class TestMockProvider:
    """Tests for MockProvider."""

    @pytest.mark.asyncio
    async def test_scripted_response(self) -> None:
        """Prompts containing a substring get the scripted answer."""
        provider = MockProvider(default_response="default")
        provider.set_response("CRM", "HubSpot")

        assert (await provider.ask("best crm tools")).text == "HubSpot"
        assert (await provider.ask("best email tools")).text == "default"

    @pytest.mark.asyncio
    async def test_failure_mode(self) -> None:
        """Fails the configured number of times, then recovers."""
        provider = MockProvider(default_response="ok")
        provider.set_failure_mode(True, fail_count=1)

        first = await provider.ask("q")
        second = await provider.ask("q")

        assert first.success is False
        assert second.success is True

    @pytest.mark.asyncio
    async def test_tracks_calls(self) -> None:
        """Calls are recorded with their options."""
        provider = MockProvider()
        options = AskOptions(max_tokens=10)

        await provider.ask("hello", options)

        assert provider.calls == [("hello", options)]

    @pytest.mark.asyncio
    async def test_health_check_always_passes(self) -> None:
        """Mock provider is always healthy."""
        assert await MockProvider().health_check() is True

    def test_custom_name(self) -> None:
        """A mock can stand in for a named provider."""
        assert MockProvider(name="openai").name == "openai"


class TestProviderFactory:
    """Tests for get_provider and the registry."""

    def test_get_provider(self) -> None:
        """Factory returns the matching provider class."""
        assert isinstance(get_provider("mock"), MockProvider)
        assert isinstance(get_provider("anthropic"), AnthropicProvider)

    def test_invalid_provider_raises(self) -> None:
        """Unknown names are rejected."""
        with pytest.raises(ValueError):
            get_provider("invalid")

    def test_registry_select_prefers_names(self) -> None:
        """Preferred names come first, then registration order."""
        registry = ProviderRegistry(
            MockProvider(name=name) for name in ("anthropic", "openai", "google")
        )

        assert [p.name for p in registry.select(2, ["google"])] == ["google", "anthropic"]
        assert [p.name for p in registry.subset(["openai", "nope"])] == ["openai"]
        assert "openai" in registry
        assert len(registry) == 3

    def test_build_registry_from_settings(self, settings: Settings) -> None:
        """Only providers with an API key are registered."""
        settings.openai_api_key = "sk-test"
        settings.google_api_key = "g-test"

        registry = build_provider_registry(settings)

        assert registry.names() == ["openai", "google"]
        assert isinstance(registry.get("google"), GoogleProvider)
