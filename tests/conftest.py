"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment before any app code runs
os.environ["ENV"] = "test"
for _key in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "PERPLEXITY_API_KEY"):
    os.environ.pop(_key, None)

from api.config import Settings, get_settings  # noqa: E402
from engine.citation.matcher import KnownEntity  # noqa: E402
from engine.graph.knowledge_graph import KnowledgeGraph  # noqa: E402
from engine.graph.store import InMemoryGraphStore  # noqa: E402
from engine.observation.orchestrator import ProbeOrchestrator  # noqa: E402
from engine.observation.providers import MockProvider, ProviderRegistry  # noqa: E402

FIXED_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    """Settings for tests, never read from a .env file."""
    get_settings.cache_clear()
    return Settings(_env_file=None, env="test")


@pytest.fixture
def brand() -> KnownEntity:
    return KnownEntity("HubSpot", "hubspot.com")


@pytest.fixture
def competitors() -> list[KnownEntity]:
    return [KnownEntity("Salesforce", "salesforce.com"), KnownEntity("Pipedrive", "pipedrive.com")]


@pytest.fixture
def mock_providers() -> list[MockProvider]:
    """Two mock providers named after real ones."""
    return [
        MockProvider(name="openai", default_response="1. HubSpot is the best CRM."),
        MockProvider(name="google", default_response="Salesforce leads the market."),
    ]


@pytest.fixture
def registry(mock_providers: list[MockProvider]) -> ProviderRegistry:
    return ProviderRegistry(mock_providers)


@pytest.fixture
def orchestrator(registry: ProviderRegistry) -> ProbeOrchestrator:
    return ProbeOrchestrator(registry)


@pytest.fixture
async def graph() -> KnowledgeGraph:
    """Knowledge graph on an in-memory store with a fixed clock."""
    kg = KnowledgeGraph(InMemoryGraphStore(), clock=lambda: FIXED_NOW)
    await kg.initialize()
    return kg


@pytest.fixture
async def client(
    settings: Settings, registry: ProviderRegistry, graph: KnowledgeGraph
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with mock providers and an in-memory graph."""
    from api.main import create_app

    app = create_app(settings)
    app.state.registry = registry
    app.state.graph = graph

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
