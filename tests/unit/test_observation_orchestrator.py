"""Tests for the probe orchestrator."""

import pytest

from api.exceptions import NoProvidersEnabledError
from engine.citation.matcher import KnownEntity
from engine.observation.budget import ProviderBudget
from engine.observation.models import ProviderErrorType
from engine.observation.orchestrator import ProbeOrchestrator
from engine.observation.prompts import ProbeCategory, ProbeQuery
from engine.observation.providers import MockProvider, ProviderRegistry


class TestProbe:
    """Tests for ProbeOrchestrator.probe."""

    @pytest.mark.asyncio
    async def test_one_result_per_provider(
        self, orchestrator: ProbeOrchestrator, brand: KnownEntity, competitors: list[KnownEntity]
    ) -> None:
        """Each provider answers once and citations are detected."""
        batch = await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand, competitors)

        by_provider = {r.provider: r for r in batch.results}
        assert batch.attempted == 2
        assert batch.failures == []
        assert by_provider["openai"].brand_citation.cited is True
        assert by_provider["openai"].brand_citation.position == 1
        assert by_provider["google"].brand_citation.cited is False
        assert by_provider["google"].competitors_cited() == ["Salesforce"]

    @pytest.mark.asyncio
    async def test_prompt_uses_category_template(
        self, mock_providers: list[MockProvider], brand: KnownEntity
    ) -> None:
        """The category template wraps the query text."""
        orchestrator = ProbeOrchestrator(ProviderRegistry(mock_providers[:1]))

        await orchestrator.probe("CRM tools", "comparison", brand)

        assert mock_providers[0].calls[0][0] == "Compare the leading CRM tools."

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(
        self, mock_providers: list[MockProvider], brand: KnownEntity
    ) -> None:
        """A failing provider is recorded while the others succeed."""
        mock_providers[1].set_failure_mode(True)
        orchestrator = ProbeOrchestrator(ProviderRegistry(mock_providers))

        batch = await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand)

        assert [r.provider for r in batch.results] == ["openai"]
        assert batch.failures[0].provider == "google"
        assert batch.failures[0].error_type == ProviderErrorType.API_ERROR
        assert batch.failures[0].query == "CRM tools"

    @pytest.mark.asyncio
    async def test_raised_exception_is_captured(
        self, mock_providers: list[MockProvider], brand: KnownEntity
    ) -> None:
        """A provider that raises becomes an exception failure."""
        mock_providers[0].raise_error = RuntimeError("connection reset")
        orchestrator = ProbeOrchestrator(ProviderRegistry(mock_providers))

        batch = await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand)

        assert len(batch.results) == 1
        assert batch.failures[0].error_type == ProviderErrorType.EXCEPTION
        assert batch.failures[0].message == "connection reset"

    @pytest.mark.asyncio
    async def test_empty_answer_is_a_failure(self, brand: KnownEntity) -> None:
        """Whitespace-only answers count as empty_response failures."""
        provider = MockProvider(name="openai", default_response="   ")
        orchestrator = ProbeOrchestrator(ProviderRegistry([provider]))

        batch = await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand)

        assert batch.results == []
        assert batch.failures[0].error_type == ProviderErrorType.EMPTY_RESPONSE

    @pytest.mark.asyncio
    async def test_budget_veto(
        self, mock_providers: list[MockProvider], brand: KnownEntity
    ) -> None:
        """A vetoed provider is never called."""
        gate = ProviderBudget(daily_budgets={"google": 0.0})
        orchestrator = ProbeOrchestrator(ProviderRegistry(mock_providers), gate=gate)

        batch = await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand)

        assert [r.provider for r in batch.results] == ["openai"]
        assert batch.failures[0].error_type == ProviderErrorType.BUDGET_VETO
        assert mock_providers[1].calls == []

    @pytest.mark.asyncio
    async def test_no_providers(self, brand: KnownEntity) -> None:
        """Probing with nothing to ask is an error."""
        orchestrator = ProbeOrchestrator(ProviderRegistry())

        with pytest.raises(NoProvidersEnabledError):
            await orchestrator.probe("CRM tools", ProbeCategory.BEST_OF, brand)


class TestProbeMany:
    """Tests for ProbeOrchestrator.probe_many."""

    @pytest.mark.asyncio
    async def test_merges_batches(
        self, orchestrator: ProbeOrchestrator, brand: KnownEntity
    ) -> None:
        """Every query x provider pair is attempted."""
        queries = [ProbeQuery("CRM tools"), ProbeQuery("CRM software", ProbeCategory.REVIEW)]

        batch = await orchestrator.probe_many(queries, brand)

        assert batch.attempted == 4
        assert {r.query for r in batch.results} == {"CRM tools", "CRM software"}
        assert batch.total_cost == pytest.approx(0.004)
        assert batch.to_dict()["attempted"] == 4

    @pytest.mark.asyncio
    async def test_selected_providers_only(
        self,
        orchestrator: ProbeOrchestrator,
        mock_providers: list[MockProvider],
        brand: KnownEntity,
    ) -> None:
        """An explicit provider list overrides the registry."""
        batch = await orchestrator.probe_many(
            [ProbeQuery("CRM tools")], brand, providers=[mock_providers[1]]
        )

        assert [r.provider for r in batch.results] == ["google"]
        assert mock_providers[0].calls == []
