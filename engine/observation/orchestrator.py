"""Probe orchestrator: fan a query out to answer providers and detect citations."""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from api.exceptions import NoProvidersEnabledError
from engine.citation.detector import CitationAnalysis, CitationDetector
from engine.citation.matcher import KnownEntity
from engine.observation.budget import AllowAllGate, RequestGate
from engine.observation.models import AskOptions, ProviderError, ProviderErrorType
from engine.observation.prompts import ProbeCategory, ProbeQuery, build_probe_prompt
from engine.observation.providers import AnswerProvider, ProviderRegistry

logger = structlog.get_logger(__name__)


@dataclass
class ProbeResult:
    """One provider's answer to one probe, with citations detected."""

    query: str
    category: ProbeCategory
    provider: str
    response_text: str
    brand_citation: CitationAnalysis
    competitor_citations: dict[str, CitationAnalysis] = field(default_factory=dict)
    model: str = ""
    latency_ms: float = 0.0
    cost: float = 0.0

    def competitors_cited(self) -> list[str]:
        """Names of competitors cited in this response."""
        return [name for name, citation in self.competitor_citations.items() if citation.cited]

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "query": self.query,
            "category": self.category.value,
            "provider": self.provider,
            "model": self.model,
            "response_text": self.response_text,
            "brand_citation": self.brand_citation.to_dict(),
            "competitor_citations": {
                name: citation.to_dict() for name, citation in self.competitor_citations.items()
            },
            "latency_ms": round(self.latency_ms, 2),
            "cost": round(self.cost, 6),
        }


@dataclass
class ProbeBatch:
    """Results of one or more probes, plus the provider calls that produced nothing."""

    results: list[ProbeResult] = field(default_factory=list)
    failures: list[ProviderError] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        """Query x provider pairs attempted, successful or not."""
        return len(self.results) + len(self.failures)

    @property
    def total_cost(self) -> float:
        return sum(r.cost for r in self.results)

    def extend(self, other: "ProbeBatch") -> None:
        self.results.extend(other.results)
        self.failures.extend(other.failures)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
            "attempted": self.attempted,
            "total_cost": round(self.total_cost, 6),
        }


class ProbeOrchestrator:
    """Sends probes to every selected provider concurrently.

    A failing provider never cancels its siblings: its outcome is recorded
    as a ProviderError in the batch and the other answers are kept.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        detector: CitationDetector | None = None,
        gate: RequestGate | None = None,
        options: AskOptions | None = None,
    ):
        self.registry = registry
        self.detector = detector or CitationDetector()
        self.gate = gate or AllowAllGate()
        self.options = options or AskOptions()

    def _resolve_providers(
        self, providers: Sequence[AnswerProvider] | None
    ) -> list[AnswerProvider]:
        selected = list(providers) if providers is not None else self.registry.enabled()
        if not selected:
            raise NoProvidersEnabledError()
        return selected

    async def probe(
        self,
        query: str,
        category: ProbeCategory | str,
        brand: KnownEntity,
        competitors: Sequence[KnownEntity] = (),
        providers: Sequence[AnswerProvider] | None = None,
        options: AskOptions | None = None,
    ) -> ProbeBatch:
        """
        Probe one query against a set of providers.

        Args:
            query: Probe text
            category: Probe category selecting the prompt template
            brand: Brand to detect
            competitors: Competitors to detect alongside the brand
            providers: Providers to use (default: every registered provider)
            options: Generation options (default: orchestrator options)

        Returns:
            ProbeBatch with one result or failure per provider

        Raises:
            NoProvidersEnabledError: if there is no provider to ask
        """
        selected = self._resolve_providers(providers)
        category = ProbeCategory(category)
        prompt = build_probe_prompt(query, category)
        options = options or self.options

        outcomes = await asyncio.gather(
            *(
                self._probe_provider(provider, query, category, prompt, brand, competitors, options)
                for provider in selected
            ),
            return_exceptions=True,
        )

        batch = ProbeBatch()
        for provider, outcome in zip(selected, outcomes, strict=True):
            if isinstance(outcome, ProbeResult):
                batch.results.append(outcome)
            elif isinstance(outcome, ProviderError):
                batch.failures.append(outcome)
            else:
                batch.failures.append(
                    ProviderError(
                        provider=provider.name,
                        error_type=ProviderErrorType.EXCEPTION,
                        message=str(outcome),
                        retryable=False,
                        query=query,
                    )
                )

        logger.debug(
            "probe_completed",
            query=query,
            category=category.value,
            results=len(batch.results),
            failures=len(batch.failures),
        )
        return batch

    async def probe_many(
        self,
        queries: Sequence[ProbeQuery],
        brand: KnownEntity,
        competitors: Sequence[KnownEntity] = (),
        providers: Sequence[AnswerProvider] | None = None,
        options: AskOptions | None = None,
    ) -> ProbeBatch:
        """Probe several queries concurrently and merge the batches."""
        selected = self._resolve_providers(providers)
        batches = await asyncio.gather(
            *(
                self.probe(q.text, q.category, brand, competitors, selected, options)
                for q in queries
            )
        )
        merged = ProbeBatch()
        for batch in batches:
            merged.extend(batch)
        return merged

    async def _probe_provider(
        self,
        provider: AnswerProvider,
        query: str,
        category: ProbeCategory,
        prompt: str,
        brand: KnownEntity,
        competitors: Sequence[KnownEntity],
        options: AskOptions,
    ) -> ProbeResult | ProviderError:
        if not self.gate.allow(provider.name):
            logger.info("provider_call_vetoed", provider=provider.name, query=query)
            return ProviderError(
                provider=provider.name,
                error_type=ProviderErrorType.BUDGET_VETO,
                message="Request vetoed by rate limit or budget",
                retryable=True,
                query=query,
            )

        try:
            response = await provider.ask(prompt, options)
        except Exception as e:
            logger.warning(
                "provider_call_failed", provider=provider.name, query=query, error=str(e)
            )
            return ProviderError(
                provider=provider.name,
                error_type=ProviderErrorType.EXCEPTION,
                message=str(e),
                query=query,
            )

        if not response.success:
            error = response.error or ProviderError(
                provider=provider.name,
                error_type=ProviderErrorType.API_ERROR,
                message="Provider returned no answer",
            )
            error.query = query
            logger.warning(
                "provider_call_failed",
                provider=provider.name,
                query=query,
                error_type=error.error_type,
                error=error.message,
            )
            return error

        self.gate.record(provider.name, response)

        if not response.text.strip():
            return ProviderError(
                provider=provider.name,
                error_type=ProviderErrorType.EMPTY_RESPONSE,
                message="Provider returned an empty answer",
                query=query,
            )

        return ProbeResult(
            query=query,
            category=category,
            provider=provider.name,
            response_text=response.text,
            brand_citation=self.detector.detect(
                response.text, brand.name, brand.domain, competitors
            ),
            competitor_citations=self._detect_competitors(response.text, brand, competitors),
            model=response.model,
            latency_ms=response.latency_ms,
            cost=response.cost,
        )

    def _detect_competitors(
        self,
        text: str,
        brand: KnownEntity,
        competitors: Sequence[KnownEntity],
    ) -> dict[str, CitationAnalysis]:
        # Each competitor is matched with the brand as a rival and without itself
        citations = {}
        for competitor in competitors:
            rivals = [brand] + [c for c in competitors if c is not competitor]
            citations[competitor.name] = self.detector.detect(
                text, competitor.name, competitor.domain, rivals
            )
        return citations
