"""Citation validation: probe answer engines with questions taken from the content.

Two explicit phases so that cost stays linear and easy to inspect:
extract queries from the content, then probe every query against a small
set of providers.
"""

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from engine.citation.matcher import KnownEntity
from engine.observation.models import AskOptions, ProviderError
from engine.observation.orchestrator import ProbeOrchestrator, ProbeResult
from engine.observation.prompts import ProbeCategory, ProbeQuery
from engine.scoring.query_extractor import DEFAULT_MAX_QUERIES, ExtractedQuery, extract_queries

logger = structlog.get_logger(__name__)

DEFAULT_CITATION_WEIGHT = 0.5

# Cheapest first
PROVIDER_PREFERENCE = ["google", "openai", "perplexity", "anthropic"]
DEFAULT_MAX_PROVIDERS = 3

VALIDATION_SYSTEM_PROMPT = (
    "Answer the question concisely. If you know of specific products, tools, "
    "or companies, mention them by name."
)
VALIDATION_OPTIONS = AskOptions(
    temperature=0.3, max_tokens=500, system_prompt=VALIDATION_SYSTEM_PROMPT
)

POSITIVE_SENTIMENT_BONUS = 10
TOP_POSITION_BONUS = 15
TOP_POSITION_CUTOFF = 3
MULTI_PROVIDER_BONUS = 10
COMPETITOR_PENALTY = 10


@dataclass
class ValidationProbeResult:
    """Condensed outcome of one query x provider probe."""

    query: str
    provider: str
    cited: bool
    position: int | None = None
    sentiment: str | None = None
    competitors_cited: list[str] = field(default_factory=list)

    @classmethod
    def from_probe(cls, result: ProbeResult) -> "ValidationProbeResult":
        citation = result.brand_citation
        return cls(
            query=result.query,
            provider=result.provider,
            cited=citation.cited,
            position=citation.position,
            sentiment=citation.sentiment.value if citation.sentiment else None,
            competitors_cited=result.competitors_cited(),
        )

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "provider": self.provider,
            "cited": self.cited,
            "position": self.position,
            "sentiment": self.sentiment,
            "competitors_cited": self.competitors_cited,
        }


@dataclass
class CitationValidationScore:
    """Citation validation sub-score with the probes behind it."""

    score: int = 0
    weight: float = DEFAULT_CITATION_WEIGHT
    probe_results: list[ValidationProbeResult] = field(default_factory=list)
    failures: list[ProviderError] = field(default_factory=list)
    total_pairs: int = 0
    queries: list[ExtractedQuery] = field(default_factory=list)
    providers: list[str] = field(default_factory=list)

    @property
    def cited_count(self) -> int:
        return sum(1 for r in self.probe_results if r.cited)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "weight": self.weight,
            "probe_results": [r.to_dict() for r in self.probe_results],
            "failures": [f.to_dict() for f in self.failures],
            "total_pairs": self.total_pairs,
            "cited_count": self.cited_count,
            "queries": [q.to_dict() for q in self.queries],
            "providers": self.providers,
        }


def calculate_validation_score(
    results: Sequence[ValidationProbeResult],
    total_pairs: int | None = None,
) -> int:
    """
    Score a set of probe outcomes.

    Base rate is cited pairs over attempted pairs (failed pairs count as not
    cited). Bonuses: any positive citation, any citation in the top 3 list
    positions, any query cited by 2+ providers. Penalty for each competitor
    cited more often than the brand. Clamped to 0-100.
    """
    total = total_pairs if total_pairs is not None else len(results)
    if total <= 0:
        return 0

    cited = [r for r in results if r.cited]
    score: float = len(cited) / total * 100

    if any(r.sentiment == "positive" for r in cited):
        score += POSITIVE_SENTIMENT_BONUS

    if any(r.position is not None and r.position <= TOP_POSITION_CUTOFF for r in cited):
        score += TOP_POSITION_BONUS

    providers_per_query = Counter(r.query for r in cited)
    if any(count >= 2 for count in providers_per_query.values()):
        score += MULTI_PROVIDER_BONUS

    competitor_counts = Counter(name for r in results for name in r.competitors_cited)
    for count in competitor_counts.values():
        if count > len(cited):
            score -= COMPETITOR_PENALTY

    return round(min(100, max(0, score)))


class CitationValidator:
    """Runs the extract-then-probe pipeline for one piece of content."""

    def __init__(
        self,
        orchestrator: ProbeOrchestrator,
        max_queries: int = DEFAULT_MAX_QUERIES,
        max_providers: int = DEFAULT_MAX_PROVIDERS,
        weight: float = DEFAULT_CITATION_WEIGHT,
    ):
        self.orchestrator = orchestrator
        self.max_queries = max_queries
        self.max_providers = max_providers
        self.weight = weight

    async def validate(
        self,
        content: str,
        brand: KnownEntity,
        keywords: list[str] | None = None,
        competitors: Sequence[KnownEntity] = (),
    ) -> CitationValidationScore:
        """
        Probe answer engines with questions extracted from the content.

        No extracted queries or no providers gives a zero score with an
        empty result set rather than an error.
        """
        queries = extract_queries(content, keywords or [], self.max_queries)
        providers = self.orchestrator.registry.select(self.max_providers, PROVIDER_PREFERENCE)

        if not queries or not providers:
            logger.info(
                "citation_validation_skipped",
                brand=brand.name,
                queries=len(queries),
                providers=len(providers),
            )
            return CitationValidationScore(
                weight=self.weight,
                queries=queries,
                providers=[p.name for p in providers],
            )

        batch = await self.orchestrator.probe_many(
            [ProbeQuery(q.query, ProbeCategory.DIRECT) for q in queries],
            brand,
            competitors,
            providers=providers,
            options=VALIDATION_OPTIONS,
        )

        probe_results = [ValidationProbeResult.from_probe(r) for r in batch.results]
        score = calculate_validation_score(probe_results, batch.attempted)

        logger.info(
            "citation_validation_completed",
            brand=brand.name,
            score=score,
            pairs=batch.attempted,
            failures=len(batch.failures),
        )
        return CitationValidationScore(
            score=score,
            weight=self.weight,
            probe_results=probe_results,
            failures=batch.failures,
            total_pairs=batch.attempted,
            queries=queries,
            providers=[p.name for p in providers],
        )
