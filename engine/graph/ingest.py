"""Write probe results into the knowledge graph."""

from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from api.exceptions import CitabilityError
from engine.citation.detector import CitationAnalysis
from engine.citation.matcher import KnownEntity
from engine.graph.knowledge_graph import CitationEvent, KnowledgeGraph
from engine.graph.store import GraphStoreError
from engine.observation.orchestrator import ProbeResult

logger = structlog.get_logger(__name__)


@dataclass
class IngestReport:
    events_recorded: int = 0
    edges_recorded: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "events_recorded": self.events_recorded,
            "edges_recorded": self.edges_recorded,
            "errors": self.errors,
        }


def citation_event(
    entity: KnownEntity,
    result: ProbeResult,
    citation: CitationAnalysis,
    run_id: str | None = None,
) -> CitationEvent:
    """Build the graph event for one entity in one probe result."""
    return CitationEvent(
        entity_name=entity.name,
        entity_domain=entity.domain,
        provider=result.provider,
        query=result.query,
        query_category=result.category.value,
        cited=citation.cited,
        citation_type=citation.citation_type.value if citation.citation_type else None,
        sentiment=citation.sentiment.value if citation.sentiment else None,
        position=citation.position,
        confidence=citation.confidence,
        run_id=run_id,
        canonical=True,
    )


async def ingest_probe_results(
    graph: KnowledgeGraph,
    brand: KnownEntity,
    competitors: Sequence[KnownEntity],
    results: Sequence[ProbeResult],
    run_id: str | None = None,
) -> IngestReport:
    """
    Record brand and competitor events for each result, plus competition edges.

    Results are ingested one at a time. A failure on one event is added to
    the report and ingestion moves on to the next. Every event carries
    ``run_id`` so alert checks can compare consecutive runs.
    """
    report = IngestReport()
    by_name = {c.name: c for c in competitors}

    for result in results:
        pending = [(brand, result.brand_citation)] + [
            (by_name[name], citation)
            for name, citation in result.competitor_citations.items()
            if name in by_name
        ]
        for entity, citation in pending:
            try:
                await graph.record_citation(citation_event(entity, result, citation, run_id))
                report.events_recorded += 1
            except (CitabilityError, GraphStoreError) as e:
                report.errors.append(f"{entity.name} ({result.provider}): {e}")
                logger.warning(
                    "citation_ingest_failed",
                    entity=entity.name,
                    provider=result.provider,
                    query=result.query,
                    error=str(e),
                )

        for name in result.competitor_citations:
            if name not in by_name:
                continue
            try:
                if await graph.record_competition(brand.name, name, result.category.value):
                    report.edges_recorded += 1
            except (CitabilityError, GraphStoreError) as e:
                report.errors.append(f"{brand.name} vs {name}: {e}")

    logger.info(
        "probe_results_ingested",
        results=len(results),
        events=report.events_recorded,
        edges=report.edges_recorded,
        errors=len(report.errors),
    )
    return report
