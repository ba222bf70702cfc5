"""Tests for writing probe results into the knowledge graph."""

import pytest

from engine.citation.detector import CitationAnalysis, Sentiment
from engine.citation.matcher import CitationType, KnownEntity
from engine.graph.ingest import citation_event, ingest_probe_results
from engine.graph.knowledge_graph import KnowledgeGraph
from engine.observation.orchestrator import ProbeResult
from engine.observation.prompts import ProbeCategory


def _result(provider: str = "openai", salesforce_cited: bool = True) -> ProbeResult:
    return ProbeResult(
        query="best crm",
        category=ProbeCategory.BEST_OF,
        provider=provider,
        response_text="1. HubSpot\n2. Salesforce",
        brand_citation=CitationAnalysis(
            cited=True,
            citation_type=CitationType.EXACT_NAME,
            confidence=0.9,
            sentiment=Sentiment.NEUTRAL,
            position=1,
        ),
        competitor_citations={
            "Salesforce": CitationAnalysis(cited=salesforce_cited, position=2),
            "Zoho": CitationAnalysis(cited=True),
        },
    )


class TestCitationEvent:
    """Tests for citation_event."""

    def test_fields_copied(self, brand: KnownEntity) -> None:
        """Result and citation fields are flattened onto the event."""
        result = _result()
        event = citation_event(brand, result, result.brand_citation)

        assert event.entity_name == "HubSpot"
        assert event.entity_domain == "hubspot.com"
        assert event.query_category == "best-of"
        assert event.citation_type == "exact_name"
        assert event.sentiment == "neutral"
        assert event.position == 1
        assert event.canonical is True


class TestIngestProbeResults:
    """Tests for ingest_probe_results."""

    @pytest.mark.asyncio
    async def test_brand_and_known_competitors_recorded(
        self, graph: KnowledgeGraph, brand: KnownEntity, competitors: list[KnownEntity]
    ) -> None:
        """One event per known entity per result; unknown competitors are ignored."""
        report = await ingest_probe_results(
            graph, brand, competitors, [_result("openai"), _result("google", False)]
        )

        assert report.events_recorded == 4
        assert report.edges_recorded == 1
        assert report.errors == []
        assert await graph.find_entity("Zoho") is None

        stats = await graph.stats()
        assert stats.entities == 2
        assert stats.citations == 4

        edges = await graph.competitive_edges()
        assert [(e.brand, e.competitor, e.category) for e in edges] == [
            ("HubSpot", "Salesforce", "best-of")
        ]
        assert edges[0].brand_citations == 2
        assert edges[0].competitor_citations == 1

    @pytest.mark.asyncio
    async def test_failures_are_reported_and_skipped(
        self, graph: KnowledgeGraph, brand: KnownEntity
    ) -> None:
        """A failing event is reported and the rest are still recorded."""
        blank = KnownEntity("  ")
        result = _result()
        result.competitor_citations = {"  ": CitationAnalysis(cited=True)}

        report = await ingest_probe_results(graph, brand, [blank], [result])

        assert report.events_recorded == 1
        assert len(report.errors) == 2
        assert report.to_dict()["events_recorded"] == 1

    @pytest.mark.asyncio
    async def test_overlapping_names_stay_distinct(self, graph: KnowledgeGraph) -> None:
        """A competitor whose name contains the brand name is its own entity."""
        box = KnownEntity("Box", "box.com")
        dropbox = KnownEntity("Dropbox", "dropbox.com")
        result = _result()
        result.competitor_citations = {"Dropbox": CitationAnalysis(cited=True, position=2)}

        report = await ingest_probe_results(graph, box, [dropbox], [result])

        assert report.errors == []
        stats = await graph.stats()
        assert stats.entities == 2
        assert stats.aliases == 0
        assert stats.competition_edges == 1
        assert (await graph.get_entity("Dropbox")).domain == "dropbox.com"
        edges = await graph.competitive_edges()
        assert [(e.brand, e.competitor) for e in edges] == [("Box", "Dropbox")]
        assert (edges[0].brand_citations, edges[0].competitor_citations) == (1, 1)
