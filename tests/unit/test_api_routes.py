"""Tests for the v1 API endpoints."""

import pytest
from httpx import AsyncClient

from api.config import Settings
from engine.observation.providers import MockProvider

HUBSPOT = {"name": "HubSpot", "domain": "hubspot.com"}
COMPETITORS = [{"name": "Salesforce", "domain": "salesforce.com"}, {"name": "Pipedrive"}]


class TestQueriesAndCitations:
    """Tests for query extraction and citation detection."""

    @pytest.mark.asyncio
    async def test_extract_queries(self, client: AsyncClient) -> None:
        """FAQ questions come back first with their source."""
        response = await client.post(
            "/v1/queries/extract", json={"content": "## FAQ\n\nQ: Which CRM is best?\n"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["queries"][0]["query"] == "Which CRM is best?"
        assert data["queries"][0]["source"] == "faq"

    @pytest.mark.asyncio
    async def test_detect_citation(self, client: AsyncClient) -> None:
        """A named brand in a numbered list is cited with a position."""
        response = await client.post(
            "/v1/citations/detect",
            json={
                "text": "1. Salesforce\n2. HubSpot is excellent.",
                "brand": HUBSPOT,
                "competitors": COMPETITORS,
            },
        )

        assert response.status_code == 200
        citation = response.json()["citation"]
        assert citation["cited"] is True
        assert citation["citation_type"] == "exact_name"
        assert citation["position"] == 2
        assert citation["competitors_mentioned"] == ["Salesforce"]

    @pytest.mark.asyncio
    async def test_detect_requires_brand_name(self, client: AsyncClient) -> None:
        """An empty brand name is rejected by the schema."""
        response = await client.post(
            "/v1/citations/detect", json={"text": "x", "brand": {"name": ""}}
        )

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "brand.name"


class TestScoring:
    """Tests for the scoring endpoints."""

    @pytest.mark.asyncio
    async def test_structural_includes_breakdown(self, client: AsyncClient) -> None:
        """The structural score carries factors and a printable breakdown."""
        response = await client.post(
            "/v1/scoring/structural",
            json={"content": "## FAQ\n\nQ: Which CRM is best?\n", "brand_name": "HubSpot"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["factors"]["has_faq_section"] is True
        assert "STRUCTURAL SCORE" in data["breakdown"]

    @pytest.mark.asyncio
    async def test_validate(
        self, client: AsyncClient, mock_providers: list[MockProvider]
    ) -> None:
        """Cited by one of two providers at position 1 with praise: 75."""
        response = await client.post(
            "/v1/scoring/validate",
            json={"content": "## FAQ\n\nQ: Which CRM is best?\n", "brand": HUBSPOT},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 75
        assert data["total_pairs"] == 2
        assert all(len(p.calls) == 1 for p in mock_providers)

    @pytest.mark.asyncio
    async def test_score_skip_validation(
        self, client: AsyncClient, mock_providers: list[MockProvider]
    ) -> None:
        """Skipping validation makes no provider calls."""
        response = await client.post(
            "/v1/scoring/score",
            json={"content": "", "brand": HUBSPOT, "skip_validation": True},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["overall"] == 15
        assert data["citation_validation"]["score"] == 0
        assert data["recommendations"][0]["priority"] == "critical"
        assert all(p.calls == [] for p in mock_providers)


class TestCompetitive:
    """Tests for competitive analysis."""

    @pytest.mark.asyncio
    async def test_analyze(self, client: AsyncClient) -> None:
        """Each competitor gets a profile."""
        response = await client.post(
            "/v1/competitive/analyze",
            json={
                "brand": HUBSPOT,
                "competitors": COMPETITORS,
                "queries": [{"text": "CRM tools"}],
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["brand_citation_rate"] == 50
        assert [c["name"] for c in data["competitors"]] == ["Salesforce", "Pipedrive"]
        assert data["failures"] == []

    @pytest.mark.asyncio
    async def test_requires_queries_or_keywords(self, client: AsyncClient) -> None:
        """Nothing to probe is a validation error."""
        response = await client.post("/v1/competitive/analyze", json={"brand": HUBSPOT})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "validation_error"
        assert error["details"] == {"field": "queries"}

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client: AsyncClient) -> None:
        """Providers outside the registry are rejected."""
        response = await client.post(
            "/v1/competitive/analyze",
            json={"brand": HUBSPOT, "keywords": ["crm"], "providers": ["perplexity"]},
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "providers"}

    @pytest.mark.asyncio
    async def test_competitor_patterns(
        self, client: AsyncClient, mock_providers: list[MockProvider]
    ) -> None:
        """The named provider is asked about the competitor's citations."""
        response = await client.post(
            "/v1/competitive/patterns",
            json={
                "competitor": COMPETITORS[0],
                "responses": ["1. Salesforce for enterprises"],
                "provider": "google",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "google"
        assert data["patterns"] == ["Salesforce leads the market."]
        assert mock_providers[0].calls == []

    @pytest.mark.asyncio
    async def test_competitor_patterns_default_provider(self, client: AsyncClient) -> None:
        """Without a provider the first registered one is asked."""
        response = await client.post(
            "/v1/competitive/patterns",
            json={"competitor": COMPETITORS[0], "responses": ["Salesforce leads."]},
        )

        assert response.json()["provider"] == "openai"

    @pytest.mark.asyncio
    async def test_competitor_patterns_need_responses(self, client: AsyncClient) -> None:
        """At least one answer text is required."""
        response = await client.post(
            "/v1/competitive/patterns", json={"competitor": COMPETITORS[0], "responses": []}
        )

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "responses"


class TestGraphAndMonitoring:
    """Tests for graph analytics and batch runs."""

    @pytest.mark.asyncio
    async def test_stats_on_empty_graph(self, client: AsyncClient) -> None:
        """A fresh graph holds only provider nodes."""
        response = await client.get("/v1/graph/stats")

        assert response.status_code == 200
        assert response.json()["providers"] == 5
        assert response.json()["citations"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("view", ["paths", "providers", "trajectory", "aliases"])
    async def test_unknown_entity(self, client: AsyncClient, view: str) -> None:
        """Every entity view answers 404 for an unknown name."""
        response = await client.get(f"/v1/graph/entities/Nobody/{view}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_run_batch_records_into_graph(self, client: AsyncClient) -> None:
        """A recorded batch shows up in the graph views."""
        response = await client.post(
            "/v1/monitoring/run",
            json={"brand": HUBSPOT, "competitors": COMPETITORS, "probes": [{"text": "CRM tools"}]},
        )

        assert response.status_code == 200
        assert response.json()["completed"] == 1

        stats = (await client.get("/v1/graph/stats")).json()
        assert stats["citations"] == 6
        assert stats["competition_edges"] == 2

        providers = (await client.get("/v1/graph/entities/HubSpot/providers")).json()
        assert providers["entity"]["id"] == "entity-hubspot"
        assert [p["provider"] for p in providers["providers"]] == ["openai", "google"]

        competition = (await client.get("/v1/graph/competition")).json()
        assert competition["count"] == 2

    @pytest.mark.asyncio
    async def test_run_batch_without_recording(self, client: AsyncClient) -> None:
        """record=false leaves the graph untouched."""
        await client.post(
            "/v1/monitoring/run",
            json={"brand": HUBSPOT, "probes": [{"text": "CRM tools"}], "record": False},
        )

        stats = (await client.get("/v1/graph/stats")).json()
        assert stats["citations"] == 0

    @pytest.mark.asyncio
    async def test_run_batch_requires_probes(self, client: AsyncClient) -> None:
        """An empty probe list fails schema validation."""
        response = await client.post("/v1/monitoring/run", json={"brand": HUBSPOT, "probes": []})

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "probes"

    @pytest.mark.asyncio
    async def test_jobs(self, client: AsyncClient) -> None:
        """No jobs are scheduled by default; unknown ids are 404."""
        listing = await client.get("/v1/monitoring/jobs")
        assert listing.json() == {"jobs": [], "count": 0}

        response = await client.post("/v1/monitoring/jobs/nightly/run")
        assert response.status_code == 404


class TestAlerts:
    """Tests for the alert endpoints."""

    async def _record_batch(self, client: AsyncClient) -> dict:
        response = await client.post(
            "/v1/monitoring/run", json={"brand": HUBSPOT, "probes": [{"text": "CRM tools"}]}
        )
        return response.json()

    @pytest.mark.asyncio
    async def test_batch_raises_and_lists_alerts(
        self, client: AsyncClient, settings: Settings
    ) -> None:
        """A recorded batch runs the checks; alerts can be read and deleted."""
        settings.alerts.cost_spike_threshold = 0.0

        run = await self._record_batch(client)
        assert run["alerts"] == 1

        listing = (await client.get("/v1/alerts", params={"brand": "HubSpot"})).json()
        assert listing["count"] == 1
        alert = listing["alerts"][0]
        assert alert["type"] == "cost-spike"
        assert alert["is_read"] is False

        updated = await client.put(f"/v1/alerts/{alert['id']}", json={"is_read": True})
        assert updated.json()["is_read"] is True
        unread = await client.get("/v1/alerts", params={"brand": "HubSpot", "unread": True})
        assert unread.json()["count"] == 0

        deleted = await client.delete(f"/v1/alerts/{alert['id']}")
        assert deleted.json() == {"deleted": alert["id"]}
        missing = await client.delete(f"/v1/alerts/{alert['id']}")
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_check_and_read_all(self, client: AsyncClient, settings: Settings) -> None:
        """A manual check does not repeat today's alert; read-all clears the rest."""
        settings.alerts.cost_spike_threshold = 0.0
        await self._record_batch(client)

        check = await client.post("/v1/alerts/check", json={"brand": "HubSpot"})
        assert check.status_code == 200
        assert check.json()["count"] == 0

        read_all = await client.post("/v1/alerts/read-all", json={"brand": "HubSpot"})
        assert read_all.json() == {"updated": 1}

    @pytest.mark.asyncio
    async def test_unknown_brand(self, client: AsyncClient) -> None:
        """Brands missing from the graph are 404."""
        listing = await client.get("/v1/alerts", params={"brand": "Nobody"})
        check = await client.post("/v1/alerts/check", json={"brand": "Nobody"})

        assert listing.status_code == 404
        assert check.status_code == 404

    @pytest.mark.asyncio
    async def test_brand_is_required(self, client: AsyncClient) -> None:
        """The brand query parameter is mandatory."""
        response = await client.get("/v1/alerts")

        assert response.status_code == 422
        assert response.json()["error"]["field"] == "brand"
