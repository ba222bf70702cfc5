"""Tests for scheduled monitoring jobs."""

import pytest
from httpx import AsyncClient

from api.config import Settings
from api.jobs import configured_brand_job_id, schedule_configured_brand
from api.main import create_app

HUBSPOT = {"name": "HubSpot", "domain": "hubspot.com"}


class TestJobEndpoints:
    """Tests for creating, running and deleting jobs."""

    @pytest.mark.asyncio
    async def test_create_run_delete(self, client: AsyncClient) -> None:
        """A created job runs on demand, records into the graph and can be deleted."""
        created = await client.post(
            "/v1/monitoring/jobs",
            json={
                "id": "nightly",
                "name": "Nightly HubSpot",
                "brand": HUBSPOT,
                "keywords": ["crm"],
                "frequency": "daily",
                "hour": 6,
            },
        )
        try:
            assert created.status_code == 201
            job = created.json()
            assert (job["id"], job["frequency"], job["hour"]) == ("nightly", "daily", 6)

            listing = (await client.get("/v1/monitoring/jobs")).json()
            assert listing["count"] == 1

            run = (await client.post("/v1/monitoring/jobs/nightly/run")).json()
            assert run["started"] is True
            assert run["job"]["run_count"] == 1
            assert run["job"]["last_error"] is None

            stats = (await client.get("/v1/graph/stats")).json()
            # 3 queries from one keyword x 2 providers
            assert stats["citations"] == 6
        finally:
            deleted = await client.delete("/v1/monitoring/jobs/nightly")

        assert deleted.json() == {"deleted": "nightly"}
        assert (await client.get("/v1/monitoring/jobs")).json()["count"] == 0

    @pytest.mark.asyncio
    async def test_delete_unknown(self, client: AsyncClient) -> None:
        """Unknown job ids are 404."""
        response = await client.delete("/v1/monitoring/jobs/nightly")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_queries_or_keywords(self, client: AsyncClient) -> None:
        """A job with nothing to run is rejected."""
        response = await client.post(
            "/v1/monitoring/jobs", json={"id": "empty", "name": "Empty", "brand": HUBSPOT}
        )

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"field": "probes"}

    @pytest.mark.asyncio
    async def test_unknown_provider(self, client: AsyncClient) -> None:
        """Providers are checked when the job is created."""
        response = await client.post(
            "/v1/monitoring/jobs",
            json={
                "id": "nightly",
                "name": "Nightly",
                "brand": HUBSPOT,
                "probes": [{"text": "CRM tools"}],
                "providers": ["perplexity"],
            },
        )

        assert response.status_code == 400
        assert (await client.get("/v1/monitoring/jobs")).json()["count"] == 0


class TestConfiguredBrand:
    """Tests for the job scheduled from settings at startup."""

    def test_job_id(self) -> None:
        """Job ids are slugs of the brand name."""
        assert configured_brand_job_id("Acme Corp.") == "brand-acme-corp"

    @pytest.mark.asyncio
    async def test_scheduled_from_settings(self, settings: Settings) -> None:
        """Brand, competitors and keywords come from the general and monitoring sections."""
        settings.general.brand_name = "HubSpot"
        settings.general.competitors = ["Salesforce"]
        settings.monitoring.keywords = ["crm"]
        settings.monitoring.default_frequency = "daily"
        app = create_app(settings)

        job = schedule_configured_brand(app)
        try:
            assert job is not None
            assert job.id == "brand-hubspot"
            assert job.name == "Monitor HubSpot"
            assert job.frequency.value == "daily"
            assert app.state.scheduler.get("brand-hubspot") is job
        finally:
            app.state.scheduler.stop_all()

    @pytest.mark.asyncio
    async def test_nothing_without_keywords(self, settings: Settings) -> None:
        """A brand name alone does not schedule anything."""
        settings.general.brand_name = "HubSpot"
        app = create_app(settings)

        assert schedule_configured_brand(app) is None
        assert app.state.scheduler.list_jobs() == []
