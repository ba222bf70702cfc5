"""Scheduled monitoring jobs built on the application's shared services.

Handlers look services up on ``app.state`` when they run, so a job always
runs against the current registry, budget, graph and alert log.
"""

import re
from collections.abc import Sequence

import structlog
from fastapi import FastAPI

from api.deps import select_providers
from engine.citation.matcher import KnownEntity
from engine.monitoring.alerts import AlertEngine
from engine.monitoring.batch_runner import BatchRunner, ProbeSpec
from engine.monitoring.scheduler import JobHandler, ScheduledJob, ScheduleFrequency
from engine.observation.orchestrator import ProbeOrchestrator
from engine.observation.prompts import default_queries_for_keywords

logger = structlog.get_logger(__name__)


def batch_job(
    app: FastAPI,
    probes: Sequence[ProbeSpec],
    brand: KnownEntity,
    competitors: Sequence[KnownEntity] = (),
    provider_names: list[str] | None = None,
) -> JobHandler:
    """Handler running a recorded batch followed by the brand's alert checks."""

    async def handler() -> None:
        state = app.state
        runner = BatchRunner(
            ProbeOrchestrator(state.registry, gate=state.gate),
            state.graph,
            AlertEngine(state.graph, state.settings.alerts, state.alerts),
        )
        await runner.run(
            probes, brand, competitors, select_providers(state.registry, provider_names)
        )

    return handler


def configured_brand_job_id(brand_name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", brand_name.lower()).strip("-")
    return f"brand-{slug or 'default'}"


def schedule_configured_brand(app: FastAPI) -> ScheduledJob | None:
    """
    Schedule monitoring for the brand named in ``settings.general``.

    Queries come from ``settings.monitoring.keywords``. Nothing is scheduled
    without a brand name and at least one keyword.
    """
    settings = app.state.settings
    general = settings.general
    queries = default_queries_for_keywords(settings.monitoring.keywords)
    if not general.brand_name or not queries:
        logger.info("configured_brand_not_scheduled", brand=general.brand_name or None)
        return None

    brand = KnownEntity(general.brand_name, general.brand_domain or None)
    competitors = [KnownEntity(name) for name in general.competitors]
    probes = [ProbeSpec(q.text, q.category) for q in queries]
    return app.state.scheduler.schedule(
        configured_brand_job_id(general.brand_name),
        f"Monitor {general.brand_name}",
        batch_job(app, probes, brand, competitors),
        ScheduleFrequency(settings.monitoring.default_frequency),
    )
