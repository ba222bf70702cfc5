"""Run a set of saved probes through the orchestrator in one batch."""

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

import structlog

from api.exceptions import CitabilityError, NoProvidersEnabledError
from engine.citation.matcher import KnownEntity
from engine.graph.ingest import ingest_probe_results
from engine.graph.knowledge_graph import KnowledgeGraph
from engine.monitoring.alerts import AlertEngine
from engine.observation.orchestrator import ProbeBatch, ProbeOrchestrator
from engine.observation.prompts import ProbeCategory
from engine.observation.providers import AnswerProvider

logger = structlog.get_logger(__name__)


@dataclass
class ProbeSpec:
    """A saved probe: query text plus the category selecting its prompt."""

    query: str
    category: ProbeCategory = ProbeCategory.BEST_OF
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass
class ProbeError:
    probe_id: str
    error: str

    def to_dict(self) -> dict:
        return {"probe_id": self.probe_id, "error": self.error}


@dataclass
class BatchRunResult:
    """Outcome counts for one batch.

    A probe is skipped when every provider was vetoed before the call,
    failed when no provider returned an answer, completed otherwise.
    """

    total_probes: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    total_cost: float = 0.0
    duration_ms: float = 0.0
    errors: list[ProbeError] = field(default_factory=list)
    batch: ProbeBatch = field(default_factory=ProbeBatch)
    run_id: str = field(default_factory=lambda: f"run-{uuid.uuid4().hex[:12]}")
    alerts: int = 0  # Alerts raised after the run

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "total_probes": self.total_probes,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_cost": round(self.total_cost, 6),
            "duration_ms": round(self.duration_ms, 2),
            "errors": [e.to_dict() for e in self.errors],
            "alerts": self.alerts,
        }


class BatchRunner:
    """Runs probes one after another, fanning each out across providers."""

    def __init__(
        self,
        orchestrator: ProbeOrchestrator,
        graph: KnowledgeGraph | None = None,
        alerts: AlertEngine | None = None,
    ):
        self.orchestrator = orchestrator
        self.graph = graph
        self.alerts = alerts  # Only consulted when the run is recorded in a graph

    async def run(
        self,
        probes: Sequence[ProbeSpec],
        brand: KnownEntity,
        competitors: Sequence[KnownEntity] = (),
        providers: Sequence[AnswerProvider] | None = None,
    ) -> BatchRunResult:
        """
        Execute every probe against the providers the gate currently allows.

        Args:
            probes: Probes to run
            brand: Brand to detect
            competitors: Competitors to detect
            providers: Providers to use (default: every registered provider)

        Returns:
            BatchRunResult with counts, cost and per-probe errors
        """
        start = time.perf_counter()
        result = BatchRunResult(total_probes=len(probes))
        active = list(providers) if providers is not None else self.orchestrator.registry.enabled()

        if not active:
            logger.warning("batch_run_without_providers", probes=len(probes))
            result.duration_ms = (time.perf_counter() - start) * 1000
            return result

        for probe in probes:
            available = [p for p in active if self.orchestrator.gate.allow(p.name)]
            if not available:
                result.skipped += 1
                continue

            try:
                batch = await self.orchestrator.probe(
                    probe.query, probe.category, brand, competitors, available
                )
            except NoProvidersEnabledError as e:
                result.failed += 1
                result.errors.append(ProbeError(probe.id, str(e)))
                continue

            result.batch.extend(batch)
            result.total_cost += batch.total_cost
            for failure in batch.failures:
                result.errors.append(ProbeError(probe.id, f"{failure.provider}: {failure.message}"))

            if batch.results:
                result.completed += 1
            else:
                result.failed += 1

            if self.graph is not None and batch.results:
                report = await ingest_probe_results(
                    self.graph, brand, competitors, batch.results, result.run_id
                )
                for error in report.errors:
                    result.errors.append(ProbeError(probe.id, error))

        if self.graph is not None and self.alerts is not None and result.completed:
            await self._check_alerts(brand, result)

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "batch_run_completed",
            brand=brand.name,
            total=result.total_probes,
            completed=result.completed,
            failed=result.failed,
            skipped=result.skipped,
            cost=round(result.total_cost, 6),
        )
        return result

    async def _check_alerts(self, brand: KnownEntity, result: BatchRunResult) -> None:
        try:
            raised = await self.alerts.run_checks(
                brand.name, self.orchestrator.gate.spent_today()
            )
        except CitabilityError as e:
            logger.warning("alert_checks_failed", brand=brand.name, error=e.message)
            result.errors.append(ProbeError("alerts", e.message))
            return
        result.alerts = len(raised)
