"""FastAPI dependencies for dependency injection.

Shared services live on ``app.state`` and are built by ``create_app``.
Tests replace them there.
"""

from typing import Annotated

from fastapi import Depends, Request

from api.config import Settings
from api.exceptions import ValidationError
from engine.graph.knowledge_graph import KnowledgeGraph
from engine.monitoring.alerts import AlertEngine, AlertLog
from engine.monitoring.scheduler import ProbeScheduler
from engine.observation.budget import RequestGate
from engine.observation.orchestrator import ProbeOrchestrator
from engine.observation.providers import AnswerProvider, ProviderRegistry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> ProviderRegistry:
    return request.app.state.registry


def get_gate(request: Request) -> RequestGate:
    return request.app.state.gate


def get_graph(request: Request) -> KnowledgeGraph:
    return request.app.state.graph


def get_alert_log(request: Request) -> AlertLog:
    return request.app.state.alerts


def get_scheduler(request: Request) -> ProbeScheduler:
    return request.app.state.scheduler


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
RegistryDep = Annotated[ProviderRegistry, Depends(get_registry)]
GateDep = Annotated[RequestGate, Depends(get_gate)]
GraphDep = Annotated[KnowledgeGraph, Depends(get_graph)]
AlertLogDep = Annotated[AlertLog, Depends(get_alert_log)]
SchedulerDep = Annotated[ProbeScheduler, Depends(get_scheduler)]


def get_orchestrator(registry: RegistryDep, gate: GateDep) -> ProbeOrchestrator:
    """Orchestrator over the app's providers and request gate."""
    return ProbeOrchestrator(registry, gate=gate)


OrchestratorDep = Annotated[ProbeOrchestrator, Depends(get_orchestrator)]


def get_alert_engine(graph: GraphDep, settings: SettingsDep, log: AlertLogDep) -> AlertEngine:
    """Alert checks over the app's graph, recording into the shared alert log."""
    return AlertEngine(graph, settings.alerts, log)


AlertEngineDep = Annotated[AlertEngine, Depends(get_alert_engine)]


def select_providers(
    registry: ProviderRegistry, names: list[str] | None
) -> list[AnswerProvider] | None:
    """Providers named in a request, or None for every registered provider."""
    if names is None:
        return None
    unknown = [n for n in names if n not in registry]
    if unknown:
        raise ValidationError(
            f"Unknown or disabled providers: {', '.join(unknown)}", field="providers"
        )
    return registry.subset(names)
