"""Health check endpoints."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.deps import GraphDep, RegistryDep, SettingsDep

router = APIRouter(tags=["Health"])

_server_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="healthy or degraded (no providers enabled)")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    uptime_seconds: int
    env: str
    providers: list[str] = Field(..., description="Enabled answer providers")
    graph_backend: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    settings: SettingsDep, registry: RegistryDep, graph: GraphDep
) -> HealthResponse:
    """
    Basic health check.

    Degraded when no answer provider is configured, since probing endpoints
    will answer 503 in that state.
    """
    from api.main import VERSION

    providers = registry.names()
    return HealthResponse(
        status="healthy" if providers else "degraded",
        timestamp=datetime.now(UTC).isoformat(),
        version=VERSION,
        uptime_seconds=int(time.time() - _server_start_time),
        env=settings.env,
        providers=providers,
        graph_backend=type(graph.store).__name__,
    )
