"""V1 API router - aggregates all versioned endpoints."""

from fastapi import APIRouter

from api.routers import alerts, citations, competitive, graph, monitoring, queries, scoring

router = APIRouter()

router.include_router(queries.router)
router.include_router(citations.router)
router.include_router(scoring.router)
router.include_router(competitive.router)
router.include_router(graph.router)
router.include_router(monitoring.router)
router.include_router(alerts.router)


@router.get("/")
async def v1_root() -> dict[str, str]:
    """V1 API root endpoint."""
    return {
        "version": "1",
        "status": "active",
    }
