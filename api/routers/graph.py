"""Knowledge graph analytics endpoints."""

from fastapi import APIRouter, Query

from api.deps import GraphDep
from api.schemas.responses import ErrorResponse

router = APIRouter(
    prefix="/graph",
    tags=["graph"],
    responses={404: {"model": ErrorResponse, "description": "Unknown entity"}},
)


@router.get("/stats")
async def stats(graph: GraphDep) -> dict:
    """Node and relationship counts."""
    return (await graph.stats()).to_dict()


@router.get("/competition")
async def competition(graph: GraphDep) -> dict:
    """Brand/competitor pairs with cited counts on each side."""
    edges = await graph.competitive_edges()
    return {"edges": [e.to_dict() for e in edges], "count": len(edges)}


@router.get("/entities/{name}/paths")
async def citation_paths(name: str, graph: GraphDep) -> dict:
    """Every citation event for an entity, newest first."""
    entity = await graph.get_entity(name)
    paths = await graph.citation_paths(name)
    return {"entity": entity.to_dict(), "paths": [p.to_dict() for p in paths]}


@router.get("/entities/{name}/providers")
async def provider_breakdown(name: str, graph: GraphDep) -> dict:
    """Citation rate per provider and its search backend."""
    entity = await graph.get_entity(name)
    breakdown = await graph.provider_breakdown(name)
    return {"entity": entity.to_dict(), "providers": [b.to_dict() for b in breakdown]}


@router.get("/entities/{name}/trajectory")
async def trajectory(
    name: str,
    graph: GraphDep,
    days: int = Query(30, ge=1, le=365, description="Trailing window in days"),
) -> dict:
    """Daily citation stats per provider."""
    entity = await graph.get_entity(name)
    series = await graph.citation_trajectory(name, days)
    return {
        "entity": entity.to_dict(),
        "days": days,
        "providers": [s.to_dict() for s in series],
    }


@router.get("/entities/{name}/aliases")
async def aliases(name: str, graph: GraphDep) -> dict:
    """Naming variants of an entity and the provider that introduced each."""
    entity = await graph.get_entity(name)
    variants = await graph.entity_aliases(name)
    return {"entity": entity.to_dict(), "aliases": [v.to_dict() for v in variants]}
