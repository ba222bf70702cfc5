"""Alert endpoints: list, check, mark read and delete."""

from fastapi import APIRouter, Query

from api.deps import AlertEngineDep, AlertLogDep, GateDep, GraphDep
from api.schemas.alerts import AlertBrandRequest, AlertUpdate
from api.schemas.responses import ERROR_RESPONSES

router = APIRouter(prefix="/alerts", tags=["alerts"], responses=ERROR_RESPONSES)


@router.get("")
async def list_alerts(
    log: AlertLogDep,
    graph: GraphDep,
    brand: str = Query(..., min_length=1, description="Canonical name or alias"),
    unread: bool = Query(False, description="Only unread alerts"),
    limit: int = Query(20, ge=1, le=200),
) -> dict:
    """Alerts for a brand, newest first."""
    entity = await graph.get_entity(brand)
    alerts = log.list(entity.canonical_name, unread_only=unread, limit=limit)
    return {"alerts": [a.to_dict() for a in alerts], "count": len(alerts)}


@router.post("/check")
async def check_alerts(body: AlertBrandRequest, engine: AlertEngineDep, gate: GateDep) -> dict:
    """Run every alert check for a brand now."""
    raised = await engine.run_checks(body.brand, gate.spent_today())
    return {"alerts": [a.to_dict() for a in raised], "count": len(raised)}


@router.post("/read-all")
async def mark_all_read(body: AlertBrandRequest, log: AlertLogDep, graph: GraphDep) -> dict:
    entity = await graph.get_entity(body.brand)
    return {"updated": log.mark_all_read(entity.canonical_name)}


@router.put("/{alert_id}")
async def update_alert(alert_id: str, body: AlertUpdate, log: AlertLogDep) -> dict:
    return log.mark_read(alert_id, body.is_read).to_dict()


@router.delete("/{alert_id}")
async def delete_alert(alert_id: str, log: AlertLogDep) -> dict:
    log.delete(alert_id)
    return {"deleted": alert_id}
