"""Batch probing and scheduled job endpoints."""

from fastapi import APIRouter, Request, status

from api.deps import (
    AlertEngineDep,
    GraphDep,
    OrchestratorDep,
    RegistryDep,
    SchedulerDep,
    select_providers,
)
from api.exceptions import NotFoundError, ValidationError
from api.jobs import batch_job
from api.schemas.competitive import BatchRunRequest, JobCreateRequest
from api.schemas.responses import ERROR_RESPONSES
from engine.monitoring.batch_runner import BatchRunner, ProbeSpec
from engine.observation.prompts import default_queries_for_keywords

router = APIRouter(prefix="/monitoring", tags=["monitoring"], responses=ERROR_RESPONSES)


@router.post("/run")
async def run_batch(
    body: BatchRunRequest,
    orchestrator: OrchestratorDep,
    registry: RegistryDep,
    graph: GraphDep,
    alerts: AlertEngineDep,
) -> dict:
    """Run probes now and, by default, record them and check the brand's alerts."""
    runner = (
        BatchRunner(orchestrator, graph, alerts) if body.record else BatchRunner(orchestrator)
    )
    result = await runner.run(
        [ProbeSpec(p.text, p.category) for p in body.probes],
        body.brand.to_entity(),
        [c.to_entity() for c in body.competitors],
        select_providers(registry, body.providers),
    )
    return result.to_dict()


@router.get("/jobs")
async def list_jobs(scheduler: SchedulerDep) -> dict:
    """Scheduled jobs and their last-run state."""
    jobs = scheduler.list_jobs()
    return {"jobs": [j.to_dict() for j in jobs], "count": len(jobs)}


@router.post("/jobs", status_code=status.HTTP_201_CREATED)
async def create_job(
    body: JobCreateRequest, request: Request, registry: RegistryDep, scheduler: SchedulerDep
) -> dict:
    """Schedule a recurring batch, replacing any job with the same id."""
    probes = [ProbeSpec(p.text, p.category) for p in body.probes]
    if not probes:
        queries = default_queries_for_keywords(body.keywords)
        probes = [ProbeSpec(q.text, q.category) for q in queries]
    if not probes:
        raise ValidationError("Provide probes or keywords to generate them", field="probes")
    select_providers(registry, body.providers)

    job = scheduler.schedule(
        body.id,
        body.name,
        batch_job(
            request.app,
            probes,
            body.brand.to_entity(),
            [c.to_entity() for c in body.competitors],
            body.providers,
        ),
        body.frequency,
        body.hour,
    )
    return job.to_dict()


@router.delete("/jobs/{job_id}")
async def delete_job(job_id: str, scheduler: SchedulerDep) -> dict:
    if not scheduler.stop(job_id):
        raise NotFoundError("Job", job_id)
    return {"deleted": job_id}


@router.post("/jobs/{job_id}/run")
async def run_job(job_id: str, scheduler: SchedulerDep) -> dict:
    """Run a scheduled job immediately."""
    started = await scheduler.run_now(job_id)
    job = scheduler.get(job_id)
    if job is None:
        raise NotFoundError("Job", job_id)
    return {"started": started, "job": job.to_dict()}
