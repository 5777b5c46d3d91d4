from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_services, serialize_job
from docvault.ingestion import Services

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("")
def list_jobs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    services: Services = Depends(get_services),
):
    jobs = services.tracker.recent(limit=limit, offset=offset)
    return {"jobs": [serialize_job(job) for job in jobs], "count": len(jobs)}


@router.get("/active")
def list_active_jobs(services: Services = Depends(get_services)):
    jobs = services.tracker.active()
    return {"jobs": [serialize_job(job) for job in jobs], "count": len(jobs)}


@router.get("/{job_id}")
def get_job(job_id: str, services: Services = Depends(get_services)):
    job = services.tracker.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return serialize_job(job)


@router.post("/{job_id}/cancel")
def cancel_job(job_id: str, services: Services = Depends(get_services)):
    job = services.tracker.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    if job.status.is_terminal:
        raise HTTPException(status_code=400, detail=f"Job {job_id} is already {job.status.value}")
    return serialize_job(services.tracker.cancel(job_id))


@router.delete("")
def purge_jobs(older_than_hours: int = Query(168, ge=0), services: Services = Depends(get_services)):
    removed = services.tracker.purge_older_than(timedelta(hours=older_than_hours))
    return {"deleted": removed}
