from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends

from api.dependencies import get_services
from docvault.ingestion import JobType, Services

router = APIRouter(tags=["admin"])


@router.post("/ingest")
def ingest_now(background_tasks: BackgroundTasks, services: Services = Depends(get_services)):
    job = services.runner.start(JobType.INGESTION, message="Manual ingestion requested")
    background_tasks.add_task(services.runner.run, job.id)
    return {"message": "Ingestion started", "job_id": job.id}


@router.post("/clean")
def clean_now(background_tasks: BackgroundTasks, services: Services = Depends(get_services)):
    job = services.runner.start(JobType.CLEANUP, message="Cleanup requested")
    background_tasks.add_task(services.runner.run, job.id)
    return {"message": "Cleanup started", "job_id": job.id}
