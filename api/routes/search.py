from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from api.dependencies import get_services
from docvault.ingestion import JobType, Services

router = APIRouter(prefix="/search", tags=["search"])


@router.get("")
def search_documents(term: str, limit: int = Query(20, ge=1, le=100), services: Services = Depends(get_services)):
    if not term or not term.strip():
        raise HTTPException(status_code=400, detail="Search term must not be empty")
    hits = services.search_indexer.search(term.strip(), limit=limit)
    return {"term": term, "hits": hits, "count": len(hits)}


@router.post("/reindex")
def reindex(background_tasks: BackgroundTasks, services: Services = Depends(get_services)):
    job = services.runner.start(JobType.REINDEX, message="Search reindex requested")
    background_tasks.add_task(services.runner.run, job.id)
    return {"message": "Search reindex started", "job_id": job.id}
