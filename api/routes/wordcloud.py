from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from api.dependencies import get_services
from docvault.ingestion import JobType, Services

router = APIRouter(prefix="/wordcloud", tags=["wordcloud"])


@router.get("")
def get_word_cloud(limit: int = Query(100, ge=1, le=500), services: Services = Depends(get_services)):
    words = services.word_indexer.top_words(limit)
    metadata = services.word_indexer.metadata()
    return {
        "words": [
            {"word": w.word, "frequency": w.frequency, "updated_at": w.updated_at.isoformat() if w.updated_at else None}
            for w in words
        ],
        "metadata": {
            "last_calculation": metadata.last_calculation.isoformat() if metadata.last_calculation else None,
            "documents_processed": metadata.documents_processed,
            "words_indexed": metadata.words_indexed,
            "version": metadata.version,
        },
        "count": len(words),
    }


@router.post("/recalculate")
def recalculate(background_tasks: BackgroundTasks, services: Services = Depends(get_services)):
    job = services.runner.start(JobType.WORDCLOUD, message="Word cloud recalculation requested")
    background_tasks.add_task(services.runner.run, job.id)
    return {"message": "Word cloud recalculation started", "job_id": job.id}
