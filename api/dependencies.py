from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict

from docvault.ingestion import DocumentRecord, JobRecord, Services, WorkerConfig, build_services


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    return WorkerConfig.from_env()


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services(get_config())


def _iso(value):
    return value.isoformat() if value else None


def serialize_document(doc: DocumentRecord, include_text: bool = False) -> Dict[str, Any]:
    payload = {
        "id": doc.id,
        "name": doc.name,
        "hash": doc.hash,
        "path": doc.path,
        "folder": doc.folder,
        "document_type": doc.document_type,
        "url": doc.url,
        "created_at": _iso(doc.created_at),
    }
    if include_text:
        payload["full_text"] = doc.full_text
    return payload


def serialize_job(job: JobRecord) -> Dict[str, Any]:
    payload = {
        "id": job.id,
        "type": job.type.value,
        "status": job.status.value,
        "progress": job.progress,
        "current_step": job.current_step,
        "message": job.message,
        "result": job.result,
        "created_at": _iso(job.created_at),
        "updated_at": _iso(job.updated_at),
        "started_at": _iso(job.started_at),
        "completed_at": _iso(job.completed_at),
    }
    if job.error:
        payload["error"] = job.error
    return payload
