from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse

from api.dependencies import get_services, serialize_document
from docvault.ingestion import JobType, Services
from docvault.ingestion.extraction import is_supported

router = APIRouter(prefix="/documents", tags=["documents"])


def _get_document(services: Services, doc_id: str):
    doc = services.repository.get_document(doc_id)
    if not doc:
        raise HTTPException(status_code=404, detail=f"Document not found: {doc_id}")
    return doc


@router.get("")
def list_documents(limit: int = Query(50, ge=1, le=500), services: Services = Depends(get_services)):
    docs = services.repository.list_newest_documents(limit)
    return {"documents": [serialize_document(doc) for doc in docs], "count": len(docs)}


@router.get("/{doc_id}")
def get_document(doc_id: str, services: Services = Depends(get_services)):
    return serialize_document(_get_document(services, doc_id), include_text=True)


@router.get("/{doc_id}/file")
def get_document_file(doc_id: str, services: Services = Depends(get_services)):
    doc = _get_document(services, doc_id)
    path = Path(doc.path)
    if not path.exists():
        raise HTTPException(status_code=404, detail=f"File missing on disk for document {doc_id}")
    return FileResponse(path, filename=doc.name)


@router.delete("/{doc_id}")
def delete_document(doc_id: str, services: Services = Depends(get_services)):
    if not services.maintenance.delete_document(doc_id):
        raise HTTPException(status_code=404, detail=f"Document not found: {doc_id}")
    return {"status": "deleted", "id": doc_id}


@router.post("/upload")
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    path: str = Form(""),
    services: Services = Depends(get_services),
):
    filename = Path(file.filename or "").name
    if not filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name")
    if not is_supported(Path(filename)):
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {Path(filename).suffix or filename}")
    payload = await file.read()
    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    saved = services.storage.save_upload(filename, payload, subpath=path)
    job = services.runner.start(JobType.INGESTION, message=f"Upload of {filename}")
    background_tasks.add_task(services.runner.run, job.id, [str(saved)])
    return {"message": "Upload received, ingestion started", "job_id": job.id, "path": saved.as_posix()}
