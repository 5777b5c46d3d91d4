from __future__ import annotations

import json
import threading
from copy import deepcopy
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, create_engine, delete, select, update
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import (
    TERMINAL_STATUSES,
    DocumentRecord,
    JobRecord,
    JobStatus,
    JobType,
    WordCloudMetadata,
    WordFrequency,
    utcnow,
)

Base = declarative_base()


class DocumentModel(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True)
    name = Column(String)
    hash = Column(String, unique=True, index=True)
    path = Column(String, unique=True)
    folder = Column(String, index=True)
    document_type = Column(String)
    full_text = Column(Text)
    url = Column(String)
    created_at = Column(DateTime)


class JobModel(Base):
    __tablename__ = "jobs"
    id = Column(String, primary_key=True)
    type = Column(Enum(JobType))
    status = Column(Enum(JobStatus), index=True)
    progress = Column(Integer)
    current_step = Column(String)
    message = Column(String)
    error = Column(Text)
    result_json = Column(Text)
    created_at = Column(DateTime, index=True)
    updated_at = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)


class WordFrequencyModel(Base):
    __tablename__ = "word_frequencies"
    word = Column(String, primary_key=True)
    frequency = Column(Integer)
    updated_at = Column(DateTime)


class WordCloudMetadataModel(Base):
    __tablename__ = "word_cloud_metadata"
    id = Column(Integer, primary_key=True)
    last_calculation = Column(DateTime)
    documents_processed = Column(Integer)
    words_indexed = Column(Integer)
    version = Column(Integer)


class DocumentRepository:
    """
    Abstract persistence boundary for documents, jobs and word frequencies.
    Implementations can target SQLite/Postgres or any other backing store.
    Every call is a self-contained write; the store is the only source of
    truth, so callers never cache records between calls.
    """

    # Document operations
    def get_document(self, doc_id: str) -> Optional[DocumentRecord]:
        raise NotImplementedError

    def get_document_by_hash(self, digest: str) -> Optional[DocumentRecord]:
        raise NotImplementedError

    def get_document_by_path(self, path: str) -> Optional[DocumentRecord]:
        raise NotImplementedError

    def save_document(self, doc: DocumentRecord) -> None:
        raise NotImplementedError

    def update_document_text(self, doc_id: str, full_text: str) -> bool:
        raise NotImplementedError

    def update_document_url(self, doc_id: str, url: str) -> bool:
        raise NotImplementedError

    def delete_document(self, doc_id: str) -> bool:
        raise NotImplementedError

    def list_documents(self) -> List[DocumentRecord]:
        raise NotImplementedError

    def list_newest_documents(self, limit: int) -> List[DocumentRecord]:
        raise NotImplementedError

    # Job operations
    def get_job(self, job_id: str) -> Optional[JobRecord]:
        raise NotImplementedError

    def save_job(self, job: JobRecord) -> None:
        raise NotImplementedError

    def save_job_if_active(self, job: JobRecord) -> bool:
        """
        Write `job` only while the stored copy is still pending or running.
        Returns False, leaving the store untouched, once another writer has
        moved the job to a terminal state.
        """
        raise NotImplementedError

    def list_recent_jobs(self, limit: int, offset: int = 0) -> List[JobRecord]:
        raise NotImplementedError

    def list_active_jobs(self) -> List[JobRecord]:
        raise NotImplementedError

    def delete_jobs_completed_before(self, cutoff: datetime) -> int:
        raise NotImplementedError

    # Word frequency operations
    def increment_word_frequencies(self, counts: Mapping[str, int]) -> None:
        raise NotImplementedError

    def replace_word_frequencies(self, counts: Mapping[str, int], documents_processed: int) -> WordCloudMetadata:
        raise NotImplementedError

    def top_words(self, limit: int) -> List[WordFrequency]:
        raise NotImplementedError

    def get_word_cloud_metadata(self) -> WordCloudMetadata:
        raise NotImplementedError


class InMemoryDocumentRepository(DocumentRepository):
    """
    Simple in-memory store for local runs and tests. It mirrors the DB shape
    and keeps copies of dataclasses to avoid cross-mutation between calls.
    """

    def __init__(self):
        self.documents: Dict[str, DocumentRecord] = {}
        self.jobs: Dict[str, JobRecord] = {}
        self._jobs_lock = threading.Lock()
        self.word_frequencies: Dict[str, WordFrequency] = {}
        self.word_cloud_metadata = WordCloudMetadata()

    def _clone(self, obj):
        return deepcopy(obj)

    def get_document(self, doc_id: str) -> Optional[DocumentRecord]:
        doc = self.documents.get(doc_id)
        return self._clone(doc) if doc else None

    def get_document_by_hash(self, digest: str) -> Optional[DocumentRecord]:
        for doc in self.documents.values():
            if doc.hash == digest:
                return self._clone(doc)
        return None

    def get_document_by_path(self, path: str) -> Optional[DocumentRecord]:
        for doc in self.documents.values():
            if doc.path == path:
                return self._clone(doc)
        return None

    def save_document(self, doc: DocumentRecord) -> None:
        for existing in self.documents.values():
            if existing.id == doc.id:
                continue
            if existing.hash == doc.hash or existing.path == doc.path:
                raise ValueError(f"Document {doc.id} conflicts with stored document {existing.id}")
        self.documents[doc.id] = self._clone(doc)

    def update_document_text(self, doc_id: str, full_text: str) -> bool:
        doc = self.documents.get(doc_id)
        if not doc:
            return False
        doc.full_text = full_text
        return True

    def update_document_url(self, doc_id: str, url: str) -> bool:
        doc = self.documents.get(doc_id)
        if not doc:
            return False
        doc.url = url
        return True

    def delete_document(self, doc_id: str) -> bool:
        return self.documents.pop(doc_id, None) is not None

    def list_documents(self) -> List[DocumentRecord]:
        return [self._clone(d) for d in sorted(self.documents.values(), key=lambda d: d.id)]

    def list_newest_documents(self, limit: int) -> List[DocumentRecord]:
        newest = sorted(self.documents.values(), key=lambda d: d.id, reverse=True)
        return [self._clone(d) for d in newest[:limit]]

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        job = self.jobs.get(job_id)
        return self._clone(job) if job else None

    def save_job(self, job: JobRecord) -> None:
        with self._jobs_lock:
            self.jobs[job.id] = self._clone(job)

    def save_job_if_active(self, job: JobRecord) -> bool:
        with self._jobs_lock:
            stored = self.jobs.get(job.id)
            if stored is None or stored.status.is_terminal:
                return False
            self.jobs[job.id] = self._clone(job)
            return True

    def list_recent_jobs(self, limit: int, offset: int = 0) -> List[JobRecord]:
        ordered = sorted(self.jobs.values(), key=lambda j: (j.created_at, j.id), reverse=True)
        return [self._clone(j) for j in ordered[offset : offset + limit]]

    def list_active_jobs(self) -> List[JobRecord]:
        ordered = sorted(self.jobs.values(), key=lambda j: (j.created_at, j.id), reverse=True)
        return [self._clone(j) for j in ordered if j.status.is_active]

    def delete_jobs_completed_before(self, cutoff: datetime) -> int:
        stale = [
            job_id
            for job_id, job in self.jobs.items()
            if job.status in TERMINAL_STATUSES and job.completed_at is not None and job.completed_at < cutoff
        ]
        for job_id in stale:
            del self.jobs[job_id]
        return len(stale)

    def increment_word_frequencies(self, counts: Mapping[str, int]) -> None:
        now = utcnow()
        for word, count in counts.items():
            entry = self.word_frequencies.get(word)
            if entry:
                entry.frequency += count
                entry.updated_at = now
            else:
                self.word_frequencies[word] = WordFrequency(word=word, frequency=count, updated_at=now)

    def replace_word_frequencies(self, counts: Mapping[str, int], documents_processed: int) -> WordCloudMetadata:
        now = utcnow()
        self.word_frequencies = {
            word: WordFrequency(word=word, frequency=count, updated_at=now) for word, count in counts.items()
        }
        self.word_cloud_metadata = WordCloudMetadata(
            last_calculation=now,
            documents_processed=documents_processed,
            words_indexed=len(counts),
            version=self.word_cloud_metadata.version + 1,
        )
        return self._clone(self.word_cloud_metadata)

    def top_words(self, limit: int) -> List[WordFrequency]:
        ranked = sorted(self.word_frequencies.values(), key=lambda w: (-w.frequency, w.word))
        return [self._clone(w) for w in ranked[:limit]]

    def get_word_cloud_metadata(self) -> WordCloudMetadata:
        return self._clone(self.word_cloud_metadata)


class SqlAlchemyDocumentRepository(DocumentRepository):
    """
    SQL-backed repository using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    # region Document operations
    def _to_document(self, model: DocumentModel) -> DocumentRecord:
        return DocumentRecord(
            id=model.id,
            name=model.name,
            hash=model.hash,
            path=model.path,
            folder=model.folder,
            document_type=model.document_type,
            full_text=model.full_text or "",
            url=model.url,
            created_at=model.created_at,
        )

    def get_document(self, doc_id: str) -> Optional[DocumentRecord]:
        with self._session() as session:
            model = session.get(DocumentModel, doc_id)
            return self._to_document(model) if model else None

    def get_document_by_hash(self, digest: str) -> Optional[DocumentRecord]:
        with self._session() as session:
            model = session.execute(select(DocumentModel).where(DocumentModel.hash == digest)).scalars().first()
            return self._to_document(model) if model else None

    def get_document_by_path(self, path: str) -> Optional[DocumentRecord]:
        with self._session() as session:
            model = session.execute(select(DocumentModel).where(DocumentModel.path == path)).scalars().first()
            return self._to_document(model) if model else None

    def save_document(self, doc: DocumentRecord) -> None:
        with self._session() as session:
            model = DocumentModel(
                id=doc.id,
                name=doc.name,
                hash=doc.hash,
                path=doc.path,
                folder=doc.folder,
                document_type=doc.document_type,
                full_text=doc.full_text,
                url=doc.url,
                created_at=doc.created_at,
            )
            session.merge(model)
            session.commit()

    def _update_document(self, doc_id: str, **values) -> bool:
        with self._session() as session:
            result = session.execute(update(DocumentModel).where(DocumentModel.id == doc_id).values(**values))
            session.commit()
            return result.rowcount > 0

    def update_document_text(self, doc_id: str, full_text: str) -> bool:
        return self._update_document(doc_id, full_text=full_text)

    def update_document_url(self, doc_id: str, url: str) -> bool:
        return self._update_document(doc_id, url=url)

    def delete_document(self, doc_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(DocumentModel).where(DocumentModel.id == doc_id))
            session.commit()
            return result.rowcount > 0

    def list_documents(self) -> List[DocumentRecord]:
        with self._session() as session:
            models = session.execute(select(DocumentModel).order_by(DocumentModel.id)).scalars().all()
            return [self._to_document(m) for m in models]

    def list_newest_documents(self, limit: int) -> List[DocumentRecord]:
        with self._session() as session:
            stmt = select(DocumentModel).order_by(DocumentModel.id.desc()).limit(limit)
            return [self._to_document(m) for m in session.execute(stmt).scalars().all()]

    # endregion

    # region Job operations
    def _to_job(self, model: JobModel) -> JobRecord:
        return JobRecord(
            id=model.id,
            type=model.type,
            status=model.status,
            progress=int(model.progress or 0),
            current_step=model.current_step or "",
            message=model.message or "",
            error=model.error,
            result=json.loads(model.result_json) if model.result_json else None,
            created_at=model.created_at,
            updated_at=model.updated_at,
            started_at=model.started_at,
            completed_at=model.completed_at,
        )

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        with self._session() as session:
            model = session.get(JobModel, job_id)
            return self._to_job(model) if model else None

    def _job_values(self, job: JobRecord) -> dict:
        return dict(
            type=job.type,
            status=job.status,
            progress=job.progress,
            current_step=job.current_step,
            message=job.message,
            error=job.error,
            result_json=json.dumps(job.result) if job.result is not None else None,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )

    def save_job(self, job: JobRecord) -> None:
        with self._session() as session:
            session.merge(JobModel(id=job.id, **self._job_values(job)))
            session.commit()

    def save_job_if_active(self, job: JobRecord) -> bool:
        with self._session() as session:
            stmt = (
                update(JobModel)
                .where(JobModel.id == job.id, JobModel.status.notin_(list(TERMINAL_STATUSES)))
                .values(**self._job_values(job))
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    def list_recent_jobs(self, limit: int, offset: int = 0) -> List[JobRecord]:
        with self._session() as session:
            stmt = (
                select(JobModel)
                .order_by(JobModel.created_at.desc(), JobModel.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return [self._to_job(m) for m in session.execute(stmt).scalars().all()]

    def list_active_jobs(self) -> List[JobRecord]:
        with self._session() as session:
            stmt = (
                select(JobModel)
                .where(JobModel.status.in_([JobStatus.PENDING, JobStatus.RUNNING]))
                .order_by(JobModel.created_at.desc(), JobModel.id.desc())
            )
            return [self._to_job(m) for m in session.execute(stmt).scalars().all()]

    def delete_jobs_completed_before(self, cutoff: datetime) -> int:
        with self._session() as session:
            stmt = delete(JobModel).where(
                JobModel.status.in_(list(TERMINAL_STATUSES)),
                JobModel.completed_at < cutoff,
            )
            result = session.execute(stmt)
            session.commit()
            return result.rowcount

    # endregion

    # region Word frequency operations
    def increment_word_frequencies(self, counts: Mapping[str, int]) -> None:
        now = utcnow()
        with self._session() as session:
            for word, count in counts.items():
                model = session.get(WordFrequencyModel, word)
                if model:
                    model.frequency = (model.frequency or 0) + count
                    model.updated_at = now
                else:
                    session.add(WordFrequencyModel(word=word, frequency=count, updated_at=now))
            session.commit()

    def replace_word_frequencies(self, counts: Mapping[str, int], documents_processed: int) -> WordCloudMetadata:
        now = utcnow()
        with self._session() as session:
            session.execute(delete(WordFrequencyModel))
            session.add_all(
                [WordFrequencyModel(word=word, frequency=count, updated_at=now) for word, count in counts.items()]
            )
            meta = session.get(WordCloudMetadataModel, 1)
            if meta is None:
                meta = WordCloudMetadataModel(id=1, version=0)
                session.add(meta)
            meta.last_calculation = now
            meta.documents_processed = documents_processed
            meta.words_indexed = len(counts)
            meta.version = (meta.version or 0) + 1
            session.commit()
            return self._to_metadata(meta)

    def top_words(self, limit: int) -> List[WordFrequency]:
        with self._session() as session:
            stmt = (
                select(WordFrequencyModel)
                .order_by(WordFrequencyModel.frequency.desc(), WordFrequencyModel.word.asc())
                .limit(limit)
            )
            return [
                WordFrequency(word=m.word, frequency=int(m.frequency or 0), updated_at=m.updated_at)
                for m in session.execute(stmt).scalars().all()
            ]

    def _to_metadata(self, model: WordCloudMetadataModel) -> WordCloudMetadata:
        return WordCloudMetadata(
            last_calculation=model.last_calculation,
            documents_processed=int(model.documents_processed or 0),
            words_indexed=int(model.words_indexed or 0),
            version=int(model.version or 0),
        )

    def get_word_cloud_metadata(self) -> WordCloudMetadata:
        with self._session() as session:
            model = session.get(WordCloudMetadataModel, 1)
            return self._to_metadata(model) if model else WordCloudMetadata()

    # endregion
