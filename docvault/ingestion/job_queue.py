from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional, Sequence

from redis import Redis
from rq import Queue, Worker

from .clients import HttpOcrClient, HttpPageRenderer
from .errors import JobNotFoundError
from .extraction import FitzPageRenderer, TextExtractor
from .indexing import NoopIndexer, SearchIndexer, WhooshIndexer
from .jobs import JobTracker
from .maintenance import MaintenanceWorker
from .models import JobRecord, JobType
from .repository import DocumentRepository, InMemoryDocumentRepository, SqlAlchemyDocumentRepository
from .storage import LocalDocumentStorage, StoragePaths
from .wordcloud import WordFrequencyIndexer
from .worker import IngestionWorker

logger = logging.getLogger(__name__)

MEMORY_DATABASE_URL = "memory://"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class WorkerConfig:
    database_url: str = "sqlite+pysqlite:///./data/docvault.db"
    ingress_path: str = "./data/ingress"
    document_path: str = "./data/documents"
    new_document_folder: str = "New"
    preserve_structure: bool = True
    whoosh_index_dir: Optional[str] = "./data/whoosh"
    ocr_service_url: Optional[str] = None
    pdf_service_url: Optional[str] = None
    render_dpi: int = 150
    collaborator_timeout: float = 120.0
    ingress_interval_minutes: int = 10
    job_retention_hours: int = 168
    redis_url: str = "redis://localhost:6379/0"
    queue_name: str = "docvault-jobs"
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            ingress_path=os.getenv("INGRESS_PATH", cls.ingress_path),
            document_path=os.getenv("DOCUMENT_PATH", cls.document_path),
            new_document_folder=os.getenv("NEW_DOCUMENT_FOLDER", cls.new_document_folder),
            preserve_structure=_env_bool("INGRESS_PRESERVE_STRUCTURE", True),
            whoosh_index_dir=os.getenv("WHOOSH_DIR", cls.whoosh_index_dir) or None,
            ocr_service_url=os.getenv("OCR_SERVICE_URL") or None,
            pdf_service_url=os.getenv("PDF_SERVICE_URL") or None,
            render_dpi=int(os.getenv("RENDER_DPI", "150")),
            collaborator_timeout=float(os.getenv("COLLABORATOR_TIMEOUT", "120")),
            ingress_interval_minutes=int(os.getenv("INGRESS_INTERVAL", "10")),
            job_retention_hours=int(os.getenv("JOB_RETENTION_HOURS", "168")),
            redis_url=os.getenv("REDIS_URL", cls.redis_url),
            queue_name=os.getenv("QUEUE_NAME", cls.queue_name),
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            log_file=os.getenv("LOG_FILE") or None,
        )

    @property
    def job_retention(self) -> timedelta:
        return timedelta(hours=self.job_retention_hours)


class JobRunner:
    """
    Creates jobs and executes them by type. `start` only records a pending
    job; `run` does the work and is what background tasks, the RQ worker and
    the scheduler call. Any exception escaping a run marks the job failed.
    """

    def __init__(
        self,
        tracker: JobTracker,
        ingestion: IngestionWorker,
        maintenance: MaintenanceWorker,
        logger: Optional[logging.Logger] = None,
    ):
        self.tracker = tracker
        self.ingestion = ingestion
        self.maintenance = maintenance
        self.log = logger or logging.getLogger(__name__)

    def start(self, job_type: JobType, message: str = "") -> JobRecord:
        return self.tracker.create(job_type, message=message)

    def run(self, job_id: str, paths: Optional[Sequence[str]] = None) -> JobRecord:
        job = self.tracker.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status.is_terminal:
            self.log.info("Job %s is already %s, not running it", job_id, job.status.value)
            return job

        try:
            if job.type == JobType.INGESTION:
                self.ingestion.run_ingestion(job_id, [Path(p) for p in paths] if paths is not None else None)
            elif job.type == JobType.CLEANUP:
                self.maintenance.run_cleanup(job_id)
            elif job.type == JobType.WORDCLOUD:
                self.maintenance.run_wordcloud(job_id)
            elif job.type == JobType.REINDEX:
                self.maintenance.run_reindex(job_id)
            else:
                raise ValueError(f"Unknown job type {job.type}")
        except Exception as exc:  # noqa: BLE001
            self.log.exception("Job %s crashed", job_id)
            self.tracker.fail(job_id, str(exc) or exc.__class__.__name__)
        return self.tracker.get(job_id)

    def run_new(self, job_type: JobType, message: str = "", paths: Optional[Sequence[str]] = None) -> JobRecord:
        job = self.start(job_type, message=message)
        return self.run(job.id, paths=paths)


@dataclass
class Services:
    config: WorkerConfig
    repository: DocumentRepository
    storage: LocalDocumentStorage
    search_indexer: SearchIndexer
    word_indexer: WordFrequencyIndexer
    tracker: JobTracker
    maintenance: MaintenanceWorker
    runner: JobRunner


def make_repository(database_url: str) -> DocumentRepository:
    if database_url == MEMORY_DATABASE_URL:
        return InMemoryDocumentRepository()
    return SqlAlchemyDocumentRepository(database_url)


def make_extractor(config: WorkerConfig) -> TextExtractor:
    ocr_client = None
    if config.ocr_service_url:
        ocr_client = HttpOcrClient(config.ocr_service_url, timeout=config.collaborator_timeout)
    if config.pdf_service_url:
        renderer = HttpPageRenderer(config.pdf_service_url, timeout=config.collaborator_timeout)
    else:
        renderer = FitzPageRenderer(dpi=config.render_dpi)
    return TextExtractor(ocr_client=ocr_client, renderer=renderer)


def build_services(
    config: WorkerConfig,
    repository: Optional[DocumentRepository] = None,
    extractor: Optional[TextExtractor] = None,
    search_indexer: Optional[SearchIndexer] = None,
) -> Services:
    """
    Wire every component from one config. Explicit collaborators win over
    the config so tests can swap in fakes.
    """
    repo = repository or make_repository(config.database_url)
    storage = LocalDocumentStorage(
        StoragePaths(
            Path(config.ingress_path),
            Path(config.document_path),
            new_document_folder=config.new_document_folder,
            preserve_structure=config.preserve_structure,
        )
    )
    storage.ensure_base_dirs()
    if search_indexer is None:
        search_indexer = WhooshIndexer(Path(config.whoosh_index_dir)) if config.whoosh_index_dir else NoopIndexer()
    word_indexer = WordFrequencyIndexer(repo)
    tracker = JobTracker(repo)
    ingestion = IngestionWorker(
        repository=repo,
        storage=storage,
        extractor=extractor or make_extractor(config),
        tracker=tracker,
        search_indexer=search_indexer,
        word_indexer=word_indexer,
    )
    maintenance = MaintenanceWorker(
        repository=repo,
        storage=storage,
        tracker=tracker,
        search_indexer=search_indexer,
        word_indexer=word_indexer,
    )
    return Services(
        config=config,
        repository=repo,
        storage=storage,
        search_indexer=search_indexer,
        word_indexer=word_indexer,
        tracker=tracker,
        maintenance=maintenance,
        runner=JobRunner(tracker, ingestion, maintenance),
    )


def run_job(job_id: str, config: WorkerConfig, paths: Optional[Sequence[str]] = None) -> None:
    """
    RQ task entrypoint. Creates all required components and executes a job.
    """
    services = build_services(config)
    services.runner.run(job_id, paths=paths)


class RQJobQueue:
    """
    Redis-backed job queue using RQ. The queue pushes jobs to Redis and workers
    can be started by calling `work()` in a dedicated process.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "docvault-jobs"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue(self, job_id: str, config: WorkerConfig, paths: Optional[Sequence[str]] = None):
        """
        Enqueue a job. The RQ job id is the tracker's job id so a job is only queued once.
        """
        return self.queue.enqueue(run_job, job_id, config, paths, job_id=job_id, retry=None)

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)
