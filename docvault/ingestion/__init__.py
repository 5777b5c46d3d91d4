"""
Ingestion subsystem exports.
"""

from .clients import HttpOcrClient, HttpPageRenderer
from .errors import (
    CollaboratorError,
    DigestMismatchError,
    DocumentInFlightError,
    DuplicateDocumentError,
    IngestionError,
    JobNotFoundError,
    RelocationError,
    UnsupportedFileTypeError,
)
from .extraction import ExtractionResult, FitzPageRenderer, OcrClient, PageRenderer, TextExtractor
from .indexing import NoopIndexer, SearchIndexer, WhooshIndexer
from .job_queue import JobRunner, RQJobQueue, Services, WorkerConfig, build_services, run_job
from .jobs import JobTracker
from .maintenance import MaintenanceWorker
from .models import (
    CleanupTally,
    DocumentRecord,
    IngestionTally,
    JobRecord,
    JobStatus,
    JobType,
    WordCloudMetadata,
    WordFrequency,
)
from .repository import DocumentRepository, InMemoryDocumentRepository, SqlAlchemyDocumentRepository
from .scheduler import IngressScheduler, IngressWatcher
from .storage import AtomicRelocator, LocalDocumentStorage, StoragePaths, compute_digest
from .wordcloud import WordFrequencyIndexer, WordTokenizer
from .worker import IngestionWorker

__all__ = [
    "AtomicRelocator",
    "CleanupTally",
    "CollaboratorError",
    "DigestMismatchError",
    "DocumentRecord",
    "DocumentRepository",
    "DocumentInFlightError",
    "DuplicateDocumentError",
    "ExtractionResult",
    "FitzPageRenderer",
    "HttpOcrClient",
    "HttpPageRenderer",
    "InMemoryDocumentRepository",
    "IngestionError",
    "IngestionTally",
    "IngestionWorker",
    "IngressScheduler",
    "IngressWatcher",
    "JobNotFoundError",
    "JobRecord",
    "JobRunner",
    "JobStatus",
    "JobTracker",
    "JobType",
    "LocalDocumentStorage",
    "MaintenanceWorker",
    "NoopIndexer",
    "OcrClient",
    "PageRenderer",
    "RQJobQueue",
    "RelocationError",
    "SearchIndexer",
    "Services",
    "SqlAlchemyDocumentRepository",
    "StoragePaths",
    "TextExtractor",
    "UnsupportedFileTypeError",
    "WhooshIndexer",
    "WordCloudMetadata",
    "WordFrequency",
    "WordFrequencyIndexer",
    "WordTokenizer",
    "WorkerConfig",
    "build_services",
    "compute_digest",
    "run_job",
]
