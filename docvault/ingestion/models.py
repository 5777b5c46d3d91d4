from __future__ import annotations

import threading
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utcnow() -> datetime:
    # Naive UTC so values round-trip through SQLite DateTime columns unchanged.
    return datetime.now(timezone.utc).replace(tzinfo=None)


_id_lock = threading.Lock()
_last_millis = 0
_sequence = 0


def new_id() -> str:
    """
    Lexicographically sortable unique id: millisecond timestamp, a per-millisecond
    sequence, then random bits. Ids generated in one process never go backwards.
    """
    global _last_millis, _sequence
    with _id_lock:
        millis = int(time.time() * 1000)
        if millis <= _last_millis:
            millis = _last_millis
            _sequence += 1
        else:
            _sequence = 0
        _last_millis = millis
        seq = _sequence
    return f"{millis:012x}{seq:04x}{uuid.uuid4().hex[:10]}"


class JobType(str, Enum):
    INGESTION = "ingestion"
    CLEANUP = "cleanup"
    WORDCLOUD = "wordcloud"
    REINDEX = "search_reindex"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


@dataclass
class DocumentRecord:
    id: str
    name: str
    hash: str
    path: str
    folder: str
    document_type: str
    full_text: str = ""
    url: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class JobRecord:
    id: str
    type: JobType
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_step: str = ""
    message: str = ""
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class WordFrequency:
    word: str
    frequency: int
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class WordCloudMetadata:
    last_calculation: Optional[datetime] = None
    documents_processed: int = 0
    words_indexed: int = 0
    version: int = 0


@dataclass
class IngestionTally:
    total: int = 0
    processed: int = 0
    duplicates: int = 0
    errors: int = 0

    def as_result(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class CleanupTally:
    scanned: int = 0
    deleted: int = 0
    moved: int = 0

    def as_result(self) -> Dict[str, int]:
        return asdict(self)
