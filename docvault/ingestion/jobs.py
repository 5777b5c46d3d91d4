from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from .errors import JobNotFoundError
from .models import JobRecord, JobStatus, JobType, new_id, utcnow
from .repository import DocumentRepository

logger = logging.getLogger(__name__)


class JobTracker:
    """
    Lifecycle and progress of long-running jobs, persisted through the
    repository on every mutation.

    pending -> running -> completed | failed | cancelled. Terminal states are
    final: later transitions or progress updates are logged and ignored.
    `started_at` is stamped on the first move to running and `completed_at`
    on the first terminal transition. Progress is clamped to 0..100 and
    never moves backwards.

    Transitions are written with `save_job_if_active`, so a cancel that lands
    between another writer's load and save is never overwritten.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        logger: Optional[logging.Logger] = None,
        clock: Callable = utcnow,
    ):
        self.repo = repository
        self.log = logger or logging.getLogger(__name__)
        self.clock = clock

    def create(self, job_type: JobType, message: str = "") -> JobRecord:
        now = self.clock()
        job = JobRecord(id=new_id(), type=JobType(job_type), message=message, created_at=now, updated_at=now)
        self.repo.save_job(job)
        self.log.info("Created %s job %s", job.type.value, job.id)
        return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self.repo.get_job(job_id)

    def _load(self, job_id: str) -> JobRecord:
        job = self.repo.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _save(self, job: JobRecord) -> JobRecord:
        job.updated_at = self.clock()
        if self.repo.save_job_if_active(job):
            return job
        # Another writer finished the job between our load and this write.
        stored = self._load(job.id)
        self.log.warning("Dropping stale write for job %s, already %s", job.id, stored.status.value)
        return stored

    def _ignore_if_terminal(self, job: JobRecord, action: str) -> bool:
        if job.status.is_terminal:
            self.log.warning("Ignoring %s for job %s, already %s", action, job.id, job.status.value)
            return True
        return False

    def mark_running(self, job_id: str, step: str = "", message: Optional[str] = None) -> JobRecord:
        job = self._load(job_id)
        if self._ignore_if_terminal(job, "mark_running"):
            return job
        job.status = JobStatus.RUNNING
        if job.started_at is None:
            job.started_at = self.clock()
        job.current_step = step
        if message is not None:
            job.message = message
        return self._save(job)

    def update_progress(self, job_id: str, progress: int, step: str) -> JobRecord:
        job = self._load(job_id)
        if self._ignore_if_terminal(job, "progress update"):
            return job
        job.progress = max(job.progress, min(100, max(0, int(progress))))
        job.current_step = step
        return self._save(job)

    def _finish(self, job: JobRecord, status: JobStatus) -> JobRecord:
        job.status = status
        if job.completed_at is None:
            job.completed_at = self.clock()
        return self._save(job)

    def complete(self, job_id: str, result: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> JobRecord:
        job = self._load(job_id)
        if self._ignore_if_terminal(job, "complete"):
            return job
        job.progress = 100
        job.result = result
        if message is not None:
            job.message = message
        self.log.info("Job %s completed: %s", job_id, result)
        return self._finish(job, JobStatus.COMPLETED)

    def fail(self, job_id: str, error: str) -> JobRecord:
        job = self._load(job_id)
        if self._ignore_if_terminal(job, "fail"):
            return job
        job.error = error
        job.message = f"Failed: {error}"
        self.log.error("Job %s failed: %s", job_id, error)
        return self._finish(job, JobStatus.FAILED)

    def cancel(self, job_id: str, message: str = "Cancelled by user") -> JobRecord:
        job = self._load(job_id)
        if self._ignore_if_terminal(job, "cancel"):
            return job
        job.message = message
        self.log.info("Job %s cancelled", job_id)
        return self._finish(job, JobStatus.CANCELLED)

    def record_partial_result(self, job_id: str, result: Dict[str, Any]) -> JobRecord:
        """Attach a result to a cancelled job without changing its status."""
        job = self._load(job_id)
        job.result = result
        job.updated_at = self.clock()
        self.repo.save_job(job)
        return job

    def is_cancelled(self, job_id: str) -> bool:
        job = self.repo.get_job(job_id)
        return bool(job and job.status == JobStatus.CANCELLED)

    def recent(self, limit: int = 20, offset: int = 0) -> List[JobRecord]:
        return self.repo.list_recent_jobs(limit=limit, offset=max(0, offset))

    def active(self) -> List[JobRecord]:
        return self.repo.list_active_jobs()

    def purge_older_than(self, age: timedelta) -> int:
        cutoff = self.clock() - age
        removed = self.repo.delete_jobs_completed_before(cutoff)
        if removed:
            self.log.info("Purged %s jobs finished before %s", removed, cutoff.isoformat())
        return removed
