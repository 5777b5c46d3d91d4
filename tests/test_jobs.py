from datetime import datetime, timedelta

import pytest

from docvault.ingestion import (
    InMemoryDocumentRepository,
    JobNotFoundError,
    JobStatus,
    JobTracker,
    JobType,
    SqlAlchemyDocumentRepository,
)


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def clocked_tracker(clock):
    return JobTracker(InMemoryDocumentRepository(), clock=clock)


def test_progress_scenario_reaches_completed(clocked_tracker, clock):
    job = clocked_tracker.create(JobType.INGESTION)
    assert job.status == JobStatus.PENDING and job.progress == 0

    clocked_tracker.mark_running(job.id, step="Scanning")
    clock.advance(seconds=1)
    clocked_tracker.update_progress(job.id, 40, "file 1")
    clocked_tracker.update_progress(job.id, 70, "file 2")
    snapshot = clocked_tracker.get(job.id)
    assert snapshot.status == JobStatus.RUNNING
    assert snapshot.progress == 70 and snapshot.current_step == "file 2"

    clock.advance(seconds=1)
    done = clocked_tracker.complete(job.id, {"total": 2, "processed": 2, "duplicates": 0, "errors": 0})
    assert done.status == JobStatus.COMPLETED
    assert done.progress == 100
    assert done.started_at == datetime(2024, 1, 1, 12, 0, 0)
    assert done.completed_at == datetime(2024, 1, 1, 12, 0, 2)
    assert done.result["processed"] == 2


def test_progress_is_clamped_and_never_decreases(tracker):
    job = tracker.create(JobType.INGESTION)
    tracker.mark_running(job.id)

    tracker.update_progress(job.id, 60, "a")
    tracker.update_progress(job.id, 30, "b")
    assert tracker.get(job.id).progress == 60

    tracker.update_progress(job.id, 250, "c")
    assert tracker.get(job.id).progress == 100


def test_terminal_states_are_final(tracker):
    job = tracker.create(JobType.CLEANUP)
    tracker.mark_running(job.id)
    tracker.complete(job.id, {"scanned": 0, "deleted": 0, "moved": 0})

    tracker.fail(job.id, "late failure")
    tracker.update_progress(job.id, 10, "late")
    tracker.mark_running(job.id)

    snapshot = tracker.get(job.id)
    assert snapshot.status == JobStatus.COMPLETED
    assert snapshot.error is None
    assert snapshot.progress == 100


def test_fail_records_error_and_message(tracker):
    job = tracker.create(JobType.WORDCLOUD)
    tracker.mark_running(job.id)

    failed = tracker.fail(job.id, "database is locked")

    assert failed.status == JobStatus.FAILED
    assert failed.error == "database is locked"
    assert failed.message == "Failed: database is locked"
    assert failed.completed_at is not None


def test_cancel_pending_job(tracker):
    job = tracker.create(JobType.INGESTION)

    cancelled = tracker.cancel(job.id)

    assert cancelled.status == JobStatus.CANCELLED
    assert tracker.is_cancelled(job.id)
    assert tracker.active() == []


def test_unknown_job_raises_not_found(tracker):
    assert tracker.get("missing") is None
    with pytest.raises(JobNotFoundError):
        tracker.update_progress("missing", 10, "x")


def test_recent_orders_newest_first_with_offset(clocked_tracker, clock):
    ids = []
    for _ in range(3):
        ids.append(clocked_tracker.create(JobType.INGESTION).id)
        clock.advance(minutes=1)

    assert [j.id for j in clocked_tracker.recent(limit=2)] == [ids[2], ids[1]]
    assert [j.id for j in clocked_tracker.recent(limit=2, offset=2)] == [ids[0]]


def test_purge_removes_only_old_terminal_jobs(clocked_tracker, clock):
    old = clocked_tracker.create(JobType.INGESTION)
    clocked_tracker.complete(old.id)
    stuck = clocked_tracker.create(JobType.INGESTION)
    clocked_tracker.mark_running(stuck.id)
    clock.advance(hours=48)
    fresh = clocked_tracker.create(JobType.CLEANUP)
    clocked_tracker.fail(fresh.id, "boom")

    removed = clocked_tracker.purge_older_than(timedelta(hours=24))

    assert removed == 1
    assert clocked_tracker.get(old.id) is None
    assert clocked_tracker.get(stuck.id) is not None
    assert clocked_tracker.get(fresh.id) is not None


class CancelAfterLoad:
    """Cancels the job from a second tracker right after the next load returns."""

    cancel_next_load = False

    def get_job(self, job_id):
        job = super().get_job(job_id)
        if self.cancel_next_load and job is not None:
            self.cancel_next_load = False
            JobTracker(self).cancel(job_id, message="Cancelled from the API")
        return job


class CancellingMemoryRepository(CancelAfterLoad, InMemoryDocumentRepository):
    pass


class CancellingSqlRepository(CancelAfterLoad, SqlAlchemyDocumentRepository):
    pass


@pytest.fixture(params=["memory", "sqlite"])
def cancelling_repo(request, tmp_path):
    if request.param == "memory":
        return CancellingMemoryRepository()
    return CancellingSqlRepository(f"sqlite+pysqlite:///{tmp_path / 'jobs.db'}")


def test_cancel_between_load_and_save_is_kept(cancelling_repo):
    tracker = JobTracker(cancelling_repo)
    job = tracker.create(JobType.INGESTION)
    tracker.mark_running(job.id, step="Scanning")

    cancelling_repo.cancel_next_load = True
    returned = tracker.update_progress(job.id, 40, "file 1")

    stored = tracker.get(job.id)
    assert returned.status == JobStatus.CANCELLED
    assert stored.status == JobStatus.CANCELLED
    assert stored.message == "Cancelled from the API"
    assert stored.completed_at is not None
    assert stored.progress == 0
    completed_at = stored.completed_at

    tracker.complete(job.id, {"total": 1, "processed": 1, "duplicates": 0, "errors": 0})

    final = tracker.get(job.id)
    assert final.status == JobStatus.CANCELLED
    assert final.completed_at == completed_at
    assert final.result is None


def test_completion_racing_a_cancel_keeps_first_terminal_state(cancelling_repo):
    tracker = JobTracker(cancelling_repo)
    job = tracker.create(JobType.CLEANUP)
    tracker.mark_running(job.id)

    cancelling_repo.cancel_next_load = True
    tracker.complete(job.id, {"scanned": 3, "deleted": 0, "moved": 0})

    final = tracker.get(job.id)
    assert final.status == JobStatus.CANCELLED
    assert final.progress != 100
    assert tracker.is_cancelled(job.id)
