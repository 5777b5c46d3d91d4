"""
Background triggers for ingestion sweeps.

`IngressScheduler` runs a sweep at startup and then on a fixed interval on a
daemon thread. `IngressWatcher` listens for new files in the ingress tree and
asks the scheduler for an early sweep once events have settled.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .job_queue import JobRunner
from .jobs import JobTracker
from .models import JobType

logger = logging.getLogger(__name__)


class IngressScheduler:
    def __init__(
        self,
        runner: JobRunner,
        tracker: JobTracker,
        interval: timedelta = timedelta(minutes=10),
        retention: Optional[timedelta] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.runner = runner
        self.tracker = tracker
        self.interval = interval
        self.retention = retention
        self.log = logger or logging.getLogger(__name__)
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> Optional[str]:
        """
        Run one sweep unless another is still in flight. Returns the job id,
        or None when the tick was skipped.
        """
        if not self._running.acquire(blocking=False):
            self.log.info("Previous ingestion sweep still running, skipping this tick")
            return None
        try:
            if self.retention is not None:
                self.tracker.purge_older_than(self.retention)
            job = self.runner.run_new(JobType.INGESTION, message="Scheduled ingress sweep")
            return job.id
        finally:
            self._running.release()

    def trigger(self) -> None:
        """Wake the loop for an early sweep."""
        self._wake.set()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:  # noqa: BLE001
                self.log.exception("Scheduled ingestion sweep failed")
            self._wake.wait(self.interval.total_seconds())
            self._wake.clear()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="ingress-scheduler", daemon=True)
        self._thread.start()
        self.log.info("Ingress scheduler started, sweeping every %s", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        self.log.info("Ingress scheduler stopped")


class _IngressEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "IngressWatcher"):
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify()

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.notify()


class IngressWatcher:
    """
    Watchdog observer on the ingress root. Bursts of events collapse into a
    single `on_change` call fired `debounce_seconds` after the last one.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[], None],
        debounce_seconds: float = 2.0,
        logger: Optional[logging.Logger] = None,
    ):
        self.root = Path(root)
        self.on_change = on_change
        self.debounce_seconds = debounce_seconds
        self.log = logger or logging.getLogger(__name__)
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._observer = None

    def notify(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.debounce_seconds, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self.log.info("New files detected in %s, requesting ingestion", self.root)
        self.on_change()

    def start(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._observer = Observer()
        self._observer.schedule(_IngressEventHandler(self), str(self.root), recursive=True)
        self._observer.start()
        self.log.info("Watching %s for new files", self.root)

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
