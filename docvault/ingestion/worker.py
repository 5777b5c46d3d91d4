from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from .errors import DocumentInFlightError, DuplicateDocumentError
from .extraction import TextExtractor
from .indexing import NoopIndexer, SearchIndexer
from .jobs import JobTracker
from .models import DocumentRecord, IngestionTally, new_id
from .repository import DocumentRepository
from .storage import LocalDocumentStorage, compute_digest
from .wordcloud import WordFrequencyIndexer

DOCUMENT_URL = "/documents/{doc_id}/file"

# Share of the progress bar spent on files; the rest covers the word cloud.
FILE_PROGRESS_SHARE = 90
FILE_STEPS = 3


class IngestionWorker:
    """
    Drives an ingestion job over a batch of files, one file at a time:

    1. fingerprint the file and drop it if the content is already stored
       (a record whose file is not in place yet leaves the source alone);
    2. create the record, then move the bytes with the atomic relocator,
       deleting the record again if the move fails;
    3. extract text, persist it on the record and register the file route.

    A fault inside one file is caught at that file's boundary and tallied;
    the batch keeps going. The worker holds no job state of its own, every
    progress update goes through the tracker.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        storage: LocalDocumentStorage,
        extractor: TextExtractor,
        tracker: JobTracker,
        search_indexer: Optional[SearchIndexer] = None,
        word_indexer: Optional[WordFrequencyIndexer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.repo = repository
        self.storage = storage
        self.extractor = extractor
        self.tracker = tracker
        self.search_indexer = search_indexer or NoopIndexer()
        self.word_indexer = word_indexer or WordFrequencyIndexer(repository)
        self.log = logger or logging.getLogger(__name__)

    def run_ingestion(self, job_id: str, paths: Optional[Sequence[Path]] = None) -> IngestionTally:
        self.tracker.mark_running(job_id, step="Scanning ingress folder", message="Scanning ingress folder")
        files = [Path(p) for p in paths] if paths is not None else self.storage.scan_ingress()
        tally = IngestionTally(total=len(files))
        if not files:
            self.log.info("No files to process in ingress folder")
            self.tracker.complete(job_id, tally.as_result(), message="No files found")
            return tally

        self.log.info("Found %s files to process for job %s", len(files), job_id)
        for index, path in enumerate(files):
            if self.tracker.is_cancelled(job_id):
                self.log.info("Job %s cancelled after %s of %s files", job_id, index, len(files))
                self.storage.remove_empty_dirs()
                self.tracker.record_partial_result(job_id, tally.as_result())
                return tally
            self._run_file(job_id, path, index, len(files), tally)

        self.storage.remove_empty_dirs()

        self.tracker.update_progress(job_id, 95, "Updating word cloud")
        try:
            self.word_indexer.recalculate()
        except Exception:  # noqa: BLE001
            self.log.exception("Word cloud recalculation failed after ingestion")

        self.tracker.complete(
            job_id,
            tally.as_result(),
            message=f"Ingested {tally.processed} of {tally.total} files",
        )
        self.log.info(
            "Ingestion job %s completed: processed=%s total=%s errors=%s duplicates=%s",
            job_id,
            tally.processed,
            tally.total,
            tally.errors,
            tally.duplicates,
        )
        return tally

    def _run_file(self, job_id: str, path: Path, index: int, total: int, tally: IngestionTally) -> None:
        try:
            self.ingest_file(job_id, path, index, total)
        except DuplicateDocumentError as exc:
            self.log.info("%s, source removed", exc)
            tally.duplicates += 1
        except Exception:  # noqa: BLE001
            self.log.exception("Failed to process document %s", path)
            tally.errors += 1
        else:
            tally.processed += 1

    def _report_step(self, job_id: str, path: Path, index: int, total: int, step: int, label: str) -> None:
        span = FILE_PROGRESS_SHARE / total
        progress = int(index * span + span * (step - 1) / FILE_STEPS)
        self.tracker.update_progress(job_id, progress, f"[{index + 1}/{total}] {path.name} - Step {step}: {label}")

    def ingest_file(self, job_id: str, path: Path, index: int = 0, total: int = 1) -> DocumentRecord:
        path = Path(path)
        self.extractor.ensure_supported(path)

        self._report_step(job_id, path, index, total, 1, "Calculating hash")
        digest = compute_digest(path)
        existing = self.repo.get_document_by_hash(digest)
        if existing:
            self._discard_duplicate(path, digest, existing)
        doc = self._create_initial_document(path, digest)
        self.log.info("Step 1 complete: record %s created for %s", doc.id, path.name)

        self._report_step(job_id, path, index, total, 2, "Moving file")
        try:
            self.storage.relocate(path, Path(doc.path), digest)
        except Exception:
            self.repo.delete_document(doc.id)
            raise
        self.log.info("Step 2 complete: %s moved to %s and verified", path.name, doc.path)

        self._report_step(job_id, path, index, total, 3, "Extracting text")
        self._extract_and_index(doc)
        return doc

    def _discard_duplicate(self, path: Path, digest: str, existing: DocumentRecord) -> None:
        # The source is only dropped once the stored copy is verifiably elsewhere.
        stored = Path(existing.path)
        if not stored.is_file() or stored.samefile(path):
            raise DocumentInFlightError(path, digest, existing.id)
        try:
            path.unlink()
        except OSError as exc:
            self.log.error("Failed to remove duplicate file %s: %s", path, exc)
        raise DuplicateDocumentError(path, digest, existing_id=existing.id)

    def _create_initial_document(self, path: Path, digest: str) -> DocumentRecord:
        destination = self.storage.unique_destination(
            path, is_taken=lambda candidate: self.repo.get_document_by_path(candidate.as_posix()) is not None
        )
        doc = DocumentRecord(
            id=new_id(),
            name=path.name,
            hash=digest,
            path=destination.as_posix(),
            folder=destination.parent.as_posix(),
            document_type=path.suffix.lower(),
        )
        self.repo.save_document(doc)
        return doc

    def _extract_and_index(self, doc: DocumentRecord) -> None:
        # Nothing in this step may fail the file: the record and bytes are already in place.
        try:
            text = self.extractor.extract(Path(doc.path)).text
        except Exception:  # noqa: BLE001
            self.log.exception("Text extraction failed for %s, storing without text", doc.name)
            text = ""

        try:
            if not self.repo.update_document_text(doc.id, text):
                self.log.error("Document %s vanished before its text could be stored", doc.id)
        except Exception:  # noqa: BLE001
            self.log.exception("Failed to update document text, but document %s is still saved", doc.id)

        url = DOCUMENT_URL.format(doc_id=doc.id)
        try:
            self.repo.update_document_url(doc.id, url)
        except Exception:  # noqa: BLE001
            self.log.exception("Unable to store retrieval url for document %s", doc.id)

        doc.full_text = text
        doc.url = url
        try:
            self.search_indexer.index_document(doc)
        except Exception:  # noqa: BLE001
            self.log.exception("Unable to add document %s to the search index", doc.id)
        try:
            self.word_indexer.update_for_document(doc)
        except Exception:  # noqa: BLE001
            self.log.exception("Unable to update word counts for document %s", doc.id)
        self.log.info("Step 3 complete: %s characters of text stored for %s", len(text), doc.name)
