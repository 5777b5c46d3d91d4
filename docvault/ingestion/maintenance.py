from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .extraction import is_supported
from .indexing import NoopIndexer, SearchIndexer
from .jobs import JobTracker
from .models import CleanupTally, WordCloudMetadata
from .repository import DocumentRepository
from .storage import LocalDocumentStorage
from .wordcloud import WordFrequencyIndexer


class MaintenanceWorker:
    """
    Housekeeping jobs that reconcile the catalogue with the documents tree:
    cleanup, word cloud recalculation and search reindexing. Like the
    ingestion worker it keeps no state and reports through the tracker.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        storage: LocalDocumentStorage,
        tracker: JobTracker,
        search_indexer: Optional[SearchIndexer] = None,
        word_indexer: Optional[WordFrequencyIndexer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.repo = repository
        self.storage = storage
        self.tracker = tracker
        self.search_indexer = search_indexer or NoopIndexer()
        self.word_indexer = word_indexer or WordFrequencyIndexer(repository)
        self.log = logger or logging.getLogger(__name__)

    def run_cleanup(self, job_id: str) -> CleanupTally:
        """
        Drop records whose stored file is gone, then send stored files that
        no record points at back to ingress so the next run picks them up.
        """
        self.tracker.mark_running(job_id, step="Fetching documents from database", message="Cleaning up storage")
        documents = self.repo.list_documents()
        tally = CleanupTally(scanned=len(documents))
        self.tracker.update_progress(job_id, 10, f"Checking {len(documents)} documents")

        for index, doc in enumerate(documents):
            if self.tracker.is_cancelled(job_id):
                self.log.info("Cleanup job %s cancelled after %s documents", job_id, index)
                self.tracker.record_partial_result(job_id, tally.as_result())
                return tally
            self.tracker.update_progress(
                job_id, 10 + int(index / len(documents) * 50), f"Checking document {index + 1}/{len(documents)}"
            )
            if not doc.path:
                self.log.warning("Document %s has no stored path, skipping", doc.id)
                continue
            if Path(doc.path).exists():
                continue
            self.log.info("Stored file missing for %s, removing record %s", doc.path, doc.id)
            try:
                self.repo.delete_document(doc.id)
                self.search_indexer.delete_document(doc.id)
            except Exception:  # noqa: BLE001
                self.log.exception("Failed to delete record %s", doc.id)
                continue
            tally.deleted += 1

        self.tracker.update_progress(job_id, 60, "Scanning for orphaned files")
        known = {doc.path for doc in self.repo.list_documents()}
        orphans = self.storage.find_orphans(known, include=is_supported)
        for index, orphan in enumerate(orphans):
            self.tracker.update_progress(
                job_id, 60 + int(index / len(orphans) * 20), f"Returning orphan {index + 1}/{len(orphans)}"
            )
            try:
                self.storage.return_to_ingress(orphan)
            except OSError as exc:
                self.log.error("Failed to move orphaned file %s back to ingress: %s", orphan, exc)
                continue
            tally.moved += 1

        self.tracker.update_progress(job_id, 80, "Recalculating word cloud")
        try:
            self.word_indexer.recalculate()
        except Exception:  # noqa: BLE001
            self.log.exception("Word cloud recalculation failed after cleanup")

        self.tracker.complete(
            job_id,
            tally.as_result(),
            message=f"Removed {tally.deleted} stale records, returned {tally.moved} files to ingress",
        )
        return tally

    def run_wordcloud(self, job_id: str) -> WordCloudMetadata:
        self.tracker.mark_running(job_id, step="Recalculating word frequencies", message="Recalculating word cloud")
        metadata = self.word_indexer.recalculate()
        self.tracker.complete(
            job_id,
            {
                "documents": metadata.documents_processed,
                "words": metadata.words_indexed,
                "version": metadata.version,
            },
            message=f"Word cloud rebuilt from {metadata.documents_processed} documents",
        )
        return metadata

    def run_reindex(self, job_id: str) -> int:
        self.tracker.mark_running(job_id, step="Loading documents", message="Rebuilding search index")
        documents = self.repo.list_documents()
        self.tracker.update_progress(job_id, 10, f"Reindexing {len(documents)} documents")
        count = self.search_indexer.reindex(documents)
        self.tracker.complete(job_id, {"documents": count}, message=f"Reindexed {count} documents")
        return count

    def delete_document(self, doc_id: str) -> bool:
        """Remove a document's record, stored file and index entry. Returns False if unknown."""
        doc = self.repo.get_document(doc_id)
        if doc is None:
            return False
        if doc.path and not self.storage.delete_file(Path(doc.path)):
            self.log.warning("Stored file for %s was already gone: %s", doc_id, doc.path)
        self.repo.delete_document(doc_id)
        try:
            self.search_indexer.delete_document(doc_id)
        except Exception:  # noqa: BLE001
            self.log.exception("Unable to remove %s from the search index", doc_id)
        self.log.info("Deleted document %s (%s)", doc_id, doc.name)
        return True
