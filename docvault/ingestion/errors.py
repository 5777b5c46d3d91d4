"""
Exceptions raised by the ingestion core.

`RelocationError`, `UnsupportedFileTypeError` and `DocumentInFlightError`
end up as counted file-level errors in a job tally. `DuplicateDocumentError` is an outcome,
not a failure, and `CollaboratorError` is always absorbed by text extraction.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class IngestionError(Exception):
    """Base exception for the ingestion core."""


class DuplicateDocumentError(IngestionError):
    def __init__(self, path: Path, digest: str, existing_id: Optional[str] = None):
        self.path = path
        self.digest = digest
        self.existing_id = existing_id
        super().__init__(f"duplicate document {path.name} (hash: {digest})")


class DocumentInFlightError(IngestionError):
    """
    The content is already claimed by a record whose stored file is not in
    place yet, usually because a concurrent run is still moving it. The
    source file is left in ingress for a later sweep.
    """

    def __init__(self, path: Path, digest: str, existing_id: str):
        self.path = path
        self.digest = digest
        self.existing_id = existing_id
        super().__init__(
            f"{path.name} matches document {existing_id} (hash: {digest}) whose stored file is missing, leaving it in place"
        )


class RelocationError(IngestionError):
    """Copy/verify/delete of a file into document storage failed."""


class DigestMismatchError(RelocationError):
    def __init__(self, destination: Path, expected: str, actual: str):
        self.destination = destination
        self.expected = expected
        self.actual = actual
        super().__init__(f"hash mismatch after copy to {destination} (expected: {expected}, got: {actual})")


class UnsupportedFileTypeError(IngestionError):
    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"unsupported file type: {path.suffix or '<none>'} ({path.name})")


class CollaboratorError(IngestionError):
    """An OCR or rendering service returned an error or could not be reached."""


class JobNotFoundError(IngestionError, KeyError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")

    def __str__(self) -> str:
        return self.args[0]
