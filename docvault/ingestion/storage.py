from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterable, Iterator, List, Optional

from .errors import DigestMismatchError, RelocationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def compute_digest(path: Path) -> str:
    """
    Stream a file through MD5 in fixed-size chunks. Read errors propagate to
    the caller, which scopes them to the file being processed.
    """
    digest = hashlib.md5()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def numbered_candidates(path: Path) -> Iterator[Path]:
    """Yield `path`, then `stem-1.ext`, `stem-2.ext`, ... in the same folder."""
    yield path
    counter = 1
    while True:
        yield path.with_name(f"{path.stem}-{counter}{path.suffix}")
        counter += 1


@dataclass
class StoragePaths:
    ingress_root: Path
    documents_root: Path
    new_document_folder: str = "New"
    preserve_structure: bool = True

    def __post_init__(self):
        self.ingress_root = Path(self.ingress_root).resolve()
        self.documents_root = Path(self.documents_root).resolve()

    def destination_for(self, source: Path) -> Path:
        """Canonical storage path for a file sitting under the ingress root."""
        source = Path(source).resolve()
        if self.preserve_structure:
            try:
                return self.documents_root / source.relative_to(self.ingress_root)
            except ValueError:
                pass
        return self.documents_root / self.new_document_folder / source.name

    def ingress_path_for(self, stored: Path) -> Path:
        stored = Path(stored).resolve()
        try:
            relative = stored.relative_to(self.documents_root)
        except ValueError:
            relative = Path(stored.name)
        return self.ingress_root / relative


class AtomicRelocator:
    """
    Moves a file into owned storage with copy -> verify -> delete. The source is
    only removed once the destination's digest matches the expected one; on any
    failure the destination is discarded and the source stays where it was.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.log = logger or logging.getLogger(__name__)

    def relocate(self, source: Path, destination: Path, expected_digest: str) -> Path:
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise RelocationError(f"failed to read source file {source}: {exc}") from exc

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            self._write_destination(destination, data)
            actual = compute_digest(destination)
        except OSError as exc:
            self._discard(destination)
            raise RelocationError(f"failed to write destination file {destination}: {exc}") from exc

        if actual != expected_digest:
            self._discard(destination)
            raise DigestMismatchError(destination, expected_digest, actual)

        try:
            source.unlink()
        except OSError as exc:
            # The copy is verified; a leftover source is caught as a duplicate next run.
            self.log.warning("Failed to delete source file after verified copy %s: %s", source, exc)
        return destination

    def _write_destination(self, destination: Path, data: bytes) -> None:
        destination.write_bytes(data)

    def _discard(self, destination: Path) -> None:
        try:
            destination.unlink(missing_ok=True)
        except OSError as exc:
            self.log.error("Unable to remove partial destination %s: %s", destination, exc)


class LocalDocumentStorage:
    """
    Manages the filesystem layout: the ingress tree that gets scanned and the
    documents tree that owns canonical copies.
    """

    def __init__(
        self,
        storage_paths: StoragePaths,
        relocator: Optional[AtomicRelocator] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.paths = storage_paths
        self.log = logger or logging.getLogger(__name__)
        self.relocator = relocator or AtomicRelocator(logger=self.log)

    def ensure_base_dirs(self) -> None:
        self.paths.ingress_root.mkdir(parents=True, exist_ok=True)
        self.paths.documents_root.mkdir(parents=True, exist_ok=True)

    def scan_ingress(self) -> List[Path]:
        root = self.paths.ingress_root
        if not root.exists():
            self.log.info("Ingress folder %s does not exist yet, creating it", root)
            root.mkdir(parents=True, exist_ok=True)
            return []
        files = []
        for path in sorted(root.rglob("*")):
            if path.is_dir():
                self.log.debug("Skipping folder %s", path)
                continue
            files.append(path)
        return files

    def unique_destination(self, source: Path, is_taken: Callable[[Path], bool]) -> Path:
        """
        Canonical destination for `source`, suffixed `-1`, `-2`, ... when the
        natural path already exists on disk or belongs to another record.
        """
        natural = self.paths.destination_for(source)
        return next(c for c in numbered_candidates(natural) if not c.exists() and not is_taken(c))

    def relocate(self, source: Path, destination: Path, expected_digest: str) -> Path:
        return self.relocator.relocate(source, destination, expected_digest)

    def remove_empty_dirs(self, root: Optional[Path] = None) -> int:
        root = Path(root or self.paths.ingress_root)
        if not root.exists():
            return 0
        removed = 0
        for current, _, _ in os.walk(root, topdown=False):
            current_path = Path(current)
            if current_path == root:
                continue
            if any(current_path.iterdir()):
                continue
            try:
                current_path.rmdir()
                removed += 1
                self.log.debug("Removed empty folder %s", current_path)
            except OSError as exc:
                self.log.warning("Unable to remove empty folder %s: %s", current_path, exc)
        return removed

    def find_orphans(self, known_paths: Iterable[str], include: Callable[[Path], bool]) -> List[Path]:
        root = self.paths.documents_root
        if not root.exists():
            return []
        known = set(known_paths)
        return [
            path
            for path in sorted(root.rglob("*"))
            if path.is_file() and path.as_posix() not in known and include(path)
        ]

    def return_to_ingress(self, stored_path: Path) -> Path:
        """
        Move a stored file back under the ingress root at its relative path.
        A pending ingress file with the same name is never replaced; the
        returned file gets a `-N` suffix instead.
        """
        natural = self.paths.ingress_path_for(stored_path)
        target = next(c for c in numbered_candidates(natural) if not c.exists())
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(stored_path, target)
        self.log.info("Moved orphaned document %s back to ingress %s", stored_path, target)
        return target

    def delete_file(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    def save_upload(self, filename: str, data: bytes, subpath: str = "") -> Path:
        """
        Write an uploaded file under the ingress root so a failed run leaves it
        there. A pending file with the same name is kept and the upload gets a
        `-N` suffix.
        """
        name = Path(filename).name
        if not name:
            raise ValueError("Uploaded file has no name")
        parts = [p for p in PurePosixPath(subpath.replace("\\", "/")).parts if p not in ("", ".", "..", "/")]
        natural = self.paths.ingress_root.joinpath(*parts, name)
        natural.parent.mkdir(parents=True, exist_ok=True)
        for target in numbered_candidates(natural):
            try:
                with target.open("xb") as f:
                    f.write(data)
            except FileExistsError:
                continue
            if target != natural:
                self.log.info("Upload %s already pending in ingress, saved as %s", natural, target.name)
            return target
