from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from docvault.ingestion import (
    InMemoryDocumentRepository,
    IngestionWorker,
    JobTracker,
    LocalDocumentStorage,
    StoragePaths,
    TextExtractor,
    WordFrequencyIndexer,
    WorkerConfig,
)


class FakeOcr:
    def __init__(self, text: str = "scanned text"):
        self.text = text
        self.error = None
        self.calls: List[str] = []
        self.on_call = None

    def recognize(self, image: bytes, filename: str) -> str:
        self.calls.append(filename)
        if self.on_call:
            self.on_call(filename)
        if self.error:
            raise self.error
        return self.text


class FakeRenderer:
    def __init__(self, pages: int = 2):
        self.pages = pages
        self.error = None

    def render(self, document: bytes) -> List[bytes]:
        if self.error:
            raise self.error
        return [f"page-{i}".encode() for i in range(self.pages)]


@pytest.fixture
def ocr() -> FakeOcr:
    return FakeOcr()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def storage_paths(tmp_path) -> StoragePaths:
    return StoragePaths(tmp_path / "ingress", tmp_path / "documents")


@pytest.fixture
def storage(storage_paths) -> LocalDocumentStorage:
    store = LocalDocumentStorage(storage_paths)
    store.ensure_base_dirs()
    return store


@pytest.fixture
def repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def tracker(repo) -> JobTracker:
    return JobTracker(repo)


@pytest.fixture
def worker(repo, storage, tracker, ocr, renderer) -> IngestionWorker:
    return IngestionWorker(
        repository=repo,
        storage=storage,
        extractor=TextExtractor(ocr_client=ocr, renderer=renderer),
        tracker=tracker,
        word_indexer=WordFrequencyIndexer(repo),
    )


@pytest.fixture
def config(tmp_path) -> WorkerConfig:
    return WorkerConfig(
        database_url="memory://",
        ingress_path=str(tmp_path / "ingress"),
        document_path=str(tmp_path / "documents"),
        whoosh_index_dir=None,
    )


def write_file(path: Path, content) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    return path


@pytest.fixture
def put_file():
    return write_file
