from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Protocol

from whoosh import index
from whoosh.fields import DATETIME, ID, TEXT, Schema
from whoosh.qparser import MultifieldParser, OrGroup
from whoosh.writing import CLEAR, AsyncWriter

from .models import DocumentRecord


class SearchIndexer(Protocol):
    def index_document(self, doc: DocumentRecord) -> None:
        ...

    def delete_document(self, doc_id: str) -> None:
        ...

    def reindex(self, documents: Iterable[DocumentRecord]) -> int:
        ...

    def search(self, term: str, limit: int = 20) -> List[Dict[str, str]]:
        ...


class NoopIndexer:
    """
    Default indexer stub. Keeps the pipeline wired without pulling in Whoosh.
    """

    def index_document(self, doc: DocumentRecord) -> None:
        return None

    def delete_document(self, doc_id: str) -> None:
        return None

    def reindex(self, documents: Iterable[DocumentRecord]) -> int:
        return sum(1 for _ in documents)

    def search(self, term: str, limit: int = 20) -> List[Dict[str, str]]:
        return []


class WhooshIndexer:
    """
    File-system backed Whoosh index over document names and extracted text.
    Writes go through AsyncWriter so concurrent runs don't trip over the
    index lock.
    """

    def __init__(self, index_dir: Path):
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.schema = Schema(
            doc_id=ID(stored=True, unique=True),
            name=TEXT(stored=True),
            path=ID(stored=True),
            created_at=DATETIME(stored=True, sortable=True),
            text=TEXT,
        )
        if index.exists_in(self.index_dir):
            self.ix = index.open_dir(self.index_dir)
        else:
            self.ix = index.create_in(self.index_dir, self.schema)

    def _fields(self, doc: DocumentRecord) -> dict:
        return {
            "doc_id": doc.id,
            "name": doc.name,
            "path": doc.path,
            "created_at": doc.created_at,
            "text": doc.full_text or "",
        }

    def index_document(self, doc: DocumentRecord) -> None:
        writer = AsyncWriter(self.ix)
        writer.update_document(**self._fields(doc))
        writer.commit()

    def delete_document(self, doc_id: str) -> None:
        writer = AsyncWriter(self.ix)
        writer.delete_by_term("doc_id", doc_id)
        writer.commit()

    def reindex(self, documents: Iterable[DocumentRecord]) -> int:
        """Rebuild the index from scratch; returns the number of documents written."""
        writer = self.ix.writer()
        count = 0
        try:
            for doc in documents:
                writer.add_document(**self._fields(doc))
                count += 1
        except Exception:
            writer.cancel()
            raise
        writer.commit(mergetype=CLEAR)
        return count

    def search(self, term: str, limit: int = 20) -> List[Dict[str, str]]:
        """
        Return a list of plain dicts so callers are safe after the searcher closes.
        """
        parser = MultifieldParser(["name", "text"], schema=self.schema, group=OrGroup)
        query = parser.parse(term)
        with self.ix.searcher() as searcher:
            results = searcher.search(query, limit=limit)
            return [
                {
                    "doc_id": hit["doc_id"],
                    "name": hit.get("name", ""),
                    "path": hit.get("path", ""),
                }
                for hit in results
            ]
