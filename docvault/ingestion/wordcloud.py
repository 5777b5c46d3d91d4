from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Dict, List, Optional

from .models import DocumentRecord, WordCloudMetadata, WordFrequency
from .repository import DocumentRepository

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
MAX_TOP_WORDS = 500

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of as by is was are were be this that
    with from they we you it have has had will would could should can may must
    shall their there here what where when who which how all each every both
    few more most other some such than too very
    """.split()
)

# Letters, optionally joined by internal hyphens or apostrophes.
WORD_PATTERN = re.compile(r"\b[a-z][a-z'-]*[a-z]\b|\b[a-z]+\b")
NUMERIC_PATTERN = re.compile(r"^\d+$")


class WordTokenizer:
    def __init__(self, stop_words=STOP_WORDS, min_length: int = MIN_WORD_LENGTH):
        self.stop_words = stop_words
        self.min_length = min_length

    def tokenize(self, text: str) -> List[str]:
        return [
            word
            for word in WORD_PATTERN.findall(text.lower())
            if len(word) >= self.min_length and word not in self.stop_words and not NUMERIC_PATTERN.match(word)
        ]

    def count(self, text: str) -> Dict[str, int]:
        return dict(Counter(self.tokenize(text)))


class WordFrequencyIndexer:
    """
    Maintains cumulative word counts over document names and text.

    Incremental updates only ever add. Edits and deletions are reflected by a
    full recalculation, which rebuilds the table from every stored document
    and bumps the metadata version.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        tokenizer: Optional[WordTokenizer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.repo = repository
        self.tokenizer = tokenizer or WordTokenizer()
        self.log = logger or logging.getLogger(__name__)

    def _document_counts(self, doc: DocumentRecord) -> Dict[str, int]:
        return self.tokenizer.count(f"{doc.full_text or ''} {doc.name}")

    def update_for_document(self, doc: DocumentRecord) -> int:
        counts = self._document_counts(doc)
        if counts:
            self.repo.increment_word_frequencies(counts)
        return len(counts)

    def recalculate(self) -> WordCloudMetadata:
        self.log.info("Starting full word cloud recalculation")
        documents = self.repo.list_documents()
        totals: Counter = Counter()
        for doc in documents:
            totals.update(self._document_counts(doc))
        metadata = self.repo.replace_word_frequencies(dict(totals), documents_processed=len(documents))
        self.log.info(
            "Word cloud recalculation completed: %s documents, %s words, version %s",
            metadata.documents_processed,
            metadata.words_indexed,
            metadata.version,
        )
        return metadata

    def top_words(self, limit: int = 100) -> List[WordFrequency]:
        limit = max(1, min(limit, MAX_TOP_WORDS))
        return self.repo.top_words(limit)

    def metadata(self) -> WordCloudMetadata:
        return self.repo.get_word_cloud_metadata()
