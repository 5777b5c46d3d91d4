from docvault.ingestion import DocumentRecord, InMemoryDocumentRepository, WordFrequencyIndexer, WordTokenizer


def make_doc(doc_id, text, name="file.txt"):
    return DocumentRecord(
        id=doc_id,
        name=name,
        hash=f"hash-{doc_id}",
        path=f"/docs/{doc_id}/{name}",
        folder=f"/docs/{doc_id}",
        document_type=".txt",
        full_text=text,
    )


def test_counts_are_case_insensitive():
    assert WordTokenizer().count("Document DOCUMENT document") == {"document": 3}


def test_stop_words_short_words_and_numbers_are_dropped():
    tokenizer = WordTokenizer()

    assert tokenizer.count("the and of it is") == {}
    assert tokenizer.count("2023 42 ok go") == {}


def test_hyphens_and_apostrophes_stay_inside_words():
    counts = WordTokenizer().count("well-known author's notes")

    assert counts == {"well-known": 1, "author's": 1, "notes": 1}


def test_incremental_update_adds_name_and_text():
    repo = InMemoryDocumentRepository()
    indexer = WordFrequencyIndexer(repo)

    indexer.update_for_document(make_doc("1", "invoice invoice payment", name="invoice.txt"))

    words = {w.word: w.frequency for w in indexer.top_words(10)}
    assert words == {"invoice": 3, "payment": 1, "txt": 1}


def test_recalculate_rebuilds_from_documents_and_bumps_version():
    repo = InMemoryDocumentRepository()
    repo.save_document(make_doc("1", "alpha beta beta"))
    repo.save_document(make_doc("2", "beta gamma", name="other.md"))
    indexer = WordFrequencyIndexer(repo)
    repo.increment_word_frequencies({"stale": 99})

    first = indexer.recalculate()
    second = indexer.recalculate()

    assert first.version == 1 and second.version == 2
    assert second.documents_processed == 2
    top = indexer.top_words(3)
    assert [(w.word, w.frequency) for w in top] == [("beta", 3), ("alpha", 1), ("file", 1)]
    assert "stale" not in {w.word for w in indexer.top_words(500)}


def test_top_words_limit_is_clamped():
    repo = InMemoryDocumentRepository()
    repo.increment_word_frequencies({f"word{chr(97 + i)}x": 1 for i in range(5)})

    assert len(WordFrequencyIndexer(repo).top_words(0)) == 1
