import pytest

from docvault.ingestion import (
    InMemoryDocumentRepository,
    JobNotFoundError,
    JobStatus,
    JobType,
    NoopIndexer,
    RQJobQueue,
    SqlAlchemyDocumentRepository,
    TextExtractor,
    WorkerConfig,
    build_services,
)
from docvault.ingestion.job_queue import run_job


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "memory://")
    monkeypatch.setenv("INGRESS_PATH", "/srv/ingress")
    monkeypatch.setenv("INGRESS_PRESERVE_STRUCTURE", "false")
    monkeypatch.setenv("OCR_SERVICE_URL", "http://ocr:8080")
    monkeypatch.setenv("INGRESS_INTERVAL", "5")
    monkeypatch.delenv("PDF_SERVICE_URL", raising=False)

    config = WorkerConfig.from_env()

    assert config.database_url == "memory://"
    assert config.ingress_path == "/srv/ingress"
    assert config.preserve_structure is False
    assert config.ocr_service_url == "http://ocr:8080"
    assert config.pdf_service_url is None
    assert config.ingress_interval_minutes == 5
    assert config.new_document_folder == "New"


def test_build_services_selects_repository(config, tmp_path):
    assert isinstance(build_services(config).repository, InMemoryDocumentRepository)

    config.database_url = f"sqlite+pysqlite:///{tmp_path / 'vault.db'}"
    services = build_services(config)
    assert isinstance(services.repository, SqlAlchemyDocumentRepository)
    assert isinstance(services.search_indexer, NoopIndexer)


def test_runner_dispatches_ingestion(config, ocr, put_file, tmp_path):
    services = build_services(config, extractor=TextExtractor(ocr_client=ocr))
    put_file(tmp_path / "ingress" / "a.txt", "hello")

    job = services.runner.start(JobType.INGESTION, message="test")
    assert services.tracker.get(job.id).status == JobStatus.PENDING

    finished = services.runner.run(job.id)

    assert finished.status == JobStatus.COMPLETED
    assert finished.result["processed"] == 1


def test_runner_marks_crashed_job_failed(config, monkeypatch):
    services = build_services(config)

    def explode(job_id):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(services.maintenance, "run_cleanup", explode)
    job = services.runner.start(JobType.CLEANUP)

    finished = services.runner.run(job.id)

    assert finished.status == JobStatus.FAILED
    assert finished.error == "disk on fire"
    assert finished.message == "Failed: disk on fire"


def test_runner_skips_cancelled_job(config):
    services = build_services(config)
    job = services.runner.start(JobType.WORDCLOUD)
    services.tracker.cancel(job.id)

    finished = services.runner.run(job.id)

    assert finished.status == JobStatus.CANCELLED
    assert services.word_indexer.metadata().version == 0


def test_runner_unknown_job(config):
    with pytest.raises(JobNotFoundError):
        build_services(config).runner.run("nope")


def test_rq_queue_uses_job_id(monkeypatch, config):
    queue = RQJobQueue("redis://localhost:6379/0", "test-jobs")
    captured = {}

    def fake_enqueue(func, *args, **kwargs):
        captured["func"] = func
        captured["args"] = args
        captured["kwargs"] = kwargs

    monkeypatch.setattr(queue.queue, "enqueue", fake_enqueue)

    queue.enqueue("job-1", config, ["/srv/ingress/a.txt"])

    assert captured["func"] is run_job
    assert captured["args"] == ("job-1", config, ["/srv/ingress/a.txt"])
    assert captured["kwargs"]["job_id"] == "job-1"
