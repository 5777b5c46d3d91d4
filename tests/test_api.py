import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.dependencies import get_services
from docvault.ingestion import JobType, TextExtractor, build_services


@pytest.fixture
def services(config, ocr):
    return build_services(config, extractor=TextExtractor(ocr_client=ocr))


@pytest.fixture
def client(services):
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)


def upload(client, name="a.txt", content=b"hello", path=""):
    return client.post("/documents/upload", files={"file": (name, content, "text/plain")}, data={"path": path})


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_upload_ingests_and_serves_document(client, tmp_path):
    resp = upload(client, path="inbox")
    assert resp.status_code == 200
    job_id = resp.json()["job_id"]

    job = client.get(f"/jobs/{job_id}").json()
    assert job["status"] == "completed"
    assert job["progress"] == 100
    assert job["result"] == {"total": 1, "processed": 1, "duplicates": 0, "errors": 0}
    assert "error" not in job

    listing = client.get("/documents").json()
    assert listing["count"] == 1
    doc_id = listing["documents"][0]["id"]

    doc = client.get(f"/documents/{doc_id}").json()
    assert doc["full_text"] == "hello"
    assert doc["url"] == f"/documents/{doc_id}/file"
    assert doc["path"].endswith("documents/inbox/a.txt")

    served = client.get(doc["url"])
    assert served.status_code == 200
    assert served.content == b"hello"

    assert client.delete(f"/documents/{doc_id}").status_code == 200
    assert client.get(f"/documents/{doc_id}").status_code == 404


def test_uploading_same_bytes_twice_reports_duplicate(client):
    upload(client)
    job_id = upload(client, name="again.txt").json()["job_id"]

    assert client.get(f"/jobs/{job_id}").json()["result"]["duplicates"] == 1
    assert client.get("/documents").json()["count"] == 1


def test_upload_rejects_unsupported_and_empty_files(client):
    assert upload(client, name="tool.exe", content=b"MZ").status_code == 400
    assert upload(client, name="empty.txt", content=b"").status_code == 400


def test_missing_resources_are_404(client):
    assert client.get("/documents/nope").status_code == 404
    assert client.get("/documents/nope/file").status_code == 404
    assert client.delete("/documents/nope").status_code == 404
    assert client.get("/jobs/nope").status_code == 404
    assert client.post("/jobs/nope/cancel").status_code == 404


def test_job_listing_and_cancel(client, services):
    job = services.runner.start(JobType.INGESTION, message="queued")

    active = client.get("/jobs/active").json()
    assert [j["id"] for j in active["jobs"]] == [job.id]

    cancelled = client.post(f"/jobs/{job.id}/cancel").json()
    assert cancelled["status"] == "cancelled"
    assert client.post(f"/jobs/{job.id}/cancel").status_code == 400

    listing = client.get("/jobs", params={"limit": 5}).json()
    assert listing["count"] == 1
    assert client.get("/jobs", params={"limit": 0}).status_code == 422
    assert client.get("/jobs", params={"limit": 101}).status_code == 422

    assert client.delete("/jobs", params={"older_than_hours": 0}).json() == {"deleted": 1}


def test_manual_ingest_and_clean(client, tmp_path):
    (tmp_path / "ingress" / "note.txt").write_text("meeting notes")

    ingest = client.post("/ingest").json()
    assert set(ingest) == {"message", "job_id"}
    assert client.get(f"/jobs/{ingest['job_id']}").json()["result"]["processed"] == 1

    clean = client.post("/clean").json()
    assert client.get(f"/jobs/{clean['job_id']}").json()["result"] == {"scanned": 1, "deleted": 0, "moved": 0}


def test_word_cloud_endpoints(client):
    upload(client, content=b"invoice invoice payment")

    cloud = client.get("/wordcloud", params={"limit": 2}).json()
    assert cloud["count"] == 2
    top = cloud["words"][0]
    assert (top["word"], top["frequency"]) == ("invoice", 2)
    assert top["updated_at"]
    assert cloud["metadata"]["documents_processed"] == 1
    assert client.get("/wordcloud", params={"limit": 501}).status_code == 422

    job_id = client.post("/wordcloud/recalculate").json()["job_id"]
    assert client.get(f"/jobs/{job_id}").json()["status"] == "completed"


def test_search_endpoints(client):
    assert client.get("/search", params={"term": "   "}).status_code == 400
    assert client.get("/search", params={"term": "hello"}).json()["hits"] == []

    job_id = client.post("/search/reindex").json()["job_id"]
    assert client.get(f"/jobs/{job_id}").json()["result"] == {"documents": 0}
