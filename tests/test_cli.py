import json

import pytest

from docvault.cli import build_parser, main


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'vault.db'}")
    monkeypatch.setenv("INGRESS_PATH", str(tmp_path / "ingress"))
    monkeypatch.setenv("DOCUMENT_PATH", str(tmp_path / "documents"))
    monkeypatch.setenv("WHOOSH_DIR", "")
    monkeypatch.delenv("OCR_SERVICE_URL", raising=False)
    monkeypatch.delenv("LOG_FILE", raising=False)
    return tmp_path


def test_ingest_command_runs_inline(env, capsys):
    (env / "ingress").mkdir()
    (env / "ingress" / "a.txt").write_text("hello")

    assert main(["ingest"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "completed"
    assert out["result"] == {"total": 1, "processed": 1, "duplicates": 0, "errors": 0}
    assert (env / "documents" / "a.txt").read_text() == "hello"


def test_purge_jobs_command(env, capsys):
    main(["recalc-wordcloud"])
    capsys.readouterr()

    assert main(["purge-jobs", "--older-than-hours", "0"]) == 0
    assert json.loads(capsys.readouterr().out) == {"deleted": 1}


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
