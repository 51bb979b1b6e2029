from __future__ import annotations

import dataclasses
import json

import pytest
from fastapi.testclient import TestClient

from chat_parser.api import create_app
from chat_parser.config import Settings
from chat_parser.db import Database
from chat_parser.exceptions import CompletionTimeoutError
from chat_parser.extraction import ExtractionPipeline
from tests.conftest import FakeCompletionClient

MODEL_REPLY = json.dumps([
    {"sender": "Alice", "timestamp": "10:00", "message": "Hello there"},
    {"sender": "Bob", "timestamp": "10:01", "message": "General Kenobi"},
])


class PipelineFactory:
    """Builds pipelines over a fake client and remembers whether it was used."""

    def __init__(self, replies: dict) -> None:
        self.replies = replies
        self.built = 0

    def __call__(self, settings: Settings) -> ExtractionPipeline:
        self.built += 1
        return ExtractionPipeline(
            FakeCompletionClient(self.replies),
            settings.candidate_models,
            max_chars=settings.max_content_chars,
        )


@pytest.fixture()
def factory() -> PipelineFactory:
    return PipelineFactory({"model-a": MODEL_REPLY})


def _client(settings: Settings, database: Database, factory: PipelineFactory) -> TestClient:
    return TestClient(create_app(settings, database, pipeline_factory=factory))


def _upload(client: TestClient, content: str | bytes, filename: str = "chat.txt"):
    return client.post(
        "/api/upload", files={"file": (filename, content, "text/plain")}
    )


# ── Upload validation ────────────────────────────────────────────────


def test_missing_file(settings, database, factory) -> None:
    resp = _client(settings, database, factory).post("/api/upload", data={"other": "x"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "No file uploaded"}


def test_wrong_extension(settings, database, factory) -> None:
    resp = _upload(_client(settings, database, factory), "Alice: hi", filename="chat.csv")

    assert resp.status_code == 400
    assert resp.json()["error"] == "Only .txt files are allowed"


def test_file_over_byte_ceiling(settings, database, factory) -> None:
    settings = dataclasses.replace(settings, max_file_bytes=16)

    resp = _upload(_client(settings, database, factory), "Alice: " + "x" * 32)

    assert resp.status_code == 400
    assert "too large" in resp.json()["error"]
    assert factory.built == 0


def test_content_over_char_ceiling(settings, database, factory) -> None:
    settings = dataclasses.replace(settings, max_content_chars=10)

    resp = _upload(_client(settings, database, factory), "Alice: this is too long")

    assert resp.status_code == 400
    assert "too long" in resp.json()["error"]


@pytest.mark.parametrize("content", [b"", b"   \n\n  "])
def test_empty_file_is_400_even_when_unconfigured(content, factory) -> None:
    settings = Settings(openai_api_key=None, database_url=None)

    resp = _upload(_client(settings, Database(None), factory), content)

    assert resp.status_code == 400
    assert resp.json() == {"error": "File is empty"}


# ── Configuration ────────────────────────────────────────────────────


def test_missing_api_key_never_reaches_extraction(settings, database, factory) -> None:
    settings = dataclasses.replace(settings, openai_api_key=None)

    resp = _upload(_client(settings, database, factory), "Alice: Hello there")

    assert resp.status_code == 500
    assert resp.json()["error"] == "OpenAI API key not configured"
    assert factory.built == 0


def test_missing_database_url(settings, factory) -> None:
    settings = dataclasses.replace(settings, database_url=None)

    resp = _upload(_client(settings, Database(None), factory), "Alice: Hello there")

    assert resp.status_code == 500
    assert resp.json()["error"] == "Database connection string not configured"
    assert factory.built == 0


# ── Upload success and failures ──────────────────────────────────────


def test_upload_stores_and_returns_messages(settings, database, factory) -> None:
    client = _client(settings, database, factory)

    resp = _upload(client, "[10:00] Alice: Hello there\n[10:01] Bob: General Kenobi")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Successfully processed 2 messages"
    assert body["fallback"] is False
    assert [(m["sender"], m["message"]) for m in body["data"]] == [
        ("Alice", "Hello there"),
        ("Bob", "General Kenobi"),
    ]
    assert all(m["id"] and m["createdAt"] for m in body["data"])


def test_pipeline_is_built_once_across_uploads(settings, database, factory) -> None:
    client = _client(settings, database, factory)

    for _ in range(5):
        assert _upload(client, "Alice: Hello there").status_code == 200

    assert factory.built == 1


def test_file_at_byte_ceiling_is_accepted(settings, database, factory) -> None:
    content = "Alice: " + "x" * 9
    settings = dataclasses.replace(settings, max_file_bytes=len(content))

    resp = _upload(_client(settings, database, factory), content)

    assert resp.status_code == 200


def test_invalid_utf8_is_replaced_not_dropped(settings, database) -> None:
    factory = PipelineFactory({
        m: CompletionTimeoutError("timed out", model=m) for m in settings.candidate_models
    })

    resp = _upload(_client(settings, database, factory), b"Alice: caf\xe9 time")

    assert resp.status_code == 200
    assert resp.json()["data"][0]["message"] == "caf\ufffd time"


def test_upload_reports_manual_fallback(settings, database) -> None:
    factory = PipelineFactory({
        m: CompletionTimeoutError("timed out", model=m) for m in settings.candidate_models
    })

    resp = _upload(_client(settings, database, factory), "Alice: Hello there")

    assert resp.status_code == 200
    body = resp.json()
    assert body["fallback"] is True
    assert body["source"] == "manual"
    assert body["data"][0]["sender"] == "Alice"
    assert body["data"][0]["timestamp"] == "Unknown"


def test_extraction_failure_is_500_with_details_outside_production(
    settings, database
) -> None:
    factory = PipelineFactory({
        m: CompletionTimeoutError("timed out", model=m) for m in settings.candidate_models
    })

    resp = _upload(_client(settings, database, factory), "nothing parseable here")

    assert resp.status_code == 500
    body = resp.json()
    assert "timed out" in body["error"]
    assert "ExtractionTimeoutError" in body["details"]


def test_production_hides_details(settings, database) -> None:
    settings = dataclasses.replace(settings, app_env="production")
    factory = PipelineFactory({"model-a": "not json at all"})

    resp = _upload(_client(settings, database, factory), "Alice: hi")

    assert resp.status_code == 500
    assert set(resp.json()) == {"error"}
    assert "Response preview" in resp.json()["error"]


# ── Read endpoint ────────────────────────────────────────────────────


def test_list_messages_newest_first_with_sender_filter(settings, database, factory) -> None:
    client = _client(settings, database, factory)
    _upload(client, "first upload")
    _upload(client, "second upload")

    resp = client.get("/api/messages")
    body = resp.json()
    assert resp.status_code == 200
    assert body["success"] is True
    assert body["count"] == 4
    ids = [m["id"] for m in body["data"]]
    assert ids == sorted(ids, reverse=True)

    resp = client.get("/api/messages", params={"sender": "Bob"})
    assert resp.json()["count"] == 2
    assert {m["sender"] for m in resp.json()["data"]} == {"Bob"}


def test_sender_filter_too_long(settings, database, factory) -> None:
    resp = _client(settings, database, factory).get(
        "/api/messages", params={"sender": "x" * 101}
    )

    assert resp.status_code == 400
    assert "100" in resp.json()["error"]


def test_health(settings, database, factory) -> None:
    resp = _client(settings, database, factory).get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
