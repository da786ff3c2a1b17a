"""
Tests for the HTTP surface: health probe and the dev notification endpoint.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from backend.api.main import create_app, _sanitize_error_message
from backend.api.routes.notifications import first_record_key
from backend.core.sync.consumer import BatchContext, QueueConsumer
from backend.core.sync.pipeline import ProcessOutcome
from backend.core.sync.queues import QueueMessage


def s3_event(key: str) -> dict:
    return {"Records": [{"eventName": "s3:ObjectCreated:Put", "s3": {"object": {"key": key, "size": 10}}}]}


@pytest.fixture
def queue():
    queue = MagicMock()
    queue.send = AsyncMock()
    return queue


@pytest.fixture
def client(settings, queue):
    return TestClient(create_app(settings, queue=queue, start_worker=False))


class TestHealth:

    def test_health_has_empty_body(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.content == b""

    def test_unknown_route(self, client):
        assert client.get("/nope").status_code == 404


class TestQueueEndpoint:
    """Tests for POST /queue (dev mode only)."""

    def test_queued(self, client, queue):
        response = client.post("/queue", json=s3_event("site1/main/raw/articles/test.md"))

        assert response.status_code == 200
        assert response.text == "Queued"
        queue.send.assert_awaited_once_with({"object": {"key": "site1/main/raw/articles/test.md"}})

    def test_plus_becomes_space_and_escapes_are_kept(self, client, queue):
        """Only + is rewritten here; percent-decoding happens once, in decode_key."""
        client.post("/queue", json=s3_event("site1/main/raw/C%2B%2B+notes%20%282%29.md"))
        queue.send.assert_awaited_once_with({"object": {"key": "site1/main/raw/C%2B%2B notes%20%282%29.md"}})

    def test_invalid_json(self, client, queue):
        response = client.post("/queue", content=b"{not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.text == "Invalid JSON"
        queue.send.assert_not_awaited()

    @pytest.mark.parametrize("body", [
        {},
        {"Records": []},
        {"Records": [{"s3": {"object": {}}}]},
        [1, 2],
    ])
    def test_bad_event(self, client, queue, body):
        response = client.post("/queue", json=body)

        assert response.status_code == 400
        assert response.text == "Bad S3 event"
        queue.send.assert_not_awaited()

    def test_not_mounted_in_production(self, settings, queue):
        settings.environment = "production"
        client = TestClient(create_app(settings, queue=queue, start_worker=False))

        assert client.post("/queue", json=s3_event("site1/main/raw/a.md")).status_code == 404
        assert client.get("/health").status_code == 200

    def test_queue_failure_returns_generic_error(self, settings, queue):
        queue.send.side_effect = RuntimeError("postgresql://user:hunter2@db/x unreachable")
        client = TestClient(
            create_app(settings, queue=queue, start_worker=False),
            raise_server_exceptions=False,
        )

        response = client.post("/queue", json=s3_event("site1/main/raw/a.md"))

        assert response.status_code == 500
        assert response.json()["detail"] == "An internal error occurred"


def test_first_record_key():
    assert first_record_key(s3_event("a/b/raw/c.md")) == "a/b/raw/c.md"
    assert first_record_key({"Records": [{"s3": {"object": {"key": ""}}}]}) is None
    assert first_record_key("text") is None


def test_sanitize_error_message():
    message = _sanitize_error_message("cannot connect to postgresql://sync:hunter2@db:5432/app")
    assert "hunter2" not in message
    assert "[REDACTED]" in message


class TestNotificationToProcessor:
    """A key posted to /queue reaches the processor as the real object name."""

    @pytest.mark.parametrize("raw_key,expected_path", [
        ("site1/main/raw/C%2B%2B+notes.md", "C++ notes.md"),
        ("site1/main/raw/My+Note%20%282%29.md", "My Note (2).md"),
        ("site1/main/raw/100%25+done.md", "100% done.md"),
        ("site1/main/raw/caf%C3%A9.md", "café.md"),
        ("site1/main/raw/plain.md", "plain.md"),
    ])
    def test_object_name_survives(self, client, queue, raw_key, expected_path):
        client.post("/queue", json=s3_event(raw_key))
        (body,), _ = queue.send.await_args

        context = BatchContext(storage=MagicMock(), repository=MagicMock(), indexer=MagicMock())
        consumer = QueueConsumer(context)
        consumer.processor = MagicMock()
        consumer.processor.process = AsyncMock(return_value=ProcessOutcome.INDEXED)

        message = QueueMessage(body)
        assert asyncio.run(consumer.handle_message(message)) is None

        consumer.processor.process.assert_awaited_once_with("site1", "main", expected_path)
        assert message.acked
