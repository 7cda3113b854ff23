"""Tests for POST /webhooks/whatsapp (HTTP contract, ingestion patched out)."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from psycopg2 import errors as pg_errors

from wsmart.api.factory import create_app
from wsmart.domain.ingest import IngestResult, MissingInstanceError, PersistedMessage
from wsmart.whatsapp.models import Identity, IngestOutcome, MediaType, NormalizedMessage
from wsmart.whatsapp.normalizer import InvalidPayloadError

from helpers import uazapi_message

WEBHOOK = "wsmart.api.routes.webhooks_whatsapp"


@pytest.fixture
def client():
    return TestClient(create_app(role="public"))


@pytest.fixture
def mock_ingest():
    with patch(f"{WEBHOOK}.ingest") as ingest, \
         patch(f"{WEBHOOK}.schedule_followups") as followups:
        ingest.return_value = IngestResult(outcome=IngestOutcome.skip("not_message_event"))
        ingest.followups = followups
        yield ingest


def _persisted():
    message = NormalizedMessage(
        chat_id="5511999990000@s.whatsapp.net",
        from_me=False,
        external_id="MSG1",
        media_type=MediaType.TEXT,
        timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        content="Hello",
    )
    return PersistedMessage(
        identity=Identity(inbox_id="inbox-1", instance_id="inst-1"),
        conversation_id="conv-1",
        message_id="msg-1",
        message=message,
    )


class TestPreflight:
    @pytest.mark.parametrize("path", ["/webhooks/whatsapp", "/whatsapp-webhook"])
    def test_options_answers_with_cors(self, client, path):
        response = client.options(path)
        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert "apikey" in response.headers["Access-Control-Allow-Headers"]


class TestWebhookContract:
    def test_skip_outcome_returned(self, client, mock_ingest):
        response = client.post("/webhooks/whatsapp", json={"EventType": "presence"})
        assert response.status_code == 200
        assert response.json() == {"ok": True, "skipped": True, "reason": "not_message_event"}
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        mock_ingest.followups.assert_not_called()

    def test_legacy_path_alias(self, client, mock_ingest):
        response = client.post("/whatsapp-webhook", json={"EventType": "presence"})
        assert response.status_code == 200
        mock_ingest.assert_called_once()

    def test_raw_body_passed_through(self, client, mock_ingest):
        payload = [uazapi_message()]
        client.post("/webhooks/whatsapp", json=payload)
        assert mock_ingest.call_args.args[0] == payload

    def test_persisted_message_schedules_followups(self, client, mock_ingest):
        persisted = _persisted()
        mock_ingest.return_value = IngestResult(
            outcome=IngestOutcome(conversation_id="conv-1", message_id="msg-1"),
            persisted=persisted,
        )

        response = client.post("/webhooks/whatsapp", json=uazapi_message())

        assert response.status_code == 200
        assert response.json() == {"ok": True, "conversation_id": "conv-1", "message_id": "msg-1"}
        mock_ingest.followups.assert_called_once()
        assert mock_ingest.followups.call_args.args[1] is persisted

    def test_invalid_json(self, client, mock_ingest):
        response = client.post(
            "/webhooks/whatsapp",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "invalid json"}
        mock_ingest.assert_not_called()

    def test_invalid_payload(self, client, mock_ingest):
        mock_ingest.side_effect = InvalidPayloadError("missing chat id")
        response = client.post("/webhooks/whatsapp", json={"EventType": "messages", "message": {}})
        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "missing chat id"}

    def test_missing_instance(self, client, mock_ingest):
        mock_ingest.side_effect = MissingInstanceError("no instance identifier")
        response = client.post("/webhooks/whatsapp", json=uazapi_message())
        assert response.status_code == 400

    def test_unique_violation_is_duplicate(self, client, mock_ingest):
        mock_ingest.side_effect = pg_errors.UniqueViolation("duplicate key")
        response = client.post("/webhooks/whatsapp", json=uazapi_message())
        assert response.status_code == 200
        assert response.json() == {"ok": True, "skipped": True, "reason": "duplicate_index"}

    def test_persistence_failure_is_500(self, client, mock_ingest):
        mock_ingest.side_effect = RuntimeError("connection refused")
        response = client.post("/webhooks/whatsapp", json=uazapi_message())
        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "processing failed"}
        assert "connection refused" not in response.text


class TestSharedSecret:
    def test_mismatch_rejected(self, client, mock_ingest, monkeypatch):
        monkeypatch.setenv("WHATSAPP_WEBHOOK_SECRET", "s3cret")
        response = client.post(
            "/webhooks/whatsapp", json=uazapi_message(), headers={"X-Webhook-Secret": "wrong"}
        )
        assert response.status_code == 401
        assert response.json() == {"ok": False, "error": "unauthorized"}
        mock_ingest.assert_not_called()

    def test_missing_header_rejected(self, client, mock_ingest, monkeypatch):
        monkeypatch.setenv("WHATSAPP_WEBHOOK_SECRET", "s3cret")
        assert client.post("/webhooks/whatsapp", json=uazapi_message()).status_code == 401

    def test_match_accepted(self, client, mock_ingest, monkeypatch):
        monkeypatch.setenv("WHATSAPP_WEBHOOK_SECRET", "s3cret")
        response = client.post(
            "/webhooks/whatsapp", json=uazapi_message(), headers={"X-Webhook-Secret": "s3cret"}
        )
        assert response.status_code == 200


class TestCorrelation:
    def test_correlation_id_echoed(self, client, mock_ingest):
        response = client.post(
            "/webhooks/whatsapp",
            json={"EventType": "presence"},
            headers={"X-Correlation-Id": "req-abc-123"},
        )
        assert response.headers["X-Correlation-Id"] == "req-abc-123"
