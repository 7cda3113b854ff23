"""WhatsApp inbound webhook (UAZAPI provider and helpdesk agent callbacks).

Answers 200 `{ok: true, ...}` for every handled case including skips,
400 for structurally invalid input and 500 when the core insert/update
fails (the provider redelivers; dedupe makes that safe).

Broadcast, transcription and lead-list work run as background tasks
after the response is sent.

Security:
- chat ids, names, message text and media URLs are never logged
- WHATSAPP_WEBHOOK_SECRET, when set, must match X-Webhook-Secret
"""

import hmac
import json
import os
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from wsmart.domain.fanout import schedule_followups
from wsmart.domain.ingest import ingest
from wsmart.infra.db import is_unique_violation
from wsmart.infra.realtime import RealtimePublisher
from wsmart.observability.correlation import get_correlation_id
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context
from wsmart.tasks.client import TasksClient
from wsmart.whatsapp.media import MediaStorage, ProviderClient
from wsmart.whatsapp.models import IngestOutcome
from wsmart.whatsapp.normalizer import InvalidPayloadError

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

# Shared across requests (the inline tasks client keeps its dedupe set)
_tasks_client = TasksClient()
_provider = ProviderClient()
_media_storage = MediaStorage()
_publisher = RealtimePublisher()


def _get_tasks_client() -> TasksClient:
    """Get tasks client instance (allows test injection)."""
    return _tasks_client


def _get_provider() -> ProviderClient:
    return _provider


def _get_media_storage() -> MediaStorage:
    return _media_storage


def _get_publisher() -> RealtimePublisher:
    return _publisher


def _json(body: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=body, status_code=status_code, headers=CORS_HEADERS)


def _error(message: str, status_code: int) -> JSONResponse:
    return _json({"ok": False, "error": message}, status_code)


def _secret_ok(provided: str | None) -> bool:
    expected = os.environ.get("WHATSAPP_WEBHOOK_SECRET", "")
    if not expected:
        return True
    return bool(provided) and hmac.compare_digest(provided, expected)


@router.options("/webhooks/whatsapp")
@router.options("/whatsapp-webhook")
def whatsapp_webhook_preflight() -> Response:
    """CORS preflight."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/webhooks/whatsapp")
@router.post("/whatsapp-webhook")
async def whatsapp_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> Response:
    """Ingest one provider delivery.

    Returns:
        200 with the ingest outcome (including skips).
        400 if the body is not JSON or the message event is malformed.
        401 if the shared secret is configured and does not match.
        500 if persistence failed.
    """
    correlation_id = get_correlation_id()

    if not _secret_ok(x_webhook_secret):
        logger.warning(
            "inbound secret mismatch",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error("unauthorized", 401)

    try:
        raw: Any = json.loads(await request.body())
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error("invalid json", 400)

    try:
        result = await run_in_threadpool(
            ingest,
            raw,
            provider=_get_provider(),
            media_storage=_get_media_storage(),
        )
    except InvalidPayloadError as e:
        logger.warning(
            "invalid message event",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, error=str(e))},
        )
        return _error(str(e), 400)
    except Exception as e:
        if is_unique_violation(e):
            # Concurrent duplicate delivery lost the insert race
            logger.info(
                "duplicate rejected by unique index",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return _json(IngestOutcome.skip("duplicate_index").to_dict())
        logger.exception(
            "ingestion failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _error("processing failed", 500)

    if result.persisted is not None:
        schedule_followups(
            background_tasks,
            result.persisted,
            publisher=_get_publisher(),
            tasks_client=_get_tasks_client(),
        )

    return _json(result.outcome.to_dict())
