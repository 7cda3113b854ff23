"""Worker route for transcribing incoming voice messages.

Enqueued by the webhook fan-out for incoming audio. A 500 answer makes
Cloud Tasks retry; the stored transcription is overwritten, so a retry
after a partial success is harmless.

Security: audio URLs and transcription text are never logged.
"""

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wsmart.api.task_auth import verify_task_auth
from wsmart.domain.fanout import GLOBAL_TOPIC
from wsmart.domain.messages import set_transcription
from wsmart.infra.db import txn
from wsmart.infra.realtime import RealtimeError, RealtimePublisher
from wsmart.observability.correlation import get_correlation_id
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context
from wsmart.services.transcription import TranscriptionError, transcribe_audio

router = APIRouter(prefix="/tasks/transcription", tags=["tasks"])

logger = get_logger(__name__)

TRANSCRIPTION_EVENT = "transcription-updated"

_publisher = RealtimePublisher()


def _get_publisher() -> RealtimePublisher:
    """Get publisher instance (allows test injection)."""
    return _publisher


class TranscribeRequest(BaseModel):
    """Task body produced by the webhook fan-out."""

    messageId: str | None = None
    audioUrl: str | None = None
    conversationId: str | None = None


@router.post("/transcribe")
def transcribe(request: Request, req: TranscribeRequest) -> Response:
    """Transcribe one audio message and store the text on it."""
    correlation_id = get_correlation_id()

    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not req.messageId or not req.audioUrl:
        return JSONResponse(
            status_code=400,
            content={"error": "messageId and audioUrl required"},
        )

    log_ctx = safe_log_context(
        correlationId=correlation_id,
        message_id=req.messageId,
        conversation_id=req.conversationId,
    )

    try:
        transcription = transcribe_audio(req.audioUrl)
    except TranscriptionError as e:
        logger.error(
            "transcription failed",
            extra={"extra_fields": {**log_ctx, "error": str(e)}},
        )
        return JSONResponse(status_code=500, content={"error": "transcription failed"})

    try:
        with txn() as cur:
            updated = set_transcription(cur, message_id=req.messageId, transcription=transcription)
    except Exception:
        logger.exception("transcription save failed", extra={"extra_fields": log_ctx})
        return JSONResponse(status_code=500, content={"error": "failed to save transcription"})

    if not updated:
        # Message deleted since enqueue; retrying would not help
        logger.warning("transcription target missing", extra={"extra_fields": log_ctx})
        return JSONResponse(content={"ok": True, "skipped": True, "reason": "message_not_found"})

    if req.conversationId:
        try:
            _get_publisher().publish(
                GLOBAL_TOPIC,
                TRANSCRIPTION_EVENT,
                {
                    "messageId": req.messageId,
                    "conversationId": req.conversationId,
                    "transcription": transcription,
                },
            )
        except RealtimeError as e:
            logger.warning(
                "transcription broadcast failed",
                extra={"extra_fields": {**log_ctx, "error": str(e)}},
            )

    logger.info(
        "transcription stored",
        extra={"extra_fields": {**log_ctx, "text_len": str(len(transcription))}},
    )
    return JSONResponse(content={"ok": True, "transcription": transcription})
