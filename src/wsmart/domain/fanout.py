"""Post-response side effects of an ingested message.

Each step runs as a FastAPI background task after the webhook answered.
Failures are logged and swallowed: the message is already committed and
the provider must not retry because a broadcast or a lead-list write failed.
"""

import os
from typing import Any

from fastapi import BackgroundTasks

from wsmart.infra.db import txn
from wsmart.infra.realtime import RealtimePublisher
from wsmart.observability.correlation import get_correlation_id
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context
from wsmart.tasks.client import TasksClient
from wsmart.whatsapp.models import MediaType

from .contacts import phone_from_jid
from .ingest import PersistedMessage
from .leads import ensure_lead_list, has_usable_phone, upsert_lead

logger = get_logger(__name__)

GLOBAL_TOPIC = "helpdesk-realtime"
NEW_MESSAGE_EVENT = "new-message"
TRANSCRIPTION_PATH = "/tasks/transcription/transcribe"


def inbox_topic(inbox_id: str) -> str:
    return f"helpdesk-inbox-{inbox_id}"


def broadcast_payload(persisted: PersistedMessage) -> dict[str, Any]:
    message = persisted.message
    payload: dict[str, Any] = {
        "conversation_id": persisted.conversation_id,
        "inbox_id": persisted.identity.inbox_id,
        "message_id": persisted.message_id,
        "direction": message.direction,
        "media_type": message.media_type.value,
        "media_url": message.media_url,
    }
    if persisted.status_ia is not None:
        payload["status_ia"] = persisted.status_ia
    return payload


def publish_new_message(persisted: PersistedMessage, publisher: RealtimePublisher) -> int:
    """Broadcast the new message on every subscriber topic.

    Returns:
        Number of topics that accepted the event.
    """
    if not publisher.enabled:
        return 0

    payload = broadcast_payload(persisted)
    delivered = 0
    for topic in (GLOBAL_TOPIC, inbox_topic(persisted.identity.inbox_id)):
        try:
            publisher.publish(topic, NEW_MESSAGE_EVENT, payload)
            delivered += 1
        except Exception as e:
            logger.warning(
                "broadcast failed",
                extra={
                    "extra_fields": safe_log_context(
                        topic=topic,
                        conversation_id=persisted.conversation_id,
                        error=type(e).__name__,
                    )
                },
            )
    return delivered


def needs_transcription(persisted: PersistedMessage) -> bool:
    message = persisted.message
    return (
        message.media_type is MediaType.AUDIO
        and not message.from_me
        and bool(message.media_url)
    )


def enqueue_transcription(
    persisted: PersistedMessage,
    tasks_client: TasksClient,
    correlation_id: str | None = None,
) -> bool:
    """Hand incoming audio to the transcription worker (fire and forget)."""
    if not needs_transcription(persisted):
        return False

    task_id = f"transcribe:{persisted.message_id}"
    try:
        return tasks_client.enqueue_http(
            task_id=task_id,
            url_path=TRANSCRIPTION_PATH,
            payload={
                "messageId": persisted.message_id,
                "audioUrl": persisted.message.media_url,
                "conversationId": persisted.conversation_id,
            },
            correlation_id=correlation_id,
        )
    except Exception:
        logger.exception(
            "transcription enqueue failed",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return False


def record_lead(persisted: PersistedMessage) -> str | None:
    """Add the sender of an incoming message to the tenant's helpdesk lead list.

    Returns:
        The upsert outcome, or None when skipped or failed.
    """
    identity = persisted.identity
    message = persisted.message
    if message.from_me or not identity.instance_id:
        return None

    phone = phone_from_jid(message.chat_id)
    if not has_usable_phone(phone):
        return None

    try:
        with txn() as cur:
            lead_list_id, list_created = ensure_lead_list(
                cur,
                instance_id=identity.instance_id,
                instance_name=identity.instance_name,
                user_id=identity.user_id or os.environ.get("LEAD_LIST_OWNER_ID"),
            )
            result = upsert_lead(
                cur,
                lead_list_id=lead_list_id,
                jid=message.chat_id,
                phone=phone,
                name=message.sender_name,
            )
    except Exception:
        logger.exception(
            "lead list upsert failed",
            extra={"extra_fields": safe_log_context(instance_id=identity.instance_id)},
        )
        return None

    logger.info(
        "lead list updated",
        extra={
            "extra_fields": safe_log_context(
                instance_id=identity.instance_id,
                list_created=list_created,
                result=result,
            )
        },
    )
    return result


def schedule_followups(
    background_tasks: BackgroundTasks,
    persisted: PersistedMessage,
    *,
    publisher: RealtimePublisher,
    tasks_client: TasksClient,
) -> None:
    """Queue broadcast, transcription and lead-list work to run after the response."""
    background_tasks.add_task(publish_new_message, persisted, publisher)
    if needs_transcription(persisted):
        background_tasks.add_task(
            enqueue_transcription, persisted, tasks_client, get_correlation_id()
        )
    background_tasks.add_task(record_lead, persisted)
