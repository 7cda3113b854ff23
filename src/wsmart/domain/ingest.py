"""Inbound ingestion pipeline.

unwrap -> classify -> (status channel) -> identity -> normalize ->
dedupe pre-check -> media -> contact/conversation -> persist

Every acknowledged no-op returns an IngestOutcome with `skipped` and a
reason code; structural problems raise InvalidPayloadError (HTTP 400);
database failures propagate (HTTP 500, provider retries, dedupe makes the
retry safe).

The duplicate pre-check runs before media resolution so redeliveries never
download or upload anything. The unique index on external_id remains the
authoritative guard at insert time.

Side effects that must not delay or fail the response (broadcast,
transcription, lead list) are described by `PersistedMessage` and run by
wsmart.domain.fanout after the response.
"""

from dataclasses import dataclass
from typing import Any

from wsmart.infra.db import txn
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import id_prefix, safe_log_context
from wsmart.whatsapp.envelope import classify, instance_ref, unwrap
from wsmart.whatsapp.media import MediaStorage, ProviderClient, resolve_media
from wsmart.whatsapp.models import (
    IgnoredEvent,
    Identity,
    IngestOutcome,
    NormalizedMessage,
    ProviderEvent,
    StatusUpdate,
)
from wsmart.whatsapp.normalizer import InvalidPayloadError, normalize

from .contacts import phone_from_jid, upsert_contact
from .conversations import find_or_create_conversation, preview_for, touch_conversation
from .identity import InboxNotConfigured, InstanceNotFound, resolve_by_inbox, resolve_instance
from .messages import find_duplicate, insert_message
from .status_channel import StatusResult, apply_status

logger = get_logger(__name__)


class MissingInstanceError(InvalidPayloadError):
    """No instance identifier and no inbox fallback in the delivery."""

    pass


class _NotInserted(Exception):
    """Message insert was a no-op; aborts the surrounding transaction."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class PersistedMessage:
    """What the fan-out stage needs after a message was stored."""

    identity: Identity
    conversation_id: str
    message_id: str
    message: NormalizedMessage
    status_ia: str | None = None


@dataclass
class IngestResult:
    outcome: IngestOutcome
    persisted: PersistedMessage | None = None


def _skip(reason: str, **log_fields: Any) -> IngestResult:
    logger.info(
        "delivery skipped",
        extra={"extra_fields": safe_log_context(reason=reason, **log_fields)},
    )
    return IngestResult(outcome=IngestOutcome.skip(reason))


def _status_only(update: StatusUpdate, result: StatusResult) -> IngestResult:
    logger.info(
        "status channel processed",
        extra={
            "extra_fields": safe_log_context(
                reason=result.reason,
                conversation_id=result.conversation_id,
                status_ia=update.status,
            )
        },
    )
    outcome = IngestOutcome(
        ok=True,
        skipped=not result.updated,
        reason=result.reason,
        conversation_id=result.conversation_id,
        status_ia=update.status,
    )
    return IngestResult(outcome=outcome)


def _resolve_identity(event: ProviderEvent, status: StatusResult | None) -> Identity:
    """Reuse upstream identity when available, else resolve from the envelope.

    Raises:
        MissingInstanceError, InstanceNotFound, InboxNotConfigured
    """
    if status is not None and status.identity is not None:
        return status.identity

    with txn() as cur:
        if event.inbox_id:
            return resolve_by_inbox(cur, event.inbox_id)
        ref = instance_ref(event.payload)
        if ref is None:
            raise MissingInstanceError("no instance identifier")
        return resolve_instance(cur, ref)


def _with_legacy_id(message: NormalizedMessage, identity: Identity) -> NormalizedMessage:
    """Fill the legacy "<owner>:<id>" key from the tenant owner when the payload had none."""
    if message.legacy_external_id or not message.external_id or not identity.owner_jid:
        return message
    owner = phone_from_jid(identity.owner_jid)
    if not owner:
        return message
    return message.evolve(legacy_external_id=f"{owner}:{message.external_id}")


def ingest(
    raw: Any,
    *,
    provider: ProviderClient,
    media_storage: MediaStorage,
) -> IngestResult:
    """Process one webhook delivery.

    Raises:
        InvalidPayloadError: Structurally invalid message event (HTTP 400).
        psycopg2.Error: Persistence failure (HTTP 500).
    """
    classified = classify(unwrap(raw))

    if isinstance(classified, IgnoredEvent):
        return _skip(classified.reason, event_type=classified.event_type)

    status_result: StatusResult | None = None
    status_value: str | None = None
    if isinstance(classified, StatusUpdate):
        with txn() as cur:
            status_result = apply_status(cur, classified)
        if classified.carried is None:
            return _status_only(classified, status_result)
        status_value = classified.status
        event = classified.carried
    else:
        event = classified

    message = normalize(event.payload)
    if message.is_group:
        return _skip("group")

    try:
        identity = _resolve_identity(event, status_result)
    except InstanceNotFound:
        return _skip("instance_not_found")
    except InboxNotConfigured:
        return _skip("no_inbox")

    message = _with_legacy_id(message, identity)
    log_ctx = dict(
        inbox_id=identity.inbox_id,
        message_id_prefix=id_prefix(message.external_id),
        direction=message.direction,
        media_type=message.media_type.value,
    )

    with txn() as cur:
        duplicate_of = find_duplicate(cur, message.external_id, message.legacy_external_id)
    if duplicate_of is not None:
        return _skip("duplicate", **log_ctx)

    message = resolve_media(
        message,
        token=identity.token,
        provider=provider,
        media_storage=media_storage,
        prefix=identity.inbox_id,
    )

    reuse_conversation = (
        status_result is not None
        and status_result.conversation_id is not None
        and status_result.identity is not None
        and status_result.identity.inbox_id == identity.inbox_id
    )

    try:
        with txn() as cur:
            contact_id, contact_created = upsert_contact(
                cur, jid=message.chat_id, name=message.sender_name
            )

            if reuse_conversation:
                conversation_id = status_result.conversation_id
                conversation_created = False
            else:
                conversation_id, conversation_created = find_or_create_conversation(
                    cur,
                    inbox_id=identity.inbox_id,
                    contact_id=contact_id,
                    at=message.timestamp,
                )

            message_id = insert_message(cur, conversation_id=conversation_id, message=message)
            if message_id is None:
                # Roll back the contact/conversation written for this delivery
                raise _NotInserted("duplicate_index" if message.external_id else "no_insert")

            touch_conversation(
                cur,
                conversation_id=conversation_id,
                at=message.timestamp,
                preview=preview_for(message.media_type, message.content),
                incoming=not message.from_me,
                status_ia=status_value,
            )
    except _NotInserted as e:
        return _skip(e.reason, **log_ctx)

    logger.info(
        "message ingested",
        extra={
            "extra_fields": safe_log_context(
                **log_ctx,
                conversation_id=conversation_id,
                contact_created=contact_created,
                conversation_created=conversation_created,
                has_media_url=bool(message.media_url),
            )
        },
    )

    outcome = IngestOutcome(
        ok=True,
        conversation_id=conversation_id,
        message_id=message_id,
        status_ia=status_value,
    )
    persisted = PersistedMessage(
        identity=identity,
        conversation_id=conversation_id,
        message_id=message_id,
        message=message,
        status_ia=status_value,
    )
    return IngestResult(outcome=outcome, persisted=persisted)
