"""Payload unwrapping and event classification.

Deliveries arrive in three transport shapes (array-wrapped, `body`-wrapped,
flat) and three semantic shapes:

- status update: side-band assistant flag (`status_ia`), no event type
- raw agent message: no event type, but a chat id or content
- provider event envelope: explicit event type

`classify()` is the only place that decides between them. Precedence:

1. status field present and no event type -> StatusUpdate. Checked first so
   a bare status update is never read as a chat message. If the same
   delivery also has message content, the message rides along in `carried`.
2. chat id or content present and no event type -> ProviderEvent
   synthesized from the raw agent message.
3. event type present -> ProviderEvent when it names a message event,
   IgnoredEvent otherwise.
"""

from typing import Any

from .fields import as_dict, as_flag, as_text, first_text, first_value, key, path
from .models import Classified, IgnoredEvent, ProviderEvent, StatusUpdate, Unwrapped

# Envelope keys carrying the event-type discriminator, in priority order.
# Bare "type" is not a discriminator: raw agent messages use it for media type.
EVENT_TYPE_KEYS = ("EventType", "eventType", "event", "Event")

MESSAGE_EVENT_TYPES = frozenset({"messages", "message", "messages.upsert"})

STATUS_KEYS = ("status_ia", "statusIa", "statusIA")

SYNTHESIZED_EVENT_TYPE = "messages"

_INSTANCE_REF = (
    key("instanceName"),
    key("instance"),
    key("Instance"),
    key("instance_id"),
    key("instanceId"),
    path("instance", "name"),
    key("owner"),
)

_INBOX_ID = (key("inbox_id"), key("inboxId"))

_CHAT_ID = (
    key("chatid"),
    key("chatId"),
    key("remoteJid"),
    key("jid"),
    key("number"),
)

_MESSAGE_ID = (key("messageid"), key("messageId"), key("id"))

_CONTENT = (
    key("text"),
    key("content"),
    key("caption"),
    path("content", "text"),
)

_MEDIA_TYPE = (key("mediaType"), key("media_type"), key("messageType"), key("type"))

_FILE_URL = (
    key("fileURL"),
    key("fileUrl"),
    key("file_url"),
    key("media_url"),
    key("mediaUrl"),
)


def unwrap(raw: Any) -> Unwrapped:
    """Strip transport wrapping and return the effective payload.

    A list yields its first element. A nested `body` / `Body` object is used
    instead of the outer one only when it carries an event type itself.
    Never raises: anything that is not an object becomes an empty payload.
    """
    outer: Any = raw
    if isinstance(outer, list):
        outer = outer[0] if outer else {}
    outer = as_dict(outer)

    for wrapper in ("body", "Body"):
        nested = outer.get(wrapper)
        if isinstance(nested, dict) and event_type_of(nested) is not None:
            return Unwrapped(payload=nested, raw=raw)

    return Unwrapped(payload=outer, raw=raw)


def event_type_of(payload: dict[str, Any]) -> str | None:
    """Return the event-type discriminator, or None if the payload has none."""
    return first_text(payload, (key(name) for name in EVENT_TYPE_KEYS))


def is_message_event(event_type: str) -> bool:
    return event_type.strip().lower() in MESSAGE_EVENT_TYPES


def instance_ref(payload: dict[str, Any]) -> str | None:
    """Transport identifier of the tenant (id, name or owner address)."""
    return first_text(payload, _INSTANCE_REF)


def find_status(unwrapped: Unwrapped) -> str | None:
    """Locate the status-channel value.

    Some encodings keep it only on the outer (raw) object, so the effective
    payload is searched first, then the raw body, then a raw list's head.
    """
    candidates: list[dict[str, Any]] = [unwrapped.payload]
    raw = unwrapped.raw
    if isinstance(raw, dict):
        candidates.append(raw)
    elif isinstance(raw, list) and raw:
        candidates.append(as_dict(raw[0]))

    for candidate in candidates:
        for name in STATUS_KEYS:
            value = candidate.get(name)
            if isinstance(value, bool):
                return "ligada" if value else "desligada"
            text = as_text(value)
            if text is not None:
                return text
    return None


def _message_source(payload: dict[str, Any]) -> dict[str, Any]:
    """Agent messages put fields either under `message` or at the top level."""
    nested = payload.get("message")
    return nested if isinstance(nested, dict) else payload


def _has_content(payload: dict[str, Any]) -> bool:
    source = _message_source(payload)
    return (
        first_text(source, _CONTENT) is not None
        or first_text(source, _FILE_URL) is not None
    )


def _looks_like_message(payload: dict[str, Any]) -> bool:
    source = _message_source(payload)
    return first_text(source, _CHAT_ID) is not None or _has_content(payload)


def synthesize_event(payload: dict[str, Any]) -> ProviderEvent:
    """Rebuild a raw agent message in the provider envelope shape.

    Direction: an explicit `fromMe` wins; otherwise a message with content
    is treated as outgoing (agents post what they sent).
    """
    source = _message_source(payload)
    content = first_text(source, _CONTENT)
    file_url = first_text(source, _FILE_URL)

    from_me = as_flag(first_value(source, (key("fromMe"), key("from_me"))))
    if from_me is None:
        from_me = content is not None or file_url is not None

    message: dict[str, Any] = dict(source)
    message.update(
        {
            "chatid": first_text(source, _CHAT_ID),
            "fromMe": from_me,
            "messageid": first_text(source, _MESSAGE_ID),
            "text": content,
            "mediaType": first_text(source, _MEDIA_TYPE) or "",
            "fileURL": file_url,
        }
    )

    envelope: dict[str, Any] = {"EventType": SYNTHESIZED_EVENT_TYPE, "message": message}
    ref = instance_ref(payload)
    if ref is not None:
        envelope["instanceName"] = ref
    owner = as_text(payload.get("owner"))
    if owner is not None:
        envelope["owner"] = owner

    return ProviderEvent(
        event_type=SYNTHESIZED_EVENT_TYPE,
        payload=envelope,
        inbox_id=first_text(payload, _INBOX_ID),
        synthesized=True,
    )


def classify(unwrapped: Unwrapped) -> Classified:
    """Decide what a delivery is. See module docstring for precedence."""
    payload = unwrapped.payload
    event_type = event_type_of(payload)

    if event_type is None:
        status = find_status(unwrapped)
        if status is not None:
            source = _message_source(payload)
            return StatusUpdate(
                status=status,
                chat_id=first_text(source, _CHAT_ID) or first_text(payload, _CHAT_ID),
                instance_ref=instance_ref(payload),
                inbox_id=first_text(payload, _INBOX_ID),
                carried=synthesize_event(payload) if _has_content(payload) else None,
            )
        if _looks_like_message(payload):
            return synthesize_event(payload)
        return IgnoredEvent(event_type=None)

    if is_message_event(event_type):
        return ProviderEvent(
            event_type=event_type,
            payload=payload,
            inbox_id=first_text(payload, _INBOX_ID),
        )
    return IgnoredEvent(event_type=event_type)
