"""Message normalizer - provider event envelope to NormalizedMessage.

Supports the UAZAPI shape (`message` object with chatid/messageid/...) and
the Evolution shape (`data.key` + `data.message.<kind>Message`), which is
translated into the former before extraction.

Security: the returned record carries PII (chat_id, content, sender_name).
Keep it in memory; log only via safe_log_context().
"""

import json
from typing import Any

from wsmart.infra.time import from_provider_timestamp, utc_now

from .fields import as_dict, as_flag, as_text, first_text, first_value, key, path
from .models import MediaType, NormalizedMessage


class InvalidPayloadError(Exception):
    """Raised when a message event lacks the data needed to ingest it."""

    pass


GROUP_SUFFIX = "@g.us"

# Substring -> canonical type, checked in order (first match wins)
_MEDIA_TYPE_RULES: tuple[tuple[tuple[str, ...], MediaType], ...] = (
    (("sticker",), MediaType.STICKER),
    (("image",), MediaType.IMAGE),
    (("video",), MediaType.VIDEO),
    (("audio", "ptt", "voice"), MediaType.AUDIO),
    (("document", "pdf", "file"), MediaType.DOCUMENT),
    (("contact", "vcard"), MediaType.CONTACT),
)

_CHAT_ID = (key("chatid"), key("chatId"), key("remoteJid"), path("key", "remoteJid"))
_RAW_ID = (key("messageid"), key("messageId"), key("id"), path("key", "id"))
_FROM_ME = (key("fromMe"), path("key", "fromMe"))
_TYPE_HINTS = (key("mediaType"), key("messageType"), key("type"))
_CONTENT = (
    key("text"),
    key("caption"),
    key("content"),
    path("content", "text"),
    path("content", "caption"),
)
_MEDIA_URL = (
    key("fileURL"),
    key("fileUrl"),
    path("content", "URL"),
    path("content", "url"),
)
_MIME_TYPE = (key("mimetype"), key("mimeType"), path("content", "mimetype"))
_FILE_NAME = (key("fileName"), path("content", "fileName"), path("content", "title"))
_VCARD = (key("vcard"), path("content", "vcard"))
_DISPLAY_NAME = (path("content", "displayName"), key("displayName"))
_SENDER_NAME = (key("senderName"), key("pushName"))
_CHAT_NAME = (
    path("chat", "wa_contactName"),
    path("chat", "name"),
    path("chat", "wa_name"),
)
_TIMESTAMP = (key("messageTimestamp"), key("timestamp"))

# Evolution kinds -> (content key inside the kind object, mediaType hint)
_EVOLUTION_KINDS = {
    "imageMessage": ("caption", "image"),
    "videoMessage": ("caption", "video"),
    "audioMessage": (None, "audio"),
    "documentMessage": ("caption", "document"),
    "documentWithCaptionMessage": ("caption", "document"),
    "stickerMessage": (None, "sticker"),
    "contactMessage": (None, "contact"),
}


def map_media_type(raw: Any) -> MediaType:
    """Map a provider type string to a canonical media type.

    Case-insensitive substring match; empty or unrecognized -> TEXT.
    """
    text = as_text(raw)
    if text is None:
        return MediaType.TEXT
    lowered = text.lower()
    for needles, media_type in _MEDIA_TYPE_RULES:
        if any(needle in lowered for needle in needles):
            return media_type
    return MediaType.TEXT


def split_external_id(raw_id: str | None) -> tuple[str | None, str | None]:
    """Split "<owner>:<id>" into (owner, id). Plain ids return (None, id)."""
    if not raw_id:
        return None, None
    if ":" not in raw_id:
        return None, raw_id
    prefix, _, tail = raw_id.rpartition(":")
    return (prefix or None), (tail or None)


def _from_evolution(data: dict[str, Any]) -> dict[str, Any]:
    """Translate an Evolution `data` object into the UAZAPI message shape."""
    key_obj = as_dict(data.get("key"))
    message = as_dict(data.get("message"))
    kind = as_text(data.get("messageType")) or ""

    text = as_text(message.get("conversation")) or first_text(
        message, (path("extendedTextMessage", "text"),)
    )
    content_key, hint = _EVOLUTION_KINDS.get(kind, (None, kind))
    kind_obj = as_dict(message.get(kind))
    if kind == "documentWithCaptionMessage":
        kind_obj = as_dict(path("message", "documentMessage")(kind_obj))
    if content_key and text is None:
        text = as_text(kind_obj.get(content_key))

    content: dict[str, Any] = {}
    if kind == "contactMessage":
        content = {
            "displayName": kind_obj.get("displayName"),
            "vcard": kind_obj.get("vcard"),
        }

    return {
        "chatid": key_obj.get("remoteJid"),
        "fromMe": key_obj.get("fromMe"),
        "messageid": key_obj.get("id"),
        "senderName": data.get("pushName"),
        "messageType": kind,
        "mediaType": hint or "",
        "text": text,
        "fileURL": kind_obj.get("url"),
        "mimetype": kind_obj.get("mimetype"),
        "fileName": kind_obj.get("fileName"),
        "messageTimestamp": data.get("messageTimestamp"),
        "content": content,
    }


def message_object(payload: dict[str, Any]) -> dict[str, Any]:
    """Return the provider message object, whichever shape the envelope uses."""
    message = payload.get("message")
    if isinstance(message, dict):
        return message
    data = payload.get("data")
    if isinstance(data, dict):
        if isinstance(data.get("key"), dict):
            return _from_evolution(data)
        nested = data.get("message")
        if isinstance(nested, dict) and first_text(nested, _CHAT_ID):
            return nested
    raise InvalidPayloadError("missing message data")


def _resolve_media_type(msg: dict[str, Any]) -> MediaType:
    for extract in _TYPE_HINTS:
        media_type = map_media_type(extract(msg))
        if media_type is not MediaType.TEXT:
            return media_type
    return MediaType.TEXT


def _contact_card(msg: dict[str, Any]) -> tuple[str | None, str | None]:
    """Return (media_reference_json, display_name) for an embedded vCard."""
    display_name = first_text(msg, _DISPLAY_NAME)
    vcard = first_text(msg, _VCARD)
    if vcard is None:
        return None, display_name
    blob = json.dumps({"displayName": display_name, "vcard": vcard}, ensure_ascii=False)
    return blob, display_name


def normalize(payload: dict[str, Any]) -> NormalizedMessage:
    """Extract the canonical message record from a provider event envelope.

    Raises:
        InvalidPayloadError: If there is no message object or no chat id.
    """
    msg = message_object(payload)

    chat_id = first_text(msg, _CHAT_ID)
    if chat_id is None:
        raise InvalidPayloadError("missing chat id")

    from_me = bool(as_flag(first_value(msg, _FROM_ME)))

    prefix, external_id = split_external_id(first_text(msg, _RAW_ID))
    owner = prefix or first_text(msg, (key("owner"),)) or first_text(payload, (key("owner"),))
    legacy_external_id = f"{owner}:{external_id}" if owner and external_id else None

    media_type = _resolve_media_type(msg)
    content = first_text(msg, _CONTENT)
    media_url = first_text(msg, _MEDIA_URL)
    file_name = first_text(msg, _FILE_NAME)

    if media_type is MediaType.CONTACT:
        card, display_name = _contact_card(msg)
        if card is not None:
            media_url = card
        content = content or display_name
    elif media_type is MediaType.DOCUMENT and content is None:
        content = file_name

    chat_name = first_text(payload, _CHAT_NAME)
    sender_name = chat_name if from_me else (first_text(msg, _SENDER_NAME) or chat_name)

    return NormalizedMessage(
        chat_id=chat_id,
        from_me=from_me,
        external_id=external_id,
        legacy_external_id=legacy_external_id,
        media_type=media_type,
        content=content,
        media_url=media_url,
        mime_type=first_text(msg, _MIME_TYPE),
        file_name=file_name,
        sender_name=sender_name,
        owner=owner,
        timestamp=from_provider_timestamp(first_value(msg, _TIMESTAMP)) or utc_now(),
        is_group=chat_id.endswith(GROUP_SUFFIX) or bool(as_flag(msg.get("isGroup"))),
    )
