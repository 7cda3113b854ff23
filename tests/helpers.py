"""Payload builders shared by test modules (regular functions, not fixtures)."""

from __future__ import annotations

from typing import Any


def uazapi_message(
    *,
    chatid: str = "5511999990000@s.whatsapp.net",
    messageid: str = "OWNER:MSG123456789",
    from_me: bool = False,
    text: str | None = "Hello",
    media_type: str = "",
    instance: str = "acct1",
    **message_fields: Any,
) -> dict[str, Any]:
    """Provider envelope in the UAZAPI shape."""
    message: dict[str, Any] = {
        "chatid": chatid,
        "fromMe": from_me,
        "messageid": messageid,
        "mediaType": media_type,
    }
    if text is not None:
        message["text"] = text
    message.update(message_fields)
    return {"EventType": "messages", "instanceName": instance, "message": message}


def evolution_message(
    *,
    remote_jid: str = "5511988887777@s.whatsapp.net",
    message_id: str = "EVO123456789",
    from_me: bool = False,
    text: str = "Oi",
) -> dict[str, Any]:
    """Provider envelope in the Evolution shape."""
    return {
        "event": "messages.upsert",
        "instance": "acct1",
        "data": {
            "key": {"id": message_id, "remoteJid": remote_jid, "fromMe": from_me},
            "pushName": "Maria",
            "messageType": "conversation",
            "message": {"conversation": text},
            "messageTimestamp": 1767225600,
        },
    }
