"""WhatsApp ingestion models.

The classifier turns every delivery into exactly one of `StatusUpdate`,
`ProviderEvent` or `IgnoredEvent`. `NormalizedMessage` is the canonical
message record extracted from a `ProviderEvent`.

ATTENTION PII: chat_id, content, sender_name and media_url are personal data.
Never log them directly; pass through safe_log_context().
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class MediaType(str, Enum):
    """Canonical media types stored in messages.media_type."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    CONTACT = "contact"


Direction = Literal["incoming", "outgoing"]


@dataclass(frozen=True)
class Unwrapped:
    """Effective payload after transport unwrapping, plus the original body."""

    payload: dict[str, Any]
    raw: Any


@dataclass(frozen=True)
class ProviderEvent:
    """A provider event envelope (explicit or synthesized from an agent message).

    Attributes:
        event_type: Discriminator value as received (or "messages" if synthesized).
        payload: Envelope with a `message` object and instance reference fields.
        inbox_id: Inbox already known upstream (raw agent messages may carry it).
        synthesized: True when built from a raw agent message.
    """

    event_type: str
    payload: dict[str, Any]
    inbox_id: str | None = None
    synthesized: bool = False


@dataclass(frozen=True)
class StatusUpdate:
    """Side-band assistant flag for a conversation.

    `carried` holds the message that arrived in the same delivery, if any.
    """

    status: str
    chat_id: str | None
    instance_ref: str | None
    inbox_id: str | None = None
    carried: ProviderEvent | None = None


@dataclass(frozen=True)
class IgnoredEvent:
    """Delivery acknowledged without processing."""

    event_type: str | None
    reason: str = "not_message_event"


Classified = StatusUpdate | ProviderEvent | IgnoredEvent


@dataclass(frozen=True)
class NormalizedMessage:
    """Canonical message record extracted from any supported raw shape."""

    chat_id: str
    from_me: bool
    external_id: str | None
    media_type: MediaType
    timestamp: datetime
    content: str | None = None
    media_url: str | None = None
    mime_type: str | None = None
    file_name: str | None = None
    sender_name: str | None = None
    owner: str | None = None
    legacy_external_id: str | None = None
    is_group: bool = False

    @property
    def direction(self) -> Direction:
        return "outgoing" if self.from_me else "incoming"

    @property
    def is_media(self) -> bool:
        """True for types backed by a binary asset (not text, not contact card)."""
        return self.media_type not in (MediaType.TEXT, MediaType.CONTACT)

    def evolve(self, **changes: Any) -> "NormalizedMessage":
        """Copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class Identity:
    """Tenant resolution result.

    Attributes:
        inbox_id: Inbox bound to the tenant.
        instance_id: Tenant (instance) id, None when only the inbox was known.
        instance_name: Tenant display name.
        token: Provider auth token ("" when unavailable; media calls are skipped).
        owner_jid: Tenant owner address, used for legacy external ids.
        user_id: Tenant owner account, recorded on auto-created lead lists.
    """

    inbox_id: str
    instance_id: str | None = None
    instance_name: str | None = None
    token: str = ""
    owner_jid: str | None = None
    user_id: str | None = None


@dataclass
class IngestOutcome:
    """Result of one delivery; rendered as the JSON response body."""

    ok: bool = True
    skipped: bool = False
    reason: str | None = None
    conversation_id: str | None = None
    message_id: str | None = None
    status_ia: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def skip(cls, reason: str, **extra: Any) -> "IngestOutcome":
        return cls(ok=True, skipped=True, reason=reason, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"ok": self.ok}
        if self.skipped:
            body["skipped"] = True
        if self.reason:
            body["reason"] = self.reason
        if self.conversation_id:
            body["conversation_id"] = self.conversation_id
        if self.message_id:
            body["message_id"] = self.message_id
        if self.status_ia is not None:
            body["status_ia"] = self.status_ia
        body.update(self.extra)
        return body
