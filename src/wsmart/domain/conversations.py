"""Conversation threading - one current thread per (inbox, contact).

Status lifecycle (open/pending <-> resolved) belongs to the agent UI.
Ingestion only creates conversations as "open" and treats open and
pending as equally current.

The single-current-thread rule is backed by the partial unique index
uq_conversations_current (migration 002); creation uses ON CONFLICT DO
NOTHING and re-selects, so concurrent first messages converge.
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from wsmart.whatsapp.models import MediaType

CURRENT_STATUSES = ("open", "pending")
DEFAULT_STATUS = "open"
DEFAULT_PRIORITY = "medium"

PREVIEW_MAX_LENGTH = 200

MEDIA_PREVIEWS: dict[MediaType, str] = {
    MediaType.IMAGE: "📷 Image",
    MediaType.VIDEO: "🎥 Video",
    MediaType.AUDIO: "🎵 Audio",
    MediaType.DOCUMENT: "📄 Document",
    MediaType.STICKER: "🏷️ Sticker",
    MediaType.CONTACT: "👤 Contact",
}


def preview_for(media_type: MediaType, content: str | None) -> str:
    """Conversation list preview: text itself, or emoji + label for media."""
    if media_type is MediaType.TEXT:
        return (content or "")[:PREVIEW_MAX_LENGTH]
    return MEDIA_PREVIEWS[media_type]


def find_open_conversation(
    cur: PgCursor,
    *,
    inbox_id: str,
    contact_id: str,
) -> str | None:
    """Most recent open/pending conversation for (inbox, contact), if any."""
    cur.execute(
        """
        SELECT id FROM conversations
        WHERE inbox_id = %s AND contact_id = %s AND status IN %s
        ORDER BY created_at DESC
        LIMIT 1
        """,
        (inbox_id, contact_id, CURRENT_STATUSES),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def find_or_create_conversation(
    cur: PgCursor,
    *,
    inbox_id: str,
    contact_id: str,
    at: datetime,
) -> tuple[str, bool]:
    """Attach to the current conversation or open a new one.

    Returns:
        Tuple of (conversation_id, created).
    """
    existing = find_open_conversation(cur, inbox_id=inbox_id, contact_id=contact_id)
    if existing is not None:
        return existing, False

    cur.execute(
        """
        INSERT INTO conversations
            (inbox_id, contact_id, status, priority, is_read, last_message_at)
        VALUES (%s, %s, %s, %s, false, %s)
        ON CONFLICT (inbox_id, contact_id) WHERE status IN ('open', 'pending')
        DO NOTHING
        RETURNING id
        """,
        (inbox_id, contact_id, DEFAULT_STATUS, DEFAULT_PRIORITY, at),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0]), True

    # Lost the race to a concurrent delivery; its row is now visible
    winner = find_open_conversation(cur, inbox_id=inbox_id, contact_id=contact_id)
    if winner is None:
        raise RuntimeError("conversation vanished between insert and select")
    return winner, False


def touch_conversation(
    cur: PgCursor,
    *,
    conversation_id: str,
    at: datetime,
    preview: str,
    incoming: bool,
    status_ia: str | None = None,
) -> None:
    """Record a new message on the conversation.

    last_message_at never moves backwards (redelivered old messages).
    is_read is cleared only by incoming messages. status_ia is overwritten
    when the delivery carried one.
    """
    cur.execute(
        """
        UPDATE conversations
        SET last_message_at = GREATEST(COALESCE(last_message_at, %s), %s),
            last_message = %s,
            is_read = CASE WHEN %s THEN false ELSE is_read END,
            status_ia = COALESCE(%s, status_ia),
            updated_at = now()
        WHERE id = %s
        """,
        (at, at, preview, incoming, status_ia, conversation_id),
    )


def set_status_ia(cur: PgCursor, *, conversation_id: str, status: str) -> None:
    """Overwrite the assistant flag (idempotent)."""
    cur.execute(
        """
        UPDATE conversations
        SET status_ia = %s, updated_at = now()
        WHERE id = %s
        """,
        (status, conversation_id),
    )
