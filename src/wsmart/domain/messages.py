"""Messages - deduplication guard and insert.

The external (provider) id is the idempotency key. Two layers:
- find_duplicate(): pre-check on the plain id and the legacy
  "<owner>:<id>" spelling stored by older releases;
- insert_message(): unique index on external_id with ON CONFLICT DO
  NOTHING, authoritative under concurrent deliveries.
"""

from psycopg2.extensions import cursor as PgCursor

from wsmart.whatsapp.models import NormalizedMessage


def find_duplicate(
    cur: PgCursor,
    external_id: str | None,
    legacy_external_id: str | None = None,
) -> str | None:
    """Return the id of an already-ingested message with this external id."""
    if not external_id:
        return None
    cur.execute(
        """
        SELECT id FROM conversation_messages
        WHERE external_id = %s OR external_id = %s
        LIMIT 1
        """,
        (external_id, legacy_external_id or external_id),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def insert_message(
    cur: PgCursor,
    *,
    conversation_id: str,
    message: NormalizedMessage,
) -> str | None:
    """Insert the message row.

    Returns:
        New message id, or None when the unique index rejected it.
    """
    cur.execute(
        """
        INSERT INTO conversation_messages
            (conversation_id, direction, content, media_type, media_url,
             external_id, created_at)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (external_id) DO NOTHING
        RETURNING id
        """,
        (
            conversation_id,
            message.direction,
            message.content,
            message.media_type.value,
            message.media_url,
            message.external_id,
            message.timestamp,
        ),
    )
    row = cur.fetchone()
    return str(row[0]) if row else None


def set_transcription(cur: PgCursor, *, message_id: str, transcription: str) -> bool:
    """Attach a transcription to a message. Returns False if no such message."""
    cur.execute(
        "UPDATE conversation_messages SET transcription = %s WHERE id = %s",
        (transcription, message_id),
    )
    return cur.rowcount > 0
