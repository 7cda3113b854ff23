"""Contacts - upsert by WhatsApp address (jid).

A contact's name is never overwritten once set; ingestion only fills a
missing one. Creation is race-safe: INSERT ... ON CONFLICT (jid) DO NOTHING
and a re-select when another delivery won.
"""

import re

from psycopg2.extensions import cursor as PgCursor

_NON_DIGITS = re.compile(r"\D")


def phone_from_jid(jid: str) -> str:
    """Digits of the address local part ("5511999@s.whatsapp.net" -> "5511999").

    Device suffixes ("5511999:12@s.whatsapp.net") are dropped.
    """
    local = jid.split("@", 1)[0].split(":", 1)[0]
    return _NON_DIGITS.sub("", local)


def find_contact_id(cur: PgCursor, jid: str) -> str | None:
    cur.execute("SELECT id FROM contacts WHERE jid = %s", (jid,))
    row = cur.fetchone()
    return str(row[0]) if row else None


def upsert_contact(
    cur: PgCursor,
    *,
    jid: str,
    name: str | None = None,
) -> tuple[str, bool]:
    """Find or create the contact for `jid`.

    Args:
        cur: Database cursor (within transaction).
        jid: Contact address.
        name: Best available display name; only used if none is stored.

    Returns:
        Tuple of (contact_id, created).
    """
    cur.execute(
        """
        INSERT INTO contacts (jid, phone, name)
        VALUES (%s, %s, %s)
        ON CONFLICT (jid) DO NOTHING
        RETURNING id
        """,
        (jid, phone_from_jid(jid), name),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0]), True

    contact_id = find_contact_id(cur, jid)
    if contact_id is None:
        raise RuntimeError("contact vanished between insert and select")

    if name:
        # Back-fill only; a stored name always wins
        cur.execute(
            """
            UPDATE contacts SET name = %s
            WHERE id = %s AND (name IS NULL OR name = '')
            """,
            (name, contact_id),
        )

    return contact_id, False
