"""Per-tenant helpdesk lead list.

Every incoming contact with a usable phone is appended to the tenant's
"helpdesk" lead list (created on first use). Existing entries are kept;
only a missing name is back-filled.
"""

from psycopg2.extensions import cursor as PgCursor

HELPDESK_LIST_KIND = "helpdesk"
LEAD_SOURCE = "helpdesk"

# Shorter numbers are internal ids (@lid addresses), not phones
MIN_PHONE_DIGITS = 10


def has_usable_phone(phone: str | None) -> bool:
    return bool(phone) and phone.isdigit() and len(phone) >= MIN_PHONE_DIGITS


def lead_list_name(instance_name: str | None) -> str:
    return f"Helpdesk - {instance_name}" if instance_name else "Helpdesk"


def ensure_lead_list(
    cur: PgCursor,
    *,
    instance_id: str,
    instance_name: str | None,
    user_id: str | None,
) -> tuple[str, bool]:
    """Return (lead_list_id, created) for the tenant's helpdesk list."""
    cur.execute(
        """
        INSERT INTO lead_databases (instance_id, name, user_id, kind)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (instance_id) WHERE kind = 'helpdesk' DO NOTHING
        RETURNING id
        """,
        (instance_id, lead_list_name(instance_name), user_id, HELPDESK_LIST_KIND),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0]), True

    cur.execute(
        """
        SELECT id FROM lead_databases
        WHERE instance_id = %s AND kind = %s
        """,
        (instance_id, HELPDESK_LIST_KIND),
    )
    row = cur.fetchone()
    if row is None:
        raise RuntimeError("lead list vanished between insert and select")
    return str(row[0]), False


def upsert_lead(
    cur: PgCursor,
    *,
    lead_list_id: str,
    jid: str,
    phone: str,
    name: str | None,
) -> str:
    """Append a contact to a lead list.

    Returns:
        "created", "backfilled" (name filled on an existing entry) or "exists".
    """
    cur.execute(
        """
        INSERT INTO lead_database_entries (database_id, jid, phone, name, source)
        VALUES (%s, %s, %s, %s, %s)
        ON CONFLICT (database_id, phone) DO NOTHING
        RETURNING id
        """,
        (lead_list_id, jid, phone, name, LEAD_SOURCE),
    )
    if cur.fetchone() is not None:
        cur.execute(
            """
            UPDATE lead_databases
            SET leads_count = COALESCE(leads_count, 0) + 1, updated_at = now()
            WHERE id = %s
            """,
            (lead_list_id,),
        )
        return "created"

    if name:
        cur.execute(
            """
            UPDATE lead_database_entries SET name = %s
            WHERE database_id = %s AND phone = %s AND (name IS NULL OR name = '')
            """,
            (name, lead_list_id, phone),
        )
        if cur.rowcount > 0:
            return "backfilled"

    return "exists"
