"""Identity resolution - transport identifier to tenant (instance) and inbox.

Two paths:
- fast path (`resolve_by_inbox`): the inbox is already known (status channel
  or a raw agent message carried it). Only the tenant token is fetched; a
  missing tenant yields an empty token and media resolution is skipped.
- slow path (`resolve_instance`): the transport identifier is matched against
  instance id, name and owner address (with and without the WhatsApp
  suffix), then the bound inbox is looked up.

Unknown tenants and unbound inboxes are expected traffic (deprovisioned
accounts keep receiving webhooks). Callers acknowledge them with 200.
"""

import uuid

from psycopg2.extensions import cursor as PgCursor

from wsmart.whatsapp.models import Identity

JID_SUFFIX = "@s.whatsapp.net"


class InstanceNotFound(Exception):
    """No instance matches the transport identifier."""

    pass


class InboxNotConfigured(Exception):
    """The instance has no inbox bound to it."""

    pass


def owner_variants(ref: str) -> list[str]:
    """Owner-address spellings to try: as given, without and with the suffix."""
    bare = ref[: -len(JID_SUFFIX)] if ref.endswith(JID_SUFFIX) else ref
    variants = [ref, bare, f"{bare}{JID_SUFFIX}"]
    return list(dict.fromkeys(variants))


def resolve_instance(cur: PgCursor, ref: str) -> Identity:
    """Resolve a transport identifier to an instance and its inbox.

    Exact id matches win over name matches, which win over owner matches.

    Raises:
        InstanceNotFound: If nothing matches.
        InboxNotConfigured: If the instance has no inbox.
    """
    cur.execute(
        """
        SELECT id, name, token, owner_jid, user_id
        FROM instances
        WHERE id::text = %s OR name = %s OR owner_jid = ANY(%s)
        ORDER BY (id::text = %s) DESC, (name = %s) DESC
        LIMIT 1
        """,
        (ref, ref, owner_variants(ref), ref, ref),
    )
    row = cur.fetchone()
    if row is None:
        raise InstanceNotFound(ref)

    instance_id, name, token, owner_jid, user_id = row

    cur.execute(
        """
        SELECT id FROM inboxes
        WHERE instance_id = %s
        ORDER BY created_at
        LIMIT 1
        """,
        (instance_id,),
    )
    inbox = cur.fetchone()
    if inbox is None:
        raise InboxNotConfigured(str(instance_id))

    return Identity(
        inbox_id=str(inbox[0]),
        instance_id=str(instance_id),
        instance_name=name,
        token=token or "",
        owner_jid=owner_jid,
        user_id=str(user_id) if user_id else None,
    )


def resolve_by_inbox(cur: PgCursor, inbox_id: str) -> Identity:
    """Fast path for an inbox id resolved upstream.

    Raises:
        InboxNotConfigured: If the id is malformed or no such inbox exists.
    """
    try:
        uuid.UUID(inbox_id)
    except ValueError:
        raise InboxNotConfigured(inbox_id) from None

    cur.execute(
        """
        SELECT b.id, i.id, i.name, i.token, i.owner_jid, i.user_id
        FROM inboxes b
        LEFT JOIN instances i ON i.id = b.instance_id
        WHERE b.id = %s
        """,
        (inbox_id,),
    )
    row = cur.fetchone()
    if row is None:
        raise InboxNotConfigured(inbox_id)

    found_inbox_id, instance_id, name, token, owner_jid, user_id = row
    return Identity(
        inbox_id=str(found_inbox_id),
        instance_id=str(instance_id) if instance_id else None,
        instance_name=name,
        token=token or "",
        owner_jid=owner_jid,
        user_id=str(user_id) if user_id else None,
    )
