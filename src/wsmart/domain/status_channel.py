"""Status channel - side-band assistant flag (status_ia) on a conversation.

A status update names a chat, not a conversation: the tenant, contact and
current conversation are resolved here. When the same delivery also
carries a message, the resolved identity and conversation are handed to
the message pipeline so nothing is resolved twice.
"""

from dataclasses import dataclass

from psycopg2.extensions import cursor as PgCursor

from wsmart.whatsapp.models import Identity, StatusUpdate

from .contacts import find_contact_id
from .conversations import find_open_conversation, set_status_ia
from .identity import InboxNotConfigured, InstanceNotFound, resolve_by_inbox, resolve_instance

UPDATED = "status_ia_updated"


@dataclass(frozen=True)
class StatusResult:
    """Outcome of a status update.

    Attributes:
        reason: status_ia_* reason code.
        identity: Tenant identity, when it could be resolved.
        conversation_id: Conversation that received the flag, if any.
    """

    reason: str
    identity: Identity | None = None
    conversation_id: str | None = None

    @property
    def updated(self) -> bool:
        return self.reason == UPDATED


def apply_status(cur: PgCursor, update: StatusUpdate) -> StatusResult:
    """Resolve the conversation named by `update` and set its flag."""
    if not update.chat_id:
        return StatusResult("status_ia_no_chatid")

    try:
        if update.inbox_id:
            identity = resolve_by_inbox(cur, update.inbox_id)
        elif update.instance_ref:
            identity = resolve_instance(cur, update.instance_ref)
        else:
            return StatusResult("status_ia_no_instance")
    except InstanceNotFound:
        return StatusResult("status_ia_instance_not_found")
    except InboxNotConfigured:
        return StatusResult("status_ia_no_inbox")

    contact_id = find_contact_id(cur, update.chat_id)
    if contact_id is None:
        return StatusResult("status_ia_no_contact", identity=identity)

    conversation_id = find_open_conversation(
        cur, inbox_id=identity.inbox_id, contact_id=contact_id
    )
    if conversation_id is None:
        return StatusResult("status_ia_no_conversation", identity=identity)

    set_status_ia(cur, conversation_id=conversation_id, status=update.status)
    return StatusResult(UPDATED, identity=identity, conversation_id=conversation_id)
