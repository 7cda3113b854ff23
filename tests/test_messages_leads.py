"""Tests for message dedupe/insert and the helpdesk lead list (mocked cursor)."""

from datetime import datetime, timezone

from wsmart.domain.leads import (
    ensure_lead_list,
    has_usable_phone,
    lead_list_name,
    upsert_lead,
)
from wsmart.domain.messages import find_duplicate, insert_message, set_transcription
from wsmart.whatsapp.models import MediaType, NormalizedMessage

AT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _message(**overrides):
    fields = dict(
        chat_id="5511999990000@s.whatsapp.net",
        from_me=False,
        external_id="3EB0ABC",
        media_type=MediaType.TEXT,
        timestamp=AT,
        content="Hello",
    )
    fields.update(overrides)
    return NormalizedMessage(**fields)


class TestFindDuplicate:
    def test_no_external_id_never_duplicate(self, cursor):
        assert find_duplicate(cursor, None) is None
        cursor.execute.assert_not_called()

    def test_checks_plain_and_legacy_ids(self, cursor):
        cursor.fetchone.return_value = ("msg-1",)
        assert find_duplicate(cursor, "3EB0ABC", "5511000:3EB0ABC") == "msg-1"
        assert cursor.execute.call_args[0][1] == ("3EB0ABC", "5511000:3EB0ABC")

    def test_without_legacy_id(self, cursor):
        assert find_duplicate(cursor, "3EB0ABC") is None
        assert cursor.execute.call_args[0][1] == ("3EB0ABC", "3EB0ABC")


class TestInsertMessage:
    def test_inserted(self, cursor):
        cursor.fetchone.return_value = ("msg-1",)

        message_id = insert_message(cursor, conversation_id="conv-1", message=_message())

        assert message_id == "msg-1"
        sql, params = cursor.execute.call_args[0]
        assert "ON CONFLICT (external_id) DO NOTHING" in sql
        assert params == ("conv-1", "incoming", "Hello", "text", None, "3EB0ABC", AT)

    def test_rejected_by_unique_index(self, cursor):
        cursor.fetchone.return_value = None
        assert insert_message(cursor, conversation_id="conv-1", message=_message()) is None


class TestSetTranscription:
    def test_updated(self, cursor):
        cursor.rowcount = 1
        assert set_transcription(cursor, message_id="msg-1", transcription="oi") is True

    def test_missing_message(self, cursor):
        cursor.rowcount = 0
        assert set_transcription(cursor, message_id="msg-1", transcription="oi") is False


class TestLeadList:
    def test_usable_phone(self):
        assert has_usable_phone("5511999990000") is True
        assert has_usable_phone("123456") is False
        assert has_usable_phone("") is False
        assert has_usable_phone(None) is False

    def test_list_name(self):
        assert lead_list_name("acct1") == "Helpdesk - acct1"
        assert lead_list_name(None) == "Helpdesk"

    def test_ensure_creates(self, cursor):
        cursor.fetchone.return_value = ("list-1",)
        result = ensure_lead_list(cursor, instance_id="inst-1", instance_name="acct1", user_id="u-1")
        assert result == ("list-1", True)
        assert cursor.execute.call_args[0][1] == ("inst-1", "Helpdesk - acct1", "u-1", "helpdesk")

    def test_ensure_reuses_existing(self, cursor):
        cursor.fetchone.side_effect = [None, ("list-1",)]
        result = ensure_lead_list(cursor, instance_id="inst-1", instance_name="acct1", user_id=None)
        assert result == ("list-1", False)

    def test_upsert_created_increments_count(self, cursor):
        cursor.fetchone.return_value = ("entry-1",)
        result = upsert_lead(
            cursor, lead_list_id="list-1", jid="5511999990000@s.whatsapp.net", phone="5511999990000", name="Maria"
        )
        assert result == "created"
        assert "leads_count" in cursor.execute.call_args[0][0]

    def test_upsert_backfills_name(self, cursor):
        cursor.fetchone.return_value = None
        cursor.rowcount = 1
        result = upsert_lead(
            cursor, lead_list_id="list-1", jid="5511999990000@s.whatsapp.net", phone="5511999990000", name="Maria"
        )
        assert result == "backfilled"

    def test_upsert_existing_entry_untouched(self, cursor):
        cursor.fetchone.return_value = None
        result = upsert_lead(
            cursor, lead_list_id="list-1", jid="5511999990000@s.whatsapp.net", phone="5511999990000", name=None
        )
        assert result == "exists"
        assert cursor.execute.call_count == 1
