"""Tests for payload unwrapping and event classification."""

from wsmart.whatsapp.envelope import classify, find_status, instance_ref, unwrap
from wsmart.whatsapp.models import IgnoredEvent, ProviderEvent, StatusUpdate

from helpers import uazapi_message


class TestUnwrap:
    def test_flat_payload_used_as_is(self):
        raw = uazapi_message()
        unwrapped = unwrap(raw)
        assert unwrapped.payload is raw
        assert unwrapped.raw is raw

    def test_array_takes_first_element(self):
        first = uazapi_message(messageid="A")
        raw = [first, uazapi_message(messageid="B")]
        unwrapped = unwrap(raw)
        assert unwrapped.payload is first
        assert unwrapped.raw is raw

    def test_empty_array_yields_empty_payload(self):
        assert unwrap([]).payload == {}

    def test_body_with_event_type_is_unwrapped(self):
        inner = uazapi_message()
        assert unwrap({"body": inner}).payload is inner
        assert unwrap({"Body": inner}).payload is inner

    def test_body_without_event_type_is_ignored(self):
        raw = {"body": {"foo": "bar"}, "chatid": "x@s.whatsapp.net"}
        assert unwrap(raw).payload is raw

    def test_non_object_degrades_to_empty(self):
        assert unwrap("hello").payload == {}
        assert unwrap(None).payload == {}
        assert unwrap([42]).payload == {}


class TestFindStatus:
    def test_status_in_effective_payload(self):
        assert find_status(unwrap({"status_ia": "ligada"})) == "ligada"

    def test_status_only_on_raw_outer_object(self):
        raw = {"status_ia": "desligada", "body": uazapi_message()}
        assert find_status(unwrap(raw)) == "desligada"

    def test_status_on_raw_list_head(self):
        raw = [{"statusIa": "ligada", "chatid": "x@s.whatsapp.net"}]
        assert find_status(unwrap(raw)) == "ligada"

    def test_boolean_status(self):
        assert find_status(unwrap({"status_ia": True})) == "ligada"
        assert find_status(unwrap({"status_ia": False})) == "desligada"

    def test_blank_status_is_absent(self):
        assert find_status(unwrap({"status_ia": "  "})) is None


class TestClassify:
    def test_status_only_delivery(self):
        raw = {
            "status_ia": "desligada",
            "chatid": "5511999990000@s.whatsapp.net",
            "instanceName": "acct1",
        }
        result = classify(unwrap(raw))
        assert isinstance(result, StatusUpdate)
        assert result.status == "desligada"
        assert result.chat_id == "5511999990000@s.whatsapp.net"
        assert result.instance_ref == "acct1"
        assert result.carried is None

    def test_status_checked_before_raw_message(self):
        """A status update with a chat id must not become a chat message."""
        raw = {"status_ia": "ligada", "chatid": "5511999990000@s.whatsapp.net"}
        assert isinstance(classify(unwrap(raw)), StatusUpdate)

    def test_status_with_content_carries_message(self):
        raw = {
            "status_ia": "ligada",
            "chatid": "5511999990000@s.whatsapp.net",
            "text": "Atendimento iniciado",
            "inbox_id": "0b6c5f0e-8f5e-4d4a-9a52-6f0d3c1c2b11",
        }
        result = classify(unwrap(raw))
        assert isinstance(result, StatusUpdate)
        assert isinstance(result.carried, ProviderEvent)
        assert result.carried.synthesized is True
        assert result.inbox_id == "0b6c5f0e-8f5e-4d4a-9a52-6f0d3c1c2b11"
        assert result.carried.inbox_id == result.inbox_id

    def test_raw_agent_message_is_synthesized(self):
        raw = {
            "chatid": "5511999990000@s.whatsapp.net",
            "text": "Resposta do agente",
            "instanceName": "acct1",
        }
        result = classify(unwrap(raw))
        assert isinstance(result, ProviderEvent)
        assert result.synthesized is True
        assert result.event_type == "messages"
        message = result.payload["message"]
        assert message["chatid"] == "5511999990000@s.whatsapp.net"
        assert message["text"] == "Resposta do agente"
        # Content without explicit direction is outgoing
        assert message["fromMe"] is True
        assert result.payload["instanceName"] == "acct1"

    def test_raw_agent_message_explicit_direction_wins(self):
        raw = {"chatid": "5511999990000@s.whatsapp.net", "text": "oi", "fromMe": False}
        result = classify(unwrap(raw))
        assert result.payload["message"]["fromMe"] is False

    def test_raw_message_without_content_defaults_incoming(self):
        raw = {"chatid": "5511999990000@s.whatsapp.net"}
        result = classify(unwrap(raw))
        assert isinstance(result, ProviderEvent)
        assert result.payload["message"]["fromMe"] is False

    def test_bare_type_field_is_not_a_discriminator(self):
        raw = {"chatid": "5511999990000@s.whatsapp.net", "type": "image", "fileURL": "https://x/y.jpg"}
        result = classify(unwrap(raw))
        assert isinstance(result, ProviderEvent)
        assert result.synthesized is True
        assert result.payload["message"]["mediaType"] == "image"

    def test_message_event_envelope(self):
        raw = uazapi_message()
        result = classify(unwrap(raw))
        assert isinstance(result, ProviderEvent)
        assert result.synthesized is False
        assert result.payload is raw

    def test_message_event_type_case_insensitive(self):
        for event_type in ("Messages", "MESSAGE", "messages.upsert"):
            raw = {"event": event_type, "message": {"chatid": "x@s.whatsapp.net"}}
            assert isinstance(classify(unwrap(raw)), ProviderEvent)

    def test_other_event_type_is_ignored(self):
        result = classify(unwrap({"EventType": "presence", "chatid": "x@s.whatsapp.net"}))
        assert isinstance(result, IgnoredEvent)
        assert result.event_type == "presence"
        assert result.reason == "not_message_event"

    def test_explicit_event_type_wins_over_status(self):
        raw = {"EventType": "connection", "status_ia": "ligada"}
        assert isinstance(classify(unwrap(raw)), IgnoredEvent)

    def test_empty_payload_is_ignored(self):
        result = classify(unwrap({}))
        assert isinstance(result, IgnoredEvent)
        assert result.event_type is None


class TestInstanceRef:
    def test_priority_order(self):
        assert instance_ref({"instanceName": "a", "instance": "b", "owner": "c"}) == "a"
        assert instance_ref({"instance": "b", "owner": "c"}) == "b"
        assert instance_ref({"owner": "5511000000000"}) == "5511000000000"

    def test_nested_instance_name(self):
        assert instance_ref({"instance": {"name": "acct2"}}) == "acct2"

    def test_missing(self):
        assert instance_ref({"message": {}}) is None
