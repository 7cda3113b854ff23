"""Tests for observability utilities."""

import json
import logging

from wsmart.observability.correlation import (
    correlation_id_from_headers,
    reset_correlation_id,
    set_correlation_id,
)
from wsmart.observability.logging import SERVICE_NAME, JsonFormatter
from wsmart.observability.redaction import (
    id_prefix,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 11 99999-8888")
        assert "99999" not in result
        assert "[REDACTED]" in result

    def test_redact_whatsapp_addresses(self):
        for jid in ("5511999998888@s.whatsapp.net", "120363000000@g.us", "98765@lid"):
            result = redact_string(f"chat {jid}")
            assert jid not in result
            assert "[REDACTED]" in result

    def test_redact_email(self):
        result = redact_string("Email: user@example.com")
        assert "user@example.com" not in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"text": "segredo", "chatid": "x"})
        assert "segredo" not in result
        assert "text" in result

    def test_redact_value_list_only_len(self):
        assert redact_value(["a", "b", "c"]) == "list(len=3)"

    def test_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5511999998888", count=42)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"

    def test_id_prefix(self):
        assert id_prefix("3EB0ABCDEF123456") == "3EB0ABCD"
        assert id_prefix("3EB0ABCDEF", length=4) == "3EB0"
        assert id_prefix(None) is None
        assert id_prefix("") is None


class TestCorrelation:
    def test_explicit_header(self):
        assert correlation_id_from_headers({"X-Correlation-ID": " req-1 "}) == "req-1"

    def test_cloud_trace_fallback(self):
        headers = {"X-Cloud-Trace-Context": "105445aa7843bc8bf206b12000100000/1;o=1"}
        assert correlation_id_from_headers(headers) == "105445aa7843bc8bf206b12000100000"

    def test_explicit_wins_over_trace(self):
        headers = {"X-Correlation-ID": "req-1", "X-Cloud-Trace-Context": "abc/1"}
        assert correlation_id_from_headers(headers) == "req-1"

    def test_missing_or_unusable_replaced(self):
        assert len(correlation_id_from_headers({})) == 36
        assert correlation_id_from_headers({"X-Correlation-ID": "x" * 500}) != "x" * 500
        assert correlation_id_from_headers({"X-Correlation-ID": "bad\nvalue"}) != "bad\nvalue"


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("wsmart.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_shape(self):
        token = set_correlation_id("corr-1")
        try:
            line = json.loads(JsonFormatter().format(self._record(extra_fields={"reason": "duplicate"})))
        finally:
            reset_correlation_id(token)

        assert line["message"] == "hello world"
        assert line["level"] == "INFO"
        assert line["service"] == SERVICE_NAME
        assert line["correlationId"] == "corr-1"
        assert line["reason"] == "duplicate"

    def test_no_correlation_outside_request(self):
        line = json.loads(JsonFormatter().format(self._record()))
        assert "correlationId" not in line


class TestUrlRedaction:
    def test_media_link_keeps_host_only(self):
        result = redact_string("fetch https://mmg.whatsapp.net/v/t62/abc.enc?oh=tok&oe=1 failed")
        assert result == "fetch https://mmg.whatsapp.net/[REDACTED] failed"

    def test_userinfo_dropped(self):
        result = redact_string("http://user:pw@example.com/path")
        assert result == "http://example.com/[REDACTED]"
