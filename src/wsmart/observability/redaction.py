"""Log redaction for WhatsApp traffic.

Chat addresses, phone numbers, e-mails and URLs (media links embed
provider tokens) are masked; containers are reduced to their shape.
"""

import re
from typing import Any

_REDACTED = "[REDACTED]"

# 5511999998888@s.whatsapp.net, 120363...@g.us, 123@lid
_JID_PATTERN = re.compile(r"[\w.\-]+@(?:s\.whatsapp\.net|g\.us|lid|c\.us)\b")
_URL_PATTERN = re.compile(r"\b(https?)://(?:[^/\s?#@]*@)?([^/\s?#]+)\S*")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")

# Order matters: addresses and URLs before the generic phone pattern
_SUBSTITUTIONS = (
    (_JID_PATTERN, _REDACTED),
    (_URL_PATTERN, r"\1://\2/" + _REDACTED),
    (_EMAIL_PATTERN, _REDACTED),
    (_PHONE_PATTERN, _REDACTED),
)


def redact_string(value: str) -> str:
    for pattern, replacement in _SUBSTITUTIONS:
        value = pattern.sub(replacement, value)
    return value


def redact_value(value: Any) -> str:
    """String form of `value` that is safe to log."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={sorted(str(k) for k in value)})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def id_prefix(value: str | None, length: int = 8) -> str | None:
    """Enough of a provider message id to correlate log lines."""
    return value[:length] if value else None


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Redact every value; use for all `extra_fields`."""
    return {key: redact_value(value) for key, value in kwargs.items()}
