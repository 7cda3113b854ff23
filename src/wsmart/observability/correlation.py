"""Per-request correlation id, visible to every logger in the request."""

import uuid
from contextvars import ContextVar, Token
from typing import Mapping

CORRELATION_ID_HEADER = "X-Correlation-ID"
# Set by Cloud Run / the Google front end: "TRACE_ID/SPAN_ID;o=1"
CLOUD_TRACE_HEADER = "X-Cloud-Trace-Context"

_MAX_ID_LENGTH = 128

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def _acceptable(value: str | None) -> str | None:
    if not value:
        return None
    value = value.strip()
    if value and len(value) <= _MAX_ID_LENGTH and value.isprintable():
        return value
    return None


def correlation_id_from_headers(headers: Mapping[str, str]) -> str:
    """Pick the id for a request.

    Order: explicit X-Correlation-ID (task backends forward it), then the
    Cloud trace id (so webhook logs line up with the platform request log),
    then a generated one.
    """
    explicit = _acceptable(headers.get(CORRELATION_ID_HEADER))
    if explicit:
        return explicit
    trace = headers.get(CLOUD_TRACE_HEADER)
    if trace:
        trace_id = _acceptable(trace.split("/", 1)[0])
        if trace_id:
            return trace_id
    return generate_correlation_id()


def get_correlation_id() -> str:
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    correlation_id_var.reset(token)
