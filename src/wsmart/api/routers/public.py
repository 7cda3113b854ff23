"""Probes mounted on every role."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from wsmart.infra.db import txn
from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context

router = APIRouter()

logger = get_logger(__name__)


@router.get("/health")
def health() -> dict:
    """Liveness: the process answers."""
    return {"status": "ok"}


@router.get("/ready")
def ready() -> JSONResponse:
    """Readiness: the database accepts queries (webhooks would 500 otherwise)."""
    try:
        with txn() as cur:
            cur.execute("SELECT 1")
    except Exception as e:
        logger.warning(
            "readiness check failed",
            extra={"extra_fields": safe_log_context(error_type=type(e).__name__)},
        )
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(content={"status": "ok"})
