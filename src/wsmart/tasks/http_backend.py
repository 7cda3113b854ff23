"""HTTP task backend: POST straight to the worker.

For docker-compose / staging setups where the public app and the worker
are separate containers. There is no queue: a failed POST is reported to
the caller, which keeps the task_id retryable.
"""

import os

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Same value as api.task_auth.LOCAL_DEV_AUDIENCE
LOCAL_DEV_AUDIENCE = "wsmart-tasks-local"

_session = requests.Session()


def _fetch_oidc_token(audience: str) -> str | None:
    """ID token from the metadata server / ADC, or None."""
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience, error_type=type(e).__name__)},
        )
        return None


def _auth_headers(base_url: str) -> dict[str, str] | None:
    """Headers proving the caller to task_auth; None if no credential is available."""
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")
    if audience == LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        return {"X-Internal-Task-Secret": secret} if secret else {}

    token = _fetch_oidc_token(audience or base_url)
    if not token:
        return None
    return {"Authorization": f"Bearer {token}"}


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
) -> bool:
    """Deliver the task now. Returns True on a 2xx answer from the worker."""
    log_ctx = safe_log_context(task_id=task_id, url_path=url_path)

    base_url = os.environ.get("WORKER_BASE_URL", "http://worker:8000").rstrip("/")
    auth = _auth_headers(base_url)
    if auth is None:
        logger.error("HTTP task enqueue aborted: no OIDC credential", extra={"extra_fields": log_ctx})
        return False

    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
        **auth,
    }
    try:
        response = _session.post(
            f"{base_url}{url_path}",
            json=payload,
            headers=headers,
            timeout=int(os.environ.get("TASKS_HTTP_TIMEOUT", "30")),
        )
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={"extra_fields": {**log_ctx, "error_type": type(e).__name__}},
        )
        return False

    logger.info("HTTP task delivered", extra={"extra_fields": log_ctx})
    return True
