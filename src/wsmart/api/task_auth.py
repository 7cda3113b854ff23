"""Authentication for worker task routes.

Production: Cloud Tasks attaches an OIDC token minted for
TASKS_OIDC_SERVICE_ACCOUNT with audience TASKS_OIDC_AUDIENCE.
Local dev (audience "wsmart-tasks-local"): the http backend sends
X-Internal-Task-Secret instead; a Bearer token is still accepted.
"""

from __future__ import annotations

import hmac
import os
from dataclasses import dataclass

from fastapi import Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context

logger = get_logger(__name__)

LOCAL_DEV_AUDIENCE = "wsmart-tasks-local"
INTERNAL_SECRET_HEADER = "X-Internal-Task-Secret"


@dataclass(frozen=True)
class TaskAuthConfig:
    audience: str
    service_account: str
    internal_secret: str

    @classmethod
    def from_env(cls) -> "TaskAuthConfig":
        return cls(
            audience=os.environ.get("TASKS_OIDC_AUDIENCE", ""),
            service_account=os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT", ""),
            internal_secret=os.environ.get("INTERNAL_TASK_SECRET", ""),
        )

    @property
    def local_dev(self) -> bool:
        return self.audience == LOCAL_DEV_AUDIENCE


def extract_bearer_token(request: Request) -> str | None:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token:
        return None
    return token


def verify_task_oidc(token: str, config: TaskAuthConfig | None = None) -> bool:
    """Check signature, audience and (if configured) the caller's service account.

    Fails closed when no audience is configured.
    """
    config = config or TaskAuthConfig.from_env()
    if not token:
        return False
    if not config.audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(
            token, google_requests.Request(), audience=config.audience
        )
    except ValueError as e:
        logger.warning(
            "OIDC token verification failed",
            extra={"extra_fields": safe_log_context(error=str(e), expected_audience=config.audience)},
        )
        return False

    if config.service_account and claims.get("email", "") != config.service_account:
        logger.warning(
            "OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(expected_email=config.service_account)},
        )
        return False
    return True


def _internal_secret_ok(request: Request, config: TaskAuthConfig) -> bool:
    if not (config.local_dev and config.internal_secret):
        return False
    provided = request.headers.get(INTERNAL_SECRET_HEADER, "")
    return hmac.compare_digest(provided, config.internal_secret)


def verify_task_auth(request: Request) -> bool:
    """True if the caller is the task queue (or the local dev worker client)."""
    config = TaskAuthConfig.from_env()
    if _internal_secret_ok(request, config):
        return True

    token = extract_bearer_token(request)
    if token is None:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(local_dev=config.local_dev)},
        )
        return False
    return verify_task_oidc(token, config)
