"""Google Cloud Tasks backend.

The task name is derived from task_id, so a second enqueue of the same
message (redelivery handled by another instance) is rejected by Cloud
Tasks with AlreadyExists and treated as success.
"""

import json
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from google.api_core.exceptions import AlreadyExists
from google.cloud import tasks_v2
from google.protobuf import duration_pb2

from wsmart.observability.logging import get_logger
from wsmart.observability.redaction import safe_log_context

logger = get_logger(__name__)

_UNSAFE_TASK_CHARS = re.compile(r"[^A-Za-z0-9_-]")
_MAX_TASK_NAME = 500

# Transcription of a long voice note can take a while
DEFAULT_DISPATCH_DEADLINE = 300


@dataclass(frozen=True)
class QueueConfig:
    project: str
    location: str
    queue: str
    worker_url: str
    service_account: str
    audience: str
    dispatch_deadline: int

    @classmethod
    def from_env(cls) -> "QueueConfig":
        """Read queue settings.

        Raises:
            RuntimeError: If a required variable is missing.
        """
        project = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT_ID")
        worker_url = os.environ.get("WORKER_BASE_URL")
        service_account = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
        if not project:
            raise RuntimeError("GOOGLE_CLOUD_PROJECT or GCP_PROJECT_ID required")
        if not worker_url:
            raise RuntimeError("WORKER_BASE_URL required for Cloud Tasks")
        if not service_account:
            raise RuntimeError("TASKS_OIDC_SERVICE_ACCOUNT required for Cloud Tasks")

        worker_url = worker_url.rstrip("/")
        return cls(
            project=project,
            location=os.environ.get("GCP_LOCATION", "us-central1"),
            queue=os.environ.get("GCP_TASKS_QUEUE", "wsmart-default"),
            worker_url=worker_url,
            service_account=service_account,
            audience=os.environ.get("TASKS_OIDC_AUDIENCE") or worker_url,
            dispatch_deadline=int(
                os.environ.get("TASKS_DISPATCH_DEADLINE", DEFAULT_DISPATCH_DEADLINE)
            ),
        )


def task_name_for(task_id: str) -> str:
    """Cloud Tasks-safe name for task_id ("transcribe:ab" -> "transcribe-ab")."""
    return _UNSAFE_TASK_CHARS.sub("-", task_id)[:_MAX_TASK_NAME]


def build_task(
    config: QueueConfig,
    parent: str,
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
) -> dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if correlation_id:
        headers["X-Correlation-ID"] = correlation_id

    return {
        "name": f"{parent}/tasks/{task_name_for(task_id)}",
        "dispatch_deadline": duration_pb2.Duration(seconds=config.dispatch_deadline),
        "http_request": {
            "http_method": tasks_v2.HttpMethod.POST,
            "url": f"{config.worker_url}{url_path}",
            "headers": headers,
            "body": json.dumps(payload).encode(),
            "oidc_token": {
                "service_account_email": config.service_account,
                "audience": config.audience,
            },
        },
    }


@lru_cache(maxsize=1)
def _client() -> tasks_v2.CloudTasksClient:
    return tasks_v2.CloudTasksClient()


def enqueue_cloud_task(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
) -> bool:
    """Create the task. Returns True when created or already present.

    Raises:
        RuntimeError: If required env vars are not set.
        google.api_core.exceptions.GoogleAPICallError: On other API failures.
    """
    config = QueueConfig.from_env()
    client = _client()
    parent = client.queue_path(config.project, config.location, config.queue)
    task = build_task(config, parent, task_id, url_path, payload, correlation_id)

    try:
        response = client.create_task(parent=parent, task=task)
    except AlreadyExists:
        logger.info(
            "cloud task already exists (dedupe)",
            extra={"extra_fields": safe_log_context(task_id=task_id)},
        )
        return True

    logger.info(
        "cloud task enqueued",
        extra={"extra_fields": safe_log_context(task_name=response.name, url_path=url_path)},
    )
    return True
