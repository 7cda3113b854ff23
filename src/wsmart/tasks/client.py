"""Tasks client with idempotent enqueue.

TASKS_BACKEND selects delivery:
- inline (default): record the task only (dev/tests; nothing runs)
- http: POST to the worker (WORKER_BASE_URL)
- cloud_tasks: create a Google Cloud Tasks task

Enqueues are deduplicated per process over the most recent task ids
(TASKS_DEDUPE_WINDOW). Across processes the cloud_tasks backend dedupes
by task name.
"""

import os
import threading
from collections import OrderedDict, deque
from typing import Callable

Sender = Callable[..., bool]

DEFAULT_DEDUPE_WINDOW = 10_000


def _sender_for(backend: str) -> Sender:
    """Backend send function (imported lazily: GCP clients are heavy)."""
    if backend == "http":
        from wsmart.tasks import http_backend

        return http_backend.enqueue_http
    if backend == "cloud_tasks":
        from wsmart.tasks import cloud_tasks_backend

        return cloud_tasks_backend.enqueue_cloud_task
    raise ValueError(f"Unknown TASKS_BACKEND: {backend}")


def _dedupe_window() -> int:
    try:
        return max(1, int(os.environ.get("TASKS_DEDUPE_WINDOW", DEFAULT_DEDUPE_WINDOW)))
    except ValueError:
        return DEFAULT_DEDUPE_WINDOW


class TasksClient:
    """Enqueue worker tasks at most once per task_id.

    Safe to share between request threads: FastAPI runs sync background
    tasks in a thread pool. Memory is bounded: only the last `window`
    task ids (and inline records) are kept.
    """

    def __init__(self, backend: str | None = None, window: int | None = None) -> None:
        self._backend = backend or os.environ.get("TASKS_BACKEND", "inline")
        self._window = window if window is not None else _dedupe_window()
        self._lock = threading.Lock()
        self._enqueued: OrderedDict[str, None] = OrderedDict()
        self._recorded: deque[dict] = deque(maxlen=self._window)

    @property
    def backend(self) -> str:
        return self._backend

    def _remember(self, task_id: str) -> None:
        self._enqueued[task_id] = None
        while len(self._enqueued) > self._window:
            self._enqueued.popitem(last=False)

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
    ) -> bool:
        """Send one task to the worker endpoint `url_path`.

        Returns:
            True if the task was handed over, False if the task_id was
            already enqueued or the backend refused it (retryable).

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        with self._lock:
            if task_id in self._enqueued:
                return False
            if self._backend == "inline":
                self._remember(task_id)
                self._recorded.append({
                    "task_id": task_id,
                    "url_path": url_path,
                    "payload": payload,
                    "correlation_id": correlation_id,
                })
                return True

        send = _sender_for(self._backend)
        ok = send(task_id, url_path, payload, correlation_id)
        if ok:
            with self._lock:
                self._remember(task_id)
        return ok

    def was_executed(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._enqueued

    def get_recorded_tasks(self) -> list[dict]:
        """Tasks recorded by the inline backend, oldest first."""
        with self._lock:
            return list(self._recorded)

    def clear(self) -> None:
        with self._lock:
            self._enqueued.clear()
            self._recorded.clear()
