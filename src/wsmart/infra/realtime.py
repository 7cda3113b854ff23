"""Realtime broadcast publisher (REST broadcast endpoint).

One POST per topic so a failing topic does not hide the others.
Disabled (no-op) when REALTIME_BROADCAST_URL is not configured.
"""

import os
from typing import Any

import requests

DEFAULT_TIMEOUT = 5


def _timeout() -> float:
    try:
        return float(os.environ.get("REALTIME_HTTP_TIMEOUT", DEFAULT_TIMEOUT))
    except ValueError:
        return float(DEFAULT_TIMEOUT)


class RealtimeError(Exception):
    """Broadcast publish failed."""

    pass


class RealtimePublisher:
    """Publishes events to realtime subscriber topics."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = url if url is not None else os.environ.get("REALTIME_BROADCAST_URL", "")
        self._api_key = api_key if api_key is not None else os.environ.get("REALTIME_API_KEY", "")
        self._timeout = timeout if timeout is not None else _timeout()
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    def publish(self, topic: str, event: str, payload: dict[str, Any]) -> None:
        """Publish one event on one topic.

        Raises:
            RealtimeError: On network error or non-2xx response.
        """
        if not self.enabled:
            return

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = self._session.post(
                self._url,
                json={"messages": [{"topic": topic, "event": event, "payload": payload}]},
                headers=headers,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RealtimeError(f"{topic}: {type(e).__name__}") from e
