"""Shared pytest fixtures for wsmart-ingest tests."""
import sys
sys.dont_write_bytecode = True

from contextlib import contextmanager  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402


@pytest.fixture
def cursor():
    """MagicMock standing in for a psycopg2 cursor."""
    cur = MagicMock()
    cur.fetchone.return_value = None
    cur.rowcount = 0
    return cur


@pytest.fixture
def fake_txn(cursor):
    """Replacement for infra.db.txn() that yields the mock cursor."""

    @contextmanager
    def _txn(conn=None):
        yield cursor

    return _txn


@pytest.fixture(autouse=True)
def _no_webhook_secret(monkeypatch):
    """Tests opt in to the shared secret explicitly."""
    monkeypatch.delenv("WHATSAPP_WEBHOOK_SECRET", raising=False)
