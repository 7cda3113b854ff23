"""Postgres access (psycopg2, raw SQL, one connection per transaction).

Webhook requests are short and bursty; each unit of work opens a
connection, runs one transaction and closes it. A pooler (Cloud SQL
proxy / pgbouncer) sits in front in production.
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor
from psycopg2.extensions import parse_dsn

APPLICATION_NAME = "wsmart-ingest"
DEFAULT_CONNECT_TIMEOUT = 5


def _connect_kwargs(dsn: str) -> dict[str, object]:
    """Extra libpq parameters; a DSN's own settings win."""
    params = parse_dsn(dsn)
    extra: dict[str, object] = {}
    db_password = os.environ.get("DB_PASSWORD", "")
    # Cloud SQL deployments mount the password as a separate secret
    if db_password and not params.get("password"):
        extra["password"] = db_password
    if "connect_timeout" not in params:
        extra["connect_timeout"] = int(
            os.environ.get("DB_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)
        )
    if "application_name" not in params:
        extra["application_name"] = APPLICATION_NAME
    return extra


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL (URL or key=value DSN).

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(dsn, **_connect_kwargs(dsn))


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Run a block in one transaction: commit on success, roll back on error.

    Opens (and closes) its own connection unless `conn` is given.

    Example:
        with txn() as cur:
            cur.execute("UPDATE conversations SET status_ia = %s WHERE id = %s", (s, cid))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def is_unique_violation(exc: BaseException, constraint: str | None = None) -> bool:
    """True if `exc` is a unique-constraint violation (optionally a named one)."""
    if not isinstance(exc, pg_errors.UniqueViolation):
        return False
    if constraint is None:
        return True
    diag = getattr(exc, "diag", None)
    return getattr(diag, "constraint_name", None) == constraint
