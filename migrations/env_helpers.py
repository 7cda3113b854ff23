"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlsplit, urlunsplit

from psycopg2.extensions import parse_dsn

DRIVER_SCHEME = "postgresql+psycopg2"


def _libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    Unix sockets (Cloud SQL, host=/cloudsql/...) become a `?host=` query
    parameter; TCP hosts keep host:port.
    """
    params = parse_dsn(dsn)
    password = params.get("password") or os.environ.get("DB_PASSWORD", "")

    user = quote_plus(params.get("user", ""))
    credentials = f"{user}:{quote_plus(password)}" if password else user
    dbname = quote_plus(params.get("dbname", ""))
    host = params.get("host", "localhost")

    if host.startswith("/"):
        return f"{DRIVER_SCHEME}://{credentials}@/{dbname}?host={quote_plus(host)}"

    port = params.get("port", "5432")
    return f"{DRIVER_SCHEME}://{credentials}@{host}:{port}/{dbname}"


def _with_password(url: str, password: str) -> str:
    parts = urlsplit(url)
    if parts.password or "@" not in parts.netloc:
        return url
    userinfo, _, hostinfo = parts.netloc.rpartition("@")
    netloc = f"{userinfo}:{quote_plus(password)}@{hostinfo}"
    return urlunsplit(parts._replace(netloc=netloc))


def get_database_url() -> str:
    """SQLAlchemy URL from DATABASE_URL (URL or libpq DSN), DB_PASSWORD as fallback."""
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in url:
        return _libpq_dsn_to_url(url)

    scheme, rest = url.split("://", 1)
    if scheme in ("postgres", "postgresql"):
        url = f"{DRIVER_SCHEME}://{rest}"

    db_password = os.environ.get("DB_PASSWORD", "")
    if db_password:
        url = _with_password(url, db_password)
    return url
