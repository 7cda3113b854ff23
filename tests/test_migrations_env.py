"""Tests for migrations/env_helpers DSN-to-URL conversion."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from migrations.env_helpers import _libpq_dsn_to_url, get_database_url


class TestLibpqDsnToUrl:
    def test_cloudsql_socket(self):
        dsn = "dbname=wsmart user=wsmart-sa password=s3cret host=/cloudsql/proj:us-central1:inst"
        assert _libpq_dsn_to_url(dsn) == (
            "postgresql+psycopg2://wsmart-sa:s3cret@/wsmart"
            "?host=%2Fcloudsql%2Fproj%3Aus-central1%3Ainst"
        )

    def test_tcp_host(self):
        dsn = "dbname=wsmart user=admin password=pw host=localhost port=5432"
        assert _libpq_dsn_to_url(dsn) == "postgresql+psycopg2://admin:pw@localhost:5432/wsmart"

    def test_default_port(self):
        dsn = "dbname=db user=u password=p host=myhost"
        assert _libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_special_chars_encoded(self):
        result = _libpq_dsn_to_url("dbname=db user=u@domain password=p@ss=word host=h port=5432")
        assert "u%40domain" in result
        assert "p%40ss%3Dword" in result

    def test_quoted_password_with_spaces(self):
        result = _libpq_dsn_to_url("dbname=db user=u password='p@ss w0rd' host=h port=5432")
        assert "p%40ss+w0rd" in result

    def test_password_from_env(self):
        with patch.dict(os.environ, {"DB_PASSWORD": "env-pw"}, clear=True):
            result = _libpq_dsn_to_url("dbname=db user=u host=h")
        assert result == "postgresql+psycopg2://u:env-pw@h:5432/db"

    def test_no_password_anywhere(self):
        with patch.dict(os.environ, {}, clear=True):
            result = _libpq_dsn_to_url("dbname=db user=u host=h")
        assert result == "postgresql+psycopg2://u@h:5432/db"


class TestGetDatabaseUrl:
    def test_required(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_database_url()

    @pytest.mark.parametrize("scheme", ["postgres", "postgresql"])
    def test_scheme_normalized(self, scheme):
        with patch.dict(os.environ, {"DATABASE_URL": f"{scheme}://u:p@h:5432/db"}, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p@h:5432/db"

    def test_password_injected(self):
        env = {"DATABASE_URL": "postgresql://u@h:5432/db", "DB_PASSWORD": "p@ss"}
        with patch.dict(os.environ, env, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p%40ss@h:5432/db"

    def test_url_password_kept(self):
        env = {"DATABASE_URL": "postgresql://u:orig@h/db", "DB_PASSWORD": "other"}
        with patch.dict(os.environ, env, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:orig@h/db"

    def test_libpq_dsn(self):
        env = {"DATABASE_URL": "dbname=db user=u password=p host=h"}
        with patch.dict(os.environ, env, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p@h:5432/db"
