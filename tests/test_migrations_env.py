"""Tests for migrations env helpers (DSN-to-URL conversion)."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from migrations.env_helpers import _libpq_dsn_to_url, get_database_url


class TestLibpqDsnToUrl:
    def test_unix_socket(self):
        dsn = "dbname=vendabot user=bot password=s3cret host=/var/run/postgresql"
        result = _libpq_dsn_to_url(dsn)
        assert result == (
            "postgresql+psycopg2://bot:s3cret@/vendabot"
            "?host=%2Fvar%2Frun%2Fpostgresql"
        )

    def test_tcp_host(self):
        dsn = "dbname=vendabot user=admin password=pw host=localhost port=5432"
        result = _libpq_dsn_to_url(dsn)
        assert result == "postgresql+psycopg2://admin:pw@localhost:5432/vendabot"

    def test_default_port(self):
        dsn = "dbname=db user=u password=p host=myhost"
        assert _libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_special_chars_encoded(self):
        dsn = "dbname=db user=u@domain password=p@ss=word host=h port=5432"
        result = _libpq_dsn_to_url(dsn)
        assert "u%40domain" in result
        assert "p%40ss%3Dword" in result

    def test_quoted_password_with_spaces(self):
        dsn = "dbname=db user=u password='p@ss w0rd' host=h port=5432"
        assert "p%40ss+w0rd" in _libpq_dsn_to_url(dsn)


class TestGetDatabaseUrl:
    def test_url_passthrough(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_dsn_converted(self):
        with patch.dict(os.environ, {"DATABASE_URL": "dbname=db user=u password=p host=h"}):
            assert get_database_url() == "postgresql+psycopg2://u:p@h:5432/db"

    def test_missing_raises(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
                get_database_url()

    @pytest.mark.parametrize("url", ["postgres://u:p@h/db", "postgresql://u:p@h/db"])
    def test_scheme_gets_driver(self, url):
        with patch.dict(os.environ, {"DATABASE_URL": url}):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"
