"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without triggering
alembic.context at import time.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus

from psycopg2.extensions import parse_dsn


def _libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL."""
    tokens = parse_dsn(dsn)
    user = quote_plus(tokens.get("user", ""))
    password = quote_plus(tokens.get("password", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")

    if host.startswith("/"):
        # Unix socket directory
        return f"postgresql+psycopg2://{user}:{password}@/{dbname}?host={quote_plus(host)}"
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}"


def database_url_for_alembic(url: str) -> str:
    """Normalize DATABASE_URL (URL or libpq DSN) to a psycopg2 SQLAlchemy URL."""
    if "://" not in url:
        return _libpq_dsn_to_url(url)
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg2://" + url[len("postgresql://"):]
    return url


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return database_url_for_alembic(url)
