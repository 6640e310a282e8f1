"""Correlation ID management for request and message tracing."""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

# Context variable for correlation ID - accessible across async calls
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID.

    Reuses the current ID when one is already set (e.g. inside an HTTP
    request) unless cid is given explicitly. Used by background work such
    as inbound message handling, which outlives the request that started it.
    """
    effective = cid or get_correlation_id() or generate_correlation_id()
    token = set_correlation_id(effective)
    try:
        yield effective
    finally:
        reset_correlation_id(token)
