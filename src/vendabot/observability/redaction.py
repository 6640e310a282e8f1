"""Redaction helpers for safe logging. All external data must pass through these."""

import re
from typing import Any

# Patterns that should never appear in logs
_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"

# Visible prefix kept by mask_user_id (country + area code for phone ids)
_MASK_VISIBLE = 4


def redact_string(value: str) -> str:
    """Redact PII patterns from a string."""
    result = _PHONE_PATTERN.sub(_REDACTED, value)
    result = _EMAIL_PATTERN.sub(_REDACTED, result)
    return result


def redact_value(value: Any) -> str:
    """Redact any value for safe logging. Returns string representation."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        # For dicts, only log keys (structure), never values
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple)):
        return f"list(len={len(value)})"
    # For any other type, only log type name
    return f"<{type(value).__name__}>"


def mask_user_id(user_id: str | None) -> str:
    """Mask a user identity (phone number) for logs and audit events.

    Keeps the first four characters, replaces the rest with '*'.
    Identifiers of four characters or fewer are returned unchanged.
    """
    if not user_id:
        return ""
    if len(user_id) <= _MASK_VISIBLE:
        return user_id
    return user_id[:_MASK_VISIBLE] + "*" * (len(user_id) - _MASK_VISIBLE)


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build a context dict safe for logging. All values are redacted.

    Pass user identities through mask_user_id() first: a masked phone
    number is short enough to survive redact_string unchanged.
    """
    return {k: redact_value(v) for k, v in kwargs.items()}
