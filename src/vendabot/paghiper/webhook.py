"""PagHiper notification validation and payload parsing.

Purpose:
- Accept PagHiper's notification POST (form-encoded or JSON).
- Verify it carries our account apiKey (constant-time compare).
- Extract the transaction id; the notification itself is never trusted as
  proof of payment. The status is re-queried from the gateway.
- Never log the payload or the apiKey.
"""

from __future__ import annotations

import hmac
import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

from vendabot.observability.logging import get_logger

logger = get_logger(__name__)


class InvalidSecretError(Exception):
    """Notification did not carry the expected apiKey."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass(frozen=True)
class PagHiperNotification:
    """Minimal data extracted from a PagHiper notification."""

    transaction_id: str
    notification_id: str | None
    reported_status: str | None


def parse_body(body: bytes, content_type: str | None) -> dict[str, Any]:
    """Decode a JSON or application/x-www-form-urlencoded body.

    Raises:
        InvalidPayloadError: If the body cannot be decoded.
    """
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPayloadError("body is not utf-8") from e

    if content_type and "json" in content_type.lower():
        try:
            data = json.loads(text)
        except ValueError as e:
            raise InvalidPayloadError("invalid json") from e
        if not isinstance(data, dict):
            raise InvalidPayloadError("json body must be an object")
        return data

    return {key: values[-1] for key, values in parse_qs(text).items()}


def verify_and_extract(
    data: dict[str, Any],
    expected_secret: str,
    *,
    allow_unsigned: bool = False,
) -> PagHiperNotification:
    """Validate the notification's apiKey and extract its transaction id.

    Args:
        data: Decoded notification body.
        expected_secret: Our PagHiper apiKey.
        allow_unsigned: Skip the check when no secret is configured (local only).

    Raises:
        InvalidSecretError: If the apiKey is missing or wrong.
        InvalidPayloadError: If transaction_id is missing.
    """
    if expected_secret:
        provided = str(data.get("apiKey") or "")
        if not hmac.compare_digest(provided.encode(), expected_secret.encode()):
            logger.warning("paghiper notification secret mismatch")
            raise InvalidSecretError("invalid apiKey")
    elif not allow_unsigned:
        logger.error("paghiper notification received but no secret configured")
        raise InvalidSecretError("webhook secret not configured")

    transaction_id = data.get("transaction_id")
    if not transaction_id or not isinstance(transaction_id, str):
        raise InvalidPayloadError("missing transaction_id")

    return PagHiperNotification(
        transaction_id=transaction_id,
        notification_id=data.get("notification_id"),
        reported_status=data.get("status"),
    )
