"""Evolution API adapter - validate and normalize webhook payloads."""

from datetime import datetime, timezone
from typing import Any

from .models import NormalizedInbound


class InvalidPayloadError(Exception):
    """Raised when Evolution payload has invalid shape."""

    pass


def _extract_text(message_type: str, message: dict[str, Any]) -> str | None:
    if message_type == "conversation":
        return message.get("conversation")
    if message_type == "extendedTextMessage":
        return message.get("extendedTextMessage", {}).get("text")
    if message_type in ("buttonsResponseMessage", "listResponseMessage"):
        # Interactive replies carry the chosen option id.
        reply = message.get(message_type, {})
        return reply.get("selectedButtonId") or reply.get("singleSelectReply", {}).get(
            "selectedRowId"
        )
    return None


def normalize(payload: dict[str, Any]) -> NormalizedInbound:
    """Normalize an Evolution `messages.upsert` payload.

    Args:
        payload: Raw webhook payload from Evolution API.

    Returns:
        NormalizedInbound with remote_jid and text (PII, memory only).

    Raises:
        InvalidPayloadError: If required fields are missing or invalid.
    """
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidPayloadError("missing data object")
    key = data.get("key", {})
    if not isinstance(key, dict):
        raise InvalidPayloadError("invalid key object")

    message_id = key.get("id")
    if not message_id or not isinstance(message_id, str):
        raise InvalidPayloadError("missing or invalid message_id")

    remote_jid = key.get("remoteJid", "")
    if not remote_jid or not isinstance(remote_jid, str):
        raise InvalidPayloadError("missing remoteJid")

    message_type = data.get("messageType", "unknown")
    message = data.get("message") or {}

    return NormalizedInbound(
        message_id=message_id,
        received_at=datetime.now(timezone.utc),
        kind=str(message_type),
        remote_jid=remote_jid,
        text=_extract_text(message_type, message),
        from_me=bool(key.get("fromMe", False)),
    )
