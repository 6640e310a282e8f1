"""Outbound WhatsApp messaging via Evolution API.

Security: NEVER log the recipient or the text (credentials travel in it).
Only log hashes and lengths.
"""

import asyncio
import hashlib
import json
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any

from vendabot.observability.correlation import get_correlation_id
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10

# Retry config
MAX_RETRIES = 1
RETRY_DELAY = 0.5


def _hash_identifier(value: str) -> str:
    """Create non-reversible hash for logging. Returns first 12 chars of sha256."""
    return hashlib.sha256(value.encode()).hexdigest()[:12]


@dataclass(frozen=True)
class EvolutionConfig:
    base_url: str
    instance: str
    api_key: str

    @property
    def send_url(self) -> str:
        # Evolution API pattern: /message/sendText/{instance}
        return f"{self.base_url.rstrip('/')}/message/sendText/{self.instance}"

    def validate(self) -> None:
        if not self.base_url or not self.instance or not self.api_key:
            raise RuntimeError(
                "Missing Evolution config: EVOLUTION_BASE_URL, EVOLUTION_INSTANCE, EVOLUTION_API_KEY"
            )


def _do_request(url: str, data: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Execute HTTP POST request. Raises on error."""
    req = urllib.request.Request(url, data=data, headers=headers, method="POST")
    with urllib.request.urlopen(req, timeout=HTTP_TIMEOUT) as resp:
        body = resp.read().decode()
        return json.loads(body) if body else {}


def send_text_via_evolution(config: EvolutionConfig, *, to_ref: str, text: str) -> None:
    """Send text message via Evolution API.

    Args:
        config: Evolution connection settings.
        to_ref: Recipient phone number. NEVER logged.
        text: Message text. NEVER logged.

    Raises:
        RuntimeError: If config is missing.
        urllib.error.URLError: On network/HTTP errors after retry.
    """
    config.validate()

    payload = {"number": to_ref, "text": text}
    headers = {"Content-Type": "application/json", "apikey": config.api_key}
    data = json.dumps(payload).encode("utf-8")

    log_ctx = safe_log_context(
        correlationId=get_correlation_id(),
        to_hash=_hash_identifier(to_ref),
        text_len=len(text),
    )

    for attempt in range(MAX_RETRIES + 1):
        try:
            _do_request(config.send_url, data, headers)
            logger.info(
                "outbound message sent",
                extra={"extra_fields": {**log_ctx, "attempt": str(attempt)}},
            )
            return
        except (urllib.error.URLError, TimeoutError) as e:
            # HTTPError is a URLError; only 5xx and network errors are retried.
            is_4xx = isinstance(e, urllib.error.HTTPError) and e.code < 500
            error_ctx = {**log_ctx, "attempt": str(attempt), "error_type": type(e).__name__}

            if attempt < MAX_RETRIES and not is_4xx:
                logger.warning(
                    "outbound send failed, retrying", extra={"extra_fields": error_ctx}
                )
                time.sleep(RETRY_DELAY)
                continue

            logger.error("outbound send failed", extra={"extra_fields": error_ctx})
            raise


class EvolutionTransport:
    """MessageTransport that sends through Evolution without blocking the loop."""

    def __init__(self, config: EvolutionConfig) -> None:
        self._config = config

    async def send(self, user_id: str, text: str) -> None:
        await asyncio.to_thread(
            send_text_via_evolution, self._config, to_ref=user_id, text=text
        )
