"""Payment reconciliation - confirm a payment against the gateway.

Two polling strategies share one retry loop:

- burst_check_paid: a user just said "I paid"; a few quick attempts.
- poll_until_paid: gateway notification or background confirmation; longer
  window, not time-critical.

Neither touches the idempotency ledger. Bookkeeping belongs to the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from vendabot.domain.collaborators import PaymentQueryResult, PaymentStatusSource
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import safe_log_context

logger = get_logger(__name__)

BURST_ATTEMPTS = 5
BURST_INTERVAL_SECONDS = 3.0
POLL_ATTEMPTS = 12
POLL_INTERVAL_SECONDS = 30.0

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PollResult:
    """Outcome of a polling run.

    Attributes:
        paid: True if any attempt confirmed the payment.
        attempts_used: Attempts made (1-based count, stops at confirmation).
        last_status: Last raw status reported by the gateway.
        last_error: Last transport or gateway error seen, if any.
    """

    paid: bool
    attempts_used: int
    last_status: str | None = None
    last_error: str | None = None


async def retry_until_confirmed(
    check: Callable[[], Awaitable[PaymentQueryResult]],
    *,
    attempts: int,
    interval: float,
    sleep: Sleep = asyncio.sleep,
) -> PollResult:
    """Call check() until it confirms or the attempts run out.

    Sleeps between attempts, never after the last one. A check that raises
    OSError (connection refused, timeout) counts as "not yet" for that
    attempt.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    last_status: str | None = None
    last_error: str | None = None

    for attempt in range(1, attempts + 1):
        try:
            result = await check()
        except OSError as e:
            last_error = f"{type(e).__name__}: {e}"
        else:
            if result.settled_status is not None:
                last_status = result.settled_status
            last_error = result.error_message
            if result.confirmed:
                return PollResult(
                    paid=True,
                    attempts_used=attempt,
                    last_status=last_status,
                    last_error=last_error,
                )

        if attempt < attempts:
            await sleep(interval)

    return PollResult(
        paid=False,
        attempts_used=attempts,
        last_status=last_status,
        last_error=last_error,
    )


class PaymentReconciler:
    """Polls a PaymentStatusSource without blocking the event loop."""

    def __init__(self, status_source: PaymentStatusSource, *, sleep: Sleep = asyncio.sleep) -> None:
        self._source = status_source
        self._sleep = sleep

    async def query_status(self, transaction_id: str) -> PaymentQueryResult:
        # Adapters are synchronous (requests); keep them off the loop.
        return await asyncio.to_thread(self._source.query_status, transaction_id)

    async def poll_until_paid(
        self,
        transaction_id: str,
        max_attempts: int = POLL_ATTEMPTS,
        interval: float = POLL_INTERVAL_SECONDS,
    ) -> PollResult:
        return await self._run(transaction_id, max_attempts, interval, mode="poll")

    async def burst_check_paid(
        self,
        transaction_id: str,
        attempts: int = BURST_ATTEMPTS,
        interval: float = BURST_INTERVAL_SECONDS,
    ) -> PollResult:
        return await self._run(transaction_id, attempts, interval, mode="burst")

    async def _run(
        self, transaction_id: str, attempts: int, interval: float, *, mode: str
    ) -> PollResult:
        result = await retry_until_confirmed(
            lambda: self.query_status(transaction_id),
            attempts=attempts,
            interval=interval,
            sleep=self._sleep,
        )
        logger.info(
            "payment check finished",
            extra={
                "extra_fields": safe_log_context(
                    mode=mode,
                    transaction_id=transaction_id,
                    paid=result.paid,
                    attempts_used=result.attempts_used,
                    last_status=result.last_status,
                    has_error=result.last_error is not None,
                )
            },
        )
        return result
