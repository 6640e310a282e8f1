"""Payment reconciliation: burst and poll strategies over the retry loop."""

import asyncio

import pytest

from vendabot.domain.collaborators import PaymentQueryResult
from vendabot.domain.reconciliation import (
    BURST_ATTEMPTS,
    BURST_INTERVAL_SECONDS,
    PaymentReconciler,
    retry_until_confirmed,
)

from helpers import CONFIRMED, PENDING, FakePaymentGateway, RecordingSleep


def _reconciler(gateway, sleep):
    return PaymentReconciler(gateway, sleep=sleep)


class TestRetryUntilConfirmed:
    def test_confirmed_on_first_attempt(self):
        sleep = RecordingSleep()

        async def check():
            return CONFIRMED

        result = asyncio.run(
            retry_until_confirmed(check, attempts=5, interval=3.0, sleep=sleep)
        )
        assert result.paid is True
        assert result.attempts_used == 1
        assert result.last_status == "paid"
        assert sleep.calls == []

    def test_never_sleeps_after_last_attempt(self):
        sleep = RecordingSleep()
        calls = []

        async def check():
            calls.append(1)
            return PENDING

        result = asyncio.run(
            retry_until_confirmed(check, attempts=3, interval=2.0, sleep=sleep)
        )
        assert result.paid is False
        assert result.attempts_used == 3
        assert len(calls) == 3
        assert sleep.calls == [2.0, 2.0]

    def test_single_attempt_does_not_sleep(self):
        sleep = RecordingSleep()

        async def check():
            return PENDING

        result = asyncio.run(
            retry_until_confirmed(check, attempts=1, interval=9.0, sleep=sleep)
        )
        assert result.attempts_used == 1
        assert sleep.calls == []

    def test_zero_attempts_rejected(self):
        async def check():
            return CONFIRMED

        with pytest.raises(ValueError):
            asyncio.run(retry_until_confirmed(check, attempts=0, interval=1.0))

    def test_non_network_errors_propagate(self):
        async def check():
            raise KeyError("bug")

        with pytest.raises(KeyError):
            asyncio.run(
                retry_until_confirmed(
                    check, attempts=3, interval=1.0, sleep=RecordingSleep()
                )
            )


class TestPaymentReconciler:
    def test_transient_errors_then_confirmed(self):
        gateway = FakePaymentGateway()
        gateway.statuses["T1"] = [ConnectionError("refused")] * 4 + [CONFIRMED]
        sleep = RecordingSleep()

        result = asyncio.run(_reconciler(gateway, sleep).burst_check_paid("T1"))

        assert result.paid is True
        assert result.attempts_used == 5
        assert sleep.calls == [BURST_INTERVAL_SECONDS] * 4
        assert gateway.queries == ["T1"] * 5

    def test_burst_exhausted(self):
        gateway = FakePaymentGateway()
        gateway.statuses["T1"] = [PENDING]
        sleep = RecordingSleep()

        result = asyncio.run(_reconciler(gateway, sleep).burst_check_paid("T1"))

        assert result.paid is False
        assert result.attempts_used == BURST_ATTEMPTS
        assert result.last_status == "pending"
        assert result.last_error is None
        assert len(sleep.calls) == BURST_ATTEMPTS - 1

    def test_error_is_carried_when_every_attempt_fails(self):
        gateway = FakePaymentGateway()
        gateway.statuses["T1"] = [TimeoutError("read timed out")]

        result = asyncio.run(
            _reconciler(gateway, RecordingSleep()).burst_check_paid("T1", attempts=2)
        )

        assert result.paid is False
        assert result.last_status is None
        assert "TimeoutError" in result.last_error

    def test_gateway_error_message_is_reported(self):
        gateway = FakePaymentGateway()
        gateway.statuses["T1"] = [
            PaymentQueryResult(confirmed=False, error_message="invalid token")
        ]

        result = asyncio.run(
            _reconciler(gateway, RecordingSleep()).poll_until_paid(
                "T1", max_attempts=2, interval=30.0
            )
        )

        assert result.paid is False
        assert result.last_error == "invalid token"

    def test_poll_uses_its_own_interval(self):
        gateway = FakePaymentGateway()
        gateway.statuses["T1"] = [PENDING, PENDING, CONFIRMED]
        sleep = RecordingSleep()

        result = asyncio.run(
            _reconciler(gateway, sleep).poll_until_paid("T1", max_attempts=12, interval=30.0)
        )

        assert result.paid is True
        assert result.attempts_used == 3
        assert sleep.calls == [30.0, 30.0]
