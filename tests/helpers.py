"""Shared test helpers: fake collaborators and an orchestrator harness.

These are NOT fixtures - they are regular classes and functions that
conftest.py and individual test files import.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from vendabot.domain.collaborators import (
    AccountCredentials,
    Charge,
    ChargeError,
    PaymentQueryResult,
    ProvisioningError,
    ProvisioningRequest,
)
from vendabot.domain.conversations import ConversationStore
from vendabot.domain.credentials import RecordCredentialStore
from vendabot.domain.idempotency import IdempotencyLedger
from vendabot.domain.orchestrator import DialogOrchestrator
from vendabot.domain.plans import Plan
from vendabot.domain.reconciliation import PaymentReconciler
from vendabot.domain.trial_cooldown import TrialCooldownGate
from vendabot.infra.record_store import MemoryRecordStore
from vendabot.observability.audit import MemoryAuditSink, PaymentAudit

USER = "5511999990001"
OTHER_USER = "5511999990002"

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

CONFIRMED = PaymentQueryResult(confirmed=True, settled_status="paid")
PENDING = PaymentQueryResult(confirmed=False, settled_status="pending")


class FrozenClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakePaymentGateway:
    """PaymentInitiator + PaymentStatusSource.

    statuses maps transaction id -> list of outcomes consumed in order
    (PaymentQueryResult or an exception to raise); the last one repeats.
    """

    def __init__(self) -> None:
        self.charges: list[tuple[str, str]] = []
        self.queries: list[str] = []
        self.statuses: dict[str, list[PaymentQueryResult | Exception]] = {}
        self.charge_error: str | None = None
        self.id_prefix = "T"
        self._lock = threading.Lock()

    def create_charge(self, user_id: str, plan: Plan) -> Charge | ChargeError:
        if self.charge_error:
            return ChargeError(reason=self.charge_error)
        with self._lock:
            self.charges.append((user_id, plan.plan_id))
            transaction_id = f"{self.id_prefix}{len(self.charges)}"
        return Charge(
            transaction_id=transaction_id,
            amount_cents=plan.price_cents,
            due_at=T0 + timedelta(days=1),
            qr_payload="00020126PIXPAYLOAD",
            qr_image_url="https://qr.example/img.png",
        )

    def query_status(self, transaction_id: str) -> PaymentQueryResult:
        with self._lock:
            self.queries.append(transaction_id)
            outcomes = self.statuses.get(transaction_id) or [PENDING]
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeProvisioningGateway:
    def __init__(self) -> None:
        self.requests: list[ProvisioningRequest] = []
        self.fail_reason: str | None = None
        self.error: Exception | None = None
        self._lock = threading.Lock()

    def provision(
        self, request: ProvisioningRequest
    ) -> AccountCredentials | ProvisioningError:
        with self._lock:
            self.requests.append(request)
            n = len(self.requests)
        if self.error is not None:
            raise self.error
        if self.fail_reason:
            return ProvisioningError(reason=self.fail_reason)
        return AccountCredentials(
            username=f"{request.account_class}{n}",
            password=f"pw{n}",
            expires_at="2026-04-01",
            access_links=["http://link.example/1", "http://link.example/2"],
            package_id=request.package_id,
        )

    def calls_for(self, account_class: str) -> list[ProvisioningRequest]:
        return [r for r in self.requests if r.account_class == account_class]


class RecordingTransport:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def send(self, user_id: str, text: str) -> None:
        self.messages.append((user_id, text))

    def texts(self, user_id: str = USER) -> list[str]:
        return [text for to, text in self.messages if to == user_id]

    def last(self, user_id: str = USER) -> str:
        return self.texts(user_id)[-1]


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@dataclass
class Harness:
    store: MemoryRecordStore = field(default_factory=MemoryRecordStore)
    clock: FrozenClock = field(default_factory=FrozenClock)
    payments: FakePaymentGateway = field(default_factory=FakePaymentGateway)
    provisioning: FakeProvisioningGateway = field(default_factory=FakeProvisioningGateway)
    transport: RecordingTransport = field(default_factory=RecordingTransport)
    sink: MemoryAuditSink = field(default_factory=MemoryAuditSink)
    sleep: RecordingSleep = field(default_factory=RecordingSleep)

    def __post_init__(self) -> None:
        self.conversations = ConversationStore(self.store, clock=self.clock)
        self.ledger = IdempotencyLedger(self.store, clock=self.clock)
        self.cooldown = TrialCooldownGate(self.store, clock=self.clock)
        self.credentials = RecordCredentialStore(self.store, clock=self.clock)
        self.audit = PaymentAudit(self.sink, clock=self.clock)
        self.orchestrator = DialogOrchestrator(
            conversations=self.conversations,
            ledger=self.ledger,
            cooldown=self.cooldown,
            reconciler=PaymentReconciler(self.payments, sleep=self.sleep),
            payments=self.payments,
            provisioning=self.provisioning,
            credentials=self.credentials,
            transport=self.transport,
            audit=self.audit,
        )
