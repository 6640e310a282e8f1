"""Append-only payment audit log.

Every step of the payment/provisioning protocol that matters for
traceability is recorded as an AuditEvent: charges created, payment checks
and their results, accounts created, blocked duplicate claims and
provisioning failures. User identities are masked before they reach the
event; credentials and raw gateway payloads never do.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Iterable, Literal, Protocol

from psycopg2.extras import Json

from vendabot.infra.db import txn
from vendabot.infra.time import Clock, utc_now
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context

if TYPE_CHECKING:
    from vendabot.domain.collaborators import AccountCredentials
    from vendabot.domain.reconciliation import PollResult

logger = get_logger(__name__)

AuditEventType = Literal[
    "charge_created",
    "payment_check_started",
    "payment_check_result",
    "payment_check_error",
    "account_created",
    "duplicate_claim_blocked",
    "ownership_violation",
    "provisioning_error",
    "invalid_transaction_id",
]

Severity = Literal["INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class AuditEvent:
    """One audit log entry. Contains NO raw phone numbers."""

    event: str
    occurred_at: datetime
    user_ref: str
    transaction_id: str | None = None
    severity: str = "INFO"
    details: dict[str, Any] = field(default_factory=dict)


class AuditSink(Protocol):
    def append(self, event: AuditEvent) -> None:
        ...


class MemoryAuditSink:
    """Keeps events in a list. Used by tests and local runs."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def append(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event: str) -> list[AuditEvent]:
        return [e for e in self.events if e.event == event]


class PostgresAuditSink:
    """Writes events to payment_audit_events (insert-only)."""

    def append(self, event: AuditEvent) -> None:
        with txn() as cur:
            cur.execute(
                """
                INSERT INTO payment_audit_events
                    (event, occurred_at, user_ref, transaction_id, severity, details)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    event.event,
                    event.occurred_at,
                    event.user_ref,
                    event.transaction_id,
                    event.severity,
                    Json(event.details),
                ),
            )


class PaymentAudit:
    """Records payment protocol events to a sink and the structured log."""

    def __init__(self, sink: AuditSink, *, clock: Clock = utc_now) -> None:
        self._sink = sink
        self._clock = clock

    def record(
        self,
        event: AuditEventType,
        user_id: str | None,
        *,
        transaction_id: str | None = None,
        severity: Severity = "INFO",
        **details: Any,
    ) -> AuditEvent:
        entry = AuditEvent(
            event=event,
            occurred_at=self._clock(),
            user_ref=mask_user_id(user_id),
            transaction_id=transaction_id,
            severity=severity,
            details=details,
        )
        self._sink.append(entry)

        log = logger.warning if severity != "INFO" else logger.info
        log(
            "audit event",
            extra={
                "extra_fields": {
                    **safe_log_context(
                        audit_event=event,
                        severity=severity,
                        transaction_id=transaction_id,
                    ),
                    "user_ref": entry.user_ref,
                }
            },
        )
        return entry

    def charge_created(
        self, transaction_id: str, user_id: str, amount_cents: int, plan_id: str
    ) -> AuditEvent:
        return self.record(
            "charge_created",
            user_id,
            transaction_id=transaction_id,
            amount_cents=amount_cents,
            plan_id=plan_id,
        )

    def payment_check_started(
        self, transaction_id: str, user_id: str, attempts: int, *, source: str
    ) -> AuditEvent:
        return self.record(
            "payment_check_started",
            user_id,
            transaction_id=transaction_id,
            attempts=attempts,
            source=source,
        )

    def payment_check_result(
        self, transaction_id: str, user_id: str, result: PollResult
    ) -> AuditEvent:
        return self.record(
            "payment_check_result",
            user_id,
            transaction_id=transaction_id,
            paid=result.paid,
            attempts_used=result.attempts_used,
            last_status=result.last_status,
            last_error=result.last_error,
        )

    def payment_check_error(
        self, transaction_id: str, user_id: str, error: str
    ) -> AuditEvent:
        return self.record(
            "payment_check_error",
            user_id,
            transaction_id=transaction_id,
            severity="ERROR",
            error=error,
        )

    def account_created(
        self,
        transaction_id: str | None,
        user_id: str,
        credentials: AccountCredentials,
        account_class: str,
    ) -> AuditEvent:
        # Username only; the password never enters the audit log.
        return self.record(
            "account_created",
            user_id,
            transaction_id=transaction_id,
            username=credentials.username,
            account_class=account_class,
            package_id=credentials.package_id,
            expires_at=credentials.expires_at,
        )

    def duplicate_claim_blocked(self, transaction_id: str, user_id: str) -> AuditEvent:
        return self.record(
            "duplicate_claim_blocked",
            user_id,
            transaction_id=transaction_id,
            severity="WARNING",
        )

    def ownership_violation(
        self, transaction_id: str, user_id: str, owner_id: str | None
    ) -> AuditEvent:
        return self.record(
            "ownership_violation",
            user_id,
            transaction_id=transaction_id,
            severity="WARNING",
            owner_ref=mask_user_id(owner_id),
        )

    def provisioning_error(
        self,
        transaction_id: str | None,
        user_id: str,
        reason: str,
        *,
        account_class: str,
    ) -> AuditEvent:
        return self.record(
            "provisioning_error",
            user_id,
            transaction_id=transaction_id,
            severity="ERROR",
            reason=reason,
            account_class=account_class,
        )

    def invalid_transaction_id(
        self, user_id: str, transaction_id: str | None
    ) -> AuditEvent:
        return self.record(
            "invalid_transaction_id",
            user_id,
            transaction_id=transaction_id,
            severity="WARNING",
        )


def summarize(events: Iterable[AuditEvent], *, day: date | None = None) -> dict[str, int]:
    """Summarize audit events, optionally restricted to one UTC day.

    Returns:
        Dict with total_events, one count per event type present, and
        warnings/errors severity counts.
    """
    selected = [
        e for e in events if day is None or e.occurred_at.date() == day
    ]
    by_type = Counter(e.event for e in selected)
    by_severity = Counter(e.severity for e in selected)

    summary: dict[str, int] = {"total_events": len(selected)}
    summary.update(sorted(by_type.items()))
    summary["warnings"] = by_severity.get("WARNING", 0)
    summary["errors"] = by_severity.get("ERROR", 0)
    return summary
