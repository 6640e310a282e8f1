"""Idempotency ledger - transaction id -> processing status.

The ledger is the single source of truth that prevents provisioning twice
for one payment. Status only moves forward:

    pending -> paid -> processed

try_mark_processed() is the only path allowed to open the gate to
provisioning, and it succeeds for exactly one caller per transaction id
(compare-and-set on the stored record).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from vendabot.infra.record_store import RecordStore, update_record
from vendabot.infra.time import Clock, parse_timestamp, utc_now
from vendabot.observability.logging import get_logger
from vendabot.observability.redaction import mask_user_id, safe_log_context

logger = get_logger(__name__)

LedgerStatus = Literal["pending", "paid", "processed"]

STATUS_ORDER: dict[str, int] = {"pending": 0, "paid": 1, "processed": 2}

NAMESPACE = "idempotency"

_PATCHABLE_FIELDS = frozenset(
    {"status", "owner", "plan_id", "package_id", "provisioning_error"}
)


class StaleWriteRejected(Exception):
    """A write would have moved a transaction's status backward.

    The write was not applied. Callers log this; it is never a user-facing
    error.
    """

    def __init__(self, transaction_id: str, current: str, attempted: str) -> None:
        super().__init__(
            f"status downgrade rejected for {transaction_id}: {current} -> {attempted}"
        )
        self.transaction_id = transaction_id
        self.current = current
        self.attempted = attempted


class OwnershipConflict(Exception):
    """A write tried to re-assign a transaction to a different user."""

    def __init__(self, transaction_id: str, owner: str, attempted: str) -> None:
        super().__init__(f"transaction {transaction_id} already has an owner")
        self.transaction_id = transaction_id
        self.owner = owner
        self.attempted = attempted


@dataclass(frozen=True)
class IdempotencyRecord:
    transaction_id: str
    status: str
    owner: str | None
    saved_at: datetime
    plan_id: str | None = None
    package_id: int | None = None
    provisioning_error: str | None = None

    @property
    def is_processed(self) -> bool:
        return self.status == "processed"

    def owned_by(self, user_id: str) -> bool:
        return self.owner is None or self.owner == user_id

    @classmethod
    def from_record(cls, transaction_id: str, data: dict[str, Any]) -> IdempotencyRecord:
        return cls(
            transaction_id=transaction_id,
            status=data["status"],
            owner=data.get("owner"),
            saved_at=parse_timestamp(data["saved_at"]),
            plan_id=data.get("plan_id"),
            package_id=data.get("package_id"),
            provisioning_error=data.get("provisioning_error"),
        )


class IdempotencyLedger:
    """Durable, monotonic map from transaction id to processing status."""

    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def get(self, transaction_id: str) -> IdempotencyRecord | None:
        record = self._store.get(NAMESPACE, transaction_id)
        if record is None:
            return None
        return IdempotencyRecord.from_record(transaction_id, record.data)

    def set(self, transaction_id: str, **patch: Any) -> IdempotencyRecord:
        """Read-merge-write a ledger entry.

        New entries default to status 'pending'. The owner, once set, is
        immutable.

        Raises:
            ValueError: On unknown fields or status values.
            StaleWriteRejected: If the patch would move status backward.
            OwnershipConflict: If the patch names a different owner.
        """
        unknown = set(patch) - _PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown ledger fields: {sorted(unknown)}")
        new_status = patch.get("status")
        if new_status is not None and new_status not in STATUS_ORDER:
            raise ValueError(f"Invalid ledger status: {new_status}")

        stamped = self._clock().isoformat()

        def merge(current: dict[str, Any] | None) -> dict[str, Any]:
            data = current or {"status": "pending"}
            if new_status is not None:
                if STATUS_ORDER[new_status] < STATUS_ORDER[data["status"]]:
                    raise StaleWriteRejected(transaction_id, data["status"], new_status)
            owner = patch.get("owner")
            if owner is not None and data.get("owner") not in (None, owner):
                raise OwnershipConflict(transaction_id, data["owner"], owner)
            for name, value in patch.items():
                # status and owner are never cleared
                if value is None and name in ("status", "owner"):
                    continue
                data[name] = value
            data["saved_at"] = stamped
            return data

        result = update_record(self._store, NAMESPACE, transaction_id, merge)
        return IdempotencyRecord.from_record(transaction_id, result.data)

    def try_mark_processed(self, transaction_id: str, owner_id: str) -> bool:
        """Atomically move a transaction from 'paid' to 'processed'.

        Returns:
            True only for the single call that applied the transition.
            False if the transaction is unknown, owned by someone else,
            not yet paid, or already processed.
        """
        stamped = self._clock().isoformat()

        def claim(current: dict[str, Any] | None) -> dict[str, Any] | None:
            if current is None or current.get("status") != "paid":
                return None
            if current.get("owner") not in (None, owner_id):
                return None
            current["status"] = "processed"
            current["saved_at"] = stamped
            return current

        result = update_record(self._store, NAMESPACE, transaction_id, claim)
        if not result.written:
            logger.info(
                "processing claim not applied",
                extra={
                    "extra_fields": {
                        **safe_log_context(
                            transaction_id=transaction_id,
                            status=(result.data or {}).get("status"),
                        ),
                        "user_ref": mask_user_id(owner_id),
                    }
                },
            )
        return result.written
