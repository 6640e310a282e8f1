"""Conversation state store - per-user dialog step and transient flow data.

State is keyed by user identity (the sender's phone number) and kept in the
record store, never in process globals. Writes are read-merge-write under
compare-and-set; callers additionally serialize per user (see KeyedLocks).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

from vendabot.infra.record_store import RecordStore, update_record
from vendabot.infra.time import Clock, parse_timestamp, utc_now

ConversationStep = Literal[
    "menu",
    "choosing_plan",
    "renewing_plan",
    "choosing_tutorial",
    "choosing_install_option",
]

VALID_STEPS: frozenset[str] = frozenset(
    {
        "menu",
        "choosing_plan",
        "renewing_plan",
        "choosing_tutorial",
        "choosing_install_option",
    }
)

PLAN_STEPS: frozenset[str] = frozenset({"choosing_plan", "renewing_plan"})

NAMESPACE = "conversation"

# Fields a caller may set; updated_at is always stamped by the store.
_MUTABLE_FIELDS = frozenset(
    {
        "step",
        "pending_transaction_id",
        "selected_package",
        "selected_plan",
        "tutorial_context",
    }
)


@dataclass(frozen=True)
class ConversationState:
    """Dialog position and in-flight data for one user."""

    user_id: str
    step: str = "menu"
    pending_transaction_id: str | None = None
    selected_package: int | None = None
    selected_plan: str | None = None
    tutorial_context: str | None = None
    updated_at: datetime | None = None

    @property
    def has_pending_payment(self) -> bool:
        return self.pending_transaction_id is not None

    @classmethod
    def from_record(cls, user_id: str, data: dict[str, Any]) -> ConversationState:
        updated_at = data.get("updated_at")
        return cls(
            user_id=user_id,
            step=data.get("step", "menu"),
            pending_transaction_id=data.get("pending_transaction_id"),
            selected_package=data.get("selected_package"),
            selected_plan=data.get("selected_plan"),
            tutorial_context=data.get("tutorial_context"),
            updated_at=parse_timestamp(updated_at) if updated_at else None,
        )


class ConversationStore:
    """Durable map from user identity to ConversationState."""

    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def get(self, user_id: str) -> ConversationState | None:
        record = self._store.get(NAMESPACE, user_id)
        if record is None:
            return None
        return ConversationState.from_record(user_id, record.data)

    def set(self, user_id: str, **fields: Any) -> ConversationState:
        """Merge fields into the user's state, creating it if needed.

        Passing None for a field clears it. Setting pending_transaction_id
        replaces any earlier pending transaction for the user.

        Raises:
            ValueError: On unknown fields or an invalid step.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")
        step = fields.get("step")
        if step is not None and step not in VALID_STEPS:
            raise ValueError(f"Invalid conversation step: {step}")

        stamped = self._clock().isoformat()

        def merge(current: dict[str, Any] | None) -> dict[str, Any]:
            data = current or {"step": "menu"}
            data.update(fields)
            data["updated_at"] = stamped
            return data

        result = update_record(self._store, NAMESPACE, user_id, merge)
        return ConversationState.from_record(user_id, result.data)

    def reset_to_menu(self, user_id: str) -> ConversationState:
        """Return the user to the menu, dropping step-specific data.

        The pending payment is dropped too, so menu digits regain their menu
        meaning. A user who paid anyway can re-attach it with TXID, and the
        gateway notification still finalizes it from the ledger.
        """
        return self.set(
            user_id,
            step="menu",
            tutorial_context=None,
            pending_transaction_id=None,
            selected_plan=None,
        )

    def clear(self, user_id: str) -> None:
        self._store.delete(NAMESPACE, user_id)
