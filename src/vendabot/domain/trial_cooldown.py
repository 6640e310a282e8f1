"""Trial cooldown gate - at most one free trial per user per window."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from vendabot.infra.record_store import RecordStore, update_record
from vendabot.infra.time import Clock, parse_timestamp, utc_now, whole_days_between

DEFAULT_COOLDOWN_DAYS = 60

NAMESPACE = "trial_cooldown"


@dataclass(frozen=True)
class Eligibility:
    allowed: bool
    remaining_days: int = 0


class TrialCooldownGate:
    """Durable map from user identity to the last trial issued.

    mark_issued() must only be called after a trial account was actually
    provisioned; a failed attempt never consumes the user's eligibility.
    """

    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def last_issued_at(self, user_id: str) -> datetime | None:
        record = self._store.get(NAMESPACE, user_id)
        if record is None:
            return None
        return parse_timestamp(record.data["last_trial_at"])

    def check_eligible(
        self, user_id: str, cooldown_days: int = DEFAULT_COOLDOWN_DAYS
    ) -> Eligibility:
        last = self.last_issued_at(user_id)
        if last is None:
            return Eligibility(allowed=True)

        remaining = cooldown_days - whole_days_between(last, self._clock())
        if remaining <= 0:
            return Eligibility(allowed=True)
        return Eligibility(allowed=False, remaining_days=remaining)

    def mark_issued(self, user_id: str) -> datetime:
        """Overwrite the user's last trial timestamp with now."""
        issued_at = self._clock()
        update_record(
            self._store,
            NAMESPACE,
            user_id,
            lambda _current: {"last_trial_at": issued_at.isoformat()},
        )
        return issued_at
