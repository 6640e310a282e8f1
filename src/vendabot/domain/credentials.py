"""Credential store backed by the record store.

Keeps the latest credentials per account class ("trial", "official") for
each user so they can be looked up again from the menu.
"""

from __future__ import annotations

from typing import Any

from vendabot.domain.collaborators import AccountClass, AccountCredentials
from vendabot.infra.record_store import RecordStore, update_record
from vendabot.infra.time import Clock, utc_now

NAMESPACE = "credentials"


class RecordCredentialStore:
    def __init__(self, store: RecordStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    def save(
        self, user_id: str, credentials: AccountCredentials, account_class: AccountClass
    ) -> None:
        entry = {**credentials.to_record(), "saved_at": self._clock().isoformat()}

        def merge(current: dict[str, Any] | None) -> dict[str, Any]:
            data = current or {}
            data[account_class] = entry
            return data

        update_record(self._store, NAMESPACE, user_id, merge)

    def get(self, user_id: str) -> dict[str, AccountCredentials]:
        record = self._store.get(NAMESPACE, user_id)
        if record is None:
            return {}
        return {
            account_class: AccountCredentials.from_record(data)
            for account_class, data in record.data.items()
        }
