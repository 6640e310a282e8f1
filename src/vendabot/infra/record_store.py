"""Keyed record storage with per-key compare-and-set.

Every durable store in vendabot (conversation state, idempotency ledger,
trial cooldowns, credentials, inbound message receipts) keeps small JSON
documents addressed by (namespace, key). Each document carries a version
number; writers replace a document only if the version they read is still
current. This is the primitive the exactly-once guarantees rest on.

Backends:
- MemoryRecordStore: process-local, guarded by a lock (tests, local dev)
- PostgresRecordStore: `records` table, conditional UPDATE on version
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from psycopg2.extras import Json

from vendabot.infra.db import txn
from vendabot.infra.time import utc_now

Document = dict[str, Any]

# A mutation receives a private copy of the current document (None when the
# key is absent) and returns the new document, or None to leave it untouched.
Mutation = Callable[[Document | None], Document | None]

DEFAULT_CAS_ATTEMPTS = 10


class ConcurrentUpdateError(Exception):
    """Compare-and-set kept losing to concurrent writers."""


@dataclass(frozen=True)
class VersionedRecord:
    """A stored document and the version it was read at."""

    data: Document
    version: int


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of update_record().

    Attributes:
        data: Document after the call (None if the key is still absent).
        written: True only if this call stored a new version.
    """

    data: Document | None
    written: bool


class RecordStore(Protocol):
    """Storage contract shared by all backends."""

    def get(self, namespace: str, key: str) -> VersionedRecord | None:
        ...

    def insert(self, namespace: str, key: str, data: Document) -> bool:
        """Store data only if the key is absent. Returns True if inserted."""
        ...

    def compare_and_set(
        self,
        namespace: str,
        key: str,
        data: Document,
        *,
        expected_version: int,
    ) -> bool:
        """Replace data only if the stored version matches."""
        ...

    def delete(self, namespace: str, key: str) -> None:
        ...


class MemoryRecordStore:
    """In-process record store.

    Safe across threads (handlers may run collaborator calls in worker
    threads) and across asyncio tasks.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], VersionedRecord] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> VersionedRecord | None:
        with self._lock:
            record = self._records.get((namespace, key))
            if record is None:
                return None
            return VersionedRecord(copy.deepcopy(record.data), record.version)

    def insert(self, namespace: str, key: str, data: Document) -> bool:
        with self._lock:
            if (namespace, key) in self._records:
                return False
            self._records[(namespace, key)] = VersionedRecord(copy.deepcopy(data), 1)
            return True

    def compare_and_set(
        self,
        namespace: str,
        key: str,
        data: Document,
        *,
        expected_version: int,
    ) -> bool:
        with self._lock:
            current = self._records.get((namespace, key))
            if current is None or current.version != expected_version:
                return False
            self._records[(namespace, key)] = VersionedRecord(
                copy.deepcopy(data), current.version + 1
            )
            return True

    def delete(self, namespace: str, key: str) -> None:
        with self._lock:
            self._records.pop((namespace, key), None)

    def keys(self, namespace: str) -> list[str]:
        """List keys in a namespace (tests and debugging only)."""
        with self._lock:
            return sorted(k for ns, k in self._records if ns == namespace)


class PostgresRecordStore:
    """Record store on the `records` table (see migrations).

    Every call runs in its own short transaction. The version check lives in
    the UPDATE's WHERE clause, so two writers racing on the same key can
    never both succeed.
    """

    def get(self, namespace: str, key: str) -> VersionedRecord | None:
        with txn() as cur:
            cur.execute(
                """
                SELECT data, version FROM records
                WHERE namespace = %s AND key = %s
                """,
                (namespace, key),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return VersionedRecord(data=row[0], version=row[1])

    def insert(self, namespace: str, key: str, data: Document) -> bool:
        with txn() as cur:
            cur.execute(
                """
                INSERT INTO records (namespace, key, data, version, updated_at)
                VALUES (%s, %s, %s, 1, %s)
                ON CONFLICT (namespace, key) DO NOTHING
                """,
                (namespace, key, Json(data), utc_now()),
            )
            return cur.rowcount == 1

    def compare_and_set(
        self,
        namespace: str,
        key: str,
        data: Document,
        *,
        expected_version: int,
    ) -> bool:
        with txn() as cur:
            cur.execute(
                """
                UPDATE records
                SET data = %s, version = version + 1, updated_at = %s
                WHERE namespace = %s AND key = %s AND version = %s
                """,
                (Json(data), utc_now(), namespace, key, expected_version),
            )
            return cur.rowcount == 1

    def delete(self, namespace: str, key: str) -> None:
        with txn() as cur:
            cur.execute(
                "DELETE FROM records WHERE namespace = %s AND key = %s",
                (namespace, key),
            )


def update_record(
    store: RecordStore,
    namespace: str,
    key: str,
    mutate: Mutation,
    *,
    max_attempts: int = DEFAULT_CAS_ATTEMPTS,
) -> UpdateResult:
    """Apply a read-merge-write atomically with respect to other writers.

    The mutation may run more than once when the compare-and-set loses a
    race; it must be a pure function of the document it receives. An
    exception raised by the mutation aborts the update without writing.

    Args:
        store: Backend to operate on.
        namespace: Record namespace.
        key: Record key.
        mutate: Function from current document to new document (or None).
        max_attempts: Compare-and-set attempts before giving up.

    Returns:
        UpdateResult with the resulting document and whether this call wrote.

    Raises:
        ConcurrentUpdateError: If every attempt lost to a concurrent writer.
    """
    for _ in range(max_attempts):
        current = store.get(namespace, key)
        new_data = mutate(copy.deepcopy(current.data) if current else None)

        if new_data is None:
            return UpdateResult(data=current.data if current else None, written=False)

        if current is None:
            if store.insert(namespace, key, new_data):
                return UpdateResult(data=new_data, written=True)
        elif store.compare_and_set(
            namespace, key, new_data, expected_version=current.version
        ):
            return UpdateResult(data=new_data, written=True)

    raise ConcurrentUpdateError(
        f"compare-and-set failed {max_attempts} times for {namespace}:{key}"
    )
