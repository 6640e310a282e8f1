"""PostgresRecordStore and PostgresAuditSink tests (requires Postgres with migrations applied)."""

import os
import threading
from uuid import uuid4

import pytest

from vendabot.domain.idempotency import IdempotencyLedger
from vendabot.infra.db import txn
from vendabot.infra.record_store import PostgresRecordStore, update_record
from vendabot.observability.audit import PaymentAudit, PostgresAuditSink

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB-dependent tests",
)


@pytest.fixture
def namespace():
    ns = f"test-{uuid4().hex[:8]}"
    yield ns
    with txn() as cur:
        cur.execute("DELETE FROM records WHERE namespace = %s", (ns,))


class TestPostgresRecordStore:
    def test_insert_get_and_cas(self, namespace):
        store = PostgresRecordStore()
        assert store.insert(namespace, "k", {"a": 1}) is True
        assert store.insert(namespace, "k", {"a": 2}) is False

        record = store.get(namespace, "k")
        assert record.data == {"a": 1}
        assert record.version == 1

        assert store.compare_and_set(namespace, "k", {"a": 3}, expected_version=1) is True
        assert store.compare_and_set(namespace, "k", {"a": 4}, expected_version=1) is False
        assert store.get(namespace, "k").data == {"a": 3}

    def test_update_record_merges(self, namespace):
        store = PostgresRecordStore()
        update_record(store, namespace, "k", lambda cur: {"n": 1})
        update_record(store, namespace, "k", lambda cur: {**cur, "m": 2})
        assert store.get(namespace, "k").data == {"n": 1, "m": 2}

    def test_delete(self, namespace):
        store = PostgresRecordStore()
        store.insert(namespace, "k", {})
        store.delete(namespace, "k")
        assert store.get(namespace, "k") is None


class TestPostgresLedger:
    def test_try_mark_processed_exactly_once_across_threads(self):
        store = PostgresRecordStore()
        ledger = IdempotencyLedger(store)
        txid = f"PG-{uuid4().hex[:12]}"
        ledger.set(txid, status="paid", owner="5511999990001")

        results: list[bool] = []
        lock = threading.Lock()

        def claim():
            ok = ledger.try_mark_processed(txid, "5511999990001")
            with lock:
                results.append(ok)

        threads = [threading.Thread(target=claim) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        try:
            assert results.count(True) == 1
            assert ledger.get(txid).status == "processed"
        finally:
            with txn() as cur:
                cur.execute(
                    "DELETE FROM records WHERE namespace = 'idempotency' AND key = %s",
                    (txid,),
                )


class TestPostgresAuditSink:
    def test_event_is_inserted(self):
        audit = PaymentAudit(PostgresAuditSink())
        txid = f"AUD-{uuid4().hex[:12]}"
        audit.duplicate_claim_blocked(txid, "5511999990001")

        with txn() as cur:
            cur.execute(
                "SELECT event, user_ref, severity FROM payment_audit_events WHERE transaction_id = %s",
                (txid,),
            )
            rows = cur.fetchall()
            cur.execute("DELETE FROM payment_audit_events WHERE transaction_id = %s", (txid,))

        assert rows == [("duplicate_claim_blocked", "5511*********", "WARNING")]
