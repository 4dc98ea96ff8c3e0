# Overview: Pytest coverage for the outbox queue lifecycle (enqueue, status moves, operator actions).

import pytest

from ledgerpos.errors import ConflictOrValidation, NotFound
from ledgerpos.models import OutboxEntry


def _enqueue(core, n, event_type="SALE"):
    return [core.outbox.enqueue(f"test-{i}", event_type, {"id": f"SALE-{i}"}) for i in range(n)]


class TestEnqueue:
    def test_new_entry_is_pending_with_zero_attempts(self, core):
        entry = core.outbox.enqueue("web-1700000000-abc", "SALE", {"id": "SALE-1"})

        assert entry.id is not None
        assert entry.status == "PENDING"
        assert entry.attempts == 0
        assert entry.last_attempt_at is None
        assert entry.payload == {"id": "SALE-1"}

    def test_duplicate_client_txn_id_is_rejected(self, core):
        core.outbox.enqueue("dup-1", "SALE", {})
        with pytest.raises(ConflictOrValidation):
            core.outbox.enqueue("dup-1", "SALE", {})
        assert core.store.session.query(OutboxEntry).count() == 1

    def test_client_txn_id_required(self, core):
        with pytest.raises(ConflictOrValidation):
            core.outbox.enqueue("", "SALE", {})


class TestSelection:
    def test_list_pending_oldest_first_and_capped(self, core):
        entries = _enqueue(core, 5)
        pending = core.outbox.list_pending(3)
        assert [e.client_txn_id for e in pending] == [e.client_txn_id for e in entries[:3]]

    def test_list_pending_newest_first(self, core):
        entries = _enqueue(core, 4)
        pending = core.outbox.list_pending(2, newest_first=True)
        assert [e.client_txn_id for e in pending] == ["test-3", "test-2"]
        assert entries[3].client_txn_id == "test-3"

    def test_list_pending_filters_event_types(self, core):
        core.outbox.enqueue("sale-1", "SALE", {})
        core.outbox.enqueue("pay-1", "PAYMENT", {})
        pending = core.outbox.list_pending(10, event_types=("SALE",))
        assert [e.client_txn_id for e in pending] == ["sale-1"]

    def test_list_entries_rejects_unknown_status(self, core):
        with pytest.raises(ConflictOrValidation):
            core.outbox.list_entries(status="DONE")


class TestStatusMoves:
    def test_attempt_then_synced(self, core):
        entry = core.outbox.enqueue("t-1", "SALE", {})
        core.outbox.mark_attempt(entry.id)
        core.outbox.mark_attempt(entry.id)
        synced = core.outbox.mark_synced(entry.id)

        assert synced.attempts == 2
        assert synced.last_attempt_at is not None
        assert synced.status == "SYNCED"
        assert synced.last_error is None

    def test_failed_rows_return_only_via_retry(self, core):
        a, b = _enqueue(core, 2)
        core.outbox.mark_failed(a.id, "remote rejected sale")

        assert [e.client_txn_id for e in core.outbox.list_pending()] == [b.client_txn_id]
        assert core.outbox.get(a.id).last_error == "remote rejected sale"

        assert core.outbox.retry_failed() == 1
        assert {e.client_txn_id for e in core.outbox.list_pending()} == {a.client_txn_id, b.client_txn_id}

    def test_counts_and_clear_synced(self, core):
        a, b, c = _enqueue(core, 3)
        core.outbox.mark_synced(a.id)
        core.outbox.mark_failed(b.id, "boom")

        assert core.outbox.counts() == {"PENDING": 1, "SYNCED": 1, "FAILED": 1, "total": 3}
        assert core.outbox.clear_synced() == 1
        assert core.outbox.counts()["total"] == 2

    def test_delete_and_missing_rows(self, core):
        entry_id = core.outbox.enqueue("t-del", "SALE", {}).id
        core.outbox.delete(entry_id)
        with pytest.raises(NotFound):
            core.outbox.get(entry_id)
        with pytest.raises(NotFound):
            core.outbox.mark_synced(9999)
