# Overview: Pytest coverage for the sync engine, remote apply idempotency and the background worker.

"""
Sync Tests

SCENARIOS:
- A retried sync of the same client_txn_id changes the remote store once
- Concurrent remote stock decrements commute
- Repeated passes drain the outbox; failures are isolated per row
- Passes are skipped (queue untouched) when disabled, offline or in flight
"""

import dataclasses
import threading
import time

import pytest
from sqlalchemy.exc import OperationalError

from ledgerpos.errors import AlreadyApplied, ConflictOrValidation
from ledgerpos.extensions import db
from ledgerpos.models import OutboxEntry, RemoteSale, SyncLog
from ledgerpos.services.sales_service import complete_sale
from ledgerpos.services.sync_service import SKIP_DISABLED, SKIP_IN_FLIGHT, SKIP_OFFLINE, SyncWorker


def _sell(core, product, kg, **kwargs):
    cart = core.new_cart()
    cart.add(product, kg, "KG")
    return complete_sale(core, cart, **kwargs)


def _remote_snapshot(core, customer_id, product_id):
    with core.remote.session() as session:
        sales = session.query(RemoteSale).count()
        markers = session.query(SyncLog).count()
    return {
        "balance": core.remote.customer_balance("acme", customer_id),
        "ledger": core.remote.ledger_entries("acme", customer_id),
        "stock": core.remote.stock_level("acme", "branch-1", product_id),
        "sales": sales,
        "markers": markers,
    }


class TestIdempotentApply:
    def test_retried_sync_applies_once(self, core, rice, customer):
        """Sync, force the row back to PENDING, sync again: remote balance moves once."""
        result = _sell(core, rice, 10, customer_id=customer.id, payment_method="CREDIT",
                       client_txn_id="web-1700000000-abc")
        assert core.remote.customer_balance("acme", customer.id) == 0

        first = core.sync.sync_pass(force=True)
        assert (first.synced, first.failed) == (1, 0)
        assert core.remote.customer_balance("acme", customer.id) == 1200

        row = core.store.session.query(OutboxEntry).filter_by(client_txn_id="web-1700000000-abc").one()
        row.status = "PENDING"
        db.session.commit()

        second = core.sync.sync_pass(force=True)
        assert (second.synced, second.already_applied) == (0, 1)
        assert core.remote.customer_balance("acme", customer.id) == 1200
        assert core.outbox.get(result.outbox_entry.id).status == "SYNCED"
        assert core.outbox.get(result.outbox_entry.id).attempts == 2

    def test_apply_twice_leaves_identical_remote_state(self, core, rice, customer):
        result = _sell(core, rice, 7.5, customer_id=customer.id, payment_method="MIXED", paid_now_cents=300)
        payload = result.outbox_entry.payload

        applied = core.remote.apply_sale("acme", "branch-1", "cashier-1", result.client_txn_id, payload)
        assert applied.customer_balance_cents == 600
        before = _remote_snapshot(core, customer.id, rice.id)

        with pytest.raises(AlreadyApplied):
            core.remote.apply_sale("acme", "branch-1", "cashier-1", result.client_txn_id, payload)

        assert _remote_snapshot(core, customer.id, rice.id) == before
        assert before["stock"] == pytest.approx(-7.5)
        assert [e["type"] for e in before["ledger"]] == ["SALE", "PAYMENT"]
        assert [e["id"] for e in before["ledger"]] == [f"LED-{result.sale.id}", f"LED-PAY-{result.sale.id}"]
        assert before["markers"] == 1

    def test_remote_balance_builds_on_remote_row(self, core, rice, customer):
        """The remote balance starts from the remote customer row, not the device cache."""
        core.remote.ensure_customer("acme", customer.id, name=customer.name)
        _sell(core, rice, 1, customer_id=customer.id, payment_method="CREDIT")
        _sell(core, rice, 2, customer_id=customer.id, payment_method="CREDIT")

        core.sync.sync_pass(force=True)

        assert core.remote.customer_balance("acme", customer.id) == 360
        ledger = core.remote.ledger_entries("acme", customer.id)
        assert sorted(e["balance_after_cents"] for e in ledger) == [120, 360]

    def test_malformed_payload_is_rejected_before_writing(self, core):
        with pytest.raises(ConflictOrValidation):
            core.remote.apply_sale("acme", "branch-1", None, "bad-1", {"id": "SALE-X", "items": []})
        assert core.remote.is_applied("acme", "bad-1") is False


class TestRemoteStock:
    @pytest.mark.parametrize("order", [(-10, -5), (-5, -10)])
    def test_decrements_commute(self, core, order):
        core.remote.adjust_stock("acme", "branch-1", "rice", 100.0)
        for delta in order:
            core.remote.adjust_stock("acme", "branch-1", "rice", delta)
        assert core.remote.stock_level("acme", "branch-1", "rice") == pytest.approx(85.0)

    def test_concurrent_devices(self, core):
        core.remote.adjust_stock("acme", "branch-1", "rice", 100.0)
        errors = []

        def device(delta):
            try:
                core.remote.adjust_stock("acme", "branch-1", "rice", delta)
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=device, args=(d,)) for d in (-10, -5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert errors == []
        assert core.remote.stock_level("acme", "branch-1", "rice") == pytest.approx(85.0)


class TestSyncPass:
    def test_repeated_passes_drain_everything(self, core, rice, customer):
        for i in range(23):
            _sell(core, rice, 1, customer_id=customer.id if i % 2 else None, payment_method="CREDIT")

        passes = 0
        while core.outbox.counts()["PENDING"] and passes < 10:
            core.sync.sync_pass(force=True)
            passes += 1

        assert passes == 3
        assert core.outbox.counts() == {"PENDING": 0, "SYNCED": 23, "FAILED": 0, "total": 23}
        assert core.remote.stock_level("acme", "branch-1", rice.id) == pytest.approx(-23.0)
        assert core.remote.customer_balance("acme", customer.id) == core.engine.get_balance(customer.id)

    def test_failed_row_does_not_block_the_batch(self, core, rice):
        bad = core.outbox.enqueue("bad-1", "SALE", {"id": "SALE-BAD", "total_amount_cents": 5})
        good = _sell(core, rice, 1)

        report = core.sync.sync_pass(force=True)

        assert (report.selected, report.synced, report.failed) == (2, 1, 1)
        assert "bad-1" in report.errors
        failed = core.outbox.get(bad.id)
        assert failed.status == "FAILED"
        assert failed.attempts == 1
        assert "missing required fields" in failed.last_error
        assert core.outbox.get(good.outbox_entry.id).status == "SYNCED"

        # FAILED rows are not picked up again until an operator retries them
        assert core.sync.sync_pass(force=True).selected == 0
        assert core.outbox.retry_failed() == 1
        assert core.sync.sync_pass(force=True).failed == 1

    def test_remote_outage_marks_rows_failed(self, core, rice):
        core.remote.backoff_base = 0
        _sell(core, rice, 1)
        SyncLog.__table__.drop(db.engines["remote"])

        report = core.sync.sync_pass(force=True)

        assert report.failed == 1
        entry = core.store.session.query(OutboxEntry).one()
        assert entry.status == "FAILED"
        assert "unavailable" in entry.last_error

    def test_local_status_failure_does_not_abandon_the_batch(self, core, rice, monkeypatch):
        first = _sell(core, rice, 1)
        second = _sell(core, rice, 2)
        real_mark_attempt = core.outbox.mark_attempt
        calls = []

        def flaky_mark_attempt(entry_id):
            calls.append(entry_id)
            if len(calls) == 1:
                raise OperationalError("UPDATE outbox", {}, Exception("database is locked"))
            return real_mark_attempt(entry_id)

        monkeypatch.setattr(core.outbox, "mark_attempt", flaky_mark_attempt)

        report = core.sync.sync_pass(force=True)

        assert (report.selected, report.synced, report.failed, report.local_errors) == (2, 1, 0, 1)
        assert first.client_txn_id in report.errors
        skipped = core.outbox.get(first.outbox_entry.id)
        assert (skipped.status, skipped.attempts) == ("PENDING", 0)
        assert core.outbox.get(second.outbox_entry.id).status == "SYNCED"

        assert core.sync.sync_pass(force=True).synced == 1
        assert core.outbox.counts()["SYNCED"] == 2

    def test_unrecorded_success_settles_on_next_pass(self, core, rice, monkeypatch):
        result = _sell(core, rice, 1)

        def broken_mark_synced(entry_id):
            raise OperationalError("UPDATE outbox", {}, Exception("disk I/O error"))

        monkeypatch.setattr(core.outbox, "mark_synced", broken_mark_synced)
        report = core.sync.sync_pass(force=True)
        assert (report.synced, report.local_errors) == (0, 1)
        assert core.remote.is_applied("acme", result.client_txn_id) is True
        assert core.outbox.get(result.outbox_entry.id).status == "PENDING"

        monkeypatch.undo()
        retry = core.sync.sync_pass(force=True)
        assert (retry.synced, retry.already_applied) == (0, 1)
        assert core.outbox.get(result.outbox_entry.id).status == "SYNCED"
        assert core.remote.stock_level("acme", "branch-1", rice.id) == pytest.approx(-1.0)

    def test_unsupported_event_types_stay_pending(self, core):
        core.outbox.enqueue("pay-1", "PAYMENT", {"amount_cents": 100})
        report = core.sync.sync_pass(force=True)
        assert report.selected == 0
        assert core.outbox.counts()["PENDING"] == 1

    def test_newest_first_drain_order(self, core, rice):
        older = _sell(core, rice, 1)
        newer = _sell(core, rice, 2)
        core.sync.settings = dataclasses.replace(core.sync.settings, drain_order="newest", max_batch=1)

        core.sync.sync_pass(force=True)

        assert core.outbox.get(newer.outbox_entry.id).status == "SYNCED"
        assert core.outbox.get(older.outbox_entry.id).status == "PENDING"


class TestSkips:
    def test_disabled_skips_unless_forced(self, core, rice):
        _sell(core, rice, 1)
        assert core.sync.sync_pass().skipped == SKIP_DISABLED
        assert core.outbox.counts()["PENDING"] == 1

    def test_offline_leaves_queue_untouched(self, core, rice, online):
        result = _sell(core, rice, 1)
        online.online = False

        report = core.sync.sync_pass(force=True)

        assert report.skipped == SKIP_OFFLINE
        entry = core.outbox.get(result.outbox_entry.id)
        assert (entry.status, entry.attempts) == ("PENDING", 0)

    def test_single_flight(self, core, rice):
        _sell(core, rice, 1)
        nested = []

        def check():
            nested.append(core.sync.sync_pass(force=True))
            return True

        core.sync.online_check = check
        report = core.sync.sync_pass(force=True)

        assert nested[0].skipped == SKIP_IN_FLIGHT
        assert report.synced == 1
        assert core.sync.in_flight is False


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        db.session.rollback()
        if predicate():
            return True
        time.sleep(0.05)
    return False


class TestSyncWorker:
    def test_worker_syncs_on_start_and_trigger(self, app, core, rice):
        core.sync.settings = dataclasses.replace(core.sync.settings, enabled=True, interval_ms=60000)
        _sell(core, rice, 1)

        worker = SyncWorker(app, core.sync)
        worker.start()
        try:
            assert worker.running
            assert _wait_for(lambda: core.outbox.counts()["SYNCED"] == 1)

            _sell(core, rice, 1)
            worker.trigger()
            assert _wait_for(lambda: core.outbox.counts()["SYNCED"] == 2)
        finally:
            worker.stop(timeout=10)

        assert not worker.running
        assert worker.last_report is not None

    def test_worker_syncs_when_network_returns(self, app, core, rice, online):
        core.sync.settings = dataclasses.replace(
            core.sync.settings, enabled=True, interval_ms=60000, reconnect_probe_ms=50
        )
        online.online = False
        _sell(core, rice, 1)

        worker = SyncWorker(app, core.sync)
        worker.start()
        try:
            time.sleep(0.2)
            assert core.outbox.counts()["PENDING"] == 1

            online.online = True
            worker.notify_online()
            assert _wait_for(lambda: core.outbox.counts()["SYNCED"] == 1)
        finally:
            worker.stop(timeout=10)

    def test_worker_notices_reconnect_on_its_own(self, app, core, rice, online):
        core.sync.settings = dataclasses.replace(
            core.sync.settings, enabled=True, interval_ms=60000, reconnect_probe_ms=50
        )
        online.online = False
        _sell(core, rice, 1)

        worker = SyncWorker(app, core.sync)
        worker.start()
        try:
            assert _wait_for(lambda: worker.last_report is not None)
            assert worker.last_report.skipped == SKIP_OFFLINE
            time.sleep(0.2)
            assert core.outbox.counts()["PENDING"] == 1

            # no notify_online(): the offline polling has to see the network come back
            online.online = True
            assert _wait_for(lambda: core.outbox.counts()["SYNCED"] == 1)
        finally:
            worker.stop(timeout=10)

        assert worker.last_report.synced == 1
