# Overview: Pytest coverage for the `flask ledger` and `flask sync` command groups.

from ledgerpos.extensions import db
from ledgerpos.models import Customer, CustomerLedgerEntry, Product, Supplier
from ledgerpos.services.sales_service import complete_sale


def _sell(core, product_id, kg, **kwargs):
    cart = core.new_cart()
    cart.add(core.store.get(Product, product_id), kg, "KG")
    return complete_sale(core, cart, **kwargs)


class TestLedgerCommands:
    def test_init_db(self, runner):
        result = runner.invoke(args=["ledger", "init-db"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_seed_demo_is_idempotent(self, runner, core):
        first = runner.invoke(args=["ledger", "seed-demo"])
        assert first.exit_code == 0
        assert "PASS customers: 1 created" in first.output
        assert "PASS products: 10 created" in first.output

        second = runner.invoke(args=["ledger", "seed-demo", "--no-remote"])
        assert second.exit_code == 0
        assert "PASS products: 0 created" in second.output

        assert core.store.get(Customer, "101").name == "John Doe"
        assert core.store.get(Supplier, "SUP-001") is not None
        assert core.engine.get_stock("1", "branch-1") == 100.0
        assert core.remote.customer_balance("acme", "101") == 0

    def test_verify_passes_after_sales(self, runner, core):
        runner.invoke(args=["ledger", "seed-demo"])
        _sell(core, "1", 12, customer_id="101", payment_method="MIXED", paid_now_cents=240)

        result = runner.invoke(args=["ledger", "verify"])
        assert result.exit_code == 0, result.output
        assert "PASS All ledgers and stock levels reconcile" in result.output

    def test_verify_fails_on_broken_chain(self, runner, core):
        runner.invoke(args=["ledger", "seed-demo"])
        _sell(core, "1", 5, customer_id="101", payment_method="CREDIT")
        _sell(core, "1", 5, customer_id="101", payment_method="CREDIT")

        entry = db.session.query(CustomerLedgerEntry).order_by(CustomerLedgerEntry.created_at).first()
        entry.balance_after_cents += 1
        db.session.commit()

        result = runner.invoke(args=["ledger", "verify"])
        assert result.exit_code == 1
        assert "FAIL customer 101" in result.output


class TestSyncCommands:
    def test_status_run_and_clear(self, runner, core):
        runner.invoke(args=["ledger", "seed-demo"])
        _sell(core, "1", 3)
        _sell(core, "2", 2)

        status = runner.invoke(args=["sync", "status"])
        assert "Company: acme  Branch: branch-1  Enabled: False" in status.output
        assert "PENDING 2  SYNCED 0  FAILED 0  total 2" in status.output

        run = runner.invoke(args=["sync", "run-once"])
        assert run.exit_code == 0
        assert "synced=2" in run.output

        refused = runner.invoke(args=["sync", "clear-synced"])
        assert "Refusing" in refused.output
        assert core.outbox.counts()["SYNCED"] == 2

        cleared = runner.invoke(args=["sync", "clear-synced", "--yes"])
        assert "Deleted 2 synced row(s)" in cleared.output
        assert core.outbox.counts()["total"] == 0

    def test_failed_rows_are_listed_and_retried(self, runner, core):
        core.outbox.enqueue("bad-1", "SALE", {"id": "SALE-BAD"})

        run = runner.invoke(args=["sync", "run-once"])
        assert "failed=1" in run.output
        assert "FAIL bad-1" in run.output

        status = runner.invoke(args=["sync", "status"])
        assert "FAILED #" in status.output
        assert "bad-1 attempts=1" in status.output

        retried = runner.invoke(args=["sync", "retry-failed"])
        assert "PASS 1 failed row(s) returned to PENDING" in retried.output
        assert core.outbox.counts()["PENDING"] == 1

    def test_run_once_offline(self, runner, core, online):
        online.online = False
        result = runner.invoke(args=["sync", "run-once"])
        assert result.exit_code == 0
        assert "SKIP" in result.output
