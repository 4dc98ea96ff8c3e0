# Overview: Pytest coverage for balance engine ledger appends, credit limits, stock and lifecycle.

"""
Balance Engine Tests

Covers:
- Running-sum ledger (balance_after chain) for customers and suppliers
- Credit limit enforcement (rejected, never clamped)
- Stock movements and unit canonicalization
- Load / verify lifecycle and drift repair
"""

import random

import pytest

from ledgerpos.errors import ConflictOrValidation, CreditLimitExceeded, EngineNotReady, NotFound
from ledgerpos.extensions import db
from ledgerpos.models import Customer, CustomerLedgerEntry, Inventory, StockMovement, Supplier
from ledgerpos.services.balance_engine import BalanceEngine, EngineState
from ledgerpos.units import to_canonical_kg

from conftest import make_product


class TestCustomerLedger:
    """Customer receivables ledger."""

    def test_credit_limit_scenario(self, core):
        """Limit 500: +300 succeeds, +250 is rejected and the balance stays at 300."""
        core.engine.register_customer("Amina", credit_limit_cents=500, customer_id="c-500")

        write = core.engine.append_customer_ledger_entry("c-500", "SALE", 300, "SALE-1")
        assert write.entry.balance_after_cents == 300
        assert write.committed_to_disk is True
        assert core.engine.get_balance("c-500") == 300

        with pytest.raises(CreditLimitExceeded) as exc_info:
            core.engine.append_customer_ledger_entry("c-500", "SALE", 250, "SALE-2")

        assert exc_info.value.attempted_balance_cents == 550
        assert exc_info.value.limit_cents == 500
        assert core.engine.get_balance("c-500") == 300
        assert core.store.session.query(CustomerLedgerEntry).filter_by(customer_id="c-500").count() == 1

    def test_entry_exactly_at_limit_is_allowed(self, core, customer):
        write = core.engine.append_customer_ledger_entry(customer.id, "SALE", 50000, "SALE-1")
        assert write.entry.balance_after_cents == 50000

    def test_payment_over_limit_balance_is_never_limited(self, core, customer):
        """Entries that reduce debt pass even when the customer is already over the limit."""
        core.engine.set_credit_limit(customer.id, 0)
        core.engine.append_customer_ledger_entry(customer.id, "ADJUSTMENT", -100, "ADJ-1")
        write = core.engine.append_customer_ledger_entry(customer.id, "PAYMENT", -5000, "PAY-1", payment_channel="evc")

        assert write.entry.balance_after_cents == -5100
        assert write.entry.payment_channel == "EVC"

    def test_running_sum_replays_to_last_balance(self, core, customer):
        """Random appends; replay from 0 reproduces the final balance_after."""
        rng = random.Random(7)
        for i in range(40):
            amount = rng.randint(-3000, 3000)
            try:
                core.engine.append_customer_ledger_entry(customer.id, "ADJUSTMENT", amount, f"ADJ-{i}")
            except CreditLimitExceeded:
                continue

        entries = core.store.customer_ledger(customer.id, oldest_first=True)
        running = 0
        for entry in entries:
            running += entry.amount_cents
            assert entry.balance_after_cents == running
        assert [e.sequence for e in entries] == list(range(1, len(entries) + 1))

        check = core.engine.verify_ledger("customer", customer.id)
        assert check.ok
        assert check.replayed_cents == running == core.engine.get_balance(customer.id)
        assert db.session.get(Customer, customer.id).current_balance_cents == running

    def test_rejected_entries_leave_balance_unchanged(self, core):
        core.engine.register_customer("Hodan", credit_limit_cents=1000, customer_id="c-1000")
        rng = random.Random(11)
        for i in range(30):
            before = core.engine.get_balance("c-1000")
            amount = rng.randint(1, 600)
            if before + amount > 1000:
                with pytest.raises(CreditLimitExceeded):
                    core.engine.append_customer_ledger_entry("c-1000", "SALE", amount, f"S-{i}")
                assert core.engine.get_balance("c-1000") == before
            else:
                core.engine.append_customer_ledger_entry("c-1000", "SALE", amount, f"S-{i}")
                assert core.engine.get_balance("c-1000") == before + amount

    def test_sale_and_payment_stamp_activity_dates(self, core, customer):
        core.engine.append_customer_ledger_entry(customer.id, "SALE", 1000, "SALE-1")
        account = core.engine.customer_account(customer.id)
        assert account.last_purchase_at is not None
        assert account.last_payment_at is None

        core.engine.append_customer_ledger_entry(customer.id, "PAYMENT", -500, "PAY-1", payment_channel="CASH")
        row = db.session.get(Customer, customer.id)
        assert row.last_payment_at is not None
        assert row.current_balance_cents == 500

    def test_unknown_customer(self, core):
        with pytest.raises(NotFound):
            core.engine.append_customer_ledger_entry("nobody", "SALE", 10, "SALE-1")

    @pytest.mark.parametrize("kwargs", [
        {"entry_type": "REFUND"},
        {"amount_cents": 10.5},
        {"amount_cents": True},
        {"payment_channel": "BITCOIN"},
    ])
    def test_invalid_entries_are_rejected(self, core, customer, kwargs):
        args = {"entry_type": "SALE", "amount_cents": 10, "payment_channel": None}
        args.update(kwargs)
        with pytest.raises(ConflictOrValidation):
            core.engine.append_customer_ledger_entry(
                customer.id,
                args["entry_type"],
                args["amount_cents"],
                "REF-1",
                payment_channel=args["payment_channel"],
            )
        assert core.engine.get_balance(customer.id) == 0

    def test_duplicate_customer_id(self, core, customer):
        with pytest.raises(ConflictOrValidation):
            core.engine.register_customer("Someone", customer_id=customer.id)


class TestSaleCharges:
    """post_sale_charges: only the credit portion counts against the limit."""

    def test_fully_paid_sale_over_limit_is_accepted(self, core, customer):
        batch = core.store.new_batch()
        entries = core.engine.post_sale_charges(customer.id, 80000, 80000, "SALE-1", batch=batch)
        assert core.store.commit(batch) is True

        assert [e.type for e in entries] == ["SALE", "PAYMENT"]
        assert [e.balance_after_cents for e in entries] == [80000, 0]
        assert core.engine.get_balance(customer.id) == 0

    def test_credit_portion_over_limit_is_rejected(self, core, customer):
        core.engine.append_customer_ledger_entry(customer.id, "SALE", 45000, "SALE-0")
        batch = core.store.new_batch()
        with pytest.raises(CreditLimitExceeded):
            core.engine.post_sale_charges(customer.id, 10000, 2000, "SALE-1", batch=batch)
        assert len(batch) == 0
        assert core.engine.get_balance(customer.id) == 45000


class TestSupplierLedger:
    def test_purchase_and_payment(self, core, supplier):
        core.engine.append_supplier_ledger_entry(supplier.id, "PURCHASE", 2_000_000, "PO-1")
        write = core.engine.append_supplier_ledger_entry(
            supplier.id, "PAYMENT", -500_000, "PAY-1", payment_channel="check"
        )

        assert write.entry.balance_after_cents == 1_500_000
        assert write.entry.payment_channel == "CHECK"
        assert core.engine.get_supplier_balance(supplier.id) == 1_500_000
        assert core.engine.total_payables() == 1_500_000
        assert db.session.get(Supplier, supplier.id).current_balance_cents == 1_500_000
        assert core.engine.verify_ledger("supplier", supplier.id).ok

    def test_suppliers_have_no_limit(self, core, supplier):
        write = core.engine.append_supplier_ledger_entry(supplier.id, "PURCHASE", 900_000_000, "PO-1")
        assert write.entry.balance_after_cents == 900_000_000

    def test_sale_is_not_a_supplier_entry_type(self, core, supplier):
        with pytest.raises(ConflictOrValidation):
            core.engine.append_supplier_ledger_entry(supplier.id, "SALE", 100, "X-1")


class TestStock:
    def test_bag_purchase_then_kg_sale(self, core):
        """+2 bags of 50 kg, then -30 kg, leaves 70 kg."""
        product = make_product(core, "flour", bag_size_kg=50.0)
        kg = to_canonical_kg("BAG", 2, product.bag_size_kg)
        assert kg == 100.0

        core.engine.adjust_stock("flour", "branch-1", "PURCHASE", kg)
        write = core.engine.adjust_stock("flour", "branch-1", "SALE", -30.0)

        assert write.stock_kg == pytest.approx(70.0)
        assert core.engine.get_stock("flour", "branch-1") == pytest.approx(70.0)
        assert db.session.get(Inventory, ("flour", "branch-1")).stock_kg == pytest.approx(70.0)

    def test_negative_stock_is_allowed(self, core, rice):
        write = core.engine.adjust_stock(rice.id, "branch-1", "SALE", -130.0)
        assert write.stock_kg == pytest.approx(-30.0)

    def test_movements_sum_to_inventory(self, core, rice):
        rng = random.Random(3)
        for _ in range(25):
            core.engine.adjust_stock(rice.id, "branch-1", rng.choice(["SALE", "WASTAGE", "PURCHASE"]),
                                     round(rng.uniform(-20, 20), 3))

        movements = core.store.stock_movements(rice.id, "branch-1", oldest_first=True)
        total = sum(m.kg_change for m in movements)
        assert db.session.get(Inventory, (rice.id, "branch-1")).stock_kg == pytest.approx(total)
        assert core.engine.recompute_stock(rice.id, "branch-1") == pytest.approx(total)

    def test_inventory_row_created_lazily_per_branch(self, core, rice):
        assert db.session.get(Inventory, (rice.id, "branch-2")) is None
        core.engine.adjust_stock(rice.id, "branch-2", "TRANSFER_IN", 5.0)
        assert db.session.get(Inventory, (rice.id, "branch-2")).stock_kg == pytest.approx(5.0)
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(100.0)

    def test_unknown_product(self, core):
        with pytest.raises(NotFound):
            core.engine.adjust_stock("ghost", "branch-1", "PURCHASE", 1.0)
        assert db.session.query(StockMovement).count() == 0

    def test_invalid_movement_type(self, core, rice):
        with pytest.raises(ConflictOrValidation):
            core.engine.adjust_stock(rice.id, "branch-1", "THEFT", -1.0)

    @pytest.mark.parametrize("kg_change", [float("nan"), float("inf"), "-inf", "abc", True])
    def test_non_numeric_kg_change_is_rejected(self, core, rice, kg_change):
        with pytest.raises(ConflictOrValidation):
            core.engine.adjust_stock(rice.id, "branch-1", "ADJUSTMENT", kg_change)
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(100.0)
        assert db.session.query(StockMovement).count() == 1
        assert db.session.get(Inventory, (rice.id, "branch-1")).stock_kg == pytest.approx(100.0)


class TestLifecycle:
    def test_lazy_load_on_first_use(self, core):
        assert core.engine.state is EngineState.UNINITIALIZED
        core.engine.register_customer("Lazy", customer_id="lazy")
        assert core.engine.state is EngineState.READY

    def test_strict_engine_requires_load(self, core, customer):
        engine = BalanceEngine(core.store, lazy_load=False)
        with pytest.raises(EngineNotReady):
            engine.get_balance(customer.id)

        engine.load()
        assert engine.is_ready
        assert engine.get_balance(customer.id) == 0

    def test_reload_restores_projections(self, core, customer, rice):
        core.engine.append_customer_ledger_entry(customer.id, "SALE", 1234, "SALE-1")
        core.engine.adjust_stock(rice.id, "branch-1", "SALE", -12.5)

        fresh = BalanceEngine(core.store, lazy_load=False)
        assert fresh.load() == []
        assert fresh.get_balance(customer.id) == 1234
        assert fresh.get_stock(rice.id, "branch-1") == pytest.approx(87.5)
        assert fresh.customer_account(customer.id).last_sequence == 1

        # appends continue the sequence after a reload
        write = fresh.append_customer_ledger_entry(customer.id, "PAYMENT", -234, "PAY-1")
        assert write.entry.sequence == 2
        assert write.entry.balance_after_cents == 1000

    def test_drifted_cache_is_repaired_from_ledger(self, core, customer, rice):
        core.engine.append_customer_ledger_entry(customer.id, "SALE", 700, "SALE-1")

        # corrupt both cached aggregates behind the engine's back
        db.session.get(Customer, customer.id).current_balance_cents = 99
        db.session.get(Inventory, (rice.id, "branch-1")).stock_kg = 1.0
        db.session.commit()

        assert core.engine.recompute_balance("customer", customer.id) == 700

        core.engine.reset()
        repairs = core.engine.load()

        scopes = sorted(r.scope for r in repairs)
        assert scopes == ["customer", "stock"]
        assert core.engine.get_balance(customer.id) == 700
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(100.0)
        assert db.session.get(Customer, customer.id).current_balance_cents == 700
        assert db.session.get(Inventory, (rice.id, "branch-1")).stock_kg == pytest.approx(100.0)
