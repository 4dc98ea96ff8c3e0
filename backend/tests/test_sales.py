# Overview: Pytest coverage for the cart, payment split and atomic sale completion.

"""
Sale Completion Tests

SCENARIOS:
- Cash, credit and mixed sales with and without a customer
- Cart unit conversion and line merging
- Totals invariant (paid + credit == total == sum of lines)
- Rejections write nothing (credit limit, unknown customer, duplicate txn id)
"""

import pytest

from ledgerpos.errors import ConflictOrValidation, CreditLimitExceeded, NotFound
from ledgerpos.models import CustomerLedgerEntry, OutboxEntry, Sale, StockMovement
from ledgerpos.services.sales_service import (
    WALK_IN_NAME,
    Cart,
    complete_sale,
    resolve_payment_split,
    validate_sale_payload,
)

from conftest import make_product


def _cart(core, product, quantity, unit="KG"):
    cart = core.new_cart()
    cart.add(product, quantity, unit)
    return cart


class TestCart:
    def test_bag_line_uses_bag_size(self, core, rice):
        cart = _cart(core, rice, 2, "BAG")
        line = cart.lines[0]
        assert line.kg_calculated == pytest.approx(100.0)
        assert line.line_total_cents == 12000

    def test_lines_merge_by_product_and_unit(self, core, rice):
        cart = core.new_cart()
        cart.add(rice, 1.5, "KG")
        cart.add(rice, 2, "kg")
        cart.add(rice, 1, "BAG")

        assert len(cart.lines) == 2
        assert cart.lines[0].quantity == pytest.approx(3.5)
        assert cart.total_cents == 420 + 6000

    def test_default_bag_size_when_product_has_none(self, core):
        product = make_product(core, "sugar", bag_size_kg=None)
        cart = Cart(default_bag_size_kg=25.0)
        assert cart.add(product, 1, "BAG").kg_calculated == pytest.approx(25.0)

    def test_unit_not_sold(self, core, rice):
        with pytest.raises(ConflictOrValidation):
            _cart(core, rice, 1, "PCS")

    def test_update_and_remove(self, core, rice):
        cart = _cart(core, rice, 1, "KG")
        cart.update_quantity(rice.id, "KG", 4)
        assert cart.total_cents == 480
        assert cart.update_quantity(rice.id, "KG", 0) is None
        assert cart.is_empty
        with pytest.raises(NotFound):
            cart.update_quantity(rice.id, "KG", 1)

    def test_line_total_rounds_half_up(self, core):
        product = make_product(core, "oil", price=125, units=("KG",))
        cart = _cart(core, product, 0.5)
        assert cart.lines[0].line_total_cents == 63

    @pytest.mark.parametrize("quantity", [float("inf"), float("nan"), "inf", "NaN", "two"])
    def test_non_numeric_quantity_is_rejected(self, core, rice, quantity):
        cart = core.new_cart()
        with pytest.raises(ConflictOrValidation):
            cart.add(rice, quantity, "KG")
        assert cart.is_empty

    def test_oversized_line_total_is_rejected(self, core, rice):
        cart = _cart(core, rice, 2, "KG")
        with pytest.raises(ConflictOrValidation):
            cart.add(rice, 1e12, "KG")
        with pytest.raises(ConflictOrValidation):
            cart.update_quantity(rice.id, "KG", float("inf"))
        assert cart.lines[0].quantity == pytest.approx(2.0)
        assert cart.total_cents == 240


class TestPaymentSplit:
    @pytest.mark.parametrize("method,has_customer,paid_now,expected", [
        ("CASH", True, 0, ("CASH", 1000, 0)),
        ("CREDIT", True, 0, ("CREDIT", 0, 1000)),
        ("MIXED", True, 400, ("MIXED", 400, 600)),
        ("MIXED", True, 5000, ("MIXED", 1000, 0)),
        ("MIXED", True, -10, ("MIXED", 0, 1000)),
        ("MOBILE", True, 0, ("MOBILE", 1000, 0)),
        ("CREDIT", False, 0, ("CASH", 1000, 0)),
    ])
    def test_split(self, method, has_customer, paid_now, expected):
        split = resolve_payment_split(1000, method, has_customer, paid_now)
        assert (split.method, split.paid_cents, split.credit_cents) == expected
        assert split.paid_cents + split.credit_cents == 1000

    def test_unknown_method(self):
        with pytest.raises(ConflictOrValidation):
            resolve_payment_split(1000, "BARTER", True)


class TestCompleteSale:
    def test_walk_in_cash_sale(self, core, rice):
        result = complete_sale(core, _cart(core, rice, 10))
        sale = result.sale

        assert result.committed_to_disk is True
        assert sale.customer_id is None
        assert sale.customer_name == WALK_IN_NAME
        assert (sale.total_amount_cents, sale.paid_amount_cents, sale.credit_amount_cents) == (1200, 1200, 0)
        assert result.ledger_entries == []
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(90.0)

        outbox = core.store.session.query(OutboxEntry).one()
        assert outbox.client_txn_id == result.client_txn_id
        assert outbox.client_txn_id.startswith("test-")
        assert outbox.status == "PENDING"
        assert outbox.payload["id"] == sale.id
        assert outbox.payload["items"][0]["kg_calculated"] == pytest.approx(10.0)

    def test_credit_sale_posts_to_customer_ledger(self, core, rice, customer):
        result = complete_sale(core, _cart(core, rice, 2, "BAG"), customer_id=customer.id, payment_method="CREDIT")

        assert [e.type for e in result.ledger_entries] == ["SALE"]
        assert core.engine.get_balance(customer.id) == 12000
        assert result.sale.credit_amount_cents == 12000

        movement = core.store.session.query(StockMovement).filter_by(reference_id=result.sale.id).one()
        assert movement.type == "SALE"
        assert movement.kg_change == pytest.approx(-100.0)

    def test_mixed_sale_writes_sale_and_payment(self, core, rice, customer):
        result = complete_sale(
            core,
            _cart(core, rice, 10),
            customer_id=customer.id,
            payment_method="MIXED",
            paid_now_cents=500,
        )

        entries = core.store.customer_ledger(customer.id, oldest_first=True)
        assert [(e.type, e.amount_cents, e.balance_after_cents) for e in entries] == [
            ("SALE", 1200, 1200),
            ("PAYMENT", -500, 700),
        ]
        assert entries[1].payment_channel == "CASH"
        assert result.sale.paid_amount_cents + result.sale.credit_amount_cents == result.sale.total_amount_cents

    def test_totals_invariant_holds_for_every_sale(self, core, rice, customer):
        oil = make_product(core, "oil", price=333, units=("KG",))
        core.engine.adjust_stock(oil.id, "branch-1", "PURCHASE", 50.0)
        for method, paid_now in (("CASH", 0), ("CREDIT", 0), ("MIXED", 77), ("CARD", 0)):
            cart = core.new_cart()
            cart.add(rice, 1.25, "KG")
            cart.add(oil, 0.333, "KG")
            complete_sale(core, cart, customer_id=customer.id, payment_method=method, paid_now_cents=paid_now)

        for sale in core.store.session.query(Sale).all():
            assert sale.paid_amount_cents + sale.credit_amount_cents == sale.total_amount_cents
            assert sum(i.line_total_cents for i in sale.items) == sale.total_amount_cents

    def test_credit_limit_rejection_writes_nothing(self, core, rice, customer):
        cart = _cart(core, rice, 5, "BAG")  # 250 kg -> 30000c
        cart.add(rice, 200, "KG")           # + 24000c = 54000c > 50000c limit

        with pytest.raises(CreditLimitExceeded):
            complete_sale(core, cart, customer_id=customer.id, payment_method="CREDIT")

        session = core.store.session
        assert session.query(Sale).count() == 0
        assert session.query(OutboxEntry).count() == 0
        assert session.query(CustomerLedgerEntry).count() == 0
        assert core.engine.get_balance(customer.id) == 0
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(100.0)

    def test_paid_sale_above_limit_is_accepted(self, core, rice, customer):
        cart = _cart(core, rice, 10, "BAG")  # 60000c, over the 50000c limit
        result = complete_sale(core, cart, customer_id=customer.id, payment_method="CASH")
        assert result.sale.paid_amount_cents == 60000
        assert core.engine.get_balance(customer.id) == 0

    def test_unknown_customer(self, core, rice):
        with pytest.raises(NotFound):
            complete_sale(core, _cart(core, rice, 1), customer_id="ghost", payment_method="CREDIT")

    def test_empty_cart(self, core):
        with pytest.raises(ConflictOrValidation):
            complete_sale(core, core.new_cart())

    def test_duplicate_client_txn_id_leaves_state_untouched(self, core, rice, customer):
        complete_sale(core, _cart(core, rice, 1), customer_id=customer.id, payment_method="CREDIT",
                      client_txn_id="web-1700000000-abc")

        with pytest.raises(ConflictOrValidation):
            complete_sale(core, _cart(core, rice, 1), customer_id=customer.id, payment_method="CREDIT",
                          client_txn_id="web-1700000000-abc")

        assert core.engine.get_balance(customer.id) == 120
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(99.0)
        assert core.store.session.query(Sale).count() == 1

    def test_failure_before_commit_reverts_cache(self, core, rice, customer, monkeypatch):
        def _missing(*args, **kwargs):
            raise NotFound("Product rice not found")

        monkeypatch.setattr(core.engine, "adjust_stock", _missing)

        with pytest.raises(NotFound):
            complete_sale(core, _cart(core, rice, 5), customer_id=customer.id, payment_method="CREDIT")

        assert core.engine.get_balance(customer.id) == 0
        assert core.engine.verify_ledger("customer", customer.id).ok
        assert core.store.backlog_size == 0
        assert core.store.session.query(Sale).count() == 0
        assert core.store.session.query(CustomerLedgerEntry).count() == 0

    def test_oversell_is_allowed(self, core, rice):
        complete_sale(core, _cart(core, rice, 3, "BAG"))
        assert core.engine.get_stock(rice.id, "branch-1") == pytest.approx(-50.0)


class TestPayloadValidation:
    def _payload(self, **overrides):
        payload = {
            "id": "SALE-1",
            "customer_id": "101",
            "total_amount_cents": 1000,
            "paid_amount_cents": 400,
            "credit_amount_cents": 600,
            "items": [{"product_id": "rice", "kg_calculated": 5.0, "line_total_cents": 1000}],
        }
        payload.update(overrides)
        return payload

    def test_valid(self):
        validate_sale_payload(self._payload())

    @pytest.mark.parametrize("overrides", [
        {"items": []},
        {"paid_amount_cents": 500},
        {"total_amount_cents": None},
        {"customer_id": None},
        {"items": [{"product_id": "rice", "kg_calculated": "lots", "line_total_cents": 1000}]},
        {"items": [{"product_id": "rice", "kg_calculated": 5.0, "line_total_cents": 900}],
         "total_amount_cents": 1000},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ConflictOrValidation):
            validate_sale_payload(self._payload(**overrides))
