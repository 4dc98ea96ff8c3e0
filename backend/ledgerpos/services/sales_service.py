# Overview: Sale completion; cart, payment split and the single-batch write that feeds the outbox.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from ..errors import ConflictOrValidation, NotFound
from ..ids import make_client_txn_id, make_receipt_no, make_reference_id
from ..models import Customer, Product, Sale, SaleItem
from ..time_utils import to_utc_z, utcnow
from ..units import Unit, line_total_cents, norm_unit, to_canonical_kg
from ..validation import MAX_AMOUNT_CENTS
"""
Sale Completion Invariants (authoritative)

- total_amount_cents == paid_amount_cents + credit_amount_cents.
- total_amount_cents == SUM(line_total_cents) over the items.
- A completed sale writes, in ONE local batch: the sale and its items, the
  customer's SALE/PAYMENT ledger entries (when a customer is attached), one
  SALE stock movement per line, and one PENDING outbox entry.
- The outbox client_txn_id is generated here, once, and never regenerated.
- Validation (empty cart, unknown customer/product, credit limit, duplicate
  client_txn_id) happens before anything is written.
"""

log = logging.getLogger(__name__)

SALE_EVENT_TYPE = "SALE"
PAYMENT_METHODS = ("CASH", "CREDIT", "MIXED", "MOBILE", "CARD")
WALK_IN_NAME = "Walk-in Customer"


def _check_quantity(quantity) -> float:
    if isinstance(quantity, bool):
        raise ConflictOrValidation("quantity must be a number")
    try:
        qty = float(quantity)
    except (TypeError, ValueError):
        raise ConflictOrValidation("quantity must be a number") from None
    if not math.isfinite(qty):
        raise ConflictOrValidation("quantity must be a finite number")
    return qty


@dataclass
class CartLine:
    product_id: str
    name: str
    unit: Unit
    quantity: float
    kg_calculated: float
    price_per_kg_cents: int
    line_total_cents: int


class Cart:
    """Point-of-sale cart; lines merge by (product, unit)."""

    def __init__(self, default_bag_size_kg: float = 50.0):
        self.default_bag_size_kg = default_bag_size_kg
        self.lines: list[CartLine] = []
        self._products: dict[str, Product] = {}

    def _find(self, product_id: str, unit: Unit) -> CartLine | None:
        for line in self.lines:
            if line.product_id == product_id and line.unit is unit:
                return line
        return None

    def _price(self, line: CartLine, quantity: float) -> None:
        product = self._products[line.product_id]
        kg = to_canonical_kg(line.unit, quantity, product.bag_size_kg, self.default_bag_size_kg)
        total = line_total_cents(kg, line.price_per_kg_cents)
        if total > MAX_AMOUNT_CENTS:
            raise ConflictOrValidation(
                f"line total exceeds maximum of {MAX_AMOUNT_CENTS}",
                details={"product_id": line.product_id},
            )
        line.quantity = quantity
        line.kg_calculated = kg
        line.line_total_cents = total

    def add(self, product: Product, quantity: float, unit=None) -> CartLine:
        try:
            u = norm_unit(unit or product.base_unit or Unit.KG)
        except ValueError as e:
            raise ConflictOrValidation(str(e)) from None
        if product.selling_units and u.value not in {str(s).upper() for s in product.selling_units}:
            raise ConflictOrValidation(
                f"{product.name} is not sold by {u.value}",
                details={"product_id": product.id, "selling_units": list(product.selling_units)},
            )
        qty = _check_quantity(quantity)
        if qty <= 0:
            raise ConflictOrValidation("quantity must be positive")

        self._products[product.id] = product
        line = self._find(product.id, u)
        if line is None:
            line = CartLine(
                product_id=product.id,
                name=product.name,
                unit=u,
                quantity=0.0,
                kg_calculated=0.0,
                price_per_kg_cents=int(product.price_per_kg_cents or 0),
                line_total_cents=0,
            )
            self._price(line, qty)
            self.lines.append(line)
        else:
            self._price(line, line.quantity + qty)
        return line

    def update_quantity(self, product_id: str, unit, quantity: float) -> CartLine | None:
        """Set a line's quantity; zero or less removes the line."""
        line = self._find(product_id, norm_unit(unit))
        if line is None:
            raise NotFound(f"Product {product_id} is not in the cart")
        qty = _check_quantity(quantity)
        if qty <= 0:
            self.lines.remove(line)
            return None
        self._price(line, qty)
        return line

    def remove(self, product_id: str, unit) -> None:
        line = self._find(product_id, norm_unit(unit))
        if line is not None:
            self.lines.remove(line)

    def clear(self) -> None:
        self.lines = []

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.lines)


@dataclass(frozen=True)
class PaymentSplit:
    method: str
    paid_cents: int
    credit_cents: int


def resolve_payment_split(
    total_cents: int,
    method: str,
    has_customer: bool,
    paid_now_cents: int = 0,
) -> PaymentSplit:
    """
    Decide how much of ``total_cents`` is paid now and how much goes on account.

    Walk-in sales are always CASH. CREDIT pays nothing now; MIXED clamps the
    amount paid into [0, total]; the other methods pay in full.
    """
    code = (method or "CASH").strip().upper()
    if code not in PAYMENT_METHODS:
        raise ConflictOrValidation(f"invalid payment method {method!r}", details={"allowed": list(PAYMENT_METHODS)})
    if not has_customer:
        code = "CASH"

    if code == "CREDIT":
        paid = 0
    elif code == "MIXED":
        paid = min(max(int(paid_now_cents or 0), 0), total_cents)
    else:
        paid = total_cents
    return PaymentSplit(method=code, paid_cents=paid, credit_cents=total_cents - paid)


@dataclass(frozen=True)
class SaleCompletion:
    sale: Sale
    client_txn_id: str
    outbox_entry: object
    ledger_entries: list = field(default_factory=list)
    stock_writes: list = field(default_factory=list)
    committed_to_disk: bool = False


def build_sale_payload(sale: Sale) -> dict:
    """The sale document carried by the outbox entry."""
    return {
        "id": sale.id,
        "branch_id": sale.branch_id,
        "customer_id": sale.customer_id,
        "customer_name": sale.customer_name,
        "total_amount_cents": sale.total_amount_cents,
        "paid_amount_cents": sale.paid_amount_cents,
        "credit_amount_cents": sale.credit_amount_cents,
        "payment_method": sale.payment_method,
        "status": sale.status,
        "receipt_no": sale.receipt_no,
        "created_at": to_utc_z(sale.created_at),
        "items": [item.to_dict() for item in sale.items],
    }


def validate_sale_payload(payload: dict) -> None:
    """Raise ConflictOrValidation unless ``payload`` is a well-formed sale document."""
    if not isinstance(payload, dict):
        raise ConflictOrValidation("sale payload must be an object")

    missing = [k for k in ("id", "total_amount_cents", "paid_amount_cents", "credit_amount_cents") if payload.get(k) is None]
    if missing:
        raise ConflictOrValidation("sale payload is missing required fields", details={"missing": missing})

    items = payload.get("items") or []
    if not items:
        raise ConflictOrValidation("sale has no items", details={"sale_id": payload["id"]})

    try:
        total = int(payload["total_amount_cents"])
        paid = int(payload["paid_amount_cents"])
        credit = int(payload["credit_amount_cents"])
        line_sum = sum(int(item["line_total_cents"]) for item in items)
        for item in items:
            if not item.get("product_id"):
                raise ConflictOrValidation("sale item has no product_id", details={"sale_id": payload["id"]})
            float(item["kg_calculated"])
    except (KeyError, TypeError, ValueError) as e:
        raise ConflictOrValidation(f"malformed sale payload: {e}", details={"sale_id": payload["id"]}) from None

    if paid + credit != total:
        raise ConflictOrValidation(
            "paid + credit does not equal total",
            details={"sale_id": payload["id"], "total": total, "paid": paid, "credit": credit},
        )
    if line_sum != total:
        raise ConflictOrValidation(
            "total does not equal the sum of line totals",
            details={"sale_id": payload["id"], "total": total, "line_sum": line_sum},
        )
    if credit > 0 and not payload.get("customer_id"):
        raise ConflictOrValidation("credit sale without a customer", details={"sale_id": payload["id"]})


def complete_sale(
    core,
    cart: Cart,
    *,
    customer_id: str | None = None,
    payment_method: str = "CASH",
    paid_now_cents: int = 0,
    client_txn_id: str | None = None,
    branch_id: str | None = None,
) -> SaleCompletion:
    """
    Complete a sale from ``cart`` and queue it for sync.

    Raises ConflictOrValidation for an empty cart, NotFound for an unknown
    customer or product, CreditLimitExceeded when the amount left on credit
    would cross the customer's limit.
    """
    if cart.is_empty:
        raise ConflictOrValidation("Cart is empty")

    engine = core.engine
    store = core.store
    branch = branch_id or core.branch_id

    customer = None
    if customer_id:
        customer = store.get(Customer, customer_id)
        if customer is None:
            raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    for line in cart.lines:
        if not engine.has_product(line.product_id):
            raise NotFound(f"Product {line.product_id} not found", details={"product_id": line.product_id})

    total = cart.total_cents
    split = resolve_payment_split(total, payment_method, customer is not None, paid_now_cents)
    txn_id = client_txn_id or make_client_txn_id(core.device_id)

    sale = Sale(
        id=make_reference_id("SALE"),
        branch_id=branch,
        customer_id=customer.id if customer else None,
        customer_name=customer.name if customer else WALK_IN_NAME,
        total_amount_cents=total,
        paid_amount_cents=split.paid_cents,
        credit_amount_cents=split.credit_cents,
        payment_method=split.method,
        status="COMPLETED",
        receipt_no=make_receipt_no(),
        client_txn_id=txn_id,
        created_at=utcnow(),
    )
    sale.items = [
        SaleItem(
            line_no=i + 1,
            product_id=line.product_id,
            name_snapshot=line.name,
            unit_used=line.unit.value,
            quantity=line.quantity,
            kg_calculated=line.kg_calculated,
            price_per_kg_snapshot_cents=line.price_per_kg_cents,
            line_total_cents=line.line_total_cents,
        )
        for i, line in enumerate(cart.lines)
    ]
    payload = build_sale_payload(sale)
    validate_sale_payload(payload)

    batch = store.new_batch()
    stock_keys = {(line.product_id, branch) for line in cart.lines}
    with engine.hold(customer_id=sale.customer_id, stock_keys=stock_keys):
        outbox_entry = core.outbox.enqueue(txn_id, SALE_EVENT_TYPE, payload, batch=batch)

        try:
            ledger_entries = []
            if customer is not None:
                ledger_entries = engine.post_sale_charges(
                    customer.id,
                    split.paid_cents + split.credit_cents,
                    split.paid_cents,
                    sale.id,
                    batch=batch,
                    branch_id=branch,
                )

            stock_writes = [
                engine.adjust_stock(
                    line.product_id,
                    branch,
                    "SALE",
                    -line.kg_calculated,
                    note=f"Sale #{sale.receipt_no}",
                    reference_id=sale.id,
                    batch=batch,
                )
                for line in cart.lines
            ]
            batch.add(sale)
            durable = store.commit(batch)
        except Exception:
            # Nothing reached disk; undo what the cache already applied.
            batch.revert()
            raise

    log.info(
        "Sale %s completed: total=%s paid=%s credit=%s customer=%s txn=%s durable=%s",
        sale.id,
        sale.total_amount_cents,
        sale.paid_amount_cents,
        sale.credit_amount_cents,
        sale.customer_id,
        txn_id,
        durable,
    )
    return SaleCompletion(
        sale=sale,
        client_txn_id=txn_id,
        outbox_entry=outbox_entry,
        ledger_entries=ledger_entries,
        stock_writes=stock_writes,
        committed_to_disk=durable,
    )


def recent_sales(core, limit: int = 50) -> list[Sale]:
    return core.store.recent_sales(limit)
