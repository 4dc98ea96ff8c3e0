# Overview: Balance engine; cached party balances and stock levels with write-time invariants.

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ..errors import ConflictOrValidation, CreditLimitExceeded, EngineNotReady, NotFound
from ..ids import make_reference_id, make_row_id
from ..models import (
    Customer,
    CustomerLedgerEntry,
    Inventory,
    Product,
    StockMovement,
    Supplier,
    SupplierLedgerEntry,
)
from ..time_utils import utcnow
from .concurrency import KeyedLocks
from .ledger_store import LocalLedgerStore, WriteBatch
"""
Balance Engine Invariants (authoritative)

Ownership:
- The engine is the only writer of the cached balances
  (Customer/Supplier.current_balance_cents) and of Inventory.stock_kg.

Running sums:
- Per party, ledger rows ordered by sequence satisfy
  balance_after[i] = balance_after[i-1] + amount[i], seeded at 0.
- Per (product, branch), stock_kg == SUM(kg_change) over its movements.

Credit limit:
- A customer entry with amount > 0 is rejected (CreditLimitExceeded) when
  balance + amount > credit_limit. Nothing is written and the cache is
  unchanged. Entries that reduce debt are never limited. Suppliers have no
  limit.

Atomicity:
- Read balance -> compute -> append row -> update cache happens under the
  party's lock with no other work in between. Readers take the same lock, so
  a ledger row and its cache update are observed together.

Stock:
- Negative stock is allowed (oversell), and is visible as stock_kg < 0.
- All kg_change values are canonical; unit conversion happens upstream.

Lifecycle:
- UNINITIALIZED -> LOADED (snapshot read) -> READY (projections verified).
  Verification replays the ledgers; when a cached value disagrees, the
  ledger wins and the corrected value is written back.
"""

log = logging.getLogger(__name__)

CUSTOMER_ENTRY_TYPES = ("SALE", "PAYMENT", "ADJUSTMENT", "RETURN", "VOID")
SUPPLIER_ENTRY_TYPES = ("PURCHASE", "PAYMENT", "ADJUSTMENT", "RETURN", "VOID")
STOCK_MOVEMENT_TYPES = (
    "PURCHASE",
    "SALE",
    "RETURN",
    "TRANSFER_OUT",
    "TRANSFER_IN",
    "ADJUSTMENT",
    "WASTAGE",
)
CUSTOMER_PAYMENT_CHANNELS = ("CASH", "EVC", "BANK_TRANSFER")
SUPPLIER_PAYMENT_CHANNELS = ("CASH", "EVC", "BANK_TRANSFER", "CHECK")

STOCK_TOLERANCE_KG = 1e-6


class EngineState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    LOADED = "LOADED"
    READY = "READY"


@dataclass
class PartyAccount:
    kind: str  # "customer" | "supplier"
    party_id: str
    balance_cents: int = 0
    credit_limit_cents: int | None = None
    status: str = "ACTIVE"
    last_sequence: int = 0
    last_purchase_at: datetime | None = None
    last_payment_at: datetime | None = None


@dataclass
class StockLevel:
    product_id: str
    branch_id: str
    stock_kg: float = 0.0
    last_sequence: int = 0
    last_updated: datetime | None = None


@dataclass(frozen=True)
class LedgerWrite:
    """
    Outcome of a ledger append.

    committed_to_disk is False when local storage held the write back, or
    when the append joined a caller's batch (the caller's commit decides).
    """
    entry: object
    committed_to_disk: bool
    committed_to_memory: bool = True


@dataclass(frozen=True)
class StockWrite:
    movement: StockMovement
    stock_kg: float
    committed_to_disk: bool
    committed_to_memory: bool = True


@dataclass
class DriftRepair:
    scope: str
    key: tuple
    cached: float
    authoritative: float


@dataclass(frozen=True)
class LedgerCheck:
    kind: str
    party_id: str
    entries: int
    replayed_cents: int
    last_balance_after_cents: int
    cached_cents: int | None
    chain_ok: bool

    @property
    def ok(self) -> bool:
        return self.chain_ok and self.cached_cents == self.replayed_cents


def _check_choice(value: str, allowed: tuple[str, ...], what: str) -> str:
    code = (value or "").strip().upper()
    if code not in allowed:
        raise ConflictOrValidation(f"invalid {what} {value!r}", details={"allowed": list(allowed)})
    return code


def _check_cents(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConflictOrValidation("amount_cents must be an integer number of cents")
    return value


def _check_kg(value) -> float:
    if isinstance(value, bool):
        raise ConflictOrValidation("kg_change must be a number")
    try:
        kg = float(value)
    except (TypeError, ValueError):
        raise ConflictOrValidation("kg_change must be a number") from None
    if not math.isfinite(kg):
        raise ConflictOrValidation("kg_change must be a finite number")
    return kg


class BalanceEngine:
    """
    In-memory projections over the local ledger store.

    Constructed once per process and handed to callers; there is no module
    level instance.
    """

    def __init__(self, store: LocalLedgerStore, *, default_branch_id: str = "branch-1", lazy_load: bool = True):
        self.store = store
        self.default_branch_id = default_branch_id
        self.lazy_load = lazy_load
        self.state = EngineState.UNINITIALIZED
        self._load_lock = threading.Lock()
        self._locks = KeyedLocks()
        self._customers: dict[str, PartyAccount] = {}
        self._suppliers: dict[str, PartyAccount] = {}
        self._stock: dict[tuple[str, str], StockLevel] = {}
        self._products: set[str] = set()
        self.last_repairs: list[DriftRepair] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        return self.state is EngineState.READY

    def load(self) -> list[DriftRepair]:
        """Load projections from the store, verify them and become READY."""
        with self._load_lock:
            if self.state is EngineState.READY:
                return self.last_repairs

            snapshot = self.store.load_snapshot()
            products = {p.id for p in self.store.session.query(Product.id).all()}

            customers = {
                c["id"]: PartyAccount(
                    kind="customer",
                    party_id=c["id"],
                    balance_cents=int(c["current_balance_cents"] or 0),
                    credit_limit_cents=int(c["credit_limit_cents"] or 0),
                    status=c["status"],
                    last_sequence=snapshot.customer_ledger.get(c["id"], {}).get("last_sequence", 0),
                    last_purchase_at=c["last_purchase_at"],
                    last_payment_at=c["last_payment_at"],
                )
                for c in snapshot.customers
            }
            suppliers = {
                s["id"]: PartyAccount(
                    kind="supplier",
                    party_id=s["id"],
                    balance_cents=int(s["current_balance_cents"] or 0),
                    status=s["status"],
                    last_sequence=snapshot.supplier_ledger.get(s["id"], {}).get("last_sequence", 0),
                )
                for s in snapshot.suppliers
            }
            stock = {
                (i["product_id"], i["branch_id"]): StockLevel(
                    product_id=i["product_id"],
                    branch_id=i["branch_id"],
                    stock_kg=i["stock_kg"],
                    last_updated=i["last_updated"],
                )
                for i in snapshot.inventory
            }

            self._customers, self._suppliers, self._stock, self._products = customers, suppliers, stock, products
            self.state = EngineState.LOADED

            repairs = self._verify(snapshot)
            self.last_repairs = repairs
            self.state = EngineState.READY
            log.info(
                "Balance engine ready: %d customers, %d suppliers, %d stock rows (%d repaired)",
                len(customers),
                len(suppliers),
                len(stock),
                len(repairs),
            )
            return repairs

    def reset(self) -> None:
        """Drop all projections; the next use reloads them."""
        with self._load_lock:
            self._customers, self._suppliers, self._stock = {}, {}, {}
            self._products = set()
            self.state = EngineState.UNINITIALIZED

    def _require_ready(self) -> None:
        if self.state is EngineState.READY:
            return
        if not self.lazy_load:
            raise EngineNotReady(f"Balance engine is {self.state.value}; call load() first")
        self.load()

    def _verify(self, snapshot) -> list[DriftRepair]:
        repairs: list[DriftRepair] = []
        batch = self.store.new_batch()

        for kind, accounts, tails, model in (
            ("customer", self._customers, snapshot.customer_ledger, Customer),
            ("supplier", self._suppliers, snapshot.supplier_ledger, Supplier),
        ):
            for party_id, account in accounts.items():
                tail = tails.get(party_id)
                replayed = tail["replayed_cents"] if tail else 0
                if tail and tail["last_balance_after_cents"] != replayed:
                    log.error(
                        "%s %s ledger chain broken: last balance_after %s, replay %s",
                        kind,
                        party_id,
                        tail["last_balance_after_cents"],
                        replayed,
                    )
                if account.balance_cents != replayed:
                    log.warning(
                        "%s %s cached balance %s drifted from ledger %s; using ledger",
                        kind,
                        party_id,
                        account.balance_cents,
                        replayed,
                    )
                    repairs.append(DriftRepair(kind, (party_id,), account.balance_cents, replayed))
                    account.balance_cents = replayed
                    batch.set_values(model, {"id": party_id}, current_balance_cents=replayed)

        keys = set(self._stock) | set(snapshot.stock_movements)
        now = utcnow()
        for key in keys:
            tail = snapshot.stock_movements.get(key)
            replayed = tail["replayed_kg"] if tail else 0.0
            level = self._stock.get(key)
            if level is None:
                level = StockLevel(product_id=key[0], branch_id=key[1], stock_kg=0.0, last_updated=now)
                self._stock[key] = level
            level.last_sequence = tail["last_sequence"] if tail else 0
            if abs(level.stock_kg - replayed) > STOCK_TOLERANCE_KG:
                log.warning(
                    "stock %s/%s cached %.6f drifted from movements %.6f; using movements",
                    key[0],
                    key[1],
                    level.stock_kg,
                    replayed,
                )
                repairs.append(DriftRepair("stock", key, level.stock_kg, replayed))
                level.stock_kg = replayed
                level.last_updated = now
                batch.set_values(
                    Inventory,
                    {"product_id": key[0], "branch_id": key[1]},
                    stock_kg=replayed,
                    last_updated=now,
                )

        if len(batch):
            self.store.commit(batch)
        return repairs

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def hold(self, *, customer_id: str | None = None, supplier_id: str | None = None, stock_keys=()):
        """Hold the locks for a multi-step write (e.g. a sale completion)."""
        keys = [("stock", p, b) for p, b in stock_keys]
        if customer_id is not None:
            keys.append(("customer", customer_id))
        if supplier_id is not None:
            keys.append(("supplier", supplier_id))
        return self._locks.hold(*keys)

    # ------------------------------------------------------------------
    # Master data
    # ------------------------------------------------------------------

    def _forget(self, kind: str, party_id: str) -> None:
        accounts = self._customers if kind == "customer" else self._suppliers
        accounts.pop(party_id, None)

    def register_customer(
        self,
        name: str,
        *,
        phone: str = "",
        credit_limit_cents: int = 0,
        address: str | None = None,
        customer_id: str | None = None,
    ) -> Customer:
        self._require_ready()
        party_id = customer_id or make_row_id()[:12]
        if party_id in self._customers:
            raise ConflictOrValidation(f"customer {party_id} already exists")
        customer = Customer(
            id=party_id,
            name=name,
            phone=phone or "",
            address=address,
            credit_limit_cents=_check_cents(credit_limit_cents),
            current_balance_cents=0,
            status="ACTIVE",
            created_at=utcnow(),
        )
        batch = self.store.new_batch()
        batch.add(customer)
        batch.on_revert(lambda: self._forget("customer", party_id))
        with self._locks.hold(("customer", party_id)):
            self._customers[party_id] = PartyAccount(
                kind="customer",
                party_id=party_id,
                credit_limit_cents=customer.credit_limit_cents,
            )
            self.store.commit(batch)
        return customer

    def set_credit_limit(self, customer_id: str, credit_limit_cents: int) -> PartyAccount:
        self._require_ready()
        limit = _check_cents(credit_limit_cents)
        with self._locks.hold(("customer", customer_id)):
            account = self._customer(customer_id)
            previous = account.credit_limit_cents
            account.credit_limit_cents = limit
            batch = self.store.new_batch()
            batch.on_revert(lambda: setattr(account, "credit_limit_cents", previous))
            batch.set_values(Customer, {"id": customer_id}, credit_limit_cents=limit)
            self.store.commit(batch)
            return replace(account)

    def register_supplier(
        self,
        name: str,
        *,
        phone: str | None = None,
        email: str | None = None,
        address: str | None = None,
        notes: str | None = None,
        supplier_id: str | None = None,
    ) -> Supplier:
        self._require_ready()
        party_id = supplier_id or make_reference_id("SUP")
        if party_id in self._suppliers:
            raise ConflictOrValidation(f"supplier {party_id} already exists")
        supplier = Supplier(
            id=party_id,
            name=name,
            phone=phone,
            email=email,
            address=address,
            notes=notes,
            current_balance_cents=0,
            status="ACTIVE",
            created_at=utcnow(),
        )
        batch = self.store.new_batch()
        batch.add(supplier)
        batch.on_revert(lambda: self._forget("supplier", party_id))
        with self._locks.hold(("supplier", party_id)):
            self._suppliers[party_id] = PartyAccount(kind="supplier", party_id=party_id)
            self.store.commit(batch)
        return supplier

    def register_product(self, product: Product) -> Product:
        self._require_ready()
        if product.id in self._products:
            raise ConflictOrValidation(f"product {product.id} already exists")
        batch = self.store.new_batch()
        batch.add(product)
        batch.on_revert(lambda: self._products.discard(product.id))
        self._products.add(product.id)
        self.store.commit(batch)
        return product

    def has_product(self, product_id: str) -> bool:
        self._require_ready()
        return product_id in self._products

    # ------------------------------------------------------------------
    # Ledger appends
    # ------------------------------------------------------------------

    def _customer(self, customer_id: str) -> PartyAccount:
        account = self._customers.get(customer_id)
        if account is None:
            raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
        return account

    def _supplier(self, supplier_id: str) -> PartyAccount:
        account = self._suppliers.get(supplier_id)
        if account is None:
            raise NotFound(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
        return account

    def _append(
        self,
        account: PartyAccount,
        batch: WriteBatch,
        entry_type: str,
        amount_cents: int,
        reference_id: str,
        *,
        branch_id: str | None,
        payment_channel: str | None,
        payment_reference: str | None,
        note: str | None,
    ):
        now = utcnow()
        previous = (account.last_purchase_at, account.last_payment_at)
        account.last_sequence += 1
        account.balance_cents += amount_cents
        sequence = account.last_sequence

        def undo():
            account.balance_cents -= amount_cents
            if account.last_sequence == sequence:
                account.last_sequence -= 1
                account.last_purchase_at, account.last_payment_at = previous
            if account.kind == "customer":
                return (
                    Customer,
                    {"id": account.party_id},
                    {
                        "current_balance_cents": account.balance_cents,
                        "last_purchase_at": account.last_purchase_at,
                        "last_payment_at": account.last_payment_at,
                    },
                )
            return Supplier, {"id": account.party_id}, {"current_balance_cents": account.balance_cents}

        batch.on_revert(undo)

        if account.kind == "customer":
            if entry_type == "SALE":
                account.last_purchase_at = now
            if entry_type == "PAYMENT":
                account.last_payment_at = now
            entry = CustomerLedgerEntry(customer_id=account.party_id)
            batch.set_values(
                Customer,
                {"id": account.party_id},
                current_balance_cents=account.balance_cents,
                last_purchase_at=account.last_purchase_at,
                last_payment_at=account.last_payment_at,
            )
        else:
            entry = SupplierLedgerEntry(supplier_id=account.party_id)
            batch.set_values(Supplier, {"id": account.party_id}, current_balance_cents=account.balance_cents)

        entry.id = make_row_id()
        entry.branch_id = branch_id or self.default_branch_id
        entry.sequence = account.last_sequence
        entry.type = entry_type
        entry.amount_cents = amount_cents
        entry.balance_after_cents = account.balance_cents
        entry.reference_id = reference_id
        entry.payment_channel = payment_channel
        entry.payment_reference = payment_reference
        entry.note = note
        entry.created_at = now
        batch.add(entry)
        return entry

    def append_customer_ledger_entry(
        self,
        customer_id: str,
        entry_type: str,
        amount_cents: int,
        reference_id: str,
        *,
        branch_id: str | None = None,
        payment_channel: str | None = None,
        payment_reference: str | None = None,
        note: str | None = None,
        batch: WriteBatch | None = None,
    ) -> LedgerWrite:
        """
        Append one customer ledger entry and advance the cached balance.

        Raises NotFound for an unknown customer and CreditLimitExceeded when a
        debt-increasing amount would cross the limit; in both cases nothing is
        written.
        """
        self._require_ready()
        entry_type = _check_choice(entry_type, CUSTOMER_ENTRY_TYPES, "customer entry type")
        amount = _check_cents(amount_cents)
        if payment_channel is not None:
            payment_channel = _check_choice(payment_channel, CUSTOMER_PAYMENT_CHANNELS, "payment channel")

        with self._locks.hold(("customer", customer_id)):
            account = self._customer(customer_id)
            new_balance = account.balance_cents + amount
            if amount > 0 and new_balance > account.credit_limit_cents:
                raise CreditLimitExceeded(customer_id, account.balance_cents, account.credit_limit_cents, new_balance)

            work = batch if batch is not None else self.store.new_batch()
            entry = self._append(
                account,
                work,
                entry_type,
                amount,
                reference_id,
                branch_id=branch_id,
                payment_channel=payment_channel,
                payment_reference=payment_reference,
                note=note,
            )
            durable = self.store.commit(work) if batch is None else False
        return LedgerWrite(entry=entry, committed_to_disk=durable)

    def append_supplier_ledger_entry(
        self,
        supplier_id: str,
        entry_type: str,
        amount_cents: int,
        reference_id: str,
        *,
        branch_id: str | None = None,
        payment_channel: str | None = None,
        payment_reference: str | None = None,
        note: str | None = None,
        batch: WriteBatch | None = None,
    ) -> LedgerWrite:
        """Same as the customer append, without a credit limit (payables are not limited)."""
        self._require_ready()
        entry_type = _check_choice(entry_type, SUPPLIER_ENTRY_TYPES, "supplier entry type")
        amount = _check_cents(amount_cents)
        if payment_channel is not None:
            payment_channel = _check_choice(payment_channel, SUPPLIER_PAYMENT_CHANNELS, "payment channel")

        with self._locks.hold(("supplier", supplier_id)):
            account = self._supplier(supplier_id)
            work = batch if batch is not None else self.store.new_batch()
            entry = self._append(
                account,
                work,
                entry_type,
                amount,
                reference_id,
                branch_id=branch_id,
                payment_channel=payment_channel,
                payment_reference=payment_reference,
                note=note,
            )
            durable = self.store.commit(work) if batch is None else False
        return LedgerWrite(entry=entry, committed_to_disk=durable)

    def check_sale_credit(self, customer_id: str, credit_cents: int) -> None:
        """Raise CreditLimitExceeded if putting ``credit_cents`` on account would cross the limit."""
        self._require_ready()
        with self._locks.hold(("customer", customer_id)):
            account = self._customer(customer_id)
            attempted = account.balance_cents + credit_cents
            if credit_cents > 0 and attempted > account.credit_limit_cents:
                raise CreditLimitExceeded(customer_id, account.balance_cents, account.credit_limit_cents, attempted)

    def post_sale_charges(
        self,
        customer_id: str,
        total_cents: int,
        paid_cents: int,
        reference_id: str,
        *,
        batch: WriteBatch,
        branch_id: str | None = None,
        payment_reference_id: str | None = None,
        payment_channel: str = "CASH",
    ) -> list:
        """
        Post a completed sale to the customer's account.

        Only the amount left on credit counts against the limit, so a fully
        paid sale never trips it. Appends SALE (+total) and, when something
        was paid, PAYMENT (-paid) under one lock hold.
        """
        self._require_ready()
        with self._locks.hold(("customer", customer_id)):
            self.check_sale_credit(customer_id, total_cents - paid_cents)
            account = self._customer(customer_id)
            entries = [
                self._append(
                    account,
                    batch,
                    "SALE",
                    total_cents,
                    reference_id,
                    branch_id=branch_id,
                    payment_channel=None,
                    payment_reference=None,
                    note="POS Sale",
                )
            ]
            if paid_cents > 0:
                entries.append(
                    self._append(
                        account,
                        batch,
                        "PAYMENT",
                        -paid_cents,
                        payment_reference_id or make_reference_id("PAY"),
                        branch_id=branch_id,
                        payment_channel=payment_channel,
                        payment_reference=None,
                        note="POS Payment (at checkout)",
                    )
                )
            return entries

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def adjust_stock(
        self,
        product_id: str,
        branch_id: str,
        movement_type: str,
        kg_change: float,
        note: str | None = None,
        *,
        reference_id: str | None = None,
        batch: WriteBatch | None = None,
    ) -> StockWrite:
        """
        Record a stock movement and apply it to the (lazily created) aggregate.

        Negative resulting stock is permitted.
        """
        self._require_ready()
        movement_type = _check_choice(movement_type, STOCK_MOVEMENT_TYPES, "movement type")
        kg = _check_kg(kg_change)
        branch = branch_id or self.default_branch_id
        key = (product_id, branch)

        with self._locks.hold(("stock", product_id, branch)):
            if product_id not in self._products:
                raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})

            now = utcnow()
            level = self._stock.get(key)
            if level is None:
                level = StockLevel(product_id=product_id, branch_id=branch)
                self._stock[key] = level
            previous_update = level.last_updated
            level.last_sequence += 1
            level.stock_kg += kg
            level.last_updated = now
            sequence = level.last_sequence
            if level.stock_kg < 0:
                log.info("stock %s/%s is negative (%.3f kg)", product_id, branch, level.stock_kg)

            movement = StockMovement(
                id=make_row_id(),
                branch_id=branch,
                product_id=product_id,
                sequence=level.last_sequence,
                type=movement_type,
                kg_change=kg,
                reference_id=reference_id or make_reference_id("MOV"),
                note=note,
                created_at=now,
            )
            work = batch if batch is not None else self.store.new_batch()

            def undo():
                level.stock_kg -= kg
                if level.last_sequence == sequence:
                    level.last_sequence -= 1
                    level.last_updated = previous_update
                values = {"stock_kg": level.stock_kg}
                if level.last_updated is not None:
                    values["last_updated"] = level.last_updated
                return Inventory, {"product_id": product_id, "branch_id": branch}, values

            work.on_revert(undo)
            work.add(movement)
            work.set_values(
                Inventory,
                {"product_id": product_id, "branch_id": branch},
                stock_kg=level.stock_kg,
                last_updated=now,
            )
            durable = self.store.commit(work) if batch is None else False
            stock_kg = level.stock_kg
        return StockWrite(movement=movement, stock_kg=stock_kg, committed_to_disk=durable)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, customer_id: str) -> int:
        self._require_ready()
        with self._locks.hold(("customer", customer_id)):
            return self._customer(customer_id).balance_cents

    def get_supplier_balance(self, supplier_id: str) -> int:
        self._require_ready()
        with self._locks.hold(("supplier", supplier_id)):
            return self._supplier(supplier_id).balance_cents

    def get_stock(self, product_id: str, branch_id: str) -> float:
        self._require_ready()
        with self._locks.hold(("stock", product_id, branch_id)):
            level = self._stock.get((product_id, branch_id))
            return level.stock_kg if level else 0.0

    def customer_account(self, customer_id: str) -> PartyAccount:
        self._require_ready()
        with self._locks.hold(("customer", customer_id)):
            return replace(self._customer(customer_id))

    def customer_accounts(self) -> list[PartyAccount]:
        self._require_ready()
        return [replace(a) for a in list(self._customers.values())]

    def supplier_accounts(self) -> list[PartyAccount]:
        self._require_ready()
        return [replace(a) for a in list(self._suppliers.values())]

    def branch_stock(self, branch_id: str) -> dict[str, float]:
        self._require_ready()
        return {
            level.product_id: level.stock_kg
            for level in list(self._stock.values())
            if level.branch_id == branch_id
        }

    def stock_levels(self) -> list[tuple[str, str, float]]:
        """(product_id, branch_id, stock_kg) for every tracked pair."""
        self._require_ready()
        return sorted((s.product_id, s.branch_id, s.stock_kg) for s in list(self._stock.values()))

    def total_payables(self) -> int:
        """Sum of positive supplier balances (what we owe)."""
        self._require_ready()
        return sum(max(0, a.balance_cents) for a in list(self._suppliers.values()))

    # ------------------------------------------------------------------
    # Authoritative recompute
    # ------------------------------------------------------------------

    def verify_ledger(self, kind: str, party_id: str) -> LedgerCheck:
        """Replay a party's ledger from 0 and compare with the stored chain and the cache."""
        self._require_ready()
        if kind == "customer":
            entries = self.store.customer_ledger(party_id, oldest_first=True)
            account = self._customers.get(party_id)
        elif kind == "supplier":
            entries = self.store.supplier_ledger(party_id, oldest_first=True)
            account = self._suppliers.get(party_id)
        else:
            raise ConflictOrValidation(f"unknown party kind {kind!r}")

        running = 0
        chain_ok = True
        for entry in entries:
            running += entry.amount_cents
            if entry.balance_after_cents != running:
                chain_ok = False
        return LedgerCheck(
            kind=kind,
            party_id=party_id,
            entries=len(entries),
            replayed_cents=running,
            last_balance_after_cents=entries[-1].balance_after_cents if entries else 0,
            cached_cents=account.balance_cents if account else None,
            chain_ok=chain_ok,
        )

    def recompute_balance(self, kind: str, party_id: str) -> int:
        return self.verify_ledger(kind, party_id).replayed_cents

    def recompute_stock(self, product_id: str, branch_id: str) -> float:
        self._require_ready()
        return float(sum(m.kg_change for m in self.store.stock_movements(product_id, branch_id, oldest_first=True)))
