# Overview: Local ledger store; durable persistence for the append-only tables, aggregates and outbox.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from ..extensions import db
from ..errors import ConflictOrValidation, PersistenceUnavailable
from ..models import (
    Customer,
    CustomerLedgerEntry,
    Inventory,
    OutboxEntry,
    Product,
    Sale,
    StockMovement,
    Supplier,
    SupplierLedgerEntry,
)
"""
Local Ledger Store Invariants (authoritative)

- One domain operation == one WriteBatch == one local transaction. A sale
  completion (sale + items, ledger rows, stock movements, inventory, outbox
  entry) becomes visible all at once or not at all.
- Append rows (ledger entries, movements, sales, outbox entries) are only
  ever inserted.
- Aggregate rows (party balances, inventory) are written as value snapshots
  taken from the balance engine's cache, so a replayed snapshot converges to
  the cache instead of double-applying a delta.
- Storage failure is a degrade, not an error for the caller: the batch is
  kept in an in-process backlog and replayed, in order, ahead of the next
  commit. Durability is reported back as a bool.
- A batch the database refuses (constraint or data error) is never held
  back: it is dropped, its in-memory effects are reverted, and the caller
  gets ConflictOrValidation. One bad batch never blocks the ones after it.
"""

log = logging.getLogger(__name__)

# Models whose primary key is generated by the database on flush.
_AUTOINCREMENT_MODELS = (OutboxEntry,)


@dataclass
class WriteBatch:
    """Rows and aggregate snapshots that must commit together."""

    rows: list = field(default_factory=list)
    snapshots: dict = field(default_factory=dict)
    reverts: list = field(default_factory=list)

    def add(self, row) -> None:
        self.rows.append(row)

    def set_values(self, model, pk: dict, **values) -> None:
        key = (model, tuple(sorted(pk.items())))
        _, _, current = self.snapshots.setdefault(key, (model, dict(pk), {}))
        current.update(values)

    def on_revert(self, fn) -> None:
        """Register an undo for an in-memory effect that rides on this batch."""
        self.reverts.append(fn)

    def revert(self) -> list:
        """
        Run the undo callbacks, newest first. A batch is reverted at most once.

        Returns the (model, pk, values) snapshots the callbacks report as the
        corrected aggregate values.
        """
        callbacks, self.reverts = self.reverts, []
        corrected = []
        for fn in reversed(callbacks):
            snapshot = fn()
            if snapshot is not None:
                corrected.append(snapshot)
        return corrected

    def reset_generated_keys(self) -> None:
        # A rolled-back flush does not reserve autoincrement ids.
        for row in self.rows:
            if isinstance(row, _AUTOINCREMENT_MODELS):
                row.id = None

    def __len__(self) -> int:
        return len(self.rows) + len(self.snapshots)


@dataclass
class StoreSnapshot:
    """Everything the balance engine needs to build its projections."""

    customers: list[dict]
    suppliers: list[dict]
    inventory: list[dict]
    customer_ledger: dict[str, dict]
    supplier_ledger: dict[str, dict]
    stock_movements: dict[tuple[str, str], dict]


class LocalLedgerStore:
    """
    Durable, queryable persistence for the device.

    All access goes through the Flask-SQLAlchemy ``db.session`` of the
    current app context.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._backlog: list[WriteBatch] = []

    @property
    def session(self):
        return db.session

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def new_batch(self) -> WriteBatch:
        return WriteBatch()

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    def commit(self, batch: WriteBatch | None = None) -> bool:
        """
        Commit ``batch`` (after any backlog) in one transaction.

        Returns True when everything reached disk, False when the write was
        held back in memory.
        """
        with self._lock:
            pending = list(self._backlog)
            if batch is not None and len(batch):
                pending.append(batch)
            if not pending:
                return True

            session = self.session
            try:
                self._stage(session, pending)
                session.commit()
            except (IntegrityError, DataError):
                session.rollback()
                for b in pending:
                    b.reset_generated_keys()
                return self._commit_each(session, pending, batch)
            except SQLAlchemyError as exc:
                session.rollback()
                for b in pending:
                    b.reset_generated_keys()
                self._backlog = pending
                log.warning(
                    "Local ledger store unavailable; %d batch(es) held in memory: %s",
                    len(pending),
                    exc,
                )
                return False

            if self._backlog:
                log.info("Flushed %d held-back batch(es) to local storage", len(self._backlog))
            self._backlog = []
            return True

    def _commit_each(self, session, pending: list[WriteBatch], batch: WriteBatch | None) -> bool:
        """
        Commit ``pending`` one batch at a time after a constraint or data error.

        Rejected batches are dropped and reverted. Once storage is unavailable
        the remaining batches are held back in order.
        """
        held: list[WriteBatch] = []
        rejected = None
        # Later batches carry aggregate snapshots taken before the revert.
        corrections = self.new_batch()
        for b in pending:
            if held:
                held.append(b)
                continue
            try:
                self._stage(session, [b])
                session.commit()
            except (IntegrityError, DataError) as exc:
                session.rollback()
                b.reset_generated_keys()
                snapshots = b.revert()
                if b is not pending[-1]:
                    for model, pk, values in snapshots:
                        corrections.set_values(model, pk, **values)
                if b is batch:
                    rejected = exc
                else:
                    log.error("Dropped a held-back batch rejected by local storage: %s", exc)
            except SQLAlchemyError as exc:
                session.rollback()
                b.reset_generated_keys()
                held.append(b)
                log.warning("Local ledger store unavailable; batch held in memory: %s", exc)

        if len(corrections):
            if held:
                held.append(corrections)
            else:
                try:
                    self._stage(session, [corrections])
                    session.commit()
                except (IntegrityError, DataError) as exc:
                    session.rollback()
                    log.error("Could not correct aggregates after a dropped batch: %s", exc)
                except SQLAlchemyError as exc:
                    session.rollback()
                    held.append(corrections)
                    log.warning("Local ledger store unavailable; corrections held in memory: %s", exc)

        self._backlog = held
        if rejected is not None:
            raise ConflictOrValidation(
                "Local storage rejected the write",
                details={"error": str(getattr(rejected, "orig", None) or rejected)},
            )
        return not held

    def flush_backlog(self, *, strict: bool = False) -> bool:
        """Retry held-back batches. With ``strict`` a failure raises PersistenceUnavailable."""
        ok = self.commit(None)
        if not ok and strict:
            raise PersistenceUnavailable(
                "Local storage still unavailable",
                details={"backlog_size": self.backlog_size},
            )
        return ok

    def held_txn_ids(self) -> set[str]:
        """client_txn_ids of outbox entries waiting in the backlog."""
        with self._lock:
            return {
                row.client_txn_id
                for b in self._backlog
                for row in b.rows
                if isinstance(row, OutboxEntry)
            }

    def _stage(self, session, batches: list[WriteBatch]) -> None:
        merged: dict = {}
        for b in batches:
            session.add_all(b.rows)
            for key, (model, pk, values) in b.snapshots.items():
                _, _, current = merged.setdefault(key, (model, pk, {}))
                current.update(values)

        for model, pk, values in merged.values():
            obj = session.get(model, pk)
            if obj is None:
                session.add(model(**pk, **values))
                continue
            for name, value in values.items():
                setattr(obj, name, value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, model, pk):
        return self.session.get(model, pk)

    def list_products(self, *, active_only: bool = False) -> list[Product]:
        q = self.session.query(Product)
        if active_only:
            q = q.filter(Product.is_active.is_(True))
        return q.order_by(Product.name.asc()).all()

    def list_customers(self) -> list[Customer]:
        return self.session.query(Customer).order_by(Customer.name.asc()).all()

    def list_suppliers(self) -> list[Supplier]:
        return self.session.query(Supplier).order_by(Supplier.name.asc()).all()

    def customer_ledger(self, customer_id: str, *, oldest_first: bool = False) -> list[CustomerLedgerEntry]:
        order = CustomerLedgerEntry.sequence.asc() if oldest_first else CustomerLedgerEntry.sequence.desc()
        return (
            self.session.query(CustomerLedgerEntry)
            .filter_by(customer_id=customer_id)
            .order_by(order)
            .all()
        )

    def supplier_ledger(self, supplier_id: str, *, oldest_first: bool = False) -> list[SupplierLedgerEntry]:
        order = SupplierLedgerEntry.sequence.asc() if oldest_first else SupplierLedgerEntry.sequence.desc()
        return (
            self.session.query(SupplierLedgerEntry)
            .filter_by(supplier_id=supplier_id)
            .order_by(order)
            .all()
        )

    def stock_movements(self, product_id: str, branch_id: str, *, oldest_first: bool = False) -> list[StockMovement]:
        order = StockMovement.sequence.asc() if oldest_first else StockMovement.sequence.desc()
        return (
            self.session.query(StockMovement)
            .filter_by(product_id=product_id, branch_id=branch_id)
            .order_by(order)
            .all()
        )

    def recent_sales(self, limit: int = 50) -> list[Sale]:
        return (
            self.session.query(Sale)
            .order_by(Sale.created_at.desc(), Sale.id.desc())
            .limit(limit)
            .all()
        )

    def sales_between(self, start: datetime, end: datetime, branch_id: str | None = None) -> list[Sale]:
        q = self.session.query(Sale).filter(Sale.created_at >= start, Sale.created_at < end)
        if branch_id is not None:
            q = q.filter(Sale.branch_id == branch_id)
        return q.order_by(Sale.created_at.asc()).all()

    # ------------------------------------------------------------------
    # Snapshot for the balance engine
    # ------------------------------------------------------------------

    def _ledger_tails(self, model, party_col) -> dict[str, dict]:
        session = self.session
        agg = (
            session.query(
                party_col.label("party_id"),
                func.max(model.sequence).label("last_sequence"),
                func.coalesce(func.sum(model.amount_cents), 0).label("replayed_cents"),
                func.count(model.id).label("entries"),
            )
            .group_by(party_col)
            .all()
        )
        tails: dict[str, dict] = {}
        for row in agg:
            last = (
                session.query(model.balance_after_cents)
                .filter(party_col == row.party_id, model.sequence == row.last_sequence)
                .scalar()
            )
            tails[row.party_id] = {
                "last_sequence": int(row.last_sequence or 0),
                "replayed_cents": int(row.replayed_cents or 0),
                "last_balance_after_cents": int(last or 0),
                "entries": int(row.entries or 0),
            }
        return tails

    def load_snapshot(self) -> StoreSnapshot:
        session = self.session

        customers = [
            {
                "id": c.id,
                "current_balance_cents": c.current_balance_cents,
                "credit_limit_cents": c.credit_limit_cents,
                "status": c.status,
                "last_purchase_at": c.last_purchase_at,
                "last_payment_at": c.last_payment_at,
            }
            for c in session.query(Customer).all()
        ]
        suppliers = [
            {
                "id": s.id,
                "current_balance_cents": s.current_balance_cents,
                "status": s.status,
            }
            for s in session.query(Supplier).all()
        ]
        inventory = [
            {
                "product_id": i.product_id,
                "branch_id": i.branch_id,
                "stock_kg": float(i.stock_kg or 0.0),
                "last_updated": i.last_updated,
            }
            for i in session.query(Inventory).all()
        ]

        movement_rows = (
            session.query(
                StockMovement.product_id,
                StockMovement.branch_id,
                func.max(StockMovement.sequence).label("last_sequence"),
                func.coalesce(func.sum(StockMovement.kg_change), 0.0).label("replayed_kg"),
            )
            .group_by(StockMovement.product_id, StockMovement.branch_id)
            .all()
        )
        movements = {
            (r.product_id, r.branch_id): {
                "last_sequence": int(r.last_sequence or 0),
                "replayed_kg": float(r.replayed_kg or 0.0),
            }
            for r in movement_rows
        }

        return StoreSnapshot(
            customers=customers,
            suppliers=suppliers,
            inventory=inventory,
            customer_ledger=self._ledger_tails(CustomerLedgerEntry, CustomerLedgerEntry.customer_id),
            supplier_ledger=self._ledger_tails(SupplierLedgerEntry, SupplierLedgerEntry.supplier_id),
            stock_movements=movements,
        )
