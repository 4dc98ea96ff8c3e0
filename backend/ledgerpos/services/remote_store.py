# Overview: Remote store adapter; applies one outbox sale per transaction, idempotent by client_txn_id.

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import case, text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..errors import AlreadyApplied, ConflictOrValidation, NetworkError, RemoteUnavailable
from ..models import (
    RemoteCustomer,
    RemoteCustomerLedgerEntry,
    RemoteInventory,
    RemoteSale,
    RemoteSaleItem,
    RemoteStockMovement,
    SyncLog,
)
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry
from .sales_service import validate_sale_payload
"""
Remote Apply Invariants (authoritative)

- One outbox event == one remote transaction. Either every row below is
  written or none is.
- The SyncLog marker is checked first and written last. A present marker
  means the event was applied before: nothing is written (AlreadyApplied).
- Customer balances are computed from the remote row read inside the same
  transaction (BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE elsewhere),
  never from a device's local cache.
- Inventory counters only change by SQL-side increments, so concurrent
  devices commute: final stock == initial + SUM(deltas) in any order.
- Row ids are derived from the sale (LED-<sale>, LED-PAY-<sale>,
  MOV-<sale>-<product>-<line>) so a replay upserts in place.
"""

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedSale:
    client_txn_id: str
    sale_id: str
    customer_balance_cents: int | None
    movements: int


class RemoteStore:
    """Shared company store on the ``remote`` bind."""

    def __init__(self, engine, *, retry_attempts: int = 3, backoff_base: float = 0.1):
        self.engine = engine
        self.retry_attempts = retry_attempts
        self.backoff_base = backoff_base
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def session(self):
        session = self._sessions()
        try:
            yield session
        finally:
            session.close()

    def _run(self, func, *, what: str):
        """Run ``func(session)`` in a fresh session, mapping driver errors to the ledger taxonomy."""
        with self.session() as session:
            try:
                return run_with_retry(
                    lambda: func(session),
                    session=session,
                    attempts=self.retry_attempts,
                    backoff_base=self.backoff_base,
                )
            except (IntegrityError, DataError) as exc:
                session.rollback()
                raise ConflictOrValidation(f"remote rejected {what}: {exc.orig}") from exc
            except OperationalError as exc:
                session.rollback()
                if exc.connection_invalidated:
                    raise NetworkError(f"connection lost during {what}: {exc.orig}") from exc
                raise RemoteUnavailable(f"remote store unavailable during {what}: {exc.orig}") from exc
            except DBAPIError as exc:
                session.rollback()
                if exc.connection_invalidated:
                    raise NetworkError(f"connection lost during {what}: {exc.orig}") from exc
                raise RemoteUnavailable(f"remote error during {what}: {exc.orig}") from exc

    def _begin(self, session) -> None:
        if self.dialect == "sqlite":
            session.execute(text("BEGIN IMMEDIATE"))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _increment_stock(self, session, company_id: str, branch_id: str, product_id: str, delta: float, now) -> None:
        values = {
            "company_id": company_id,
            "branch_id": branch_id,
            "product_id": product_id,
            "stock_kg": delta,
            "updated_at": now,
        }
        table = RemoteInventory.__table__
        if self.dialect in ("sqlite", "postgresql"):
            insert = sqlite.insert if self.dialect == "sqlite" else postgresql.insert
            stmt = insert(table).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.company_id, table.c.branch_id, table.c.product_id],
                set_={
                    "stock_kg": table.c.stock_kg + stmt.excluded.stock_kg,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            session.execute(stmt)
            return

        result = session.execute(
            update(table)
            .where(
                table.c.company_id == company_id,
                table.c.branch_id == branch_id,
                table.c.product_id == product_id,
            )
            .values(stock_kg=table.c.stock_kg + delta, updated_at=now)
        )
        if result.rowcount == 0:
            session.execute(table.insert().values(**values))

    def apply_sale(
        self,
        company_id: str,
        branch_id: str,
        user_id: str | None,
        client_txn_id: str,
        sale: dict,
    ) -> AppliedSale:
        """
        Apply one completed sale to the remote store.

        Raises AlreadyApplied when the marker for ``client_txn_id`` exists,
        ConflictOrValidation for a malformed payload or a constraint
        violation, RemoteUnavailable / NetworkError for transport failures.
        """
        validate_sale_payload(sale)
        sale_id = sale["id"]
        branch = sale.get("branch_id") or branch_id

        def _op(session):
            self._begin(session)
            marker = session.get(SyncLog, {"company_id": company_id, "client_txn_id": client_txn_id})
            if marker is not None:
                session.rollback()
                raise AlreadyApplied(
                    f"{client_txn_id} already applied",
                    details={"client_txn_id": client_txn_id, "sale_id": marker.sale_id},
                )

            now = utcnow()
            created = parse_iso_datetime(sale.get("created_at")) or now
            total = int(sale["total_amount_cents"])
            paid = int(sale["paid_amount_cents"])

            session.merge(
                RemoteSale(
                    company_id=company_id,
                    id=sale_id,
                    branch_id=branch,
                    customer_id=sale.get("customer_id"),
                    customer_name=sale.get("customer_name"),
                    total_amount_cents=total,
                    paid_amount_cents=paid,
                    credit_amount_cents=int(sale["credit_amount_cents"]),
                    payment_method=sale.get("payment_method") or "CASH",
                    status=sale.get("status") or "COMPLETED",
                    client_txn_id=client_txn_id,
                    cashier_user_id=user_id,
                    created_at_device=created,
                    synced_at=now,
                )
            )
            items = sale["items"]
            for i, item in enumerate(items):
                session.merge(
                    RemoteSaleItem(
                        company_id=company_id,
                        sale_id=sale_id,
                        line_no=int(item.get("line_no") or i + 1),
                        product_id=item["product_id"],
                        name_snapshot=item.get("name_snapshot") or item["product_id"],
                        unit_used=item.get("unit_used") or "KG",
                        quantity=float(item.get("quantity") or 0.0),
                        kg_calculated=float(item["kg_calculated"]),
                        price_per_kg_snapshot_cents=int(item.get("price_per_kg_snapshot_cents") or 0),
                        line_total_cents=int(item["line_total_cents"]),
                    )
                )

            balance = None
            customer_id = sale.get("customer_id")
            if customer_id:
                q = session.query(RemoteCustomer).filter_by(company_id=company_id, id=customer_id)
                if self.dialect != "sqlite":
                    q = lock_for_update(q)
                customer = q.first()
                if customer is None:
                    customer = RemoteCustomer(
                        company_id=company_id,
                        id=customer_id,
                        name=sale.get("customer_name"),
                        current_balance_cents=0,
                    )
                    session.add(customer)

                balance = int(customer.current_balance_cents or 0) + total
                session.merge(
                    RemoteCustomerLedgerEntry(
                        company_id=company_id,
                        id=f"LED-{sale_id}",
                        customer_id=customer_id,
                        branch_id=branch,
                        type="SALE",
                        amount_cents=total,
                        balance_after_cents=balance,
                        reference_id=sale_id,
                        note="Synced POS Sale",
                        client_txn_id=client_txn_id,
                        created_at_device=created,
                    )
                )
                if paid > 0:
                    balance -= paid
                    session.merge(
                        RemoteCustomerLedgerEntry(
                            company_id=company_id,
                            id=f"LED-PAY-{sale_id}",
                            customer_id=customer_id,
                            branch_id=branch,
                            type="PAYMENT",
                            amount_cents=-paid,
                            balance_after_cents=balance,
                            reference_id=sale_id,
                            note="Synced POS Payment",
                            client_txn_id=client_txn_id,
                            created_at_device=created,
                        )
                    )
                    customer.last_payment_at = created
                customer.current_balance_cents = balance
                customer.last_purchase_at = created
                customer.updated_at = now

            for i, item in enumerate(items):
                line_no = int(item.get("line_no") or i + 1)
                kg = float(item["kg_calculated"])
                session.merge(
                    RemoteStockMovement(
                        company_id=company_id,
                        id=f"MOV-{sale_id}-{item['product_id']}-{line_no}",
                        branch_id=branch,
                        product_id=item["product_id"],
                        type="SALE",
                        kg_change=-kg,
                        reference_id=sale_id,
                        note=f"Synced POS Sale: {item.get('quantity')} {item.get('unit_used')}",
                        client_txn_id=client_txn_id,
                        user_id=user_id,
                        created_at_device=created,
                    )
                )
                self._increment_stock(session, company_id, branch, item["product_id"], -kg, now)

            session.add(
                SyncLog(
                    company_id=company_id,
                    client_txn_id=client_txn_id,
                    event_type="SALE",
                    status="APPLIED",
                    sale_id=sale_id,
                    branch_id=branch,
                    applied_at=now,
                )
            )
            session.commit()
            return AppliedSale(
                client_txn_id=client_txn_id,
                sale_id=sale_id,
                customer_balance_cents=balance,
                movements=len(items),
            )

        try:
            return self._run(_op, what=f"sale {sale_id}")
        except ConflictOrValidation:
            # A concurrent apply of the same key loses on the marker's primary key.
            if self.is_applied(company_id, client_txn_id):
                raise AlreadyApplied(
                    f"{client_txn_id} already applied",
                    details={"client_txn_id": client_txn_id, "sale_id": sale_id},
                ) from None
            raise

    def adjust_stock(self, company_id: str, branch_id: str, product_id: str, kg_change: float) -> float:
        """Apply a bare increment to a remote stock counter and return the new level."""
        def _op(session):
            self._begin(session)
            self._increment_stock(session, company_id, branch_id, product_id, float(kg_change), utcnow())
            session.commit()
            return self._stock_level(session, company_id, branch_id, product_id)

        return self._run(_op, what=f"stock {product_id}")

    def ensure_customer(
        self,
        company_id: str,
        customer_id: str,
        *,
        name: str | None = None,
        credit_limit_cents: int | None = None,
    ) -> dict:
        """Create the remote customer row if missing; the balance of an existing row is left alone."""
        def _op(session):
            self._begin(session)
            customer = session.get(RemoteCustomer, {"company_id": company_id, "id": customer_id})
            if customer is None:
                customer = RemoteCustomer(
                    company_id=company_id,
                    id=customer_id,
                    current_balance_cents=0,
                )
                session.add(customer)
            if name is not None:
                customer.name = name
            if credit_limit_cents is not None:
                customer.credit_limit_cents = credit_limit_cents
            customer.updated_at = utcnow()
            session.commit()
            return customer.to_dict()

        return self._run(_op, what=f"customer {customer_id}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _stock_level(self, session, company_id, branch_id, product_id) -> float:
        row = session.get(
            RemoteInventory,
            {"company_id": company_id, "branch_id": branch_id, "product_id": product_id},
        )
        return float(row.stock_kg) if row else 0.0

    def stock_level(self, company_id: str, branch_id: str, product_id: str) -> float:
        return self._run(
            lambda s: self._stock_level(s, company_id, branch_id, product_id),
            what=f"stock {product_id}",
        )

    def customer_balance(self, company_id: str, customer_id: str) -> int:
        def _op(session):
            row = session.get(RemoteCustomer, {"company_id": company_id, "id": customer_id})
            return int(row.current_balance_cents) if row else 0

        return self._run(_op, what=f"customer {customer_id}")

    def ledger_entries(self, company_id: str, customer_id: str) -> list[dict]:
        def _op(session):
            rows = (
                session.query(RemoteCustomerLedgerEntry)
                .filter_by(company_id=company_id, customer_id=customer_id)
                .order_by(
                    RemoteCustomerLedgerEntry.created_at_device.asc(),
                    case((RemoteCustomerLedgerEntry.type == "SALE", 0), else_=1),
                )
                .all()
            )
            return [r.to_dict() for r in rows]

        return self._run(_op, what=f"ledger {customer_id}")

    def is_applied(self, company_id: str, client_txn_id: str) -> bool:
        def _op(session):
            return session.get(SyncLog, {"company_id": company_id, "client_txn_id": client_txn_id}) is not None

        return self._run(_op, what=f"marker {client_txn_id}")

    def is_reachable(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            log.debug("Remote store not reachable: %s", exc)
            return False
