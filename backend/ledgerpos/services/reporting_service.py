# Overview: Read-only reporting over the ledger core (aging, debtors, stock, daily figures).

from __future__ import annotations

from datetime import date, datetime, timedelta

from ..errors import ConflictOrValidation
from ..time_utils import day_bounds, to_utc_z, utcnow
from ..units import line_total_cents
from . import expense_service

AGING_BUCKETS = (("current", 30), ("over30", 60), ("over60", 90))


def _open_debits(entries) -> list[tuple[datetime, int]]:
    """
    Settle credits against the oldest open debits first.

    Returns (created_at, remaining_cents) for each debit still open. Credits
    larger than everything open are held and applied to later debits.
    """
    lots: list[list] = []
    unapplied = 0
    for entry in entries:
        amount = entry.amount_cents
        if amount > 0:
            applied = min(unapplied, amount)
            unapplied -= applied
            if amount - applied:
                lots.append([entry.created_at, amount - applied])
            continue

        credit = -amount
        while credit and lots:
            take = min(credit, lots[0][1])
            lots[0][1] -= take
            credit -= take
            if not lots[0][1]:
                lots.pop(0)
        unapplied += credit
    return [(created_at, remaining) for created_at, remaining in lots]


def receivables_aging(core, *, as_of: datetime | None = None) -> dict:
    """Outstanding customer debt bucketed by the age of the sale that created it."""
    now = as_of or utcnow()
    result = {"current": 0, "over30": 0, "over60": 0, "over90": 0, "total": 0}

    for customer in core.store.list_customers():
        entries = core.store.customer_ledger(customer.id, oldest_first=True)
        for created_at, remaining in _open_debits(entries):
            age_days = (now - created_at).days
            bucket = "over90"
            for name, upper in AGING_BUCKETS:
                if age_days <= upper:
                    bucket = name
                    break
            result[bucket] += remaining
            result["total"] += remaining
    return result


def top_debtors(core, limit: int = 5) -> list[dict]:
    accounts = {a.party_id: a for a in core.engine.customer_accounts()}
    rows = []
    for customer in core.store.list_customers():
        account = accounts.get(customer.id)
        balance = account.balance_cents if account else customer.current_balance_cents
        if balance <= 0:
            continue
        data = customer.to_dict()
        data["current_balance_cents"] = balance
        rows.append(data)
    rows.sort(key=lambda r: r["current_balance_cents"], reverse=True)
    return rows[:limit]


def low_stock_items(core, *, branch_id: str | None = None, threshold_kg: float = 20.0) -> list[dict]:
    """Products below ``threshold_kg``, lowest first; active products never stocked count as 0."""
    branch = branch_id or core.branch_id
    levels = core.engine.branch_stock(branch)
    items = []
    for product in core.store.list_products():
        if product.id in levels:
            stock = levels[product.id]
        elif product.is_active:
            stock = 0.0
        else:
            continue
        if stock < threshold_kg:
            items.append({
                "product_id": product.id,
                "name": product.name,
                "image": product.image,
                "base_unit": product.base_unit,
                "stock_kg": stock,
                "threshold_kg": threshold_kg,
            })
    items.sort(key=lambda i: i["stock_kg"])
    return items


def payables_summary(core) -> dict:
    suppliers = core.engine.supplier_accounts()
    return {
        "total_payables_cents": core.engine.total_payables(),
        "suppliers_owed": sum(1 for s in suppliers if s.balance_cents > 0),
    }


def _sales_totals(sales) -> dict:
    total = sum(s.total_amount_cents for s in sales)
    paid = sum(s.paid_amount_cents for s in sales)
    return {
        "total_sales_cents": total,
        "cash_sales_cents": paid,
        "credit_sales_cents": total - paid,
        "transaction_count": len(sales),
    }


def sales_history(core, *, days: int = 7, today: date | None = None, branch_id: str | None = None) -> list[dict]:
    """One row per day, oldest first, ending today."""
    if days < 1:
        raise ConflictOrValidation("days must be at least 1")
    end_day = today or utcnow().date()
    history = []
    for offset in range(days - 1, -1, -1):
        day = end_day - timedelta(days=offset)
        start, end = day_bounds(day)
        row = {"date": day.isoformat()}
        row.update(_sales_totals(core.store.sales_between(start, end, branch_id)))
        history.append(row)
    return history


def daily_snapshot(core, *, day: date | None = None, branch_id: str | None = None) -> dict:
    """
    Revenue, cost of goods and expected drawer cash for one day.

    COGS uses the product's current cost per kg; expected cash is money taken
    at the till minus expenses paid in cash.
    """
    target = day or utcnow().date()
    start, end = day_bounds(target)
    sales = [s for s in core.store.sales_between(start, end, branch_id) if s.status == "COMPLETED"]

    costs = {p.id: int(p.cost_per_kg_cents or 0) for p in core.store.list_products()}
    revenue = sum(s.total_amount_cents for s in sales)
    cogs = sum(
        line_total_cents(item.kg_calculated, costs.get(item.product_id, 0))
        for s in sales
        for item in s.items
    )
    cash_in = sum(s.paid_amount_cents for s in sales)
    cash_expenses = expense_service.total_between(start, end, payment_channel="CASH")
    return {
        "date": target.isoformat(),
        "revenue_cents": revenue,
        "cogs_cents": cogs,
        "gross_profit_cents": revenue - cogs,
        "expected_cash_cents": cash_in - cash_expenses,
        "expenses_cents": expense_service.total_between(start, end),
        "transaction_count": len(sales),
        "generated_at": to_utc_z(utcnow()),
    }
