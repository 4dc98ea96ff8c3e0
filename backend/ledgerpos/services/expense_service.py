# Overview: Service layer for operating expenses (record, list, totals).

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from ..errors import ConflictOrValidation
from ..extensions import db
from ..ids import make_reference_id
from ..models import Expense, EXPENSE_CATEGORIES
from ..time_utils import day_bounds, utcnow
from .concurrency import commit_with_retry

EXPENSE_PAYMENT_CHANNELS = ("CASH", "EVC", "BANK_TRANSFER", "CHECK")


def record_expense(
    branch_id: str,
    category: str,
    amount_cents: int,
    description: str,
    *,
    payment_channel: str = "CASH",
    payment_reference: str | None = None,
    receipt_ref: str | None = None,
    note: str | None = None,
    created_at: datetime | None = None,
) -> Expense:
    code = (category or "").strip().upper()
    if code not in EXPENSE_CATEGORIES:
        raise ConflictOrValidation(f"invalid expense category {category!r}", details={"allowed": list(EXPENSE_CATEGORIES)})
    channel = (payment_channel or "").strip().upper()
    if channel not in EXPENSE_PAYMENT_CHANNELS:
        raise ConflictOrValidation(
            f"invalid payment channel {payment_channel!r}",
            details={"allowed": list(EXPENSE_PAYMENT_CHANNELS)},
        )
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ConflictOrValidation("amount_cents must be a positive integer")
    if not (description or "").strip():
        raise ConflictOrValidation("description is required")

    expense = Expense(
        id=make_reference_id("EXP"),
        branch_id=branch_id,
        category=code,
        amount_cents=amount_cents,
        description=description.strip(),
        payment_channel=channel,
        payment_reference=payment_reference,
        receipt_ref=receipt_ref,
        note=note,
        created_at=created_at or utcnow(),
    )
    db.session.add(expense)
    commit_with_retry()
    return expense


def list_expenses(
    *,
    category: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    branch_id: str | None = None,
) -> list[Expense]:
    """Newest first. ``start`` and ``end`` are both inclusive."""
    q = db.session.query(Expense)
    if category:
        q = q.filter(Expense.category == category.strip().upper())
    if start is not None:
        q = q.filter(Expense.created_at >= start)
    if end is not None:
        q = q.filter(Expense.created_at <= end)
    if branch_id is not None:
        q = q.filter(Expense.branch_id == branch_id)
    return q.order_by(Expense.created_at.desc(), Expense.id.desc()).all()


def totals_by_category() -> dict[str, int]:
    rows = (
        db.session.query(Expense.category, func.coalesce(func.sum(Expense.amount_cents), 0))
        .group_by(Expense.category)
        .all()
    )
    return {category: int(total) for category, total in rows}


def total_between(start: datetime, end: datetime, *, payment_channel: str | None = None) -> int:
    """Sum over [start, end)."""
    q = db.session.query(func.coalesce(func.sum(Expense.amount_cents), 0)).filter(
        Expense.created_at >= start,
        Expense.created_at < end,
    )
    if payment_channel is not None:
        q = q.filter(Expense.payment_channel == payment_channel)
    return int(q.scalar() or 0)


def month_total(year: int, month: int) -> int:
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return total_between(start, end)


def today_total(today: date | None = None) -> int:
    start, end = day_bounds(today or utcnow().date())
    return total_between(start, end)
