# Overview: Read-only dashboard figures computed from freshly aggregated order totals.

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import selectinload

from ..errors import ValidationError
from ..extensions import db
from ..models import PreOrder, ORDER_STATUSES
from ..time_utils import today
from .ledger_service import LedgerTotals, ledger_snapshot


# Cancelled orders are never revenue and owe nothing
EXCLUDED_STATUSES = ("cancelled",)

MAX_MONTHS = 24


@dataclass(frozen=True)
class OrderFigures:
    order_id: int
    customer_id: int
    customer_name: str
    status: str
    created_on: date
    totals: LedgerTotals

    @property
    def period(self) -> str:
        return _period(self.created_on)

    @property
    def counts_as_revenue(self) -> bool:
        return self.status not in EXCLUDED_STATUSES


def _period(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def _recent_periods(as_of: date, count: int) -> list[str]:
    """The count calendar months ending with as_of's month, oldest first."""
    year, month = as_of.year, as_of.month
    periods = []
    for _ in range(count):
        periods.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(periods))


def load_figures() -> list[OrderFigures]:
    """
    Every order with totals from aggregate(), never the stored columns.
    """
    orders = (
        db.session.query(PreOrder)
        .options(
            selectinload(PreOrder.items),
            selectinload(PreOrder.payments),
            selectinload(PreOrder.customer),
        )
        .order_by(PreOrder.id)
        .all()
    )
    return [
        OrderFigures(
            order_id=order.id,
            customer_id=order.customer_id,
            customer_name=order.customer.name if order.customer else "Unknown",
            status=order.status,
            created_on=order.created_at.date(),
            totals=ledger_snapshot(order),
        )
        for order in orders
    ]


# =============================================================================
# FIGURES
# =============================================================================

def _revenue(figures: list[OrderFigures], as_of: date) -> dict:
    current = _period(as_of)
    billable = [f for f in figures if f.counts_as_revenue]
    return {
        "period": current,
        "month_cents": sum(f.totals.total_amount.cents for f in billable if f.period == current),
        "lifetime_cents": sum(f.totals.total_amount.cents for f in billable),
    }


def _monthly(figures: list[OrderFigures], as_of: date, months: int) -> list[dict]:
    periods = _recent_periods(as_of, months)
    revenue = dict.fromkeys(periods, 0)
    counts = dict.fromkeys(periods, 0)
    for f in figures:
        if f.counts_as_revenue and f.period in revenue:
            revenue[f.period] += f.totals.total_amount.cents
            counts[f.period] += 1
    return [
        {"period": period, "revenue_cents": revenue[period], "order_count": counts[period]}
        for period in periods
    ]


def _status_counts(figures: list[OrderFigures], as_of: date) -> dict:
    by_status = dict.fromkeys(ORDER_STATUSES, 0)
    for f in figures:
        by_status[f.status] = by_status.get(f.status, 0) + 1
    current = _period(as_of)
    return {
        "total": len(figures),
        "created_this_month": sum(1 for f in figures if f.period == current),
        "by_status": by_status,
    }


def _outstanding(figures: list[OrderFigures]) -> dict:
    owing = [f for f in figures if f.counts_as_revenue and f.totals.display_balance_due.is_positive()]
    return {
        "balance_due_cents": sum(f.totals.display_balance_due.cents for f in owing),
        "order_count": len(owing),
    }


def _top_customers(figures: list[OrderFigures], limit: int) -> list[dict]:
    spent = defaultdict(int)
    orders = defaultdict(int)
    names = {}
    for f in figures:
        if not f.counts_as_revenue:
            continue
        spent[f.customer_id] += f.totals.total_amount.cents
        orders[f.customer_id] += 1
        names[f.customer_id] = f.customer_name

    ranked = sorted(spent, key=lambda cid: (-spent[cid], cid))[:limit]
    return [
        {
            "customer_id": cid,
            "name": names[cid],
            "total_spent_cents": spent[cid],
            "order_count": orders[cid],
        }
        for cid in ranked
    ]


def _check_months(months: int) -> None:
    if not 1 <= months <= MAX_MONTHS:
        raise ValidationError(f"months must be between 1 and {MAX_MONTHS}")


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise ValidationError("limit must be >= 1")


# =============================================================================
# REPORTS
# =============================================================================

def monthly_revenue(*, months: int = 6, as_of: date | None = None) -> dict:
    _check_months(months)
    as_of = as_of or today()
    return {
        "as_of": as_of.isoformat(),
        "rows": _monthly(load_figures(), as_of, months),
    }


def top_customers(*, limit: int = 5) -> list[dict]:
    _check_limit(limit)
    return _top_customers(load_figures(), limit)


def dashboard(*, as_of: date | None = None, months: int = 6, top: int = 5) -> dict:
    """
    Admin dashboard figures from a single load of every order.

    - revenue: total_amount of this month's and all orders
    - outstanding: balance still due across open orders
    - orders: counts per status plus orders created this month
    - monthly_revenue: the last `months` calendar months, oldest first
    - top_customers: customers by total spent, highest first

    Cancelled orders are counted under orders but excluded from revenue,
    outstanding balance and customer spend.
    """
    _check_months(months)
    _check_limit(top)
    as_of = as_of or today()
    figures = load_figures()
    return {
        "as_of": as_of.isoformat(),
        "revenue": _revenue(figures, as_of),
        "outstanding": _outstanding(figures),
        "orders": _status_counts(figures, as_of),
        "monthly_revenue": _monthly(figures, as_of, months),
        "top_customers": _top_customers(figures, top),
    }
