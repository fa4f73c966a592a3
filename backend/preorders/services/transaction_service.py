# Overview: Service-layer operations for brand transactions (the shop's payables ledger).

"""
Brand Transaction Service

WHY: Staff record what the shop owes each brand for the stock behind its
pre-orders. Customer money never flows through here; this ledger only
tracks whether each purchase is confirmed and settled.

Every write records who made it (updated_by) and what it did
(change_description).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy import case, func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import BrandTransaction, CONFIRMATION_STATUSES, PAY_STATUSES
from ..models.transactions import CONFIRMATION_NOT_CONFIRMED, PAY_STATUS_PAID, PAY_STATUS_UNPAID
from ..time_utils import today
from ..validation import (
    TRANSACTION_POLICY,
    TRANSACTION_UPDATE_POLICY,
    enforce_choice,
    enforce_rules_transaction,
    validate_payload,
)
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


SORTABLE_COLUMNS = {
    "transaction_date": BrandTransaction.transaction_date,
    "due_date": BrandTransaction.due_date,
    "amount_cents": BrandTransaction.amount_cents,
    "brand": BrandTransaction.brand,
    "updated_at": BrandTransaction.updated_at,
}
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class TransactionPage:
    items: list[BrandTransaction]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict:
        return {
            "items": [t.to_dict() for t in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


def _validated(data: dict, *, partial: bool) -> dict:
    policy = TRANSACTION_UPDATE_POLICY if partial else TRANSACTION_POLICY
    patch = validate_payload(model=BrandTransaction, payload=data, policy=policy, partial=partial)
    enforce_rules_transaction(patch)
    enforce_choice(patch, "confirmation_status", CONFIRMATION_STATUSES)
    enforce_choice(patch, "pay_status", PAY_STATUSES)
    return patch


def _check_dates(transaction_date: date | None, due_date: date | None) -> None:
    if transaction_date and due_date and due_date < transaction_date:
        raise ValidationError("due_date cannot be before transaction_date")


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(transaction_id: int) -> BrandTransaction:
    transaction = db.session.get(BrandTransaction, transaction_id)
    if not transaction:
        raise NotFoundError(f"Transaction {transaction_id} not found", transaction_id=transaction_id)
    return transaction


def list_transactions(
    *,
    search: str | None = None,
    confirmation_status: str | None = None,
    pay_status: str | None = None,
    sort: str = "transaction_date",
    direction: str = "desc",
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> TransactionPage:
    """
    One page of transactions.

    search matches brand or remarks (case-insensitive). Ties on the sort
    column are broken by id so pages never overlap.
    """
    if sort not in SORTABLE_COLUMNS:
        raise ValidationError(f"Cannot sort by {sort!r}. Must be one of {sorted(SORTABLE_COLUMNS)}")
    if direction not in ("asc", "desc"):
        raise ValidationError("direction must be asc or desc")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

    query = db.session.query(BrandTransaction)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(BrandTransaction.brand.ilike(pattern), BrandTransaction.remarks.ilike(pattern)))
    if confirmation_status:
        query = query.filter(BrandTransaction.confirmation_status == confirmation_status)
    if pay_status:
        query = query.filter(BrandTransaction.pay_status == pay_status)

    total = query.count()
    column = SORTABLE_COLUMNS[sort]
    if direction == "asc":
        query = query.order_by(column.asc(), BrandTransaction.id.asc())
    else:
        query = query.order_by(column.desc(), BrandTransaction.id.desc())
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return TransactionPage(items=items, total=total, page=page, page_size=page_size)


def transaction_summary(as_of: date | None = None) -> dict:
    """
    Counts and amounts for the transactions page header.

    Overdue means unpaid with a due date before as_of (default today).
    """
    as_of = as_of or today()
    unpaid = BrandTransaction.pay_status == PAY_STATUS_UNPAID
    overdue = unpaid & BrandTransaction.due_date.isnot(None) & (BrandTransaction.due_date < as_of)

    def _count(condition):
        return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

    def _amount(condition):
        return func.coalesce(func.sum(case((condition, BrandTransaction.amount_cents), else_=0)), 0)

    row = db.session.query(
        func.count(BrandTransaction.id).label("total"),
        _count(BrandTransaction.confirmation_status == CONFIRMATION_NOT_CONFIRMED).label("not_confirmed"),
        _count(BrandTransaction.pay_status == PAY_STATUS_PAID).label("paid"),
        _count(unpaid).label("unpaid"),
        _count(overdue).label("overdue"),
        func.coalesce(func.sum(BrandTransaction.amount_cents), 0).label("total_cents"),
        _amount(unpaid).label("unpaid_cents"),
        _amount(overdue).label("overdue_cents"),
    ).one()

    return {
        "as_of": as_of.isoformat(),
        "total": int(row.total or 0),
        "not_confirmed": int(row.not_confirmed or 0),
        "paid": int(row.paid or 0),
        "unpaid": int(row.unpaid or 0),
        "overdue": int(row.overdue or 0),
        "total_cents": int(row.total_cents or 0),
        "unpaid_cents": int(row.unpaid_cents or 0),
        "overdue_cents": int(row.overdue_cents or 0),
    }


# =============================================================================
# WRITES
# =============================================================================

def create_transaction(data: dict, actor: str) -> BrandTransaction:
    if not actor:
        raise ValidationError("A user is required to record a transaction")
    patch = _validated(data, partial=False)
    _check_dates(patch.get("transaction_date"), patch.get("due_date"))

    def _op():
        transaction = BrandTransaction(
            user_id=actor,
            updated_by=actor,
            change_description="Transaction created",
            **patch,
        )
        db.session.add(transaction)
        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    logger.info(
        "Transaction %s created: brand=%s amount=%s by %s",
        transaction.id, transaction.brand, transaction.amount_cents, actor,
    )
    return transaction


def update_transaction(transaction_id: int, data: dict, actor: str | None = None) -> BrandTransaction:
    patch = _validated(data, partial=True)
    patch.setdefault("change_description", "Transaction updated")

    def _op():
        transaction = get_transaction(transaction_id)
        _check_dates(
            patch.get("transaction_date", transaction.transaction_date),
            patch.get("due_date", transaction.due_date),
        )
        for key, value in patch.items():
            setattr(transaction, key, value)
        if actor:
            transaction.updated_by = actor
        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    logger.info("Transaction %s updated: %s", transaction_id, transaction.change_description)
    return transaction


def delete_transaction(transaction_id: int) -> None:
    def _op():
        transaction = get_transaction(transaction_id)
        db.session.delete(transaction)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Transaction %s deleted", transaction_id)
