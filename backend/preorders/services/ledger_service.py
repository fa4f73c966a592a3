# Overview: Service-layer operations for the order ledger; derives and persists money totals.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from ..errors import ConsistencyWarning, NotFoundError
from ..extensions import db
from ..models import PreOrder, PreOrderItem, Payment
from ..models.orders import (
    PAYMENT_STATUS_UNPAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_OVERPAID,
)
from ..money import Money
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

"""
Order Ledger Invariants (authoritative)

- subtotal == sum(item.price * item.quantity)
- total_amount == subtotal + delivery_charges (cod_amount is tracked but
  never part of the total)
- advance_payment == sum(item.advance_payment)
- remaining_amount == total_amount - advance_payment, stored signed
- order_level_paid == sum of payments whose item_id is null
- balance_due == remaining_amount - order_level_paid, stored signed
- A payment counts exactly once: through its item's advance when it
  targets an item, through order_level_paid when it does not.
- aggregate() is the only place these formulas live.
"""


# Stored column -> LedgerTotals attribute
_DERIVED_COLUMNS = (
    ("subtotal_cents", "subtotal"),
    ("total_amount_cents", "total_amount"),
    ("advance_payment_cents", "advance_total"),
    ("remaining_amount_cents", "remaining_amount"),
    ("order_level_paid_cents", "order_level_paid"),
    ("balance_due_cents", "balance_due"),
)


@dataclass(frozen=True)
class LedgerTotals:
    subtotal: Money
    delivery_charges: Money
    cod_amount: Money
    total_amount: Money
    advance_total: Money
    remaining_amount: Money
    order_level_paid: Money
    balance_due: Money
    over_advanced_item_ids: tuple[int, ...] = ()

    @property
    def paid_total(self) -> Money:
        return self.advance_total.add(self.order_level_paid)

    @property
    def display_remaining(self) -> Money:
        return self.remaining_amount.clamp_non_negative()

    @property
    def display_balance_due(self) -> Money:
        return self.balance_due.clamp_non_negative()

    @property
    def is_overpaid(self) -> bool:
        return self.balance_due.is_negative()

    @property
    def overpaid_amount(self) -> Money:
        return self.balance_due.negate().clamp_non_negative()

    @property
    def payment_status(self) -> str:
        if self.balance_due.is_negative():
            return PAYMENT_STATUS_OVERPAID
        if self.paid_total.is_zero():
            return PAYMENT_STATUS_UNPAID if self.total_amount.is_positive() else PAYMENT_STATUS_PAID
        if self.balance_due.is_zero():
            return PAYMENT_STATUS_PAID
        return PAYMENT_STATUS_PARTIAL

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal.cents,
            "delivery_charges_cents": self.delivery_charges.cents,
            "cod_amount_cents": self.cod_amount.cents,
            "total_amount_cents": self.total_amount.cents,
            "advance_payment_cents": self.advance_total.cents,
            "remaining_amount_cents": self.remaining_amount.cents,
            "display_remaining_cents": self.display_remaining.cents,
            "order_level_paid_cents": self.order_level_paid.cents,
            "balance_due_cents": self.balance_due.cents,
            "display_balance_due_cents": self.display_balance_due.cents,
            "is_overpaid": self.is_overpaid,
            "overpaid_cents": self.overpaid_amount.cents,
            "payment_status": self.payment_status,
            "over_advanced_item_ids": list(self.over_advanced_item_ids),
        }


@dataclass
class LedgerRecomputation:
    order: PreOrder
    totals: LedgerTotals
    warnings: list[ConsistencyWarning] = field(default_factory=list)

    @property
    def drifted(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> dict:
        return {
            "order_id": self.order.id,
            "totals": self.totals.to_dict(),
            "drift": [w.to_dict() for w in self.warnings],
        }


# =============================================================================
# PURE AGGREGATION
# =============================================================================

def aggregate(
    items: Iterable,
    payments: Iterable,
    delivery_charges: Money,
    cod_amount: Money,
) -> LedgerTotals:
    """
    Derive an order's totals from its items and payments.

    Side-effect free. Items need price_cents, quantity and
    advance_payment_cents; payments need item_id and amount_cents.
    Callers persist the result with apply_totals().
    """
    subtotal = Money.zero()
    advance_total = Money.zero()
    over_advanced = []

    for item in items:
        line_value = Money(item.price_cents or 0).multiply(item.quantity or 0)
        advance = Money(item.advance_payment_cents or 0)
        subtotal = subtotal.add(line_value)
        advance_total = advance_total.add(advance)
        if advance > line_value:
            over_advanced.append(item.id)

    order_level_paid = Money.sum(
        Money(p.amount_cents) for p in payments if p.item_id is None
    )

    total_amount = subtotal.add(delivery_charges)
    remaining = total_amount.subtract(advance_total)

    return LedgerTotals(
        subtotal=subtotal,
        delivery_charges=delivery_charges,
        cod_amount=cod_amount,
        total_amount=total_amount,
        advance_total=advance_total,
        remaining_amount=remaining,
        order_level_paid=order_level_paid,
        balance_due=remaining.subtract(order_level_paid),
        over_advanced_item_ids=tuple(i for i in over_advanced if i is not None),
    )


def apply_totals(order: PreOrder, totals: LedgerTotals) -> None:
    """Write derived totals onto the order row (no commit)."""
    for column, attr in _DERIVED_COLUMNS:
        setattr(order, column, getattr(totals, attr).cents)
    order.payment_status = totals.payment_status


def detect_drift(order: PreOrder, totals: LedgerTotals) -> list[ConsistencyWarning]:
    warnings = []
    for column, attr in _DERIVED_COLUMNS:
        stored = getattr(order, column)
        computed = getattr(totals, attr).cents
        if stored != computed:
            warnings.append(ConsistencyWarning(order.id, column, stored, computed))
    if order.payment_status != totals.payment_status:
        warnings.append(ConsistencyWarning(order.id, "payment_status", order.payment_status, totals.payment_status))
    return warnings


# =============================================================================
# PERSISTED RECOMPUTATION
# =============================================================================

def load_order_for_update(order_id: int) -> PreOrder:
    order = (
        lock_for_update(db.session.query(PreOrder).filter_by(id=order_id))
        .populate_existing()
        .first()
    )
    if not order:
        raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)
    return order


def current_totals(order: PreOrder) -> LedgerTotals:
    """Aggregate from rows as they are in the current transaction."""
    items = (
        db.session.query(PreOrderItem)
        .filter_by(order_id=order.id)
        .populate_existing()
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter(Payment.order_id == order.id, Payment.item_id.is_(None))
        .all()
    )
    return aggregate(items, payments, order.delivery_charges, order.cod_amount)


def refresh_order_totals(order: PreOrder) -> LedgerTotals:
    """
    Recompute and stage the order's derived columns inside the caller's
    transaction. Every mutating service calls this before committing.
    """
    totals = current_totals(order)
    apply_totals(order, totals)
    return totals


def recompute_ledger(order_id: int) -> LedgerRecomputation:
    """
    Recompute and persist an order's totals.

    Idempotent: a second call with no intervening mutation writes nothing
    and reports no drift. Differences between stored and recomputed values
    are returned as ConsistencyWarning records (non-fatal) and logged.
    """
    def _op():
        order = load_order_for_update(order_id)
        totals = current_totals(order)
        warnings = detect_drift(order, totals)
        apply_totals(order, totals)
        db.session.commit()
        return LedgerRecomputation(order=order, totals=totals, warnings=warnings)

    result = run_with_retry(_op)
    for warning in result.warnings:
        logger.warning("Ledger drift corrected: %s", warning)
    return result


def rebuild_item_advances(order_id: int) -> LedgerRecomputation:
    """
    Rebuild every item's advance from its payment rows, then recompute.

    Payment rows are the source of truth; this repairs an order after a
    LedgerStaleError or any out-of-band edit.
    """
    def _op():
        order = load_order_for_update(order_id)
        warnings = []
        sums = dict(
            db.session.query(Payment.item_id, db.func.coalesce(db.func.sum(Payment.amount_cents), 0))
            .filter(Payment.order_id == order_id, Payment.item_id.isnot(None))
            .group_by(Payment.item_id)
            .all()
        )
        items = (
            db.session.query(PreOrderItem)
            .filter_by(order_id=order_id)
            .populate_existing()
            .all()
        )
        for item in items:
            expected = int(sums.get(item.id, 0))
            if item.advance_payment_cents != expected:
                warnings.append(ConsistencyWarning(
                    order_id, f"item[{item.id}].advance_payment_cents", item.advance_payment_cents, expected
                ))
                item.advance_payment_cents = expected
        db.session.flush()

        totals = current_totals(order)
        warnings.extend(detect_drift(order, totals))
        apply_totals(order, totals)
        db.session.commit()
        return LedgerRecomputation(order=order, totals=totals, warnings=warnings)

    result = run_with_retry(_op)
    for warning in result.warnings:
        logger.warning("Ledger repaired: %s", warning)
    return result


def ledger_snapshot(order: PreOrder) -> LedgerTotals:
    """Aggregate an already-loaded order without touching the store."""
    return aggregate(
        order.items,
        [p for p in order.payments if p.item_id is None],
        order.delivery_charges,
        order.cod_amount,
    )
