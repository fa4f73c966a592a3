# Overview: Service-layer operations for payments; the only path that turns a payment into ledger state.

"""
Payment Reconciliation Service

WHY: A payment changes three things: the payment row, the advance of the
item it targets (if any) and the parent order's aggregates. This module
is the single place where those writes happen, in a fixed order.

DESIGN PRINCIPLES:
- Validate first: nothing is written until amount, purpose, targets and
  the overpayment policy have been checked.
- Payment row and item advance together: both are written in one
  transaction. If the guarded advance update fails (strict limit reached by
  a concurrent writer, advance would go negative) the payment row is rolled
  back with it and nothing is written.
- Atomic increments: item advances are changed with
  "advance = advance + :delta" in SQL, never by writing a value computed
  from an earlier read, so two staff members paying the same item at once
  cannot lose an update.
- Explicit partial failure: the order aggregates are refreshed in a second
  transaction. If that fails, LedgerStaleError is raised carrying the
  payment id; the payment and item rows are already committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import update

from ..errors import (
    ConflictError,
    LedgerError,
    LedgerStaleError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)
from ..extensions import db
from ..models import PreOrder, PreOrderItem, Payment, PAYMENT_PURPOSES
from ..models.payments import PURPOSE_ADVANCE
from ..money import Money
from ..time_utils import parse_iso_date, today
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import LedgerTotals, load_order_for_update, refresh_order_totals, ledger_snapshot

logger = logging.getLogger(__name__)


POLICY_WARN = "warn"
POLICY_STRICT = "strict"
VALID_POLICIES = (POLICY_WARN, POLICY_STRICT)

UPDATABLE_FIELDS = {"amount_cents", "purpose", "bank_account", "tally", "screenshot_ref", "payment_date"}


@dataclass
class PaymentReceipt:
    """Outcome of a reconciled payment write."""
    payment: Payment | None
    order: PreOrder
    item: PreOrderItem | None
    totals: LedgerTotals
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "payment": self.payment.to_dict() if self.payment else None,
            "order": self.order.to_dict(),
            "item": self.item.to_dict() if self.item else None,
            "ledger": self.totals.to_dict(),
            "warnings": list(self.warnings),
        }


# =============================================================================
# POLICY
# =============================================================================

def overpayment_policy() -> str:
    policy = (current_app.config.get("LEDGER_OVERPAYMENT_POLICY") or POLICY_WARN).lower()
    if policy not in VALID_POLICIES:
        raise ValidationError(f"Unknown overpayment policy {policy!r}")
    return policy


def overpayment_tolerance() -> Money:
    return Money(int(current_app.config.get("LEDGER_OVERPAYMENT_TOLERANCE_CENTS", 0)))


def check_item_advance(item: PreOrderItem, new_advance: Money, *, allow_overpayment: bool | None = None) -> str | None:
    """
    Apply the overpayment policy to a prospective item advance.

    Returns a warning message when the advance exceeds the item's value but
    is allowed, None when it fits. Raises OverpaymentError in strict mode
    unless allow_overpayment is set.
    """
    limit = item.line_value.add(overpayment_tolerance())
    if new_advance <= limit:
        return None

    message = (
        f"Advance {new_advance.format()} exceeds value {item.line_value.format()} "
        f"of item {item.id} ({item.product_name})"
    )
    if overpayment_policy() == POLICY_STRICT and not allow_overpayment:
        raise OverpaymentError(
            message,
            item_id=item.id,
            advance_cents=new_advance.cents,
            line_value_cents=item.line_value.cents,
        )
    logger.warning("Overpayment allowed: %s", message)
    return message


def _enforce_limit(allow_overpayment: bool | None) -> bool:
    return overpayment_policy() == POLICY_STRICT and not allow_overpayment


# =============================================================================
# INPUT VALIDATION
# =============================================================================

def _validate_amount(value) -> Money:
    amount = Money.parse(value, field="amount_cents")
    if not amount.is_positive():
        raise ValidationError("Payment amount must be positive")
    return amount


def _validate_purpose(purpose: str | None) -> str:
    purpose = (purpose or "").strip().lower()
    if purpose not in PAYMENT_PURPOSES:
        raise ValidationError(f"Invalid payment purpose: {purpose!r}. Must be one of {list(PAYMENT_PURPOSES)}")
    return purpose


def _validate_bank_account(bank_account: str | None) -> str:
    bank_account = (bank_account or "").strip()
    if not bank_account:
        raise ValidationError("bank_account is required")
    return bank_account


def _validate_date(value):
    if value is None or value == "":
        return today()
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("payment_date must be an ISO-8601 date")


def _load_target(order_id: int, item_id: int | None) -> tuple[PreOrder, PreOrderItem | None]:
    order = db.session.get(PreOrder, order_id)
    if not order:
        raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)
    if item_id is None:
        return order, None
    item = db.session.get(PreOrderItem, item_id, populate_existing=True)
    if not item:
        raise NotFoundError(f"Pre-order item {item_id} not found", item_id=item_id)
    if item.order_id != order.id:
        raise ValidationError(
            f"Item {item_id} does not belong to pre-order {order_id}",
            item_id=item_id,
            order_id=order_id,
        )
    return order, item


# =============================================================================
# LEDGER STEP (item advance + order aggregates)
# =============================================================================

def _apply_item_delta(order_id: int, item_id: int, delta: Money, *, enforce_limit: bool) -> None:
    """
    Atomically shift an item's advance by delta inside the caller's
    transaction.

    The WHERE clause keeps the advance non-negative and, when enforce_limit
    is set, within the item's value plus tolerance. A zero rowcount means
    one of those guards failed against the row as it is now; the caller's
    transaction must then be rolled back.
    """
    stmt = (
        update(PreOrderItem)
        .where(PreOrderItem.id == item_id, PreOrderItem.order_id == order_id)
        .where(PreOrderItem.advance_payment_cents + delta.cents >= 0)
        .values(
            advance_payment_cents=PreOrderItem.advance_payment_cents + delta.cents,
            version_id=PreOrderItem.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if enforce_limit:
        stmt = stmt.where(
            PreOrderItem.advance_payment_cents + delta.cents
            <= PreOrderItem.price_cents * PreOrderItem.quantity + overpayment_tolerance().cents
        )
    result = db.session.execute(stmt)
    if result.rowcount == 1:
        return

    current = (
        db.session.query(PreOrderItem.advance_payment_cents)
        .filter(PreOrderItem.id == item_id, PreOrderItem.order_id == order_id)
        .scalar()
    )
    if current is None:
        raise NotFoundError(f"Pre-order item {item_id} not found", item_id=item_id)
    if current + delta.cents < 0:
        raise ConflictError(
            f"Item {item_id} advance {current} cannot be reduced by {-delta.cents}; "
            f"rebuild the order's advances first",
            item_id=item_id,
            advance_cents=current,
            delta_cents=delta.cents,
        )
    raise OverpaymentError(
        f"Item {item_id} advance {current} plus {delta.cents} exceeds its value",
        item_id=item_id,
        advance_cents=current,
        delta_cents=delta.cents,
    )


def _refresh_ledger(
    *,
    payment_id: int,
    order_id: int,
    item_id: int | None,
    action: str,
) -> tuple[PreOrder, PreOrderItem | None, LedgerTotals]:
    """
    Second half of every payment write: the order aggregates.

    Runs in its own retried transaction. Any failure here is reported as
    LedgerStaleError because the payment row and item advance are already
    committed.
    """
    def _op():
        order = load_order_for_update(order_id)
        totals = refresh_order_totals(order)
        db.session.commit()
        item = db.session.get(PreOrderItem, item_id, populate_existing=True) if item_id is not None else None
        return order, item, totals

    try:
        return run_with_retry(_op)
    except LedgerError as exc:
        logger.error(
            "Payment %s %s but ledger for order %s is stale: %s",
            payment_id, action, order_id, exc,
        )
        raise LedgerStaleError(
            f"Payment {action} but ledger not fully updated: {exc.message}",
            payment_id=payment_id,
            order_id=order_id,
            item_id=item_id,
            cause=type(exc).__name__,
        ) from exc


# =============================================================================
# PAYMENT CREATION
# =============================================================================

def record_payment(
    order_id: int,
    amount_cents,
    purpose: str,
    bank_account: str,
    payment_date=None,
    *,
    item_id: int | None = None,
    screenshot_ref: str | None = None,
    tally: bool = False,
    actor: str | None = None,
    is_automatic: bool = False,
    allow_overpayment: bool | None = None,
) -> PaymentReceipt:
    """
    Record a payment and bring the ledger up to date.

    Args:
        order_id: Pre-order being paid
        amount_cents: Amount in minor units (> 0)
        purpose: advance, final_remaining, delivery_charges or cod
        bank_account: Account the money arrived in
        payment_date: ISO date (defaults to today)
        item_id: Item the payment is for; None applies it to the order
        screenshot_ref: Reference to an uploaded proof of payment
        tally: Whether the payment has been tallied against the bank
        actor: User id from the auth context
        is_automatic: True for system-created advance payments
        allow_overpayment: Override strict mode for this payment

    Returns:
        PaymentReceipt with the payment, item, order and fresh totals

    Raises:
        ValidationError / OverpaymentError: before anything is written
        NotFoundError: order or item unknown
        PersistenceError: payment row could not be written
        OverpaymentError: also raised, with nothing written, when a concurrent
            payment takes the item past its limit in strict mode
        LedgerStaleError: payment and item advance written, order update failed
    """
    amount = _validate_amount(amount_cents)
    purpose = _validate_purpose(purpose)
    bank_account = _validate_bank_account(bank_account)
    paid_on = _validate_date(payment_date)

    order, item = _load_target(order_id, item_id)
    warnings = []
    if item is not None:
        warning = check_item_advance(item, item.advance_payment.add(amount), allow_overpayment=allow_overpayment)
        if warning:
            warnings.append(warning)

    customer_id = order.customer_id
    enforce_limit = _enforce_limit(allow_overpayment)

    def _insert():
        payment = Payment(
            customer_id=customer_id,
            order_id=order_id,
            item_id=item_id,
            amount_cents=amount.cents,
            purpose=purpose,
            bank_account=bank_account,
            tally=bool(tally),
            screenshot_ref=screenshot_ref,
            payment_date=paid_on,
            is_automatic=bool(is_automatic),
            updated_by=actor,
        )
        db.session.add(payment)
        db.session.flush()
        if item_id is not None:
            _apply_item_delta(order_id, item_id, amount, enforce_limit=enforce_limit)
        db.session.commit()
        return payment

    payment = run_with_retry(_insert)
    logger.info(
        "Payment %s recorded: order=%s item=%s amount=%s purpose=%s automatic=%s",
        payment.id, order_id, item_id, amount.cents, purpose, is_automatic,
    )

    order, item, totals = _refresh_ledger(
        payment_id=payment.id,
        order_id=order_id,
        item_id=item_id,
        action="recorded",
    )
    return PaymentReceipt(payment=payment, order=order, item=item, totals=totals, warnings=warnings)


# =============================================================================
# PAYMENT EDITS
# =============================================================================

def update_payment(
    payment_id: int,
    changes: dict,
    *,
    actor: str | None = None,
    allow_overpayment: bool | None = None,
) -> PaymentReceipt:
    """
    Edit a payment's amount or metadata.

    Amount changes shift the target item's advance by the difference and
    recompute the order. Payments cannot be moved to another order or item;
    delete and record again instead.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown & {"order_id", "item_id", "customer_id"}:
        raise ValidationError("Payments cannot be re-targeted; delete and record a new payment")
    if unknown:
        raise ValidationError(f"Unknown payment fields: {sorted(unknown)}")

    patch = {}
    if "amount_cents" in changes:
        patch["amount_cents"] = _validate_amount(changes["amount_cents"]).cents
    if "purpose" in changes:
        patch["purpose"] = _validate_purpose(changes["purpose"])
    if "bank_account" in changes:
        patch["bank_account"] = _validate_bank_account(changes["bank_account"])
    if "payment_date" in changes:
        patch["payment_date"] = _validate_date(changes["payment_date"])
    if "tally" in changes:
        patch["tally"] = bool(changes["tally"])
    if "screenshot_ref" in changes:
        patch["screenshot_ref"] = (changes["screenshot_ref"] or None)

    warnings = []

    def _op():
        payment = (
            lock_for_update(db.session.query(Payment).filter_by(id=payment_id))
            .populate_existing()
            .first()
        )
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)

        old_amount = payment.amount
        new_amount = Money(patch.get("amount_cents", old_amount.cents))
        delta = new_amount.subtract(old_amount)

        if payment.item_id is not None and delta.is_positive():
            item = db.session.get(PreOrderItem, payment.item_id, populate_existing=True)
            if item is not None:
                warning = check_item_advance(
                    item, item.advance_payment.add(delta), allow_overpayment=allow_overpayment
                )
                if warning:
                    warnings.append(warning)

        for key, value in patch.items():
            setattr(payment, key, value)
        if actor:
            payment.updated_by = actor
        db.session.flush()
        if payment.item_id is not None and not delta.is_zero():
            _apply_item_delta(
                payment.order_id,
                payment.item_id,
                delta,
                enforce_limit=_enforce_limit(allow_overpayment) and delta.is_positive(),
            )
        db.session.commit()
        return payment, delta

    payment, delta = run_with_retry(_op)
    logger.info("Payment %s updated: fields=%s delta=%s", payment_id, sorted(patch), delta.cents)

    if delta.is_zero():
        order = db.session.get(PreOrder, payment.order_id)
        item = db.session.get(PreOrderItem, payment.item_id) if payment.item_id else None
        return PaymentReceipt(payment=payment, order=order, item=item, totals=ledger_snapshot(order), warnings=warnings)

    order, item, totals = _refresh_ledger(
        payment_id=payment.id,
        order_id=payment.order_id,
        item_id=payment.item_id,
        action="updated",
    )
    return PaymentReceipt(payment=payment, order=order, item=item, totals=totals, warnings=warnings)


def delete_payment(payment_id: int) -> PaymentReceipt:
    """
    Delete a payment and reverse its effect on the ledger.
    """
    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
        order_id, item_id, amount = payment.order_id, payment.item_id, payment.amount
        db.session.delete(payment)
        db.session.flush()
        if item_id is not None:
            _apply_item_delta(order_id, item_id, amount.negate(), enforce_limit=False)
        db.session.commit()
        return order_id, item_id, amount

    order_id, item_id, amount = run_with_retry(_op)
    logger.info("Payment %s deleted: order=%s item=%s amount=%s", payment_id, order_id, item_id, amount.cents)

    order, item, totals = _refresh_ledger(
        payment_id=payment_id,
        order_id=order_id,
        item_id=item_id,
        action="deleted",
    )
    return PaymentReceipt(payment=None, order=order, item=item, totals=totals)


def record_automatic_advance(
    order_id: int,
    item_id: int,
    amount_cents: int,
    *,
    bank_account: str,
    payment_date=None,
    actor: str | None = None,
) -> PaymentReceipt:
    """
    Record the system-generated advance payment for an item that was saved
    with an initial advance.
    """
    return record_payment(
        order_id,
        amount_cents,
        PURPOSE_ADVANCE,
        bank_account,
        payment_date,
        item_id=item_id,
        actor=actor,
        is_automatic=True,
    )


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found", payment_id=payment_id)
    return payment


def list_order_payments(order_id: int, automatic: bool | None = None) -> list[Payment]:
    """
    Get all payments for a pre-order, oldest first.

    automatic=True/False narrows to system-generated or manual payments.
    """
    query = db.session.query(Payment).filter_by(order_id=order_id)
    if automatic is not None:
        query = query.filter_by(is_automatic=automatic)
    return query.order_by(Payment.payment_date, Payment.id).all()


def get_payment_summary(order_id: int) -> dict:
    """
    Payment summary for a pre-order.

    Returns the ledger totals plus the payments split by target.
    """
    order = db.session.get(PreOrder, order_id)
    if not order:
        raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)

    payments = list_order_payments(order_id)
    return {
        "order_id": order_id,
        "ledger": ledger_snapshot(order).to_dict(),
        "item_payments": [p.to_dict() for p in payments if p.item_id is not None],
        "order_payments": [p.to_dict() for p in payments if p.item_id is None],
    }
