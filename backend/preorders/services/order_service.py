# Overview: Service-layer operations for pre-orders; header edits, lifecycle fields and deletion.

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Flight, Payment, PreOrder, ORDER_STATUSES
from ..validation import ORDER_POLICY, enforce_choice, enforce_rules_order, parse_int, validate_payload
from .concurrency import run_with_retry
from .item_sync_service import (
    ItemSyncPlan,
    ItemSyncResult,
    apply_item_drafts,
    record_initial_advances,
    validate_drafts,
)
from .ledger_service import load_order_for_update, refresh_order_totals
from .reminder_service import build_reminder

logger = logging.getLogger(__name__)


# Fields ChangeStager and bulk actions may set
STAGEABLE_FIELDS = ("status", "flight_id")


def _validated_header(data: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=PreOrder, payload=data, policy=ORDER_POLICY, partial=partial)
    enforce_choice(patch, "status", ORDER_STATUSES)
    enforce_rules_order(patch)
    return patch


def _require_refs(patch: dict) -> None:
    if "customer_id" in patch and not db.session.get(Customer, patch["customer_id"]):
        raise NotFoundError(f"Customer {patch['customer_id']} not found", customer_id=patch["customer_id"])
    if patch.get("flight_id") is not None and not db.session.get(Flight, patch["flight_id"]):
        raise NotFoundError(f"Flight {patch['flight_id']} not found", flight_id=patch["flight_id"])


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> PreOrder:
    order = db.session.get(PreOrder, order_id)
    if not order:
        raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)
    return order


def list_orders(
    *,
    status: str | None = None,
    flight_id: int | None = None,
    customer_id: int | None = None,
    payment_status: str | None = None,
) -> list[PreOrder]:
    query = db.session.query(PreOrder)
    if status:
        query = query.filter_by(status=status)
    if flight_id is not None:
        query = query.filter_by(flight_id=flight_id)
    if customer_id is not None:
        query = query.filter_by(customer_id=customer_id)
    if payment_status:
        query = query.filter_by(payment_status=payment_status)
    return query.order_by(PreOrder.created_at.desc(), PreOrder.id.desc()).all()


# =============================================================================
# CREATE / UPDATE
# =============================================================================

def create_order(
    data: dict,
    items=None,
    *,
    actor: str | None = None,
    reminder: dict | None = None,
    bank_account: str | None = None,
    payment_date=None,
) -> ItemSyncResult:
    """
    Create a pre-order with its items.

    The order, its items, its initial totals and the optional reminder are
    written in one transaction. Advances supplied on items are then recorded
    as automatic payments through the payment reconciler.

    Args:
        data: Header fields (customer_id, flight_id, status,
              delivery_charges_cents, cod_amount_cents)
        items: Item drafts (dicts or OrderItemDraft)
        actor: User id from the auth context
        reminder: Optional reminder fields (title, description, priority, due_date)
        bank_account: Account for automatic advance payments
        payment_date: Date for automatic advance payments
    """
    patch = _validated_header(data, partial=False)
    drafts = validate_drafts(items or [])
    pending_reminder = build_reminder(0, reminder, actor) if reminder else None
    warnings = []

    def _op():
        warnings.clear()
        _require_refs(patch)
        order = PreOrder(**patch)
        db.session.add(order)
        db.session.flush()

        plan, totals, inserted, _ = apply_item_drafts(
            order, drafts, bank_account=bank_account, warnings=warnings
        )
        if pending_reminder is not None:
            pending_reminder.order_id = order.id
            db.session.add(pending_reminder)
        db.session.commit()
        return order, plan, totals, inserted

    order, plan, totals, inserted = run_with_retry(_op)
    logger.info("Pre-order %s created for customer %s with %d item(s)", order.id, order.customer_id, len(inserted))

    automatic_ids, receipt = record_initial_advances(
        order.id, inserted, bank_account=bank_account, payment_date=payment_date, actor=actor, warnings=warnings
    )
    if receipt is not None:
        order, totals = receipt.order, receipt.totals

    return ItemSyncResult(
        order=order,
        plan=plan,
        totals=totals,
        inserted_ids=[item_id for item_id, _ in inserted],
        automatic_payment_ids=automatic_ids,
        warnings=warnings,
    )


def update_order(
    order_id: int,
    header_changes: dict | None = None,
    items=None,
    *,
    actor: str | None = None,
    bank_account: str | None = None,
    payment_date=None,
) -> ItemSyncResult:
    """
    Edit a pre-order's header and, when items is given, its item set.

    items=None leaves the items alone; items=[] deletes them all.
    """
    patch = _validated_header(header_changes or {}, partial=True)
    drafts = validate_drafts(items) if items is not None else None
    warnings = []

    def _op():
        warnings.clear()
        order = load_order_for_update(order_id)
        _require_refs(patch)
        for key, value in patch.items():
            setattr(order, key, value)

        plan, inserted, retargeted = ItemSyncPlan(), [], []
        if drafts is not None:
            plan, totals, inserted, retargeted = apply_item_drafts(
                order, drafts, bank_account=bank_account, warnings=warnings
            )
        else:
            totals = refresh_order_totals(order)
        db.session.commit()
        return order, plan, totals, inserted, retargeted

    order, plan, totals, inserted, retargeted = run_with_retry(_op)
    logger.info("Pre-order %s updated: fields=%s items=%s", order_id, sorted(patch), drafts is not None)

    automatic_ids, receipt = record_initial_advances(
        order_id, inserted, bank_account=bank_account, payment_date=payment_date, actor=actor, warnings=warnings
    )
    if receipt is not None:
        order, totals = receipt.order, receipt.totals

    return ItemSyncResult(
        order=order,
        plan=plan,
        totals=totals,
        inserted_ids=[item_id for item_id, _ in inserted],
        retargeted_payment_ids=retargeted,
        automatic_payment_ids=automatic_ids,
        warnings=warnings,
    )


# =============================================================================
# LIFECYCLE FIELDS (never touch money)
# =============================================================================

def _validated_lifecycle(changes: dict) -> dict:
    unknown = set(changes) - set(STAGEABLE_FIELDS)
    if unknown:
        raise ValidationError(
            f"Field(s) {sorted(unknown)} cannot be staged. Must be one of {list(STAGEABLE_FIELDS)}"
        )
    patch = {}
    if "status" in changes:
        status = changes["status"]
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status!r}. Must be one of {list(ORDER_STATUSES)}")
        patch["status"] = status
    if "flight_id" in changes:
        flight_id = changes["flight_id"]
        patch["flight_id"] = None if flight_id in ("", None) else parse_int(flight_id, "flight_id")
    return patch


def apply_lifecycle_changes(order_id: int, changes: dict) -> PreOrder:
    """
    Set status and/or flight on one order in a single transaction.

    Money columns are left untouched.
    """
    patch = _validated_lifecycle(changes)

    def _op():
        order = load_order_for_update(order_id)
        flight_id = patch.get("flight_id")
        if flight_id is not None and not db.session.get(Flight, flight_id):
            raise NotFoundError(f"Flight {flight_id} not found", flight_id=flight_id)
        for key, value in patch.items():
            setattr(order, key, value)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Pre-order %s lifecycle update: %s", order_id, patch)
    return order


def set_order_status(order_id: int, status: str) -> PreOrder:
    return apply_lifecycle_changes(order_id, {"status": status})


def set_order_flight(order_id: int, flight_id: int | None) -> PreOrder:
    return apply_lifecycle_changes(order_id, {"flight_id": flight_id})


# =============================================================================
# DELETE
# =============================================================================

def delete_order(order_id: int, *, cascade_payments: bool = False) -> None:
    """
    Delete a pre-order with its items and reminders.

    An order that still has payments is only deleted when cascade_payments
    is set; the payments are deleted with it.
    """
    def _op():
        order = load_order_for_update(order_id)
        payments = db.session.query(Payment).filter_by(order_id=order_id).all()
        if payments and not cascade_payments:
            raise ConflictError(
                f"Pre-order {order_id} has {len(payments)} payment(s); pass cascade_payments to delete them",
                order_id=order_id,
                payment_count=len(payments),
            )
        for payment in payments:
            db.session.delete(payment)
        db.session.delete(order)
        db.session.commit()
        return len(payments)

    deleted_payments = run_with_retry(_op)
    logger.info("Pre-order %s deleted (payments removed: %d)", order_id, deleted_payments)
