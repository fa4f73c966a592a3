# Overview: Service-layer operations for pre-order line items; diffs and applies item edits by id.

"""
Line Item Synchronization

WHY: Payments reference items by id. Replacing an order's items on every
save (delete all, insert all) would orphan those payments and lose each
item's advance. Edits are therefore diffed against the stored rows and
applied as the smallest set of inserts, updates and deletes.

RULES:
- A draft carrying the id of an existing item of the same order updates
  that row in place. Its advance is never taken from the draft; advances
  only move through payments.
- A draft with no id, or with an id this order does not own, is inserted.
  Unknown ids are logged and degraded to inserts rather than failing.
- An existing item no draft references is deleted. Its payments are kept
  and re-targeted to the order level.
- Drafts with a blank product name are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable

from ..errors import OverpaymentError, ValidationError
from ..extensions import db
from ..models import PreOrder, PreOrderItem, Payment
from ..money import Money
from ..validation import parse_int
from .concurrency import run_with_retry
from .ledger_service import LedgerTotals, load_order_for_update, refresh_order_totals
from .payment_service import POLICY_STRICT, overpayment_policy, record_automatic_advance

logger = logging.getLogger(__name__)


# Fields compared when deciding whether an existing item changed
CONTENT_FIELDS = ("product_name", "shade", "size", "link", "quantity", "price_cents")

MAX_TEXT_LENGTHS = {"product_name": 255, "shade": 128, "size": 64, "link": 1024}


@dataclass(frozen=True)
class OrderItemDraft:
    """User-edited line item as submitted by an order editor."""
    product_name: str = ""
    shade: str = ""
    size: str = ""
    link: str = ""
    quantity: int = 1
    price_cents: int = 0
    advance_payment_cents: int = 0
    id: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItemDraft":
        if not isinstance(data, dict):
            raise ValidationError("Each item must be an object")

        item_id = data.get("id")
        if item_id in ("", None):
            item_id = None
        else:
            item_id = parse_int(item_id, "id")

        quantity = data.get("quantity")
        quantity = 1 if quantity in (None, "") else parse_int(quantity, "quantity")

        texts = {}
        for key, limit in MAX_TEXT_LENGTHS.items():
            value = data.get(key)
            value = "" if value is None else str(value).strip()
            if len(value) > limit:
                raise ValidationError(f"{key} exceeds max length {limit}")
            texts[key] = value

        return cls(
            id=item_id,
            quantity=quantity,
            price_cents=Money.parse(data.get("price_cents"), field="price_cents").cents,
            advance_payment_cents=Money.parse(
                data.get("advance_payment_cents"), field="advance_payment_cents"
            ).cents,
            **texts,
        )

    def is_blank(self) -> bool:
        return not self.product_name

    def validate(self) -> None:
        if self.quantity < 1:
            raise ValidationError(f"quantity must be >= 1 for item {self.product_name!r}")
        if self.price_cents < 0:
            raise ValidationError(f"price_cents must be >= 0 for item {self.product_name!r}")
        if self.advance_payment_cents < 0:
            raise ValidationError(f"advance_payment_cents must be >= 0 for item {self.product_name!r}")

    @property
    def line_value(self) -> Money:
        return Money(self.price_cents).multiply(self.quantity)

    def content(self) -> dict:
        return {name: getattr(self, name) for name in CONTENT_FIELDS}


@dataclass(frozen=True)
class ItemUpdate:
    item_id: int
    draft: OrderItemDraft
    changes: dict

    def to_dict(self) -> dict:
        return {"item_id": self.item_id, "changes": dict(self.changes)}


@dataclass
class ItemSyncPlan:
    inserts: list[OrderItemDraft] = field(default_factory=list)
    updates: list[ItemUpdate] = field(default_factory=list)
    deletes: list[int] = field(default_factory=list)
    unchanged: list[int] = field(default_factory=list)
    # Draft ids that matched no existing item and were turned into inserts
    degraded_ids: list[int] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)

    def to_dict(self) -> dict:
        return {
            "inserts": [
                {k: v for k, v in vars(d).items() if k != "id"} for d in self.inserts
            ],
            "updates": [u.to_dict() for u in self.updates],
            "deletes": list(self.deletes),
            "unchanged": list(self.unchanged),
            "degraded_ids": list(self.degraded_ids),
        }


@dataclass
class ItemSyncResult:
    order: PreOrder
    plan: ItemSyncPlan
    totals: LedgerTotals
    inserted_ids: list[int] = field(default_factory=list)
    retargeted_payment_ids: list[int] = field(default_factory=list)
    automatic_payment_ids: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_items=True),
            "plan": self.plan.to_dict(),
            "ledger": self.totals.to_dict(),
            "inserted_ids": list(self.inserted_ids),
            "retargeted_payment_ids": list(self.retargeted_payment_ids),
            "automatic_payment_ids": list(self.automatic_payment_ids),
            "warnings": list(self.warnings),
        }


def parse_drafts(raw_items) -> list[OrderItemDraft]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    return [OrderItemDraft.from_dict(entry) for entry in raw_items]


# =============================================================================
# PURE DIFF
# =============================================================================

def plan_item_sync(existing: Iterable, drafts: Iterable[OrderItemDraft]) -> ItemSyncPlan:
    """
    Diff stored items against drafts.

    Pure: reads attributes of the existing rows and never writes. Every
    existing id lands in exactly one of updates, unchanged or deletes.
    """
    lookup = {item.id: item for item in existing}
    plan = ItemSyncPlan()

    for draft in drafts:
        if draft.is_blank():
            continue

        item = lookup.pop(draft.id, None) if draft.id is not None else None
        if item is None:
            if draft.id is not None:
                logger.warning("Item id %s not found on order; inserting as a new item", draft.id)
                plan.degraded_ids.append(draft.id)
            plan.inserts.append(replace(draft, id=None))
            continue

        changes = {
            name: value
            for name, value in draft.content().items()
            if getattr(item, name) != value
        }
        if changes:
            plan.updates.append(ItemUpdate(item_id=item.id, draft=draft, changes=changes))
        else:
            plan.unchanged.append(item.id)

    plan.deletes = sorted(lookup)
    return plan


# =============================================================================
# PERSISTED SYNC
# =============================================================================

def _retarget_payments(order_id: int, item_ids: list[int]) -> list[int]:
    payments = (
        db.session.query(Payment)
        .filter(Payment.order_id == order_id, Payment.item_id.in_(item_ids))
        .all()
    )
    for payment in payments:
        payment.item_id = None
    return [p.id for p in payments]


def apply_item_drafts(
    order: PreOrder,
    drafts: list[OrderItemDraft],
    *,
    bank_account: str | None,
    warnings: list[str],
) -> tuple[ItemSyncPlan, LedgerTotals, list[tuple[int, int]], list[int]]:
    """
    Diff and write an order's items inside the caller's transaction.

    Does not commit. Returns the plan, the refreshed totals, the
    (item_id, advance_cents) pairs of inserted items and the ids of
    payments moved to the order level.
    """
    strict = overpayment_policy() == POLICY_STRICT
    existing = (
        db.session.query(PreOrderItem)
        .filter_by(order_id=order.id)
        .populate_existing()
        .all()
    )
    plan = plan_item_sync(existing, drafts)
    by_id = {item.id: item for item in existing}

    for draft in plan.inserts:
        if draft.advance_payment_cents and not bank_account:
            raise ValidationError("bank_account is required when items carry an advance payment")
        if strict and draft.advance_payment_cents > draft.line_value.cents:
            raise OverpaymentError(
                f"Advance exceeds value of item {draft.product_name!r}",
                advance_cents=draft.advance_payment_cents,
                line_value_cents=draft.line_value.cents,
            )

    for update in plan.updates:
        item = by_id[update.item_id]
        for name, value in update.changes.items():
            setattr(item, name, value)
        if item.advance_payment > item.line_value:
            message = (
                f"Item {item.id} ({item.product_name}) now has advance "
                f"{item.advance_payment.format()} above its value {item.line_value.format()}"
            )
            if strict:
                raise OverpaymentError(message, item_id=item.id)
            logger.warning(message)
            warnings.append(message)

    retargeted = []
    if plan.deletes:
        retargeted = _retarget_payments(order.id, plan.deletes)
        if retargeted:
            logger.warning(
                "Order %s: payments %s moved to order level after item delete", order.id, retargeted
            )
            warnings.append(f"{len(retargeted)} payment(s) of deleted items now apply to the whole order")
        for item_id in plan.deletes:
            db.session.delete(by_id[item_id])

    new_items = []
    for draft in plan.inserts:
        item = PreOrderItem(
            order_id=order.id,
            product_name=draft.product_name,
            shade=draft.shade,
            size=draft.size,
            link=draft.link,
            quantity=draft.quantity,
            price_cents=draft.price_cents,
            advance_payment_cents=0,
        )
        db.session.add(item)
        new_items.append((item, draft))
    db.session.flush()

    totals = refresh_order_totals(order)
    inserted = [(item.id, draft.advance_payment_cents) for item, draft in new_items]
    return plan, totals, inserted, retargeted


def record_initial_advances(
    order_id: int,
    inserted: list[tuple[int, int]],
    *,
    bank_account: str | None,
    payment_date=None,
    actor: str | None = None,
    warnings: list[str],
):
    """
    Record one automatic advance payment per inserted item that carried an
    advance. Runs after the items are committed.

    Returns the automatic payment ids and the last receipt (None if no
    payment was needed).
    """
    payment_ids = []
    receipt = None
    for item_id, advance_cents in inserted:
        if not advance_cents:
            continue
        receipt = record_automatic_advance(
            order_id,
            item_id,
            advance_cents,
            bank_account=bank_account,
            payment_date=payment_date,
            actor=actor,
        )
        payment_ids.append(receipt.payment.id)
        warnings.extend(receipt.warnings)
    return payment_ids, receipt


def validate_drafts(drafts) -> list[OrderItemDraft]:
    drafts = [d if isinstance(d, OrderItemDraft) else OrderItemDraft.from_dict(d) for d in drafts]
    for draft in drafts:
        if not draft.is_blank():
            draft.validate()
    return drafts


def synchronize_items(
    order_id: int,
    drafts,
    *,
    actor: str | None = None,
    bank_account: str | None = None,
    payment_date=None,
) -> ItemSyncResult:
    """
    Apply an item edit to a stored order.

    Items are written and the ledger recomputed in one transaction. Advances
    supplied on inserted drafts are then recorded as automatic payments,
    one reconciled payment per item, which need bank_account.

    Raises:
        ValidationError: malformed drafts, or advances without bank_account
        OverpaymentError: strict mode and an advance would exceed its item
        NotFoundError: order unknown
    """
    drafts = validate_drafts(drafts)
    warnings = []

    def _op():
        warnings.clear()
        order = load_order_for_update(order_id)
        plan, totals, inserted, retargeted = apply_item_drafts(
            order, drafts, bank_account=bank_account, warnings=warnings
        )
        db.session.commit()
        return order, plan, totals, inserted, retargeted

    order, plan, totals, inserted, retargeted = run_with_retry(_op)
    logger.info(
        "Order %s items synced: %d inserted, %d updated, %d deleted, %d unchanged",
        order_id, len(plan.inserts), len(plan.updates), len(plan.deletes), len(plan.unchanged),
    )

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
