"""
Line item synchronization tests.

Verifies:
1. The diff keeps item identity across edits (no delete-all/insert-all)
2. Blank drafts are ignored and unknown ids degrade to inserts
3. Deleting an item keeps its payments at the order level
4. Advances on new items become automatic payments
"""

from types import SimpleNamespace

import pytest

from preorders.errors import OverpaymentError, ValidationError
from preorders.extensions import db
from preorders.models import Payment, PreOrderItem
from preorders.services import payment_service
from preorders.services.item_sync_service import (
    OrderItemDraft,
    parse_drafts,
    plan_item_sync,
    synchronize_items,
)


def _row(item_id, name="Lipstick", quantity=1, price_cents=1000, **extra):
    fields = {"shade": "", "size": "", "link": "", "advance_payment_cents": 0}
    fields.update(extra)
    return SimpleNamespace(id=item_id, product_name=name, quantity=quantity, price_cents=price_cents, **fields)


# =============================================================================
# DRAFT PARSING
# =============================================================================

class TestDraftParsing:

    def test_defaults(self):
        draft = OrderItemDraft.from_dict({"product_name": " Blush "})
        assert draft.product_name == "Blush"
        assert draft.quantity == 1
        assert draft.price_cents == 0
        assert draft.id is None

    def test_string_numbers_are_accepted(self):
        draft = OrderItemDraft.from_dict({"id": "7", "product_name": "Blush", "quantity": "3", "price_cents": "450"})
        assert (draft.id, draft.quantity, draft.price_cents) == (7, 3, 450)

    @pytest.mark.parametrize("payload", [
        {"product_name": "Blush", "quantity": 1.5},
        {"product_name": "Blush", "price_cents": 10.25},
        {"product_name": "x" * 256},
    ])
    def test_rejects_bad_fields(self, payload):
        with pytest.raises(ValidationError):
            OrderItemDraft.from_dict(payload)

    def test_items_must_be_a_list(self):
        with pytest.raises(ValidationError):
            parse_drafts({"product_name": "Blush"})

    def test_line_value(self):
        assert OrderItemDraft(product_name="Kit", quantity=3, price_cents=250).line_value.cents == 750


# =============================================================================
# PURE DIFF
# =============================================================================

class TestPlanItemSync:
    """plan_item_sync never writes and accounts for every stored item."""

    def test_price_edit_is_a_single_update(self):
        existing = [_row(1, quantity=2, price_cents=1000)]
        drafts = [OrderItemDraft(id=1, product_name="Lipstick", quantity=2, price_cents=1200)]

        plan = plan_item_sync(existing, drafts)

        assert plan.inserts == []
        assert plan.deletes == []
        assert len(plan.updates) == 1
        assert plan.updates[0].item_id == 1
        assert plan.updates[0].changes == {"price_cents": 1200}

    def test_identical_draft_is_unchanged(self):
        existing = [_row(1, quantity=2)]
        drafts = [OrderItemDraft(id=1, product_name="Lipstick", quantity=2, price_cents=1000)]

        plan = plan_item_sync(existing, drafts)

        assert plan.unchanged == [1]
        assert plan.is_noop

    def test_draft_advance_is_not_a_change(self):
        existing = [_row(1, advance_payment_cents=500)]
        drafts = [OrderItemDraft(id=1, product_name="Lipstick", price_cents=1000, advance_payment_cents=0)]

        assert plan_item_sync(existing, drafts).unchanged == [1]

    def test_missing_items_are_deleted(self):
        existing = [_row(1), _row(2, name="Mascara"), _row(3, name="Primer")]
        drafts = [OrderItemDraft(id=2, product_name="Mascara", price_cents=1000)]

        plan = plan_item_sync(existing, drafts)

        assert plan.deletes == [1, 3]
        assert plan.unchanged == [2]

    def test_new_drafts_are_inserted(self):
        plan = plan_item_sync([], [OrderItemDraft(product_name="Blush", price_cents=500)])
        assert len(plan.inserts) == 1
        assert plan.inserts[0].id is None

    def test_blank_drafts_are_ignored(self):
        existing = [_row(1)]
        drafts = [
            OrderItemDraft(id=1, product_name="Lipstick", price_cents=1000),
            OrderItemDraft(product_name=""),
        ]

        plan = plan_item_sync(existing, drafts)

        assert plan.inserts == []
        assert plan.unchanged == [1]

    def test_blank_draft_with_id_deletes_that_item(self):
        plan = plan_item_sync([_row(1)], [OrderItemDraft(id=1, product_name="")])
        assert plan.deletes == [1]

    def test_unknown_id_degrades_to_insert(self):
        plan = plan_item_sync([_row(1)], [
            OrderItemDraft(id=1, product_name="Lipstick", price_cents=1000),
            OrderItemDraft(id=999, product_name="Highlighter", price_cents=800),
        ])

        assert plan.degraded_ids == [999]
        assert len(plan.inserts) == 1
        assert plan.inserts[0].id is None
        assert plan.inserts[0].product_name == "Highlighter"

    def test_every_existing_id_lands_in_one_list(self):
        existing = [_row(1), _row(2), _row(3)]
        drafts = [
            OrderItemDraft(id=1, product_name="Lipstick", price_cents=1000),
            OrderItemDraft(id=2, product_name="Renamed", price_cents=1000),
            OrderItemDraft(product_name="New", price_cents=10),
        ]

        plan = plan_item_sync(existing, drafts)
        updated = [u.item_id for u in plan.updates]

        assert sorted(plan.unchanged + updated + plan.deletes) == [1, 2, 3]
        assert not set(plan.unchanged) & set(updated)
        assert not set(updated) & set(plan.deletes)


# =============================================================================
# PERSISTED SYNC
# =============================================================================

class TestSynchronizeItems:

    def test_edit_preserves_id_and_advance(self, order, item):
        payment_service.record_payment(order.id, 500, "advance", "Meezan-01", item_id=item.id)
        item_id = item.id

        result = synchronize_items(order.id, [
            {"id": item_id, "product_name": "Lipstick", "shade": "Ruby", "quantity": 2, "price_cents": 1200},
        ])

        stored = db.session.get(PreOrderItem, item_id)
        assert stored is not None
        assert stored.price_cents == 1200
        assert stored.advance_payment_cents == 500
        assert result.totals.subtotal.cents == 2400
        assert result.order.advance_payment_cents == 500
        assert result.order.remaining_amount_cents == 2400 + 200 - 500

    def test_payment_still_references_edited_item(self, order, item):
        receipt = payment_service.record_payment(order.id, 300, "advance", "Meezan-01", item_id=item.id)
        item_id = item.id

        synchronize_items(order.id, [
            {"id": item_id, "product_name": "Lipstick Matte", "quantity": 2, "price_cents": 1000},
        ])

        assert db.session.get(Payment, receipt.payment.id).item_id == item_id

    def test_deleted_item_payments_move_to_order_level(self, order, item):
        receipt = payment_service.record_payment(order.id, 400, "advance", "Meezan-01", item_id=item.id)

        result = synchronize_items(order.id, [{"product_name": "Mascara", "price_cents": 900}])

        payment = db.session.get(Payment, receipt.payment.id)
        assert payment is not None
        assert payment.item_id is None
        assert result.retargeted_payment_ids == [payment.id]
        assert result.order.advance_payment_cents == 0
        assert result.order.order_level_paid_cents == 400
        assert result.order.balance_due_cents == 900 + 200 - 400

    def test_new_item_advance_becomes_automatic_payment(self, order, item):
        result = synchronize_items(
            order.id,
            [
                {"id": item.id, "product_name": "Lipstick", "shade": "Ruby", "quantity": 2, "price_cents": 1000},
                {"product_name": "Blush", "price_cents": 800, "advance_payment_cents": 300},
            ],
            bank_account="Meezan-01",
            actor="staff-1",
        )

        assert len(result.automatic_payment_ids) == 1
        payment = db.session.get(Payment, result.automatic_payment_ids[0])
        assert payment.is_automatic is True
        assert payment.amount_cents == 300
        assert payment.item_id == result.inserted_ids[0]
        assert db.session.get(PreOrderItem, payment.item_id).advance_payment_cents == 300
        assert result.order.advance_payment_cents == 300

    def test_new_item_advance_needs_bank_account(self, order):
        with pytest.raises(ValidationError):
            synchronize_items(order.id, [{"product_name": "Blush", "price_cents": 800, "advance_payment_cents": 300}])

        assert db.session.query(PreOrderItem).filter_by(product_name="Blush").count() == 0

    def test_strict_mode_rejects_advance_above_value(self, order, strict_mode):
        with pytest.raises(OverpaymentError):
            synchronize_items(
                order.id,
                [{"product_name": "Blush", "price_cents": 800, "advance_payment_cents": 900}],
                bank_account="Meezan-01",
            )

    def test_price_cut_below_advance_warns(self, order, item):
        payment_service.record_payment(order.id, 1500, "advance", "Meezan-01", item_id=item.id)

        result = synchronize_items(order.id, [
            {"id": item.id, "product_name": "Lipstick", "shade": "Ruby", "quantity": 1, "price_cents": 1000},
        ])

        assert result.warnings
        assert result.totals.over_advanced_item_ids == (item.id,)

    def test_price_cut_below_advance_rejected_in_strict_mode(self, order, item, strict_mode):
        payment_service.record_payment(order.id, 1500, "advance", "Meezan-01", item_id=item.id)

        with pytest.raises(OverpaymentError):
            synchronize_items(order.id, [
                {"id": item.id, "product_name": "Lipstick", "quantity": 1, "price_cents": 1000},
            ])

        assert db.session.get(PreOrderItem, item.id).quantity == 2

    def test_invalid_quantity_writes_nothing(self, order, item):
        with pytest.raises(ValidationError):
            synchronize_items(order.id, [{"id": item.id, "product_name": "Lipstick", "quantity": 0}])

        assert db.session.get(PreOrderItem, item.id).quantity == 2
