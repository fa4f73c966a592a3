"""
Ledger aggregation tests.

Verifies:
1. Totals formulas (cod excluded, signed remaining, order-level payments)
2. Payment status derivation
3. Recompute is idempotent and reports drift
4. Item advances can be rebuilt from payment rows
"""

from types import SimpleNamespace

import pytest

from preorders.errors import NotFoundError
from preorders.extensions import db
from preorders.models import PreOrder, PreOrderItem
from preorders.money import Money
from preorders.services import ledger_service, payment_service


def _item(item_id, quantity, price_cents, advance_cents=0):
    return SimpleNamespace(id=item_id, quantity=quantity, price_cents=price_cents, advance_payment_cents=advance_cents)


def _payment(amount_cents, item_id=None):
    return SimpleNamespace(amount_cents=amount_cents, item_id=item_id)


# =============================================================================
# PURE AGGREGATION
# =============================================================================

class TestAggregate:

    def test_basic_totals(self):
        totals = ledger_service.aggregate([_item(1, 2, 1000)], [], Money(200), Money(0))

        assert totals.subtotal == Money(2000)
        assert totals.total_amount == Money(2200)
        assert totals.remaining_amount == Money(2200)
        assert totals.balance_due == Money(2200)
        assert totals.payment_status == "unpaid"

    def test_cod_is_not_part_of_total(self):
        totals = ledger_service.aggregate([_item(1, 1, 1000)], [], Money(100), Money(5000))

        assert totals.total_amount == Money(1100)
        assert totals.cod_amount == Money(5000)

    def test_advances_reduce_remaining(self):
        items = [_item(1, 2, 1000, 500), _item(2, 1, 300, 300)]
        totals = ledger_service.aggregate(items, [], Money(200), Money(0))

        assert totals.advance_total == Money(800)
        assert totals.remaining_amount == Money(2500 - 800)
        assert totals.payment_status == "partial"

    def test_order_level_payments_reduce_balance_only(self):
        payments = [_payment(700), _payment(500, item_id=1)]
        totals = ledger_service.aggregate([_item(1, 1, 1000, 500)], payments, Money(0), Money(0))

        assert totals.order_level_paid == Money(700)
        assert totals.remaining_amount == Money(500)
        assert totals.balance_due == Money(-200)

    def test_overpaid_keeps_sign_and_clamps_display(self):
        totals = ledger_service.aggregate([_item(1, 1, 1000, 1500)], [], Money(0), Money(0))

        assert totals.remaining_amount == Money(-500)
        assert totals.display_remaining == Money.zero()
        assert totals.is_overpaid
        assert totals.overpaid_amount == Money(500)
        assert totals.payment_status == "overpaid"
        assert totals.over_advanced_item_ids == (1,)

    def test_fully_paid(self):
        totals = ledger_service.aggregate([_item(1, 1, 1000, 1000)], [_payment(50)], Money(50), Money(0))
        assert totals.balance_due.is_zero()
        assert totals.payment_status == "paid"

    def test_empty_order(self):
        totals = ledger_service.aggregate([], [], Money(0), Money(0))
        assert totals.total_amount.is_zero()
        assert totals.payment_status == "paid"

    def test_to_dict_is_in_cents(self):
        data = ledger_service.aggregate([_item(1, 2, 1000)], [], Money(200), Money(0)).to_dict()
        assert data["total_amount_cents"] == 2200
        assert data["display_balance_due_cents"] == 2200
        assert data["payment_status"] == "unpaid"


# =============================================================================
# PERSISTED RECOMPUTATION
# =============================================================================

class TestRecompute:

    def test_created_order_totals(self, order):
        assert order.subtotal_cents == 2000
        assert order.total_amount_cents == 2200
        assert order.remaining_amount_cents == 2200
        assert order.balance_due_cents == 2200
        assert order.payment_status == "unpaid"

    def test_recompute_is_idempotent(self, order):
        first = ledger_service.recompute_ledger(order.id)
        second = ledger_service.recompute_ledger(order.id)

        assert not first.drifted
        assert not second.drifted
        assert first.totals == second.totals

    def test_recompute_reports_and_fixes_drift(self, order):
        db.session.query(PreOrder).filter_by(id=order.id).update({"total_amount_cents": 1})
        db.session.commit()

        result = ledger_service.recompute_ledger(order.id)

        assert result.drifted
        fields = {w.field for w in result.warnings}
        assert "total_amount_cents" in fields
        assert db.session.get(PreOrder, order.id).total_amount_cents == 2200
        assert not ledger_service.recompute_ledger(order.id).drifted

    def test_recompute_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.recompute_ledger(424242)

    def test_snapshot_does_not_write(self, order):
        db.session.query(PreOrder).filter_by(id=order.id).update({"subtotal_cents": 7})
        db.session.commit()
        order = db.session.get(PreOrder, order.id)

        totals = ledger_service.ledger_snapshot(order)

        assert totals.subtotal == Money(2000)
        db.session.expire_all()
        assert db.session.get(PreOrder, order.id).subtotal_cents == 7


class TestRebuildItemAdvances:

    def test_rebuild_restores_advance_from_payments(self, order, item):
        payment_service.record_payment(order.id, 600, "advance", "Meezan-01", item_id=item.id)
        db.session.query(PreOrderItem).filter_by(id=item.id).update({"advance_payment_cents": 0})
        db.session.commit()

        result = ledger_service.rebuild_item_advances(order.id)

        assert result.drifted
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 600
        assert result.totals.advance_total == Money(600)
        assert db.session.get(PreOrder, order.id).remaining_amount_cents == 2200 - 600

    def test_rebuild_on_consistent_order_is_clean(self, order, item):
        payment_service.record_payment(order.id, 600, "advance", "Meezan-01", item_id=item.id)

        assert not ledger_service.rebuild_item_advances(order.id).drifted
