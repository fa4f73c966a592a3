"""
Pre-order service tests.

Verifies:
1. Creating an order writes items, totals and the optional reminder
2. Editing items keeps ids and advances
3. Lifecycle fields never touch money
4. Deletion refuses orders with payments unless cascaded
"""

import pytest

from preorders.errors import ConflictError, NotFoundError, ValidationError
from preorders.extensions import db
from preorders.models import Payment, PreOrder, PreOrderItem, Reminder
from preorders.services import order_service, payment_service


# =============================================================================
# CREATE
# =============================================================================

class TestCreateOrder:

    def test_totals_on_create(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id, "delivery_charges_cents": 200},
            [{"product_name": "Lipstick", "quantity": 2, "price_cents": 1000}],
        )

        order = result.order
        assert order.subtotal_cents == 2000
        assert order.total_amount_cents == 2200
        assert order.remaining_amount_cents == 2200
        assert order.status == "pending"
        assert len(result.inserted_ids) == 1
        assert result.automatic_payment_ids == []

    def test_create_with_advances_records_automatic_payments(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id},
            [
                {"product_name": "Lipstick", "quantity": 2, "price_cents": 1000, "advance_payment_cents": 500},
                {"product_name": "Blush", "price_cents": 800, "advance_payment_cents": 300},
                {"product_name": "Primer", "price_cents": 600},
            ],
            actor="staff-1",
            bank_account="Meezan-01",
        )

        assert len(result.automatic_payment_ids) == 2
        payments = db.session.query(Payment).filter_by(order_id=result.order.id).order_by(Payment.id).all()
        assert [p.amount_cents for p in payments] == [500, 300]
        assert all(p.is_automatic and p.updated_by == "staff-1" for p in payments)
        assert result.order.advance_payment_cents == 800
        assert result.order.remaining_amount_cents == 3400 - 800

    def test_blank_items_are_skipped(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id},
            [{"product_name": "Lipstick", "price_cents": 1000}, {"product_name": "  "}],
        )
        assert len(result.order.items) == 1

    def test_create_with_reminder(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id},
            [{"product_name": "Lipstick", "price_cents": 1000}],
            actor="staff-1",
            reminder={"title": "Confirm shade", "due_date": "2026-04-01T10:00:00Z", "priority": "high"},
        )

        reminder = db.session.query(Reminder).filter_by(order_id=result.order.id).one()
        assert reminder.title == "Confirm shade"
        assert reminder.user_id == "staff-1"
        assert reminder.priority == "high"

    def test_invalid_reminder_writes_nothing(self, customer):
        with pytest.raises(ValidationError):
            order_service.create_order(
                {"customer_id": customer.id},
                [{"product_name": "Lipstick", "price_cents": 1000}],
                actor="staff-1",
                reminder={"title": "No due date"},
            )
        assert db.session.query(PreOrder).count() == 0

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.create_order({"customer_id": 999}, [])
        assert db.session.query(PreOrder).count() == 0

    def test_customer_required(self, db_session):
        with pytest.raises(ValidationError):
            order_service.create_order({}, [])

    def test_derived_columns_not_writable(self, customer):
        with pytest.raises(ValidationError):
            order_service.create_order({"customer_id": customer.id, "total_amount_cents": 5}, [])

    def test_negative_delivery_rejected(self, customer):
        with pytest.raises(ValidationError):
            order_service.create_order({"customer_id": customer.id, "delivery_charges_cents": -1}, [])

    def test_invalid_status_rejected(self, customer):
        with pytest.raises(ValidationError):
            order_service.create_order({"customer_id": customer.id, "status": "lost"}, [])

    def test_advance_without_bank_account_rejected(self, customer):
        with pytest.raises(ValidationError):
            order_service.create_order(
                {"customer_id": customer.id},
                [{"product_name": "Lipstick", "price_cents": 1000, "advance_payment_cents": 100}],
            )
        assert db.session.query(PreOrder).count() == 0


# =============================================================================
# UPDATE
# =============================================================================

class TestUpdateOrder:

    def test_price_edit_keeps_identity_and_advance(self, order, item):
        payment_service.record_payment(order.id, 500, "advance", "Meezan-01", item_id=item.id)
        item_id = item.id

        result = order_service.update_order(
            order.id,
            {},
            [{"id": item_id, "product_name": "Lipstick", "shade": "Ruby", "quantity": 2, "price_cents": 1200}],
        )

        assert len(result.plan.updates) == 1
        assert result.plan.inserts == [] and result.plan.deletes == []
        assert [i.id for i in result.order.items] == [item_id]
        assert result.order.subtotal_cents == 2400
        assert result.order.advance_payment_cents == 500
        assert result.order.remaining_amount_cents == 2100

    def test_header_only_edit_leaves_items(self, order, item):
        result = order_service.update_order(order.id, {"delivery_charges_cents": 500})

        assert result.plan.is_noop
        assert db.session.get(PreOrderItem, item.id) is not None
        assert result.order.total_amount_cents == 2500

    def test_empty_item_list_deletes_all(self, order):
        result = order_service.update_order(order.id, {}, [])

        assert len(result.plan.deletes) == 1
        assert result.order.subtotal_cents == 0
        assert result.order.total_amount_cents == 200

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_order(999, {"status": "ordered"})

    def test_unknown_flight(self, order):
        with pytest.raises(NotFoundError):
            order_service.update_order(order.id, {"flight_id": 999})


# =============================================================================
# LIFECYCLE
# =============================================================================

class TestLifecycle:

    def test_status_change_keeps_money(self, order, item):
        payment_service.record_payment(order.id, 500, "advance", "Meezan-01", item_id=item.id)
        before = db.session.get(PreOrder, order.id).to_dict()

        updated = order_service.set_order_status(order.id, "shipped")

        assert updated.status == "shipped"
        after = updated.to_dict()
        for key in ("total_amount_cents", "advance_payment_cents", "remaining_amount_cents", "balance_due_cents"):
            assert after[key] == before[key]

    def test_flight_assignment(self, order, flight):
        updated = order_service.set_order_flight(order.id, flight.id)
        assert updated.flight_id == flight.id

        cleared = order_service.set_order_flight(order.id, None)
        assert cleared.flight_id is None

    def test_both_fields_apply_together(self, order, flight):
        updated = order_service.apply_lifecycle_changes(order.id, {"status": "ordered", "flight_id": flight.id})
        assert (updated.status, updated.flight_id) == ("ordered", flight.id)

    def test_unknown_flight_applies_nothing(self, order):
        with pytest.raises(NotFoundError):
            order_service.apply_lifecycle_changes(order.id, {"status": "ordered", "flight_id": 999})
        assert db.session.get(PreOrder, order.id).status == "pending"

    def test_invalid_status(self, order):
        with pytest.raises(ValidationError):
            order_service.set_order_status(order.id, "lost")

    def test_money_fields_cannot_be_staged(self, order):
        with pytest.raises(ValidationError):
            order_service.apply_lifecycle_changes(order.id, {"delivery_charges_cents": 0})


# =============================================================================
# QUERIES & DELETE
# =============================================================================

class TestListOrders:

    def test_filters(self, order, customer, flight):
        other = order_service.create_order({"customer_id": customer.id, "flight_id": flight.id}, []).order
        order_service.set_order_status(other.id, "shipped")

        assert [o.id for o in order_service.list_orders(flight_id=flight.id)] == [other.id]
        assert [o.id for o in order_service.list_orders(status="pending")] == [order.id]
        assert len(order_service.list_orders(customer_id=customer.id)) == 2
        assert [o.id for o in order_service.list_orders(payment_status="unpaid")] == [order.id]


class TestDeleteOrder:

    def test_delete_without_payments(self, order, item):
        order_id, item_id = order.id, item.id

        order_service.delete_order(order_id)

        assert db.session.get(PreOrder, order_id) is None
        assert db.session.get(PreOrderItem, item_id) is None

    def test_delete_with_payments_conflicts(self, order, item):
        payment_service.record_payment(order.id, 500, "advance", "Meezan-01", item_id=item.id)

        with pytest.raises(ConflictError):
            order_service.delete_order(order.id)
        assert db.session.get(PreOrder, order.id) is not None

    def test_cascade_deletes_payments(self, order, item):
        receipt = payment_service.record_payment(order.id, 500, "advance", "Meezan-01", item_id=item.id)
        order_id, payment_id = order.id, receipt.payment.id

        order_service.delete_order(order_id, cascade_payments=True)

        assert db.session.get(PreOrder, order_id) is None
        assert db.session.get(Payment, payment_id) is None

    def test_delete_removes_reminders(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id},
            [],
            actor="staff-1",
            reminder={"title": "Follow up", "due_date": "2026-04-01T10:00:00Z"},
        )
        order_id = result.order.id

        order_service.delete_order(order_id)

        assert db.session.query(Reminder).filter_by(order_id=order_id).count() == 0
