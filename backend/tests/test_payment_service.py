"""
Payment reconciliation tests.

Verifies:
1. Item-targeted payments move the item advance and the order totals
2. Order-level payments only move the balance due
3. Overpayment policy (warn vs strict, per-call override)
4. Edits and deletes shift the ledger by the difference
5. Payment row and item advance commit together; a concurrent writer
   can neither lose an update nor slip a strict-mode overpayment through
6. A failed order refresh after that commit raises LedgerStaleError and
   can be repaired
"""

import pytest

from preorders.errors import (
    ConflictError,
    LedgerStaleError,
    NotFoundError,
    OverpaymentError,
    PersistenceError,
    ValidationError,
)
from preorders.extensions import db
from preorders.models import Payment, PreOrder, PreOrderItem
from preorders.services import ledger_service, order_service, payment_service
from preorders.time_utils import today


def _pay(order, amount, item=None, **kwargs):
    return payment_service.record_payment(
        order.id,
        amount,
        kwargs.pop("purpose", "advance"),
        kwargs.pop("bank_account", "Meezan-01"),
        item_id=item.id if item is not None else None,
        **kwargs,
    )


def _failing_refresh(order):
    raise PersistenceError("store unavailable")


def _interleave_after_check(monkeypatch, concurrent_write):
    """
    Run concurrent_write once, right after the next overpayment check, as
    another staff member saving between our read and our write would.
    """
    real_check = payment_service.check_item_advance
    calls = []

    def _check(item, new_advance, **kwargs):
        warning = real_check(item, new_advance, **kwargs)
        if not calls:
            calls.append(item.id)
            concurrent_write(item.id)
        return warning

    monkeypatch.setattr(payment_service, "check_item_advance", _check)
    return calls


# =============================================================================
# RECORDING
# =============================================================================

class TestRecordPayment:

    def test_item_payment_updates_advance_and_totals(self, order, item):
        receipt = _pay(order, 500, item, actor="staff-1")

        assert receipt.payment.amount_cents == 500
        assert receipt.payment.updated_by == "staff-1"
        assert receipt.item.advance_payment_cents == 500
        assert receipt.order.advance_payment_cents == 500
        assert receipt.order.remaining_amount_cents == 1700
        assert receipt.order.balance_due_cents == 1700
        assert receipt.order.payment_status == "partial"
        assert receipt.warnings == []

    def test_payments_accumulate(self, order, item):
        _pay(order, 500, item)
        receipt = _pay(order, 700, item)

        assert receipt.item.advance_payment_cents == 1200
        assert receipt.order.remaining_amount_cents == 1000

    def test_order_level_payment(self, order, item):
        receipt = _pay(order, 200, purpose="delivery_charges")

        assert receipt.item is None
        assert receipt.payment.item_id is None
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 0
        assert receipt.order.advance_payment_cents == 0
        assert receipt.order.remaining_amount_cents == 2200
        assert receipt.order.order_level_paid_cents == 200
        assert receipt.order.balance_due_cents == 2000

    def test_full_payment_marks_order_paid(self, order, item):
        _pay(order, 2000, item)
        receipt = _pay(order, 200, purpose="delivery_charges")

        assert receipt.order.balance_due_cents == 0
        assert receipt.order.payment_status == "paid"

    def test_payment_date_defaults_to_today(self, order, item):
        receipt = _pay(order, 100, item)
        assert receipt.payment.payment_date == today()

    @pytest.mark.parametrize("amount", [0, -100, 12.5, "abc"])
    def test_invalid_amount_rejected(self, order, item, amount):
        with pytest.raises(ValidationError):
            _pay(order, amount, item)
        assert db.session.query(Payment).count() == 0

    def test_invalid_purpose_rejected(self, order, item):
        with pytest.raises(ValidationError):
            _pay(order, 100, item, purpose="tip")

    def test_bank_account_required(self, order, item):
        with pytest.raises(ValidationError):
            _pay(order, 100, item, bank_account="  ")

    def test_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(999, 100, "advance", "Meezan-01")

    def test_unknown_item(self, order):
        with pytest.raises(NotFoundError):
            payment_service.record_payment(order.id, 100, "advance", "Meezan-01", item_id=999)

    def test_item_of_other_order_rejected(self, order, customer):
        other = order_service.create_order(
            {"customer_id": customer.id},
            [{"product_name": "Mascara", "price_cents": 900}],
        ).order
        other_item_id = other.items[0].id

        with pytest.raises(ValidationError):
            payment_service.record_payment(order.id, 100, "advance", "Meezan-01", item_id=other_item_id)
        assert db.session.query(Payment).count() == 0


# =============================================================================
# OVERPAYMENT POLICY
# =============================================================================

class TestOverpaymentPolicy:

    def test_warn_mode_records_and_flags(self, order, item):
        receipt = _pay(order, 2500, item)

        assert len(receipt.warnings) == 1
        assert receipt.item.advance_payment_cents == 2500
        assert receipt.totals.over_advanced_item_ids == (item.id,)
        assert receipt.order.remaining_amount_cents == -300
        assert receipt.totals.display_remaining.cents == 0
        assert receipt.order.payment_status == "overpaid"

    def test_strict_mode_rejects_before_writing(self, order, item, strict_mode):
        with pytest.raises(OverpaymentError):
            _pay(order, 2500, item)

        assert db.session.query(Payment).count() == 0
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 0

    def test_strict_mode_allows_exact_value(self, order, item, strict_mode):
        receipt = _pay(order, 2000, item)
        assert receipt.item.advance_payment_cents == 2000

    def test_strict_mode_override(self, order, item, strict_mode):
        receipt = _pay(order, 2500, item, allow_overpayment=True)

        assert receipt.item.advance_payment_cents == 2500
        assert receipt.warnings

    def test_tolerance(self, app, order, item, strict_mode):
        app.config["LEDGER_OVERPAYMENT_TOLERANCE_CENTS"] = 100
        try:
            receipt = _pay(order, 2050, item)
        finally:
            app.config["LEDGER_OVERPAYMENT_TOLERANCE_CENTS"] = 0
        assert receipt.item.advance_payment_cents == 2050

    def test_order_level_payments_are_not_limited(self, order, strict_mode):
        receipt = _pay(order, 9000, purpose="final_remaining")
        assert receipt.order.balance_due_cents == 2200 - 9000

    def test_strict_mode_concurrent_overpayment_writes_nothing(self, order, item, strict_mode, monkeypatch):
        def _other_staff_pays(item_id):
            db.session.query(PreOrderItem).filter_by(id=item_id).update(
                {"advance_payment_cents": PreOrderItem.advance_payment_cents + 1500},
                synchronize_session=False,
            )
            db.session.commit()

        _interleave_after_check(monkeypatch, _other_staff_pays)

        with pytest.raises(OverpaymentError) as exc:
            _pay(order, 1000, item)

        assert exc.value.context["advance_cents"] == 1500
        assert db.session.query(Payment).count() == 0
        db.session.expire_all()
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 1500


# =============================================================================
# EDITS & DELETES
# =============================================================================

class TestUpdatePayment:

    def test_amount_increase_shifts_advance(self, order, item):
        receipt = _pay(order, 500, item)

        updated = payment_service.update_payment(receipt.payment.id, {"amount_cents": 800}, actor="staff-2")

        assert updated.payment.amount_cents == 800
        assert updated.payment.updated_by == "staff-2"
        assert updated.item.advance_payment_cents == 800
        assert updated.order.remaining_amount_cents == 1400

    def test_amount_decrease_shifts_advance(self, order, item):
        receipt = _pay(order, 500, item)

        updated = payment_service.update_payment(receipt.payment.id, {"amount_cents": 200})

        assert updated.item.advance_payment_cents == 200
        assert updated.order.remaining_amount_cents == 2000

    def test_metadata_only_edit_keeps_ledger(self, order, item):
        receipt = _pay(order, 500, item)

        updated = payment_service.update_payment(receipt.payment.id, {"tally": True, "bank_account": "HBL-02"})

        assert updated.payment.tally is True
        assert updated.payment.bank_account == "HBL-02"
        assert updated.item.advance_payment_cents == 500
        assert updated.totals.remaining_amount.cents == 1700

    def test_order_level_edit_moves_balance(self, order):
        receipt = _pay(order, 200, purpose="cod")

        updated = payment_service.update_payment(receipt.payment.id, {"amount_cents": 500})

        assert updated.order.order_level_paid_cents == 500
        assert updated.order.balance_due_cents == 1700

    def test_retargeting_rejected(self, order, item):
        receipt = _pay(order, 500, item)
        with pytest.raises(ValidationError):
            payment_service.update_payment(receipt.payment.id, {"item_id": None})

    def test_strict_mode_rejects_increase_above_value(self, order, item, strict_mode):
        receipt = _pay(order, 1500, item)

        with pytest.raises(OverpaymentError):
            payment_service.update_payment(receipt.payment.id, {"amount_cents": 2100})

        assert db.session.get(Payment, receipt.payment.id).amount_cents == 1500

    def test_unknown_payment(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.update_payment(999, {"amount_cents": 100})


class TestDeletePayment:

    def test_delete_reverses_item_advance(self, order, item):
        first = _pay(order, 500, item)
        _pay(order, 300, item)

        receipt = payment_service.delete_payment(first.payment.id)

        assert receipt.payment is None
        assert receipt.item.advance_payment_cents == 300
        assert receipt.order.remaining_amount_cents == 1900
        assert db.session.get(Payment, first.payment.id) is None

    def test_delete_order_level_payment(self, order):
        receipt = _pay(order, 200, purpose="delivery_charges")

        result = payment_service.delete_payment(receipt.payment.id)

        assert result.order.order_level_paid_cents == 0
        assert result.order.balance_due_cents == 2200

    def test_delete_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            payment_service.delete_payment(999)

    def test_delete_below_zero_advance_conflicts(self, order, item):
        receipt = _pay(order, 500, item)
        db.session.query(PreOrderItem).filter_by(id=item.id).update({"advance_payment_cents": 200})
        db.session.commit()

        with pytest.raises(ConflictError) as exc:
            payment_service.delete_payment(receipt.payment.id)

        assert exc.value.context["advance_cents"] == 200
        assert db.session.get(Payment, receipt.payment.id) is not None
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 200

        ledger_service.rebuild_item_advances(order.id)
        result = payment_service.delete_payment(receipt.payment.id)
        assert result.item.advance_payment_cents == 0


# =============================================================================
# CONCURRENT WRITERS
# =============================================================================

class TestConcurrentPayments:

    def test_interleaved_payments_both_count(self, order, item, monkeypatch):
        def _other_staff_pays(item_id):
            payment_service.record_payment(order.id, 500, "advance", "HBL-02", item_id=item_id)

        calls = _interleave_after_check(monkeypatch, _other_staff_pays)

        receipt = _pay(order, 700, item)

        assert calls == [item.id]
        assert receipt.item.advance_payment_cents == 1200
        assert receipt.order.advance_payment_cents == 1200
        assert receipt.order.remaining_amount_cents == 1000
        assert db.session.query(Payment).filter_by(item_id=item.id).count() == 2

    def test_interleaved_edit_and_payment_both_count(self, order, item, monkeypatch):
        first = _pay(order, 500, item)

        def _other_staff_pays(item_id):
            payment_service.record_payment(order.id, 300, "advance", "HBL-02", item_id=item_id)

        _interleave_after_check(monkeypatch, _other_staff_pays)

        updated = payment_service.update_payment(first.payment.id, {"amount_cents": 900})

        assert updated.item.advance_payment_cents == 1200
        assert updated.order.remaining_amount_cents == 1000


# =============================================================================
# PARTIAL FAILURE
# =============================================================================

class TestLedgerStale:

    def test_failure_after_payment_row_raises_stale(self, order, item, monkeypatch):
        monkeypatch.setattr(payment_service, "refresh_order_totals", _failing_refresh)

        with pytest.raises(LedgerStaleError) as exc:
            _pay(order, 500, item)

        payment = db.session.get(Payment, exc.value.payment_id)
        assert payment is not None
        assert payment.amount_cents == 500
        assert exc.value.order_id == order.id
        assert exc.value.status_code == 500
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 500
        assert db.session.get(PreOrder, order.id).remaining_amount_cents == 2200

    def test_stale_ledger_can_be_repaired(self, order, item, monkeypatch):
        monkeypatch.setattr(payment_service, "refresh_order_totals", _failing_refresh)
        with pytest.raises(LedgerStaleError):
            _pay(order, 500, item)
        monkeypatch.undo()

        result = ledger_service.rebuild_item_advances(order.id)

        assert result.drifted
        assert db.session.get(PreOrderItem, item.id).advance_payment_cents == 500
        assert db.session.get(PreOrder, order.id).remaining_amount_cents == 1700


# =============================================================================
# QUERIES
# =============================================================================

class TestPaymentQueries:

    def test_summary_splits_by_target(self, order, item):
        _pay(order, 500, item)
        _pay(order, 200, purpose="delivery_charges")

        summary = payment_service.get_payment_summary(order.id)

        assert summary["order_id"] == order.id
        assert len(summary["item_payments"]) == 1
        assert len(summary["order_payments"]) == 1
        assert summary["ledger"]["balance_due_cents"] == 1500

    def test_list_filters_automatic(self, customer):
        result = order_service.create_order(
            {"customer_id": customer.id},
            [{"product_name": "Blush", "price_cents": 800, "advance_payment_cents": 300}],
            bank_account="Meezan-01",
        )
        _pay(result.order, 100, purpose="cod")

        automatic = payment_service.list_order_payments(result.order.id, automatic=True)
        manual = payment_service.list_order_payments(result.order.id, automatic=False)

        assert [p.amount_cents for p in automatic] == [300]
        assert [p.amount_cents for p in manual] == [100]
