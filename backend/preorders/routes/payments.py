# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/preorders/routes/payments.py
"""
Payment API Routes

WHY: Record customer payments against pre-orders and their items.

DESIGN:
- Every write goes through payment_service, which writes the payment row
  and the target item's advance together, then the order's totals
- Item-targeted payments count toward that item's advance only
- Payments without item_id count toward the order as a whole
- A 500 with type LedgerStaleError means the payment row exists but the
  order totals must be repaired (flask ledger repair --order-id N)
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user
from ..errors import ValidationError
from ..notifications import LEVEL_SUCCESS, LEVEL_WARNING, attach, notify
from ..services import payment_service
from ..validation import parse_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _notify_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        notify(LEVEL_WARNING, warning)


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("")
@require_user
def record_payment_route():
    """
    Record a payment.

    Request body:
    {
        "order_id": 123,
        "item_id": 45,                    (optional, omit for an order-level payment)
        "amount_cents": 50000,
        "purpose": "advance",             (advance, final_remaining, delivery_charges, cod)
        "bank_account": "Meezan-01",
        "payment_date": "2026-03-01",     (optional, defaults to today)
        "screenshot_ref": "uploads/...",  (optional)
        "tally": false,                   (optional)
        "allow_overpayment": false        (optional, overrides strict mode)
    }

    Returns:
        201: Payment recorded with the updated item, order and ledger
        400: Invalid input or overpayment in strict mode
        404: Order or item not found
        500: Payment not recorded, or recorded with a stale ledger
    """
    data = request.get_json(silent=True) or {}

    if "order_id" not in data:
        raise ValidationError("order_id is required")
    item_id = data.get("item_id")

    receipt = payment_service.record_payment(
        parse_int(data["order_id"], "order_id"),
        data.get("amount_cents"),
        data.get("purpose"),
        data.get("bank_account"),
        data.get("payment_date"),
        item_id=parse_int(item_id, "item_id") if item_id not in (None, "") else None,
        screenshot_ref=data.get("screenshot_ref"),
        tally=bool(data.get("tally", False)),
        actor=g.current_user_id,
        allow_overpayment=data.get("allow_overpayment"),
    )

    _notify_warnings(receipt.warnings)
    notify(LEVEL_SUCCESS, f"Payment of {receipt.payment.amount.format()} recorded")
    return jsonify(attach(receipt.to_dict())), 201


# =============================================================================
# PAYMENT EDITS
# =============================================================================

@payments_bp.patch("/<int:payment_id>")
@require_user
def update_payment_route(payment_id: int):
    """
    Edit a payment.

    Request body: any of amount_cents, purpose, bank_account, payment_date,
    screenshot_ref, tally; plus optional allow_overpayment.
    """
    data = dict(request.get_json(silent=True) or {})
    allow_overpayment = data.pop("allow_overpayment", None)

    receipt = payment_service.update_payment(
        payment_id,
        data,
        actor=g.current_user_id,
        allow_overpayment=allow_overpayment,
    )

    _notify_warnings(receipt.warnings)
    notify(LEVEL_SUCCESS, "Payment updated")
    return jsonify(attach(receipt.to_dict()))


@payments_bp.delete("/<int:payment_id>")
@require_user
def delete_payment_route(payment_id: int):
    """Delete a payment and reverse its effect on the ledger."""
    receipt = payment_service.delete_payment(payment_id)
    notify(LEVEL_SUCCESS, "Payment deleted")
    body = receipt.to_dict()
    body["deleted"] = payment_id
    return jsonify(attach(body))


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/<int:payment_id>")
@require_user
def get_payment_route(payment_id: int):
    payment = payment_service.get_payment(payment_id)
    return jsonify({"payment": payment.to_dict()})


@payments_bp.get("/orders/<int:order_id>")
@require_user
def get_order_payments_route(order_id: int):
    """
    Get all payments for a pre-order with its ledger summary.

    Query params:
    - automatic: "true" / "false" to narrow to system-generated or manual payments
    """
    summary = payment_service.get_payment_summary(order_id)

    automatic = request.args.get("automatic")
    if automatic is not None:
        automatic = automatic.lower() == "true"
    payments = payment_service.list_order_payments(order_id, automatic=automatic)

    summary["payments"] = [p.to_dict() for p in payments]
    return jsonify(summary)
