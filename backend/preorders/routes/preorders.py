# Overview: Flask API routes for pre-order operations; parses input and returns JSON responses.

"""
Pre-Order Routes

- Header edits, item edits, lifecycle fields and deletion
- Ledger recompute and repair
- Staged and bulk status/flight edits returning a per-order manifest
  (207 Multi-Status when any entry failed)
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import PreOrder, PreOrderItem
from ..notifications import LEVEL_ERROR, LEVEL_SUCCESS, LEVEL_WARNING, attach, notify
from ..services import ledger_service, order_service, staging_service
from ..services.item_sync_service import parse_drafts, plan_item_sync, synchronize_items
from ..validation import parse_int


preorders_bp = Blueprint("preorders", __name__, url_prefix="/api/pre-orders")


# Body keys that are not header columns
CONTROL_KEYS = ("items", "bank_account", "payment_date", "reminder")


def _split_body(data: dict) -> tuple[dict, dict]:
    header = {k: v for k, v in data.items() if k not in CONTROL_KEYS}
    control = {k: data[k] for k in CONTROL_KEYS if k in data}
    return header, control


def _notify_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        notify(LEVEL_WARNING, warning)


def _manifest_response(manifest):
    for entry in manifest.failures:
        notify(LEVEL_ERROR, f"Order {entry.order_id}: {entry.error}")
    if manifest.successes:
        notify(LEVEL_SUCCESS, f"{len(manifest.successes)} order(s) updated")
    status = 200 if manifest.ok else 207
    return jsonify(attach({"manifest": manifest.to_dict()})), status


def _optional_int_arg(name: str):
    value = request.args.get(name)
    return parse_int(value, name) if value not in (None, "") else None


# =============================================================================
# QUERIES
# =============================================================================

@preorders_bp.get("")
@require_user
def list_preorders_route():
    """
    List pre-orders, newest first.

    Query parameters:
    - status: order status filter
    - flight_id: flight filter
    - customer_id: customer filter
    - payment_status: unpaid, partial, paid, overpaid
    - include_items: "true" to embed items
    """
    include_items = request.args.get("include_items", "false").lower() == "true"
    orders = order_service.list_orders(
        status=request.args.get("status"),
        flight_id=_optional_int_arg("flight_id"),
        customer_id=_optional_int_arg("customer_id"),
        payment_status=request.args.get("payment_status"),
    )
    return jsonify({
        "items": [o.to_dict(include_items=include_items) for o in orders],
        "count": len(orders),
    })


@preorders_bp.get("/<int:order_id>")
@require_user
def get_preorder_route(order_id: int):
    """Pre-order with items, customer, flight, payments and a fresh ledger view."""
    order = order_service.get_order(order_id)
    body = order.to_dict(include_items=True)
    body["customer"] = order.customer.to_dict() if order.customer else None
    body["flight"] = order.flight.to_dict() if order.flight else None
    body["payments"] = [p.to_dict() for p in order.payments]
    body["ledger"] = ledger_service.ledger_snapshot(order).to_dict()
    return jsonify({"pre_order": body})


# =============================================================================
# CREATE / UPDATE / DELETE
# =============================================================================

@preorders_bp.post("")
@require_user
def create_preorder_route():
    """
    Create a pre-order.

    Request body:
    {
        "customer_id": 1,                   // required
        "flight_id": 2,                     // optional
        "status": "pending",                // optional
        "delivery_charges_cents": 20000,    // optional
        "cod_amount_cents": 0,              // optional
        "items": [
            {"product_name": "Lipstick", "shade": "Ruby", "size": "", "link": "",
             "quantity": 2, "price_cents": 100000, "advance_payment_cents": 50000}
        ],
        "bank_account": "Meezan-01",        // required when any item has an advance
        "payment_date": "2026-03-01",       // optional
        "reminder": {"title": "...", "due_date": "...", "priority": "high"}  // optional
    }
    """
    data = request.get_json(silent=True) or {}
    header, control = _split_body(data)

    result = order_service.create_order(
        header,
        parse_drafts(control.get("items")),
        actor=g.current_user_id,
        reminder=control.get("reminder"),
        bank_account=control.get("bank_account"),
        payment_date=control.get("payment_date"),
    )

    _notify_warnings(result.warnings)
    notify(LEVEL_SUCCESS, f"Pre-order {result.order.id} created")
    return jsonify(attach(result.to_dict())), 201


@preorders_bp.patch("/<int:order_id>")
@require_user
def update_preorder_route(order_id: int):
    """
    Edit a pre-order.

    Header fields as on create. When "items" is present the item set is
    synchronized by id: items keep their id and advance across edits.
    """
    data = request.get_json(silent=True) or {}
    header, control = _split_body(data)
    if "reminder" in control:
        raise ValidationError("Add reminders to an existing pre-order through /api/reminders")

    result = order_service.update_order(
        order_id,
        header,
        parse_drafts(control["items"]) if "items" in control else None,
        actor=g.current_user_id,
        bank_account=control.get("bank_account"),
        payment_date=control.get("payment_date"),
    )

    _notify_warnings(result.warnings)
    notify(LEVEL_SUCCESS, f"Pre-order {order_id} updated")
    return jsonify(attach(result.to_dict()))


@preorders_bp.delete("/<int:order_id>")
@require_user
def delete_preorder_route(order_id: int):
    """
    Delete a pre-order.

    Query parameters:
    - cascade_payments: "true" to delete its payments too (409 otherwise)
    """
    cascade = request.args.get("cascade_payments", "false").lower() == "true"
    order_service.delete_order(order_id, cascade_payments=cascade)
    notify(LEVEL_SUCCESS, f"Pre-order {order_id} deleted")
    return jsonify(attach({"deleted": order_id}))


# =============================================================================
# ITEMS
# =============================================================================

@preorders_bp.post("/<int:order_id>/items/sync")
@require_user
def sync_items_route(order_id: int):
    """
    Synchronize a pre-order's items.

    Request body:
    {
        "items": [{"id": 5, "product_name": "...", ...}, {"product_name": "New"}],
        "bank_account": "Meezan-01",  // needed when a new item carries an advance
        "payment_date": "2026-03-01",
        "dry_run": false              // true returns the plan without writing
    }
    """
    data = request.get_json(silent=True) or {}
    drafts = parse_drafts(data.get("items", []))

    if data.get("dry_run"):
        if not db.session.get(PreOrder, order_id):
            raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)
        existing = db.session.query(PreOrderItem).filter_by(order_id=order_id).all()
        plan = plan_item_sync(existing, drafts)
        return jsonify({"plan": plan.to_dict()})

    result = synchronize_items(
        order_id,
        drafts,
        actor=g.current_user_id,
        bank_account=data.get("bank_account"),
        payment_date=data.get("payment_date"),
    )
    _notify_warnings(result.warnings)
    notify(LEVEL_SUCCESS, f"Items of pre-order {order_id} saved")
    return jsonify(attach(result.to_dict()))


# =============================================================================
# LEDGER
# =============================================================================

@preorders_bp.get("/<int:order_id>/ledger")
@require_user
def recompute_ledger_route(order_id: int):
    """Recompute and persist totals; reports any drift that was corrected."""
    result = ledger_service.recompute_ledger(order_id)
    if result.drifted:
        notify(LEVEL_WARNING, f"Ledger of pre-order {order_id} was out of date and has been corrected")
    return jsonify(attach(result.to_dict()))


@preorders_bp.post("/<int:order_id>/ledger/repair")
@require_user
def repair_ledger_route(order_id: int):
    """Rebuild item advances from payment rows, then recompute totals."""
    result = ledger_service.rebuild_item_advances(order_id)
    notify(LEVEL_SUCCESS, f"Ledger of pre-order {order_id} rebuilt ({len(result.warnings)} correction(s))")
    return jsonify(attach(result.to_dict()))


# =============================================================================
# STAGED & BULK EDITS
# =============================================================================

@preorders_bp.post("/staged")
@require_user
def apply_staged_route():
    """
    Apply staged status/flight edits.

    Request body:
    {
        "changes": [
            {"order_id": 1, "status": "shipped"},
            {"order_id": 2, "flight_id": 7},
            {"order_id": 3, "status": "delivered", "flight_id": 7}
        ]
    }

    Each order is applied independently. Returns 200 when all applied and
    207 with the per-order manifest when any failed.
    """
    data = request.get_json(silent=True) or {}
    stager = staging_service.ChangeStager.from_changes(data.get("changes"))
    return _manifest_response(stager.apply_all())


@preorders_bp.post("/bulk")
@require_user
def bulk_update_route():
    """
    Set one field to one value on many pre-orders.

    Request body: {"order_ids": [1, 2, 3], "field": "status", "value": "shipped"}
    """
    data = request.get_json(silent=True) or {}
    manifest = staging_service.apply_to_set(data.get("order_ids"), data.get("field"), data.get("value"))
    return _manifest_response(manifest)
