# Overview: Flask API routes for brand transactions; parses input and returns JSON responses.

"""
Brand Transaction Routes

Payables to brands, separate from customer payments. The acting user
(X-User-Id) is recorded as owner on create and as updated_by on edits.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user
from ..errors import ValidationError
from ..notifications import LEVEL_SUCCESS, attach, notify
from ..services import transaction_service
from ..time_utils import parse_iso_date
from ..validation import parse_int


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    return parse_int(value, name) if value not in (None, "") else default


@transactions_bp.get("")
@require_user
def list_transactions_route():
    """
    List transactions, one page at a time.

    Query parameters:
    - search: matches brand or remarks
    - confirmation_status: not_confirmed, confirmed
    - pay_status: unpaid, paid
    - sort: transaction_date (default), due_date, amount_cents, brand, updated_at
    - direction: asc, desc (default)
    - page, page_size: 1-based page number and size (default 10, max 100)
    """
    page = transaction_service.list_transactions(
        search=request.args.get("search"),
        confirmation_status=request.args.get("confirmation_status"),
        pay_status=request.args.get("pay_status"),
        sort=request.args.get("sort", "transaction_date"),
        direction=request.args.get("direction", "desc").lower(),
        page=_int_arg("page", 1),
        page_size=_int_arg("page_size", transaction_service.DEFAULT_PAGE_SIZE),
    )
    return jsonify(page.to_dict())


@transactions_bp.get("/summary")
@require_user
def transaction_summary_route():
    """Counts and amounts by confirmation and payment state; as_of defaults to today."""
    as_of = request.args.get("as_of")
    try:
        as_of_date = parse_iso_date(as_of) if as_of else None
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 date")
    return jsonify({"summary": transaction_service.transaction_summary(as_of_date)})


@transactions_bp.post("")
@require_user
def create_transaction_route():
    """
    Record a transaction with a brand.

    Request body:
    {
        "brand": "Huda Beauty",              // required
        "amount_cents": 450000,              // required (> 0)
        "transaction_date": "2026-03-01",    // required
        "due_date": "2026-03-15",            // optional
        "confirmation_status": "confirmed",  // optional (default not_confirmed)
        "pay_status": "unpaid",              // optional (default unpaid)
        "remarks": "..."                     // optional
    }
    """
    data = request.get_json(silent=True) or {}
    transaction = transaction_service.create_transaction(data, g.current_user_id)
    notify(LEVEL_SUCCESS, f"Transaction with {transaction.brand} recorded")
    return jsonify(attach({"transaction": transaction.to_dict()})), 201


@transactions_bp.get("/<int:transaction_id>")
@require_user
def get_transaction_route(transaction_id: int):
    return jsonify({"transaction": transaction_service.get_transaction(transaction_id).to_dict()})


@transactions_bp.patch("/<int:transaction_id>")
@require_user
def update_transaction_route(transaction_id: int):
    """Same fields as create, all optional, plus change_description."""
    data = request.get_json(silent=True) or {}
    transaction = transaction_service.update_transaction(transaction_id, data, g.current_user_id)
    notify(LEVEL_SUCCESS, f"Transaction with {transaction.brand} updated")
    return jsonify(attach({"transaction": transaction.to_dict()}))


@transactions_bp.delete("/<int:transaction_id>")
@require_user
def delete_transaction_route(transaction_id: int):
    transaction_service.delete_transaction(transaction_id)
    notify(LEVEL_SUCCESS, "Transaction deleted")
    return jsonify(attach({"deleted": transaction_id}))
