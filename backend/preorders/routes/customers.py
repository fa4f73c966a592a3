# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

"""
Customer Routes

All routes require the X-User-Id header set by the upstream proxy.
Customers with pre-orders cannot be deleted (409).
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_user
from ..notifications import LEVEL_SUCCESS, attach, notify
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_user
def list_customers_route():
    """
    List customers.

    Query parameters:
    - search: matches name, phone number or Instagram id
    """
    customers = customer_service.list_customers(search=request.args.get("search"))
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.post("")
@require_user
def create_customer_route():
    """
    Create a customer.

    Request body:
    {
        "name": "Ayesha Khan",        // required
        "phone_number": "0300...",    // required
        "instagram_id": "...",        // optional
        "city": "Lahore",             // optional
        "address": "..."              // optional
    }
    """
    data = request.get_json(silent=True) or {}
    customer = customer_service.create_customer(data)
    notify(LEVEL_SUCCESS, f"Customer {customer.name} added")
    return jsonify(attach({"customer": customer.to_dict()})), 201


@customers_bp.get("/<int:customer_id>")
@require_user
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(customer_id)
    return jsonify({"customer": customer.to_dict()})


@customers_bp.patch("/<int:customer_id>")
@require_user
def update_customer_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    customer = customer_service.update_customer(customer_id, data)
    notify(LEVEL_SUCCESS, f"Customer {customer.name} updated")
    return jsonify(attach({"customer": customer.to_dict()}))


@customers_bp.delete("/<int:customer_id>")
@require_user
def delete_customer_route(customer_id: int):
    customer_service.delete_customer(customer_id)
    notify(LEVEL_SUCCESS, "Customer deleted")
    return jsonify(attach({"deleted": customer_id}))
