# Overview: Flask API routes for dashboard reports; read-only.

from flask import Blueprint, request, jsonify

from ..decorators import require_user
from ..errors import ValidationError
from ..services import reporting_service
from ..time_utils import parse_iso_date
from ..validation import parse_int


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _as_of():
    value = request.args.get("as_of")
    if not value:
        return None
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 date")


def _int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    return parse_int(value, name) if value not in (None, "") else default


@reports_bp.get("/dashboard")
@require_user
def dashboard_route():
    """
    Revenue, outstanding balance, order counts, monthly revenue and top
    customers in one response.

    Query parameters:
    - as_of: ISO date that decides "this month" (default today)
    - months: months of revenue history (default 6, max 24)
    - top: number of top customers (default 5)
    """
    report = reporting_service.dashboard(
        as_of=_as_of(),
        months=_int_arg("months", 6),
        top=_int_arg("top", 5),
    )
    return jsonify(report), 200


@reports_bp.get("/monthly-revenue")
@require_user
def monthly_revenue_route():
    report = reporting_service.monthly_revenue(months=_int_arg("months", 6), as_of=_as_of())
    return jsonify(report), 200


@reports_bp.get("/top-customers")
@require_user
def top_customers_route():
    return jsonify({"items": reporting_service.top_customers(limit=_int_arg("limit", 5))}), 200
