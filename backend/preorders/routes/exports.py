# Overview: Flask API routes for CSV exports; read-only projections of ledger totals.

from flask import Blueprint, Response, current_app, request

from ..decorators import require_user
from ..services import export_service
from ..time_utils import today
from ..validation import parse_int


exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


@exports_bp.get("/pre-orders.csv")
@require_user
def export_preorders_route():
    """
    Download pre-orders as CSV.

    Query parameters:
    - order_ids: comma-separated ids (default: every pre-order)

    Totals are recomputed from items and payments for the export; nothing
    is written.
    """
    raw_ids = request.args.get("order_ids")
    order_ids = None
    if raw_ids:
        order_ids = [parse_int(part, "order_ids") for part in raw_ids.split(",") if part.strip()]

    rows = export_service.project_orders(order_ids)
    content = export_service.render_csv(rows, currency=current_app.config.get("LEDGER_CURRENCY"))
    filename = f"pre-orders-{today().isoformat()}.csv"
    return Response(
        content,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
