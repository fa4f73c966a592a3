# backend/preorders/routes/system.py
"""
System health and version endpoints.

Provides health checks for the database and the ledger configuration,
plus version information for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import PreOrder, Payment
from ..models.orders import PAYMENT_STATUS_OVERPAID
from ..services.payment_service import VALID_POLICIES
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        order_count = db.session.query(PreOrder).count()
        payment_count = db.session.query(Payment).count()
        overpaid_count = db.session.query(PreOrder).filter_by(payment_status=PAYMENT_STATUS_OVERPAID).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pre_orders": order_count,
                "payments": payment_count,
                "overpaid_orders": overpaid_count,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_ledger_config_health() -> dict:
    """
    Check that the ledger policy settings are usable.
    """
    policy = str(current_app.config.get("LEDGER_OVERPAYMENT_POLICY", "")).lower()
    tolerance = current_app.config.get("LEDGER_OVERPAYMENT_TOLERANCE_CENTS", 0)

    if policy not in VALID_POLICIES:
        return {
            "status": "unhealthy",
            "error": f"Unknown overpayment policy: {policy!r}",
        }
    if not isinstance(tolerance, int) or tolerance < 0:
        return {
            "status": "degraded",
            "warning": "Overpayment tolerance should be a non-negative integer",
            "details": {"overpayment_policy": policy},
        }
    return {
        "status": "healthy",
        "details": {
            "overpayment_policy": policy,
            "overpayment_tolerance_cents": tolerance,
            "currency": current_app.config.get("LEDGER_CURRENCY"),
        }
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: All systems healthy (or degraded but operational)
    - 503: One or more systems unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    ledger_health = check_ledger_config_health()

    all_checks = [database_health, ledger_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "ledger_config": ledger_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Version endpoint for deployment debugging.

    Does NOT expose secret keys, database credentials or internal paths.
    """
    import sys

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
