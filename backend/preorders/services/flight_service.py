# Overview: Service-layer operations for flights (shipment batches).

from __future__ import annotations

import logging

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Flight, PreOrder, FLIGHT_STATUSES
from ..validation import FLIGHT_POLICY, enforce_choice, validate_payload
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


def get_flight(flight_id: int) -> Flight:
    flight = db.session.get(Flight, flight_id)
    if not flight:
        raise NotFoundError(f"Flight {flight_id} not found", flight_id=flight_id)
    return flight


def list_flights(status: str | None = None) -> list[Flight]:
    query = db.session.query(Flight)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Flight.shipment_date.desc(), Flight.id.desc()).all()


def create_flight(data: dict) -> Flight:
    patch = validate_payload(model=Flight, payload=data, policy=FLIGHT_POLICY, partial=False)
    enforce_choice(patch, "status", FLIGHT_STATUSES)

    def _op():
        flight = Flight(**patch)
        db.session.add(flight)
        db.session.commit()
        return flight

    flight = run_with_retry(_op)
    logger.info("Flight %s created: %s", flight.id, flight.flight_name)
    return flight


def update_flight(flight_id: int, data: dict) -> Flight:
    patch = validate_payload(model=Flight, payload=data, policy=FLIGHT_POLICY, partial=True)
    enforce_choice(patch, "status", FLIGHT_STATUSES)

    def _op():
        flight = get_flight(flight_id)
        for key, value in patch.items():
            setattr(flight, key, value)
        db.session.commit()
        return flight

    return run_with_retry(_op)


def delete_flight(flight_id: int) -> None:
    """Delete a flight no pre-order is assigned to."""
    def _op():
        flight = get_flight(flight_id)
        assigned = db.session.query(PreOrder).filter_by(flight_id=flight_id).count()
        if assigned:
            raise ConflictError(
                f"Flight {flight_id} still has {assigned} pre-order(s) assigned",
                flight_id=flight_id,
            )
        db.session.delete(flight)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Flight %s deleted", flight_id)
