# Overview: Flask API routes for flight operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify

from ..decorators import require_user
from ..notifications import LEVEL_SUCCESS, attach, notify
from ..services import flight_service


flights_bp = Blueprint("flights", __name__, url_prefix="/api/flights")


@flights_bp.get("")
@require_user
def list_flights_route():
    """
    List flights, newest shipment first.

    Query parameters:
    - status: scheduled, in_transit, arrived, delayed, in_progress, completed, cancelled
    """
    flights = flight_service.list_flights(status=request.args.get("status"))
    return jsonify({"items": [f.to_dict() for f in flights], "count": len(flights)})


@flights_bp.post("")
@require_user
def create_flight_route():
    """
    Create a flight.

    Request body:
    {
        "flight_name": "PK-786 March",  // required
        "shipment_date": "2026-03-14",  // optional
        "status": "scheduled"           // optional
    }
    """
    data = request.get_json(silent=True) or {}
    flight = flight_service.create_flight(data)
    notify(LEVEL_SUCCESS, f"Flight {flight.flight_name} added")
    return jsonify(attach({"flight": flight.to_dict()})), 201


@flights_bp.get("/<int:flight_id>")
@require_user
def get_flight_route(flight_id: int):
    flight = flight_service.get_flight(flight_id)
    body = flight.to_dict()
    body["pre_order_ids"] = [o.id for o in flight.preorders]
    return jsonify({"flight": body})


@flights_bp.patch("/<int:flight_id>")
@require_user
def update_flight_route(flight_id: int):
    data = request.get_json(silent=True) or {}
    flight = flight_service.update_flight(flight_id, data)
    notify(LEVEL_SUCCESS, f"Flight {flight.flight_name} updated")
    return jsonify(attach({"flight": flight.to_dict()}))


@flights_bp.delete("/<int:flight_id>")
@require_user
def delete_flight_route(flight_id: int):
    flight_service.delete_flight(flight_id)
    notify(LEVEL_SUCCESS, "Flight deleted")
    return jsonify(attach({"deleted": flight_id}))
