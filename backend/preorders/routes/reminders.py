# Overview: Flask API routes for pre-order reminders; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_user
from ..errors import ValidationError
from ..notifications import LEVEL_SUCCESS, attach, notify
from ..services import reminder_service
from ..validation import parse_int


reminders_bp = Blueprint("reminders", __name__, url_prefix="/api/reminders")


@reminders_bp.get("")
@require_user
def list_reminders_route():
    """
    List reminders ordered by due date.

    Query parameters:
    - status: pending, in_progress, completed
    - order_id: only reminders on this pre-order
    - mine: "true" for the current user's reminders only
    """
    order_id = request.args.get("order_id")
    mine = request.args.get("mine", "false").lower() == "true"
    reminders = reminder_service.list_reminders(
        status=request.args.get("status"),
        order_id=parse_int(order_id, "order_id") if order_id else None,
        user_id=g.current_user_id if mine else None,
    )
    return jsonify({"items": [r.to_dict() for r in reminders], "count": len(reminders)})


@reminders_bp.get("/board")
@require_user
def reminder_board_route():
    """Reminders grouped into pending / in_progress / completed columns."""
    mine = request.args.get("mine", "false").lower() == "true"
    return jsonify({"columns": reminder_service.reminder_board(g.current_user_id if mine else None)})


@reminders_bp.post("")
@require_user
def create_reminder_route():
    """
    Create a reminder on a pre-order.

    Request body:
    {
        "order_id": 12,                        // required
        "title": "Call about balance",         // required
        "due_date": "2026-04-01T10:00:00Z",    // required
        "description": "...",                  // optional
        "priority": "high",                    // optional (low, medium, high, urgent)
        "status": "pending"                    // optional
    }
    """
    data = dict(request.get_json(silent=True) or {})
    if "order_id" not in data:
        raise ValidationError("order_id is required")
    order_id = parse_int(data.pop("order_id"), "order_id")

    reminder = reminder_service.create_reminder(order_id, data, g.current_user_id)
    notify(LEVEL_SUCCESS, f"Reminder '{reminder.title}' created")
    return jsonify(attach({"reminder": reminder.to_dict()})), 201


@reminders_bp.get("/<int:reminder_id>")
@require_user
def get_reminder_route(reminder_id: int):
    return jsonify({"reminder": reminder_service.get_reminder(reminder_id).to_dict()})


@reminders_bp.patch("/<int:reminder_id>")
@require_user
def update_reminder_route(reminder_id: int):
    data = request.get_json(silent=True) or {}
    reminder = reminder_service.update_reminder(reminder_id, data)
    notify(LEVEL_SUCCESS, f"Reminder '{reminder.title}' updated")
    return jsonify(attach({"reminder": reminder.to_dict()}))


@reminders_bp.delete("/<int:reminder_id>")
@require_user
def delete_reminder_route(reminder_id: int):
    reminder_service.delete_reminder(reminder_id)
    notify(LEVEL_SUCCESS, "Reminder deleted")
    return jsonify(attach({"deleted": reminder_id}))
