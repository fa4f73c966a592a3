# Overview: Service-layer operations for pre-order follow-up reminders.

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import PreOrder, Reminder, REMINDER_PRIORITIES, REMINDER_STATUSES
from ..validation import REMINDER_POLICY, enforce_choice, validate_payload
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


def _validated(data: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Reminder, payload=data, policy=REMINDER_POLICY, partial=partial)
    enforce_choice(patch, "status", REMINDER_STATUSES)
    enforce_choice(patch, "priority", REMINDER_PRIORITIES)
    return patch


def get_reminder(reminder_id: int) -> Reminder:
    reminder = db.session.get(Reminder, reminder_id)
    if not reminder:
        raise NotFoundError(f"Reminder {reminder_id} not found", reminder_id=reminder_id)
    return reminder


def list_reminders(
    *,
    status: str | None = None,
    order_id: int | None = None,
    user_id: str | None = None,
) -> list[Reminder]:
    query = db.session.query(Reminder)
    if status:
        query = query.filter_by(status=status)
    if order_id is not None:
        query = query.filter_by(order_id=order_id)
    if user_id:
        query = query.filter_by(user_id=user_id)
    return query.order_by(Reminder.due_date, Reminder.id).all()


def reminder_board(user_id: str | None = None) -> dict[str, list[dict]]:
    """Reminders grouped by status, each column ordered by due date."""
    board = {status: [] for status in REMINDER_STATUSES}
    for reminder in list_reminders(user_id=user_id):
        board.setdefault(reminder.status, []).append(reminder.to_dict())
    return board


def build_reminder(order_id: int, data: dict, user_id: str) -> Reminder:
    """Validate and construct a reminder without adding it to the session."""
    if not user_id:
        raise ValidationError("user_id is required for reminders")
    patch = _validated(data, partial=False)
    return Reminder(order_id=order_id, user_id=user_id, **patch)


def create_reminder(order_id: int, data: dict, user_id: str) -> Reminder:
    reminder = build_reminder(order_id, data, user_id)

    def _op():
        if not db.session.get(PreOrder, order_id):
            raise NotFoundError(f"Pre-order {order_id} not found", order_id=order_id)
        db.session.add(reminder)
        db.session.commit()
        return reminder

    reminder = run_with_retry(_op)
    logger.info("Reminder %s created on order %s by %s", reminder.id, order_id, user_id)
    return reminder


def update_reminder(reminder_id: int, data: dict) -> Reminder:
    patch = _validated(data, partial=True)

    def _op():
        reminder = get_reminder(reminder_id)
        for key, value in patch.items():
            setattr(reminder, key, value)
        db.session.commit()
        return reminder

    return run_with_retry(_op)


def delete_reminder(reminder_id: int) -> None:
    def _op():
        reminder = get_reminder(reminder_id)
        db.session.delete(reminder)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Reminder %s deleted", reminder_id)
