from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REMINDER_STATUSES = ("pending", "in_progress", "completed")
REMINDER_PRIORITIES = ("low", "medium", "high", "urgent")


class Reminder(db.Model):
    """
    Follow-up reminder a staff member sets on a pre-order.

    Shown on the reminders board grouped by status.
    """
    __tablename__ = "reminders"
    __table_args__ = (
        db.Index("ix_reminders_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("preorders.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending")
    priority = db.Column(db.String(16), nullable=False, default="medium")
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship(
        "PreOrder",
        backref=db.backref("reminders", lazy=True, cascade="all, delete-orphan"),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": to_utc_z(self.due_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
