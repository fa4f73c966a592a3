from __future__ import annotations

from ..extensions import db
from ..money import Money
from ..time_utils import to_utc_z, to_iso_date


CONFIRMATION_NOT_CONFIRMED = "not_confirmed"
CONFIRMATION_CONFIRMED = "confirmed"
CONFIRMATION_STATUSES = (CONFIRMATION_NOT_CONFIRMED, CONFIRMATION_CONFIRMED)

PAY_STATUS_UNPAID = "unpaid"
PAY_STATUS_PAID = "paid"
PAY_STATUSES = (PAY_STATUS_UNPAID, PAY_STATUS_PAID)


class BrandTransaction(db.Model):
    """
    Purchase placed with a brand to fulfil pre-orders.

    WHY: This is the shop's own payables ledger, kept separate from customer
    payments. A transaction is confirmed once the brand accepts it and paid
    once the shop has settled it; unpaid transactions past their due date
    are overdue.

    change_description records what the last edit did, alongside
    updated_by.
    """
    __tablename__ = "brand_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        db.Index("ix_brand_transactions_pay_due", "pay_status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)

    brand = db.Column(db.String(128), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    transaction_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=True)
    confirmation_status = db.Column(db.String(16), nullable=False, default=CONFIRMATION_NOT_CONFIRMED, index=True)
    pay_status = db.Column(db.String(16), nullable=False, default=PAY_STATUS_UNPAID)
    remarks = db.Column(db.Text, nullable=True)

    updated_by = db.Column(db.String(64), nullable=True)
    change_description = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<BrandTransaction id={self.id} brand={self.brand} amount={self.amount_cents} {self.pay_status}>"

    @property
    def amount(self) -> Money:
        return Money(self.amount_cents or 0)

    def is_overdue(self, as_of) -> bool:
        return self.pay_status == PAY_STATUS_UNPAID and self.due_date is not None and self.due_date < as_of

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "brand": self.brand,
            "amount_cents": self.amount_cents,
            "transaction_date": to_iso_date(self.transaction_date),
            "due_date": to_iso_date(self.due_date),
            "confirmation_status": self.confirmation_status,
            "pay_status": self.pay_status,
            "remarks": self.remarks,
            "updated_by": self.updated_by,
            "change_description": self.change_description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
