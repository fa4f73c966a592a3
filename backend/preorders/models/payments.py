from __future__ import annotations

from ..extensions import db
from ..money import Money
from ..time_utils import to_utc_z, to_iso_date


PURPOSE_ADVANCE = "advance"
PURPOSE_FINAL_REMAINING = "final_remaining"
PURPOSE_DELIVERY_CHARGES = "delivery_charges"
PURPOSE_COD = "cod"

PAYMENT_PURPOSES = (
    PURPOSE_ADVANCE,
    PURPOSE_FINAL_REMAINING,
    PURPOSE_DELIVERY_CHARGES,
    PURPOSE_COD,
)


class Payment(db.Model):
    """
    Payment received against a pre-order.

    WHY: Payments are the ledger's source of truth. Item advances and order
    aggregates are derived from them and can be rebuilt from these rows.

    TARGETING:
    - item_id set: the amount counts toward that item's advance only
    - item_id null: the amount counts toward the order as a whole

    is_automatic marks rows created by the system when an item was saved
    with an initial advance, as opposed to payments recorded by staff.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        db.Index("ix_payments_order_item", "order_id", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("preorders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("preorder_items.id", ondelete="SET NULL"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    purpose = db.Column(db.String(32), nullable=False, default=PURPOSE_ADVANCE, index=True)
    bank_account = db.Column(db.String(64), nullable=False)
    tally = db.Column(db.Boolean, nullable=False, default=False)
    screenshot_ref = db.Column(db.String(1024), nullable=True)
    payment_date = db.Column(db.Date, nullable=False, index=True)
    is_automatic = db.Column(db.Boolean, nullable=False, default=False, index=True)

    # Attribution (user id from the auth context)
    updated_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("PreOrder", backref=db.backref("payments", lazy=True))
    item = db.relationship("PreOrderItem", backref=db.backref("payments", lazy=True, passive_deletes=True))
    customer = db.relationship("Customer")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Payment id={self.id} order_id={self.order_id} item_id={self.item_id} amount={self.amount_cents}>"

    @property
    def amount(self) -> Money:
        return Money(self.amount_cents or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "amount_cents": self.amount_cents,
            "purpose": self.purpose,
            "bank_account": self.bank_account,
            "tally": self.tally,
            "screenshot_ref": self.screenshot_ref,
            "payment_date": to_iso_date(self.payment_date),
            "is_automatic": self.is_automatic,
            "updated_by": self.updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
