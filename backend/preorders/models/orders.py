from __future__ import annotations

from ..extensions import db
from ..money import Money
from ..time_utils import to_utc_z


ORDER_STATUSES = (
    "pending",
    "ordered",
    "shipped",
    "delivered",
    "cancelled",
    "out_of_stock",
)

PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_OVERPAID = "overpaid"


class PreOrder(db.Model):
    """
    Pre-order document (aggregate root of the ledger).

    WHY: All money columns other than delivery_charges_cents and
    cod_amount_cents are derived. They are written only by
    ledger_service.apply_totals() and must never be hand-entered.

    DERIVED COLUMNS (all cents):
    - subtotal: sum of item price * quantity
    - total_amount: subtotal + delivery_charges (cod excluded)
    - advance_payment: sum of item advances
    - remaining_amount: total_amount - advance_payment (signed)
    - order_level_paid: sum of payments with no item target
    - balance_due: remaining_amount - order_level_paid (signed)
    """
    __tablename__ = "preorders"
    __table_args__ = (
        db.Index("ix_preorders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    flight_id = db.Column(db.Integer, db.ForeignKey("flights.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # User-entered charges
    delivery_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    cod_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Derived ledger state
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    advance_payment_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    order_level_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_UNPAID, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("preorders", lazy=True))
    flight = db.relationship("Flight", backref=db.backref("preorders", lazy=True))
    items = db.relationship(
        "PreOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PreOrderItem.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PreOrder id={self.id} status={self.status} total={self.total_amount_cents}>"

    @property
    def delivery_charges(self) -> Money:
        return Money(self.delivery_charges_cents or 0)

    @property
    def cod_amount(self) -> Money:
        return Money(self.cod_amount_cents or 0)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "flight_id": self.flight_id,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "delivery_charges_cents": self.delivery_charges_cents,
            "cod_amount_cents": self.cod_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "advance_payment_cents": self.advance_payment_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "order_level_paid_cents": self.order_level_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "payment_status": self.payment_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PreOrderItem(db.Model):
    """
    Product line on a pre-order.

    The row id is the item's stable identity: payments reference it, so an
    edit must update the row in place instead of replacing it.
    """
    __tablename__ = "preorder_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="quantity_positive"),
        db.CheckConstraint("price_cents >= 0", name="price_non_negative"),
        db.CheckConstraint("advance_payment_cents >= 0", name="advance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("preorders.id", ondelete="CASCADE"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    shade = db.Column(db.String(128), nullable=False, default="")
    size = db.Column(db.String(64), nullable=False, default="")
    link = db.Column(db.String(1024), nullable=False, default="")

    quantity = db.Column(db.Integer, nullable=False, default=1)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    advance_payment_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship("PreOrder", back_populates="items")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PreOrderItem id={self.id} order_id={self.order_id} name={self.product_name!r}>"

    @property
    def price(self) -> Money:
        return Money(self.price_cents or 0)

    @property
    def advance_payment(self) -> Money:
        return Money(self.advance_payment_cents or 0)

    @property
    def line_value(self) -> Money:
        return self.price.multiply(self.quantity or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_name": self.product_name,
            "shade": self.shade,
            "size": self.size,
            "link": self.link,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "advance_payment_cents": self.advance_payment_cents,
            "line_value_cents": self.line_value.cents,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
