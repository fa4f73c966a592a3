from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer placing pre-orders.

    Identity and contact details only; the ledger references customers by id
    and never mutates them.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    phone_number = db.Column(db.String(32), nullable=False)
    instagram_id = db.Column(db.String(128), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone_number": self.phone_number,
            "instagram_id": self.instagram_id,
            "city": self.city,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
