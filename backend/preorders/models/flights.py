from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


FLIGHT_STATUSES = (
    "scheduled",
    "in_transit",
    "arrived",
    "delayed",
    "in_progress",
    "completed",
    "cancelled",
)


class Flight(db.Model):
    """Shipment batch that groups pre-orders for delivery tracking."""
    __tablename__ = "flights"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    flight_name = db.Column(db.String(128), nullable=False, index=True)
    shipment_date = db.Column(db.Date, nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="scheduled", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Flight id={self.id} name={self.flight_name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "flight_name": self.flight_name,
            "shipment_date": to_iso_date(self.shipment_date),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
