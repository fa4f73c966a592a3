# Overview: Read-only projection of pre-orders and their ledger totals for CSV export.

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import PreOrder
from ..money import Money
from .ledger_service import LedgerTotals, ledger_snapshot


EXPORT_COLUMNS = (
    ("order_id", "Pre-Order ID"),
    ("customer_name", "Customer Name"),
    ("instagram_id", "Instagram ID"),
    ("address", "Address"),
    ("phone_number", "Phone Number"),
    ("city", "City"),
    ("flight_name", "Flight"),
    ("status", "Status"),
    ("subtotal", "Subtotal"),
    ("delivery_charges", "Delivery Charges"),
    ("total_amount", "Total Amount"),
    ("advance_payment", "Advance Payment"),
    ("order_level_paid", "Order Payments"),
    ("remaining_amount", "Remaining Amount"),
    ("balance_due", "Balance Due"),
    ("cod_amount", "COD Amount"),
    ("payment_status", "Payment Status"),
)


@dataclass(frozen=True)
class ExportRow:
    order: PreOrder
    totals: LedgerTotals

    def values(self) -> dict:
        customer = self.order.customer
        flight = self.order.flight
        totals = self.totals
        return {
            "order_id": self.order.id,
            "customer_name": customer.name if customer else "",
            "instagram_id": (customer.instagram_id or "") if customer else "",
            "address": (customer.address or "") if customer else "",
            "phone_number": customer.phone_number if customer else "",
            "city": (customer.city or "") if customer else "",
            "flight_name": flight.flight_name if flight else "",
            "status": self.order.status,
            "subtotal": totals.subtotal,
            "delivery_charges": totals.delivery_charges,
            "total_amount": totals.total_amount,
            "advance_payment": totals.advance_total,
            "order_level_paid": totals.order_level_paid,
            "remaining_amount": totals.display_remaining,
            "balance_due": totals.display_balance_due,
            "cod_amount": totals.cod_amount,
            "payment_status": totals.payment_status,
        }


def project_orders(order_ids: list[int] | None = None) -> list[ExportRow]:
    """
    Build export rows from freshly aggregated totals.

    Never writes: totals come from aggregate() over the loaded items and
    payments, not from the stored derived columns.
    """
    query = db.session.query(PreOrder).options(
        selectinload(PreOrder.items),
        selectinload(PreOrder.payments),
        selectinload(PreOrder.customer),
        selectinload(PreOrder.flight),
    )
    if order_ids is not None:
        if not order_ids:
            return []
        query = query.filter(PreOrder.id.in_(order_ids))
    orders = query.order_by(PreOrder.id).all()
    return [ExportRow(order=order, totals=ledger_snapshot(order)) for order in orders]


def render_csv(rows: list[ExportRow], currency: str | None = None) -> str:
    """
    Render rows as CSV text. Money columns are written in major units with
    two decimals; the currency code goes in the header when given.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    header = []
    for key, label in EXPORT_COLUMNS:
        if currency and key in _MONEY_KEYS:
            label = f"{label} ({currency})"
        header.append(label)
    writer.writerow(header)

    for row in rows:
        values = row.values()
        writer.writerow([_cell(values[key]) for key, _ in EXPORT_COLUMNS])
    return buffer.getvalue()


_MONEY_KEYS = {
    "subtotal",
    "delivery_charges",
    "total_amount",
    "advance_payment",
    "order_level_paid",
    "remaining_amount",
    "balance_due",
    "cod_amount",
}


def _cell(value):
    if isinstance(value, Money):
        return f"{value.to_decimal():.2f}"
    return value
