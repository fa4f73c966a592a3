# Overview: Service-layer operations for customers.

from __future__ import annotations

import logging

from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Customer, PreOrder
from ..validation import CUSTOMER_POLICY, validate_payload
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found", customer_id=customer_id)
    return customer


def list_customers(search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Customer.name.ilike(pattern),
                Customer.phone_number.ilike(pattern),
                Customer.instagram_id.ilike(pattern),
            )
        )
    return query.order_by(Customer.name, Customer.id).all()


def create_customer(data: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=False)

    def _op():
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    customer = run_with_retry(_op)
    logger.info("Customer %s created", customer.id)
    return customer


def update_customer(customer_id: int, data: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=data, policy=CUSTOMER_POLICY, partial=True)

    def _op():
        customer = get_customer(customer_id)
        for key, value in patch.items():
            setattr(customer, key, value)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int) -> None:
    """Delete a customer with no pre-orders."""
    def _op():
        customer = get_customer(customer_id)
        order_count = db.session.query(PreOrder).filter_by(customer_id=customer_id).count()
        if order_count:
            raise ConflictError(
                f"Customer {customer_id} has {order_count} pre-order(s)",
                customer_id=customer_id,
            )
        db.session.delete(customer)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Customer %s deleted", customer_id)
