from __future__ import annotations
from datetime import date, datetime
from preorders.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from preorders.errors import ValidationError
from preorders.money import MAX_CENTS


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone_number", "instagram_id", "city", "address"},
    required_on_create={"name", "phone_number"},
)

FLIGHT_POLICY = ModelValidationPolicy(
    writable_fields={"flight_name", "shipment_date", "status"},
    required_on_create={"flight_name"},
)

ORDER_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "flight_id", "status", "delivery_charges_cents", "cod_amount_cents"},
    required_on_create={"customer_id"},
)

REMINDER_POLICY = ModelValidationPolicy(
    writable_fields={"title", "description", "status", "priority", "due_date"},
    required_on_create={"title", "due_date"},
)

TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={
        "brand", "amount_cents", "transaction_date", "due_date",
        "confirmation_status", "pay_status", "remarks",
    },
    required_on_create={"brand", "amount_cents", "transaction_date"},
)

# Edits may also say what they changed
TRANSACTION_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=TRANSACTION_POLICY.writable_fields | {"change_description"},
)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer parsing for client input.

    Accepts ints and plain digit strings. Rejects bools, floats,
    decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                return parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
        raise ValidationError(f"{col.key} must be a date")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_choice(patch: dict, key: str, choices) -> None:
    if key in patch and patch[key] not in choices:
        raise ValidationError(f"Invalid {key}: {patch[key]!r}. Must be one of {list(choices)}")


def enforce_rules_order(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("delivery_charges_cents", "cod_amount_cents"):
        if key in patch and patch[key] is not None:
            amount = patch[key]
            # Range checks
            if amount < 0:
                raise ValidationError(f"{key} must be >= 0")
            if amount > MAX_CENTS:
                raise ValidationError(f"{key} exceeds the maximum supported amount")


def enforce_rules_transaction(patch: dict) -> None:
    if "amount_cents" in patch:
        amount = patch["amount_cents"]
        if amount is None or amount <= 0:
            raise ValidationError("amount_cents must be > 0")
        if amount > MAX_CENTS:
            raise ValidationError("amount_cents exceeds the maximum supported amount")
