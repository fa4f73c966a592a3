# Overview: Exception taxonomy shared by services and routes.

"""
Ledger error taxonomy.

Validation problems are raised before any write. Store failures on the
payment path are split in two: a plain PersistenceError means nothing was
written, a LedgerStaleError means the payment row and item advance exist
but the order aggregates could not be brought up to date.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        data = {"error": self.message, "type": type(self).__name__}
        if self.context:
            data["context"] = self.context
        return data


class ValidationError(LedgerError, ValueError):
    """400-level input problem."""

    status_code = 400


class OverpaymentError(ValidationError):
    """Advance would exceed the item's value while strict mode is on."""


class NotFoundError(LedgerError, LookupError):
    """Order, item, payment, customer, flight or reminder id unresolved."""

    status_code = 404


class ConflictError(LedgerError):
    """409-level business rule conflict (e.g. order still has payments)."""

    status_code = 409


class PersistenceError(LedgerError):
    """Underlying store call failed; nothing on this path was committed."""

    status_code = 500


class LedgerStaleError(PersistenceError):
    """
    Payment recorded but ledger not fully updated.

    The payment row and item advance are committed. The order aggregates
    are stale and must be repaired with recompute_ledger() or
    rebuild_item_advances().
    """

    def __init__(self, message: str, *, payment_id: int, order_id: int, **context: Any):
        super().__init__(message, payment_id=payment_id, order_id=order_id, **context)
        self.payment_id = payment_id
        self.order_id = order_id


class PartialApplyError(LedgerError):
    """A staged batch finished with at least one failed entry."""

    status_code = 207

    def __init__(self, manifest):
        failed = [entry.order_id for entry in manifest.failures]
        super().__init__(
            f"{len(failed)} of {len(manifest)} staged changes failed",
            failed_order_ids=failed,
        )
        self.manifest = manifest


class ConsistencyWarning(UserWarning):
    """Stored ledger value differed from a fresh recomputation."""

    def __init__(self, order_id: int, field: str, stored: int | None, computed: int):
        super().__init__(
            f"order {order_id}: {field} was {stored}, recomputed {computed}"
        )
        self.order_id = order_id
        self.field = field
        self.stored = stored
        self.computed = computed

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "field": self.field,
            "stored": self.stored,
            "computed": self.computed,
        }
