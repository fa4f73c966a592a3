# Overview: Service-layer operations for staged and bulk edits across many pre-orders.

"""
Change Staging

WHY: Staff edit status and flight assignments across a list of orders and
save them together. Each order is written in its own transaction; one
order failing must never block the rest, so every apply returns a
Manifest with one Applied or Failed entry per order.

Staged entries that applied are removed from the pending map. Failed
entries stay staged so they can be retried or discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from ..errors import LedgerError, PartialApplyError, ValidationError
from ..validation import parse_int
from .order_service import STAGEABLE_FIELDS, apply_lifecycle_changes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Applied:
    order_id: int
    changes: dict
    ok = True

    def to_dict(self) -> dict:
        return {"order_id": self.order_id, "ok": True, "changes": dict(self.changes)}


@dataclass(frozen=True)
class Failed:
    order_id: int
    changes: dict
    error: str
    error_type: str = "LedgerError"
    ok = False

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "ok": False,
            "changes": dict(self.changes),
            "error": self.error,
            "error_type": self.error_type,
        }


ManifestEntry = Union[Applied, Failed]


@dataclass
class Manifest:
    """Per-order outcome of a staged or bulk apply, in submission order."""
    entries: list[ManifestEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    @property
    def successes(self) -> list[Applied]:
        return [e for e in self.entries if isinstance(e, Applied)]

    @property
    def failures(self) -> list[Failed]:
        return [e for e in self.entries if isinstance(e, Failed)]

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialApplyError(self)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "applied": len(self.successes),
            "failed": len(self.failures),
            "entries": [e.to_dict() for e in self.entries],
        }


def _check_field(field_name: str) -> None:
    if field_name not in STAGEABLE_FIELDS:
        raise ValidationError(
            f"Field {field_name!r} cannot be staged. Must be one of {list(STAGEABLE_FIELDS)}"
        )


def _apply_one(order_id: int, changes: dict) -> ManifestEntry:
    try:
        apply_lifecycle_changes(order_id, changes)
    except LedgerError as exc:
        logger.warning("Staged change for order %s failed: %s", order_id, exc.message)
        return Failed(order_id=order_id, changes=changes, error=exc.message, error_type=type(exc).__name__)
    return Applied(order_id=order_id, changes=changes)


class ChangeStager:
    """
    Pending status/flight edits keyed by order id.

    Staging never touches stored rows. Later stages of the same field on
    the same order replace earlier ones.
    """

    def __init__(self):
        self._pending: dict[int, dict[str, Any]] = {}

    def stage(self, order_id, field_name: str, value) -> None:
        _check_field(field_name)
        order_id = parse_int(order_id, "order_id")
        self._pending.setdefault(order_id, {})[field_name] = value

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending(self) -> dict[int, dict[str, Any]]:
        return {order_id: dict(changes) for order_id, changes in self._pending.items()}

    def discard_all(self) -> None:
        self._pending.clear()

    def apply_all(self) -> Manifest:
        """
        Apply every staged entry independently, in the order it was staged.
        """
        manifest = Manifest()
        for order_id, changes in list(self._pending.items()):
            entry = _apply_one(order_id, dict(changes))
            manifest.entries.append(entry)
            if entry.ok:
                del self._pending[order_id]

        logger.info(
            "Applied staged changes: %d ok, %d failed", len(manifest.successes), len(manifest.failures)
        )
        return manifest

    @classmethod
    def from_changes(cls, changes) -> "ChangeStager":
        """
        Build a stager from [{"order_id": 1, "status": "...", "flight_id": 2}, ...].
        """
        if not isinstance(changes, list):
            raise ValidationError("changes must be a list")
        stager = cls()
        for entry in changes:
            if not isinstance(entry, dict) or "order_id" not in entry:
                raise ValidationError("Each change needs an order_id")
            fields = {k: v for k, v in entry.items() if k != "order_id"}
            if not fields:
                raise ValidationError(f"Change for order {entry['order_id']} sets no fields")
            for field_name, value in fields.items():
                stager.stage(entry["order_id"], field_name, value)
        return stager


def apply_to_set(order_ids, field_name: str, value) -> Manifest:
    """
    Bulk action: set one field to one value on many orders, independently.

    Every id is parsed before anything is applied, so a malformed id rejects
    the whole request with nothing written.
    """
    _check_field(field_name)
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError("order_ids must be a non-empty list")

    parsed_ids = []
    malformed = []
    for raw_id in order_ids:
        try:
            parsed_ids.append(parse_int(raw_id, "order_id"))
        except ValidationError:
            malformed.append(raw_id)
    if malformed:
        raise ValidationError(
            f"order_ids must all be integers; invalid: {malformed!r}",
            invalid_order_ids=malformed,
        )

    manifest = Manifest()
    for order_id in parsed_ids:
        manifest.entries.append(_apply_one(order_id, {field_name: value}))

    logger.info(
        "Bulk %s=%r on %d order(s): %d failed", field_name, value, len(manifest), len(manifest.failures)
    )
    return manifest
