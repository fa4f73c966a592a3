# Overview: Fixed-point currency value type (integer minor units).

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

# Largest accepted amount: 9,999,999,999.99 in major units.
MAX_CENTS = 999_999_999_999
_CENTS = Decimal("0.01")


@dataclass(frozen=True, order=True)
class Money:
    """
    Currency amount held as an integer count of minor units (paisa/cents).

    Every ledger computation goes through this type so repeated add/subtract
    never drifts the way binary floats do.
    """

    cents: int = 0

    def __post_init__(self):
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money requires integer cents, got {type(self.cents).__name__}")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def parse(cls, value, *, field: str = "amount") -> "Money":
        """
        Build Money from client input.

        - int / digit string: minor units ("1500" -> 15.00)
        - Money: returned unchanged
        - None / "": zero
        Floats are refused.
        """
        if value is None or value == "":
            return cls(0)
        if isinstance(value, Money):
            return value
        if isinstance(value, bool):
            raise ValidationError(f"{field} must be an integer amount in minor units")
        if isinstance(value, int):
            return cls._checked(value, field)
        if isinstance(value, float):
            raise ValidationError(f"{field} must be an integer amount in minor units, not a float")
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.lstrip("-").isdigit():
                return cls._checked(int(stripped), field)
        raise ValidationError(f"{field} must be an integer amount in minor units")

    @classmethod
    def from_major(cls, value, *, field: str = "amount") -> "Money":
        """Build Money from a major-unit decimal ("12.50" or Decimal("12.5"))."""
        if isinstance(value, (float, bool)):
            raise ValidationError(f"{field} must be a decimal string, not {type(value).__name__}")
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field} must be a decimal amount")
        if not dec.is_finite():
            raise ValidationError(f"{field} must be a finite amount")
        if dec != dec.quantize(_CENTS):
            raise ValidationError(f"{field} has more than two decimal places")
        return cls._checked(int(dec * 100), field)

    @classmethod
    def sum(cls, values) -> "Money":
        total = cls(0)
        for value in values:
            total = total.add(value)
        return total

    @classmethod
    def _checked(cls, cents: int, field: str) -> "Money":
        if abs(cents) > MAX_CENTS:
            raise ValidationError(f"{field} exceeds the maximum supported amount")
        return cls(cents)

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add(self, other: "Money") -> "Money":
        return Money(self.cents + _require_money(other).cents)

    def subtract(self, other: "Money") -> "Money":
        return Money(self.cents - _require_money(other).cents)

    def multiply(self, quantity: int) -> "Money":
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError("Money can only be multiplied by an integer quantity")
        return Money(self.cents * quantity)

    def negate(self) -> "Money":
        return Money(-self.cents)

    __add__ = add
    __sub__ = subtract

    def __mul__(self, quantity: int) -> "Money":
        return self.multiply(quantity)

    __rmul__ = __mul__

    def __neg__(self) -> "Money":
        return self.negate()

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def is_zero(self) -> bool:
        return self.cents == 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def is_non_negative(self) -> bool:
        return self.cents >= 0

    def is_negative(self) -> bool:
        return self.cents < 0

    def clamp_non_negative(self) -> "Money":
        return self if self.cents >= 0 else Money(0)

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def to_decimal(self) -> Decimal:
        return (Decimal(self.cents) / 100).quantize(_CENTS, rounding=ROUND_HALF_UP)

    def format(self, currency: str | None = None) -> str:
        sign = "-" if self.cents < 0 else ""
        text = f"{sign}{abs(self.to_decimal()):,.2f}"
        return f"{currency} {text}" if currency else text

    def __str__(self) -> str:
        return self.format()


def _require_money(value) -> Money:
    if not isinstance(value, Money):
        raise TypeError(f"expected Money, got {type(value).__name__}")
    return value
