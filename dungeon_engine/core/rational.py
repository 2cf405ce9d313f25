"""
Exact rational numbers for dungeon-wide scaling factors.

Dungeon multipliers are chained (base stat x dungeon multiplier x enrage ...),
so they are kept as integer ratios in lowest terms instead of floats. A value
parsed from an invalid string becomes NaN, and NaN absorbs every
multiplication it takes part in.
"""
from fractions import Fraction
from math import gcd
from typing import Union

Number = Union[int, float]

NAN_STRING = "NaN"


class Rational:
    """A numerator/denominator pair in lowest terms with denominator > 0."""

    __slots__ = ("numerator", "denominator")

    def __init__(self, numerator: int = 1, denominator: int = 1):
        if denominator == 0:
            raise ZeroDivisionError("Rational denominator cannot be 0")
        if denominator < 0:
            numerator, denominator = -numerator, -denominator
        divisor = gcd(numerator, denominator)
        self.numerator = numerator // divisor
        self.denominator = denominator // divisor

    @classmethod
    def nan(cls) -> "Rational":
        """The undefined value. Only parsing produces it."""
        value = cls.__new__(cls)
        value.numerator = 0
        value.denominator = 0
        return value

    @classmethod
    def from_string(cls, text: str) -> "Rational":
        """
        Parse a decimal string ("1.5", "3", "0.25") or a fraction ("3/2").

        Anything unparseable yields NaN instead of raising.
        """
        if text is None:
            return cls.nan()
        try:
            fraction = Fraction(str(text).strip())
        except (ValueError, ZeroDivisionError):
            return cls.nan()
        return cls(fraction.numerator, fraction.denominator)

    @classmethod
    def from_value(cls, value: Union["Rational", str, Number]) -> "Rational":
        """Coerce a multiplier from the wire (string, number or Rational)."""
        if isinstance(value, Rational):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        # str() keeps floats in their short decimal form, so 1.1 is 11/10.
        return cls.from_string(str(value))

    @property
    def is_nan(self) -> bool:
        return self.denominator == 0

    @property
    def is_one(self) -> bool:
        return not self.is_nan and self.numerator == self.denominator

    def multiply(self, other: Union["Rational", Number]) -> Union["Rational", float]:
        """
        Multiply by another Rational (exact) or scale a plain number.

        Scaling a number returns a float; callers round as their stat rules
        require.
        """
        if isinstance(other, Rational):
            if self.is_nan or other.is_nan:
                return Rational.nan()
            return Rational(
                self.numerator * other.numerator,
                self.denominator * other.denominator,
            )
        if self.is_nan:
            return float("nan")
        return other * self.numerator / self.denominator

    def __mul__(self, other):
        if isinstance(other, (Rational, int, float)):
            return self.multiply(other)
        return NotImplemented

    __rmul__ = __mul__

    def __float__(self) -> float:
        if self.is_nan:
            return float("nan")
        return self.numerator / self.denominator

    def __eq__(self, other) -> bool:
        if not isinstance(other, Rational):
            return NotImplemented
        if self.is_nan or other.is_nan:
            return False
        return (self.numerator, self.denominator) == (other.numerator, other.denominator)

    def __hash__(self) -> int:
        return hash((self.numerator, self.denominator))

    def __str__(self) -> str:
        if self.is_nan:
            return NAN_STRING
        if self.denominator == 1:
            return str(self.numerator)
        return f"{self.numerator}/{self.denominator}"

    def __repr__(self) -> str:
        return f"Rational({self})"
