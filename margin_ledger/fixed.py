"""
fixed.py - Checked Fixed-Point Arithmetic

All share, index, price and value arithmetic in the engine goes through
FixedPoint: an unsigned number with 64 integer bits and 64 fractional bits,
stored as a single Python int ("raw") in [0, 2**128).

Design rules:
    - Every operation is checked. Overflow, a negative difference or a
      division by zero raises FixedPointError. Nothing saturates or wraps.
    - Multiplication and division truncate toward zero; div_ceil rounds up.
    - Floats are rejected. Values enter through int, str or Decimal.

Example:
    index = FixedPoint.ONE
    shares = FixedPoint.from_int(100) / index
    native = (shares * FixedPoint.from_str("1.05")).floor()   # 105
"""

from __future__ import annotations
from decimal import Decimal, ROUND_DOWN, localcontext
from functools import total_ordering
from typing import Union

from .core import FixedPointError


FRAC_BITS = 64
SCALE = 1 << FRAC_BITS
RAW_MAX = (1 << 128) - 1

# Precision used when converting to/from Decimal; enough for 128-bit values exactly.
_DECIMAL_PREC = 80

Operand = Union["FixedPoint", int]


@total_ordering
class FixedPoint:
    """Immutable unsigned 64.64 fixed-point number with checked arithmetic."""

    __slots__ = ("_raw",)

    ZERO: "FixedPoint"
    ONE: "FixedPoint"
    MAX: "FixedPoint"

    def __init__(self, raw: int = 0):
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise TypeError(f"FixedPoint raw value must be int, got {type(raw).__name__}")
        if raw < 0 or raw > RAW_MAX:
            raise FixedPointError(f"raw value {raw} outside representable range")
        object.__setattr__(self, "_raw", raw)

    def __setattr__(self, name, value):
        raise AttributeError("FixedPoint is immutable")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_int(cls, value: int) -> FixedPoint:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"expected int, got {type(value).__name__}")
        if value < 0:
            raise FixedPointError(f"cannot represent negative value {value}")
        return cls(value << FRAC_BITS)

    @classmethod
    def from_decimal(cls, value: Union[Decimal, str, int]) -> FixedPoint:
        """Convert exactly, truncating any digits beyond 64 fractional bits."""
        if isinstance(value, float):
            raise TypeError("floats are not accepted; pass a str or Decimal")
        with localcontext() as ctx:
            ctx.prec = _DECIMAL_PREC
            d = Decimal(value)
            if not d.is_finite():
                raise FixedPointError(f"cannot represent non-finite value {value}")
            if d < 0:
                raise FixedPointError(f"cannot represent negative value {value}")
            raw = int((d * SCALE).to_integral_value(rounding=ROUND_DOWN))
        return cls(raw)

    from_str = from_decimal

    @classmethod
    def ratio(cls, numerator: int, denominator: int) -> FixedPoint:
        """numerator / denominator of two non-negative ints, truncated once."""
        if numerator < 0 or denominator < 0:
            raise FixedPointError("ratio operands cannot be negative")
        if denominator == 0:
            raise FixedPointError("division by zero")
        return cls._checked((numerator << FRAC_BITS) // denominator, "ratio")

    # ------------------------------------------------------------------
    # Accessors and conversions
    # ------------------------------------------------------------------

    @property
    def raw(self) -> int:
        return self._raw

    def floor(self) -> int:
        """Round toward -inf (the integer part)."""
        return self._raw >> FRAC_BITS

    to_int = floor

    def ceil(self) -> int:
        """Round toward +inf."""
        return (self._raw + SCALE - 1) >> FRAC_BITS

    def to_decimal(self) -> Decimal:
        with localcontext() as ctx:
            ctx.prec = _DECIMAL_PREC
            return Decimal(self._raw) / Decimal(SCALE)

    def is_zero(self) -> bool:
        return self._raw == 0

    # ------------------------------------------------------------------
    # Checked arithmetic
    # ------------------------------------------------------------------

    @staticmethod
    def _coerce(other) -> FixedPoint:
        if isinstance(other, FixedPoint):
            return other
        if isinstance(other, int) and not isinstance(other, bool):
            return FixedPoint.from_int(other)
        raise TypeError(f"unsupported operand type for FixedPoint: {type(other).__name__}")

    @staticmethod
    def _checked(raw: int, op: str) -> FixedPoint:
        if raw > RAW_MAX:
            raise FixedPointError(f"overflow in {op}")
        if raw < 0:
            raise FixedPointError(f"underflow in {op}")
        return FixedPoint(raw)

    def __add__(self, other: Operand) -> FixedPoint:
        return self._checked(self._raw + self._coerce(other)._raw, "add")

    __radd__ = __add__

    def __sub__(self, other: Operand) -> FixedPoint:
        return self._checked(self._raw - self._coerce(other)._raw, "sub")

    def __rsub__(self, other: Operand) -> FixedPoint:
        return self._checked(self._coerce(other)._raw - self._raw, "sub")

    def __mul__(self, other: Operand) -> FixedPoint:
        return self._checked((self._raw * self._coerce(other)._raw) >> FRAC_BITS, "mul")

    __rmul__ = __mul__

    def __truediv__(self, other: Operand) -> FixedPoint:
        divisor = self._coerce(other)._raw
        if divisor == 0:
            raise FixedPointError("division by zero")
        return self._checked((self._raw << FRAC_BITS) // divisor, "div")

    def __rtruediv__(self, other: Operand) -> FixedPoint:
        return self._coerce(other).__truediv__(self)

    def div_ceil(self, other: Operand) -> FixedPoint:
        """Division rounded toward +inf instead of truncated."""
        divisor = self._coerce(other)._raw
        if divisor == 0:
            raise FixedPointError("division by zero")
        return self._checked(-(-(self._raw << FRAC_BITS) // divisor), "div")

    # ------------------------------------------------------------------
    # Comparison and hashing
    # ------------------------------------------------------------------

    @staticmethod
    def _raw_of(other):
        if isinstance(other, FixedPoint):
            return other._raw
        if isinstance(other, int) and not isinstance(other, bool):
            return other << FRAC_BITS if other >= 0 else -((-other) << FRAC_BITS)
        return None

    def __eq__(self, other) -> bool:
        raw = self._raw_of(other)
        if raw is None:
            return NotImplemented
        return self._raw == raw

    def __lt__(self, other) -> bool:
        raw = self._raw_of(other)
        if raw is None:
            return NotImplemented
        return self._raw < raw

    def __hash__(self) -> int:
        return hash(("FixedPoint", self._raw))

    def __bool__(self) -> bool:
        return self._raw != 0

    def __reduce__(self):
        return (FixedPoint, (self._raw,))

    def __copy__(self) -> FixedPoint:
        return self

    def __deepcopy__(self, memo) -> FixedPoint:
        return self

    def __str__(self) -> str:
        d = self.to_decimal().normalize()
        return format(d, "f")

    def __repr__(self) -> str:
        return f"FixedPoint('{self}')"


FixedPoint.ZERO = FixedPoint(0)
FixedPoint.ONE = FixedPoint(SCALE)
FixedPoint.MAX = FixedPoint(RAW_MAX)


def fp(value: Union[int, str, Decimal]) -> FixedPoint:
    """Shorthand constructor: ints convert exactly, str/Decimal truncate to 64 fractional bits."""
    if isinstance(value, int) and not isinstance(value, bool):
        return FixedPoint.from_int(value)
    return FixedPoint.from_decimal(value)
