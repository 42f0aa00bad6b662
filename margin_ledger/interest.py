"""
interest.py - Utilization-Based Interest Rate Model

Piecewise-linear borrow rate curve with a single kink:

    rate
     ^                          /  max_rate (at u = 1)
     |                        /
     |                      /
     |          _________ /  optimal_rate (at u = optimal_util)
     |   _____/
     +--------------------------> utilization
     0                 0.7      1

Parameters are annual (Decimal, e.g. 0.10 for 10%/year). The ledger only ever
consumes the per-second rate as a FixedPoint; the numpy curve below is for
reporting and analysis and never feeds ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

import numpy as np

from .core import YEAR
from .fixed import FixedPoint


DEFAULT_OPTIMAL_UTIL = Decimal("0.70")
DEFAULT_OPTIMAL_RATE = Decimal("0.10")
DEFAULT_MAX_RATE = Decimal("1.00")


@dataclass(frozen=True, slots=True)
class InterestRateModel:
    """
    Annual parameters of the kinked utilization curve.

    Attributes:
        optimal_util: Utilization at the kink, in (0, 1).
        optimal_rate: Annual borrow rate at the kink.
        max_rate: Annual borrow rate at full utilization (also the error-state rate).
    """
    optimal_util: Decimal = DEFAULT_OPTIMAL_UTIL
    optimal_rate: Decimal = DEFAULT_OPTIMAL_RATE
    max_rate: Decimal = DEFAULT_MAX_RATE

    def __post_init__(self):
        """Convert inputs to Decimal and validate the curve shape."""
        for name in ("optimal_util", "optimal_rate", "max_rate"):
            value = getattr(self, name)
            if isinstance(value, float):
                value = Decimal(str(value))
            elif not isinstance(value, Decimal):
                value = Decimal(value)
            object.__setattr__(self, name, value)

        if not (Decimal("0") < self.optimal_util < Decimal("1")):
            raise ValueError(f"optimal_util must be in (0, 1), got {self.optimal_util}")
        if self.optimal_rate < 0:
            raise ValueError(f"optimal_rate cannot be negative, got {self.optimal_rate}")
        if self.max_rate < self.optimal_rate:
            raise ValueError(
                f"max_rate ({self.max_rate}) cannot be below optimal_rate ({self.optimal_rate})"
            )

    # Per-second parameters as fixed point

    @property
    def optimal_util_fp(self) -> FixedPoint:
        return FixedPoint.from_decimal(self.optimal_util)

    @property
    def optimal_rate_per_second(self) -> FixedPoint:
        return FixedPoint.from_decimal(self.optimal_rate) / YEAR

    @property
    def max_rate_per_second(self) -> FixedPoint:
        return FixedPoint.from_decimal(self.max_rate) / YEAR

    def rate_for_utilization(self, utilization: FixedPoint) -> FixedPoint:
        """Per-second borrow rate at a given utilization in [0, 1]."""
        optimal_util = self.optimal_util_fp
        optimal_r = self.optimal_rate_per_second
        max_r = self.max_rate_per_second

        if utilization > optimal_util:
            extra_util = utilization - optimal_util
            slope = (max_r - optimal_r) / (FixedPoint.ONE - optimal_util)
            return optimal_r + slope * extra_util
        slope = optimal_r / optimal_util
        return slope * utilization

    def rate(self, native_deposits: FixedPoint, native_borrows: FixedPoint) -> FixedPoint:
        """
        Per-second borrow rate for an asset pool.

        When deposits do not exceed borrows (including the zero-deposit case)
        the maximum rate is returned; this is a deliberate conservative state,
        not an error.
        """
        if native_deposits <= native_borrows:
            return self.max_rate_per_second
        return self.rate_for_utilization(native_borrows / native_deposits)


DEFAULT_RATE_MODEL = InterestRateModel()


def utilization(native_deposits: FixedPoint, native_borrows: FixedPoint) -> FixedPoint:
    """Borrows / deposits, defined as 1 when deposits are zero."""
    if native_deposits.is_zero():
        return FixedPoint.ONE
    return native_borrows / native_deposits


def annualized_rate_curve(
    model: InterestRateModel,
    utilizations: Union[float, np.ndarray],
) -> np.ndarray:
    """
    Evaluate the annual borrow rate curve over an array of utilizations.

    Float analytics for dashboards and stress reports. Utilizations are
    clipped to [0, 1].

    Example:
        u = np.linspace(0.0, 1.0, 11)
        rates = annualized_rate_curve(DEFAULT_RATE_MODEL, u)
    """
    u = np.clip(np.asarray(utilizations, dtype=float), 0.0, 1.0)
    optimal_util = float(model.optimal_util)
    optimal_rate = float(model.optimal_rate)
    max_rate = float(model.max_rate)

    below = optimal_rate * u / optimal_util
    above = optimal_rate + (max_rate - optimal_rate) * (u - optimal_util) / (1.0 - optimal_util)
    return np.where(u > optimal_util, above, below)


def annualized_deposit_rate_curve(
    model: InterestRateModel,
    utilizations: Union[float, np.ndarray],
) -> np.ndarray:
    """Depositors earn the borrow rate scaled by utilization."""
    u = np.clip(np.asarray(utilizations, dtype=float), 0.0, 1.0)
    return annualized_rate_curve(model, u) * u
