"""
config.py - Risk Configuration

Risk parameters for an asset group, loaded from a mapping or a YAML file:

    init_ratio: "1.20"
    maint_ratio: "1.10"
    optimal_util: "0.70"
    optimal_rate: "0.10"
    max_rate: "1.00"
    borrow_limits: [1000000000000, 1000000000000, 100000000000000]

Numbers may be given as strings or numbers; they are read through str() into
Decimal so YAML floats keep their written digits.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping, Tuple, Union

import yaml

from .core import ConfigValidationError, U64_MAX
from .interest import (
    InterestRateModel,
    DEFAULT_OPTIMAL_UTIL, DEFAULT_OPTIMAL_RATE, DEFAULT_MAX_RATE,
)


DEFAULT_INIT_RATIO = Decimal("1.20")
DEFAULT_MAINT_RATIO = Decimal("1.10")

_KNOWN_FIELDS = {
    "init_ratio", "maint_ratio", "optimal_util", "optimal_rate", "max_rate", "borrow_limits",
}


def _decimal_field(config: Mapping[str, Any], field: str, default: Decimal) -> Decimal:
    if field not in config:
        return default
    value = config[field]
    if isinstance(value, bool):
        raise ConfigValidationError(f"{field} must be a number, got: {value}")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(f"{field} must be a valid number, got: {value}") from exc
    if not result.is_finite() or result < 0:
        raise ConfigValidationError(f"{field} must be a non-negative number, got: {value}")
    return result


def _borrow_limits(config: Mapping[str, Any]) -> Tuple[int, ...]:
    if "borrow_limits" not in config:
        raise ConfigValidationError("Missing required field: borrow_limits")
    limits = config["borrow_limits"]
    if not isinstance(limits, (list, tuple)) or len(limits) < 2:
        raise ConfigValidationError("borrow_limits must be a list with one entry per asset (at least 2)")
    for limit in limits:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 0 <= limit <= U64_MAX:
            raise ConfigValidationError(f"borrow limit must be an integer in [0, 2**64), got: {limit}")
    return tuple(limits)


@dataclass(frozen=True, slots=True)
class RiskConfig:
    """
    Risk parameters for one asset group.

    Attributes:
        init_ratio: Ratio required after any risk-increasing action.
        maint_ratio: Ratio below which accounts are liquidatable.
        optimal_util: Utilization at the rate curve's kink.
        optimal_rate: Annual borrow rate at the kink.
        max_rate: Annual borrow rate at full utilization.
        borrow_limits: Maximum native borrow per account, per asset (quote last).
    """
    borrow_limits: Tuple[int, ...]
    init_ratio: Decimal = DEFAULT_INIT_RATIO
    maint_ratio: Decimal = DEFAULT_MAINT_RATIO
    optimal_util: Decimal = DEFAULT_OPTIMAL_UTIL
    optimal_rate: Decimal = DEFAULT_OPTIMAL_RATE
    max_rate: Decimal = DEFAULT_MAX_RATE

    def __post_init__(self):
        if self.maint_ratio < 1:
            raise ConfigValidationError(f"maint_ratio must be at least 1, got: {self.maint_ratio}")
        if self.init_ratio <= self.maint_ratio:
            raise ConfigValidationError(
                f"init_ratio ({self.init_ratio}) must exceed maint_ratio ({self.maint_ratio})"
            )
        try:
            self.rate_model()
        except ValueError as exc:
            raise ConfigValidationError(str(exc)) from exc

    @property
    def num_tokens(self) -> int:
        return len(self.borrow_limits)

    def rate_model(self) -> InterestRateModel:
        return InterestRateModel(
            optimal_util=self.optimal_util,
            optimal_rate=self.optimal_rate,
            max_rate=self.max_rate,
        )

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> RiskConfig:
        """
        Build a validated RiskConfig. Missing ratio and rate fields take their
        defaults; borrow_limits is required.

        Raises:
            ConfigValidationError: on unknown fields or invalid values.
        """
        if not isinstance(config, Mapping):
            raise ConfigValidationError(f"risk config must be a mapping, got: {type(config).__name__}")
        unknown = set(config) - _KNOWN_FIELDS
        if unknown:
            raise ConfigValidationError(f"Unknown risk config fields: {', '.join(sorted(unknown))}")
        return cls(
            borrow_limits=_borrow_limits(config),
            init_ratio=_decimal_field(config, "init_ratio", DEFAULT_INIT_RATIO),
            maint_ratio=_decimal_field(config, "maint_ratio", DEFAULT_MAINT_RATIO),
            optimal_util=_decimal_field(config, "optimal_util", DEFAULT_OPTIMAL_UTIL),
            optimal_rate=_decimal_field(config, "optimal_rate", DEFAULT_OPTIMAL_RATE),
            max_rate=_decimal_field(config, "max_rate", DEFAULT_MAX_RATE),
        )


def load_config(path: Union[str, Path]) -> RiskConfig:
    """Read a RiskConfig from a YAML file (optionally nested under a `risk:` key)."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        raise ConfigValidationError(f"risk config file {path} is empty")
    if isinstance(data, Mapping) and "risk" in data and isinstance(data["risk"], Mapping):
        data = data["risk"]
    return RiskConfig.from_mapping(data)
