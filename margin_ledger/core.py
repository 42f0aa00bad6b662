"""
Core types and constants for the cross-margin accounting engine.

This module provides the foundational pieces shared by every other module:
1. Constants: time units, the unset-reference sentinel, default pool shape
2. Record kinds: the discriminant stored at the head of every binary record
3. Exceptions: MarginError and the four failure families of the engine
4. External data contracts: oracle feeds, open-order snapshots, transfer requests

Nothing in this module mutates ledger state.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import IntFlag
from typing import Tuple


# ============================================================================
# CONSTANTS
# ============================================================================

MINUTE = 60
HOUR = 3600
DAY = 86400
YEAR = 31536000

# Sentinel for an open-order reference that has not been bound yet.
# Also used for identities that are not set (e.g. an absent admin).
NULL_REF = ""

# Launch shape: two base assets traded against one shared quote asset.
DEFAULT_NUM_TOKENS = 3

# Width of identity / reference fields in the binary record layout.
REF_BYTES = 32

# Largest native amount a u64 field can hold.
U64_MAX = (1 << 64) - 1

# Identities and record references are opaque strings (public keys in the host).
Identity = str
Ref = str


# ============================================================================
# RECORD KINDS
# ============================================================================

class RecordKind(IntFlag):
    """
    Discriminant bits stored in the first word of every persisted record.

    A loadable record must carry exactly INITIALIZED plus its own kind bit.
    """
    INITIALIZED = 1 << 0
    ASSET_GROUP = 1 << 1
    MARGIN_ACCOUNT = 1 << 2


ASSET_GROUP_FLAGS = RecordKind.INITIALIZED | RecordKind.ASSET_GROUP
MARGIN_ACCOUNT_FLAGS = RecordKind.INITIALIZED | RecordKind.MARGIN_ACCOUNT


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarginError(Exception):
    """Base exception for all errors raised by the margin engine."""
    pass


class AuthorizationError(MarginError):
    """Raised on a wrong signer, wrong owner, or mismatched record / oracle reference."""
    pass


class ArithmeticFault(MarginError):
    """Raised when value arithmetic cannot produce an exact, representable result."""
    pass


class FixedPointError(ArithmeticFault):
    """Raised when a fixed-point operation overflows, underflows, or divides by zero."""
    pass


class InvariantViolation(MarginError):
    """
    Raised when an internal consistency check fails.

    Pool solvency (native deposits >= native borrows), index monotonicity and
    forward-only clocks are invariants. A violation indicates a bug, not a user error.
    """
    pass


class RecordError(MarginError):
    """Raised when a binary record has the wrong kind, size, or owning program."""
    pass


class PolicyRejection(MarginError):
    """Base for expected, user-facing rejections. No state is changed."""
    pass


class InsufficientCollateral(PolicyRejection):
    """Raised when an action would leave the account below the initial collateral ratio."""
    pass


class BorrowLimitExceeded(PolicyRejection):
    """Raised when an account's native borrow would exceed the asset's borrow limit."""
    pass


class InsufficientFunds(PolicyRejection):
    """Raised when a withdrawal exceeds the account's native deposit."""
    pass


class ReduceOnlyViolation(PolicyRejection):
    """Raised when an account below the initial ratio attempts to take on new debt."""
    pass


class NotLiquidatable(PolicyRejection):
    """Raised when a liquidation is attempted on an account at or above maintenance."""
    pass


class ConfigValidationError(MarginError, ValueError):
    """Raised when risk configuration is missing or malformed."""
    pass


# ============================================================================
# EXTERNAL DATA CONTRACTS
# ============================================================================

@dataclass(frozen=True, slots=True)
class OracleFeed:
    """
    Read-only snapshot of a price oracle.

    Attributes:
        ref: Reference of the oracle record; must match the group's binding.
        price: Last known price as an integer scaled by 10**decimals.
        decimals: Decimal precision of `price`.
    """
    ref: Ref
    price: int
    decimals: int

    def __post_init__(self):
        if self.price < 0:
            raise ValueError(f"Oracle price cannot be negative, got {self.price}")
        if self.decimals < 0:
            raise ValueError(f"Oracle decimals cannot be negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class OpenOrders:
    """
    Snapshot of an open-order record held on the external venue.

    Balances are native units. `*_total` includes amounts locked in resting
    orders; `*_free` is what a settle-funds call would release.
    """
    ref: Ref
    owner: Identity = NULL_REF
    initialized: bool = False
    base_free: int = 0
    base_total: int = 0
    quote_free: int = 0
    quote_total: int = 0
    order_ids: Tuple[int, ...] = ()

    def __post_init__(self):
        for name in ("base_free", "base_total", "quote_free", "quote_total"):
            if getattr(self, name) < 0:
                raise ValueError(f"OpenOrders.{name} cannot be negative")
        if self.base_free > self.base_total or self.quote_free > self.quote_total:
            raise ValueError("OpenOrders free balance cannot exceed total balance")

    @property
    def is_null(self) -> bool:
        return self.ref == NULL_REF


def null_open_orders() -> OpenOrders:
    """Placeholder snapshot for a market the account has never traded on."""
    return OpenOrders(ref=NULL_REF)


@dataclass(frozen=True, slots=True)
class TransferRequest:
    """
    A request to move native units of one asset between token accounts.

    The engine decides how much to move; the host's transfer primitive moves it.
    Transfers are all-or-nothing.
    """
    asset_index: int
    source: Ref
    dest: Ref
    amount: int
    authority: Identity

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {self.amount}")
        if self.source == self.dest:
            raise ValueError("Transfer source and dest must be different")

    def __repr__(self) -> str:
        return f"Transfer({self.amount} #{self.asset_index}: {self.source}→{self.dest})"
