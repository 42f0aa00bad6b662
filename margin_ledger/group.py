"""
group.py - Asset Group (Shared Margin Pool State)

The AssetGroup is the root ledger record shared by every margin account in a
pool. It holds, per asset:
    - the interest index pair (borrow, deposit) used to convert shares <-> native
    - aggregate deposit and borrow shares across all accounts
    - token decimals, vault reference and borrow limit

plus the pool-wide market/oracle bindings and collateral-ratio thresholds.
The last asset slot is always the quote currency.

Key formulas:
    native_deposit = deposit_shares * deposit_index
    native_borrow  = borrow_shares * borrow_index
    pool solvency:   total native deposit >= total native borrow (per asset)

The group is passed explicitly into every operation as a single-owner mutable
context. It is never module-level state.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
import logging
from typing import List, Optional, Sequence, Union

from .core import (
    Identity, Ref, OracleFeed,
    ASSET_GROUP_FLAGS, NULL_REF, U64_MAX,
    InvariantViolation, AuthorizationError,
)
from .fixed import FixedPoint
from .interest import InterestRateModel, DEFAULT_RATE_MODEL


logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class AssetIndex:
    """
    Interest index pair for one asset.

    Both indexes start at exactly 1.0 when the asset is listed and only grow
    through accrual. `last_update` only moves forward.
    """
    last_update: int
    borrow: FixedPoint = FixedPoint.ONE
    deposit: FixedPoint = FixedPoint.ONE


@dataclass
class AssetSlot:
    """One asset of the pool. Share totals are index-adjusted, not native."""
    mint: Ref
    vault: Ref
    decimals: int
    index: AssetIndex
    total_deposits: FixedPoint = FixedPoint.ZERO
    total_borrows: FixedPoint = FixedPoint.ZERO
    borrow_limit: int = 0


@dataclass
class AssetGroup:
    """
    Shared state for a cross-margined pool of N assets and N-1 markets.

    Attributes:
        key: Reference of this group record.
        slots: Per-asset state; the last slot is the quote asset.
        markets: Venue market reference per base asset (market i trades slot i vs quote).
        oracles: Oracle reference per base asset, pricing it in the quote asset.
        oracle_decimals: Decimal precision of each oracle, fixed at genesis.
        maint_ratio: Collateral ratio below which an account is liquidatable.
        init_ratio: Collateral ratio required after any risk-increasing action.
        admin: Identity allowed to administer the group.
        signer_key: Identity the group uses to own open-order records and vaults.
        rate_model: Interest rate curve applied to every asset.
    """
    key: Ref
    slots: List[AssetSlot]
    markets: List[Ref]
    oracles: List[Ref]
    oracle_decimals: List[int]
    maint_ratio: FixedPoint
    init_ratio: FixedPoint
    admin: Identity
    signer_key: Identity
    rate_model: InterestRateModel = DEFAULT_RATE_MODEL
    flags: int = int(ASSET_GROUP_FLAGS)

    @property
    def num_tokens(self) -> int:
        return len(self.slots)

    @property
    def num_markets(self) -> int:
        return len(self.markets)

    @property
    def quote_index(self) -> int:
        return len(self.slots) - 1

    def index(self, token_i: int) -> AssetIndex:
        return self.slots[token_i].index

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def get_token_index(self, mint: Ref) -> Optional[int]:
        for i, slot in enumerate(self.slots):
            if slot.mint == mint:
                return i
        return None

    def get_token_index_with_vault(self, vault: Ref) -> Optional[int]:
        for i, slot in enumerate(self.slots):
            if slot.vault == vault:
                return i
        return None

    def get_market_index(self, market: Ref) -> Optional[int]:
        for i, m in enumerate(self.markets):
            if m == market:
                return i
        return None

    def check_token_index(self, token_i: int) -> None:
        if not 0 <= token_i < self.num_tokens:
            raise AuthorizationError(f"token index {token_i} out of range")

    def check_market_index(self, market_i: int) -> None:
        if not 0 <= market_i < self.num_markets:
            raise AuthorizationError(f"market index {market_i} out of range")

    # ========================================================================
    # INTEREST
    # ========================================================================

    def native_deposits_fp(self, token_i: int) -> FixedPoint:
        slot = self.slots[token_i]
        return slot.total_deposits * slot.index.deposit

    def native_borrows_fp(self, token_i: int) -> FixedPoint:
        slot = self.slots[token_i]
        return slot.total_borrows * slot.index.borrow

    def get_interest_rate(self, token_i: int) -> FixedPoint:
        """Per-second borrow rate for an asset (max rate when deposits <= borrows)."""
        return self.rate_model.rate(self.native_deposits_fp(token_i), self.native_borrows_fp(token_i))

    def update_indexes(self, now: int) -> None:
        """
        Accrue interest on every asset up to `now`.

        For each asset whose index was not already updated at `now` and which has
        deposits:
            borrow_growth  = rate * elapsed
            deposit_growth = borrow_growth * utilization
            borrow_index  += borrow_index * borrow_growth
            deposit_index += deposit_index * deposit_growth

        Raises:
            InvariantViolation: if the clock moved backwards, native borrows exceed
                native deposits, or an asset has borrows but no deposits.
        """
        for i, slot in enumerate(self.slots):
            index = slot.index
            if now < index.last_update:
                raise InvariantViolation(
                    f"clock moved backwards for asset {i}: {now} < {index.last_update}"
                )
            if index.last_update == now:
                continue
            if slot.total_deposits.is_zero():
                if not slot.total_borrows.is_zero():
                    raise InvariantViolation(f"asset {i} has borrows but no deposits")
                # idle asset: last_update stays put
                continue

            native_deposits = slot.total_deposits * index.deposit
            native_borrows = slot.total_borrows * index.borrow
            if native_borrows > native_deposits:
                raise InvariantViolation(
                    f"asset {i}: native borrows {native_borrows} exceed native deposits {native_deposits}"
                )

            interest_rate = self.rate_model.rate(native_deposits, native_borrows)
            utilization = native_borrows / native_deposits
            borrow_interest = interest_rate * (now - index.last_update)
            deposit_interest = borrow_interest * utilization

            new_borrow = index.borrow * borrow_interest + index.borrow
            new_deposit = index.deposit * deposit_interest + index.deposit
            if new_borrow < index.borrow or new_deposit < index.deposit:
                raise InvariantViolation(f"asset {i}: index decreased during accrual")

            index.last_update = now
            index.borrow = new_borrow
            index.deposit = new_deposit

        logger.debug("Indexes updated to t=%d for group %s", now, self.key)

    # ========================================================================
    # POOL TOTALS
    # ========================================================================

    def get_total_native_borrow(self, token_i: int) -> int:
        """Total native borrows, rounded toward +inf."""
        return self.native_borrows_fp(token_i).ceil()

    def get_total_native_deposit(self, token_i: int) -> int:
        """Total native deposits, rounded toward -inf."""
        return self.native_deposits_fp(token_i).floor()

    def has_valid_deposits_borrows(self, token_i: int) -> bool:
        return self.get_total_native_deposit(token_i) >= self.get_total_native_borrow(token_i)

    def check_solvency(self, token_indices: Optional[Sequence[int]] = None) -> None:
        """
        Assert pool solvency for the given assets (all assets by default).

        Raises:
            InvariantViolation: if native borrows exceed native deposits for any asset.
        """
        indices = range(self.num_tokens) if token_indices is None else token_indices
        for i in indices:
            if not self.has_valid_deposits_borrows(i):
                raise InvariantViolation(
                    f"asset {i}: total native borrow {self.get_total_native_borrow(i)} "
                    f"exceeds total native deposit {self.get_total_native_deposit(i)}"
                )

    def check_backing(self, token_indices: Optional[Sequence[int]] = None) -> None:
        """
        Assert that native deposits cover native borrows at full precision.

        This is the condition interest accrual relies on. Unlike check_solvency
        it does not round deposits down and borrows up, so a fully lent asset
        with fractional balances passes.

        Raises:
            InvariantViolation: if native borrows exceed native deposits for any asset.
        """
        indices = range(self.num_tokens) if token_indices is None else token_indices
        for i in indices:
            deposits = self.native_deposits_fp(i)
            borrows = self.native_borrows_fp(i)
            if borrows > deposits:
                raise InvariantViolation(f"asset {i}: native borrows {borrows} exceed native deposits {deposits}")

    # ========================================================================
    # AGGREGATE SHARE MUTATION
    # ========================================================================

    def checked_add_borrow(self, token_i: int, v: FixedPoint) -> None:
        self.slots[token_i].total_borrows = self.slots[token_i].total_borrows + v

    def checked_sub_borrow(self, token_i: int, v: FixedPoint) -> None:
        self.slots[token_i].total_borrows = self.slots[token_i].total_borrows - v

    def checked_add_deposit(self, token_i: int, v: FixedPoint) -> None:
        self.slots[token_i].total_deposits = self.slots[token_i].total_deposits + v

    def checked_sub_deposit(self, token_i: int, v: FixedPoint) -> None:
        self.slots[token_i].total_deposits = self.slots[token_i].total_deposits - v


# ============================================================================
# GENESIS
# ============================================================================

def _ratio(value: Union[FixedPoint, Decimal, str]) -> FixedPoint:
    if isinstance(value, FixedPoint):
        return value
    return FixedPoint.from_decimal(value)


def init_asset_group(
    key: Ref,
    mints: Sequence[Ref],
    vaults: Sequence[Ref],
    mint_decimals: Sequence[int],
    markets: Sequence[Ref],
    oracles: Sequence[OracleFeed],
    maint_ratio: Union[FixedPoint, Decimal, str],
    init_ratio: Union[FixedPoint, Decimal, str],
    borrow_limits: Sequence[int],
    admin: Identity,
    signer_key: Identity,
    now: int,
    rate_model: InterestRateModel = DEFAULT_RATE_MODEL,
) -> AssetGroup:
    """
    Create a new asset group with every index at exactly 1.0.

    Args:
        key: Reference of the group record
        mints: Token mint per asset; the last one is the quote currency
        vaults: Vault holding pooled funds per asset
        mint_decimals: Token decimals per asset
        markets: Venue market per base asset (len(mints) - 1 entries)
        oracles: Oracle feed per base asset; its ref and decimals are bound here
        maint_ratio: Maintenance collateral ratio (e.g. "1.10")
        init_ratio: Initial collateral ratio (e.g. "1.20")
        borrow_limits: Maximum native borrow per account, per asset
        admin: Group administrator identity
        signer_key: Identity owning vaults and open-order records on behalf of the group
        now: Genesis timestamp (unix seconds)
        rate_model: Interest rate curve

    Raises:
        ValueError: on mismatched lengths, duplicate or empty references, or
            invalid thresholds (must satisfy 1 <= maint_ratio < init_ratio).

    Example:
        group = init_asset_group(
            key="group", mints=["BTC", "USDC"], vaults=["v_btc", "v_usdc"],
            mint_decimals=[6, 6], markets=["BTC/USDC"],
            oracles=[OracleFeed("oracle_btc", 30_000_00, 2)],
            maint_ratio="1.10", init_ratio="1.20",
            borrow_limits=[10**12, 10**14], admin="admin", signer_key="signer", now=0,
        )
    """
    num_tokens = len(mints)
    if num_tokens < 2:
        raise ValueError("an asset group needs at least one base asset and the quote asset")
    if not (len(vaults) == len(mint_decimals) == len(borrow_limits) == num_tokens):
        raise ValueError("mints, vaults, mint_decimals and borrow_limits must have the same length")
    if not (len(markets) == len(oracles) == num_tokens - 1):
        raise ValueError("markets and oracles need exactly one entry per base asset")
    for refs, what in ((mints, "mint"), (vaults, "vault"), (markets, "market")):
        if any(r == NULL_REF for r in refs):
            raise ValueError(f"{what} reference cannot be empty")
        if len(set(refs)) != len(refs):
            raise ValueError(f"duplicate {what} reference")
    for d in mint_decimals:
        if not 0 <= d <= 18:
            raise ValueError(f"mint decimals must be in [0, 18], got {d}")
    for limit in borrow_limits:
        if not 0 <= limit <= U64_MAX:
            raise ValueError(f"borrow limit must fit in u64, got {limit}")
    if not admin or not signer_key:
        raise ValueError("admin and signer_key cannot be empty")

    maint = _ratio(maint_ratio)
    init = _ratio(init_ratio)
    if maint < FixedPoint.ONE:
        raise ValueError(f"maint_ratio must be at least 1, got {maint}")
    if init <= maint:
        raise ValueError(f"init_ratio ({init}) must exceed maint_ratio ({maint})")

    slots = [
        AssetSlot(
            mint=mints[i],
            vault=vaults[i],
            decimals=mint_decimals[i],
            index=AssetIndex(last_update=now),
            borrow_limit=borrow_limits[i],
        )
        for i in range(num_tokens)
    ]

    group = AssetGroup(
        key=key,
        slots=slots,
        markets=list(markets),
        oracles=[o.ref for o in oracles],
        oracle_decimals=[o.decimals for o in oracles],
        maint_ratio=maint,
        init_ratio=init,
        admin=admin,
        signer_key=signer_key,
        rate_model=rate_model,
    )
    logger.info("Asset group %s initialized with %d assets", key, num_tokens)
    return group
