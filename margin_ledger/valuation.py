"""
valuation.py - Pricing and Collateral Valuation

Pure functions: every input is explicit (group, account, prices, open-order
snapshots). Nothing here mutates ledger state.

Key formulas (all values in native quote units):
    price[i]          = oracle_value * 10**quote_decimals / 10**(oracle_decimals + base_decimals)
    price[quote]      = 1
    assets_value      = sum(native_deposit[i] * price[i])
                        + sum over bound markets of (base_total * price[i] + quote_total)
    liabilities_value = sum(native_borrow[i] * price[i])
    collateral_ratio  = assets_value / liabilities_value   (MAX when no liabilities)

Health states:
    HEALTHY       ratio >= maint_ratio
    LIQUIDATABLE  ratio <  maint_ratio
    INSOLVENT     ratio <  1
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence

from .core import OracleFeed, OpenOrders, AuthorizationError
from .fixed import FixedPoint
from .group import AssetGroup
from .account import MarginAccount


HEALTH_HEALTHY = "HEALTHY"
HEALTH_LIQUIDATABLE = "LIQUIDATABLE"
HEALTH_INSOLVENT = "INSOLVENT"

Prices = List[FixedPoint]


# ============================================================================
# PRICES
# ============================================================================

def get_prices(group: AssetGroup, oracles: Sequence[OracleFeed]) -> Prices:
    """
    Quote-currency price per native unit of every asset.

    Args:
        group: Asset group holding the oracle bindings and decimals
        oracles: One feed per base asset, in market order

    Returns:
        List of prices, one per asset; the quote asset is exactly 1.

    Raises:
        AuthorizationError: if a feed is missing or does not match the bound oracle.
    """
    if len(oracles) != group.num_markets:
        raise AuthorizationError(
            f"expected {group.num_markets} oracle feeds, got {len(oracles)}"
        )
    quote_decimals = group.slots[group.quote_index].decimals

    prices: Prices = [FixedPoint.ZERO] * group.num_tokens
    prices[group.quote_index] = FixedPoint.ONE
    for i, feed in enumerate(oracles):
        if feed.ref != group.oracles[i]:
            raise AuthorizationError(
                f"oracle {feed.ref} does not match bound oracle {group.oracles[i]} for market {i}"
            )
        if feed.decimals != group.oracle_decimals[i]:
            raise AuthorizationError(
                f"oracle {feed.ref} reports {feed.decimals} decimals, bound with {group.oracle_decimals[i]}"
            )
        base_decimals = group.slots[i].decimals
        prices[i] = FixedPoint.ratio(
            feed.price * 10 ** quote_decimals,
            10 ** (feed.decimals + base_decimals),
        )
    return prices


# ============================================================================
# ACCOUNT VALUES
# ============================================================================

def get_assets_val(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> FixedPoint:
    """Value of deposits plus every base/quote balance held on the venue."""
    quote_i = group.quote_index
    assets = FixedPoint.ZERO
    for i, oo in enumerate(open_orders):
        if oo.is_null:
            continue
        assets = (
            FixedPoint.from_int(oo.base_total) * prices[i]
            + FixedPoint.from_int(oo.quote_total) * prices[quote_i]
            + assets
        )
    for i in range(group.num_tokens):
        native_deposits = group.index(i).deposit * account.deposits[i]
        assets = native_deposits * prices[i] + assets
    return assets


def get_liabs_val(account: MarginAccount, group: AssetGroup, prices: Prices) -> FixedPoint:
    liabs = FixedPoint.ZERO
    for i in range(group.num_tokens):
        native_borrows = group.index(i).borrow * account.borrows[i]
        liabs = native_borrows * prices[i] + liabs
    return liabs


def get_collateral_ratio(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> FixedPoint:
    """assets / liabilities; FixedPoint.MAX for an account without liabilities."""
    liabs = get_liabs_val(account, group, prices)
    if liabs.is_zero():
        return FixedPoint.MAX
    assets = get_assets_val(account, group, prices, open_orders)
    return assets / liabs


def get_equity(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> FixedPoint:
    """assets - liabilities, floored at zero."""
    assets = get_assets_val(account, group, prices, open_orders)
    liabs = get_liabs_val(account, group, prices)
    if liabs > assets:
        return FixedPoint.ZERO
    return assets - liabs


def get_collateral_deficit(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> int:
    """Native quote amount to deposit to bring the account up to init_ratio (0 if none)."""
    assets = get_assets_val(account, group, prices, open_orders)
    liabs = get_liabs_val(account, group, prices)
    required = liabs * group.init_ratio
    if liabs.is_zero() or assets >= required:
        return 0
    return (required - assets).ceil()


def get_total_assets(
    account: MarginAccount,
    group: AssetGroup,
    open_orders: Sequence[OpenOrders],
) -> List[int]:
    """Native amount of every asset the account owns, including venue balances."""
    assets = [account.get_native_deposit(group.index(i), i) for i in range(group.num_tokens)]
    for i, oo in enumerate(open_orders):
        if oo.is_null:
            continue
        assets[i] += oo.base_total
        assets[group.quote_index] += oo.quote_total
    return assets


def get_total_liabs(account: MarginAccount, group: AssetGroup) -> List[int]:
    return [account.get_native_borrow(group.index(i), i) for i in range(group.num_tokens)]


# ============================================================================
# HEALTH
# ============================================================================

@dataclass(frozen=True, slots=True)
class AccountHealth:
    """
    Immutable result of an account health assessment.

    Attributes:
        assets_value: Total asset value in native quote units.
        liabilities_value: Total liability value in native quote units.
        collateral_ratio: assets / liabilities (MAX when there are no liabilities).
        status: HEALTHY, LIQUIDATABLE or INSOLVENT.
        reduce_only: True when the ratio is below init_ratio.
        deficit: Quote amount needed to restore init_ratio.
    """
    assets_value: FixedPoint
    liabilities_value: FixedPoint
    collateral_ratio: FixedPoint
    status: str
    reduce_only: bool
    deficit: int

    @property
    def is_liquidatable(self) -> bool:
        return self.status != HEALTH_HEALTHY

    @property
    def is_insolvent(self) -> bool:
        return self.status == HEALTH_INSOLVENT


def health_status(group: AssetGroup, collateral_ratio: FixedPoint) -> str:
    if collateral_ratio >= group.maint_ratio:
        return HEALTH_HEALTHY
    if collateral_ratio < FixedPoint.ONE:
        return HEALTH_INSOLVENT
    return HEALTH_LIQUIDATABLE


def assess_health(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> AccountHealth:
    """
    Compute every health metric of an account in one pass.

    Example:
        prices = get_prices(group, oracles)
        health = assess_health(account, group, prices, open_orders)
        if health.is_liquidatable:
            ...
    """
    assets = get_assets_val(account, group, prices, open_orders)
    liabs = get_liabs_val(account, group, prices)
    ratio = FixedPoint.MAX if liabs.is_zero() else assets / liabs
    required = liabs * group.init_ratio
    deficit = 0 if liabs.is_zero() or assets >= required else (required - assets).ceil()
    return AccountHealth(
        assets_value=assets,
        liabilities_value=liabs,
        collateral_ratio=ratio,
        status=health_status(group, ratio),
        reduce_only=ratio < group.init_ratio,
        deficit=deficit,
    )
