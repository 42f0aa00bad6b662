"""
liquidation.py - Liquidation State Machine and Loss Allocation

States (see valuation.health_status):
    HEALTHY       ratio >= maint_ratio   liquidation refused
    LIQUIDATABLE  ratio <  maint_ratio   liquidator tops the account up to init_ratio
    INSOLVENT     ratio <  1             losses are socialized first, then top-up

Insolvency write-off:
    reduction_value = liabilities_value - assets_value / 1.01

The reduction is split across the liabilities in proportion to each asset's
share of the liabilities VALUE, then converted to native units at that
asset's price before being socialized:

    native_reduction[i] = reduction_value * liab_value[i] / liabilities_value / price[i]

After the write-off the account sits at a collateral ratio of about 1.01.

The functions here are pure computations plus `socialize_insolvency`, which
applies the write-off through primitives.socialize_loss. Sequencing, signer
checks and rollback live in engine.MarginEngine.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .core import OpenOrders
from .fixed import FixedPoint
from .group import AssetGroup
from .account import MarginAccount
from .valuation import Prices, get_assets_val, get_liabs_val
from .primitives import socialize_loss


# Collateral ratio an insolvent account is written down to.
LIQUIDATION_TARGET_RATIO = FixedPoint.from_str("1.01")


@dataclass(frozen=True, slots=True)
class LiquidationReport:
    """
    What a liquidation did to the account.

    Attributes:
        entry_status: Health status when the liquidation started.
        entry_ratio: Collateral ratio when the liquidation started.
        settled: Native amount of borrow netted against deposits, per asset.
        socialized: Native amount of debt written off, per asset.
        deposited: Native amount pulled from the liquidator, per asset.
        final_ratio: Collateral ratio when the liquidation finished.
        ownership_transferred: False when settling borrows alone restored the account.
        cancelled_orders: (market index, order id) of every resting order cancelled first.
    """
    entry_status: str
    entry_ratio: FixedPoint
    settled: Tuple[int, ...]
    socialized: Tuple[FixedPoint, ...]
    deposited: Tuple[int, ...]
    final_ratio: FixedPoint
    ownership_transferred: bool
    cancelled_orders: Tuple[Tuple[int, int], ...] = ()


# ============================================================================
# INSOLVENCY
# ============================================================================

def compute_reduction_value(assets_value: FixedPoint, liabilities_value: FixedPoint) -> FixedPoint:
    """Liability value to extinguish so that assets / liabilities is about 1.01."""
    target = assets_value / LIQUIDATION_TARGET_RATIO
    if liabilities_value <= target:
        return FixedPoint.ZERO
    return liabilities_value - target


def allocate_reduction(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    reduction_value: FixedPoint,
) -> List[FixedPoint]:
    """
    Split a quote-valued reduction over the account's borrowed assets.

    Returns:
        Native amount to write off per asset, never more than the account
        owes in that asset.
    """
    result = [FixedPoint.ZERO] * group.num_tokens
    liabs_value = get_liabs_val(account, group, prices)
    if reduction_value.is_zero() or liabs_value.is_zero():
        return result

    for i in range(group.num_tokens):
        if account.borrows[i].is_zero() or prices[i].is_zero():
            continue
        native_borrow = account.borrows[i] * group.index(i).borrow
        liab_value = native_borrow * prices[i]
        share_value = reduction_value * liab_value / liabs_value
        native = share_value / prices[i]
        result[i] = min(native, native_borrow)
    return result


def socialize_insolvency(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
) -> List[FixedPoint]:
    """
    Write an insolvent account down to the 1.01 target ratio.

    Returns:
        Native amount socialized per asset.
    """
    assets = get_assets_val(account, group, prices, open_orders)
    liabs = get_liabs_val(account, group, prices)
    reduction = compute_reduction_value(assets, liabs)
    allocation = allocate_reduction(account, group, prices, reduction)
    for i, native in enumerate(allocation):
        socialize_loss(group, account, i, native)
    return allocation


# ============================================================================
# BOUNDED TOP-UP
# ============================================================================

def compute_topup(
    account: MarginAccount,
    group: AssetGroup,
    prices: Prices,
    open_orders: Sequence[OpenOrders],
    offered: Sequence[int],
) -> List[int]:
    """
    Smallest part of each offered deposit needed to reach init_ratio.

    The quote asset is drawn first, then base assets in market order. Each
    draw is rounded up and padded by one native unit so share truncation on
    deposit cannot leave the account just short of the threshold.

    Args:
        offered: Native amount the liquidator is willing to deposit, per asset

    Returns:
        Native amount to pull per asset (each at most the offered amount).
    """
    pulls = [0] * group.num_tokens
    assets = get_assets_val(account, group, prices, open_orders)
    required = get_liabs_val(account, group, prices) * group.init_ratio
    if assets >= required:
        return pulls

    order = [group.quote_index] + [i for i in range(group.num_tokens) if i != group.quote_index]
    for i in order:
        if assets >= required:
            break
        if offered[i] <= 0 or prices[i].is_zero():
            continue
        shortfall = (required - assets) / prices[i]
        amount = min(offered[i], shortfall.ceil() + 1)
        pulls[i] = amount
        assets = FixedPoint.from_int(amount) * prices[i] + assets
    return pulls
