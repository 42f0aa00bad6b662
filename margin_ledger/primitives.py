"""
primitives.py - Ledger Mutation Primitives

Every change to deposit or borrow shares goes through one of the four
checked_* functions below, which apply the same share delta to the account
and to the group aggregate together. If either side fails, both are left as
they were, so the per-asset aggregates always equal the sum over accounts.

settle_borrow and socialize_loss are built from these primitives.
"""

from __future__ import annotations
import logging
from typing import Optional

from .core import FixedPointError, InvariantViolation
from .fixed import FixedPoint
from .group import AssetGroup
from .account import MarginAccount


logger = logging.getLogger(__name__)


# ============================================================================
# SHARE PRIMITIVES
# ============================================================================

def checked_add_deposit(group: AssetGroup, account: MarginAccount, token_i: int, shares: FixedPoint) -> None:
    account.checked_add_deposit(token_i, shares)
    try:
        group.checked_add_deposit(token_i, shares)
    except FixedPointError:
        account.checked_sub_deposit(token_i, shares)
        raise


def checked_sub_deposit(group: AssetGroup, account: MarginAccount, token_i: int, shares: FixedPoint) -> None:
    account.checked_sub_deposit(token_i, shares)
    try:
        group.checked_sub_deposit(token_i, shares)
    except FixedPointError:
        account.checked_add_deposit(token_i, shares)
        raise


def checked_add_borrow(group: AssetGroup, account: MarginAccount, token_i: int, shares: FixedPoint) -> None:
    account.checked_add_borrow(token_i, shares)
    try:
        group.checked_add_borrow(token_i, shares)
    except FixedPointError:
        account.checked_sub_borrow(token_i, shares)
        raise


def checked_sub_borrow(group: AssetGroup, account: MarginAccount, token_i: int, shares: FixedPoint) -> None:
    account.checked_sub_borrow(token_i, shares)
    try:
        group.checked_sub_borrow(token_i, shares)
    except FixedPointError:
        account.checked_add_borrow(token_i, shares)
        raise


def deposit_native(group: AssetGroup, account: MarginAccount, token_i: int, amount: int) -> FixedPoint:
    """Credit `amount` native units as deposit shares at the current index. Returns the shares."""
    shares = FixedPoint.from_int(amount) / group.index(token_i).deposit
    checked_add_deposit(group, account, token_i, shares)
    return shares


# ============================================================================
# SETTLE BORROW
# ============================================================================

def settle_borrow(group: AssetGroup, account: MarginAccount, token_i: int, quantity: int) -> int:
    """
    Net out up to `quantity` native units of borrow against the account's own
    deposit in the same asset.

    The amount settled is min(quantity, native_borrow, native_deposit). Equity
    is unchanged, so no collateral check is made here.

    Returns:
        Native amount actually settled.
    """
    index = group.index(token_i)
    native_borrow = account.get_native_borrow(index, token_i)
    native_deposit = account.get_native_deposit(index, token_i)
    quantity = min(quantity, native_borrow, native_deposit)
    if quantity <= 0:
        return 0

    # borrow shares round up and deposit shares round down, so the pool never ends up short
    borrow_settle = min(FixedPoint.from_int(quantity).div_ceil(index.borrow), account.borrows[token_i])
    deposit_settle = FixedPoint.from_int(quantity) / index.deposit
    checked_sub_deposit(group, account, token_i, deposit_settle)
    checked_sub_borrow(group, account, token_i, borrow_settle)
    return quantity


def settle_borrow_full(group: AssetGroup, account: MarginAccount, token_i: int) -> int:
    index = group.index(token_i)
    return settle_borrow(group, account, token_i, account.get_native_borrow(index, token_i))


# ============================================================================
# LOSS SOCIALIZATION
# ============================================================================

def socialize_loss(
    group: AssetGroup,
    account: MarginAccount,
    token_i: int,
    native_amount: FixedPoint,
) -> Optional[FixedPoint]:
    """
    Write off `native_amount` of the account's debt in one asset and spread
    the loss over every depositor of that asset.

        borrow_shares[token_i] -= native_amount / borrow_index          (rounded up)
        deposit_index           = (native_deposits - native_amount) / deposit_shares   (rounded up)

    The borrow side shrinks by at least the amount written off and the
    deposit side by at most that amount, so native deposits still cover
    native borrows afterwards. If the account owes less than
    `native_amount`, only what it owes is written off.

    Returns:
        The new deposit index, or None when there was nothing to socialize.

    Raises:
        InvariantViolation: if the asset has no deposits, or the loss exceeds them.
    """
    if native_amount.is_zero():
        return None

    index = group.index(token_i)
    native_deposits = group.native_deposits_fp(token_i)
    if native_deposits.is_zero():
        raise InvariantViolation(f"asset {token_i}: no deposits to absorb a loss of {native_amount}")
    if native_amount > native_deposits:
        raise InvariantViolation(
            f"asset {token_i}: loss {native_amount} exceeds total native deposit {native_deposits}"
        )

    shares = native_amount.div_ceil(index.borrow)
    if shares >= account.borrows[token_i]:
        shares = account.borrows[token_i]
        native_amount = min(native_amount, shares * index.borrow)
    checked_sub_borrow(group, account, token_i, shares)

    remaining = native_deposits - native_amount
    new_deposit_index = min(remaining.div_ceil(group.slots[token_i].total_deposits), index.deposit)
    index.deposit = new_deposit_index

    logger.warning(
        "Socialized loss of %s on asset %d across %s native deposits; deposit index now %s",
        native_amount, token_i, native_deposits, new_deposit_index,
    )
    return new_deposit_index
