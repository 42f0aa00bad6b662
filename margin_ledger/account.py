"""
account.py - Per-User Margin Account

A MarginAccount records one user's deposit and borrow shares for every asset
of its group, and the open-order record it uses on each venue market.

Shares are index-adjusted; multiply by the group's current index to get
native amounts:
    native_deposit = deposits[i] * group.index(i).deposit   (truncated)
    native_borrow  = borrows[i]  * group.index(i).borrow    (truncated)

An open-order reference is NULL_REF until the account first trades on that
market. Once bound it never changes.
"""

from __future__ import annotations
from dataclasses import dataclass
import logging
from typing import List

from .core import (
    Identity, Ref,
    MARGIN_ACCOUNT_FLAGS, NULL_REF,
    AuthorizationError,
)
from .fixed import FixedPoint
from .group import AssetGroup, AssetIndex


logger = logging.getLogger(__name__)


@dataclass
class MarginAccount:
    """
    Attributes:
        key: Reference of this account record.
        group: Reference of the asset group the account belongs to.
        owner: Identity allowed to operate the account; changes on liquidation.
        deposits: Deposit shares per asset (lent out, earning interest, counted as collateral).
        borrows: Borrow shares per asset.
        open_orders: Venue open-order reference per market, NULL_REF until first use.
    """
    key: Ref
    group: Ref
    owner: Identity
    deposits: List[FixedPoint]
    borrows: List[FixedPoint]
    open_orders: List[Ref]
    flags: int = int(MARGIN_ACCOUNT_FLAGS)

    @property
    def num_tokens(self) -> int:
        return len(self.deposits)

    def get_native_deposit(self, index: AssetIndex, token_i: int) -> int:
        return (self.deposits[token_i] * index.deposit).floor()

    def get_native_borrow(self, index: AssetIndex, token_i: int) -> int:
        return (self.borrows[token_i] * index.borrow).floor()

    def has_open_orders(self, market_i: int) -> bool:
        return self.open_orders[market_i] != NULL_REF

    def bind_open_orders(self, market_i: int, ref: Ref) -> None:
        """
        Record the open-order reference for a market on first use.

        Raises:
            AuthorizationError: if the reference is empty or a different record
                is already bound for this market.
        """
        if ref == NULL_REF:
            raise AuthorizationError("open orders reference cannot be empty")
        current = self.open_orders[market_i]
        if current == ref:
            return
        if current != NULL_REF:
            raise AuthorizationError(
                f"market {market_i} already bound to open orders {current}, got {ref}"
            )
        self.open_orders[market_i] = ref
        logger.debug("Account %s bound open orders %s on market %d", self.key, ref, market_i)

    def checked_add_borrow(self, token_i: int, v: FixedPoint) -> None:
        self.borrows[token_i] = self.borrows[token_i] + v

    def checked_sub_borrow(self, token_i: int, v: FixedPoint) -> None:
        self.borrows[token_i] = self.borrows[token_i] - v

    def checked_add_deposit(self, token_i: int, v: FixedPoint) -> None:
        self.deposits[token_i] = self.deposits[token_i] + v

    def checked_sub_deposit(self, token_i: int, v: FixedPoint) -> None:
        self.deposits[token_i] = self.deposits[token_i] - v


def init_margin_account(group: AssetGroup, key: Ref, owner: Identity) -> MarginAccount:
    """
    Create a zeroed margin account for `owner` in `group`.

    Raises:
        ValueError: if key or owner is empty.
    """
    if not key or not key.strip():
        raise ValueError("margin account key cannot be empty")
    if not owner or not owner.strip():
        raise ValueError("margin account owner cannot be empty")
    return MarginAccount(
        key=key,
        group=group.key,
        owner=owner,
        deposits=[FixedPoint.ZERO] * group.num_tokens,
        borrows=[FixedPoint.ZERO] * group.num_tokens,
        open_orders=[NULL_REF] * group.num_markets,
    )
