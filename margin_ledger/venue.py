"""
venue.py - External Collaborator Protocols

The engine never matches orders or moves tokens itself. It talks to two
collaborators supplied by the host:

    OrderVenue     - the external order book. Opaque matching; the engine only
                     reads vault balances and open-order records before and
                     after each call.
    TokenProgram   - the transfer primitive. Moves N native units of one asset
                     between token accounts, all or nothing.

Orders are described by the immutable Order value below.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from .core import Identity, Ref, OpenOrders, TransferRequest


class Side(Enum):
    """Bid pays quote for base; Ask pays base for quote."""
    BID = "bid"
    ASK = "ask"


class OrderType(Enum):
    LIMIT = "limit"
    IMMEDIATE_OR_CANCEL = "ioc"
    POST_ONLY = "post_only"


@dataclass(frozen=True, slots=True)
class Order:
    """
    A new order for the venue.

    Attributes:
        limit_price: Native quote units per native base unit.
        max_qty: Maximum native base units to trade.
        order_type: Venue order type.
        client_id: Caller-chosen identifier echoed back by the venue.
    """
    limit_price: int
    max_qty: int
    order_type: OrderType = OrderType.LIMIT
    client_id: int = 0

    def __post_init__(self):
        if self.limit_price <= 0:
            raise ValueError(f"Order limit_price must be positive, got {self.limit_price}")
        if self.max_qty <= 0:
            raise ValueError(f"Order max_qty must be positive, got {self.max_qty}")

    def lock_amount(self, side: Side) -> int:
        """Native units the venue takes from the payer: quote for a bid, base for an ask."""
        if side is Side.BID:
            return self.limit_price * self.max_qty
        return self.max_qty


@runtime_checkable
class OrderVenue(Protocol):
    """
    Interface to the external order venue.

    Every call is made with the group's signer identity, which owns the
    group's vaults and every open-order record bound to its accounts.
    """

    def load_open_orders(self, ref: Ref) -> OpenOrders:
        """Return the current snapshot of an open-order record (uninitialized if unknown)."""
        ...

    def vault_balance(self, vault: Ref) -> int:
        """Return the native token balance held in a vault."""
        ...

    def place_order(
        self,
        market: Ref,
        open_orders: Ref,
        owner: Identity,
        side: Side,
        order: Order,
        payer: Ref,
    ) -> int:
        """
        Place an order, moving exactly order.lock_amount(side) out of
        `payer`. Initializes the open-order record for `owner` on first use.
        Returns the venue order id.
        """
        ...

    def cancel_order(self, market: Ref, open_orders: Ref, owner: Identity, order_id: int) -> None:
        """Cancel a resting order; its locked balance becomes free."""
        ...

    def settle_funds(
        self,
        market: Ref,
        open_orders: Ref,
        owner: Identity,
        base_vault: Ref,
        quote_vault: Ref,
    ) -> None:
        """Move every free base/quote balance of the record back into the vaults."""
        ...


@runtime_checkable
class TokenProgram(Protocol):
    """Transfer primitive. A failed transfer raises and moves nothing."""

    def transfer(self, request: TransferRequest) -> None:
        ...
