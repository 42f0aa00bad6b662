"""
engine.py - MarginEngine: State-Changing Operations

Every operation follows the same shape:

    1. snapshot the group and the account it touches
    2. refresh interest indexes to `now`
    3. verify the account belongs to the group and the signer owns it
    4. verify every supplied open-order snapshot against the account's stored
       references (set records must be initialized and owned by the group signer)
    5. apply the state transition and its policy checks
    6. run the token transfers, only after every check passed

If anything raises, the group and account are restored to the snapshot and
the exception propagates unchanged. A successful call returns an
OperationResult listing the transfers it requested.

Example:
    engine = MarginEngine(venue, token_program)
    account = engine.init_margin_account(group, "acct", "alice")
    engine.deposit(group, account, "alice", asset=2, amount=1_000_000, now=t)
    result = engine.borrow(group, account, "alice", 0, 500, t, oracles, open_orders)
    print(result.collateral_ratio)
"""

from __future__ import annotations
from contextlib import contextmanager
import copy
from dataclasses import dataclass, replace
import logging
from typing import Iterator, List, Optional, Sequence, Tuple

from .core import (
    Identity, Ref, OracleFeed, OpenOrders, TransferRequest,
    NULL_REF, U64_MAX,
    MarginError, AuthorizationError, InvariantViolation, PolicyRejection,
    InsufficientCollateral, BorrowLimitExceeded, InsufficientFunds,
    ReduceOnlyViolation, NotLiquidatable,
    null_open_orders,
)
from .fixed import FixedPoint
from .group import AssetGroup
from .account import MarginAccount, init_margin_account as _new_margin_account
from .valuation import Prices, get_prices, get_collateral_ratio, health_status, HEALTH_HEALTHY
from .primitives import (
    checked_add_deposit, checked_sub_deposit, checked_add_borrow,
    deposit_native, settle_borrow as _settle_borrow, settle_borrow_full,
)
from .liquidation import LiquidationReport, socialize_insolvency, compute_topup
from .venue import OrderVenue, TokenProgram, Side, Order


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OperationResult:
    """
    Outcome of a successful operation.

    Attributes:
        operation: Operation name.
        account: Reference of the margin account operated on.
        transfers: Token movements requested, in execution order.
        collateral_ratio: Ratio after the operation, when the operation computed one.
        reduce_only: True when a trade ran in reduce-only mode.
        order_id: Venue order id for order placements and cancels.
        settled: Native amount netted by settle_borrow, or (base, quote) freed by settle_funds.
        liquidation: Report for liquidate / partial_liquidate.
    """
    operation: str
    account: Ref
    transfers: Tuple[TransferRequest, ...] = ()
    collateral_ratio: Optional[FixedPoint] = None
    reduce_only: bool = False
    order_id: Optional[int] = None
    settled: Tuple[int, ...] = ()
    liquidation: Optional[LiquidationReport] = None


class MarginEngine:
    """
    Runs margin operations against an explicitly passed AssetGroup.

    The engine keeps no ledger state of its own. `venue` is needed only for
    order operations and partial liquidation; without a `token_program` the
    requested transfers are returned but not executed.
    """

    def __init__(self, venue: Optional[OrderVenue] = None, token_program: Optional[TokenProgram] = None):
        self.venue = venue
        self.token_program = token_program

    # ========================================================================
    # ATOMICITY
    # ========================================================================

    @contextmanager
    def _atomic(self, operation: str, group: AssetGroup, account: MarginAccount) -> Iterator[None]:
        saved = [(obj, copy.deepcopy(obj.__dict__)) for obj in (group, account)]
        try:
            yield
        except PolicyRejection as e:
            self._restore(saved)
            logger.warning("%s rejected for account %s: %s", operation, account.key, e)
            raise
        except Exception as e:
            self._restore(saved)
            logger.error("%s failed for account %s: %s: %s", operation, account.key, type(e).__name__, e)
            raise

    @staticmethod
    def _restore(saved) -> None:
        for obj, state in saved:
            obj.__dict__.clear()
            obj.__dict__.update(state)

    def _execute_transfers(self, transfers: Sequence[TransferRequest]) -> None:
        if self.token_program is None:
            return
        for request in transfers:
            self.token_program.transfer(request)

    # ========================================================================
    # VALIDATION
    # ========================================================================

    @staticmethod
    def _check_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise TypeError(f"amount must be int, got {type(amount).__name__}")
        if not 0 < amount <= U64_MAX:
            raise ValueError(f"amount must be in (0, {U64_MAX}], got {amount}")

    @staticmethod
    def _check_account(group: AssetGroup, account: MarginAccount) -> None:
        if account.group != group.key:
            raise AuthorizationError(f"account {account.key} belongs to group {account.group}, not {group.key}")
        if account.num_tokens != group.num_tokens or len(account.open_orders) != group.num_markets:
            raise AuthorizationError(f"account {account.key} layout does not match group {group.key}")

    @staticmethod
    def _check_owner(account: MarginAccount, signer: Identity) -> None:
        if not signer or signer != account.owner:
            raise AuthorizationError(f"signer {signer!r} does not own account {account.key}")

    @staticmethod
    def _check_open_orders_record(group: AssetGroup, oo: OpenOrders) -> None:
        if oo.is_null:
            return
        if not oo.initialized:
            raise AuthorizationError(f"open orders {oo.ref} is not initialized")
        if oo.owner != group.signer_key:
            raise AuthorizationError(f"open orders {oo.ref} is not owned by the group signer")

    def _check_open_orders(
        self,
        group: AssetGroup,
        account: MarginAccount,
        open_orders: Sequence[OpenOrders],
        skip_market: Optional[int] = None,
    ) -> None:
        if len(open_orders) != group.num_markets:
            raise AuthorizationError(
                f"expected {group.num_markets} open orders snapshots, got {len(open_orders)}"
            )
        for i, oo in enumerate(open_orders):
            if i == skip_market:
                continue
            if oo.ref != account.open_orders[i]:
                raise AuthorizationError(
                    f"open orders {oo.ref!r} does not match {account.open_orders[i]!r} for market {i}"
                )
            self._check_open_orders_record(group, oo)

    @staticmethod
    def _market_index(group: AssetGroup, market: Ref) -> int:
        market_i = group.get_market_index(market)
        if market_i is None:
            raise AuthorizationError(f"market {market} is not part of group {group.key}")
        return market_i

    def _require_venue(self) -> OrderVenue:
        if self.venue is None:
            raise MarginError("no order venue configured")
        return self.venue

    @staticmethod
    def _require_init_ratio(group: AssetGroup, ratio: FixedPoint) -> None:
        if ratio < group.init_ratio:
            raise InsufficientCollateral(
                f"collateral ratio {ratio} below initial ratio {group.init_ratio}"
            )

    @staticmethod
    def _require_borrow_limit(group: AssetGroup, account: MarginAccount, token_i: int) -> None:
        native_borrow = account.get_native_borrow(group.index(token_i), token_i)
        limit = group.slots[token_i].borrow_limit
        if native_borrow > limit:
            raise BorrowLimitExceeded(
                f"native borrow {native_borrow} of asset {token_i} exceeds limit {limit}"
            )

    # ========================================================================
    # ACCOUNT LIFECYCLE
    # ========================================================================

    def init_margin_account(self, group: AssetGroup, key: Ref, owner: Identity) -> MarginAccount:
        account = _new_margin_account(group, key, owner)
        logger.info("Margin account %s opened for %s in group %s", key, owner, group.key)
        return account

    # ========================================================================
    # DEPOSIT / WITHDRAW / BORROW / SETTLE BORROW
    # ========================================================================

    def deposit(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        asset: int,
        amount: int,
        now: int,
        token_account: Optional[Ref] = None,
    ) -> OperationResult:
        """
        Move `amount` native units from the signer's token account into the
        vault and credit deposit shares. Never checks the collateral ratio.
        """
        self._check_amount(amount)
        logger.info("Deposit asset=%d amount=%d account=%s", asset, amount, account.key)
        with self._atomic("deposit", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            group.check_token_index(asset)

            deposit_native(group, account, asset, amount)

            transfers = (TransferRequest(
                asset_index=asset,
                source=token_account or signer,
                dest=group.slots[asset].vault,
                amount=amount,
                authority=signer,
            ),)
            self._execute_transfers(transfers)
        return OperationResult("deposit", account.key, transfers=transfers)

    def withdraw(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        asset: int,
        amount: int,
        now: int,
        oracles: Sequence[OracleFeed],
        open_orders: Sequence[OpenOrders],
        token_account: Optional[Ref] = None,
    ) -> OperationResult:
        """
        Withdraw from the account's own deposit. Never borrows implicitly.

        Raises:
            InsufficientFunds: if the native deposit is below `amount`.
            InsufficientCollateral: if the ratio afterwards is below init_ratio.
        """
        self._check_amount(amount)
        logger.info("Withdraw asset=%d amount=%d account=%s", asset, amount, account.key)
        with self._atomic("withdraw", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            group.check_token_index(asset)
            self._check_open_orders(group, account, open_orders)
            prices = get_prices(group, oracles)

            index = group.index(asset)
            available = account.get_native_deposit(index, asset)
            if available < amount:
                raise InsufficientFunds(
                    f"withdraw of {amount} exceeds native deposit {available} of asset {asset}"
                )
            checked_sub_deposit(group, account, asset, FixedPoint.from_int(amount) / index.deposit)

            ratio = get_collateral_ratio(account, group, prices, open_orders)
            self._require_init_ratio(group, ratio)
            group.check_solvency([asset])

            transfers = (TransferRequest(
                asset_index=asset,
                source=group.slots[asset].vault,
                dest=token_account or signer,
                amount=amount,
                authority=group.signer_key,
            ),)
            self._execute_transfers(transfers)
        return OperationResult("withdraw", account.key, transfers=transfers, collateral_ratio=ratio)

    def borrow(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        asset: int,
        amount: int,
        now: int,
        oracles: Sequence[OracleFeed],
        open_orders: Sequence[OpenOrders],
    ) -> OperationResult:
        """
        Borrow `amount` native units; the proceeds are credited as a deposit.

        Raises:
            InsufficientCollateral: if the ratio afterwards is below init_ratio.
            BorrowLimitExceeded: if the account's native borrow exceeds the asset limit.
        """
        self._check_amount(amount)
        logger.info("Borrow asset=%d amount=%d account=%s", asset, amount, account.key)
        with self._atomic("borrow", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            group.check_token_index(asset)
            self._check_open_orders(group, account, open_orders)
            prices = get_prices(group, oracles)

            index = group.index(asset)
            native = FixedPoint.from_int(amount)
            checked_add_deposit(group, account, asset, native / index.deposit)
            checked_add_borrow(group, account, asset, native / index.borrow)

            ratio = get_collateral_ratio(account, group, prices, open_orders)
            self._require_init_ratio(group, ratio)
            group.check_solvency([asset])
            self._require_borrow_limit(group, account, asset)
        return OperationResult("borrow", account.key, collateral_ratio=ratio)

    def settle_borrow(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        asset: int,
        amount: int,
        now: int,
    ) -> OperationResult:
        """Repay up to `amount` of a borrow from the account's deposit in the same asset."""
        self._check_amount(amount)
        logger.info("Settle borrow asset=%d amount=%d account=%s", asset, amount, account.key)
        with self._atomic("settle_borrow", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            group.check_token_index(asset)

            settled = _settle_borrow(group, account, asset, amount)
            group.check_solvency([asset])
        return OperationResult("settle_borrow", account.key, settled=(settled,))

    # ========================================================================
    # TRADING
    # ========================================================================

    def _bind_market_open_orders(
        self,
        group: AssetGroup,
        account: MarginAccount,
        market_i: int,
        open_orders: Sequence[OpenOrders],
    ) -> Ref:
        """Verify the traded market's record, binding it on the account's first trade."""
        venue = self._require_venue()
        self._check_open_orders(group, account, open_orders, skip_market=market_i)
        oo = open_orders[market_i]
        if oo.is_null:
            raise AuthorizationError(f"an open orders record is required to trade market {market_i}")
        if account.has_open_orders(market_i):
            if oo.ref != account.open_orders[market_i]:
                raise AuthorizationError(
                    f"open orders {oo.ref} does not match {account.open_orders[market_i]} for market {market_i}"
                )
            self._check_open_orders_record(group, oo)
        else:
            if oo.initialized or venue.load_open_orders(oo.ref).initialized:
                raise AuthorizationError(f"open orders {oo.ref} is already in use")
            account.bind_open_orders(market_i, oo.ref)
        return oo.ref

    def _reload_open_orders(
        self,
        group: AssetGroup,
        market_i: int,
        ref: Ref,
        open_orders: Sequence[OpenOrders],
    ) -> List[OpenOrders]:
        refreshed = list(open_orders)
        refreshed[market_i] = self._require_venue().load_open_orders(ref)
        self._check_open_orders_record(group, refreshed[market_i])
        return refreshed

    def _spend(
        self,
        group: AssetGroup,
        account: MarginAccount,
        token_i: int,
        spent: int,
        reduce_only: bool,
    ) -> None:
        """Charge `spent` native units against deposits first, borrowing any remainder."""
        index = group.index(token_i)
        native_deposit = account.get_native_deposit(index, token_i)
        if native_deposit >= spent:
            checked_sub_deposit(group, account, token_i, FixedPoint.from_int(spent) / index.deposit)
            return

        if reduce_only:
            raise ReduceOnlyViolation(
                f"spending {spent} of asset {token_i} needs a new borrow while the account is reduce-only"
            )
        checked_sub_deposit(group, account, token_i, account.deposits[token_i])
        remainder = FixedPoint.from_int(spent - native_deposit)
        checked_add_borrow(group, account, token_i, remainder / index.borrow)
        self._require_borrow_limit(group, account, token_i)

    @staticmethod
    def _with_order_resting(
        open_orders: Sequence[OpenOrders],
        market_i: int,
        order: Order,
        prices: Prices,
    ) -> List[OpenOrders]:
        """
        Snapshots as if `order` already rested on the market, counted at the
        lower of its base quantity and its quote value at the limit price.
        """
        oo = open_orders[market_i]
        quote_value = order.limit_price * order.max_qty
        resting = list(open_orders)
        if FixedPoint.from_int(order.max_qty) * prices[market_i] < FixedPoint.from_int(quote_value):
            resting[market_i] = replace(oo, base_total=oo.base_total + order.max_qty)
        else:
            resting[market_i] = replace(oo, quote_total=oo.quote_total + quote_value)
        return resting

    def _admit_order(
        self,
        group: AssetGroup,
        account: MarginAccount,
        market_i: int,
        side: Side,
        order: Order,
        prices: Prices,
        open_orders: Sequence[OpenOrders],
        reduce_only: bool,
    ) -> int:
        """Charge the order's lock to the account and apply the trade policy. Returns the lock."""
        token_i = group.quote_index if side is Side.BID else market_i
        lock = order.lock_amount(side)
        self._spend(group, account, token_i, lock, reduce_only)
        if not reduce_only:
            resting = self._with_order_resting(open_orders, market_i, order, prices)
            self._require_init_ratio(group, get_collateral_ratio(account, group, prices, resting))
        group.check_solvency([token_i])
        return lock

    def place_order(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        market: Ref,
        side: Side,
        order: Order,
        now: int,
        oracles: Sequence[OracleFeed],
        open_orders: Sequence[OpenOrders],
    ) -> OperationResult:
        """
        Place an order funded from the group vault.

        The amount the order locks is taken from the account's deposit
        first; the rest becomes a new borrow. An account already below
        init_ratio is reduce-only: it may trade away deposits but may not
        borrow. Every policy check runs before the venue is called, so a
        rejected order never reaches the venue.

        On the account's first trade on a market, open_orders[market] must
        name a fresh (uninitialized) venue record, which is bound permanently.
        """
        venue = self._require_venue()
        logger.info("Place order market=%s side=%s qty=%d price=%d account=%s",
                    market, side.value, order.max_qty, order.limit_price, account.key)
        with self._atomic("place_order", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            market_i = self._market_index(group, market)
            if len(open_orders) != group.num_markets:
                raise AuthorizationError(
                    f"expected {group.num_markets} open orders snapshots, got {len(open_orders)}"
                )

            prices = get_prices(group, oracles)
            reduce_only = get_collateral_ratio(account, group, prices, open_orders) < group.init_ratio

            oo_ref = self._bind_market_open_orders(group, account, market_i, open_orders)
            token_i = group.quote_index if side is Side.BID else market_i
            vault = group.slots[token_i].vault
            lock = self._admit_order(
                group, account, market_i, side, order, prices, open_orders, reduce_only,
            )

            pre_amount = venue.vault_balance(vault)
            order_id = venue.place_order(market, oo_ref, group.signer_key, side, order, vault)
            post_amount = venue.vault_balance(vault)
            if pre_amount - post_amount != lock:
                raise InvariantViolation(
                    f"vault {vault} moved from {pre_amount} to {post_amount} on an order locking {lock}"
                )

            refreshed = self._reload_open_orders(group, market_i, oo_ref, open_orders)
            ratio = get_collateral_ratio(account, group, prices, refreshed)
        return OperationResult(
            "place_order", account.key, collateral_ratio=ratio,
            reduce_only=reduce_only, order_id=order_id,
        )

    def _settle_market(self, group: AssetGroup, account: MarginAccount, market_i: int) -> Tuple[int, int]:
        """Pull the free balances of one market back into the vaults and credit them as deposits."""
        venue = self._require_venue()
        ref = account.open_orders[market_i]
        if ref == NULL_REF:
            return 0, 0
        pre = venue.load_open_orders(ref)
        self._check_open_orders_record(group, pre)
        if pre.base_free == 0 and pre.quote_free == 0:
            return 0, 0

        quote_i = group.quote_index
        venue.settle_funds(
            group.markets[market_i], ref, group.signer_key,
            group.slots[market_i].vault, group.slots[quote_i].vault,
        )
        post = venue.load_open_orders(ref)
        if post.base_free > pre.base_free or post.quote_free > pre.quote_free:
            raise InvariantViolation(f"free balance of open orders {ref} grew during settle")

        base_change = pre.base_free - post.base_free
        quote_change = pre.quote_free - post.quote_free
        if base_change:
            deposit_native(group, account, market_i, base_change)
        if quote_change:
            deposit_native(group, account, quote_i, quote_change)
        return base_change, quote_change

    def settle_funds(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        market: Ref,
        now: int,
    ) -> OperationResult:
        """Credit base/quote balances freed on the venue (fills, cancels) as deposits."""
        logger.info("Settle funds market=%s account=%s", market, account.key)
        with self._atomic("settle_funds", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            market_i = self._market_index(group, market)
            settled = self._settle_market(group, account, market_i)
        return OperationResult("settle_funds", account.key, settled=settled)

    def place_and_settle(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        market: Ref,
        side: Side,
        order: Order,
        now: int,
        oracles: Sequence[OracleFeed],
        open_orders: Sequence[OpenOrders],
    ) -> OperationResult:
        """
        Place an order and settle the market in one step.

        The order's lock is charged against deposits (then borrow) and checked
        exactly as in place_order before the venue is called. Whatever part of
        the lock the fill leaves in the vault, and everything bought, is
        credited as deposit; borrows are then netted against deposits for
        both tokens.
        """
        venue = self._require_venue()
        logger.info("Place and settle market=%s side=%s qty=%d price=%d account=%s",
                    market, side.value, order.max_qty, order.limit_price, account.key)
        with self._atomic("place_and_settle", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            market_i = self._market_index(group, market)
            if len(open_orders) != group.num_markets:
                raise AuthorizationError(
                    f"expected {group.num_markets} open orders snapshots, got {len(open_orders)}"
                )

            prices = get_prices(group, oracles)
            reduce_only = get_collateral_ratio(account, group, prices, open_orders) < group.init_ratio

            oo_ref = self._bind_market_open_orders(group, account, market_i, open_orders)
            quote_i = group.quote_index
            base_vault = group.slots[market_i].vault
            quote_vault = group.slots[quote_i].vault
            lock = self._admit_order(
                group, account, market_i, side, order, prices, open_orders, reduce_only,
            )

            pre_base = venue.vault_balance(base_vault)
            pre_quote = venue.vault_balance(quote_vault)
            payer = quote_vault if side is Side.BID else base_vault
            order_id = venue.place_order(market, oo_ref, group.signer_key, side, order, payer)
            venue.settle_funds(market, oo_ref, group.signer_key, base_vault, quote_vault)
            post_base = venue.vault_balance(base_vault)
            post_quote = venue.vault_balance(quote_vault)

            if side is Side.BID:
                in_token_i, out_token_i = market_i, quote_i
                pre_in, pre_out, post_in, post_out = pre_base, pre_quote, post_base, post_quote
            else:
                in_token_i, out_token_i = quote_i, market_i
                pre_in, pre_out, post_in, post_out = pre_quote, pre_base, post_quote, post_base

            # the lock was charged up front; whatever of it came back is returned as deposit
            unspent = lock - (pre_out - post_out)
            if unspent < 0:
                raise InvariantViolation(
                    f"vault of asset {out_token_i} paid {pre_out - post_out} on an order locking {lock}"
                )
            if unspent:
                deposit_native(group, account, out_token_i, unspent)

            if post_in < pre_in:
                raise InvariantViolation(f"vault of asset {in_token_i} shrank while settling a fill")
            if post_in > pre_in:
                deposit_native(group, account, in_token_i, post_in - pre_in)

            settle_borrow_full(group, account, out_token_i)
            settle_borrow_full(group, account, in_token_i)

            refreshed = self._reload_open_orders(group, market_i, oo_ref, open_orders)
            ratio = get_collateral_ratio(account, group, prices, refreshed)
        return OperationResult(
            "place_and_settle", account.key, collateral_ratio=ratio,
            reduce_only=reduce_only, order_id=order_id,
            settled=(post_base - pre_base, post_quote - pre_quote),
        )

    def cancel_order(
        self,
        group: AssetGroup,
        account: MarginAccount,
        signer: Identity,
        market: Ref,
        order_id: int,
        now: int,
    ) -> OperationResult:
        venue = self._require_venue()
        logger.info("Cancel order market=%s order_id=%d account=%s", market, order_id, account.key)
        with self._atomic("cancel_order", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_owner(account, signer)
            market_i = self._market_index(group, market)
            ref = account.open_orders[market_i]
            if ref == NULL_REF:
                raise AuthorizationError(f"account {account.key} has no open orders on market {market}")
            self._check_open_orders_record(group, venue.load_open_orders(ref))
            venue.cancel_order(market, ref, group.signer_key, order_id)
        return OperationResult("cancel_order", account.key, order_id=order_id)

    # ========================================================================
    # LIQUIDATION
    # ========================================================================

    def _liquidator_deposits(
        self,
        group: AssetGroup,
        account: MarginAccount,
        liquidator: Identity,
        quantities: Sequence[int],
        token_accounts: Optional[Sequence[Ref]],
    ) -> Tuple[TransferRequest, ...]:
        transfers = []
        for i, quantity in enumerate(quantities):
            if quantity == 0:
                continue
            deposit_native(group, account, i, quantity)
            transfers.append(TransferRequest(
                asset_index=i,
                source=token_accounts[i] if token_accounts else liquidator,
                dest=group.slots[i].vault,
                amount=quantity,
                authority=liquidator,
            ))
        return tuple(transfers)

    @staticmethod
    def _check_quantities(group: AssetGroup, quantities: Sequence[int], token_accounts) -> None:
        if len(quantities) != group.num_tokens:
            raise ValueError(f"expected {group.num_tokens} deposit quantities, got {len(quantities)}")
        for q in quantities:
            if q < 0 or q > U64_MAX:
                raise ValueError(f"deposit quantity must be in [0, {U64_MAX}], got {q}")
        if token_accounts is not None and len(token_accounts) != group.num_tokens:
            raise ValueError(f"expected {group.num_tokens} liquidator token accounts")

    def _liquidation_preamble(
        self,
        group: AssetGroup,
        account: MarginAccount,
        liquidator: Identity,
        prices: Prices,
        open_orders: Sequence[OpenOrders],
    ) -> Tuple[FixedPoint, str]:
        if not liquidator:
            raise AuthorizationError("liquidator identity cannot be empty")
        ratio = get_collateral_ratio(account, group, prices, open_orders)
        status = health_status(group, ratio)
        if status == HEALTH_HEALTHY:
            raise NotLiquidatable(
                f"account {account.key} ratio {ratio} is at or above maintenance {group.maint_ratio}"
            )
        return ratio, status

    def liquidate(
        self,
        group: AssetGroup,
        account: MarginAccount,
        liquidator: Identity,
        deposit_quantities: Sequence[int],
        now: int,
        oracles: Sequence[OracleFeed],
        open_orders: Sequence[OpenOrders],
        token_accounts: Optional[Sequence[Ref]] = None,
    ) -> OperationResult:
        """
        Take over an account below the maintenance ratio.

        Steps:
            1. require ratio < maint_ratio
            2. net every borrow against same-asset deposits; stop if that
               restores maint_ratio (ownership does not change)
            3. if insolvent (ratio < 1), socialize losses down to ratio 1.01
            4. pull all of `deposit_quantities` from the liquidator
            5. require ratio >= init_ratio and native deposits covering
               native borrows in every asset
            6. transfer ownership to the liquidator

        Raises:
            NotLiquidatable: if the account is at or above maint_ratio.
            InsufficientCollateral: if the liquidator's deposits fall short of init_ratio.
            InvariantViolation: if native borrows exceed native deposits afterwards.
        """
        self._check_quantities(group, deposit_quantities, token_accounts)
        logger.info("Liquidate account=%s liquidator=%s deposits=%s", account.key, liquidator, list(deposit_quantities))
        with self._atomic("liquidate", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            self._check_open_orders(group, account, open_orders)
            prices = get_prices(group, oracles)
            entry_ratio, entry_status = self._liquidation_preamble(group, account, liquidator, prices, open_orders)

            report, transfers = self._run_liquidation(
                group, account, liquidator, prices, open_orders, entry_ratio, entry_status,
                lambda: list(deposit_quantities), token_accounts,
            )
            self._execute_transfers(transfers)
        return OperationResult(
            "liquidate", account.key, transfers=transfers,
            collateral_ratio=report.final_ratio, liquidation=report,
        )

    def partial_liquidate(
        self,
        group: AssetGroup,
        account: MarginAccount,
        liquidator: Identity,
        deposit_quantities: Sequence[int],
        now: int,
        oracles: Sequence[OracleFeed],
        token_accounts: Optional[Sequence[Ref]] = None,
    ) -> OperationResult:
        """
        Liquidate only as far as needed to restore init_ratio.

        Open-order records are read from the venue. Every balance they hold
        is credited to deposits as if all resting orders were cancelled and
        settled; liquidation then proceeds as in `liquidate`, except that
        `deposit_quantities` is an upper bound and only the part needed to
        reach init_ratio is pulled. The orders are cancelled and settled on
        the venue last, once the liquidation has succeeded.
        """
        self._require_venue()
        self._check_quantities(group, deposit_quantities, token_accounts)
        logger.info("Partial liquidate account=%s liquidator=%s offered=%s",
                    account.key, liquidator, list(deposit_quantities))
        with self._atomic("partial_liquidate", group, account):
            group.update_indexes(now)
            self._check_account(group, account)
            open_orders = self._load_open_orders(group, account)
            prices = get_prices(group, oracles)
            entry_ratio, entry_status = self._liquidation_preamble(group, account, liquidator, prices, open_orders)

            held = open_orders
            cancelled = tuple(
                (market_i, order_id)
                for market_i, oo in enumerate(held) if not oo.is_null
                for order_id in oo.order_ids
            )
            open_orders = self._release_open_orders(group, account, held)

            report, transfers = self._run_liquidation(
                group, account, liquidator, prices, open_orders, entry_ratio, entry_status,
                lambda: compute_topup(account, group, prices, open_orders, deposit_quantities),
                token_accounts, cancelled,
            )
            self._execute_transfers(transfers)
            self._cancel_and_settle(group, held)
        return OperationResult(
            "partial_liquidate", account.key, transfers=transfers,
            collateral_ratio=report.final_ratio, liquidation=report,
        )

    def _load_open_orders(self, group: AssetGroup, account: MarginAccount) -> List[OpenOrders]:
        venue = self._require_venue()
        snapshots = []
        for ref in account.open_orders:
            if ref == NULL_REF:
                snapshots.append(null_open_orders())
                continue
            oo = venue.load_open_orders(ref)
            if oo.ref != ref:
                raise AuthorizationError(f"venue returned open orders {oo.ref} for {ref}")
            self._check_open_orders_record(group, oo)
            snapshots.append(oo)
        return snapshots

    @staticmethod
    def _release_open_orders(
        group: AssetGroup,
        account: MarginAccount,
        open_orders: Sequence[OpenOrders],
    ) -> List[OpenOrders]:
        """Credit every balance held on the venue as deposit. Returns the emptied snapshots."""
        released = []
        for market_i, oo in enumerate(open_orders):
            if oo.is_null:
                released.append(oo)
                continue
            if oo.base_total:
                deposit_native(group, account, market_i, oo.base_total)
            if oo.quote_total:
                deposit_native(group, account, group.quote_index, oo.quote_total)
            released.append(replace(oo, base_free=0, base_total=0, quote_free=0, quote_total=0, order_ids=()))
        return released

    def _cancel_and_settle(self, group: AssetGroup, open_orders: Sequence[OpenOrders]) -> None:
        """Cancel every resting order and pull all balances back into the vaults."""
        venue = self._require_venue()
        quote_vault = group.slots[group.quote_index].vault
        for market_i, oo in enumerate(open_orders):
            if oo.is_null or not (oo.order_ids or oo.base_total or oo.quote_total):
                continue
            market = group.markets[market_i]
            base_vault = group.slots[market_i].vault
            pre = venue.vault_balance(base_vault), venue.vault_balance(quote_vault)
            for order_id in oo.order_ids:
                venue.cancel_order(market, oo.ref, group.signer_key, order_id)
            venue.settle_funds(market, oo.ref, group.signer_key, base_vault, quote_vault)
            returned = (venue.vault_balance(base_vault) - pre[0], venue.vault_balance(quote_vault) - pre[1])
            if returned != (oo.base_total, oo.quote_total):
                raise InvariantViolation(
                    f"open orders {oo.ref} returned {returned}, expected {(oo.base_total, oo.quote_total)}"
                )

    def _run_liquidation(
        self,
        group: AssetGroup,
        account: MarginAccount,
        liquidator: Identity,
        prices: Prices,
        open_orders: Sequence[OpenOrders],
        entry_ratio: FixedPoint,
        entry_status: str,
        quantities,
        token_accounts: Optional[Sequence[Ref]],
        cancelled: Tuple[Tuple[int, int], ...] = (),
    ) -> Tuple[LiquidationReport, Tuple[TransferRequest, ...]]:
        """Steps 2-6 shared by full and partial liquidation. `quantities` is evaluated after step 3."""
        settled = tuple(settle_borrow_full(group, account, i) for i in range(group.num_tokens))
        ratio = get_collateral_ratio(account, group, prices, open_orders)
        if ratio >= group.maint_ratio:
            group.check_backing()
            logger.info("Account %s restored to %s by settling borrows", account.key, ratio)
            report = LiquidationReport(
                entry_status=entry_status,
                entry_ratio=entry_ratio,
                settled=settled,
                socialized=(FixedPoint.ZERO,) * group.num_tokens,
                deposited=(0,) * group.num_tokens,
                final_ratio=ratio,
                ownership_transferred=False,
                cancelled_orders=cancelled,
            )
            return report, ()

        socialized = [FixedPoint.ZERO] * group.num_tokens
        if ratio < FixedPoint.ONE:
            socialized = socialize_insolvency(account, group, prices, open_orders)

        deposits = quantities()
        transfers = self._liquidator_deposits(group, account, liquidator, deposits, token_accounts)

        ratio = get_collateral_ratio(account, group, prices, open_orders)
        self._require_init_ratio(group, ratio)
        group.check_backing()

        previous_owner = account.owner
        account.owner = liquidator
        logger.warning(
            "Liquidated account %s: owner %s -> %s, entry ratio %s, final ratio %s, socialized %s",
            account.key, previous_owner, liquidator, entry_ratio, ratio, [str(s) for s in socialized],
        )
        report = LiquidationReport(
            entry_status=entry_status,
            entry_ratio=entry_ratio,
            settled=settled,
            socialized=tuple(socialized),
            deposited=tuple(deposits),
            final_ratio=ratio,
            ownership_transferred=True,
            cancelled_orders=cancelled,
        )
        return report, transfers
