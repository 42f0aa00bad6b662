"""
Collateral Gate Conformance Tests

INVARIANT (ratio gate): a successful borrow or withdraw leaves
    collateral_ratio >= init_ratio

INVARIANT (reduce-only): if collateral_ratio < init_ratio before a trade,
a successful trade never increases borrow shares.

INVARIANT (liquidation gate): liquidating an account with
    collateral_ratio >= maint_ratio
always fails and changes nothing.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from margin_ledger import (
    MarginEngine, Order, Side, PolicyRejection, NotLiquidatable,
    init_margin_account, get_prices, get_collateral_ratio,
    pack_asset_group, pack_margin_account,
)

from tests.fake_venue import (
    FakeTokenProgram, FakeVenue, TransferFailed,
    pair_group, feed, fresh_orders, no_orders, BASE, QUOTE, MARKET,
)


# =============================================================================
# STRATEGIES
# =============================================================================

price_strings = st.integers(min_value=50, max_value=400).map(lambda cents: f"{cents // 100}.{cents % 100:02d}")


@st.composite
def leveraged_state(draw):
    """Collateral, a BASE borrow of which part is withdrawn, and a new price."""
    collateral = draw(st.integers(min_value=100, max_value=5_000))
    borrowed = draw(st.integers(min_value=1, max_value=collateral))
    withdrawn = draw(st.integers(min_value=0, max_value=borrowed))
    price = draw(price_strings)
    return collateral, borrowed, withdrawn, price


# =============================================================================
# HELPERS
# =============================================================================

def setup(collateral, borrowed, withdrawn, with_venue=False):
    """
    A lender supplies 10_000 of each asset. Alice posts QUOTE collateral,
    borrows BASE at price 1.00 and withdraws part of it. Steps that the
    engine rejects are simply skipped.
    """
    group = pair_group()
    bank = FakeTokenProgram()
    for owner in ("lender", "alice", "liquidator"):
        bank.mint(owner, BASE, 1_000_000)
        bank.mint(owner, QUOTE, 1_000_000)
    venue = FakeVenue(bank, group) if with_venue else None
    engine = MarginEngine(venue, bank)

    lender = init_margin_account(group, "lender_acct", "lender")
    alice = init_margin_account(group, "alice_acct", "alice")
    engine.deposit(group, lender, "lender", BASE, 10_000, now=0)
    engine.deposit(group, lender, "lender", QUOTE, 10_000, now=0)
    engine.deposit(group, alice, "alice", QUOTE, collateral, now=0)
    oracles = [feed("1.00")]
    try:
        engine.borrow(group, alice, "alice", BASE, borrowed, 0, oracles, no_orders(group))
        if withdrawn:
            engine.withdraw(group, alice, "alice", BASE, withdrawn, 0, oracles, no_orders(group))
    except PolicyRejection:
        pass
    return group, engine, venue, alice


def ratio_of(group, account, price, open_orders):
    return get_collateral_ratio(account, group, get_prices(group, [feed(price)]), open_orders)


# =============================================================================
# PROPERTIES
# =============================================================================

class TestRatioGate:

    @given(leveraged_state(), st.integers(min_value=1, max_value=5_000))
    @settings(max_examples=150, deadline=None)
    def test_borrow(self, state, amount):
        """
        PROPERTY: borrow succeeds only if the resulting ratio is >= init_ratio.
        """
        collateral, borrowed, withdrawn, price = state
        group, engine, _, alice = setup(collateral, borrowed, withdrawn)
        try:
            engine.borrow(group, alice, "alice", BASE, amount, 0, [feed(price)], no_orders(group))
        except PolicyRejection:
            return
        assert ratio_of(group, alice, price, no_orders(group)) >= group.init_ratio

    @given(leveraged_state(), st.integers(min_value=1, max_value=5_000), st.sampled_from([BASE, QUOTE]))
    @settings(max_examples=150, deadline=None)
    def test_withdraw(self, state, amount, asset):
        """
        PROPERTY: withdraw succeeds only if the resulting ratio is >= init_ratio.
        """
        collateral, borrowed, withdrawn, price = state
        group, engine, _, alice = setup(collateral, borrowed, withdrawn)
        try:
            engine.withdraw(group, alice, "alice", asset, amount, 0, [feed(price)], no_orders(group))
        except PolicyRejection:
            return
        assert ratio_of(group, alice, price, no_orders(group)) >= group.init_ratio


class TestReduceOnly:

    @given(
        leveraged_state(),
        st.sampled_from([Side.BID, Side.ASK]),
        st.integers(min_value=1, max_value=3),
        st.integers(min_value=1, max_value=2_000),
    )
    @settings(max_examples=150, deadline=None)
    def test_trade_below_initial_ratio_never_borrows(self, state, side, limit_price, qty):
        """
        PROPERTY: a trade placed below init_ratio never adds borrow shares,
        and a rejected trade leaves the vaults and the venue untouched.
        """
        collateral, borrowed, withdrawn, price = state
        group, engine, venue, alice = setup(collateral, borrowed, withdrawn, with_venue=True)
        open_orders = fresh_orders(group, 0, "alice_oo")
        below_init = ratio_of(group, alice, price, open_orders) < group.init_ratio
        borrows_before = list(alice.borrows)
        vaults_before = [venue.vault_balance(slot.vault) for slot in group.slots]

        try:
            result = engine.place_order(
                group, alice, "alice", MARKET, side, Order(limit_price, qty), 0,
                [feed(price)], open_orders,
            )
        except (PolicyRejection, TransferFailed):
            assert alice.borrows == borrows_before
            assert [venue.vault_balance(slot.vault) for slot in group.slots] == vaults_before
            assert venue.placed == []
            assert not venue.load_open_orders("alice_oo").initialized
            return

        assert result.reduce_only == below_init
        if below_init:
            for before, after in zip(borrows_before, alice.borrows):
                assert after <= before


class TestLiquidationGate:

    @given(leveraged_state())
    @settings(max_examples=150, deadline=None)
    def test_healthy_accounts_cannot_be_liquidated(self, state):
        """
        PROPERTY: liquidation at or above maint_ratio fails without any change.
        """
        collateral, borrowed, withdrawn, price = state
        group, engine, _, alice = setup(collateral, borrowed, withdrawn)
        if ratio_of(group, alice, price, no_orders(group)) < group.maint_ratio:
            return

        group_bytes = pack_asset_group(group)
        account_bytes = pack_margin_account(alice)
        try:
            engine.liquidate(group, alice, "liquidator", [0, 10_000], 0, [feed(price)], no_orders(group))
        except NotLiquidatable:
            pass
        else:
            raise AssertionError("liquidation of a healthy account succeeded")

        assert pack_asset_group(group) == group_bytes
        assert pack_margin_account(alice) == account_bytes
