"""
Pool Solvency and Index Monotonicity Conformance Tests

INVARIANT: For every asset i, after every successful operation:
    total_deposit_shares[i] * deposit_index[i] >= total_borrow_shares[i] * borrow_index[i]

INVARIANT: Interest indexes never decrease through accrual:
    t1 <= t2  ⟹  index(t1) <= index(t2)

Operations, liquidations included, are drawn at random; rejected operations
are allowed, but must leave no trace.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from margin_ledger import (
    DAY, FixedPoint, MarginEngine, InvariantViolation, PolicyRejection,
    init_margin_account, fp,
)

from tests.fake_venue import pair_group, feed, no_orders, BASE, QUOTE


ACTORS = ("alice", "bob", "carol")

# Shares and indexes truncate independently; allow a few units in the last place.
ROUNDING = FixedPoint(1 << 8)


# =============================================================================
# STRATEGIES
# =============================================================================

def operations_from(names):
    return st.tuples(
        st.sampled_from(names),
        st.sampled_from(ACTORS),
        st.sampled_from([BASE, QUOTE]),
        st.integers(min_value=1, max_value=2_000),
        st.integers(min_value=0, max_value=30 * DAY),
    )


operation = operations_from(["deposit", "withdraw", "borrow", "settle_borrow"])

# liquidation lowers the deposit index, so it is kept out of the monotonicity runs
operation_or_liquidation = operations_from(["deposit", "withdraw", "borrow", "settle_borrow", "liquidate"])

prices = st.sampled_from(["0.50", "1.00", "1.25", "3.00"])


# =============================================================================
# HELPERS
# =============================================================================

def run(operations, price="1.00", liquidation_price="2.50"):
    """
    Apply operations in order, yielding (group, accounts, succeeded) after each one.

    Liquidations are priced at `liquidation_price` and offer `amount` QUOTE.
    A liquidated account keeps trading under its new owner.
    """
    group = pair_group()
    engine = MarginEngine()
    accounts = {a: init_margin_account(group, f"{a}_acct", a) for a in ACTORS}
    oracles = [feed(price)]
    now = 0
    for name, actor, asset, amount, dt in operations:
        now += dt
        account = accounts[actor]
        signer = account.owner
        try:
            if name == "deposit":
                engine.deposit(group, account, signer, asset, amount, now)
            elif name == "withdraw":
                engine.withdraw(group, account, signer, asset, amount, now, oracles, no_orders(group))
            elif name == "borrow":
                engine.borrow(group, account, signer, asset, amount, now, oracles, no_orders(group))
            elif name == "liquidate":
                engine.liquidate(
                    group, account, "liquidator", [0, amount], now, [feed(liquidation_price)], no_orders(group),
                )
            else:
                engine.settle_borrow(group, account, signer, asset, amount, now)
        except (PolicyRejection, InvariantViolation):
            yield group, accounts, False
            continue
        yield group, accounts, True


def assert_solvent(group):
    for i in range(group.num_tokens):
        assert group.native_borrows_fp(i) <= group.native_deposits_fp(i) + ROUNDING


# =============================================================================
# PROPERTIES
# =============================================================================

class TestPoolSolvency:

    @given(st.lists(operation_or_liquidation, max_size=30), prices)
    @settings(max_examples=100, deadline=None)
    def test_deposits_cover_borrows_after_every_operation(self, operations, price):
        """
        PROPERTY: native deposits cover native borrows for every asset.
        """
        for group, _, succeeded in run(operations, price):
            if succeeded:
                assert_solvent(group)

    @given(
        st.lists(operation_or_liquidation, max_size=30),
        prices,
        st.sampled_from(["1.50", "2.50", "4.00"]),
    )
    @settings(max_examples=100, deadline=None)
    def test_liquidation_leaves_pool_backed(self, operations, price, liquidation_price):
        """
        PROPERTY: after a successful liquidation native borrows never exceed
        native deposits, so the next refresh can accrue interest.
        """
        liquidations = [op[0] == "liquidate" for op in operations]
        for (group, _, succeeded), is_liquidation in zip(run(operations, price, liquidation_price), liquidations):
            if succeeded and is_liquidation:
                group.check_backing()

    @given(st.lists(operation_or_liquidation, max_size=30))
    @settings(max_examples=100, deadline=None)
    def test_aggregates_equal_sum_of_accounts(self, operations):
        """
        PROPERTY: group share totals equal the sum over accounts.
        """
        for group, accounts, _ in run(operations):
            for i in range(group.num_tokens):
                deposits = sum((a.deposits[i] for a in accounts.values()), FixedPoint.ZERO)
                borrows = sum((a.borrows[i] for a in accounts.values()), FixedPoint.ZERO)
                assert group.slots[i].total_deposits == deposits
                assert group.slots[i].total_borrows == borrows


class TestIndexMonotonicity:

    @given(st.lists(operation, max_size=30))
    @settings(max_examples=100, deadline=None)
    def test_indexes_never_decrease(self, operations):
        """
        PROPERTY: borrow and deposit indexes are non-decreasing across refreshes.
        """
        previous = None
        for group, _, _ in run(operations):
            current = [(s.index.borrow, s.index.deposit, s.index.last_update) for s in group.slots]
            if previous is not None:
                for (b0, d0, t0), (b1, d1, t1) in zip(previous, current):
                    assert b1 >= b0
                    assert d1 >= d0
                    assert t1 >= t0
            previous = current

    @given(
        st.integers(min_value=1, max_value=10_000),
        st.integers(min_value=0, max_value=100),
        st.lists(st.integers(min_value=0, max_value=365 * DAY), min_size=1, max_size=10),
    )
    @settings(max_examples=100, deadline=None)
    def test_direct_refreshes(self, deposits, utilization_pct, steps):
        """
        PROPERTY: any schedule of refreshes only grows the indexes, and
        refreshing twice at the same timestamp changes nothing.
        """
        group = pair_group()
        group.slots[BASE].total_deposits = fp(deposits)
        group.slots[BASE].total_borrows = fp(deposits) * utilization_pct / 100

        now = 0
        for dt in steps:
            before = (group.index(BASE).borrow, group.index(BASE).deposit)
            now += dt
            group.update_indexes(now)
            after = (group.index(BASE).borrow, group.index(BASE).deposit)
            assert after[0] >= before[0]
            assert after[1] >= before[1]

            group.update_indexes(now)
            assert (group.index(BASE).borrow, group.index(BASE).deposit) == after
