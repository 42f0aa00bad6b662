"""
Atomicity Conformance Tests

INVARIANT: Operations are all-or-nothing.

    ∀ operation O:
        O succeeds ⟹ every share, index and ownership change of O is applied
        O fails    ⟹ group and account records are byte-identical to before

Failures include policy rejections, authorization failures and a failing
token transfer at the very end of the operation.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from margin_ledger import (
    DAY, MarginEngine, MarginError, fp,
    init_margin_account, pack_asset_group, pack_margin_account,
)

from tests.fake_venue import (
    FakeTokenProgram, TransferFailed, pair_group, feed, no_orders, BASE, QUOTE,
)


def records(group, *accounts):
    return pack_asset_group(group), tuple(pack_margin_account(a) for a in accounts)


def pool():
    group = pair_group()
    bank = FakeTokenProgram()
    for owner in ("lender", "alice", "liquidator"):
        bank.mint(owner, BASE, 1_000_000)
        bank.mint(owner, QUOTE, 1_000_000)
    engine = MarginEngine(None, bank)
    lender = init_margin_account(group, "lender_acct", "lender")
    alice = init_margin_account(group, "alice_acct", "alice")
    engine.deposit(group, lender, "lender", BASE, 5_000, now=0)
    engine.deposit(group, alice, "alice", QUOTE, 1_000, now=0)
    engine.borrow(group, alice, "alice", BASE, 500, 0, [feed("1.00")], no_orders(group))
    engine.withdraw(group, alice, "alice", BASE, 500, 0, [feed("1.00")], no_orders(group))
    return group, bank, engine, alice


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        st.sampled_from(["withdraw", "borrow", "liquidate"]),
        st.integers(min_value=1, max_value=100_000),
        st.integers(min_value=0, max_value=90 * DAY),
        st.sampled_from(["1.00", "1.50", "2.00", "2.50"]),
    )
    @settings(max_examples=150, deadline=None)
    def test_failed_operation_changes_nothing(self, name, amount, elapsed, price):
        """
        PROPERTY: any failing operation leaves both records untouched,
        including the interest refresh it performed first.
        """
        group, bank, engine, alice = pool()
        before = records(group, alice)
        oracles = [feed(price)]
        try:
            if name == "withdraw":
                engine.withdraw(group, alice, "alice", QUOTE, amount, elapsed, oracles, no_orders(group))
            elif name == "borrow":
                engine.borrow(group, alice, "alice", BASE, amount, elapsed, oracles, no_orders(group))
            else:
                engine.liquidate(group, alice, "liquidator", [0, amount], elapsed, oracles, no_orders(group))
        except (MarginError, TransferFailed):
            assert records(group, alice) == before
        else:
            assert records(group, alice) != before

    @given(st.integers(min_value=1, max_value=1_000), st.integers(min_value=1, max_value=90 * DAY))
    @settings(max_examples=50, deadline=None)
    def test_failed_transfer_rolls_back_accrual(self, amount, elapsed):
        """
        PROPERTY: a transfer failing after every check passed still rolls back
        the interest accrued during the operation.
        """
        group, bank, engine, alice = pool()
        before = records(group, alice)
        bank.fail_on = "vault_quote"
        with pytest.raises(TransferFailed):
            engine.withdraw(group, alice, "alice", QUOTE, min(amount, 100), elapsed, [feed("1.00")], no_orders(group))
        assert records(group, alice) == before
        assert group.index(BASE).last_update == 0


class TestAtomicityEdgeCases:

    def test_wrong_signer_changes_nothing(self):
        group, bank, engine, alice = pool()
        before = records(group, alice)
        with pytest.raises(MarginError):
            engine.borrow(group, alice, "mallory", BASE, 10, DAY, [feed("1.00")], no_orders(group))
        assert records(group, alice) == before

    def test_liquidation_shortfall_restores_socialized_index(self):
        group, bank, engine, alice = pool()
        before = records(group, alice)
        with pytest.raises(MarginError):
            engine.liquidate(group, alice, "liquidator", [0, 1], 0, [feed("2.50")], no_orders(group))
        assert records(group, alice) == before
        assert group.index(BASE).deposit == fp(1)
        assert bank.balance("liquidator", QUOTE) == 1_000_000
