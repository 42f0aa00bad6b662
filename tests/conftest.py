"""
conftest.py - Shared pytest fixtures for margin_ledger tests

Provides common fixtures used across unit, functional and conformance tests:
- Asset groups (BASE/QUOTE pair, BTC/ETH/USDC triple)
- In-memory token program and venue, plus an engine wired to them
- A funded pool where a lender supplies BASE liquidity
"""

import pytest

from margin_ledger import MarginEngine, init_margin_account

from tests.fake_venue import (
    FakeTokenProgram, FakeVenue,
    pair_group, triple_group,
    BASE, QUOTE,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def fund(bank: FakeTokenProgram, owner: str, amounts) -> None:
    """Mint `amounts[i]` of every asset i into `owner`'s token account."""
    for i, amount in enumerate(amounts):
        if amount:
            bank.mint(owner, i, amount)


# =============================================================================
# POOL FIXTURES
# =============================================================================

@pytest.fixture
def group():
    """BASE/QUOTE pool at t=0, BASE priced 1.00."""
    return pair_group()


@pytest.fixture
def triple():
    """BTC and ETH against USDC at t=0."""
    return triple_group()


@pytest.fixture
def bank():
    bank = FakeTokenProgram()
    for owner in ("alice", "bob", "lender", "liquidator"):
        fund(bank, owner, [1_000_000, 1_000_000, 1_000_000])
    return bank


@pytest.fixture
def venue(bank, group):
    return FakeVenue(bank, group)


@pytest.fixture
def engine(venue, bank):
    """Engine executing transfers against the in-memory bank."""
    return MarginEngine(venue, bank)


@pytest.fixture
def alice(group):
    return init_margin_account(group, "alice_acct", "alice")


@pytest.fixture
def lender(group):
    return init_margin_account(group, "lender_acct", "lender")


@pytest.fixture
def funded_pool(engine, group, lender):
    """Lender has supplied 1000 BASE and 1000 QUOTE to the pool."""
    engine.deposit(group, lender, "lender", BASE, 1000, now=0)
    engine.deposit(group, lender, "lender", QUOTE, 1000, now=0)
    return group
