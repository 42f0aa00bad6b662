#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Margin Engine Step by Step

This is a pedagogical demonstration of how the cross-margin pool works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation   - The pool, deposits as shares, borrowing against collateral
  4-5:  Safety       - Rejected operations, interest accrual
  6-7:  Liquidation  - Price shocks, loss socialization, takeover
  8:    Persistence  - Fixed-size binary records

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import sys

from margin_ledger import (
    MarginEngine, OracleFeed, RiskConfig, YEAR,
    InsufficientCollateral,
    init_asset_group, null_open_orders,
    get_prices, assess_health, get_total_assets, get_total_liabs,
    pack_asset_group, unpack_asset_group, asset_group_size,
    setup_logging,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    lender_base: int = 1000
    lender_quote: int = 1000
    alice_collateral: int = 1000
    alice_borrow: int = 500
    shock_price: str = "2.50"
    liquidator_topup: int = 200


CONFIG = DemoConfig()

BASE, QUOTE = 0, 1
ORACLE = "oracle_base"

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def oracle(price: str):
    """BASE priced in QUOTE with two decimals."""
    cents = int(price.replace(".", ""))
    return [OracleFeed(ORACLE, cents, 2)]


def show_account(group, account, price: str):
    prices = get_prices(group, oracle(price))
    health = assess_health(account, group, prices, [null_open_orders()])
    print(f"  owner:            {account.owner}")
    print(f"  native assets:    {get_total_assets(account, group, [null_open_orders()])}")
    print(f"  native liabs:     {get_total_liabs(account, group)}")
    ratio = "inf" if health.liabilities_value.is_zero() else f"{health.collateral_ratio.to_decimal():.4f}"
    print(f"  collateral ratio: {ratio}")
    print(f"  status:           {health.status}{'  (reduce-only)' if health.reduce_only else ''}")


# ============================================================================
# PHASE 1: FOUNDATION
# ============================================================================

def step_01_create_pool():
    step_header(1, "The Pool",
        "Create a BASE/QUOTE asset group from a risk configuration.")

    risk = RiskConfig.from_mapping({
        "init_ratio": "1.20",
        "maint_ratio": "1.10",
        "borrow_limits": [10_000, 10_000],
    })
    group = init_asset_group(
        key="demo_group",
        mints=["BASE", "QUOTE"],
        vaults=["vault_base", "vault_quote"],
        mint_decimals=[0, 0],
        markets=["BASE/QUOTE"],
        oracles=oracle("1.00"),
        maint_ratio=risk.maint_ratio,
        init_ratio=risk.init_ratio,
        borrow_limits=list(risk.borrow_limits),
        admin="admin",
        signer_key="group_signer",
        now=0,
        rate_model=risk.rate_model(),
    )

    section_header("Initial State")
    for i, slot in enumerate(group.slots):
        print(f"  asset {i} {slot.mint:<6} vault={slot.vault:<12} "
              f"borrow_index={slot.index.borrow} deposit_index={slot.index.deposit}")
    print(f"\n  maint_ratio={group.maint_ratio}  init_ratio={group.init_ratio}")
    print("""
    The last asset is the quote currency. Every value in the pool is
    expressed in it.
    """)
    return group


def step_02_deposits(engine, group):
    step_header(2, "Deposits Are Shares",
        "See how native deposits become index-adjusted shares.")

    lender = engine.init_margin_account(group, "lender_acct", "lender")
    alice = engine.init_margin_account(group, "alice_acct", "alice")

    result = engine.deposit(group, lender, "lender", BASE, CONFIG.lender_base, now=0)
    engine.deposit(group, lender, "lender", QUOTE, CONFIG.lender_quote, now=0)
    engine.deposit(group, alice, "alice", QUOTE, CONFIG.alice_collateral, now=0)

    section_header("Requested transfer for the first deposit")
    for transfer in result.transfers:
        print(f"  {transfer!r}")

    section_header("Shares")
    print(f"  lender BASE shares: {lender.deposits[BASE]}")
    print(f"  alice QUOTE shares: {alice.deposits[QUOTE]}")
    return lender, alice


def step_03_borrow(engine, group, alice):
    step_header(3, "Borrowing Against Collateral",
        "Borrow BASE with QUOTE as collateral, then withdraw the proceeds.")

    engine.borrow(group, alice, "alice", BASE, CONFIG.alice_borrow, 0, oracle("1.00"), [null_open_orders()])
    engine.withdraw(group, alice, "alice", BASE, CONFIG.alice_borrow, 0, oracle("1.00"), [null_open_orders()])
    show_account(group, alice, "1.00")


# ============================================================================
# PHASE 2: SAFETY
# ============================================================================

def step_04_rejection(engine, group, alice):
    step_header(4, "Rejected Operations",
        "An operation that would breach init_ratio changes nothing.")

    before = (list(alice.deposits), list(alice.borrows))
    try:
        engine.borrow(group, alice, "alice", BASE, 5_000, 0, oracle("1.00"), [null_open_orders()])
    except InsufficientCollateral as e:
        print(f"  rejected: {e}")
    print(f"  account unchanged: {before == (list(alice.deposits), list(alice.borrows))}")


def step_05_interest(engine, group, lender, alice):
    step_header(5, "Interest Accrual",
        "One year at 50% utilization grows both indexes.")

    engine.deposit(group, lender, "lender", QUOTE, 1, now=YEAR)
    index = group.index(BASE)
    print(f"  BASE borrow index:  {index.borrow.to_decimal():.7f}")
    print(f"  BASE deposit index: {index.deposit.to_decimal():.7f}")
    print(f"  lender native BASE: {lender.get_native_deposit(index, BASE)}")
    print(f"  alice native debt:  {alice.get_native_borrow(index, BASE)}")


# ============================================================================
# PHASE 3: LIQUIDATION
# ============================================================================

def step_06_price_shock(group, alice):
    step_header(6, "Price Shock",
        f"BASE jumps to {CONFIG.shock_price}; the account falls below 1.")
    show_account(group, alice, CONFIG.shock_price)


def step_07_liquidation(engine, group, lender, alice):
    step_header(7, "Liquidation",
        "Socialize the shortfall, top up to init_ratio, transfer ownership.")

    result = engine.liquidate(
        group, alice, "liquidator", [0, CONFIG.liquidator_topup], YEAR,
        oracle(CONFIG.shock_price), [null_open_orders()],
    )
    report = result.liquidation
    print(f"  entry status:     {report.entry_status}")
    print(f"  socialized BASE:  {report.socialized[BASE].to_decimal():.4f}")
    print(f"  liquidator paid:  {report.deposited}")
    print(f"  final ratio:      {report.final_ratio.to_decimal():.4f}")
    print(f"  lender now holds: {lender.get_native_deposit(group.index(BASE), BASE)} BASE")
    show_account(group, alice, CONFIG.shock_price)


# ============================================================================
# PHASE 4: PERSISTENCE
# ============================================================================

def step_08_records(group):
    step_header(8, "Binary Records",
        "Pack the group into its fixed-size record and read it back.")

    data = pack_asset_group(group)
    print(f"  record size: {len(data)} bytes (layout size {asset_group_size(group.num_tokens)})")
    restored = unpack_asset_group(data, key=group.key)
    print(f"  identical after round trip: {restored == group}")


def main():
    """Run the complete tutorial."""
    setup_logging("WARNING")
    print("=" * 70)
    print("       MARGIN LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    engine = MarginEngine()
    group = step_01_create_pool()
    wait_for_enter()

    lender, alice = step_02_deposits(engine, group)
    wait_for_enter()

    step_03_borrow(engine, group, alice)
    wait_for_enter()

    step_04_rejection(engine, group, alice)
    wait_for_enter()

    step_05_interest(engine, group, lender, alice)
    wait_for_enter()

    step_06_price_shock(group, alice)
    wait_for_enter()

    step_07_liquidation(engine, group, lender, alice)
    wait_for_enter()

    step_08_records(group)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See margin_ledger/engine.py for every operation
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
