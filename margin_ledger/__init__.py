"""
margin_ledger - Cross-Margin Lending and Trading Accounting Engine

Tracks a shared pool of N assets (the last one is the quote currency) in which
accounts deposit, borrow against their collateral, trade on an external venue,
and get liquidated when undercollateralized.

Usage:
    from margin_ledger import (
        MarginEngine, OracleFeed, init_asset_group, null_open_orders,
    )

    group = init_asset_group(
        key="group", mints=["BASE", "QUOTE"], vaults=["vault_base", "vault_quote"],
        mint_decimals=[0, 0], markets=["BASE/QUOTE"],
        oracles=[OracleFeed("oracle_base", 100, 2)],
        maint_ratio="1.10", init_ratio="1.20",
        borrow_limits=[10_000, 10_000], admin="admin", signer_key="signer", now=0,
    )
    oracles = [OracleFeed("oracle_base", 100, 2)]     # BASE = 1.00 QUOTE
    no_orders = [null_open_orders()]

    engine = MarginEngine()
    alice = engine.init_margin_account(group, "alice_acct", "alice")
    engine.deposit(group, alice, "alice", asset=1, amount=1000, now=0)
    result = engine.borrow(group, alice, "alice", 0, 500, 0, oracles, no_orders)
    print(result.collateral_ratio)                    # 3
"""

# Core types
from .core import (
    MINUTE, HOUR, DAY, YEAR,
    NULL_REF, DEFAULT_NUM_TOKENS, REF_BYTES, U64_MAX,
    Identity, Ref,
    RecordKind, ASSET_GROUP_FLAGS, MARGIN_ACCOUNT_FLAGS,
    MarginError,
    AuthorizationError,
    ArithmeticFault,
    FixedPointError,
    InvariantViolation,
    RecordError,
    PolicyRejection,
    InsufficientCollateral,
    BorrowLimitExceeded,
    InsufficientFunds,
    ReduceOnlyViolation,
    NotLiquidatable,
    ConfigValidationError,
    OracleFeed,
    OpenOrders,
    null_open_orders,
    TransferRequest,
)

# Fixed point
from .fixed import FixedPoint, fp

# Interest
from .interest import (
    InterestRateModel,
    DEFAULT_RATE_MODEL,
    utilization,
    annualized_rate_curve,
    annualized_deposit_rate_curve,
)

# Pool and accounts
from .group import AssetIndex, AssetSlot, AssetGroup, init_asset_group
from .account import MarginAccount, init_margin_account

# Valuation
from .valuation import (
    get_prices,
    get_assets_val,
    get_liabs_val,
    get_collateral_ratio,
    get_equity,
    get_collateral_deficit,
    get_total_assets,
    get_total_liabs,
    AccountHealth,
    assess_health,
    health_status,
    HEALTH_HEALTHY,
    HEALTH_LIQUIDATABLE,
    HEALTH_INSOLVENT,
)

# Mutation primitives
from .primitives import (
    checked_add_deposit,
    checked_sub_deposit,
    checked_add_borrow,
    checked_sub_borrow,
    deposit_native,
    settle_borrow,
    settle_borrow_full,
    socialize_loss,
)

# Liquidation
from .liquidation import (
    LIQUIDATION_TARGET_RATIO,
    LiquidationReport,
    compute_reduction_value,
    allocate_reduction,
    socialize_insolvency,
    compute_topup,
)

# Venue and engine
from .venue import Side, OrderType, Order, OrderVenue, TokenProgram
from .engine import MarginEngine, OperationResult

# Records
from .records import (
    pack_asset_group,
    unpack_asset_group,
    pack_margin_account,
    unpack_margin_account,
    asset_group_size,
    margin_account_size,
    load_checked,
)

# Configuration and logging
from .config import RiskConfig, load_config
from .logging_config import setup_logging, StructuredFormatter

__all__ = [
    # Core
    'MINUTE', 'HOUR', 'DAY', 'YEAR',
    'NULL_REF', 'DEFAULT_NUM_TOKENS', 'REF_BYTES', 'U64_MAX',
    'Identity', 'Ref',
    'RecordKind', 'ASSET_GROUP_FLAGS', 'MARGIN_ACCOUNT_FLAGS',
    'MarginError', 'AuthorizationError', 'ArithmeticFault', 'FixedPointError',
    'InvariantViolation', 'RecordError', 'PolicyRejection',
    'InsufficientCollateral', 'BorrowLimitExceeded', 'InsufficientFunds',
    'ReduceOnlyViolation', 'NotLiquidatable', 'ConfigValidationError',
    'OracleFeed', 'OpenOrders', 'null_open_orders', 'TransferRequest',
    # Fixed point
    'FixedPoint', 'fp',
    # Interest
    'InterestRateModel', 'DEFAULT_RATE_MODEL', 'utilization',
    'annualized_rate_curve', 'annualized_deposit_rate_curve',
    # Pool and accounts
    'AssetIndex', 'AssetSlot', 'AssetGroup', 'init_asset_group',
    'MarginAccount', 'init_margin_account',
    # Valuation
    'get_prices', 'get_assets_val', 'get_liabs_val', 'get_collateral_ratio',
    'get_equity', 'get_collateral_deficit', 'get_total_assets', 'get_total_liabs',
    'AccountHealth', 'assess_health', 'health_status',
    'HEALTH_HEALTHY', 'HEALTH_LIQUIDATABLE', 'HEALTH_INSOLVENT',
    # Primitives
    'checked_add_deposit', 'checked_sub_deposit', 'checked_add_borrow', 'checked_sub_borrow',
    'deposit_native', 'settle_borrow', 'settle_borrow_full', 'socialize_loss',
    # Liquidation
    'LIQUIDATION_TARGET_RATIO', 'LiquidationReport', 'compute_reduction_value',
    'allocate_reduction', 'socialize_insolvency', 'compute_topup',
    # Venue and engine
    'Side', 'OrderType', 'Order', 'OrderVenue', 'TokenProgram',
    'MarginEngine', 'OperationResult',
    # Records
    'pack_asset_group', 'unpack_asset_group', 'pack_margin_account',
    'unpack_margin_account', 'asset_group_size', 'margin_account_size', 'load_checked',
    # Config and logging
    'RiskConfig', 'load_config', 'setup_logging', 'StructuredFormatter',
]

__version__ = '1.0.0'
