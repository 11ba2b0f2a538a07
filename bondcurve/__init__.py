"""
bondcurve - Bonding-Curve Issuance and Exchange Engine

Launches fixed-supply assets into pools that sell them against a reserve
currency along a constant-product curve over virtual liquidity. When a pool
has sold its threshold it deactivates and the owner withdraws the reserve
and unsold asset for migration.

Usage:
    from bondcurve import (
        Ledger, BondingCurveEngine, create_issuer_config, reserve_currency,
        Authority, SYSTEM_WALLET,
    )

    ledger = Ledger("main")
    ledger.register_unit(reserve_currency("SOL", "Solana"))
    ledger.create_custody("alice", "SOL")
    ledger.move_value(SYSTEM_WALLET, "alice", "SOL", 10**12, Authority.of(SYSTEM_WALLET))

    config = create_issuer_config(
        owner="treasury",
        sale_target="treasury",
        initial_virtual_reserve=30 * 10**9,
        initial_virtual_asset=10**15,
    )
    engine = BondingCurveEngine(ledger, config)
    engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    result = engine.buy("PUMP", "alice", 10**9)
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    UnitStateChange,
    Authority,
    ExecuteResult,
    derive_address,
    reserve_currency,
    LedgerError,
    InsufficientFunds,
    Unauthorized,
    UnitNotRegistered,
    WalletNotRegistered,
    CurveError,
    PoolInactive,
    PoolStillActive,
    NotOwner,
    ArithmeticOverflow,
    CalculationError,
    InvalidAmount,
    InsufficientAssetBalance,
    InsufficientReserveBalance,
    SYSTEM_WALLET,
    UNIT_TYPE_RESERVE,
    UNIT_TYPE_CURVE_ASSET,
    U64_MAX,
    SALE_THRESHOLD,
    DEFAULT_TOTAL_SUPPLY,
)

# Ledger
from .ledger import Ledger

# Configuration
from .config import IssuerConfig, create_issuer_config

# Pricing
from .pricing import (
    checked_add,
    checked_sub,
    checked_mul,
    invariant,
    quote_asset_for_reserve,
    quote_reserve_for_asset,
    reserve_for_exact_asset,
    spot_price,
)

# Pools
from .units.bonding_curve import (
    SIDE_BUY,
    SIDE_SELL,
    PoolState,
    TradeResult,
    WithdrawalResult,
    pool_addresses,
    load_pool,
    create_curve_asset_unit,
    apply_buy,
    apply_sell,
    compute_launch,
    prepare_buy,
    compute_buy,
    prepare_sell,
    compute_sell,
    prepare_withdrawal,
    compute_withdrawal,
)

# Events
from .events import (
    LaunchEvent,
    TradeEvent,
    WithdrawEvent,
    CurveEvent,
    EventSink,
    EventRecorder,
)

# Engine
from .engine import BondingCurveEngine

# Analytics
from .curve_analytics import (
    price_curve,
    reserve_to_reach,
    market_cap_curve,
    sale_progress,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction',
    'Unit', 'UnitStateChange', 'Authority', 'ExecuteResult',
    'derive_address', 'reserve_currency',
    'SYSTEM_WALLET', 'UNIT_TYPE_RESERVE', 'UNIT_TYPE_CURVE_ASSET',
    'U64_MAX', 'SALE_THRESHOLD', 'DEFAULT_TOTAL_SUPPLY',
    # Exceptions
    'LedgerError', 'InsufficientFunds', 'Unauthorized',
    'UnitNotRegistered', 'WalletNotRegistered',
    'CurveError', 'PoolInactive', 'PoolStillActive', 'NotOwner',
    'ArithmeticOverflow', 'CalculationError', 'InvalidAmount',
    'InsufficientAssetBalance', 'InsufficientReserveBalance',
    # Ledger
    'Ledger',
    # Configuration
    'IssuerConfig', 'create_issuer_config',
    # Pricing
    'checked_add', 'checked_sub', 'checked_mul', 'invariant',
    'quote_asset_for_reserve', 'quote_reserve_for_asset',
    'reserve_for_exact_asset', 'spot_price',
    # Pools
    'SIDE_BUY', 'SIDE_SELL', 'PoolState', 'TradeResult', 'WithdrawalResult',
    'pool_addresses', 'load_pool', 'create_curve_asset_unit',
    'apply_buy', 'apply_sell', 'compute_launch',
    'prepare_buy', 'compute_buy', 'prepare_sell', 'compute_sell',
    'prepare_withdrawal', 'compute_withdrawal',
    # Events
    'LaunchEvent', 'TradeEvent', 'WithdrawEvent', 'CurveEvent',
    'EventSink', 'EventRecorder',
    # Engine
    'BondingCurveEngine',
    # Analytics
    'price_curve', 'reserve_to_reach', 'market_cap_curve', 'sale_progress',
]

__version__ = '1.0.0'
