"""
Units module - Factory functions and lifecycle for curve-issued assets.

This module provides:
- Bonding-curve asset units carrying their pool state
- The pure buy/sell state machine
- compute_* builders for launch, trade and migration withdrawal

All unit factories and related functions are re-exported here for convenience.
"""

from .bonding_curve import (
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
