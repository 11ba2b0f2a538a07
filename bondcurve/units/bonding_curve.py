"""
bonding_curve.py - Bonding-Curve Pools for Asset Issuance

This module provides pool creation, trading and migration withdrawal using a
pure function architecture with explicit inputs.

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES (explicit inputs):
   - PoolState: Immutable snapshot of one pool (liquidity, counters, addresses)
   - TradeResult: Outcome of a buy or sell against a PoolState
   - WithdrawalResult: Amounts released to the owner after the curve closes

2. PURE STATE MACHINE (apply_*):
   - apply_buy / apply_sell take a PoolState and return a TradeResult
   - No LedgerView, no custody, only the curve arithmetic and gating

3. ADAPTER FUNCTIONS (load_pool):
   - Extract pool state from LedgerView once
   - The ONLY place that reads pool state from the ledger

4. CONVENIENCE FUNCTIONS (compute_*):
   - Combine loading + state machine + custody moves into a single
     PendingTransaction, so custody and pool state commit together
   - prepare_* variants also return the typed result for the caller

Pool lifecycle:
    launch  ->  ACTIVE  --(units_sold crosses sale_threshold)-->  INACTIVE
    INACTIVE pools accept no trades; the owner withdraws the escrowed
    reserve and the unsold asset for migration.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitStateChange,
    TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_CURVE_ASSET, POOL_SEED, RESERVE_ESCROW_SEED,
    CalculationError, InsufficientAssetBalance, InsufficientReserveBalance,
    NotOwner, PoolInactive, PoolStillActive, UnitNotRegistered,
    build_transaction, derive_address, _freeze_state,
)
from ..config import IssuerConfig
from ..pricing import (
    checked_add, checked_sub,
    quote_asset_for_reserve, quote_reserve_for_asset, reserve_for_exact_asset,
)


SIDE_BUY = "BUY"
SIDE_SELL = "SELL"


# ============================================================================
# FROZEN DATACLASSES - Explicit Inputs for Pure Functions
# ============================================================================

@dataclass(frozen=True, slots=True)
class PoolState:
    """
    Immutable snapshot of a single bonding-curve pool.

    Liquidity is virtual: it prices trades but is not the custody balance.
    `units_sold` counts gross volume (buys and sells) and only ever grows.
    """
    asset: str                       # Asset unit symbol, fixed at launch
    pool_address: str                # Custody location of unsold asset
    reserve_escrow: str              # Custody location of received reserve
    reserve_symbol: str              # Reserve currency unit
    virtual_reserve_liquidity: int   # r
    virtual_asset_liquidity: int     # a
    units_sold: int                  # Cumulative units through the curve
    sale_threshold: int              # units_sold cap that ends the curve
    is_active: bool = True
    sale_target: str = ""
    creator: str = ""
    uri: str = ""

    def to_state(self) -> Dict[str, Any]:
        """Inverse of load_pool(): the unit state dict stored in the ledger."""
        return {
            'asset': self.asset,
            'pool_address': self.pool_address,
            'reserve_escrow': self.reserve_escrow,
            'reserve_symbol': self.reserve_symbol,
            'virtual_reserve_liquidity': self.virtual_reserve_liquidity,
            'virtual_asset_liquidity': self.virtual_asset_liquidity,
            'units_sold': self.units_sold,
            'sale_threshold': self.sale_threshold,
            'is_active': self.is_active,
            'sale_target': self.sale_target,
            'creator': self.creator,
            'uri': self.uri,
        }

    @property
    def remaining_to_threshold(self) -> int:
        return max(self.sale_threshold - self.units_sold, 0)


@dataclass(frozen=True, slots=True)
class TradeResult:
    """
    Outcome of one trade against a pool.

    amount_in is what the pool takes from the trader; amount_out is what the
    trader receives. `refunded` is reserve offered on a buy but not taken
    (only non-zero with the refund policy at the threshold).
    """
    side: str
    amount_in: int
    amount_out: int
    pool: PoolState
    deactivated: bool = False
    refunded: int = 0


@dataclass(frozen=True, slots=True)
class WithdrawalResult:
    """Amounts released to the owner of a deactivated pool."""
    asset: str
    owner: str
    reserve_amount: int
    asset_amount: int


# ============================================================================
# ADAPTER FUNCTIONS
# ============================================================================

def pool_addresses(asset: str) -> Tuple[str, str]:
    """Derive (pool_address, reserve_escrow) for an asset symbol."""
    pool_address = derive_address((POOL_SEED,), asset)
    return pool_address, derive_address((RESERVE_ESCROW_SEED,), pool_address)


def load_pool(view: LedgerView, symbol: str) -> PoolState:
    """
    Load a pool from ledger state as a frozen PoolState.

    Raises:
        UnitNotRegistered: If no unit with this symbol exists
        ValueError: If the unit is not a bonding-curve asset
    """
    if not view.has_unit(symbol):
        raise UnitNotRegistered(f"Unit {symbol} not registered")
    unit = view.get_unit(symbol)
    if unit.unit_type != UNIT_TYPE_CURVE_ASSET:
        raise ValueError(f"{symbol} is not a bonding-curve asset ({unit.unit_type})")
    raw = view.get_unit_state(symbol)
    return PoolState(
        asset=raw['asset'],
        pool_address=raw['pool_address'],
        reserve_escrow=raw['reserve_escrow'],
        reserve_symbol=raw['reserve_symbol'],
        virtual_reserve_liquidity=raw['virtual_reserve_liquidity'],
        virtual_asset_liquidity=raw['virtual_asset_liquidity'],
        units_sold=raw['units_sold'],
        sale_threshold=raw['sale_threshold'],
        is_active=raw.get('is_active', True),
        sale_target=raw.get('sale_target', ''),
        creator=raw.get('creator', ''),
        uri=raw.get('uri', ''),
    )


def create_curve_asset_unit(name: str, pool: PoolState, decimal_places: int) -> Unit:
    """
    Create the asset Unit for a pool, carrying the pool state.

    Args:
        name: Human-readable asset name
        pool: Seeded pool state (stored as the unit's state)
        decimal_places: Fractional digits of one whole asset unit
    """
    if not name or not name.strip():
        raise ValueError("name cannot be empty")
    return Unit(
        symbol=pool.asset,
        name=name,
        unit_type=UNIT_TYPE_CURVE_ASSET,
        min_balance=0,
        decimal_places=decimal_places,
        _frozen_state=_freeze_state(pool.to_state()),
    )


# ============================================================================
# PURE STATE MACHINE
# ============================================================================

def apply_buy(pool: PoolState, reserve_in: int, refund_excess: bool = False) -> TradeResult:
    """
    Buy asset with `reserve_in` reserve units.

    If the quote would take units_sold past the sale threshold, the output is
    clamped to the remaining allowance and the pool deactivates. The buyer
    still pays the full reserve_in unless `refund_excess` is set, in which
    case only the reserve needed for the clamped amount is charged.

    Raises:
        PoolInactive: pool.is_active is False
        InvalidAmount: reserve_in is not a positive u64 integer
        InsufficientAssetBalance: asset liquidity cannot cover the output
        ArithmeticOverflow: a counter leaves the u64 range
    """
    if not pool.is_active:
        raise PoolInactive(f"pool {pool.asset} is not active")

    asset_out = quote_asset_for_reserve(pool, reserve_in)
    charged = reserve_in
    deactivated = False

    if checked_add(pool.units_sold, asset_out) > pool.sale_threshold:
        asset_out = checked_sub(pool.sale_threshold, pool.units_sold, CalculationError)
        deactivated = True
        if refund_excess:
            charged = reserve_for_exact_asset(pool, asset_out)

    new_pool = replace(
        pool,
        virtual_asset_liquidity=checked_sub(
            pool.virtual_asset_liquidity, asset_out, InsufficientAssetBalance
        ),
        virtual_reserve_liquidity=checked_add(pool.virtual_reserve_liquidity, charged),
        units_sold=checked_add(pool.units_sold, asset_out),
        is_active=not deactivated,
    )
    return TradeResult(
        side=SIDE_BUY,
        amount_in=charged,
        amount_out=asset_out,
        pool=new_pool,
        deactivated=deactivated,
        refunded=reserve_in - charged,
    )


def apply_sell(pool: PoolState, asset_in: int, along_curve: bool = False) -> TradeResult:
    """
    Sell `asset_in` asset units back to the curve.

    Sells are not clamped and never deactivate the pool. units_sold grows by
    asset_in as well (gross volume).

    By default the payout is the floor quote and the pool books the sell as
    virtual_asset_liquidity -= asset_in, virtual_reserve_liquidity += reserve_out.
    With `along_curve` the payout uses the ceiling quote and the pool moves
    back down the curve instead: the asset side grows by asset_in and the
    reserve side shrinks by reserve_out, keeping r * a within rounding of k.

    Raises:
        PoolInactive: pool.is_active is False
        InvalidAmount: asset_in is not a positive u64 integer
        InsufficientAssetBalance: asset_in exceeds asset liquidity (default)
        InsufficientReserveBalance: reserve liquidity cannot cover the payout
            (along_curve)
        ArithmeticOverflow: a counter leaves the u64 range
    """
    if not pool.is_active:
        raise PoolInactive(f"pool {pool.asset} is not active")

    reserve_out = quote_reserve_for_asset(pool, asset_in, round_up=along_curve)

    if along_curve:
        asset_liquidity = checked_add(pool.virtual_asset_liquidity, asset_in)
        reserve_liquidity = checked_sub(
            pool.virtual_reserve_liquidity, reserve_out, InsufficientReserveBalance
        )
    else:
        asset_liquidity = checked_sub(
            pool.virtual_asset_liquidity, asset_in, InsufficientAssetBalance
        )
        reserve_liquidity = checked_add(pool.virtual_reserve_liquidity, reserve_out)

    new_pool = replace(
        pool,
        virtual_asset_liquidity=asset_liquidity,
        virtual_reserve_liquidity=reserve_liquidity,
        units_sold=checked_add(pool.units_sold, asset_in),
    )
    return TradeResult(
        side=SIDE_SELL,
        amount_in=asset_in,
        amount_out=reserve_out,
        pool=new_pool,
    )


# ============================================================================
# LEDGER COMPOSITION
# ============================================================================

def _require_balance(view: LedgerView, wallet: str, unit: str, needed: int, error) -> None:
    available = view.get_balance(wallet, unit)
    if available < needed:
        raise error(f"{wallet} holds {available} {unit}, needs {needed}")


def _custody_needed(view: LedgerView, pairs: List[Tuple[str, str]]) -> Tuple[Tuple[str, str], ...]:
    return tuple(pair for pair in pairs if not view.has_custody(*pair))


def compute_launch(
    view: LedgerView,
    config: IssuerConfig,
    symbol: str,
    name: str,
    uri: str,
    payer: str,
) -> PendingTransaction:
    """
    Launch a new pool for `symbol`.

    Creates the asset unit with the pool state seeded from the config, opens
    custody for the pool and its reserve escrow, and mints
    config.total_supply_to_mint from SYSTEM_WALLET into the pool.

    Raises:
        ValueError: symbol is empty, already registered, or the reserve symbol
        UnitNotRegistered: the reserve currency is not registered
    """
    if not symbol or not symbol.strip():
        raise ValueError("symbol cannot be empty")
    if not payer or not payer.strip():
        raise ValueError("payer cannot be empty")
    if symbol == config.reserve_symbol:
        raise ValueError(f"{symbol} is the reserve currency")
    if view.has_unit(symbol):
        raise ValueError(f"Unit {symbol} already registered")
    if not view.has_unit(config.reserve_symbol):
        raise UnitNotRegistered(f"Unit {config.reserve_symbol} not registered")

    pool_address, reserve_escrow = pool_addresses(symbol)
    pool = PoolState(
        asset=symbol,
        pool_address=pool_address,
        reserve_escrow=reserve_escrow,
        reserve_symbol=config.reserve_symbol,
        virtual_reserve_liquidity=config.initial_virtual_reserve,
        virtual_asset_liquidity=config.initial_virtual_asset,
        units_sold=0,
        sale_threshold=config.sale_threshold,
        is_active=True,
        sale_target=config.sale_target,
        creator=payer,
        uri=uri,
    )
    unit = create_curve_asset_unit(name, pool, config.asset_decimals)

    moves = [
        Move(
            quantity=config.total_supply_to_mint,
            unit_symbol=symbol,
            source=SYSTEM_WALLET,
            dest=pool_address,
            contract_id=f'launch_{symbol}_mint',
        ),
    ]
    origin = TransactionOrigin(OriginType.LAUNCH, payer, symbol, "LAUNCH")
    return build_transaction(
        view, moves, origin=origin,
        units_to_create=(unit,),
        custody_to_create=((pool_address, symbol), (reserve_escrow, config.reserve_symbol)),
    )


def prepare_buy(
    view: LedgerView,
    symbol: str,
    buyer: str,
    reserve_in: int,
    refund_excess: bool = False,
) -> Tuple[TradeResult, PendingTransaction]:
    """
    Price a buy and build its transaction.

    Moves: buyer -> reserve escrow (charged reserve) and pool -> buyer
    (asset_out). Zero-quantity moves are omitted; a clamped buy with nothing
    left to sell only records the deactivation.

    Raises:
        The apply_buy errors, plus InsufficientReserveBalance when the buyer
        cannot pay and InsufficientAssetBalance when pool custody is short.
    """
    pool = load_pool(view, symbol)
    result = apply_buy(pool, reserve_in, refund_excess)

    _require_balance(view, buyer, pool.reserve_symbol, result.amount_in,
                     InsufficientReserveBalance)
    _require_balance(view, pool.pool_address, symbol, result.amount_out,
                     InsufficientAssetBalance)

    moves = []
    if result.amount_in > 0:
        moves.append(Move(result.amount_in, pool.reserve_symbol, buyer,
                          pool.reserve_escrow, f'buy_{symbol}_reserve'))
    if result.amount_out > 0:
        moves.append(Move(result.amount_out, symbol, pool.pool_address,
                          buyer, f'buy_{symbol}_asset'))

    state_changes = [UnitStateChange(symbol, pool.to_state(), result.pool.to_state())]
    origin = TransactionOrigin(OriginType.CONTRACT, buyer, symbol, SIDE_BUY)
    custody = _custody_needed(view, [(buyer, symbol)] if result.amount_out > 0 else [])
    pending = build_transaction(view, moves, state_changes, origin,
                                custody_to_create=custody)
    return result, pending


def compute_buy(
    view: LedgerView,
    symbol: str,
    buyer: str,
    reserve_in: int,
    refund_excess: bool = False,
) -> PendingTransaction:
    """Buy transaction for `reserve_in` reserve units. See prepare_buy()."""
    return prepare_buy(view, symbol, buyer, reserve_in, refund_excess)[1]


def prepare_sell(
    view: LedgerView,
    symbol: str,
    seller: str,
    asset_in: int,
    along_curve: bool = False,
) -> Tuple[TradeResult, PendingTransaction]:
    """
    Price a sell and build its transaction.

    Moves: seller -> pool (asset_in) and reserve escrow -> seller
    (reserve_out, omitted when the quote rounds to zero).

    Raises:
        The apply_sell errors, plus InsufficientAssetBalance when the seller
        holds too little and InsufficientReserveBalance when the escrow is short.
    """
    pool = load_pool(view, symbol)
    result = apply_sell(pool, asset_in, along_curve)

    _require_balance(view, seller, symbol, asset_in, InsufficientAssetBalance)
    _require_balance(view, pool.reserve_escrow, pool.reserve_symbol, result.amount_out,
                     InsufficientReserveBalance)

    moves = [Move(asset_in, symbol, seller, pool.pool_address, f'sell_{symbol}_asset')]
    if result.amount_out > 0:
        moves.append(Move(result.amount_out, pool.reserve_symbol, pool.reserve_escrow,
                          seller, f'sell_{symbol}_reserve'))

    state_changes = [UnitStateChange(symbol, pool.to_state(), result.pool.to_state())]
    origin = TransactionOrigin(OriginType.CONTRACT, seller, symbol, SIDE_SELL)
    custody = _custody_needed(
        view, [(seller, pool.reserve_symbol)] if result.amount_out > 0 else []
    )
    pending = build_transaction(view, moves, state_changes, origin,
                                custody_to_create=custody)
    return result, pending


def compute_sell(
    view: LedgerView,
    symbol: str,
    seller: str,
    asset_in: int,
    along_curve: bool = False,
) -> PendingTransaction:
    """Sell transaction for `asset_in` asset units. See prepare_sell()."""
    return prepare_sell(view, symbol, seller, asset_in, along_curve)[1]


def prepare_withdrawal(
    view: LedgerView,
    config: IssuerConfig,
    symbol: str,
    caller: str,
) -> Tuple[WithdrawalResult, PendingTransaction]:
    """
    Release a deactivated pool's escrowed reserve and unsold asset to the owner.

    Preconditions are checked in order: caller is the owner, the escrow holds
    reserve, the pool is inactive. The owner receives the escrow's entire
    reserve balance and virtual_asset_liquidity - units_sold of the asset.
    Pool state is not changed, so a second withdrawal finds the escrow empty.

    Raises:
        NotOwner: caller is not config.owner
        InsufficientReserveBalance: escrow holds no reserve
        PoolStillActive: the pool has not deactivated
        InsufficientAssetBalance: units_sold exceeds asset liquidity, or pool
            custody holds less than the unsold amount
    """
    if caller != config.owner:
        raise NotOwner(f"{caller} is not the owner")
    pool = load_pool(view, symbol)

    reserve_amount = view.get_balance(pool.reserve_escrow, pool.reserve_symbol)
    if reserve_amount <= 0:
        raise InsufficientReserveBalance(f"escrow for {symbol} holds no {pool.reserve_symbol}")
    if pool.is_active:
        raise PoolStillActive(f"pool {symbol} is still active")

    asset_amount = checked_sub(pool.virtual_asset_liquidity, pool.units_sold,
                               InsufficientAssetBalance)
    _require_balance(view, pool.pool_address, symbol, asset_amount, InsufficientAssetBalance)

    owner = config.owner
    moves = [Move(reserve_amount, pool.reserve_symbol, pool.reserve_escrow,
                  owner, f'withdraw_{symbol}_reserve')]
    if asset_amount > 0:
        moves.append(Move(asset_amount, symbol, pool.pool_address,
                          owner, f'withdraw_{symbol}_asset'))

    origin = TransactionOrigin(OriginType.MIGRATION, owner, symbol, "WITHDRAW")
    custody = _custody_needed(view, [(owner, pool.reserve_symbol), (owner, symbol)])
    pending = build_transaction(view, moves, origin=origin, custody_to_create=custody)
    return WithdrawalResult(symbol, owner, reserve_amount, asset_amount), pending


def compute_withdrawal(
    view: LedgerView,
    config: IssuerConfig,
    symbol: str,
    caller: str,
) -> PendingTransaction:
    """Withdrawal transaction for a deactivated pool. See prepare_withdrawal()."""
    return prepare_withdrawal(view, config, symbol, caller)[1]
