"""
engine.py - Bonding-Curve Engine

Orchestrates launch, trading and migration withdrawal for every pool that
shares one IssuerConfig.

Each operation:
1. Builds a PendingTransaction with the pure compute functions
   (curve errors are raised here, before anything moves)
2. Executes it under an Authority scoped to the operation
3. Emits an event to the sink once the ledger has committed

The transaction log is the audit trail; the sink is for observers.
"""

from __future__ import annotations
from typing import Dict, List, Optional

from .core import (
    Authority, PendingTransaction, Transaction,
    ExecuteResult, LedgerError, SYSTEM_WALLET, UNIT_TYPE_CURVE_ASSET,
)
from .config import IssuerConfig
from .ledger import Ledger
from .events import EventSink, LaunchEvent, TradeEvent, WithdrawEvent
from .pricing import quote_asset_for_reserve, quote_reserve_for_asset
from .units.bonding_curve import (
    PoolState, TradeResult, WithdrawalResult,
    load_pool, compute_launch, prepare_buy, prepare_sell, prepare_withdrawal,
)


class BondingCurveEngine:
    """
    Issuance and exchange engine for bonding-curve pools.

    Features:
    - One IssuerConfig governs all pools launched through the engine
    - Trades settle atomically: custody moves and pool state commit together
    - No ambient authority: each execution names exactly who may be debited
    - Optional event sink, called after each committed operation

    Example:
        engine = BondingCurveEngine(ledger, config)
        engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
        result = engine.buy("PUMP", "bob", 1_000_000_000)
        engine.sell("PUMP", "bob", result.amount_out // 2)
    """

    def __init__(
        self,
        ledger: Ledger,
        config: IssuerConfig,
        sink: Optional[EventSink] = None,
    ):
        """
        Initialize the engine.

        Args:
            ledger: The custody ledger to operate on
            config: Protocol parameters shared by every pool
            sink: Callable receiving LaunchEvent/TradeEvent/WithdrawEvent
        """
        self.ledger = ledger
        self.config = config
        self.sink = sink
        self.verbose = ledger.verbose

    # ========================================================================
    # OPERATIONS
    # ========================================================================

    def launch(self, symbol: str, name: str, uri: str, payer: str) -> PoolState:
        """
        Create a pool for a new asset and mint its supply into pool custody.

        Returns:
            The seeded PoolState
        """
        pending = compute_launch(self.ledger, self.config, symbol, name, uri, payer)
        self._execute(pending, Authority.of(SYSTEM_WALLET), f"launch {symbol}")
        pool = self.pool(symbol)

        if self.verbose:
            print(f"[LAUNCH] {symbol} pool={pool.pool_address} "
                  f"r={pool.virtual_reserve_liquidity} a={pool.virtual_asset_liquidity}")
        self._emit(LaunchEvent(
            asset=symbol,
            pool_address=pool.pool_address,
            virtual_reserve_liquidity=pool.virtual_reserve_liquidity,
            virtual_asset_liquidity=pool.virtual_asset_liquidity,
            total_minted=self.config.total_supply_to_mint,
            timestamp=self.ledger.current_time,
            name=name,
            uri=uri,
        ))
        return pool

    def buy(self, symbol: str, buyer: str, reserve_in: int) -> TradeResult:
        """
        Buy asset from the pool with `reserve_in` reserve units.

        Raises:
            PoolInactive, InvalidAmount, ArithmeticOverflow,
            InsufficientAssetBalance, InsufficientReserveBalance,
            LedgerError if the ledger rejects the transaction
        """
        result, pending = prepare_buy(
            self.ledger, symbol, buyer, reserve_in,
            refund_excess=self.config.refund_excess_at_threshold,
        )
        authority = Authority.of(buyer).join(Authority.for_pool(result.pool))
        self._execute(pending, authority, f"buy {symbol}")

        if self.verbose:
            flag = " (curve complete)" if result.deactivated else ""
            print(f"[BUY] {buyer} paid {result.amount_in} {result.pool.reserve_symbol} "
                  f"for {result.amount_out} {symbol}{flag}")
        self._emit_trade(buyer, result)
        return result

    def sell(self, symbol: str, seller: str, asset_in: int) -> TradeResult:
        """
        Sell `asset_in` asset units back to the pool.

        Raises:
            PoolInactive, InvalidAmount, ArithmeticOverflow,
            InsufficientAssetBalance, InsufficientReserveBalance,
            LedgerError if the ledger rejects the transaction
        """
        result, pending = prepare_sell(
            self.ledger, symbol, seller, asset_in,
            along_curve=self.config.curve_consistent_sell,
        )
        authority = Authority.of(seller).join(Authority.for_pool(result.pool))
        self._execute(pending, authority, f"sell {symbol}")

        if self.verbose:
            print(f"[SELL] {seller} sold {result.amount_in} {symbol} "
                  f"for {result.amount_out} {result.pool.reserve_symbol}")
        self._emit_trade(seller, result)
        return result

    def withdraw(self, symbol: str, caller: str) -> WithdrawalResult:
        """
        Move a deactivated pool's reserve and unsold asset to the owner.

        Raises:
            NotOwner, InsufficientReserveBalance, PoolStillActive,
            InsufficientAssetBalance,
            LedgerError if the ledger rejects the transaction
        """
        result, pending = prepare_withdrawal(self.ledger, self.config, symbol, caller)
        self._execute(pending, Authority.for_pool(self.pool(symbol)), f"withdraw {symbol}")

        if self.verbose:
            print(f"[WITHDRAW] {result.owner} received {result.reserve_amount} reserve "
                  f"and {result.asset_amount} {symbol}")
        self._emit(WithdrawEvent(
            asset=symbol,
            owner=result.owner,
            reserve_amount=result.reserve_amount,
            asset_amount=result.asset_amount,
            timestamp=self.ledger.current_time,
        ))
        return result

    # ========================================================================
    # QUERY METHODS
    # ========================================================================

    def quote_buy(self, symbol: str, reserve_in: int) -> int:
        """Unclamped asset output for a buy of `reserve_in` at current state."""
        return quote_asset_for_reserve(self.pool(symbol), reserve_in)

    def quote_sell(self, symbol: str, asset_in: int) -> int:
        """Reserve output for a sell of `asset_in` at current state."""
        return quote_reserve_for_asset(
            self.pool(symbol), asset_in, round_up=self.config.curve_consistent_sell
        )

    def pool(self, symbol: str) -> PoolState:
        return load_pool(self.ledger, symbol)

    def pools(self) -> Dict[str, PoolState]:
        """All pools on the ledger, keyed by asset symbol."""
        return {
            symbol: load_pool(self.ledger, symbol)
            for symbol in self.ledger.list_units()
            if self.ledger.get_unit(symbol).unit_type == UNIT_TYPE_CURVE_ASSET
        }

    def active_pools(self) -> List[str]:
        return [symbol for symbol, pool in self.pools().items() if pool.is_active]

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _execute(self, pending: PendingTransaction, authority: Authority, label: str) -> Transaction:
        exec_result = self.ledger.execute(pending, authority)
        if exec_result != ExecuteResult.APPLIED:
            raise LedgerError(
                f"{label} {exec_result.value}: {self.ledger.last_rejection or pending.intent_id}"
            )
        return self.ledger.transaction_log[-1]

    def _emit_trade(self, trader: str, result: TradeResult) -> None:
        self._emit(TradeEvent(
            asset=result.pool.asset,
            side=result.side,
            trader=trader,
            amount_in=result.amount_in,
            amount_out=result.amount_out,
            virtual_reserve_liquidity=result.pool.virtual_reserve_liquidity,
            virtual_asset_liquidity=result.pool.virtual_asset_liquidity,
            units_sold=result.pool.units_sold,
            deactivated=result.deactivated,
            timestamp=self.ledger.current_time,
        ))

    def _emit(self, event) -> None:
        if self.sink is not None:
            self.sink(event)
