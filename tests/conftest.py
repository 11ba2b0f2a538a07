"""
conftest.py - Shared pytest fixtures for bondcurve tests

Provides common fixtures used across unit, conformance and functional tests:
- Ledgers (empty, reserve-funded)
- Issuer configurations
- Engines with a launched pool and an event recorder
- Pool snapshots and FakeViews for pure-function tests
- Comparison utilities
"""

import pytest
from datetime import datetime

from bondcurve import (
    Ledger, BondingCurveEngine, EventRecorder, PoolState,
    IssuerConfig, create_issuer_config, reserve_currency, pool_addresses,
    Authority, UNIT_TYPE_CURVE_ASSET, SYSTEM_WALLET,
)

from tests.fake_view import FakeView, FakeUnit


ONE_SOL = 10**9


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_pool(**overrides) -> PoolState:
    """PoolState for pure-function tests; r=30, a=10**15 unless overridden."""
    pool_address, reserve_escrow = pool_addresses(overrides.get('asset', 'PUMP'))
    fields = dict(
        asset='PUMP',
        pool_address=pool_address,
        reserve_escrow=reserve_escrow,
        reserve_symbol='SOL',
        virtual_reserve_liquidity=30,
        virtual_asset_liquidity=10**15,
        units_sold=0,
        sale_threshold=800_000_000_000,
        is_active=True,
    )
    fields.update(overrides)
    return PoolState(**fields)


def pool_view(pool: PoolState, balances=None, **kwargs) -> FakeView:
    """FakeView holding `pool` as a registered curve asset."""
    return FakeView(
        balances=balances or {},
        states={pool.asset: pool.to_state(), pool.reserve_symbol: {}},
        units={pool.asset: FakeUnit(pool.asset, UNIT_TYPE_CURVE_ASSET)},
        **kwargs,
    )


def make_engine(
    refund_excess_at_threshold=False,
    curve_consistent_sell=False,
    traders=("alice", "bob", "carol"),
) -> BondingCurveEngine:
    """
    Engine with PUMP launched and each trader holding 1000 SOL.

    Plain function rather than a fixture so hypothesis tests get a fresh
    engine per example.
    """
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(reserve_currency("SOL", "Solana"))
    for wallet in traders:
        fund(ledger, wallet, "SOL", 1000 * ONE_SOL)
    config = create_issuer_config(
        owner="treasury",
        sale_target="treasury",
        initial_virtual_reserve=30 * ONE_SOL,
        initial_virtual_asset=10**15,
        refund_excess_at_threshold=refund_excess_at_threshold,
        curve_consistent_sell=curve_consistent_sell,
    )
    engine = BondingCurveEngine(ledger, config, sink=EventRecorder())
    engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    return engine


def fund(ledger: Ledger, wallet: str, unit: str, amount: int) -> None:
    """Issue `amount` of `unit` to `wallet` from SYSTEM_WALLET."""
    ledger.create_custody(wallet, unit)
    ledger.move_value(SYSTEM_WALLET, wallet, unit, amount, Authority.of(SYSTEM_WALLET))


def ledger_state_equals(ledger1: Ledger, ledger2: Ledger) -> bool:
    """Check if two ledgers have identical balances, custody and unit state."""
    return ledger1.snapshot() == ledger2.snapshot()


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", verbose=False, test_mode=True)


@pytest.fixture
def reserve_ledger():
    """Ledger with SOL registered and alice/bob/carol funded with 1000 SOL each."""
    ledger = Ledger("test", datetime(2025, 1, 1), verbose=False, test_mode=True)
    ledger.register_unit(reserve_currency("SOL", "Solana"))
    for wallet in ("alice", "bob", "carol"):
        fund(ledger, wallet, "SOL", 1000 * ONE_SOL)
    return ledger


# =============================================================================
# CONFIG FIXTURES
# =============================================================================

@pytest.fixture
def config() -> IssuerConfig:
    """30 SOL of virtual reserve against the full 10**15 supply."""
    return create_issuer_config(
        owner="treasury",
        sale_target="treasury",
        initial_virtual_reserve=30 * ONE_SOL,
        initial_virtual_asset=10**15,
    )


@pytest.fixture
def refund_config(config) -> IssuerConfig:
    """Same as config, but the deactivating buy only charges what it needs."""
    return create_issuer_config(
        owner=config.owner,
        sale_target=config.sale_target,
        initial_virtual_reserve=config.initial_virtual_reserve,
        initial_virtual_asset=config.initial_virtual_asset,
        refund_excess_at_threshold=True,
    )


@pytest.fixture
def curve_config(config) -> IssuerConfig:
    """Same as config, but sells move the pool back along the curve."""
    return create_issuer_config(
        owner=config.owner,
        sale_target=config.sale_target,
        initial_virtual_reserve=config.initial_virtual_reserve,
        initial_virtual_asset=config.initial_virtual_asset,
        curve_consistent_sell=True,
    )


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def engine(reserve_ledger, config):
    """Engine with an EventRecorder sink and the PUMP pool launched."""
    engine = BondingCurveEngine(reserve_ledger, config, sink=EventRecorder())
    engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    return engine


@pytest.fixture
def refund_engine(reserve_ledger, refund_config):
    """Engine using the refund policy, PUMP launched."""
    engine = BondingCurveEngine(reserve_ledger, refund_config, sink=EventRecorder())
    engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    return engine


@pytest.fixture
def curve_engine(reserve_ledger, curve_config):
    """Engine using curve-consistent sells, PUMP launched."""
    engine = BondingCurveEngine(reserve_ledger, curve_config, sink=EventRecorder())
    engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    return engine


@pytest.fixture
def completed_engine(engine):
    """Engine whose PUMP pool has sold out and deactivated."""
    engine.buy("PUMP", "alice", 10_000_000)
    engine.buy("PUMP", "bob", 10_000_000)
    result = engine.buy("PUMP", "carol", 10_000_000)
    assert result.deactivated
    return engine


# =============================================================================
# POOL FIXTURES
# =============================================================================

@pytest.fixture
def small_pool() -> PoolState:
    """r=30, a=10**15, nothing sold."""
    return make_pool()
