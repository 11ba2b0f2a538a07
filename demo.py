#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Bonding Curve from Launch to Migration

A pedagogical walk through the issuance engine. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3: Setup      - Reserve currency, funded traders, the issuer config
  4-6: Trading    - Launch, buys along the curve, sells and the gross counter
  7-8: Completion - The threshold clamp, inactive-pool gating
  9-10: Migration - Withdrawal to the owner, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from bondcurve import (
    Ledger, Authority, BondingCurveEngine, EventRecorder, TradeEvent,
    reserve_currency, create_issuer_config, spot_price,
    reserve_to_reach, sale_progress,
    PoolInactive, NotOwner, Unauthorized, SYSTEM_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Initial funding, in lamports
    trader_funding: int = 100 * 10**9

    # Curve parameters
    initial_virtual_reserve: int = 30 * 10**9
    initial_virtual_asset: int = 10**15

    # Trades
    first_buy: int = 5_000_000
    closing_buy: int = 20_000_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv
TRADERS = ("alice", "bob", "carol")


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_pool(engine: BondingCurveEngine, symbol: str):
    pool = engine.pool(symbol)
    print(f"virtual reserve:  {pool.virtual_reserve_liquidity:,}")
    print(f"virtual asset:    {pool.virtual_asset_liquidity:,}")
    print(f"units sold:       {pool.units_sold:,} / {pool.sale_threshold:,}")
    print(f"spot price:       {spot_price(pool):.3E} reserve per asset unit")
    print(f"progress:         {sale_progress(pool):.1%}")
    print(f"active:           {pool.is_active}")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_reserve_currency():
    step_header(1, "The Reserve Currency",
        "Register SOL and understand where value comes from.")

    print("""
    Every balance is an integer count of minimal units (lamports for SOL).
    Value enters the economy only through the SYSTEM wallet, whose balance
    goes negative by exactly the amount issued.
    """)

    ledger = Ledger("tutorial", initial_time=CONFIG.start_time, verbose=False)
    ledger.register_unit(reserve_currency("SOL", "Solana"))

    for trader in TRADERS:
        ledger.create_custody(trader, "SOL")
        ledger.move_value(SYSTEM_WALLET, trader, "SOL", CONFIG.trader_funding,
                          Authority.of(SYSTEM_WALLET))

    section_header("Balances")
    for wallet in (SYSTEM_WALLET,) + TRADERS:
        print(f"{wallet:>8}: {ledger.get_balance(wallet, 'SOL'):>16,} lamports")
    return ledger


def step_02_authority(ledger: Ledger):
    step_header(2, "Authority",
        "Nothing leaves a wallet unless the caller holds authority for it.")

    print(">>> ledger.move_value('alice', 'bob', 'SOL', 1, Authority.of('bob'))")
    try:
        ledger.move_value("alice", "bob", "SOL", 1, Authority.of("bob"))
    except Unauthorized as e:
        print(f"✗ Unauthorized: {e}")

    print(">>> ledger.move_value('alice', 'bob', 'SOL', 1, Authority.of('alice'))")
    ledger.move_value("alice", "bob", "SOL", 1, Authority.of("alice"))
    print("✓ applied")
    return ledger


def step_03_config(ledger: Ledger):
    step_header(3, "The Issuer Config",
        "One immutable config governs every pool the engine launches.")

    config = create_issuer_config(
        owner="treasury",
        sale_target="treasury",
        initial_virtual_reserve=CONFIG.initial_virtual_reserve,
        initial_virtual_asset=CONFIG.initial_virtual_asset,
    )
    print(config)
    engine = BondingCurveEngine(ledger, config, sink=EventRecorder())
    return engine


# ============================================================================
# PHASE 2: TRADING (Steps 4-6)
# ============================================================================

def step_04_launch(engine: BondingCurveEngine):
    step_header(4, "Launch",
        "Create a pool; the whole supply is minted into pool custody.")

    pool = engine.launch("PUMP", "Pump Coin", "https://example.com/pump.json", "alice")
    print(f"pool address:   {pool.pool_address}")
    print(f"reserve escrow: {pool.reserve_escrow}")
    print(f"pool holds:     {engine.ledger.get_balance(pool.pool_address, 'PUMP'):,} PUMP")
    show_pool(engine, "PUMP")
    return engine


def step_05_buy(engine: BondingCurveEngine):
    step_header(5, "Buying Along the Curve",
        "Equal reserve buys fewer units each time as the price rises.")

    ledger = engine.ledger
    for trader in TRADERS:
        ledger.advance_time(ledger.current_time + timedelta(minutes=5))
        result = engine.buy("PUMP", trader, CONFIG.first_buy)
        print(f"{trader:>6} paid {result.amount_in:,} for {result.amount_out:,} PUMP")

    section_header("Pool")
    show_pool(engine, "PUMP")
    return engine


def step_06_sell(engine: BondingCurveEngine):
    step_header(6, "Selling",
        "Sells pay out from the escrow and still count toward units_sold.")

    held = engine.ledger.get_balance("bob", "PUMP")
    before = engine.pool("PUMP").units_sold
    result = engine.sell("PUMP", "bob", held)
    print(f"bob sold {held:,} PUMP for {result.amount_out:,} lamports "
          f"(paid {CONFIG.first_buy:,})")
    print(f"units_sold: {before:,} → {engine.pool('PUMP').units_sold:,}")
    return engine


# ============================================================================
# PHASE 3: COMPLETION (Steps 7-8)
# ============================================================================

def step_07_threshold(engine: BondingCurveEngine):
    step_header(7, "The Threshold Clamp",
        "The buy that crosses the threshold is clamped and deactivates the pool.")

    pool = engine.pool("PUMP")
    print(f"reserve needed to complete (continuous estimate): "
          f"{reserve_to_reach(pool, pool.sale_threshold):,.0f}")

    result = engine.buy("PUMP", "carol", CONFIG.closing_buy)
    print(f"carol paid {result.amount_in:,} for {result.amount_out:,} PUMP "
          f"(deactivated={result.deactivated})")
    show_pool(engine, "PUMP")
    return engine


def step_08_gating(engine: BondingCurveEngine):
    step_header(8, "Inactive Pools",
        "A deactivated pool refuses every trade and moves nothing.")

    before = engine.ledger.snapshot()
    try:
        engine.buy("PUMP", "alice", 1_000)
    except PoolInactive as e:
        print(f"✗ PoolInactive: {e}")
    print(f"ledger unchanged: {engine.ledger.snapshot() == before}")
    return engine


# ============================================================================
# PHASE 4: MIGRATION (Steps 9-10)
# ============================================================================

def step_09_withdraw(engine: BondingCurveEngine):
    step_header(9, "Migration Withdrawal",
        "Only the owner can take the escrowed reserve and the unsold asset.")

    try:
        engine.withdraw("PUMP", "mallory")
    except NotOwner as e:
        print(f"✗ NotOwner: {e}")

    result = engine.withdraw("PUMP", "treasury")
    print(f"treasury received {result.reserve_amount:,} lamports "
          f"and {result.asset_amount:,} PUMP")
    return engine


def step_10_conservation(engine: BondingCurveEngine):
    step_header(10, "Conservation Proof",
        "Every unit is accounted for across all wallets.")

    ledger = engine.ledger
    report = ledger.verify_double_entry({"PUMP": engine.config.total_supply_to_mint})
    for symbol, supply in report['supplies'].items():
        print(f"{symbol:>5} circulating: {supply:,}")
    print(f"valid: {report['valid']}")

    trades = engine.sink.of_type(TradeEvent)
    print(f"\n{len(trades)} trades, {len(ledger.transaction_log)} transactions logged")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       BONDCURVE - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    ledger = step_01_reserve_currency()
    wait_for_enter()
    ledger = step_02_authority(ledger)
    wait_for_enter()
    engine = step_03_config(ledger)
    wait_for_enter()

    engine = step_04_launch(engine)
    wait_for_enter()
    engine = step_05_buy(engine)
    wait_for_enter()
    engine = step_06_sell(engine)
    wait_for_enter()

    engine = step_07_threshold(engine)
    wait_for_enter()
    engine = step_08_gating(engine)
    wait_for_enter()

    engine = step_09_withdraw(engine)
    wait_for_enter()
    step_10_conservation(engine)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See bondcurve/units/bonding_curve.py for the pure state machine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
