"""
test_pool_state.py - Unit tests for pool state, addressing and launch

Tests:
- derive_address / pool_addresses determinism
- PoolState <-> unit state round trip through the ledger
- load_pool validation
- compute_launch: unit creation, custody, mint
"""

import pytest

from bondcurve import (
    derive_address, pool_addresses, load_pool, compute_launch,
    create_curve_asset_unit, ExecuteResult, Authority,
    SYSTEM_WALLET, UNIT_TYPE_CURVE_ASSET, UnitNotRegistered,
)
from tests.conftest import make_pool


class TestAddressing:
    """Tests for deterministic custody addresses."""

    def test_deterministic(self):
        assert derive_address(("bonding_curve",), "PUMP") == derive_address(("bonding_curve",), "PUMP")

    def test_prefix_is_first_tag(self):
        assert derive_address(("bonding_curve", "v1"), "PUMP").startswith("bonding_curve:")

    def test_distinct_keys(self):
        assert derive_address(("bonding_curve",), "PUMP") != derive_address(("bonding_curve",), "DUMP")

    def test_distinct_tags(self):
        assert derive_address(("a",), "PUMP") != derive_address(("b",), "PUMP")

    def test_pool_and_escrow_differ(self):
        pool_address, escrow = pool_addresses("PUMP")
        assert pool_address != escrow
        assert escrow == derive_address(("bonding_curve_reserve_escrow",), pool_address)

    @pytest.mark.parametrize("tags,key", [((), "PUMP"), (("x",), ""), (("x",), "  ")])
    def test_invalid_inputs(self, tags, key):
        with pytest.raises(ValueError):
            derive_address(tags, key)


class TestPoolStateRoundTrip:
    """Tests for storing a PoolState as unit state."""

    def test_to_state_keys(self, small_pool):
        state = small_pool.to_state()
        assert state['virtual_reserve_liquidity'] == 30
        assert state['virtual_asset_liquidity'] == 10**15
        assert state['units_sold'] == 0
        assert state['is_active'] is True

    def test_load_after_register(self, reserve_ledger, small_pool):
        reserve_ledger.register_unit(create_curve_asset_unit("Pump Coin", small_pool, 6))
        assert load_pool(reserve_ledger, "PUMP") == small_pool

    def test_remaining_to_threshold(self):
        assert make_pool(units_sold=799_999_999_999).remaining_to_threshold == 1
        assert make_pool(units_sold=900_000_000_000).remaining_to_threshold == 0

    def test_load_unknown_unit(self, reserve_ledger):
        with pytest.raises(UnitNotRegistered):
            load_pool(reserve_ledger, "NOPE")

    def test_load_non_curve_unit(self, reserve_ledger):
        with pytest.raises(ValueError, match="not a bonding-curve asset"):
            load_pool(reserve_ledger, "SOL")

    def test_asset_unit_fields(self, small_pool):
        unit = create_curve_asset_unit("Pump Coin", small_pool, 6)
        assert unit.symbol == "PUMP"
        assert unit.unit_type == UNIT_TYPE_CURVE_ASSET
        assert unit.decimal_places == 6
        assert unit.min_balance == 0

    def test_asset_unit_requires_name(self, small_pool):
        with pytest.raises(ValueError):
            create_curve_asset_unit("", small_pool, 6)


class TestComputeLaunch:
    """Tests for the launch transaction builder."""

    def test_launch_contents(self, reserve_ledger, config):
        pending = compute_launch(reserve_ledger, config, "PUMP", "Pump Coin", "ipfs://pump", "alice")
        pool_address, escrow = pool_addresses("PUMP")

        assert [u.symbol for u in pending.units_to_create] == ["PUMP"]
        assert set(pending.custody_to_create) == {(pool_address, "PUMP"), (escrow, "SOL")}
        assert len(pending.moves) == 1
        mint = pending.moves[0]
        assert (mint.source, mint.dest, mint.quantity) == (SYSTEM_WALLET, pool_address, 10**15)

    def test_launch_seeds_pool_from_config(self, reserve_ledger, config):
        pending = compute_launch(reserve_ledger, config, "PUMP", "Pump Coin", "ipfs://pump", "alice")
        state = pending.units_to_create[0].state
        assert state['virtual_reserve_liquidity'] == config.initial_virtual_reserve
        assert state['virtual_asset_liquidity'] == config.initial_virtual_asset
        assert state['units_sold'] == 0
        assert state['sale_threshold'] == config.sale_threshold
        assert state['creator'] == "alice"
        assert state['uri'] == "ipfs://pump"

    def test_launch_executes(self, reserve_ledger, config):
        pending = compute_launch(reserve_ledger, config, "PUMP", "Pump Coin", "", "alice")
        assert reserve_ledger.execute(pending, Authority.of(SYSTEM_WALLET)) == ExecuteResult.APPLIED
        pool = load_pool(reserve_ledger, "PUMP")
        assert reserve_ledger.get_balance(pool.pool_address, "PUMP") == 10**15
        assert reserve_ledger.get_balance(pool.reserve_escrow, "SOL") == 0
        assert reserve_ledger.has_custody(pool.reserve_escrow, "SOL")

    def test_duplicate_symbol(self, engine, config):
        with pytest.raises(ValueError, match="already registered"):
            compute_launch(engine.ledger, config, "PUMP", "Again", "", "bob")

    def test_reserve_symbol_rejected(self, reserve_ledger, config):
        with pytest.raises(ValueError):
            compute_launch(reserve_ledger, config, "SOL", "Fake", "", "alice")

    def test_missing_reserve_unit(self, empty_ledger, config):
        with pytest.raises(UnitNotRegistered):
            compute_launch(empty_ledger, config, "PUMP", "Pump Coin", "", "alice")

    def test_launch_requires_system_authority(self, reserve_ledger, config):
        pending = compute_launch(reserve_ledger, config, "PUMP", "Pump Coin", "", "alice")
        assert reserve_ledger.execute(pending, Authority.of("alice")) == ExecuteResult.REJECTED
        assert not reserve_ledger.has_unit("PUMP")
