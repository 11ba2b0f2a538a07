"""
Curve Invariant Conformance Tests

INVARIANT: The constant product only drifts by integer rounding.

    buy  (r, a) → (r + in, a'),  a' = ⌊r·a / (r + in)⌋
        0 ≤ r·a − (r + in)·a'  <  r + in

    sell along the curve (r, a) → (r', a + in),  r' = ⌈r·a / (a + in)⌉
        0 ≤ (a + in)·r' − r·a  <  a + in

The default sell books (r, a) → (r + out, a − in) with out = r − ⌊r·a / (a + in)⌋.
That is a bookkeeping rule rather than a move along the curve, so only its
exact update is checked.

Also:
    units_sold never decreases
    units_sold + asset_out > threshold ⟹ asset_out = threshold − units_sold, pool inactive
    buy(in) then sell(out) along the curve returns at most in
"""

import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from bondcurve import (
    apply_buy, apply_sell, invariant, quote_asset_for_reserve,
    LedgerError, PoolInactive, InsufficientAssetBalance,
)
from tests.conftest import make_pool, make_engine


# =============================================================================
# STRATEGIES
# =============================================================================

@st.composite
def unclamped_pool(draw):
    """A pool whose threshold can never be hit, so trades are pure curve moves."""
    r = draw(st.integers(min_value=1, max_value=10**12))
    a = draw(st.integers(min_value=10**6, max_value=10**15))
    return make_pool(
        virtual_reserve_liquidity=r,
        virtual_asset_liquidity=a,
        sale_threshold=a,
    )


amounts = st.integers(min_value=1, max_value=10**12)


@st.composite
def round_trip_case(draw):
    """A pool and a buy size with r + reserve_in below a."""
    a = draw(st.integers(min_value=10**6, max_value=10**15))
    r = draw(st.integers(min_value=1, max_value=a // 2))
    reserve_in = draw(st.integers(min_value=1, max_value=a - r - 1))
    return make_pool(virtual_reserve_liquidity=r, virtual_asset_liquidity=a, sale_threshold=a), reserve_in


# =============================================================================
# PROPERTY TESTS
# =============================================================================

class TestConstantProduct:
    """Drift of r·a across single trades."""

    @given(unclamped_pool(), amounts)
    @settings(max_examples=200)
    def test_buy_never_increases_product(self, pool, reserve_in):
        """
        PROPERTY: A buy loses less than one divisor unit of product to the floor.
        """
        result = apply_buy(pool, reserve_in)
        assert not result.deactivated
        before, after = invariant(pool), invariant(result.pool)
        assert after <= before
        assert before - after < pool.virtual_reserve_liquidity + reserve_in

    @given(unclamped_pool(), amounts)
    @settings(max_examples=200)
    def test_sell_along_curve_rounds_toward_pool(self, pool, asset_in):
        """
        PROPERTY: A sell along the curve gains less than one divisor unit of
        product to the ceiling.
        """
        result = apply_sell(pool, asset_in, along_curve=True)
        before, after = invariant(pool), invariant(result.pool)
        assert after >= before
        assert after - before < pool.virtual_asset_liquidity + asset_in

    @given(unclamped_pool(), amounts)
    @settings(max_examples=200)
    def test_default_sell_booking(self, pool, asset_in):
        """
        PROPERTY: The default sell pays the floor quote, takes asset_in off the
        asset side and adds the payout to the reserve side.
        """
        assume(asset_in <= pool.virtual_asset_liquidity)
        r, a = pool.virtual_reserve_liquidity, pool.virtual_asset_liquidity
        result = apply_sell(pool, asset_in)
        assert result.amount_out == r - (r * a) // (a + asset_in)
        assert result.pool.virtual_asset_liquidity == a - asset_in
        assert result.pool.virtual_reserve_liquidity == r + result.amount_out
        assert result.pool.units_sold == pool.units_sold + asset_in

    def test_default_sell_cannot_exceed_asset_side(self):
        pool = make_pool(virtual_asset_liquidity=10**6, sale_threshold=10**6)
        with pytest.raises(InsufficientAssetBalance):
            apply_sell(pool, 10**6 + 1)


class TestRoundTrip:
    """Buying and immediately selling back along the curve never profits."""

    @given(round_trip_case())
    @settings(max_examples=200)
    def test_round_trip_bound(self, case):
        """
        PROPERTY: Selling along the curve returns reserve_out ≤ reserve_in
        while r + in stays below a.
        """
        pool, reserve_in = case
        bought = apply_buy(pool, reserve_in)
        assume(bought.amount_out > 0)
        sold = apply_sell(bought.pool, bought.amount_out, along_curve=True)
        assert sold.amount_out <= reserve_in

    def test_concrete_scenario(self):
        """r = 30, a = 10**15: one unit in, 32_258_064_516_130 out, at most one back."""
        pool = make_pool(sale_threshold=10**15)
        bought = apply_buy(pool, 1)
        assert bought.amount_out == 10**15 - (30 * 10**15) // 31 == 32_258_064_516_130
        assert not bought.deactivated

        assert apply_sell(bought.pool, bought.amount_out, along_curve=True).amount_out == 1

    def test_concrete_scenario_default_sell(self):
        """The floor quote pays 31 - floor(31 * 967741935483870 / 10**15) = 2 back."""
        bought = apply_buy(make_pool(sale_threshold=10**15), 1)
        sold = apply_sell(bought.pool, bought.amount_out)
        assert sold.amount_out == 2
        assert sold.pool.virtual_asset_liquidity == 967_741_935_483_870 - 32_258_064_516_130
        assert sold.pool.virtual_reserve_liquidity == 33

    def test_concrete_buy_clamps_at_default_threshold(self):
        """With the 800_000_000_000 threshold the same buy is clamped."""
        result = apply_buy(make_pool(), 1)
        assert result.amount_out == 800_000_000_000
        assert result.amount_in == 1
        assert result.deactivated and not result.pool.is_active


class TestThresholdClamp:
    """Output is clamped to what remains below the sale threshold."""

    @given(st.integers(min_value=10**6, max_value=10**18))
    @settings(max_examples=100)
    def test_one_unit_below_threshold(self, reserve_in):
        """
        PROPERTY: At units_sold = threshold − 1 any buy delivers exactly one unit
        and deactivates the pool, keeping all of reserve_in.
        """
        pool = make_pool(
            virtual_reserve_liquidity=30 * 10**9,
            virtual_asset_liquidity=10**15 - 799_999_999_999,
            units_sold=799_999_999_999,
        )
        assert quote_asset_for_reserve(pool, reserve_in) > 1
        result = apply_buy(pool, reserve_in)
        assert result.amount_out == 1
        assert result.deactivated and not result.pool.is_active
        assert result.amount_in == reserve_in
        assert result.pool.units_sold == 800_000_000_000

    @given(st.integers(min_value=10**6, max_value=10**12))
    @settings(max_examples=100)
    def test_refund_charges_no_more_than_offered(self, reserve_in):
        """
        PROPERTY: Under the refund policy, the charged reserve still buys the
        clamped amount and never exceeds what was offered.
        """
        pool = make_pool(
            virtual_reserve_liquidity=30 * 10**9,
            virtual_asset_liquidity=10**15 - 799_000_000_000,
            units_sold=799_000_000_000,
        )
        assume(quote_asset_for_reserve(pool, reserve_in) > pool.remaining_to_threshold)
        result = apply_buy(pool, reserve_in, refund_excess=True)
        assert 0 < result.amount_in <= reserve_in
        assert quote_asset_for_reserve(pool, result.amount_in) >= result.amount_out
        assert result.refunded == reserve_in - result.amount_in

    def test_exact_hit_stays_active(self):
        """Landing exactly on the threshold does not clamp; the next buy does."""
        pool = make_pool(sale_threshold=32_258_064_516_130)
        exact = apply_buy(pool, 1)
        assert exact.pool.units_sold == pool.sale_threshold
        assert exact.pool.is_active

        after = apply_buy(exact.pool, 1)
        assert after.amount_out == 0
        assert not after.pool.is_active
        with pytest.raises(PoolInactive):
            apply_buy(after.pool, 1)


class TestMonotonicity:
    """units_sold over engine-level trade sequences."""

    @given(st.lists(
        st.tuples(st.sampled_from(["buy", "sell"]), st.integers(min_value=1, max_value=15_000_000)),
        min_size=1, max_size=20,
    ))
    @settings(max_examples=50, deadline=None)
    def test_units_sold_never_decreases(self, trades):
        """
        PROPERTY: units_sold is non-decreasing across buys and sells, successful or not.
        """
        engine = make_engine()
        last = engine.pool("PUMP").units_sold
        for side, amount in trades:
            try:
                if side == "buy":
                    engine.buy("PUMP", "alice", amount)
                else:
                    held = engine.ledger.get_balance("alice", "PUMP")
                    engine.sell("PUMP", "alice", min(amount, held) or 1)
            except LedgerError:
                pass
            current = engine.pool("PUMP").units_sold
            assert current >= last
            last = current
