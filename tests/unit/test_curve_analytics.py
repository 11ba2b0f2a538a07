"""
test_curve_analytics.py - Unit tests for vectorised curve projections
"""

import pytest
import numpy as np

from bondcurve import price_curve, reserve_to_reach, market_cap_curve, sale_progress, spot_price
from tests.conftest import make_pool


@pytest.fixture
def pool():
    """Engine-sized pool: 30 SOL virtual reserve, 10**15 asset."""
    return make_pool(virtual_reserve_liquidity=30 * 10**9)


class TestPriceCurve:

    def test_matches_spot_price_at_current_state(self, pool):
        assert price_curve(pool, 0) == pytest.approx(float(spot_price(pool)))

    def test_increasing(self, pool):
        grid = np.linspace(0, pool.sale_threshold, 50)
        prices = price_curve(pool, grid)
        assert prices.shape == (50,)
        assert np.all(np.diff(prices) > 0)

    def test_grid_below_units_sold(self):
        pool = make_pool(units_sold=1_000)
        with pytest.raises(ValueError, match="below"):
            price_curve(pool, 999)

    def test_grid_exhausts_liquidity(self, pool):
        with pytest.raises(ValueError, match="exhaust"):
            price_curve(pool, pool.virtual_asset_liquidity)

    def test_non_finite_grid(self, pool):
        with pytest.raises(ValueError, match="finite"):
            price_curve(pool, np.array([0.0, np.nan]))


class TestReserveToReach:

    def test_zero_at_current_state(self, pool):
        assert reserve_to_reach(pool, pool.units_sold) == pytest.approx(0.0, abs=1e-3)

    def test_cost_to_complete(self, pool):
        # 30e9 * (1 / 0.9992 - 1)
        assert reserve_to_reach(pool, pool.sale_threshold) == pytest.approx(24_019_215.37, rel=1e-9)

    def test_tracks_settled_buys(self):
        # two settled buys of 10_000_000 reach units_sold 666_222_518_322
        start = make_pool(virtual_reserve_liquidity=30 * 10**9)
        projected = reserve_to_reach(start, 666_222_518_322)
        assert projected == pytest.approx(20_000_000, rel=1e-6)


class TestMarketCapAndProgress:

    def test_market_cap(self, pool):
        cap = market_cap_curve(pool, 0, 10**15)
        assert cap == pytest.approx(30 * 10**9)

    def test_market_cap_requires_supply(self, pool):
        with pytest.raises(ValueError):
            market_cap_curve(pool, 0, 0)

    @pytest.mark.parametrize("units_sold,expected", [
        (0, 0.0),
        (400_000_000_000, 0.5),
        (800_000_000_000, 1.0),
        (900_000_000_000, 1.0),
    ])
    def test_sale_progress(self, units_sold, expected):
        assert sale_progress(make_pool(units_sold=units_sold)) == expected
