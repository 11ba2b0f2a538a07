"""
curve_analytics.py - Vectorised projections of a pool's bonding curve.

Continuous (float) approximations of the constant-product curve for charts
and dashboards. Settlement never uses these; it goes through pricing.py.

Projections assume the pool only receives buys from its current state, so
the invariant k = r * a stays fixed and, after x more units are bought,

    a(x) = a - x
    r(x) = k / (a - x)
    price(x) = r(x) / a(x) = k / (a - x)^2

Grids are absolute units_sold values and accept scalars or arrays.
"""

import numpy as np
from typing import Union


# Type alias for scalar or array inputs
Numeric = Union[float, np.ndarray]


def _additional_units(pool, units_sold_grid: Numeric) -> np.ndarray:
    """Convert absolute units_sold values into units bought from the current state."""
    grid = np.asarray(units_sold_grid, dtype=float)
    if not np.all(np.isfinite(grid)):
        raise ValueError("units_sold_grid must be finite")
    extra = grid - float(pool.units_sold)
    if np.any(extra < 0):
        raise ValueError("units_sold_grid cannot be below the pool's current units_sold")
    if np.any(extra >= float(pool.virtual_asset_liquidity)):
        raise ValueError("units_sold_grid would exhaust the asset liquidity")
    return extra


def price_curve(pool, units_sold_grid: Numeric) -> Numeric:
    """Spot price (reserve per asset, minimal units) at each units_sold value."""
    extra = _additional_units(pool, units_sold_grid)
    k = float(pool.virtual_reserve_liquidity) * float(pool.virtual_asset_liquidity)
    remaining = float(pool.virtual_asset_liquidity) - extra
    return k / (remaining * remaining)


def reserve_to_reach(pool, target_units_sold: Numeric) -> Numeric:
    """
    Reserve that buys must add to bring units_sold up to the target.

    Example:
        cost = reserve_to_reach(pool, pool.sale_threshold)  # complete the curve
    """
    extra = _additional_units(pool, target_units_sold)
    r = float(pool.virtual_reserve_liquidity)
    a = float(pool.virtual_asset_liquidity)
    return r * a / (a - extra) - r


def market_cap_curve(pool, units_sold_grid: Numeric, total_supply: int) -> Numeric:
    """Spot price times total supply at each units_sold value."""
    if total_supply <= 0:
        raise ValueError(f"total_supply must be positive, got {total_supply}")
    return price_curve(pool, units_sold_grid) * float(total_supply)


def sale_progress(pool) -> float:
    """Fraction of the sale threshold already sold, capped at 1."""
    return float(np.clip(pool.units_sold / pool.sale_threshold, 0.0, 1.0))
