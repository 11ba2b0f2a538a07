"""
pricing.py - Constant-product pricing over virtual liquidity.

Pure functions only. A pool here is anything with integer attributes
`virtual_reserve_liquidity` and `virtual_asset_liquidity` (normally a
PoolState). All arithmetic is integer and checked against the u64 range;
the product k = r * a is formed in a 128-bit-wide intermediate.

Both legs floor the new opposite side:
    buy:  new_asset   = floor(k / (r + reserve_in))
    sell: new_reserve = floor(k / (a + asset_in))
so a buy never hands out a fractional unit. A sell quoted with
round_up=True takes the ceiling instead and never pays one out either.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Type

from .core import (
    U64_MAX, U128_MAX,
    ArithmeticOverflow, CalculationError, InvalidAmount,
    InsufficientAssetBalance,
)


# ============================================================================
# CHECKED ARITHMETIC
# ============================================================================

def checked_add(x: int, y: int) -> int:
    total = x + y
    if total > U64_MAX:
        raise ArithmeticOverflow(f"{x} + {y} exceeds u64")
    return total


def checked_sub(x: int, y: int, error: Type[Exception] = ArithmeticOverflow) -> int:
    """x - y, raising `error` if the result would be negative."""
    if y > x:
        raise error(f"{x} - {y} underflows")
    return x - y


def checked_mul(x: int, y: int, bound: int = U64_MAX) -> int:
    product = x * y
    if product > bound:
        raise ArithmeticOverflow(f"{x} * {y} exceeds {bound.bit_length()}-bit range")
    return product


def _validate_amount(amount: Any, name: str) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidAmount(f"{name} must be int, got {type(amount).__name__}")
    if amount <= 0:
        raise InvalidAmount(f"{name} must be positive, got {amount}")
    if amount > U64_MAX:
        raise InvalidAmount(f"{name} exceeds u64 range: {amount}")


# ============================================================================
# QUOTES
# ============================================================================

def invariant(pool) -> int:
    """k = r * a."""
    return checked_mul(pool.virtual_reserve_liquidity, pool.virtual_asset_liquidity, U128_MAX)


def quote_asset_for_reserve(pool, reserve_in: int) -> int:
    """
    Asset units a buyer receives for `reserve_in` reserve units.

    Raises:
        InvalidAmount: reserve_in is not a positive u64 integer
        ArithmeticOverflow: r + reserve_in leaves the u64 range
        CalculationError: the curve would grow the asset side
    """
    _validate_amount(reserve_in, "reserve_in")
    r = pool.virtual_reserve_liquidity
    a = pool.virtual_asset_liquidity
    new_reserve = checked_add(r, reserve_in)
    k = invariant(pool)
    new_asset = k // new_reserve
    if new_asset > a:
        raise CalculationError(f"new asset liquidity {new_asset} exceeds {a}")
    return a - new_asset


def quote_reserve_for_asset(pool, asset_in: int, round_up: bool = False) -> int:
    """
    Reserve units a seller receives for `asset_in` asset units.

    With round_up the new reserve side is the ceiling of k / (a + asset_in),
    so the seller never receives the fractional unit.

    Raises:
        InvalidAmount: asset_in is not a positive u64 integer
        ArithmeticOverflow: a + asset_in leaves the u64 range
        CalculationError: the curve would grow the reserve side
    """
    _validate_amount(asset_in, "asset_in")
    r = pool.virtual_reserve_liquidity
    a = pool.virtual_asset_liquidity
    new_asset = checked_add(a, asset_in)
    k = invariant(pool)
    new_reserve = -(-k // new_asset) if round_up else k // new_asset
    if new_reserve > r:
        raise CalculationError(f"new reserve liquidity {new_reserve} exceeds {r}")
    return r - new_reserve


def reserve_for_exact_asset(pool, asset_out: int) -> int:
    """
    Smallest reserve_in for which quote_asset_for_reserve yields >= asset_out.

    Returns 0 when asset_out is 0.

    Raises:
        InsufficientAssetBalance: asset_out would empty the curve
    """
    if asset_out == 0:
        return 0
    _validate_amount(asset_out, "asset_out")
    r = pool.virtual_reserve_liquidity
    a = pool.virtual_asset_liquidity
    # floor(k / (r + c)) <= a - asset_out  <=>  r + c >= floor(k / (a - asset_out + 1)) + 1
    remaining = checked_sub(a, asset_out, InsufficientAssetBalance)
    if remaining == 0:
        raise InsufficientAssetBalance(f"cannot buy the whole asset side ({a})")
    k = invariant(pool)
    return checked_sub(k // (remaining + 1) + 1, r, CalculationError)


def spot_price(pool) -> Decimal:
    """Marginal price in reserve units per asset unit."""
    return Decimal(pool.virtual_reserve_liquidity) / Decimal(pool.virtual_asset_liquidity)
