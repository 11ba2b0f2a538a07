"""
config.py - Issuer configuration shared by every pool of an engine.

IssuerConfig is created once ("protocol initialisation") and handed to the
engine and to the compute_* functions explicitly. It is immutable; each new
pool copies its virtual liquidity seeds at launch and never reads them again.
"""

from __future__ import annotations
from dataclasses import dataclass

from .core import (
    U64_MAX, DEFAULT_TOTAL_SUPPLY, SALE_THRESHOLD, ASSET_DECIMAL_PLACES,
)


@dataclass(frozen=True, slots=True)
class IssuerConfig:
    """
    Protocol-wide parameters.

    Attributes:
        owner: Wallet allowed to withdraw a deactivated pool.
        sale_target: Wallet recorded on each pool as the intended sale target.
        initial_virtual_reserve: Reserve seed for new pools (minimal units).
        initial_virtual_asset: Asset seed for new pools (minimal units).
        total_supply_to_mint: Asset minted into each new pool.
        sale_threshold: Cumulative units sold at which a pool deactivates.
        reserve_symbol: Unit symbol of the reserve currency.
        asset_decimals: Fractional digits of launched assets.
        refund_excess_at_threshold: Charge a buyer only the reserve needed
            for the clamped amount on the deactivating buy.
        curve_consistent_sell: Pay sells the ceiling quote and move the pool
            back along the curve (asset side up, reserve side down) instead of
            the default booking (asset side down, reserve side up).
    """
    owner: str
    sale_target: str
    initial_virtual_reserve: int
    initial_virtual_asset: int
    total_supply_to_mint: int = DEFAULT_TOTAL_SUPPLY
    sale_threshold: int = SALE_THRESHOLD
    reserve_symbol: str = "SOL"
    asset_decimals: int = ASSET_DECIMAL_PLACES
    refund_excess_at_threshold: bool = False
    curve_consistent_sell: bool = False

    def __post_init__(self):
        if not self.owner or not self.owner.strip():
            raise ValueError("owner cannot be empty")
        if not self.sale_target or not self.sale_target.strip():
            raise ValueError("sale_target cannot be empty")
        if not self.reserve_symbol or not self.reserve_symbol.strip():
            raise ValueError("reserve_symbol cannot be empty")
        for name in ('initial_virtual_reserve', 'initial_virtual_asset',
                     'total_supply_to_mint', 'sale_threshold'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be int, got {type(value)}")
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
            if value > U64_MAX:
                raise ValueError(f"{name} exceeds u64 range: {value}")
        if self.sale_threshold > self.total_supply_to_mint:
            raise ValueError(
                f"sale_threshold {self.sale_threshold} exceeds total supply "
                f"{self.total_supply_to_mint}"
            )
        if self.initial_virtual_asset > self.total_supply_to_mint:
            raise ValueError(
                f"initial_virtual_asset {self.initial_virtual_asset} exceeds total supply "
                f"{self.total_supply_to_mint}"
            )
        # a bought-out pool must keep virtual_asset_liquidity >= units_sold for withdrawal
        if self.initial_virtual_asset < 2 * self.sale_threshold:
            raise ValueError(
                f"initial_virtual_asset {self.initial_virtual_asset} is below twice the "
                f"sale_threshold {self.sale_threshold}"
            )
        if self.asset_decimals < 0:
            raise ValueError(f"asset_decimals must be non-negative, got {self.asset_decimals}")


def create_issuer_config(
    owner: str,
    sale_target: str,
    initial_virtual_reserve: int,
    initial_virtual_asset: int,
    total_supply_to_mint: int = DEFAULT_TOTAL_SUPPLY,
    **options,
) -> IssuerConfig:
    """
    Initialise the protocol parameters.

    Example:
        config = create_issuer_config(
            owner="treasury",
            sale_target="treasury",
            initial_virtual_reserve=30 * 10**9,
            initial_virtual_asset=10**15,
        )
    """
    return IssuerConfig(
        owner=owner,
        sale_target=sale_target,
        initial_virtual_reserve=initial_virtual_reserve,
        initial_virtual_asset=initial_virtual_asset,
        total_supply_to_mint=total_supply_to_mint,
        **options,
    )
