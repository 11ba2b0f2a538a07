"""
events.py - Notifications emitted by the curve engine.

Events are just data; a sink is just a function. The engine calls the sink
after the ledger has committed an operation, so a sink never sees an event
for something that did not happen and cannot affect engine state.

Core concepts:
1. LaunchEvent / TradeEvent / WithdrawEvent: immutable notification records
2. EventSink: any callable taking one event
3. EventRecorder: in-memory sink that keeps events in emission order
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Type, Union


# ============================================================================
# EVENT DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LaunchEvent:
    """A pool was created and its asset minted into pool custody."""
    asset: str
    pool_address: str
    virtual_reserve_liquidity: int
    virtual_asset_liquidity: int
    total_minted: int
    timestamp: datetime
    name: str = ""
    uri: str = ""


@dataclass(frozen=True, slots=True)
class TradeEvent:
    """
    A buy or sell settled against a pool.

    Liquidity fields and units_sold are the pool's values after the trade.
    """
    asset: str
    side: str
    trader: str
    amount_in: int
    amount_out: int
    virtual_reserve_liquidity: int
    virtual_asset_liquidity: int
    units_sold: int
    deactivated: bool
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class WithdrawEvent:
    """The owner withdrew a deactivated pool's reserve and unsold asset."""
    asset: str
    owner: str
    reserve_amount: int
    asset_amount: int
    timestamp: datetime


CurveEvent = Union[LaunchEvent, TradeEvent, WithdrawEvent]

# Sink type: event -> None
EventSink = Callable[[CurveEvent], None]


# ============================================================================
# RECORDER
# ============================================================================

class EventRecorder:
    """
    Sink that stores every event it receives.

    Example:
        recorder = EventRecorder()
        engine = BondingCurveEngine(ledger, config, sink=recorder)
        engine.buy("PUMP", "alice", 1_000_000)
        assert recorder.of_type(TradeEvent)[0].trader == "alice"
    """

    def __init__(self):
        self.events: List[CurveEvent] = []

    def __call__(self, event: CurveEvent) -> None:
        self.events.append(event)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[CurveEvent]:
        return iter(self.events)

    def of_type(self, event_type: Type) -> List[CurveEvent]:
        return [e for e in self.events if isinstance(e, event_type)]

    def for_asset(self, asset: str) -> List[CurveEvent]:
        return [e for e in self.events if e.asset == asset]

    def last(self) -> Optional[CurveEvent]:
        return self.events[-1] if self.events else None

    def clear(self) -> None:
        self.events.clear()
