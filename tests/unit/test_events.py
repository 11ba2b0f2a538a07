"""
test_events.py - Unit tests for engine events and the EventRecorder
"""

import pytest
import dataclasses
from datetime import datetime

from bondcurve import (
    EventRecorder, LaunchEvent, TradeEvent, WithdrawEvent,
    SIDE_BUY, SIDE_SELL, PoolInactive,
)


class TestEventRecorder:
    """Tests for the in-memory sink."""

    def _event(self, asset="PUMP"):
        return WithdrawEvent(asset, "treasury", 1, 2, datetime(2025, 1, 1))

    def test_records_in_order(self):
        recorder = EventRecorder()
        first, second = self._event("A"), self._event("B")
        recorder(first)
        recorder(second)
        assert list(recorder) == [first, second]
        assert recorder.last() is second
        assert len(recorder) == 2

    def test_filters(self):
        recorder = EventRecorder()
        recorder(self._event("A"))
        recorder(self._event("B"))
        assert len(recorder.for_asset("A")) == 1
        assert recorder.of_type(TradeEvent) == []

    def test_clear(self):
        recorder = EventRecorder()
        recorder(self._event())
        recorder.clear()
        assert recorder.last() is None

    def test_events_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            self._event().owner = "mallory"


class TestEngineEvents:
    """Tests for what the engine emits."""

    def test_launch_event(self, engine, config):
        (event,) = engine.sink.of_type(LaunchEvent)
        assert event.asset == "PUMP"
        assert event.pool_address == engine.pool("PUMP").pool_address
        assert event.total_minted == config.total_supply_to_mint
        assert event.virtual_reserve_liquidity == config.initial_virtual_reserve
        assert event.uri == "https://example.com/pump.json"

    def test_buy_event(self, engine):
        result = engine.buy("PUMP", "bob", 10_000_000)
        event = engine.sink.last()
        assert isinstance(event, TradeEvent)
        assert event.side == SIDE_BUY
        assert event.trader == "bob"
        assert (event.amount_in, event.amount_out) == (10_000_000, result.amount_out)
        assert event.units_sold == result.pool.units_sold
        assert event.virtual_asset_liquidity == result.pool.virtual_asset_liquidity
        assert not event.deactivated
        assert event.timestamp == engine.ledger.current_time

    def test_sell_event(self, engine):
        bought = engine.buy("PUMP", "bob", 10_000_000)
        sold = engine.sell("PUMP", "bob", bought.amount_out // 2)
        event = engine.sink.last()
        assert event.side == SIDE_SELL
        assert event.amount_out == sold.amount_out

    def test_deactivating_buy_flagged(self, completed_engine):
        trades = completed_engine.sink.of_type(TradeEvent)
        assert [t.deactivated for t in trades] == [False, False, True]

    def test_withdraw_event(self, completed_engine):
        result = completed_engine.withdraw("PUMP", "treasury")
        event = completed_engine.sink.last()
        assert isinstance(event, WithdrawEvent)
        assert event.owner == "treasury"
        assert event.reserve_amount == result.reserve_amount
        assert event.asset_amount == result.asset_amount

    def test_failed_operation_emits_nothing(self, completed_engine):
        count = len(completed_engine.sink)
        with pytest.raises(PoolInactive):
            completed_engine.buy("PUMP", "alice", 1)
        assert len(completed_engine.sink) == count
