"""
Trailing Stop Tests.

============================================================
PURPOSE
============================================================
Tests for the pure trailing stop rules and the position
tracker over mock venues and the in-memory repository.

TEST CATEGORIES:
- Rule tests: initial stop, ratchet, trigger, never loosens
- Tracker tests: open, arm, check tick, close, failures
- Config tests: environment overrides and validation
============================================================
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from core.exceptions import ConfigurationError, ExchangeRejected, ExchangeUnavailable, PositionError, ValidationError
from exchanges import OrderSide, OrderType
from positions import (
    PositionSide,
    PositionStatus,
    PositionTracker,
    TrackedPosition,
    TrailingAction,
    TrailingStopConfig,
    evaluate_trailing_stop,
    stop_price_for,
)
from storage.repository import StorageError


def armed(clock, side=PositionSide.LONG, stop="95", best="100", distance="5"):
    return TrackedPosition(
        id="p1",
        symbol="SOLUSDT",
        exchange="binance",
        side=side,
        quantity=Decimal("1"),
        entry_price=Decimal("100"),
        status=PositionStatus.OPEN,
        created_at=clock.now(),
        updated_at=clock.now(),
        trailing_enabled=True,
        trailing_distance_pct=Decimal(distance),
        trailing_stop_price=Decimal(stop),
        highest_price=Decimal(best) if side is PositionSide.LONG else None,
        lowest_price=Decimal(best) if side is PositionSide.SHORT else None,
    )


@pytest.fixture
def tracker(manager, repository, clock):
    return PositionTracker(manager, repository, clock=clock)


async def open_long(tracker, quantity="2", distance="5"):
    position = await tracker.open_position("binance", "solusdt", PositionSide.LONG, Decimal(quantity))
    return await tracker.set_trailing_stop(position.id, True, Decimal(distance))


# ============================================================
# RULE TESTS
# ============================================================

class TestTrailingRules:
    """Tests for the stop arithmetic."""

    def test_initial_stop_by_side(self):
        """Test LONG stops sit below the price and SHORT stops above it."""
        assert stop_price_for(PositionSide.LONG, Decimal("100"), Decimal("5")) == Decimal("95")
        assert stop_price_for(PositionSide.SHORT, Decimal("100"), Decimal("5")) == Decimal("105")

    def test_long_ratchets_on_new_high(self, clock):
        """Test a new high lifts the stop and records the high."""
        decision = evaluate_trailing_stop(armed(clock), Decimal("110"))

        assert decision.action is TrailingAction.RATCHET
        assert decision.stop_price == Decimal("104.5")
        assert decision.highest_price == Decimal("110")

    def test_long_holds_between_stop_and_high(self, clock):
        """Test a pullback that stays above the stop changes nothing."""
        decision = evaluate_trailing_stop(armed(clock, stop="104.5", best="110"), Decimal("105"))

        assert decision.action is TrailingAction.HOLD
        assert decision.stop_price == Decimal("104.5")

    def test_long_closes_at_stop(self, clock):
        """Test touching the stop triggers a close."""
        decision = evaluate_trailing_stop(armed(clock, stop="104.5", best="110"), Decimal("104.5"))

        assert decision.action is TrailingAction.CLOSE

    def test_stop_never_loosens(self, clock):
        """Test a wider distance on a new high keeps the tighter stop."""
        decision = evaluate_trailing_stop(armed(clock, stop="104.5", best="110", distance="10"), Decimal("111"))

        assert decision.action is TrailingAction.RATCHET
        assert decision.stop_price == Decimal("104.5")
        assert decision.highest_price == Decimal("111")

    def test_short_mirrors_long(self, clock):
        """Test SHORT ratchets down on new lows and closes on a rise to the stop."""
        position = armed(clock, side=PositionSide.SHORT, stop="105", best="100")

        ratchet = evaluate_trailing_stop(position, Decimal("90"))
        assert ratchet.action is TrailingAction.RATCHET
        assert ratchet.stop_price == Decimal("94.5")
        assert ratchet.lowest_price == Decimal("90")

        moved = replace(position, trailing_stop_price=ratchet.stop_price, lowest_price=ratchet.lowest_price)
        assert evaluate_trailing_stop(moved, Decimal("92")).action is TrailingAction.HOLD
        assert evaluate_trailing_stop(moved, Decimal("94.5")).action is TrailingAction.CLOSE

    def test_pnl_by_side(self, clock):
        """Test PnL is signed by side and relative to entry."""
        long_pnl = armed(clock).pnl_at(Decimal("110"))
        short_pnl = armed(clock, side=PositionSide.SHORT, stop="105").pnl_at(Decimal("110"))

        assert long_pnl == (Decimal("10"), Decimal("10"))
        assert short_pnl == (Decimal("-10"), Decimal("-10"))


# ============================================================
# TRACKER TESTS
# ============================================================

class TestPositionTracker:
    """Tests for tracked positions over mock venues."""

    @pytest.mark.asyncio
    async def test_open_uses_venue_price(self, tracker, binance, repository):
        """Test opening records the venue price and places no order."""
        position = await tracker.open_position("binance", "solusdt", PositionSide.LONG, Decimal("2"))

        assert position.symbol == "SOLUSDT"
        assert position.entry_price == Decimal("150.00")
        assert position.is_open
        assert not position.trailing_enabled
        assert binance.call_count("place_order") == 0
        assert await repository.get_position(position.id) == position

    @pytest.mark.asyncio
    async def test_open_rejects_bad_input(self, tracker):
        """Test zero quantity and unknown venues are refused."""
        with pytest.raises(ValidationError):
            await tracker.open_position("binance", "SOLUSDT", PositionSide.LONG, Decimal("0"))
        with pytest.raises(ValidationError):
            await tracker.open_position("kraken", "SOLUSDT", PositionSide.LONG, Decimal("1"))

    @pytest.mark.asyncio
    async def test_arm_places_stop_below_price(self, tracker):
        """Test arming a LONG sets the stop distance below the current price."""
        position = await open_long(tracker)

        assert position.trailing_enabled
        assert position.trailing_stop_price == Decimal("142.5")
        assert position.highest_price == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_arm_uses_default_distance(self, tracker):
        """Test the configured default applies when no distance is given."""
        position = await tracker.open_position("binance", "SOLUSDT", PositionSide.LONG, Decimal("1"))

        armed_position = await tracker.set_trailing_stop(position.id, True, current_price=Decimal("200"))

        assert armed_position.trailing_distance_pct == Decimal("5")
        assert armed_position.trailing_stop_price == Decimal("190")

    @pytest.mark.asyncio
    async def test_arm_rejects_distance_out_of_range(self, tracker):
        """Test distances outside the configured bounds are refused."""
        position = await tracker.open_position("binance", "SOLUSDT", PositionSide.LONG, Decimal("1"))

        with pytest.raises(ValidationError):
            await tracker.set_trailing_stop(position.id, True, Decimal("60"))
        with pytest.raises(ValidationError):
            await tracker.set_trailing_stop(position.id, True, Decimal("0.01"))

    @pytest.mark.asyncio
    async def test_unknown_and_closed_positions(self, tracker):
        """Test arming an unknown or closed position raises PositionError."""
        with pytest.raises(PositionError):
            await tracker.set_trailing_stop("pos_missing", True)

        position = await tracker.open_position("binance", "SOLUSDT", PositionSide.LONG, Decimal("1"))
        await tracker.close_position(position.id)

        with pytest.raises(PositionError) as exc_info:
            await tracker.set_trailing_stop(position.id, True)
        assert exc_info.value.context["position_id"] == position.id

    @pytest.mark.asyncio
    async def test_check_ratchets_then_closes(self, tracker, binance, repository):
        """Test a rally lifts the stop and the pullback through it sells the position."""
        position = await open_long(tracker)

        binance.set_price("SOLUSDT", "160")
        [ratchet] = await tracker.check_trailing_stops()
        assert ratchet.action is TrailingAction.RATCHET
        assert (await repository.get_position(position.id)).trailing_stop_price == Decimal("152")
        assert binance.call_count("place_order") == 0

        binance.set_price("SOLUSDT", "151")
        [close] = await tracker.check_trailing_stops()

        assert close.action is TrailingAction.CLOSE
        assert close.error is None
        order = list(binance.orders.values())[-1]
        assert (order.side, order.type, order.requested_qty) == (OrderSide.SELL, OrderType.MARKET, Decimal("2"))
        closed = await repository.get_position(position.id)
        assert closed.status is PositionStatus.CLOSED
        assert closed.exit_price == Decimal("151")
        assert closed.pnl == Decimal("2")
        assert closed.close_order_id == close.close_order_id == order.order_id
        trades = await repository.list_trades()
        assert [(t.strategy, t.side, t.quantity, t.price) for t in trades] == [
            ("trailing_stop", OrderSide.SELL, Decimal("2"), Decimal("151"))
        ]
        assert await tracker.check_trailing_stops() == []

    @pytest.mark.asyncio
    async def test_short_closes_with_buy(self, tracker, okx, repository):
        """Test a SHORT stop is above the price and closes with a BUY."""
        position = await tracker.open_position("okx", "SOLUSDT", PositionSide.SHORT, Decimal("1"))
        armed_position = await tracker.set_trailing_stop(position.id, True)
        assert armed_position.trailing_stop_price == Decimal("158.13")

        okx.set_price("SOLUSDT", "160")
        [result] = await tracker.check_trailing_stops()

        assert result.action is TrailingAction.CLOSE
        assert list(okx.orders.values())[-1].side is OrderSide.BUY
        assert (await repository.get_position(position.id)).pnl == Decimal("-9.40")

    @pytest.mark.asyncio
    async def test_disabled_stop_is_ignored(self, tracker, binance):
        """Test a disarmed position is skipped by the tick."""
        position = await open_long(tracker)
        disarmed = await tracker.set_trailing_stop(position.id, False)

        binance.set_price("SOLUSDT", "100")

        assert disarmed.trailing_stop_price is None
        assert await tracker.check_trailing_stops() == []
        assert binance.call_count("place_order") == 0

    @pytest.mark.asyncio
    async def test_price_failure_is_reported(self, tracker, binance, repository):
        """Test a venue without a price leaves its positions untouched."""
        position = await open_long(tracker)
        binance.inject_failure("get_price", ExchangeUnavailable("binance", "timeout"))

        [result] = await tracker.check_trailing_stops()

        assert result.action is None
        assert "timeout" in result.error
        assert (await repository.get_position(position.id)).is_open

    @pytest.mark.asyncio
    async def test_close_order_failure_keeps_position_open(self, tracker, binance, repository):
        """Test a refused close order is reported and retried on the next tick."""
        position = await open_long(tracker)
        binance.set_price("SOLUSDT", "140")
        binance.inject_failure("place_order", ExchangeRejected("binance", "Market closed"))

        [failed] = await tracker.check_trailing_stops()
        assert failed.action is TrailingAction.CLOSE
        assert "Market closed" in failed.error
        assert (await repository.get_position(position.id)).is_open

        [retried] = await tracker.check_trailing_stops()
        assert retried.error is None
        assert not (await repository.get_position(position.id)).is_open

    @pytest.mark.asyncio
    async def test_ledger_failure_still_closes(self, tracker, binance, repository, monkeypatch):
        """Test a failed ledger write does not undo a placed close order."""
        position = await open_long(tracker)

        async def failing_append(entry):
            raise StorageError("append_trade", "disk full")

        monkeypatch.setattr(repository, "append_trade", failing_append)
        binance.set_price("SOLUSDT", "140")

        [result] = await tracker.check_trailing_stops()

        assert result.error is None
        assert (await repository.get_position(position.id)).status is PositionStatus.CLOSED
        assert binance.call_count("place_order") == 1

    @pytest.mark.asyncio
    async def test_manual_close(self, tracker, binance, repository):
        """Test closing by hand sells at market and tags the ledger entry."""
        position = await tracker.open_position("binance", "SOLUSDT", PositionSide.LONG, Decimal("1"))

        closed = await tracker.close_position(position.id)

        assert closed.close_reason == "position_close"
        assert closed.pnl == Decimal("0")
        assert [t.strategy for t in await repository.list_trades()] == ["position_close"]
        assert [p.id for p in await tracker.list_positions(open_only=True)] == []


# ============================================================
# CONFIG TESTS
# ============================================================

class TestTrailingStopConfig:
    """Tests for environment overrides."""

    def test_from_env(self):
        """Test overrides are parsed as decimals."""
        config = TrailingStopConfig.from_env({"TRAILING_STOP_DEFAULT_DISTANCE_PCT": "3"})

        assert config.default_distance_pct == Decimal("3")
        assert config.max_distance_pct == Decimal("50")

    def test_invalid_values(self):
        """Test unparsable and inconsistent values raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            TrailingStopConfig.from_env({"TRAILING_STOP_MAX_DISTANCE_PCT": "wide"})
        with pytest.raises(ConfigurationError):
            TrailingStopConfig.from_env({"TRAILING_STOP_DEFAULT_DISTANCE_PCT": "80"})
