"""
Risk Controller Tests.

============================================================
PURPOSE
============================================================
Tests for the accumulating signal risk check.

TEST CATEGORIES:
- Rule tests: each rule passing and failing in isolation
- Aggregation tests: every violation reported, score, hints
============================================================
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from core.exceptions import ExchangeUnavailable
from exchanges import OrderSide, OrderType
from signals import (
    RiskCategory,
    RiskControlConfig,
    RiskController,
    SignalAction,
    SignalRecord,
    SignalStatus,
    TradeSignal,
    TradingHours,
)
from storage.records import TradeLedgerEntry


@pytest.fixture
def signal(clock):
    """BUY 5 SOLUSDT @ 150 on binance: 750 USDT notional, 7.5% of the default balance."""
    return TradeSignal(
        symbol="SOLUSDT",
        action=SignalAction.BUY,
        exchange="binance",
        order_type=OrderType.LIMIT,
        quantity=Decimal("5"),
        price=Decimal("150"),
        confidence=85.0,
        strategy="manual",
        timestamp=clock.now(),
    )


@pytest.fixture
def controller(manager, repository, clock):
    return RiskController(manager, repository, clock=clock)


def ledger_entry(clock, side, quantity, price):
    return TradeLedgerEntry(
        exchange="binance",
        symbol="SOLUSDT",
        side=side,
        order_type="MARKET",
        quantity=Decimal(quantity),
        price=Decimal(price),
        order_id="x",
        strategy="manual",
        status="FILLED",
        created_at=clock.now(),
    )


# ============================================================
# RULE TESTS
# ============================================================

class TestRules:
    """Tests for individual rules."""

    @pytest.mark.asyncio
    async def test_clean_signal_passes(self, controller, signal):
        """Test a modest signal passes every rule."""
        result = await controller.check(signal)

        assert result.approved
        assert result.reasons == ()
        assert result.risk_score == 0
        assert len(result.checks) == 6

    @pytest.mark.asyncio
    async def test_low_confidence(self, controller, signal):
        """Test confidence below the minimum is reported."""
        result = await controller.check(replace(signal, confidence=40.0))

        assert not result.approved
        assert result.reasons == ("Confidence 40 below minimum 70",)
        assert result.recommendations == ("Wait for a more reliable signal",)
        assert result.failed_categories == [RiskCategory.CONFIDENCE]

    @pytest.mark.asyncio
    async def test_position_too_large(self, controller, signal):
        """Test notional above 10% of free balance fails position size only."""
        result = await controller.check(replace(signal, quantity=Decimal("10")))

        assert result.failed_categories == [RiskCategory.POSITION_SIZE]

    @pytest.mark.asyncio
    async def test_market_signal_valued_at_venue_price(self, controller, signal, binance):
        """Test an unpriced market signal is sized at the venue's last price."""
        # 60 * 150 = 9000 USDT against a 1000 USDT cap
        result = await controller.check(replace(signal, order_type=OrderType.MARKET, price=None, quantity=Decimal("60")))

        assert result.failed_categories == [RiskCategory.POSITION_SIZE]
        assert "9000" in result.reasons[0]
        assert binance.call_count("get_price") == 1

    @pytest.mark.asyncio
    async def test_small_market_signal_passes(self, controller, signal):
        """Test a market signal inside the cap is approved."""
        result = await controller.check(replace(signal, order_type=OrderType.MARKET, price=None, quantity=Decimal("2")))

        assert result.approved

    @pytest.mark.asyncio
    async def test_market_signal_price_unavailable(self, controller, signal, binance):
        """Test a market signal that cannot be priced fails both balance-based rules."""
        binance.inject_failure("get_price", ExchangeUnavailable("binance", "timeout"))

        result = await controller.check(replace(signal, order_type=OrderType.MARKET, price=None))

        assert result.failed_categories == [RiskCategory.POSITION_SIZE, RiskCategory.BALANCE]
        assert all("price unavailable" in reason for reason in result.reasons)

    @pytest.mark.asyncio
    async def test_leverage(self, controller, signal):
        """Test leverage above the maximum fails."""
        result = await controller.check(replace(signal, leverage=10.0))

        assert result.failed_categories == [RiskCategory.LEVERAGE]
        assert result.recommendations == ("Lower leverage",)

    @pytest.mark.asyncio
    async def test_daily_loss(self, controller, signal, repository, clock):
        """Test realized loss at the limit blocks new signals."""
        await repository.append_trade(ledger_entry(clock, OrderSide.BUY, "10", "100"))

        result = await controller.check(signal)

        assert result.failed_categories == [RiskCategory.DAILY_LOSS]

    @pytest.mark.asyncio
    async def test_daily_loss_ignores_yesterday(self, controller, signal, repository, clock):
        """Test only today's ledger counts."""
        await repository.append_trade(
            replace(ledger_entry(clock, OrderSide.BUY, "10", "100"), created_at=clock.now() - timedelta(days=1))
        )

        assert (await controller.check(signal)).approved

    @pytest.mark.asyncio
    async def test_frequency(self, controller, signal, repository, clock):
        """Test the per-symbol hourly cap counts earlier records."""
        for i in range(3):
            await repository.insert_signal_record(SignalRecord(
                id=f"r{i}",
                raw_signal={},
                trade_signal=signal,
                status=SignalStatus.EXECUTED,
                created_at=clock.now() - timedelta(minutes=10),
                updated_at=clock.now(),
            ))

        result = await controller.check(signal)
        assert result.failed_categories == [RiskCategory.FREQUENCY]

        clock.advance(3600)
        assert (await controller.check(signal)).approved

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, controller, signal, binance):
        """Test a notional above the free balance fails size and balance."""
        binance.set_balance("USDT", "100")

        result = await controller.check(signal)

        assert result.failed_categories == [RiskCategory.POSITION_SIZE, RiskCategory.BALANCE]
        assert "Top up balance or reduce size" in result.recommendations

    @pytest.mark.asyncio
    async def test_balance_unavailable(self, controller, signal, binance):
        """Test a venue error fails both balance-based rules."""
        binance.inject_failure("get_all_balances", ExchangeUnavailable("binance", "timeout"))

        result = await controller.check(signal)

        assert result.failed_categories == [RiskCategory.POSITION_SIZE, RiskCategory.BALANCE]
        assert all("timeout" in reason for reason in result.reasons)


class TestTradingHours:
    """Tests for the optional trading window."""

    @pytest.mark.asyncio
    async def test_inside_window(self, manager, repository, clock, signal):
        """Test noon UTC is inside 09:00-17:00."""
        config = RiskControlConfig(trading_hours=TradingHours(enabled=True))
        result = await RiskController(manager, repository, config, clock).check(signal)

        assert result.approved
        assert len(result.checks) == 7

    @pytest.mark.asyncio
    async def test_outside_window(self, manager, repository, clock, signal):
        """Test 18:00 UTC is outside 09:00-17:00."""
        config = RiskControlConfig(trading_hours=TradingHours(enabled=True))
        clock.advance(6 * 3600)

        result = await RiskController(manager, repository, config, clock).check(signal)

        assert result.failed_categories == [RiskCategory.TRADING_HOURS]

    @pytest.mark.asyncio
    async def test_window_in_other_timezone(self, manager, repository, clock, signal):
        """Test the window is evaluated in its own timezone."""
        # 12:00 UTC is 21:00 in Tokyo
        config = RiskControlConfig(trading_hours=TradingHours(enabled=True, timezone="Asia/Tokyo"))

        result = await RiskController(manager, repository, config, clock).check(signal)

        assert result.failed_categories == [RiskCategory.TRADING_HOURS]

    def test_overnight_window(self):
        """Test a window ending before it starts wraps midnight."""
        hours = TradingHours(enabled=True, start="22:00", end="06:00")

        assert hours.contains(hours.start_time)
        assert hours.contains(TradingHours(start="03:00").start_time)
        assert not hours.contains(TradingHours(start="12:00").start_time)


# ============================================================
# AGGREGATION TESTS
# ============================================================

class TestAggregation:
    """Tests for reporting every violation at once."""

    @pytest.mark.asyncio
    async def test_all_violations_reported(self, controller, signal):
        """Test several failing rules are all listed with a proportional score."""
        risky = replace(signal, confidence=10.0, leverage=50.0, quantity=Decimal("100"))

        result = await controller.check(risky)

        assert result.failed_categories == [
            RiskCategory.POSITION_SIZE,
            RiskCategory.CONFIDENCE,
            RiskCategory.LEVERAGE,
            RiskCategory.BALANCE,
        ]
        assert result.risk_score == round(4 / 6 * 100)
        assert len(result.recommendations) == 4

    @pytest.mark.asyncio
    async def test_check_is_repeatable(self, controller, signal):
        """Test the same signal against unchanged state gives the same result."""
        risky = replace(signal, confidence=40.0)

        assert await controller.check(risky) == await controller.check(risky)

    @pytest.mark.asyncio
    async def test_rejection_exception(self, controller, signal):
        """Test the result converts to RiskRejected with every reason."""
        result = await controller.check(replace(signal, confidence=40.0, leverage=9.0))

        rejection = result.to_exception()
        assert rejection.reasons == list(result.reasons)
        assert rejection.message.startswith("Risk check failed: ")
