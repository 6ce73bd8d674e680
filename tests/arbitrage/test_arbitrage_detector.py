"""
Arbitrage Detector Tests.

============================================================
PURPOSE
============================================================
Tests for spread detection, thresholds and risk tiering.

============================================================
"""

from decimal import Decimal

import pytest

from arbitrage import ArbitrageDetector, ArbitrageProtectionConfig, RiskLevel
from arbitrage.detector import classify_risk
from core.exceptions import ExchangeUnavailable
from exchanges.manager import VenuePrice


def quotes(**prices):
    return [VenuePrice(exchange=name, price=Decimal(price)) for name, price in prices.items()]


# ============================================================
# DETECTION TESTS
# ============================================================

class TestFindOpportunities:
    """Tests for pure detection over collected quotes."""

    def test_buy_low_sell_high(self, manager, clock):
        """Test the cheap venue is the buy side and the result is exact."""
        detector = ArbitrageDetector(manager, clock=clock)

        found = detector.find_opportunities("SOLUSDT", quotes(okx="150.60", binance="150.00"))

        assert len(found) == 1
        opp = found[0]
        assert (opp.buy_exchange, opp.sell_exchange) == ("binance", "okx")
        assert opp.buy_price == Decimal("150.00")
        assert opp.sell_price == Decimal("150.60")
        assert opp.spread == Decimal("0.60")
        assert opp.spread_percent == Decimal("0.4")
        assert opp.estimated_profit == Decimal("60")
        assert opp.risk_tier is RiskLevel.MEDIUM
        assert opp.detected_at == clock.now()

    def test_min_spread_is_inclusive(self, manager, clock):
        """Test a spread exactly at the minimum is kept."""
        detector = ArbitrageDetector(manager, clock=clock)

        assert len(detector.find_opportunities("SOLUSDT", quotes(a="100", b="100.1"))) == 1
        assert detector.find_opportunities("SOLUSDT", quotes(a="100", b="100.09")) == []

    def test_max_spread_is_inclusive(self, manager, clock):
        """Test a spread exactly at the maximum is kept and above it dropped."""
        config = ArbitrageProtectionConfig(max_spread_percent=Decimal("2.0"), max_order_amount=Decimal("1"))
        detector = ArbitrageDetector(manager, config, clock=clock)

        kept = detector.find_opportunities("SOLUSDT", quotes(a="100", b="102"))
        assert len(kept) == 1
        assert kept[0].risk_tier is RiskLevel.HIGH
        assert detector.find_opportunities("SOLUSDT", quotes(a="100", b="102.01")) == []

    def test_small_profit_dropped(self, manager, clock):
        """Test opportunities below min_profit_amount are dropped."""
        config = ArbitrageProtectionConfig(max_order_amount=Decimal("1"), min_profit_amount=Decimal("1"))
        detector = ArbitrageDetector(manager, config, clock=clock)

        assert detector.find_opportunities("SOLUSDT", quotes(a="150.00", b="150.60")) == []

    def test_every_pair_sorted_by_spread(self, manager, clock):
        """Test three venues yield up to three pairs, widest spread first."""
        detector = ArbitrageDetector(manager, clock=clock)

        found = detector.find_opportunities("SOLUSDT", quotes(a="100.0", b="100.2", c="100.5"))

        assert [(o.buy_exchange, o.sell_exchange) for o in found] == [("a", "c"), ("b", "c"), ("a", "b")]

    def test_equal_prices_yield_nothing(self, manager, clock):
        """Test zero spread is never an opportunity."""
        detector = ArbitrageDetector(manager, clock=clock)

        assert detector.find_opportunities("SOLUSDT", quotes(a="100", b="100")) == []


class TestClassifyRisk:
    """Tests for tier boundaries."""

    def test_band_edges(self):
        """Test both ceilings must hold for a tier."""
        config = ArbitrageProtectionConfig()

        assert classify_risk(Decimal("0.5"), Decimal("50"), config) is RiskLevel.LOW
        assert classify_risk(Decimal("0.5"), Decimal("51"), config) is RiskLevel.MEDIUM
        assert classify_risk(Decimal("1.5"), Decimal("10"), config) is RiskLevel.HIGH
        assert classify_risk(Decimal("2.5"), Decimal("10"), config) is None


# ============================================================
# LIVE DETECTION TESTS
# ============================================================

class TestDetect:
    """Tests for detection through the manager."""

    @pytest.mark.asyncio
    async def test_detect_through_manager(self, manager, clock):
        """Test live detection with two mock venues."""
        detector = ArbitrageDetector(manager, clock=clock)

        found = await detector.detect("SOLUSDT")

        assert len(found) == 1
        assert found[0].buy_exchange == "binance"
        assert found[0].sell_exchange == "okx"

    @pytest.mark.asyncio
    async def test_detect_with_one_venue_raises(self, manager, okx, clock):
        """Test detection needs at least two quotes."""
        okx.inject_failure("get_price", ExchangeUnavailable("okx", "down"))
        detector = ArbitrageDetector(manager, clock=clock)

        with pytest.raises(ExchangeUnavailable):
            await detector.detect("SOLUSDT")
