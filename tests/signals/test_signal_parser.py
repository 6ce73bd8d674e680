"""
Signal Parser Tests.

============================================================
PURPOSE
============================================================
Tests for raw signal normalization.

TEST CATEGORIES:
- Alert text tests
- Structured payload tests: aliases, defaults, order types
- Rejection tests: malformed payloads raise ValidationError
============================================================
"""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from exchanges import ExchangeManager, OrderType
from signals import SignalAction, SignalParser, SignalParserConfig, normalize_symbol, parse_alert_text


@pytest.fixture
def parser(manager, clock):
    return SignalParser(manager, clock=clock)


# ============================================================
# ALERT TEXT TESTS
# ============================================================

class TestAlertText:
    """Tests for one-line alert parsing."""

    def test_full_alert(self, parser, clock):
        """Test action, price and both protective levels are recovered."""
        signal = parser.parse("BUY SOLUSDT @ 150.5 SL: 145 TP: 160")

        assert signal.symbol == "SOLUSDT"
        assert signal.action is SignalAction.BUY
        assert signal.price == Decimal("150.5")
        assert signal.stop_loss == Decimal("145")
        assert signal.take_profit == Decimal("160")
        assert signal.order_type is OrderType.LIMIT
        assert signal.strategy == "alert"
        assert signal.exchange == "binance"
        assert signal.quantity == Decimal("10")
        assert signal.confidence == 80.0
        assert signal.timestamp == clock.now()

    def test_alert_without_levels(self):
        """Test SL and TP are optional."""
        alert = parse_alert_text("SELL ETHUSDT @ 3200")

        assert alert.action == "SELL"
        assert alert.stop_loss is None
        assert alert.take_profit is None

    def test_alert_inside_payload(self, parser):
        """Test alert_text in a dict uses the dict's strategy and exchange."""
        signal = parser.parse({"alert_text": "CLOSE SOLUSDT @ 151", "strategy": "breakout", "exchange": "OKX"})

        assert signal.action is SignalAction.CLOSE
        assert signal.strategy == "breakout"
        assert signal.exchange == "okx"

    def test_unrecognized_alert(self, parser):
        """Test free text without the pattern is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parser.parse("moon soon")

        assert exc_info.value.field == "alert_text"

    @pytest.mark.parametrize(
        "text",
        [
            "BUY SOLUSDT @ 1.2.3",
            "BUY SOLUSDT @ .",
            "SELL SOLUSDT @ 150 SL: 1.4.5",
            "BUY SOLUSDT @ 150 SL: 145 TP: ..",
        ],
    )
    def test_malformed_numbers(self, parser, text):
        """Test numbers that are not plain decimals raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(text)

        assert exc_info.value.field == "alert_text"


# ============================================================
# STRUCTURED PAYLOAD TESTS
# ============================================================

class TestStructuredPayload:
    """Tests for dict payloads."""

    def test_aliases_and_market_order(self, parser):
        """Test pair/side/orderType/positionSize aliases."""
        signal = parser.parse({"pair": "sol/usdt", "side": "sell", "orderType": "market", "positionSize": "2"})

        assert signal.symbol == "SOLUSDT"
        assert signal.action is SignalAction.SELL
        assert signal.order_type is OrderType.MARKET
        assert signal.quantity == Decimal("2")
        assert signal.strategy == "manual"

    def test_quantity_wins_over_position_size(self, parser):
        """Test explicit quantity takes precedence."""
        signal = parser.parse({"symbol": "SOLUSDT", "action": "BUY", "quantity": 3, "positionSize": 7})

        assert signal.quantity == Decimal("3")

    def test_camel_case_levels(self, parser):
        """Test stopLoss / takeProfit keys."""
        signal = parser.parse(
            {"symbol": "SOLUSDT", "action": "BUY", "price": "150", "stopLoss": "140", "takeProfit": "170"}
        )

        assert signal.stop_loss == Decimal("140")
        assert signal.take_profit == Decimal("170")

    def test_unknown_order_type_is_ignored(self, parser):
        """Test an unknown explicit type falls back to price-based inference."""
        signal = parser.parse({"symbol": "SOLUSDT", "action": "BUY", "price": 150, "orderType": "twap"})

        assert signal.order_type is OrderType.LIMIT

    def test_default_exchange_from_config(self, manager, clock):
        """Test the configured default exchange is used when none is given."""
        parser = SignalParser(manager, SignalParserConfig(default_exchange="okx"), clock)

        assert parser.parse({"symbol": "SOLUSDT", "action": "BUY"}).exchange == "okx"

    def test_blank_fields_are_missing(self, parser):
        """Test empty strings behave like absent fields."""
        signal = parser.parse({"symbol": "SOLUSDT", "action": "BUY", "price": "", "confidence": " "})

        assert signal.price is None
        assert signal.order_type is OrderType.MARKET
        assert signal.confidence == 80.0

    def test_normalize_symbol(self):
        """Test separators, case and the default quote."""
        assert normalize_symbol("btc") == "BTCUSDT"
        assert normalize_symbol("eth-btc") == "ETHBTC"
        assert normalize_symbol("SOL_USDC") == "SOLUSDC"


# ============================================================
# REJECTION TESTS
# ============================================================

class TestRejections:
    """Tests for malformed payloads."""

    @pytest.mark.parametrize(
        "payload, field",
        [
            ({"action": "BUY"}, "symbol"),
            ({"symbol": "SOLUSDT", "action": "HOLD"}, "action"),
            ({"symbol": "SOLUSDT", "action": "BUY", "confidence": 150}, "confidence"),
            ({"symbol": "SOLUSDT", "action": "BUY", "quantity": 0}, "quantity"),
            ({"symbol": "SOLUSDT", "action": "BUY", "price": -1}, "price"),
            ({"symbol": "SOLUSDT", "action": "BUY", "leverage": 0}, "leverage"),
            ({"symbol": "SOLUSDT", "action": "BUY", "orderType": "LIMIT"}, "price"),
            ({"symbol": "SOLUSDT", "action": "BUY", "price": "abc"}, "price"),
            ({"symbol": "SOLUSDT", "action": "BUY", "exchange": "kraken"}, "exchange"),
        ],
    )
    def test_invalid_payloads(self, parser, payload, field):
        """Test each malformed payload names the offending field."""
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(payload)

        assert exc_info.value.field == field

    def test_unsupported_type(self, parser):
        """Test non-string, non-mapping payloads are rejected."""
        with pytest.raises(ValidationError):
            parser.parse(42)

    def test_no_active_exchange(self, clock):
        """Test parsing fails when no venue is registered."""
        with pytest.raises(ValidationError):
            SignalParser(ExchangeManager(clock=clock), clock=clock).parse({"symbol": "SOLUSDT", "action": "BUY"})
