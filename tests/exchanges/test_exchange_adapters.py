"""
Exchange Adapter Tests.

============================================================
PURPOSE
============================================================
Unit tests for venue adapters.

TEST CATEGORIES:
- Signing tests: request authentication per venue dialect
- Symbol tests: canonical -> venue spelling
- Error mapping tests: venue bodies -> ExchangeUnavailable / ExchangeRejected
- Payload tests: candle ordering and order sizing per venue
- Retry tests: bounded retry of reads via a fake transport
- Logging tests: credential masking
- Mock tests: in-memory venue behavior

============================================================
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from core.exceptions import ExchangeRejected, ExchangeUnavailable, ValidationError
from exchanges import (
    AdapterFactory,
    BinanceAdapter,
    BitgetAdapter,
    BybitAdapter,
    ExchangeConfigManager,
    ExchangeCredential,
    GateAdapter,
    MockConfig,
    MockExchangeAdapter,
    NormalizedOrderRequest,
    OKXAdapter,
    OrderSide,
    OrderType,
)
from exchanges.errors import ErrorCategory, categorize, map_venue_error
from exchanges.logging_utils import mask_headers, mask_params, mask_value
from exchanges.types import split_symbol


def signed(name: str, passphrase=None) -> ExchangeCredential:
    return ExchangeCredential(name=name, api_key="key-123456", api_secret="secret-abcdef", passphrase=passphrase)


# ============================================================
# SIGNING TESTS
# ============================================================

class TestSigning:
    """Tests for request authentication."""

    def test_binance_signature_over_query_string(self, clock):
        """Test Binance HMAC-SHA256 hex signature over the full query."""
        adapter = BinanceAdapter(signed("binance"), clock=clock)

        prepared = adapter._prepare("GET", "/account", None, None, True)

        query = f"recvWindow=60000&timestamp={clock.timestamp_ms()}"
        expected = hmac.new(b"secret-abcdef", query.encode(), hashlib.sha256).hexdigest()
        assert prepared.url == f"https://api.binance.com/api/v3/account?{query}&signature={expected}"
        assert prepared.headers["X-MBX-APIKEY"] == "key-123456"

    def test_binance_sandbox_url(self, clock):
        """Test sandbox credentials route to the testnet."""
        credential = ExchangeCredential(name="binance", api_key="k", api_secret="s", sandbox=True)
        adapter = BinanceAdapter(credential, clock=clock)

        assert adapter.root_url.startswith("https://testnet.binance.vision")

    def test_okx_signature_headers(self, clock):
        """Test OKX base64 signature of timestamp + method + path + body."""
        adapter = OKXAdapter(signed("okx", passphrase="pass"), clock=clock)

        prepared = adapter._prepare("GET", "/account/balance", None, None, True)

        timestamp = prepared.headers["OK-ACCESS-TIMESTAMP"]
        assert timestamp == "2024-01-01T12:00:00.000Z"
        message = f"{timestamp}GET/api/v5/account/balance".encode()
        expected = base64.b64encode(hmac.new(b"secret-abcdef", message, hashlib.sha256).digest()).decode()
        assert prepared.headers["OK-ACCESS-SIGN"] == expected
        assert prepared.headers["OK-ACCESS-PASSPHRASE"] == "pass"

    def test_bybit_signature_over_json_body(self, clock):
        """Test Bybit hex signature of timestamp + key + recv window + body."""
        adapter = BybitAdapter(signed("bybit"), clock=clock)
        body = {"category": "spot", "symbol": "SOLUSDT"}

        prepared = adapter._prepare("POST", "/order/create", None, body, True)

        timestamp = str(clock.timestamp_ms())
        message = f"{timestamp}key-1234565000{json.dumps(body)}".encode()
        assert prepared.headers["X-BAPI-SIGN"] == hmac.new(b"secret-abcdef", message, hashlib.sha256).hexdigest()
        assert prepared.headers["X-BAPI-TIMESTAMP"] == timestamp
        assert prepared.headers["X-BAPI-RECV-WINDOW"] == "5000"
        assert prepared.url == "https://api.bybit.com/v5/order/create"
        assert prepared.body == json.dumps(body)

    def test_bybit_signature_over_query_for_reads(self, clock):
        """Test Bybit signs the query string on GET."""
        adapter = BybitAdapter(signed("bybit"), clock=clock)

        prepared = adapter._prepare("GET", "/account/wallet-balance", {"accountType": "UNIFIED"}, None, True)

        message = f"{clock.timestamp_ms()}key-1234565000accountType=UNIFIED".encode()
        assert prepared.headers["X-BAPI-SIGN"] == hmac.new(b"secret-abcdef", message, hashlib.sha256).hexdigest()
        assert prepared.url.endswith("/account/wallet-balance?accountType=UNIFIED")

    def test_gate_signature_with_hashed_body(self, clock):
        """Test Gate SHA512 signature over method, prefixed path, query, body hash and seconds."""
        adapter = GateAdapter(signed("gate"), clock=clock)

        prepared = adapter._prepare("GET", "/spot/orders", {"currency_pair": "SOL_USDT"}, None, True)

        timestamp = str(clock.timestamp_ms() // 1000)
        empty_body_hash = hashlib.sha512(b"").hexdigest()
        message = f"GET\n/api/v4/spot/orders\ncurrency_pair=SOL_USDT\n{empty_body_hash}\n{timestamp}".encode()
        assert prepared.headers["SIGN"] == hmac.new(b"secret-abcdef", message, hashlib.sha512).hexdigest()
        assert prepared.headers["Timestamp"] == timestamp
        assert prepared.headers["KEY"] == "key-123456"
        assert prepared.url == "https://api.gateio.ws/api/v4/spot/orders?currency_pair=SOL_USDT"

    def test_bitget_signature_headers(self, clock):
        """Test Bitget base64 signature of timestamp + method + path with query."""
        adapter = BitgetAdapter(signed("bitget", passphrase="pass"), clock=clock)

        prepared = adapter._prepare("GET", "/trade/unfilled-orders", {"symbol": "SOLUSDT"}, None, True)

        timestamp = str(clock.timestamp_ms())
        message = f"{timestamp}GET/api/v2/spot/trade/unfilled-orders?symbol=SOLUSDT".encode()
        expected = base64.b64encode(hmac.new(b"secret-abcdef", message, hashlib.sha256).digest()).decode()
        assert prepared.headers["ACCESS-SIGN"] == expected
        assert prepared.headers["ACCESS-PASSPHRASE"] == "pass"
        assert prepared.url == "https://api.bitget.com/api/v2/spot/trade/unfilled-orders?symbol=SOLUSDT"

    def test_unsigned_request_has_no_auth_headers(self, clock):
        """Test public calls carry no credentials."""
        adapter = BinanceAdapter(signed("binance"), clock=clock)

        prepared = adapter._prepare("GET", "/ticker/price", {"symbol": "SOLUSDT"}, None, False)

        assert "X-MBX-APIKEY" not in prepared.headers
        assert "signature" not in prepared.url


# ============================================================
# SYMBOL TESTS
# ============================================================

class TestSymbols:
    """Tests for symbol mapping."""

    def test_split_symbol_known_quotes(self):
        """Test canonical symbols split on the known quote asset."""
        assert split_symbol("SOLUSDT") == ("SOL", "USDT")
        assert split_symbol("ETHBTC") == ("ETH", "BTC")

    def test_split_symbol_unknown_quote_raises(self):
        """Test an unknown quote raises ValueError."""
        with pytest.raises(ValueError):
            split_symbol("SOLXYZ")

    def test_venue_spellings(self, clock):
        """Test each venue dialect."""
        assert BinanceAdapter(ExchangeCredential("binance"), clock=clock).to_venue_symbol("solusdt") == "SOLUSDT"
        assert OKXAdapter(ExchangeCredential("okx"), clock=clock).to_venue_symbol("SOLUSDT") == "SOL-USDT"
        assert GateAdapter(ExchangeCredential("gate"), clock=clock).to_venue_symbol("SOLUSDT") == "SOL_USDT"


# ============================================================
# ERROR MAPPING TESTS
# ============================================================

class TestErrorMapping:
    """Tests for venue error translation."""

    def test_binance_insufficient_balance_is_rejected(self, clock):
        """Test a business error maps to ExchangeRejected."""
        adapter = BinanceAdapter(signed("binance"), clock=clock)

        with pytest.raises(ExchangeRejected) as exc_info:
            adapter._unwrap(400, {"code": -2010, "msg": "Account has insufficient balance"})

        assert exc_info.value.venue == "binance"
        assert exc_info.value.venue_code == "-2010"
        assert "insufficient balance" in str(exc_info.value)

    def test_binance_rate_limit_is_unavailable(self, clock):
        """Test a rate limit maps to ExchangeUnavailable."""
        adapter = BinanceAdapter(signed("binance"), clock=clock)

        with pytest.raises(ExchangeUnavailable):
            adapter._unwrap(429, {"code": -1003, "msg": "Too many requests"})

    def test_okx_row_level_code(self, clock):
        """Test OKX per-row sCode wins over the envelope code."""
        adapter = OKXAdapter(signed("okx", "pass"), clock=clock)

        with pytest.raises(ExchangeRejected) as exc_info:
            adapter._unwrap(200, {"code": "1", "msg": "", "data": [{"sCode": "51008", "sMsg": "Insufficient balance"}]})

        assert exc_info.value.venue_code == "51008"

    def test_okx_success_envelope(self, clock):
        """Test OKX code "0" returns the data rows."""
        adapter = OKXAdapter(signed("okx", "pass"), clock=clock)

        assert adapter._unwrap(200, {"code": "0", "data": [{"last": "150"}]}) == [{"last": "150"}]

    def test_bybit_ret_code(self, clock):
        """Test a non-zero Bybit retCode on HTTP 200 is raised."""
        adapter = BybitAdapter(signed("bybit"), clock=clock)

        with pytest.raises(ExchangeRejected) as exc_info:
            adapter._unwrap(200, {"retCode": 170131, "retMsg": "Insufficient balance.", "result": {}})

        assert exc_info.value.venue_code == "170131"
        assert exc_info.value.context["category"] == ErrorCategory.INSUFFICIENT_FUNDS.value
        with pytest.raises(ExchangeUnavailable):
            adapter._unwrap(200, {"retCode": 10006, "retMsg": "Too many visits!"})
        assert adapter._unwrap(200, {"retCode": 0, "result": {"list": []}}) == {"list": []}

    def test_gate_label(self, clock):
        """Test Gate label bodies map by label."""
        adapter = GateAdapter(signed("gate"), clock=clock)

        with pytest.raises(ExchangeRejected) as exc_info:
            adapter._unwrap(400, {"label": "BALANCE_NOT_ENOUGH", "message": "Not enough balance"})

        assert exc_info.value.venue_code == "BALANCE_NOT_ENOUGH"
        with pytest.raises(ExchangeUnavailable):
            adapter._unwrap(429, {"label": "TOO_MANY_REQUESTS", "message": "Request rate limit exceeded"})
        assert adapter._unwrap(200, [{"last": "150"}]) == [{"last": "150"}]

    def test_bitget_code(self, clock):
        """Test Bitget success is code "00000" only."""
        adapter = BitgetAdapter(signed("bitget", "pass"), clock=clock)

        with pytest.raises(ExchangeRejected) as exc_info:
            adapter._unwrap(400, {"code": "43012", "msg": "Insufficient balance", "data": None})

        assert exc_info.value.venue_code == "43012"
        assert adapter._unwrap(200, {"code": "00000", "data": [{"lastPr": "150"}]}) == [{"lastPr": "150"}]

    def test_http_status_fallbacks(self):
        """Test categorization falls back on HTTP status."""
        assert categorize("binance", None, 503) is ErrorCategory.EXCHANGE_ERROR
        assert categorize("binance", None, 401) is ErrorCategory.AUTHENTICATION
        assert categorize("binance", None, 400) is ErrorCategory.UNKNOWN

    def test_described_error_has_no_credentials(self):
        """Test user-facing text carries venue, message and timestamp only."""
        error = map_venue_error("gate", "BALANCE_NOT_ENOUGH", "Not enough balance")

        text = error.describe()
        assert text.startswith("[gate] Not enough balance")
        assert error.timestamp.isoformat() in text


# ============================================================
# PAYLOAD TESTS
# ============================================================

class TestVenuePayloads:
    """Tests for venue payload parsing and order sizing."""

    @pytest.mark.asyncio
    async def test_bybit_klines_are_reversed(self, clock):
        """Test newest-first Bybit candles come back oldest first."""
        adapter = BybitAdapter(ExchangeCredential("bybit"), clock=clock)
        rows = [
            ["1704110400000", "151", "153", "150", "152", "10"],
            ["1704108600000", "150", "152", "149", "151", "12"],
        ]

        with patch.object(adapter, "_send", AsyncMock(return_value=(200, {"retCode": 0, "result": {"list": rows}}))) as send:
            klines = await adapter.get_klines("SOLUSDT", "30m", 2)

        assert [k.open for k in klines] == [Decimal("150"), Decimal("151")]
        assert klines[0].open_time == datetime(2024, 1, 1, 11, 30, tzinfo=timezone.utc)
        assert klines[1].close == Decimal("152")
        assert "interval=30" in send.await_args.args[0].url

    @pytest.mark.asyncio
    async def test_gate_klines_column_order(self, clock):
        """Test Gate rows [t, quote_volume, close, high, low, open, base_volume] are remapped."""
        adapter = GateAdapter(ExchangeCredential("gate"), clock=clock)
        rows = [
            ["1704108600", "1812", "151", "152", "149", "150", "12", "true"],
            ["1704110400", "1520", "152", "153", "150", "151", "10", "false"],
        ]

        with patch.object(adapter, "_send", AsyncMock(return_value=(200, rows))):
            klines = await adapter.get_klines("SOLUSDT", "30m", 2)

        first = klines[0]
        assert first.open_time == datetime(2024, 1, 1, 11, 30, tzinfo=timezone.utc)
        assert (first.open, first.high, first.low, first.close) == (
            Decimal("150"), Decimal("152"), Decimal("149"), Decimal("151"),
        )
        assert first.volume == Decimal("12")
        assert klines[1].open == Decimal("151")

    @pytest.mark.asyncio
    async def test_bitget_klines_are_sorted(self, clock):
        """Test Bitget candles are sorted by open time and trimmed to the limit."""
        adapter = BitgetAdapter(ExchangeCredential("bitget"), clock=clock)
        rows = [
            ["1704110400000", "152", "153", "151", "152.5", "9"],
            ["1704106800000", "149", "151", "148", "150", "11"],
            ["1704108600000", "150", "152", "149", "151", "12"],
        ]

        with patch.object(adapter, "_send", AsyncMock(return_value=(200, {"code": "00000", "data": rows}))):
            klines = await adapter.get_klines("SOLUSDT", "30m", 2)

        assert [k.open for k in klines] == [Decimal("150"), Decimal("152")]

    @pytest.mark.asyncio
    async def test_gate_market_buy_is_sized_in_quote(self, clock):
        """Test a Gate market buy sends quantity * last price and reports the base fill."""
        adapter = GateAdapter(signed("gate"), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.MARKET, quantity=Decimal("2"))
        filled = {
            "id": "77", "currency_pair": "SOL_USDT", "side": "buy", "type": "market",
            "status": "closed", "finish_as": "filled", "amount": "300", "left": "0",
            "filled_amount": "300", "avg_deal_price": "150",
        }
        responses = [(200, [{"currency_pair": "SOL_USDT", "last": "150"}]), (201, filled)]

        with patch.object(adapter, "_send", AsyncMock(side_effect=responses)) as send:
            order = await adapter.place_order(request)

        body = json.loads(send.await_args_list[1].args[0].body)
        assert body["amount"] == "300"
        assert body["time_in_force"] == "ioc"
        assert order.order_id == "77"
        assert order.requested_qty == Decimal("2")
        assert order.executed_qty == Decimal("2")
        assert order.avg_price == Decimal("150")

    @pytest.mark.asyncio
    async def test_gate_market_sell_is_sized_in_base(self, clock):
        """Test a Gate market sell keeps the base quantity and skips the price lookup."""
        adapter = GateAdapter(signed("gate"), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.SELL, type=OrderType.MARKET, quantity=Decimal("2"))

        with patch.object(adapter, "_send", AsyncMock(return_value=(201, {"id": "78"}))) as send:
            order = await adapter.place_order(request)

        assert send.await_count == 1
        assert json.loads(send.await_args.args[0].body)["amount"] == "2"
        assert order.executed_qty == Decimal("0")


# ============================================================
# RETRY TESTS
# ============================================================

class TestRetry:
    """Tests for the bounded retry loop."""

    @pytest.mark.asyncio
    async def test_read_retries_three_times(self, clock):
        """Test a failing GET is attempted exactly three times."""
        adapter = BinanceAdapter(ExchangeCredential("binance"), clock=clock)
        failure = ExchangeUnavailable("binance", "Network error")

        with patch.object(adapter, "_send", AsyncMock(side_effect=[failure, failure, failure])) as send, \
                patch("exchanges.base.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ExchangeUnavailable):
                await adapter.get_price("SOLUSDT")

        assert send.await_count == 3
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_read_recovers_after_transient_failure(self, clock):
        """Test a retry returns the venue payload."""
        adapter = BinanceAdapter(ExchangeCredential("binance"), clock=clock)
        responses = [ExchangeUnavailable("binance", "timeout"), (200, {"symbol": "SOLUSDT", "price": "150.50"})]

        with patch.object(adapter, "_send", AsyncMock(side_effect=responses)) as send, \
                patch("exchanges.base.asyncio.sleep", new=AsyncMock()):
            price = await adapter.get_price("SOLUSDT")

        assert price == Decimal("150.50")
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_rejection_is_not_retried(self, clock):
        """Test a business error on a read fails immediately."""
        adapter = BinanceAdapter(ExchangeCredential("binance"), clock=clock)

        with patch.object(adapter, "_send", AsyncMock(return_value=(400, {"code": -1121, "msg": "Invalid symbol"}))) as send:
            with pytest.raises(ExchangeRejected):
                await adapter.get_price("FOOUSDT")

        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_order_placement_is_not_retried(self, clock):
        """Test writes are sent once even on transient failure."""
        adapter = BinanceAdapter(signed("binance"), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.MARKET, quantity=Decimal("1"))

        with patch.object(adapter, "_send", AsyncMock(side_effect=ExchangeUnavailable("binance", "timeout"))) as send:
            with pytest.raises(ExchangeUnavailable):
                await adapter.place_order(request)

        assert send.await_count == 1

    def test_backoff_is_capped(self, clock):
        """Test delay is min(attempt * 1s, 5s)."""
        adapter = BinanceAdapter(ExchangeCredential("binance"), clock=clock)

        assert [adapter.backoff_delay(n) for n in (1, 2, 5, 9)] == [1.0, 2.0, 5.0, 5.0]

    @pytest.mark.asyncio
    async def test_public_mode_rejects_signed_calls_without_io(self, clock):
        """Test unconfigured venues never send signed requests."""
        adapter = BinanceAdapter(ExchangeCredential("binance"), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.MARKET, quantity=Decimal("1"))

        with patch.object(adapter, "_send", AsyncMock()) as send:
            with pytest.raises(ExchangeRejected, match="requires API credentials"):
                await adapter.place_order(request)

        send.assert_not_awaited()


# ============================================================
# LOGGING TESTS
# ============================================================

class TestMasking:
    """Tests for credential masking."""

    def test_mask_value(self):
        """Test secrets keep only a short prefix."""
        assert mask_value("abcdef123456") == "abcd...***"
        assert mask_value("abc") == "***"

    def test_mask_headers(self):
        """Test auth headers are masked and others kept."""
        masked = mask_headers({"X-MBX-APIKEY": "abcdef123456", "Content-Type": "application/json"})

        assert masked["X-MBX-APIKEY"] == "abcd...***"
        assert masked["Content-Type"] == "application/json"

    def test_mask_params_nested(self):
        """Test signature params are masked at any depth."""
        masked = mask_params({"symbol": "SOLUSDT", "signature": "deadbeefcafe", "inner": {"signature": "0123456789"}})

        assert masked["symbol"] == "SOLUSDT"
        assert masked["signature"] == "dead...***"
        assert masked["inner"]["signature"] == "0123...***"


# ============================================================
# CONFIG AND FACTORY TESTS
# ============================================================

class TestConfigAndFactory:
    """Tests for credential loading and adapter creation."""

    def test_unconfigured_venue_is_public(self):
        """Test missing keys yield a public-data-only credential."""
        config = ExchangeConfigManager(environ={})

        credential = config.get("binance")
        assert credential is not None
        assert credential.api_key == ""
        assert not credential.has_keys
        assert config.get_summary()["binance"]["mode"] == "public"

    def test_passphrase_required_for_okx(self):
        """Test OKX keys without passphrase are reported."""
        config = ExchangeConfigManager(environ={"OKX_API_KEY": "k", "OKX_SECRET_KEY": "s"})

        assert config.validate(config.get("okx")) == ["okx: passphrase is required"]

    def test_summary_never_contains_secret(self):
        """Test the masked summary hides secrets."""
        config = ExchangeConfigManager(environ={"BINANCE_API_KEY": "key-123456", "BINANCE_API_SECRET": "topsecret"})

        summary = str(config.get_summary())
        assert "topsecret" not in summary
        assert "key-...***" in summary

    def test_inactive_flag(self):
        """Test <VENUE>_ACTIVE=false drops the venue from the active set."""
        config = ExchangeConfigManager(environ={"GATE_ACTIVE": "false"})

        assert "gate" not in [c.name for c in config.get_active()]

    def test_factory_supported_and_unknown(self):
        """Test the factory registry."""
        assert {"binance", "okx", "bybit", "gate", "bitget"} <= set(AdapterFactory.supported())
        with pytest.raises(ValueError, match="Unsupported exchange"):
            AdapterFactory.create(ExchangeCredential(name="nowhere"))

    def test_env_template_lists_variables(self):
        """Test the template names every credential variable."""
        template = ExchangeConfigManager.env_template()

        assert "OKX_PASSPHRASE=" in template
        assert "BITGET_SECRET_KEY=" in template


# ============================================================
# MOCK ADAPTER TESTS
# ============================================================

class TestMockAdapter:
    """Tests for the in-memory venue."""

    @pytest.mark.asyncio
    async def test_market_buy_moves_balances(self, clock):
        """Test a filled market buy debits quote and credits base."""
        adapter = MockExchangeAdapter(MockConfig(prices={"SOLUSDT": Decimal("150")}), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.MARKET, quantity=Decimal("2"))

        order = await adapter.place_order(request)

        assert order.fill_price == Decimal("150")
        assert (await adapter.get_balance("USDT")).free == Decimal("9700")
        assert (await adapter.get_balance("SOL")).free == Decimal("2")

    @pytest.mark.asyncio
    async def test_insufficient_balance_rejected(self, clock):
        """Test a buy beyond the quote balance is rejected."""
        adapter = MockExchangeAdapter(MockConfig(balances={"USDT": Decimal("10")}), clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.MARKET, quantity=Decimal("1"))

        with pytest.raises(ExchangeRejected):
            await adapter.place_order(request)

    @pytest.mark.asyncio
    async def test_injected_failure_is_consumed(self, clock):
        """Test counted failures apply to the next calls only."""
        adapter = MockExchangeAdapter(clock=clock)
        adapter.inject_failure("get_price", ExchangeUnavailable("mock", "down"), times=1)

        with pytest.raises(ExchangeUnavailable):
            await adapter.get_price("SOLUSDT")
        assert await adapter.get_price("SOLUSDT") == Decimal("100")
        assert adapter.call_count("get_price") == 2

    @pytest.mark.asyncio
    async def test_malformed_request_is_validation_error(self, clock):
        """Test a LIMIT order without price never reaches the venue."""
        adapter = MockExchangeAdapter(clock=clock)
        request = NormalizedOrderRequest(symbol="SOLUSDT", side=OrderSide.BUY, type=OrderType.LIMIT, quantity=Decimal("1"))

        with pytest.raises(ValidationError):
            await adapter.place_order(request)
        assert adapter.call_count("place_order") == 0

    @pytest.mark.asyncio
    async def test_account_info(self, clock):
        """Test the account summary lists every balance."""
        adapter = MockExchangeAdapter(MockConfig(name="okx", balances={"USDT": "500", "SOL": "3"}), clock=clock)

        info = await adapter.get_account_info()

        assert info.exchange_name == "okx"
        assert info.balance("sol").free == Decimal("3")
        assert info.can_trade
