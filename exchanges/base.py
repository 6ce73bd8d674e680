"""
Exchanges - Adapter Base.

============================================================
PURPOSE
============================================================
The venue-independent adapter contract and the shared REST
plumbing every concrete venue builds on.

DESIGN PRINCIPLES:
- One contract, one implementation per venue
- Only idempotent reads (GET) are retried automatically
- Writes are sent exactly once; an ambiguous failure after send
  surfaces to the caller instead of risking a double submit
- Retry loop is explicit: 3 attempts, delay min(attempt * 1s, 5s)

============================================================
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from core.clock import ClockProtocol, get_clock
from core.exceptions import ExchangeUnavailable, ValidationError

from .errors import map_transport_error, missing_credentials_error
from .logging_utils import AdapterLogger
from .types import (
    AccountInfo,
    Balance,
    ExchangeCredential,
    Kline,
    NormalizedOrderRequest,
    NormalizedOrderResult,
    Ticker24h,
    TradeFill,
)


logger = logging.getLogger(__name__)


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Parse a venue numeric field. Empty strings and None become ``default``."""
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(default)


def decimal_str(value: Decimal) -> str:
    """Plain (non-exponent) string for a venue payload."""
    return format(value.normalize(), "f")


# ============================================================
# ADAPTER CONTRACT
# ============================================================

class ExchangeAdapter(ABC):
    """
    Abstract interface for venue adapters.

    Every method suspends on a network round trip. Symbols passed
    in are canonical (``SOLUSDT``); results are normalized types.
    """

    name: str = "abstract"

    def __init__(self, credential: ExchangeCredential, clock: Optional[ClockProtocol] = None):
        self.credential = credential
        self._clock = clock or get_clock()

    @property
    def has_credentials(self) -> bool:
        return self.credential.has_keys

    @property
    def sandbox(self) -> bool:
        return self.credential.sandbox

    @abstractmethod
    def to_venue_symbol(self, symbol: str) -> str:
        """Canonical symbol to venue spelling (outbound only)."""
        pass

    # ----- market data -----

    @abstractmethod
    async def get_price(self, symbol: str) -> Decimal:
        """Last trade price."""
        pass

    @abstractmethod
    async def get_klines(self, symbol: str, interval: str = "30m", limit: int = 200) -> List[Kline]:
        """Candles, oldest first, at most ``limit``."""
        pass

    @abstractmethod
    async def get_24h_ticker(self, symbol: str) -> Ticker24h:
        pass

    # ----- account -----

    @abstractmethod
    async def get_all_balances(self) -> List[Balance]:
        pass

    async def get_balance(self, asset: str) -> Balance:
        """Balance for one asset. Unknown or empty assets return a zeroed record."""
        asset = asset.upper()
        for balance in await self.get_all_balances():
            if balance.asset == asset:
                return balance
        return Balance.zero(asset)

    async def get_account_info(self) -> AccountInfo:
        balances = await self.get_all_balances()
        return AccountInfo(exchange_name=self.name, balances=tuple(balances))

    # ----- orders -----

    @abstractmethod
    async def place_order(self, request: NormalizedOrderRequest) -> NormalizedOrderResult:
        """Returns once the venue acknowledges. Never retried."""
        pass

    @abstractmethod
    async def cancel_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        pass

    @abstractmethod
    async def get_order(self, symbol: str, order_id: str) -> NormalizedOrderResult:
        pass

    @abstractmethod
    async def get_open_orders(self, symbol: Optional[str] = None) -> List[NormalizedOrderResult]:
        pass

    @abstractmethod
    async def get_trade_history(self, symbol: str, limit: int = 50) -> List[TradeFill]:
        pass

    @abstractmethod
    async def get_order_history(self, symbol: str, limit: int = 50) -> List[NormalizedOrderResult]:
        pass

    # ----- lifecycle -----

    async def close(self) -> None:
        pass

    async def __aenter__(self) -> "ExchangeAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def check_order_request(self, request: NormalizedOrderRequest) -> None:
        problems = request.validate()
        if problems:
            raise ValidationError(
                f"Invalid order request for {self.name}: " + "; ".join(problems),
                field="order",
            )

    def __repr__(self) -> str:
        mode = "sandbox" if self.sandbox else "live"
        auth = "signed" if self.has_credentials else "public"
        return f"<{type(self).__name__} {self.name} {mode} {auth}>"


# ============================================================
# REST PLUMBING
# ============================================================

@dataclass
class PreparedRequest:
    """A fully built (and, if needed, signed) HTTP request."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


class RestExchangeAdapter(ExchangeAdapter):
    """
    Shared aiohttp plumbing for REST venues.

    Subclasses provide ``base_url``, ``_prepare`` (URL, headers,
    signing) and ``_unwrap`` (venue envelope and error body handling).
    """

    base_url: str = ""
    sandbox_url: Optional[str] = None

    max_retries: int = 3
    """Attempts for idempotent reads, including the first."""

    retry_backoff_base: float = 1.0
    """Seconds added per failed attempt."""

    retry_backoff_cap: float = 5.0
    """Upper bound on a single retry delay."""

    request_timeout: float = 15.0

    def __init__(
        self,
        credential: ExchangeCredential,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        super().__init__(credential, clock=clock)
        self._session = session
        self._owns_session = session is None
        self._log = AdapterLogger(self.name)

    @property
    def root_url(self) -> str:
        if self.sandbox and self.sandbox_url:
            return self.sandbox_url
        return self.base_url

    def backoff_delay(self, attempt: int) -> float:
        return min(attempt * self.retry_backoff_base, self.retry_backoff_cap)

    def _timestamp_ms(self) -> int:
        return self._clock.timestamp_ms()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    # ----- hooks -----

    @abstractmethod
    def _prepare(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Dict[str, Any]],
        signed: bool,
    ) -> PreparedRequest:
        pass

    @abstractmethod
    def _unwrap(self, status: int, data: Any) -> Any:
        """Return the payload or raise the mapped ExchangeError."""
        pass

    # ----- transport -----

    async def _send(self, prepared: PreparedRequest) -> Tuple[int, Any]:
        """One HTTP round trip. Transport failures become ExchangeUnavailable."""
        session = await self._get_session()
        try:
            async with session.request(
                prepared.method,
                prepared.url,
                data=prepared.body,
                headers=prepared.headers,
            ) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {"raw": (await response.text())[:200]}
                return response.status, data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise map_transport_error(self.name, e) from e

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        signed: bool = False,
        retry: Optional[bool] = None,
    ) -> Any:
        """
        Send a request, retrying transient failures of reads.

        Args:
            method: HTTP method
            path: Venue path, appended to the root URL
            params: Query parameters
            body: JSON body for writes
            signed: Attach authentication headers / signature
            retry: Override retry policy (defaults to GET only)

        Returns:
            Unwrapped venue payload
        """
        if signed and not self.has_credentials:
            raise missing_credentials_error(self.name, f"{method} {path}")

        if retry is None:
            retry = method == "GET"
        attempts = self.max_retries if retry else 1

        for attempt in range(1, attempts + 1):
            prepared = self._prepare(method, path, params, body, signed)
            request_id = self._log.log_request(
                method, path, params=params, headers=prepared.headers,
                body=prepared.body, attempt=attempt,
            )
            started = time.monotonic()
            try:
                status, data = await self._send(prepared)
                self._log.log_response(request_id, status, (time.monotonic() - started) * 1000)
                return self._unwrap(status, data)
            except ExchangeUnavailable as e:
                if attempt >= attempts:
                    raise
                delay = self.backoff_delay(attempt)
                self._log.log_retry(path, attempt, delay, e)
                await asyncio.sleep(delay)

        raise AssertionError("unreachable")
