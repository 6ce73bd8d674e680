"""
Shared fixtures.

Venues are MockExchangeAdapter instances registered on a real
ExchangeManager; time comes from a MockClock.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

import pytest
import pytest_asyncio

from core.clock import MockClock
from exchanges.manager import ExchangeManager
from exchanges.mock import MockConfig, MockExchangeAdapter
from exchanges.types import Kline
from storage.database import Database, DatabaseConfig
from storage.memory import InMemoryTradingRepository


START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_klines(closes: List[float], volume: float = 10.0, spread: float = 0.5) -> List[Kline]:
    """Candles with the given closes, oldest first, 30 minutes apart."""
    start = START - timedelta(minutes=30 * len(closes))
    klines = []
    previous = closes[0]
    for i, close in enumerate(closes):
        klines.append(Kline(
            open_time=start + timedelta(minutes=30 * i),
            open=Decimal(str(previous)),
            high=Decimal(str(max(previous, close) + spread)),
            low=Decimal(str(min(previous, close) - spread)),
            close=Decimal(str(close)),
            volume=Decimal(str(volume)),
        ))
        previous = close
    return klines


def falling_closes(count: int = 200, start: float = 200.0, step: float = 0.4) -> List[float]:
    """Steady decline: last close sits well below the EMA89."""
    return [start - step * i for i in range(count)]


@pytest.fixture
def kline_factory():
    return make_klines


@pytest.fixture
def falling_klines():
    return make_klines(falling_closes())


@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def binance(clock):
    return MockExchangeAdapter(MockConfig(name="binance", prices={"SOLUSDT": Decimal("150.00")}), clock=clock)


@pytest.fixture
def okx(clock):
    return MockExchangeAdapter(MockConfig(name="okx", prices={"SOLUSDT": Decimal("150.60")}), clock=clock)


@pytest.fixture
def manager(clock, binance, okx):
    manager = ExchangeManager(clock=clock, price_timeout=1.0)
    manager.register(binance)
    manager.register(okx)
    return manager


@pytest.fixture
def repository():
    return InMemoryTradingRepository()


@pytest_asyncio.fixture
async def database():
    db = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
    await db.create_tables()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def sql_repository(database):
    return database.repository()
