"""
Repository Contract Tests.

============================================================
PURPOSE
============================================================
The same behaviour is expected from the in-memory store and
the SQLAlchemy store (SQLite in memory).

TEST CATEGORIES:
- DCA position tests: upsert, conditional claim, fills
- Ledger tests: ordering, filters, realized PnL
- Signal record tests: insert, update, queries, duplicates
- Tracked position tests: round trip, filters, unknown ids
- Database tests: health check, URL masking
============================================================
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from dca import DCAPositionState, DCASettings
from exchanges import OrderSide, OrderType
from positions import PositionSide, PositionStatus, TrackedPosition
from signals import SignalAction, SignalRecord, SignalStatus, TradeSignal
from storage.database import Database, DatabaseConfig
from storage.memory import InMemoryTradingRepository
from storage.records import TradeLedgerEntry
from storage.repository import StorageError


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request):
    if request.param == "memory":
        yield InMemoryTradingRepository()
        return
    db = Database(DatabaseConfig(url="sqlite+aiosqlite:///:memory:"))
    await db.create_tables()
    yield db.repository()
    await db.close()


def position(clock, symbol="SOLUSDT", active=True):
    return DCAPositionState(
        symbol=symbol,
        exchange="binance",
        is_active=active,
        settings=DCASettings(base_amount=Decimal("30"), max_orders=4, price_deviation_pct=2.5, stop_loss_pct=8.0),
        created_at=clock.now(),
        updated_at=clock.now(),
    )


def trade(clock, side, quantity, price, symbol="SOLUSDT", minutes_ago=0):
    return TradeLedgerEntry(
        exchange="binance",
        symbol=symbol,
        side=side,
        order_type="MARKET",
        quantity=Decimal(quantity),
        price=Decimal(price),
        order_id="o-1",
        strategy="manual",
        status="FILLED",
        created_at=clock.now() - timedelta(minutes=minutes_ago),
    )


def tracked(clock, position_id, minutes_ago=0):
    created = clock.now() - timedelta(minutes=minutes_ago)
    return TrackedPosition(
        id=position_id,
        symbol="SOLUSDT",
        exchange="binance",
        side=PositionSide.LONG,
        quantity=Decimal("2"),
        entry_price=Decimal("150"),
        status=PositionStatus.OPEN,
        created_at=created,
        updated_at=created,
    )


def record(clock, record_id, symbol="SOLUSDT", minutes_ago=0):
    created = clock.now() - timedelta(minutes=minutes_ago)
    return SignalRecord(
        id=record_id,
        raw_signal={"symbol": symbol, "action": "BUY"},
        trade_signal=TradeSignal(
            symbol=symbol,
            action=SignalAction.BUY,
            exchange="binance",
            order_type=OrderType.MARKET,
            quantity=Decimal("1"),
            price=None,
            confidence=80.0,
            strategy="manual",
            timestamp=created,
        ),
        status=SignalStatus.PENDING,
        created_at=created,
        updated_at=created,
    )


# ============================================================
# DCA POSITION TESTS
# ============================================================

class TestDCAPositions:
    """Tests for DCA position persistence."""

    @pytest.mark.asyncio
    async def test_upsert_and_get(self, store, clock):
        """Test a stored position reads back with its settings."""
        await store.upsert_dca_position(position(clock))

        state = await store.get_dca_position("solusdt")

        assert state.symbol == "SOLUSDT"
        assert state.settings.max_orders == 4
        assert state.settings.base_amount == Decimal("30")
        assert (state.settings.price_deviation_pct, state.settings.take_profit_pct, state.settings.stop_loss_pct) == (2.5, 1.5, 8.0)
        assert state.created_at == clock.now()
        assert await store.get_dca_position("ETHUSDT") is None

    @pytest.mark.asyncio
    async def test_list_active_only(self, store, clock):
        """Test stopped positions are filtered out on request."""
        await store.upsert_dca_position(position(clock, "SOLUSDT"))
        await store.upsert_dca_position(position(clock, "ETHUSDT", active=False))

        assert [s.symbol for s in await store.list_dca_positions()] == ["ETHUSDT", "SOLUSDT"]
        assert [s.symbol for s in await store.list_dca_positions(active_only=True)] == ["SOLUSDT"]

    @pytest.mark.asyncio
    async def test_claim_is_conditional(self, store, clock):
        """Test only the first claim from an index succeeds."""
        await store.upsert_dca_position(position(clock))

        assert await store.claim_dca_order("SOLUSDT", 0)
        assert not await store.claim_dca_order("SOLUSDT", 0)
        assert (await store.get_dca_position("SOLUSDT")).current_order_index == 1
        assert not await store.claim_dca_order("ETHUSDT", 0)

    @pytest.mark.asyncio
    async def test_release_undoes_claim(self, store, clock):
        """Test release only rolls back the matching claim."""
        await store.upsert_dca_position(position(clock))
        await store.claim_dca_order("SOLUSDT", 0)

        assert not await store.release_dca_order("SOLUSDT", 3)
        assert await store.release_dca_order("SOLUSDT", 0)
        assert (await store.get_dca_position("SOLUSDT")).current_order_index == 0

    @pytest.mark.asyncio
    async def test_record_fill_accumulates(self, store, clock):
        """Test fills add to the invested total and keep the last amount."""
        await store.upsert_dca_position(position(clock))

        await store.record_dca_fill("SOLUSDT", Decimal("45"), Decimal("44.5"), clock.now())
        state = await store.record_dca_fill("SOLUSDT", Decimal("67.5"), Decimal("67"), clock.now())

        assert state.last_order_amount == Decimal("67.5")
        assert state.total_invested == Decimal("111.5")
        assert state.last_checked_at == clock.now()

    @pytest.mark.asyncio
    async def test_record_fill_unknown_position(self, store, clock):
        """Test a fill for a missing position raises StorageError."""
        with pytest.raises(StorageError):
            await store.record_dca_fill("SOLUSDT", Decimal("1"), Decimal("1"), clock.now())

    @pytest.mark.asyncio
    async def test_delete(self, store, clock):
        """Test delete reports whether a row existed."""
        await store.upsert_dca_position(position(clock))

        assert await store.delete_dca_position("SOLUSDT")
        assert not await store.delete_dca_position("SOLUSDT")


# ============================================================
# LEDGER TESTS
# ============================================================

class TestLedger:
    """Tests for the append-only trade ledger."""

    @pytest.mark.asyncio
    async def test_append_assigns_ids(self, store, clock):
        """Test each entry gets a distinct id."""
        first = await store.append_trade(trade(clock, OrderSide.BUY, "1", "100"))
        second = await store.append_trade(trade(clock, OrderSide.SELL, "1", "110"))

        assert first.id is not None
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_list_newest_first_with_filters(self, store, clock):
        """Test ordering, the symbol filter, since and limit."""
        await store.append_trade(trade(clock, OrderSide.BUY, "1", "100", minutes_ago=30))
        await store.append_trade(trade(clock, OrderSide.BUY, "2", "100", symbol="ETHUSDT", minutes_ago=20))
        await store.append_trade(trade(clock, OrderSide.SELL, "1", "105", minutes_ago=10))

        trades = await store.list_trades()
        assert [t.symbol for t in trades] == ["SOLUSDT", "ETHUSDT", "SOLUSDT"]
        assert trades[0].side is OrderSide.SELL

        assert len(await store.list_trades("solusdt")) == 2
        assert len(await store.list_trades(since=clock.now() - timedelta(minutes=15))) == 1
        assert len(await store.list_trades(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_realized_pnl(self, store, clock):
        """Test sells add notional, buys subtract, older entries are ignored."""
        await store.append_trade(trade(clock, OrderSide.BUY, "2", "100", minutes_ago=120))
        await store.append_trade(trade(clock, OrderSide.BUY, "1", "100", minutes_ago=30))
        await store.append_trade(trade(clock, OrderSide.SELL, "1", "110", minutes_ago=10))

        pnl = await store.realized_pnl_since(clock.now() - timedelta(hours=1))

        assert pnl == Decimal("10")

    @pytest.mark.asyncio
    async def test_empty_ledger_pnl(self, store, clock):
        """Test no trades means zero PnL."""
        assert await store.realized_pnl_since(clock.now()) == Decimal("0")


# ============================================================
# SIGNAL RECORD TESTS
# ============================================================

class TestSignalRecords:
    """Tests for signal audit records."""

    @pytest.mark.asyncio
    async def test_insert_and_update(self, store, clock):
        """Test a record moves from PENDING to a terminal state."""
        pending = await store.insert_signal_record(record(clock, "r1"))
        rejected = pending.transition(SignalStatus.REJECTED, clock.now(), error="Risk check failed: x")

        await store.update_signal_record(rejected)
        stored = await store.get_signal_record("r1")

        assert stored.status is SignalStatus.REJECTED
        assert stored.error == "Risk check failed: x"
        assert stored.raw_signal == {"symbol": "SOLUSDT", "action": "BUY"}
        assert stored.trade_signal.quantity == Decimal("1")
        assert stored.created_at == clock.now()

    @pytest.mark.asyncio
    async def test_duplicate_insert(self, store, clock):
        """Test inserting the same id twice raises StorageError."""
        await store.insert_signal_record(record(clock, "r1"))

        with pytest.raises(StorageError):
            await store.insert_signal_record(record(clock, "r1"))

    @pytest.mark.asyncio
    async def test_update_unknown(self, store, clock):
        """Test updating a record that was never inserted raises StorageError."""
        with pytest.raises(StorageError) as exc_info:
            await store.update_signal_record(record(clock, "missing"))

        assert exc_info.value.operation == "update_signal_record"

    @pytest.mark.asyncio
    async def test_list_and_count(self, store, clock):
        """Test newest-first listing and the per-symbol window count."""
        await store.insert_signal_record(record(clock, "old", minutes_ago=90))
        await store.insert_signal_record(record(clock, "mid", minutes_ago=30))
        await store.insert_signal_record(record(clock, "new", minutes_ago=5))
        await store.insert_signal_record(record(clock, "eth", symbol="ETHUSDT", minutes_ago=1))

        assert [r.id for r in await store.list_signal_records(limit=3)] == ["eth", "new", "mid"]
        assert await store.count_signals_since("SOLUSDT", clock.now() - timedelta(hours=1)) == 2
        assert await store.count_signals_since("ETHUSDT", clock.now() - timedelta(hours=1)) == 1


# ============================================================
# TRACKED POSITION TESTS
# ============================================================

class TestTrackedPositions:
    """Tests for tracked position persistence."""

    @pytest.mark.asyncio
    async def test_insert_update_and_get(self, store, clock):
        """Test trailing fields and the closed state survive a round trip."""
        opened = tracked(clock, "p1")
        await store.insert_position(opened)
        armed = replace(
            opened,
            trailing_enabled=True,
            trailing_distance_pct=Decimal("5"),
            trailing_stop_price=Decimal("142.5"),
            highest_price=Decimal("150"),
        )
        await store.update_position(armed)
        await store.update_position(armed.closed(Decimal("140"), "binance-9", "trailing_stop", clock.now()))

        stored = await store.get_position("p1")

        assert stored.status is PositionStatus.CLOSED
        assert stored.side is PositionSide.LONG
        assert stored.trailing_stop_price == Decimal("142.5")
        assert stored.exit_price == Decimal("140")
        assert stored.pnl == Decimal("-20")
        assert stored.close_order_id == "binance-9"
        assert stored.exit_at == clock.now()
        assert await store.get_position("missing") is None

    @pytest.mark.asyncio
    async def test_list_filters(self, store, clock):
        """Test open and trailing filters, oldest first."""
        await store.insert_position(tracked(clock, "plain", minutes_ago=30))
        await store.insert_position(replace(tracked(clock, "armed", minutes_ago=20), trailing_enabled=True))
        await store.insert_position(replace(
            tracked(clock, "done", minutes_ago=10), trailing_enabled=True, status=PositionStatus.CLOSED
        ))

        assert [p.id for p in await store.list_positions()] == ["plain", "armed", "done"]
        assert [p.id for p in await store.list_positions(open_only=True)] == ["plain", "armed"]
        assert [p.id for p in await store.list_positions(open_only=True, trailing_only=True)] == ["armed"]

    @pytest.mark.asyncio
    async def test_update_unknown(self, store, clock):
        """Test updating a position that was never inserted raises StorageError."""
        with pytest.raises(StorageError) as exc_info:
            await store.update_position(tracked(clock, "missing"))

        assert exc_info.value.operation == "update_position"


# ============================================================
# DATABASE TESTS
# ============================================================

class TestDatabase:
    """Tests for the engine wrapper."""

    @pytest.mark.asyncio
    async def test_health_check(self, database):
        """Test a live in-memory database answers SELECT 1."""
        assert await database.health_check()

    @pytest.mark.asyncio
    async def test_repository_shares_engine(self, database, sql_repository, clock):
        """Test repositories built from one database see the same rows."""
        await sql_repository.upsert_dca_position(position(clock))

        assert await database.repository().get_dca_position("SOLUSDT") is not None

    def test_masked_url(self):
        """Test credentials are hidden in log output."""
        config = DatabaseConfig(url="postgresql+asyncpg://bot:secret@db:5432/trading")

        assert "secret" not in config.masked_url()
