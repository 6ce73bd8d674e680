"""
Storage - SQL Repository.

============================================================
PURPOSE
============================================================
SQLAlchemy 2.0 async implementation of the repository contract.

Every public method runs in its own session and transaction.
Database errors are logged and re-raised as StorageError.

============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dca.models import DCAPositionState, DCASettings
from exchanges.types import OrderSide
from positions.models import PositionSide, PositionStatus, TrackedPosition
from signals.models import ExecutionResult, RiskCheckResult, SignalRecord, SignalStatus, TradeSignal

from .models import DCAPositionModel, SignalRecordModel, TrackedPositionModel, TradeLedgerModel
from .records import TradeLedgerEntry
from .repository import StorageError, TradingRepository


logger = logging.getLogger(__name__)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stores without native timezone support return naive UTC values."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ============================================================
# ROW <-> DOMAIN MAPPING
# ============================================================


def _position_to_domain(row: DCAPositionModel) -> DCAPositionState:
    return DCAPositionState(
        symbol=row.symbol,
        exchange=row.exchange,
        is_active=row.is_active,
        settings=DCASettings(
            base_amount=Decimal(row.base_amount),
            max_orders=row.max_orders,
            price_deviation_pct=row.price_deviation_pct,
            take_profit_pct=row.take_profit_pct,
            stop_loss_pct=row.stop_loss_pct,
        ),
        current_order_index=row.current_order_index,
        total_invested=Decimal(row.total_invested),
        last_order_amount=Decimal(row.last_order_amount) if row.last_order_amount is not None else None,
        last_checked_at=_utc(row.last_checked_at),
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _apply_position(row: DCAPositionModel, state: DCAPositionState) -> None:
    row.exchange = state.exchange
    row.is_active = state.is_active
    row.base_amount = Decimal(str(state.settings.base_amount))
    row.max_orders = state.settings.max_orders
    row.price_deviation_pct = state.settings.price_deviation_pct
    row.take_profit_pct = state.settings.take_profit_pct
    row.stop_loss_pct = state.settings.stop_loss_pct
    row.current_order_index = state.current_order_index
    row.total_invested = state.total_invested
    row.last_order_amount = state.last_order_amount
    row.last_checked_at = state.last_checked_at
    row.created_at = state.created_at
    row.updated_at = state.updated_at


def _trade_to_domain(row: TradeLedgerModel) -> TradeLedgerEntry:
    return TradeLedgerEntry(
        id=row.id,
        exchange=row.exchange,
        symbol=row.symbol,
        side=OrderSide(row.side),
        order_type=row.order_type,
        quantity=Decimal(row.quantity),
        price=Decimal(row.price),
        order_id=row.order_id,
        strategy=row.strategy,
        status=row.status,
        created_at=_utc(row.created_at),
    )


def _signal_to_domain(row: SignalRecordModel) -> SignalRecord:
    return SignalRecord(
        id=row.id,
        raw_signal=row.raw_signal,
        trade_signal=TradeSignal.from_dict(row.trade_signal),
        status=SignalStatus(row.status),
        risk_check=RiskCheckResult.from_dict(row.risk_check) if row.risk_check else None,
        execution_result=ExecutionResult.from_dict(row.execution_result) if row.execution_result else None,
        error=row.error,
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
    )


def _apply_signal(row: SignalRecordModel, record: SignalRecord) -> None:
    row.symbol = record.symbol
    row.status = record.status.value
    row.raw_signal = record.raw_signal
    row.trade_signal = record.trade_signal.to_dict()
    row.risk_check = record.risk_check.to_dict() if record.risk_check else None
    row.execution_result = record.execution_result.to_dict() if record.execution_result else None
    row.error = record.error
    row.created_at = record.created_at
    row.updated_at = record.updated_at


def _optional_decimal(value) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _tracked_to_domain(row: TrackedPositionModel) -> TrackedPosition:
    return TrackedPosition(
        id=row.id,
        symbol=row.symbol,
        exchange=row.exchange,
        side=PositionSide(row.side),
        quantity=Decimal(row.quantity),
        entry_price=Decimal(row.entry_price),
        status=PositionStatus(row.status),
        created_at=_utc(row.created_at),
        updated_at=_utc(row.updated_at),
        trailing_enabled=row.trailing_enabled,
        trailing_distance_pct=_optional_decimal(row.trailing_distance_pct),
        trailing_stop_price=_optional_decimal(row.trailing_stop_price),
        highest_price=_optional_decimal(row.highest_price),
        lowest_price=_optional_decimal(row.lowest_price),
        exit_price=_optional_decimal(row.exit_price),
        exit_at=_utc(row.exit_at),
        close_order_id=row.close_order_id,
        close_reason=row.close_reason,
        pnl=_optional_decimal(row.pnl),
        pnl_percent=_optional_decimal(row.pnl_percent),
    )


def _apply_tracked(row: TrackedPositionModel, position: TrackedPosition) -> None:
    row.symbol = position.symbol
    row.exchange = position.exchange
    row.side = position.side.value
    row.quantity = position.quantity
    row.entry_price = position.entry_price
    row.status = position.status.value
    row.trailing_enabled = position.trailing_enabled
    row.trailing_distance_pct = position.trailing_distance_pct
    row.trailing_stop_price = position.trailing_stop_price
    row.highest_price = position.highest_price
    row.lowest_price = position.lowest_price
    row.exit_price = position.exit_price
    row.exit_at = position.exit_at
    row.close_order_id = position.close_order_id
    row.close_reason = position.close_reason
    row.pnl = position.pnl
    row.pnl_percent = position.pnl_percent
    row.created_at = position.created_at
    row.updated_at = position.updated_at


# ============================================================
# REPOSITORY
# ============================================================


class SqlTradingRepository(TradingRepository):
    """Repository over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error("Database error in %s: %s", operation, e, exc_info=True)
            raise StorageError(operation, str(e), cause=e) from e

    # ============================================================
    # DCA POSITIONS
    # ============================================================

    async def get_dca_position(self, symbol: str) -> Optional[DCAPositionState]:
        async with self._transaction("get_dca_position") as session:
            row = await session.get(DCAPositionModel, symbol.upper())
            return _position_to_domain(row) if row is not None else None

    async def list_dca_positions(self, active_only: bool = False) -> List[DCAPositionState]:
        query = select(DCAPositionModel).order_by(DCAPositionModel.symbol)
        if active_only:
            query = query.where(DCAPositionModel.is_active.is_(True))
        async with self._transaction("list_dca_positions") as session:
            result = await session.execute(query)
            return [_position_to_domain(row) for row in result.scalars()]

    async def upsert_dca_position(self, state: DCAPositionState) -> DCAPositionState:
        async with self._transaction("upsert_dca_position") as session:
            row = await session.get(DCAPositionModel, state.symbol.upper())
            if row is None:
                row = DCAPositionModel(symbol=state.symbol.upper())
                session.add(row)
            _apply_position(row, state)
        return state

    async def claim_dca_order(self, symbol: str, expected_index: int) -> bool:
        statement = (
            update(DCAPositionModel)
            .where(
                DCAPositionModel.symbol == symbol.upper(),
                DCAPositionModel.current_order_index == expected_index,
            )
            .values(current_order_index=expected_index + 1)
        )
        async with self._transaction("claim_dca_order") as session:
            result = await session.execute(statement)
            return result.rowcount == 1

    async def release_dca_order(self, symbol: str, claimed_index: int) -> bool:
        statement = (
            update(DCAPositionModel)
            .where(
                DCAPositionModel.symbol == symbol.upper(),
                DCAPositionModel.current_order_index == claimed_index + 1,
            )
            .values(current_order_index=claimed_index)
        )
        async with self._transaction("release_dca_order") as session:
            result = await session.execute(statement)
            return result.rowcount == 1

    async def record_dca_fill(
        self,
        symbol: str,
        amount: Decimal,
        invested: Decimal,
        checked_at: datetime,
    ) -> DCAPositionState:
        async with self._transaction("record_dca_fill") as session:
            row = await session.get(DCAPositionModel, symbol.upper())
            if row is None:
                raise StorageError("record_dca_fill", f"No DCA position for {symbol.upper()}")
            row.last_order_amount = amount
            row.total_invested = Decimal(row.total_invested) + invested
            row.last_checked_at = checked_at
            row.updated_at = checked_at
            await session.flush()
            return _position_to_domain(row)

    async def mark_dca_checked(self, symbol: str, checked_at: datetime) -> None:
        async with self._transaction("mark_dca_checked") as session:
            await session.execute(
                update(DCAPositionModel)
                .where(DCAPositionModel.symbol == symbol.upper())
                .values(last_checked_at=checked_at)
            )

    async def delete_dca_position(self, symbol: str) -> bool:
        async with self._transaction("delete_dca_position") as session:
            result = await session.execute(
                delete(DCAPositionModel).where(DCAPositionModel.symbol == symbol.upper())
            )
            return result.rowcount == 1

    # ============================================================
    # TRADE LEDGER
    # ============================================================

    async def append_trade(self, entry: TradeLedgerEntry) -> TradeLedgerEntry:
        row = TradeLedgerModel(
            exchange=entry.exchange,
            symbol=entry.symbol,
            side=entry.side.value,
            order_type=entry.order_type,
            quantity=entry.quantity,
            price=entry.price,
            order_id=entry.order_id,
            strategy=entry.strategy,
            status=entry.status,
            created_at=entry.created_at,
        )
        async with self._transaction("append_trade") as session:
            session.add(row)
            await session.flush()
            entry_id = row.id
        logger.debug("Ledger entry %s: %s %s %s (%s)", entry_id, entry.side.value, entry.quantity, entry.symbol, entry.strategy)
        return entry.with_id(entry_id)

    async def list_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[TradeLedgerEntry]:
        query = select(TradeLedgerModel)
        if symbol is not None:
            query = query.where(TradeLedgerModel.symbol == symbol.upper())
        if since is not None:
            query = query.where(TradeLedgerModel.created_at >= since)
        query = query.order_by(TradeLedgerModel.created_at.desc(), TradeLedgerModel.id.desc()).limit(limit)
        async with self._transaction("list_trades") as session:
            result = await session.execute(query)
            return [_trade_to_domain(row) for row in result.scalars()]

    async def realized_pnl_since(self, since: datetime) -> Decimal:
        notional = TradeLedgerModel.quantity * TradeLedgerModel.price
        signed = case((TradeLedgerModel.side == OrderSide.SELL.value, notional), else_=-notional)
        query = select(func.coalesce(func.sum(signed), 0)).where(TradeLedgerModel.created_at >= since)
        async with self._transaction("realized_pnl_since") as session:
            value = (await session.execute(query)).scalar_one()
        return Decimal(str(value))

    # ============================================================
    # SIGNAL RECORDS
    # ============================================================

    async def insert_signal_record(self, record: SignalRecord) -> SignalRecord:
        row = SignalRecordModel(id=record.id)
        _apply_signal(row, record)
        async with self._transaction("insert_signal_record") as session:
            session.add(row)
        return record

    async def update_signal_record(self, record: SignalRecord) -> SignalRecord:
        async with self._transaction("update_signal_record") as session:
            row = await session.get(SignalRecordModel, record.id)
            if row is None:
                raise StorageError("update_signal_record", f"Unknown signal record {record.id}")
            _apply_signal(row, record)
        return record

    async def get_signal_record(self, record_id: str) -> Optional[SignalRecord]:
        async with self._transaction("get_signal_record") as session:
            row = await session.get(SignalRecordModel, record_id)
            return _signal_to_domain(row) if row is not None else None

    async def list_signal_records(self, limit: int = 50) -> List[SignalRecord]:
        query = select(SignalRecordModel).order_by(SignalRecordModel.created_at.desc()).limit(limit)
        async with self._transaction("list_signal_records") as session:
            result = await session.execute(query)
            return [_signal_to_domain(row) for row in result.scalars()]

    async def count_signals_since(self, symbol: str, since: datetime) -> int:
        query = (
            select(func.count())
            .select_from(SignalRecordModel)
            .where(SignalRecordModel.symbol == symbol.upper(), SignalRecordModel.created_at >= since)
        )
        async with self._transaction("count_signals_since") as session:
            return (await session.execute(query)).scalar_one()

    # ============================================================
    # TRACKED POSITIONS
    # ============================================================

    async def insert_position(self, position: TrackedPosition) -> TrackedPosition:
        row = TrackedPositionModel(id=position.id)
        _apply_tracked(row, position)
        async with self._transaction("insert_position") as session:
            session.add(row)
        return position

    async def update_position(self, position: TrackedPosition) -> TrackedPosition:
        async with self._transaction("update_position") as session:
            row = await session.get(TrackedPositionModel, position.id)
            if row is None:
                raise StorageError("update_position", f"Unknown position {position.id}")
            _apply_tracked(row, position)
        return position

    async def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        async with self._transaction("get_position") as session:
            row = await session.get(TrackedPositionModel, position_id)
            return _tracked_to_domain(row) if row is not None else None

    async def list_positions(self, open_only: bool = False, trailing_only: bool = False) -> List[TrackedPosition]:
        query = select(TrackedPositionModel).order_by(TrackedPositionModel.created_at, TrackedPositionModel.id)
        if open_only:
            query = query.where(TrackedPositionModel.status == PositionStatus.OPEN.value)
        if trailing_only:
            query = query.where(TrackedPositionModel.trailing_enabled.is_(True))
        async with self._transaction("list_positions") as session:
            result = await session.execute(query)
            return [_tracked_to_domain(row) for row in result.scalars()]
