"""
Storage - In-Memory Repository.

Process-local implementation of the repository contract, used by
tests and by ``--dry-run``. Each operation runs without awaiting
in between, so it is atomic with respect to other tasks.
"""

import itertools
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from dca.models import DCAPositionState
from exchanges.types import OrderSide
from positions.models import TrackedPosition
from signals.models import SignalRecord

from .records import TradeLedgerEntry
from .repository import StorageError, TradingRepository


logger = logging.getLogger(__name__)


class InMemoryTradingRepository(TradingRepository):

    def __init__(self):
        self._positions: Dict[str, DCAPositionState] = {}
        self._trades: List[TradeLedgerEntry] = []
        self._signals: Dict[str, SignalRecord] = {}
        self._tracked: Dict[str, TrackedPosition] = {}
        self._trade_ids = itertools.count(1)

    def _require_position(self, symbol: str, operation: str) -> DCAPositionState:
        state = self._positions.get(symbol.upper())
        if state is None:
            raise StorageError(operation, f"No DCA position for {symbol.upper()}")
        return state

    # DCA positions

    async def get_dca_position(self, symbol: str) -> Optional[DCAPositionState]:
        return self._positions.get(symbol.upper())

    async def list_dca_positions(self, active_only: bool = False) -> List[DCAPositionState]:
        states = sorted(self._positions.values(), key=lambda s: s.symbol)
        return [s for s in states if s.is_active] if active_only else states

    async def upsert_dca_position(self, state: DCAPositionState) -> DCAPositionState:
        self._positions[state.symbol.upper()] = state
        return state

    async def claim_dca_order(self, symbol: str, expected_index: int) -> bool:
        state = self._positions.get(symbol.upper())
        if state is None or state.current_order_index != expected_index:
            return False
        self._positions[state.symbol] = replace(state, current_order_index=expected_index + 1)
        return True

    async def release_dca_order(self, symbol: str, claimed_index: int) -> bool:
        state = self._positions.get(symbol.upper())
        if state is None or state.current_order_index != claimed_index + 1:
            return False
        self._positions[state.symbol] = replace(state, current_order_index=claimed_index)
        return True

    async def record_dca_fill(
        self,
        symbol: str,
        amount: Decimal,
        invested: Decimal,
        checked_at: datetime,
    ) -> DCAPositionState:
        state = self._require_position(symbol, "record_dca_fill")
        updated = replace(
            state,
            last_order_amount=amount,
            total_invested=state.total_invested + invested,
            last_checked_at=checked_at,
            updated_at=checked_at,
        )
        self._positions[state.symbol] = updated
        return updated

    async def mark_dca_checked(self, symbol: str, checked_at: datetime) -> None:
        state = self._require_position(symbol, "mark_dca_checked")
        self._positions[state.symbol] = replace(state, last_checked_at=checked_at)

    async def delete_dca_position(self, symbol: str) -> bool:
        return self._positions.pop(symbol.upper(), None) is not None

    # Trade ledger

    async def append_trade(self, entry: TradeLedgerEntry) -> TradeLedgerEntry:
        stored = entry.with_id(next(self._trade_ids))
        self._trades.append(stored)
        return stored

    async def list_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[TradeLedgerEntry]:
        trades = [
            t for t in self._trades
            if (symbol is None or t.symbol == symbol.upper()) and (since is None or t.created_at >= since)
        ]
        trades.sort(key=lambda t: (t.created_at, t.id), reverse=True)
        return trades[:limit]

    async def realized_pnl_since(self, since: datetime) -> Decimal:
        pnl = Decimal("0")
        for trade in self._trades:
            if trade.created_at < since:
                continue
            if trade.side is OrderSide.SELL:
                pnl += trade.notional
            else:
                pnl -= trade.notional
        return pnl

    # Signal records

    async def insert_signal_record(self, record: SignalRecord) -> SignalRecord:
        if record.id in self._signals:
            raise StorageError("insert_signal_record", f"Duplicate signal record {record.id}")
        self._signals[record.id] = record
        return record

    async def update_signal_record(self, record: SignalRecord) -> SignalRecord:
        if record.id not in self._signals:
            raise StorageError("update_signal_record", f"Unknown signal record {record.id}")
        self._signals[record.id] = record
        return record

    async def get_signal_record(self, record_id: str) -> Optional[SignalRecord]:
        return self._signals.get(record_id)

    async def list_signal_records(self, limit: int = 50) -> List[SignalRecord]:
        records = sorted(self._signals.values(), key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    async def count_signals_since(self, symbol: str, since: datetime) -> int:
        return sum(
            1 for r in self._signals.values()
            if r.symbol == symbol.upper() and r.created_at >= since
        )

    # Tracked positions

    async def insert_position(self, position: TrackedPosition) -> TrackedPosition:
        if position.id in self._tracked:
            raise StorageError("insert_position", f"Duplicate position {position.id}")
        self._tracked[position.id] = position
        return position

    async def update_position(self, position: TrackedPosition) -> TrackedPosition:
        if position.id not in self._tracked:
            raise StorageError("update_position", f"Unknown position {position.id}")
        self._tracked[position.id] = position
        return position

    async def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        return self._tracked.get(position_id)

    async def list_positions(self, open_only: bool = False, trailing_only: bool = False) -> List[TrackedPosition]:
        positions = sorted(self._tracked.values(), key=lambda p: (p.created_at, p.id))
        return [
            p for p in positions
            if (not open_only or p.is_open) and (not trailing_only or p.trailing_enabled)
        ]
