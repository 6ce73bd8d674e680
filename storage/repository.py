"""
Storage - Repository Contract.

============================================================
PURPOSE
============================================================
Logical persistence operations used by the engines. The
engines never see the storage technology.

ENTITIES:
- DCA positions (upsert by symbol, conditional index claim)
- Trade ledger (append only)
- Signal records (insert, terminal update, audit queries)
- Tracked positions (insert, update, open and trailing queries)

CONCURRENCY:
``claim_dca_order`` is the only read-then-write the engines rely
on. It must be a single conditional update so two concurrent
executes can never both advance a position from the same index.

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from core.exceptions import Severity, TradingException
from dca.models import DCAPositionState
from positions.models import TrackedPosition
from signals.models import SignalRecord

from .records import TradeLedgerEntry


class StorageError(TradingException):
    """A persistence operation failed."""

    default_severity = Severity.HIGH

    def __init__(self, operation: str, message: str, **kwargs):
        self.operation = operation
        context = kwargs.pop("context", {})
        context["operation"] = operation
        super().__init__(f"{operation}: {message}", context=context, **kwargs)


class TradingRepository(ABC):
    """Persistence contract shared by the SQL and in-memory stores."""

    # ============================================================
    # DCA POSITIONS
    # ============================================================

    @abstractmethod
    async def get_dca_position(self, symbol: str) -> Optional[DCAPositionState]:
        ...

    @abstractmethod
    async def list_dca_positions(self, active_only: bool = False) -> List[DCAPositionState]:
        ...

    @abstractmethod
    async def upsert_dca_position(self, state: DCAPositionState) -> DCAPositionState:
        ...

    @abstractmethod
    async def claim_dca_order(self, symbol: str, expected_index: int) -> bool:
        """
        Advance ``current_order_index`` from ``expected_index`` to ``expected_index + 1``.

        Returns False when the stored index no longer matches.
        """

    @abstractmethod
    async def release_dca_order(self, symbol: str, claimed_index: int) -> bool:
        """Undo a claim whose order was never placed."""

    @abstractmethod
    async def record_dca_fill(
        self,
        symbol: str,
        amount: Decimal,
        invested: Decimal,
        checked_at: datetime,
    ) -> DCAPositionState:
        """Store the last order amount and add ``invested`` to the position total."""

    @abstractmethod
    async def mark_dca_checked(self, symbol: str, checked_at: datetime) -> None:
        ...

    @abstractmethod
    async def delete_dca_position(self, symbol: str) -> bool:
        ...

    # ============================================================
    # TRADE LEDGER
    # ============================================================

    @abstractmethod
    async def append_trade(self, entry: TradeLedgerEntry) -> TradeLedgerEntry:
        ...

    @abstractmethod
    async def list_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[TradeLedgerEntry]:
        """Newest first."""

    @abstractmethod
    async def realized_pnl_since(self, since: datetime) -> Decimal:
        """Sum of SELL notional minus sum of BUY notional since ``since``."""

    # ============================================================
    # SIGNAL RECORDS
    # ============================================================

    @abstractmethod
    async def insert_signal_record(self, record: SignalRecord) -> SignalRecord:
        ...

    @abstractmethod
    async def update_signal_record(self, record: SignalRecord) -> SignalRecord:
        ...

    @abstractmethod
    async def get_signal_record(self, record_id: str) -> Optional[SignalRecord]:
        ...

    @abstractmethod
    async def list_signal_records(self, limit: int = 50) -> List[SignalRecord]:
        """Newest first."""

    @abstractmethod
    async def count_signals_since(self, symbol: str, since: datetime) -> int:
        ...

    # ============================================================
    # TRACKED POSITIONS
    # ============================================================

    @abstractmethod
    async def insert_position(self, position: TrackedPosition) -> TrackedPosition:
        ...

    @abstractmethod
    async def update_position(self, position: TrackedPosition) -> TrackedPosition:
        """Replace a stored position. Raises StorageError when the id is unknown."""

    @abstractmethod
    async def get_position(self, position_id: str) -> Optional[TrackedPosition]:
        ...

    @abstractmethod
    async def list_positions(self, open_only: bool = False, trailing_only: bool = False) -> List[TrackedPosition]:
        """Oldest first."""

    async def close(self) -> None:
        return None
