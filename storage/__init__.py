"""
Storage Package.

Persistence for DCA positions, the trade ledger, signal
records and tracked positions.

Components:
- records: Trade ledger entry
- repository: Persistence contract
- memory: In-process implementation
- models: SQLAlchemy ORM tables
- sql_repository: Async SQLAlchemy implementation
- database: Engine, session factory, table creation
"""

from .records import TradeLedgerEntry
from .repository import StorageError, TradingRepository
from .memory import InMemoryTradingRepository
from .models import Base, DCAPositionModel, SignalRecordModel, TrackedPositionModel, TradeLedgerModel
from .sql_repository import SqlTradingRepository
from .database import Database, DatabaseConfig

__all__ = [
    "TradeLedgerEntry",
    "StorageError",
    "TradingRepository",
    "InMemoryTradingRepository",
    "Base",
    "DCAPositionModel",
    "SignalRecordModel",
    "TrackedPositionModel",
    "TradeLedgerModel",
    "SqlTradingRepository",
    "Database",
    "DatabaseConfig",
]
