"""
Storage - ORM Models.

============================================================
PURPOSE
============================================================
SQLAlchemy ORM models for the engine's persisted entities.

TABLES:
- dca_positions: One row per symbol
- trade_ledger: Append-only order legs
- signal_records: Audit trail of inbound signals
- tracked_positions: Holdings with optional trailing stops

Monetary columns are Numeric. Nested signal payloads are JSON.

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


# ============================================================
# DCA POSITIONS
# ============================================================


class DCAPositionModel(Base):
    __tablename__ = "dca_positions"

    symbol: Mapped[str] = mapped_column(String(32), primary_key=True)
    exchange: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Settings
    base_amount: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    max_orders: Mapped[int] = mapped_column(Integer, nullable=False)
    price_deviation_pct: Mapped[float] = mapped_column(Float, nullable=False)
    take_profit_pct: Mapped[float] = mapped_column(Float, nullable=False)
    stop_loss_pct: Mapped[float] = mapped_column(Float, nullable=False)

    # Progress
    current_order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_invested: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False, default=Decimal("0"))
    last_order_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


# ============================================================
# TRADE LEDGER
# ============================================================


class TradeLedgerModel(Base):
    __tablename__ = "trade_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    exchange: Mapped[str] = mapped_column(String(32), nullable=False)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    order_type: Mapped[str] = mapped_column(String(16), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    strategy: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_trade_ledger_symbol_created", "symbol", "created_at"),
        Index("ix_trade_ledger_created", "created_at"),
    )


# ============================================================
# SIGNAL RECORDS
# ============================================================


class SignalRecordModel(Base):
    __tablename__ = "signal_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    raw_signal: Mapped[Any] = mapped_column(JSON)
    trade_signal: Mapped[Any] = mapped_column(JSON, nullable=False)
    risk_check: Mapped[Optional[Any]] = mapped_column(JSON)
    execution_result: Mapped[Optional[Any]] = mapped_column(JSON)
    error: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_signal_records_symbol_created", "symbol", "created_at"),
    )


# ============================================================
# TRACKED POSITIONS
# ============================================================


class TrackedPositionModel(Base):
    __tablename__ = "tracked_positions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    exchange: Mapped[str] = mapped_column(String(32), nullable=False)
    side: Mapped[str] = mapped_column(String(8), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    entry_price: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)

    # Trailing stop
    trailing_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    trailing_distance_pct: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    trailing_stop_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    highest_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    lowest_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))

    # Exit
    exit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    exit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    close_order_id: Mapped[Optional[str]] = mapped_column(String(64))
    close_reason: Mapped[Optional[str]] = mapped_column(String(32))
    pnl: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))
    pnl_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(24, 8))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_tracked_positions_status", "status", "trailing_enabled"),
    )
