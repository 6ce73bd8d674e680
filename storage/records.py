"""
Storage - Ledger Records.

Append-only trade ledger entry written for every order leg that
a venue acknowledged.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from exchanges.types import NormalizedOrderResult, OrderSide


@dataclass(frozen=True)
class TradeLedgerEntry:
    exchange: str
    symbol: str
    side: OrderSide
    order_type: str
    quantity: Decimal
    price: Decimal
    order_id: str
    strategy: str
    """Origin tag: ``dca``, ``signal_<name>``, ``signal_stop_loss``, ``signal_take_profit``."""

    status: str
    created_at: datetime
    id: Optional[int] = None

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price

    def with_id(self, entry_id: int) -> "TradeLedgerEntry":
        return replace(self, id=entry_id)

    @classmethod
    def from_order(
        cls,
        order: NormalizedOrderResult,
        strategy: str,
        created_at: datetime,
        fallback_price: Optional[Decimal] = None,
    ) -> "TradeLedgerEntry":
        """Ledger entry for an acknowledged order, valued at its fill price when known."""
        price = order.fill_price or fallback_price or Decimal("0")
        quantity = order.executed_qty if order.executed_qty > 0 else order.requested_qty
        return cls(
            exchange=order.exchange_name,
            symbol=order.symbol,
            side=order.side,
            order_type=order.type.value,
            quantity=quantity,
            price=price,
            order_id=order.order_id,
            strategy=strategy,
            status=order.status.value,
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exchange": self.exchange,
            "symbol": self.symbol,
            "side": self.side.value,
            "order_type": self.order_type,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "order_id": self.order_id,
            "strategy": self.strategy,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }
