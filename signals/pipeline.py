"""
Signals - Pipeline.

============================================================
PURPOSE
============================================================
Single entry point for every inbound signal (webhook body,
scheduled trigger, manual action):

    parse -> risk check -> execute -> record

OUTCOMES:
- Parse failure     -> ValidationError raised, nothing recorded
- Risk rejection    -> REJECTED record, returned with the
                       RiskRejected describing every violation
- Main order error  -> FAILED record, SignalExecutionError raised
- Success           -> EXECUTED record, protective-leg warnings
                       and missing ledger legs attached

The risk check runs before the record is inserted, so the
frequency rule only counts earlier signals.

============================================================
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from core.clock import ClockProtocol, get_clock
from core.exceptions import PartialExecutionWarning, RiskRejected, SignalExecutionError

from .executor import SignalExecutor
from .models import ExecutionResult, SignalRecord, SignalStatistics, SignalStatus
from .parser import SignalParser
from .risk_controller import RiskController

if TYPE_CHECKING:
    from storage.repository import TradingRepository


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignalProcessingResult:
    """What ``process_signal`` hands back to the caller."""

    record: SignalRecord
    rejection: Optional[RiskRejected] = None
    warnings: Tuple[PartialExecutionWarning, ...] = field(default_factory=tuple)

    @property
    def status(self) -> SignalStatus:
        return self.record.status

    @property
    def approved(self) -> bool:
        return self.rejection is None

    def to_dict(self) -> dict:
        return {
            "record": self.record.to_dict(),
            "approved": self.approved,
            "rejection": self.rejection.to_dict() if self.rejection else None,
            "warnings": [w.message for w in self.warnings],
        }


def _audit_copy(raw: Any) -> Any:
    """Raw payload in a JSON-friendly shape."""
    if isinstance(raw, Mapping):
        return {str(k): v if isinstance(v, (str, int, float, bool, type(None))) else str(v) for k, v in raw.items()}
    return str(raw)


class SignalPipeline:
    def __init__(
        self,
        parser: SignalParser,
        risk_controller: RiskController,
        executor: SignalExecutor,
        repository: "TradingRepository",
        clock: Optional[ClockProtocol] = None,
    ):
        self.parser = parser
        self.risk_controller = risk_controller
        self.executor = executor
        self.repository = repository
        self._clock = clock or get_clock()

    async def process_signal(self, raw: Any) -> SignalProcessingResult:
        """
        Raises:
            ValidationError: the raw signal could not be parsed
            SignalExecutionError: the main order failed; carries the FAILED record
        """
        signal = self.parser.parse(raw)
        risk = await self.risk_controller.check(signal)

        now = self._clock.now()
        record = SignalRecord(
            id=uuid.uuid4().hex,
            raw_signal=_audit_copy(raw),
            trade_signal=signal,
            status=SignalStatus.PENDING,
            created_at=now,
            updated_at=now,
            risk_check=risk,
        )
        await self.repository.insert_signal_record(record)

        if not risk.approved:
            rejection = risk.to_exception()
            record = record.transition(SignalStatus.REJECTED, self._clock.now(), error=rejection.message)
            await self.repository.update_signal_record(record)
            logger.info("Signal %s rejected (risk score %d)", record.id, risk.risk_score)
            return SignalProcessingResult(record=record, rejection=rejection)

        try:
            execution = await self.executor.execute(signal)
        except Exception as e:
            failed_at = self._clock.now()
            record = record.transition(
                SignalStatus.FAILED,
                failed_at,
                execution_result=ExecutionResult(success=False, timestamp=failed_at, error=str(e)),
                error=str(e),
            )
            await self.repository.update_signal_record(record)
            logger.error("Signal %s failed on %s: %s", record.id, signal.exchange, e)
            raise SignalExecutionError(f"Signal execution failed: {e}", record=record, cause=e) from e

        record = record.transition(SignalStatus.EXECUTED, self._clock.now(), execution_result=execution)
        await self.repository.update_signal_record(record)
        logger.info(
            "Signal %s executed: %s %s %s on %s%s",
            record.id, signal.action.value, signal.quantity, signal.symbol, signal.exchange,
            f" ({len(execution.warnings)} protective leg(s) failed)" if execution.warnings else "",
        )
        if execution.ledger_failures:
            logger.error(
                "Signal %s executed but ledger entries are missing for: %s",
                record.id, ", ".join(execution.ledger_failures),
            )
        return SignalProcessingResult(record=record, warnings=execution.warnings)

    # ============================================================
    # QUERIES
    # ============================================================

    async def get_record(self, record_id: str) -> Optional[SignalRecord]:
        return await self.repository.get_signal_record(record_id)

    async def list_records(self, limit: int = 50) -> List[SignalRecord]:
        return await self.repository.list_signal_records(limit)

    async def get_statistics(self, limit: int = 1000) -> SignalStatistics:
        """Counts per status over the latest ``limit`` records."""
        records = await self.repository.list_signal_records(limit)
        counts = Counter(record.status.value for record in records)
        decided = counts[SignalStatus.EXECUTED.value] + counts[SignalStatus.FAILED.value] + counts[SignalStatus.REJECTED.value]
        approved = counts[SignalStatus.EXECUTED.value] + counts[SignalStatus.FAILED.value]
        return SignalStatistics(
            total=len(records),
            by_status={status.value: counts[status.value] for status in SignalStatus},
            approval_rate=approved / decided * 100 if decided else 0.0,
        )
