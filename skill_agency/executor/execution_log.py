"""In-process store of skill execution records.

Stands in for the external persistence layer: the executor writes every
status change here and the API reads it back for history and rollback.
"""

import logging
import threading
from typing import Optional

from skill_agency.errors import NotFoundError, SessionStateError

from .schemas import ExecutionRecord, ExecutionStatus, utc_now

logger = logging.getLogger(__name__)

# Allowed status changes; anything else is rejected
_TRANSITIONS: dict[ExecutionStatus, tuple[ExecutionStatus, ...]] = {
    ExecutionStatus.QUEUED: (ExecutionStatus.IN_PROGRESS, ExecutionStatus.CANCELLED),
    ExecutionStatus.IN_PROGRESS: (
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
        ExecutionStatus.ROLLED_BACK,
    ),
    ExecutionStatus.COMPLETED: (ExecutionStatus.ROLLED_BACK,),
    ExecutionStatus.FAILED: (),
    ExecutionStatus.CANCELLED: (),
    ExecutionStatus.ROLLED_BACK: (),
}


class ExecutionLog:
    """Thread-safe registry of ExecutionRecords keyed by execution id."""

    def __init__(self, max_records: int = 1000):
        self.max_records = max_records
        self._records: dict[str, ExecutionRecord] = {}
        self._lock = threading.Lock()

    def add(self, record: ExecutionRecord) -> ExecutionRecord:
        with self._lock:
            self._records[record.execution_id] = record
            # Oldest records fall off first (dicts keep insertion order)
            while len(self._records) > self.max_records:
                self._records.pop(next(iter(self._records)))
        return record

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        with self._lock:
            record = self._records.get(execution_id)
            return record.model_copy(deep=True) if record else None

    def transition(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
        outputs: Optional[dict] = None,
    ) -> bool:
        """Move a record to a new status. Returns False if not allowed."""
        with self._lock:
            record = self._records.get(execution_id)
            if record is None:
                return False
            if status not in _TRANSITIONS[record.status]:
                logger.warning(
                    f"Execution {execution_id}: ignoring {record.status.value} "
                    f"-> {status.value}"
                )
                return False
            record.status = status
            if status in (
                ExecutionStatus.COMPLETED,
                ExecutionStatus.FAILED,
                ExecutionStatus.CANCELLED,
            ):
                record.completed_at = utc_now()
            if error is not None:
                record.error = error
            if duration_ms is not None:
                record.duration_ms = duration_ms
            if outputs:
                record.outputs.update(outputs)
        logger.info(f"Execution {execution_id} status -> {status.value}")
        return True

    def set_rollback_token(self, execution_id: str, token: str) -> None:
        with self._lock:
            record = self._records.get(execution_id)
            if record is not None:
                record.rollback_token = token

    def find_by_rollback_token(self, token: str) -> Optional[ExecutionRecord]:
        with self._lock:
            for record in self._records.values():
                if record.rollback_token == token:
                    return record.model_copy(deep=True)
        return None

    def rollback(self, token: str) -> ExecutionRecord:
        """Mark the execution holding a rollback token as rolled back.

        Raises:
            NotFoundError: no execution carries the token.
            SessionStateError: the execution is not completed.
        """
        record = self.find_by_rollback_token(token)
        if record is None:
            raise NotFoundError("Execution", token)
        if not self.transition(record.execution_id, ExecutionStatus.ROLLED_BACK):
            raise SessionStateError(
                f"Execution {record.execution_id} cannot be rolled back "
                f"from status {record.status.value}"
            )
        return self.get(record.execution_id)

    def list_executions(
        self,
        status: Optional[ExecutionStatus] = None,
        session_id: Optional[str] = None,
        limit: int = 20,
    ) -> list[ExecutionRecord]:
        """Most recent records first."""
        with self._lock:
            records = list(self._records.values())
        records.reverse()
        if status is not None:
            records = [r for r in records if r.status == status]
        if session_id is not None:
            records = [r for r in records if r.session_id == session_id]
        return [r.model_copy(deep=True) for r in records[:limit]]

    def count(self) -> int:
        with self._lock:
            return len(self._records)
