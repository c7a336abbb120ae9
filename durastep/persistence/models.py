"""Data models for persisted step state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator

STEP_KEY_SEPARATOR = ":"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _escape_key_part(part: str) -> str:
    return part.replace("\\", "\\\\").replace(STEP_KEY_SEPARATOR, "\\" + STEP_KEY_SEPARATOR)


def make_step_key(execution_id: str, label: str, sequence: int) -> str:
    """Composite identity of one step attempt.

    Separators inside ``execution_id`` or ``label`` are backslash-escaped, so
    distinct (execution, label, sequence) triples never share a key.
    """
    return STEP_KEY_SEPARATOR.join(
        (_escape_key_part(execution_id), _escape_key_part(label), str(sequence))
    )


class StepStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


class StepRecord(BaseModel):
    """Record of an individual step attempt."""

    execution_id: str
    step_label: str
    sequence_number: int = Field(gt=0)
    status: StepStatus = StepStatus.PENDING
    result_payload: Optional[Any] = None
    error_message: Optional[str] = None
    attempt: int = Field(default=1, gt=0)
    last_updated: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_outcome_fields(self) -> "StepRecord":
        if self.status != StepStatus.COMPLETED and self.result_payload is not None:
            raise ValueError("result_payload is only allowed on COMPLETED records")
        if self.status != StepStatus.FAILED and self.error_message is not None:
            raise ValueError("error_message is only allowed on FAILED records")
        return self

    @property
    def step_key(self) -> str:
        return make_step_key(self.execution_id, self.step_label, self.sequence_number)

    def transition(
        self,
        status: StepStatus,
        result: Any = None,
        error: Optional[str] = None,
    ) -> "StepRecord":
        """Return a copy moved to ``status`` with a fresh timestamp."""
        return StepRecord(
            execution_id=self.execution_id,
            step_label=self.step_label,
            sequence_number=self.sequence_number,
            status=status,
            result_payload=result if status == StepStatus.COMPLETED else None,
            error_message=error if status == StepStatus.FAILED else None,
            attempt=self.attempt,
            last_updated=utcnow(),
        )


class ExecutionSummary(BaseModel):
    """Per-execution rollup of persisted step records."""

    execution_id: str
    steps: int = 0
    completed: int = 0
    running: int = 0
    failed: int = 0
    last_updated: Optional[datetime] = None

    @classmethod
    def from_records(
        cls, execution_id: str, records: list[StepRecord]
    ) -> "ExecutionSummary":
        return cls(
            execution_id=execution_id,
            steps=len(records),
            completed=sum(r.status == StepStatus.COMPLETED for r in records),
            running=sum(r.status == StepStatus.RUNNING for r in records),
            failed=sum(r.status == StepStatus.FAILED for r in records),
            last_updated=max((r.last_updated for r in records), default=None),
        )
