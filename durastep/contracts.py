"""Core contracts exchanged between workflow code and the engine."""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Zero-argument unit of work returning a value or an awaitable of one.
StepWork = Callable[[], Any]


class StepCall(BaseModel):
    """A step invocation captured for ``DurableContext.parallel``.

    Building one never allocates a sequence number.
    """

    model_config = ConfigDict(frozen=True)

    label: str = Field(min_length=1)
    work: StepWork


class OutcomeStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"


class ExecutionOutcome(BaseModel):
    """Result of one execution pass as seen by the caller."""

    execution_id: str
    status: OutcomeStatus
    result: Any = None
    failed_step: Optional[str] = None
    failed_sequence: Optional[int] = None
    error: Optional[str] = None
    steps_executed: int = 0
    steps_replayed: int = 0
    messages: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.COMPLETED

    @property
    def interrupted(self) -> bool:
        """``True`` when the pass should be resumed rather than investigated."""
        return self.status == OutcomeStatus.INTERRUPTED
