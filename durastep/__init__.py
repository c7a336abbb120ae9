"""durastep: memoized step execution and replay for durable workflows."""

from .contracts import ExecutionOutcome, OutcomeStatus, StepCall
from .errors import (
    DurastepError,
    Interrupted,
    RecordConflict,
    StepFailure,
    StoreUnavailable,
)
from .execute import DurableContext
from .interruption import InterruptAfter, InterruptionToken
from .observers import CompositeObserver, LoggingObserver, RecordingObserver
from .persistence import StepRecord, StepStatus, get_store
from .runner import WorkflowRunner
from .sequence import SequenceAllocator

__version__ = "0.1.0"
__all__ = [
    "CompositeObserver",
    "DurableContext",
    "DurastepError",
    "ExecutionOutcome",
    "InterruptAfter",
    "Interrupted",
    "InterruptionToken",
    "LoggingObserver",
    "OutcomeStatus",
    "RecordConflict",
    "RecordingObserver",
    "SequenceAllocator",
    "StepCall",
    "StepFailure",
    "StepRecord",
    "StepStatus",
    "StoreUnavailable",
    "WorkflowRunner",
    "get_store",
]
