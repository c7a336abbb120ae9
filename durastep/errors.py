"""
Error classes for durastep execution.

Three outcomes can end an execution pass early:
- StepFailure: the user supplied work raised. Recorded FAILED, not retried
  within the same pass.
- Interrupted: the interruption token was asserted. Expected outcome, the
  execution should be resumed by a later pass.
- StoreUnavailable: the step record store failed a read or write. Fatal to
  the pass.
"""

from __future__ import annotations

from typing import Optional


class DurastepError(Exception):
    """Base exception for durastep."""
    pass


class StepFailure(DurastepError):
    """A step's work raised an error."""

    def __init__(self, label: str, sequence: int, message: str) -> None:
        super().__init__(f"Step [{label}] (seq {sequence}) failed: {message}")
        self.label = label
        self.sequence = sequence
        self.message = message


class Interrupted(DurastepError):
    """The execution pass was aborted by the interruption token.

    Not an application error: the caller should resume the execution with a
    new pass.
    """

    def __init__(
        self, label: str, sequence: int, reason: Optional[str] = None
    ) -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Interrupted at step [{label}] (seq {sequence}){detail}")
        self.label = label
        self.sequence = sequence
        self.reason = reason


class StoreUnavailable(DurastepError):
    """The step record store failed a read or write."""

    def __init__(self, operation: str, step_key: Optional[str] = None) -> None:
        target = f" for {step_key}" if step_key else ""
        super().__init__(f"Step record store failed during {operation}{target}")
        self.operation = operation
        self.step_key = step_key


class RecordConflict(DurastepError):
    """An upsert tried to rewrite a record that already reached COMPLETED."""

    def __init__(self, step_key: str) -> None:
        super().__init__(f"Refusing to overwrite completed record {step_key}")
        self.step_key = step_key


class ConfigurationError(DurastepError):
    """Invalid or unsupported configuration."""
    pass
