"""Cancellation token polled by the step executor."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import Interrupted
from .persistence.models import StepRecord, StepStatus

logger = logging.getLogger(__name__)


class InterruptionToken:
    """Externally settable flag standing in for process death.

    The executor polls it before starting a step's work and before committing
    the step's outcome. Asserting it never pre-empts running work.
    """

    def __init__(self) -> None:
        self._reason: Optional[str] = None
        self._interrupted = False

    @property
    def is_interrupted(self) -> bool:
        return self._interrupted

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def interrupt(self, reason: Optional[str] = None) -> None:
        if not self._interrupted:
            logger.warning(f"Interruption asserted: {reason or 'no reason given'}")
        self._interrupted = True
        self._reason = reason

    def clear(self) -> None:
        self._interrupted = False
        self._reason = None

    def raise_if_interrupted(self, label: str, sequence: int) -> None:
        if self._interrupted:
            raise Interrupted(label, sequence, self._reason)


class InterruptAfter:
    """Observer that asserts ``token`` after ``completed`` steps commit.

    Simulates a crash partway through an execution pass.
    """

    def __init__(self, token: InterruptionToken, completed: int) -> None:
        if completed < 0:
            raise ValueError("completed must be >= 0")
        self.token = token
        self.remaining = completed
        if completed == 0:
            token.interrupt("simulated crash before first step")

    def on_transition(self, record: StepRecord) -> None:
        if record.status != StepStatus.COMPLETED or self.remaining <= 0:
            return
        self.remaining -= 1
        if self.remaining == 0:
            self.token.interrupt(
                f"simulated crash after step [{record.step_label}] "
                f"(seq {record.sequence_number})"
            )

    def on_message(self, message: str, level: int) -> None:
        pass
