"""Observation sinks notified of step transitions and progress messages."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, List, Protocol, Tuple

from .persistence.models import StepRecord, StepStatus

logger = logging.getLogger(__name__)

_TRANSITION_LEVELS = {
    StepStatus.PENDING: logging.DEBUG,
    StepStatus.RUNNING: logging.INFO,
    StepStatus.COMPLETED: logging.INFO,
    StepStatus.FAILED: logging.ERROR,
}


class StepObserver(Protocol):
    """Receives every status transition and progress message.

    Purely observational: nothing an observer does changes engine behaviour.
    """

    def on_transition(self, record: StepRecord) -> None:
        """Called after a record write lands in the store."""

    def on_message(self, message: str, level: int) -> None:
        """Called with a human-readable progress message."""


class LoggingObserver:
    """Forward observations to the ``durastep`` logger."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger("durastep")

    def on_transition(self, record: StepRecord) -> None:
        self._log.log(
            _TRANSITION_LEVELS[record.status],
            f"{record.step_key} -> {record.status.value} (attempt {record.attempt})",
        )

    def on_message(self, message: str, level: int) -> None:
        self._log.log(level, message)


class RecordingObserver:
    """Keep transitions and the most recent messages in memory."""

    def __init__(self, history_limit: int = 50) -> None:
        self.transitions: List[StepRecord] = []
        self.messages: Deque[Tuple[int, str]] = deque(maxlen=history_limit)

    def on_transition(self, record: StepRecord) -> None:
        self.transitions.append(record)

    def on_message(self, message: str, level: int) -> None:
        self.messages.append((level, message))

    def statuses(self, label: str) -> list[StepStatus]:
        return [r.status for r in self.transitions if r.step_label == label]


class CompositeObserver:
    """Fan out observations to several sinks.

    A sink that raises is logged and skipped.
    """

    def __init__(self, *observers: StepObserver) -> None:
        self.observers = list(observers)

    def add(self, observer: StepObserver) -> None:
        self.observers.append(observer)

    def on_transition(self, record: StepRecord) -> None:
        for observer in self.observers:
            try:
                observer.on_transition(record)
            except Exception:
                logger.exception(f"Observer {observer!r} failed on transition")

    def on_message(self, message: str, level: int) -> None:
        for observer in self.observers:
            try:
                observer.on_message(message, level)
            except Exception:
                logger.exception(f"Observer {observer!r} failed on message")
