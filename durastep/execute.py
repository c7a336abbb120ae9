"""Step execution engine for durastep workflows."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Iterable, Optional

from .config import EngineSettings
from .contracts import StepCall, StepWork
from .errors import (
    DurastepError,
    Interrupted,
    RecordConflict,
    StepFailure,
    StoreUnavailable,
)
from .interruption import InterruptionToken
from .observers import CompositeObserver, LoggingObserver, StepObserver
from .persistence.models import StepRecord, StepStatus, make_step_key
from .persistence.repository import StepRecordStore, dump_payload
from .sequence import SequenceAllocator

logger = logging.getLogger(__name__)


async def _invoke(work: StepWork) -> Any:
    if inspect.iscoroutinefunction(work):
        return await work()
    # blocking work runs in a worker thread so parallel branches overlap
    result = await asyncio.to_thread(work)
    if inspect.isawaitable(result):
        result = await result
    return result


class DurableContext:
    """Handle workflow code uses to run memoized steps.

    One context covers exactly one execution pass. Its sequence allocator
    starts fresh, so replaying the same workflow code from the top assigns
    the same sequence numbers and lands on the records of earlier passes.
    """

    def __init__(
        self,
        execution_id: str,
        store: StepRecordStore,
        token: Optional[InterruptionToken] = None,
        observer: Optional[StepObserver] = None,
        settings: Optional[EngineSettings] = None,
    ) -> None:
        if not execution_id:
            raise ValueError("execution_id must not be empty")
        self.execution_id = execution_id
        self._store = store
        self._token = token or InterruptionToken()
        self._observer = (
            observer
            if isinstance(observer, CompositeObserver)
            else CompositeObserver(observer or LoggingObserver())
        )
        self._settings = settings or EngineSettings()
        self._sequence = SequenceAllocator()
        self.steps_executed = 0
        self.steps_replayed = 0
        self._commits: set[asyncio.Future] = set()

    @property
    def token(self) -> InterruptionToken:
        return self._token

    @property
    def steps_seen(self) -> int:
        """Number of sequence numbers allocated so far in this pass."""
        return self._sequence.allocated

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Send a progress message to the observation sink."""
        self._observer.on_message(message, level)

    # ------------------------------------------------------------------
    # Public primitives
    def call(self, label: str, work: StepWork) -> StepCall:
        """Describe a step for ``parallel`` without allocating its sequence."""
        return StepCall(label=label, work=work)

    async def step(self, label: str, work: StepWork) -> Any:
        """Run ``work`` at most once per logical invocation.

        Returns the JSON-compatible form of the result, identical on the first
        pass and on every replay.

        Raises:
            StepFailure: ``work`` raised; the record is FAILED.
            Interrupted: the token was asserted; the record is left as is.
            StoreUnavailable: the store failed a read or write.
        """
        if not label:
            raise ValueError("step label must not be empty")
        sequence = self._sequence.next()
        return await self._run_step(label, sequence, work)

    async def parallel(self, calls: Iterable[StepCall]) -> list[Any]:
        """Run several steps concurrently, results in input order.

        Sequence numbers are reserved for every call, in input order, before
        any branch starts. The first branch to fail or observe the
        interruption token aborts the whole call; the remaining branches are
        cancelled and their outcomes discarded. A branch already committing
        its outcome finishes the write before the error propagates.
        """
        calls = list(calls)
        for item in calls:
            if not isinstance(item, StepCall):
                raise ValueError(
                    f"parallel() expects StepCall items built with ctx.call(), got {type(item)!r}"
                )
        sequences = self._sequence.reserve(len(calls))
        if not calls:
            return []

        self.log(
            f"Starting {len(calls)} parallel steps (seq {sequences[0]}-{sequences[-1]})"
        )
        tasks = [
            asyncio.create_task(
                self._run_step(call.label, sequence, call.work),
                name=f"{self.execution_id}:{call.label}:{sequence}",
            )
            for call, sequence in zip(calls, sequences)
        ]
        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_EXCEPTION
            )
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        errors = [
            task.exception()
            for task in tasks
            if task in done and not task.cancelled() and task.exception() is not None
        ]
        if errors:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            await self._drain_commits()
            logger.debug(
                f"parallel aborted in {self.execution_id}: {len(errors)} failed branch(es), "
                f"{len(pending)} cancelled"
            )
            raise errors[0]
        return [task.result() for task in tasks]

    # ------------------------------------------------------------------
    # Store access
    async def _read(self, step_key: str) -> StepRecord | None:
        try:
            return await self._store.get(step_key)
        except DurastepError:
            raise
        except Exception as e:
            raise StoreUnavailable("get", step_key) from e

    async def _write(self, record: StepRecord) -> None:
        try:
            await self._store.upsert(record)
        except DurastepError:
            raise
        except Exception as e:
            raise StoreUnavailable("upsert", record.step_key) from e
        self._observer.on_transition(record)

    async def _commit(self, record: StepRecord) -> None:
        """Write a terminal record; cancelling the caller does not stop the write."""

        async def write() -> None:
            await self._write(record)
            if record.status == StepStatus.COMPLETED:
                self.steps_executed += 1

        commit = asyncio.ensure_future(write())
        self._commits.add(commit)
        commit.add_done_callback(self._commits.discard)
        await asyncio.shield(commit)

    async def _drain_commits(self) -> None:
        """Wait for terminal writes whose branch was cancelled mid-commit."""
        in_flight = list(self._commits)
        if not in_flight:
            return
        results = await asyncio.gather(*in_flight, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Commit in {self.execution_id} failed after abort: {result}")

    def _checkpoint(self, label: str, sequence: int) -> None:
        if self._token.is_interrupted:
            self.log(
                f"Step [{label}] (seq {sequence}) interrupted by system crash.",
                logging.WARNING,
            )
            self._token.raise_if_interrupted(label, sequence)

    # ------------------------------------------------------------------
    async def _run_step(self, label: str, sequence: int, work: StepWork) -> Any:
        step_key = make_step_key(self.execution_id, label, sequence)
        existing = await self._read(step_key)

        if existing is not None and existing.status == StepStatus.COMPLETED:
            self.steps_replayed += 1
            self.log(
                f"Skipping step [{label}] (seq {sequence}) - loaded from store."
            )
            return existing.result_payload

        if (
            existing is not None
            and existing.status == StepStatus.FAILED
            and self._settings.failed_step_policy == "raise"
        ):
            self.log(
                f"Step [{label}] (seq {sequence}) failed on an earlier pass; not retrying.",
                logging.ERROR,
            )
            raise StepFailure(label, sequence, existing.error_message or "unknown error")

        self._checkpoint(label, sequence)

        attempt = 1
        if existing is not None:
            attempt = existing.attempt + 1
            if existing.status == StepStatus.RUNNING:
                self.log(
                    f"Step [{label}] (seq {sequence}) was left RUNNING by an earlier pass; "
                    "outcome unknown, running it again.",
                    logging.WARNING,
                )
            else:
                self.log(
                    f"Retrying step [{label}] (seq {sequence}), attempt {attempt}."
                )

        running = StepRecord(
            execution_id=self.execution_id,
            step_label=label,
            sequence_number=sequence,
            status=StepStatus.RUNNING,
            attempt=attempt,
        )
        await self._write(running)
        self.log(f"Executing step [{label}] (seq {sequence})...")

        if self._settings.step_delay:
            await asyncio.sleep(self._settings.step_delay)

        try:
            result = await _invoke(work)
            payload = dump_payload(result)
        except (Interrupted, StoreUnavailable, RecordConflict):
            raise
        except Exception as e:
            self._checkpoint(label, sequence)
            message = str(e) or type(e).__name__
            await self._commit(running.transition(StepStatus.FAILED, error=message))
            self.log(f"Step [{label}] (seq {sequence}) failed: {message}", logging.ERROR)
            raise StepFailure(label, sequence, message) from e

        self._checkpoint(label, sequence)
        await self._commit(running.transition(StepStatus.COMPLETED, result=payload))
        self.log(f"Step [{label}] (seq {sequence}) finished successfully.")
        return payload
