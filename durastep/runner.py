"""Execution pass driver for durastep workflows."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from .config import DurastepConfig, EngineSettings, load_config
from .contracts import ExecutionOutcome, OutcomeStatus
from .errors import DurastepError, Interrupted, StepFailure, StoreUnavailable
from .execute import DurableContext
from .interruption import InterruptionToken
from .observers import CompositeObserver, LoggingObserver, RecordingObserver, StepObserver
from .persistence import ExecutionSummary, StepRecord, StepRecordStore, StepStatus, get_store

logger = logging.getLogger(__name__)

Workflow = Callable[..., Awaitable[Any]]


class WorkflowRunner:
    """Runs execution passes of workflow functions against a step store.

    A workflow is an ``async def workflow(ctx, **inputs)`` function that
    performs every side effect through ``ctx.step`` or ``ctx.parallel``.
    """

    def __init__(
        self,
        store: Optional[StepRecordStore] = None,
        observer: Optional[StepObserver] = None,
        settings: Optional[EngineSettings] = None,
        config: Optional[DurastepConfig] = None,
    ) -> None:
        if store is None or settings is None:
            config = config or load_config()
        self._store = store or get_store(config=config)
        self._settings = settings or config.engine
        self._observer = observer or LoggingObserver()

    @property
    def store(self) -> StepRecordStore:
        return self._store

    async def _call_store(self, operation: str, coro: Awaitable[Any]) -> Any:
        try:
            return await coro
        except DurastepError:
            raise
        except Exception as e:
            raise StoreUnavailable(operation) from e

    async def run(
        self,
        workflow: Workflow,
        execution_id: str,
        *,
        token: Optional[InterruptionToken] = None,
        observer: Optional[StepObserver] = None,
        **inputs: Any,
    ) -> ExecutionOutcome:
        """Run one execution pass of ``workflow``.

        Step failures and interruptions are reported through the returned
        outcome, along with the last ``history_limit`` progress messages.
        ``StoreUnavailable`` and ``RecordConflict`` are fatal and propagate.
        """
        recorder = RecordingObserver(history_limit=self._settings.history_limit)
        sinks = CompositeObserver(self._observer, recorder)
        if observer is not None:
            sinks.add(observer)

        existing = await self._call_store(
            "list_records", self._store.list_records(execution_id)
        )
        ctx = DurableContext(
            execution_id,
            self._store,
            token=token,
            observer=sinks,
            settings=self._settings,
        )
        if existing:
            ctx.log(
                f"Resuming execution {execution_id} ({len(existing)} recorded steps)..."
            )
        else:
            ctx.log(f"Starting new durable execution {execution_id}...")

        try:
            result = await workflow(ctx, **inputs)
        except Interrupted as e:
            ctx.log(f"Execution {execution_id} interrupted: {e}", logging.WARNING)
            return ExecutionOutcome(
                execution_id=execution_id,
                status=OutcomeStatus.INTERRUPTED,
                failed_step=e.label,
                failed_sequence=e.sequence,
                error=e.reason,
                steps_executed=ctx.steps_executed,
                steps_replayed=ctx.steps_replayed,
                messages=[m for _, m in recorder.messages],
            )
        except StepFailure as e:
            ctx.log(f"Execution {execution_id} failed: {e}", logging.ERROR)
            return ExecutionOutcome(
                execution_id=execution_id,
                status=OutcomeStatus.FAILED,
                failed_step=e.label,
                failed_sequence=e.sequence,
                error=e.message,
                steps_executed=ctx.steps_executed,
                steps_replayed=ctx.steps_replayed,
                messages=[m for _, m in recorder.messages],
            )

        ctx.log(f"Execution {execution_id} completed successfully!")
        return ExecutionOutcome(
            execution_id=execution_id,
            status=OutcomeStatus.COMPLETED,
            result=result,
            steps_executed=ctx.steps_executed,
            steps_replayed=ctx.steps_replayed,
            messages=[m for _, m in recorder.messages],
        )

    async def history(self, execution_id: str) -> list[StepRecord]:
        """Return the records of an execution in sequence order."""
        return await self._call_store(
            "list_records", self._store.list_records(execution_id)
        )

    async def summaries(self) -> list[ExecutionSummary]:
        summaries = []
        for execution_id in await self._call_store(
            "list_executions", self._store.list_executions()
        ):
            records = await self.history(execution_id)
            summaries.append(ExecutionSummary.from_records(execution_id, records))
        return summaries

    async def reset(self, execution_id: str) -> int:
        """Delete every record of ``execution_id``."""
        removed = await self._call_store(
            "delete_execution", self._store.delete_execution(execution_id)
        )
        logger.info(f"Cleared {removed} step records for execution {execution_id}")
        return removed

    async def retry_failed(self, execution_id: str) -> list[str]:
        """Drop FAILED records so the next pass runs those steps again.

        Needed when ``failed_step_policy`` is ``"raise"``; with ``"retry"``
        failed steps are re-run automatically.
        """
        cleared = []
        for record in await self.history(execution_id):
            if record.status == StepStatus.FAILED:
                await self._call_store("delete", self._store.delete(record.step_key))
                cleared.append(record.step_key)
        if cleared:
            logger.info(
                f"Cleared {len(cleared)} failed step(s) for execution {execution_id}"
            )
        return cleared
