"""In-memory implementation of the step record store."""

from __future__ import annotations

import asyncio
from typing import Dict

from .models import StepRecord
from .repository import StepRecordStore, dump_payload, guard_overwrite


class InMemoryStepRecordStore(StepRecordStore):
    """Store step records in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, StepRecord] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def get(self, step_key: str) -> StepRecord | None:
        record = self._records.get(step_key)
        return record.model_copy(deep=True) if record else None

    async def upsert(self, record: StepRecord) -> None:
        async with self._lock:
            guard_overwrite(self._records.get(record.step_key), record)
            self._records[record.step_key] = record.model_copy(
                update={"result_payload": dump_payload(record.result_payload)},
                deep=True,
            )

    async def list_records(self, execution_id: str) -> list[StepRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if r.execution_id == execution_id
        ]
        return sorted(records, key=lambda r: r.sequence_number)

    async def list_executions(self) -> list[str]:
        return sorted({r.execution_id for r in self._records.values()})

    async def delete(self, step_key: str) -> None:
        async with self._lock:
            self._records.pop(step_key, None)

    async def delete_execution(self, execution_id: str) -> int:
        async with self._lock:
            keys = [k for k, r in self._records.items() if r.execution_id == execution_id]
            for key in keys:
                del self._records[key]
        return len(keys)
