"""Store abstraction for step record persistence."""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import TypeAdapter

from .models import StepRecord, StepStatus
from ..errors import RecordConflict

_payload_adapter: TypeAdapter[Any] = TypeAdapter(Any)


def dump_payload(value: Any) -> Any:
    """Convert a step result into JSON-compatible data."""
    return _payload_adapter.dump_python(value, mode="json")


def guard_overwrite(existing: StepRecord | None, record: StepRecord) -> None:
    """Raise when ``record`` would rewrite a completed record."""
    if existing is not None and existing.status == StepStatus.COMPLETED:
        raise RecordConflict(record.step_key)


class StepRecordStore(Protocol):
    """Protocol for step record persistence backends.

    Every call is durable at the granularity of the call: a write either
    lands completely or not at all.
    """

    async def get(self, step_key: str) -> StepRecord | None:
        """Retrieve the record stored under ``step_key``."""

    async def upsert(self, record: StepRecord) -> None:
        """Insert or replace the record keyed by ``record.step_key``.

        Raises ``RecordConflict`` if the stored record is COMPLETED.
        """

    async def list_records(self, execution_id: str) -> list[StepRecord]:
        """Return the records of an execution ordered by sequence number."""

    async def list_executions(self) -> list[str]:
        """Return every execution id with at least one record."""

    async def delete(self, step_key: str) -> None:
        """Remove a single record; missing keys are ignored."""

    async def delete_execution(self, execution_id: str) -> int:
        """Delete all records of an execution, returning how many were removed."""
