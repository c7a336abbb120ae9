"""PostgreSQL implementation of the step record store."""

from __future__ import annotations

import json

import asyncpg

from ..errors import RecordConflict, StoreUnavailable
from .models import StepRecord, StepStatus
from .repository import StepRecordStore, dump_payload

_COLUMNS = (
    "step_key, execution_id, step_label, sequence_number, status, "
    "result_payload, error_message, attempt, last_updated"
)

_STORE_ERRORS = (asyncpg.PostgresError, OSError)


class PostgresStepRecordStore(StepRecordStore):
    """Persist step records using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_records (
                step_key TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL,
                step_label TEXT NOT NULL,
                sequence_number INTEGER NOT NULL,
                status TEXT NOT NULL,
                result_payload JSONB,
                error_message TEXT,
                attempt INTEGER NOT NULL DEFAULT 1,
                last_updated TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_step_records_execution "
            "ON step_records (execution_id, sequence_number)"
        )

    @staticmethod
    def _to_record(row: asyncpg.Record) -> StepRecord:
        payload = row["result_payload"]
        return StepRecord(
            execution_id=row["execution_id"],
            step_label=row["step_label"],
            sequence_number=row["sequence_number"],
            status=StepStatus(row["status"]),
            result_payload=json.loads(payload) if payload is not None else None,
            error_message=row["error_message"],
            attempt=row["attempt"],
            last_updated=row["last_updated"],
        )

    # ------------------------------------------------------------------
    async def get(self, step_key: str) -> StepRecord | None:
        try:
            conn = await self._connect()
            try:
                row = await conn.fetchrow(
                    f"SELECT {_COLUMNS} FROM step_records WHERE step_key = $1",
                    step_key,
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("get", step_key) from e
        return self._to_record(row) if row else None

    async def upsert(self, record: StepRecord) -> None:
        payload = (
            json.dumps(dump_payload(record.result_payload))
            if record.status == StepStatus.COMPLETED
            else None
        )
        try:
            conn = await self._connect()
            try:
                status = await conn.execute(
                    f"""
                    INSERT INTO step_records ({_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb, $7, $8, $9)
                    ON CONFLICT (step_key) DO UPDATE SET
                        status = EXCLUDED.status,
                        result_payload = EXCLUDED.result_payload,
                        error_message = EXCLUDED.error_message,
                        attempt = EXCLUDED.attempt,
                        last_updated = EXCLUDED.last_updated
                    WHERE step_records.status <> 'COMPLETED'
                    """,
                    record.step_key,
                    record.execution_id,
                    record.step_label,
                    record.sequence_number,
                    record.status.value,
                    payload,
                    record.error_message,
                    record.attempt,
                    record.last_updated,
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("upsert", record.step_key) from e
        # asyncpg reports "INSERT 0 <rows>"
        if status.endswith(" 0"):
            raise RecordConflict(record.step_key)

    async def list_records(self, execution_id: str) -> list[StepRecord]:
        try:
            conn = await self._connect()
            try:
                rows = await conn.fetch(
                    f"SELECT {_COLUMNS} FROM step_records WHERE execution_id = $1 "
                    "ORDER BY sequence_number",
                    execution_id,
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("list_records") from e
        return [self._to_record(r) for r in rows]

    async def list_executions(self) -> list[str]:
        try:
            conn = await self._connect()
            try:
                rows = await conn.fetch(
                    "SELECT DISTINCT execution_id FROM step_records ORDER BY execution_id"
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("list_executions") from e
        return [r["execution_id"] for r in rows]

    async def delete(self, step_key: str) -> None:
        try:
            conn = await self._connect()
            try:
                await conn.execute(
                    "DELETE FROM step_records WHERE step_key = $1", step_key
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("delete", step_key) from e

    async def delete_execution(self, execution_id: str) -> int:
        try:
            conn = await self._connect()
            try:
                status = await conn.execute(
                    "DELETE FROM step_records WHERE execution_id = $1", execution_id
                )
            finally:
                await conn.close()
        except _STORE_ERRORS as e:
            raise StoreUnavailable("delete_execution") from e
        return int(status.split()[-1])
