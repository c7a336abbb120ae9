"""SQLite implementation of the step record store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..errors import RecordConflict, StoreUnavailable
from .models import StepRecord, StepStatus
from .repository import StepRecordStore, dump_payload

_COLUMNS = (
    "step_key, execution_id, step_label, sequence_number, status, "
    "result_payload, error_message, attempt, last_updated"
)


class SQLiteStepRecordStore(StepRecordStore):
    """Persist step records using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._ensure_schema()
        except sqlite3.Error as e:
            raise StoreUnavailable("connect", self.db_path) from e

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_records (
                step_key TEXT PRIMARY KEY,
                execution_id TEXT NOT NULL,
                step_label TEXT NOT NULL,
                sequence_number INTEGER NOT NULL,
                status TEXT NOT NULL,
                result_payload TEXT,
                error_message TEXT,
                attempt INTEGER NOT NULL DEFAULT 1,
                last_updated TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS ix_step_records_execution "
            "ON step_records (execution_id, sequence_number)"
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _to_record(row: sqlite3.Row) -> StepRecord:
        status = StepStatus(row["status"])
        payload = row["result_payload"]
        return StepRecord(
            execution_id=row["execution_id"],
            step_label=row["step_label"],
            sequence_number=row["sequence_number"],
            status=status,
            result_payload=json.loads(payload) if payload is not None else None,
            error_message=row["error_message"],
            attempt=row["attempt"],
            last_updated=datetime.fromisoformat(row["last_updated"]),
        )

    # ------------------------------------------------------------------
    # Store API
    async def get(self, step_key: str) -> StepRecord | None:
        try:
            row = await asyncio.to_thread(
                self._fetchone,
                f"SELECT {_COLUMNS} FROM step_records WHERE step_key = ?",
                step_key,
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("get", step_key) from e
        return self._to_record(row) if row else None

    async def upsert(self, record: StepRecord) -> None:
        payload = (
            json.dumps(dump_payload(record.result_payload))
            if record.status == StepStatus.COMPLETED
            else None
        )
        try:
            changed = await asyncio.to_thread(
                self._execute,
                f"""
                INSERT INTO step_records ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(step_key) DO UPDATE SET
                    status = excluded.status,
                    result_payload = excluded.result_payload,
                    error_message = excluded.error_message,
                    attempt = excluded.attempt,
                    last_updated = excluded.last_updated
                WHERE step_records.status != 'COMPLETED'
                """,
                record.step_key,
                record.execution_id,
                record.step_label,
                record.sequence_number,
                record.status.value,
                payload,
                record.error_message,
                record.attempt,
                record.last_updated.isoformat(),
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("upsert", record.step_key) from e
        if changed == 0:
            raise RecordConflict(record.step_key)

    async def list_records(self, execution_id: str) -> list[StepRecord]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                f"SELECT {_COLUMNS} FROM step_records WHERE execution_id = ? "
                "ORDER BY sequence_number",
                execution_id,
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("list_records") from e
        return [self._to_record(r) for r in rows]

    async def list_executions(self) -> list[str]:
        try:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT DISTINCT execution_id FROM step_records ORDER BY execution_id",
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("list_executions") from e
        return [r["execution_id"] for r in rows]

    async def delete(self, step_key: str) -> None:
        try:
            await asyncio.to_thread(
                self._execute, "DELETE FROM step_records WHERE step_key = ?", step_key
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("delete", step_key) from e

    async def delete_execution(self, execution_id: str) -> int:
        try:
            return await asyncio.to_thread(
                self._execute,
                "DELETE FROM step_records WHERE execution_id = ?",
                execution_id,
            )
        except sqlite3.Error as e:
            raise StoreUnavailable("delete_execution") from e
