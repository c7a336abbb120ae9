"""Persistence layer for durastep step records."""

from __future__ import annotations

import os
from typing import Optional

from ..config import DurastepConfig, load_config
from ..errors import ConfigurationError
from .inmemory import InMemoryStepRecordStore
from .models import ExecutionSummary, StepRecord, StepStatus, make_step_key
from .repository import StepRecordStore
from .sqlite import SQLiteStepRecordStore

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresStepRecordStore
except ImportError:  # pragma: no cover - optional dependency
    PostgresStepRecordStore = None  # type: ignore

_store_instance: StepRecordStore | None = None


def get_store(
    database_url: Optional[str] = None, config: Optional[DurastepConfig] = None
) -> StepRecordStore:
    """Factory function to obtain a step record store.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``DURASTEP_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory store is returned.
    """

    global _store_instance
    if _store_instance is not None and database_url is None and config is None:
        return _store_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("DURASTEP_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _store_instance = InMemoryStepRecordStore()
        return _store_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _store_instance = SQLiteStepRecordStore(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresStepRecordStore is None:
            raise ConfigurationError("Postgres support not available (install asyncpg)")
        _store_instance = PostgresStepRecordStore(database_url)
    else:
        raise ConfigurationError(f"Unsupported database backend: {database_url}")

    return _store_instance


__all__ = [
    "ExecutionSummary",
    "StepRecord",
    "StepStatus",
    "StepRecordStore",
    "SQLiteStepRecordStore",
    "PostgresStepRecordStore",
    "InMemoryStepRecordStore",
    "get_store",
    "make_step_key",
]
