"""Tests for configuration loading."""

import pytest

from durastep.config import load_config
from durastep.errors import ConfigurationError
from durastep.persistence import (
    InMemoryStepRecordStore,
    SQLiteStepRecordStore,
    get_store,
)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "durastep.yaml"
    config_path.write_text(
        """
database_url: sqlite://steps.db
engine:
  failed_step_policy: raise
  step_delay: 0.25
"""
    )
    monkeypatch.setenv("DURASTEP_CONFIG", str(config_path))
    monkeypatch.delenv("DURASTEP_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.database_url == "sqlite://steps.db"
    assert config.engine.failed_step_policy == "raise"
    assert config.engine.step_delay == 0.25
    assert config.engine.history_limit == 50


def test_env_database_url_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "durastep.yaml"
    config_path.write_text("database_url: sqlite://from-file.db\n")
    monkeypatch.setenv("DURASTEP_DATABASE_URL", "sqlite://from-env.db")

    config = load_config(str(config_path))
    assert config.database_url == "sqlite://from-env.db"


def test_missing_file_gives_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("DURASTEP_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    config = load_config(str(tmp_path / "nope.yaml"))
    assert config.database_url is None
    assert config.engine.failed_step_policy == "retry"


def test_invalid_policy_is_a_configuration_error(tmp_path):
    config_path = tmp_path / "durastep.yaml"
    config_path.write_text("engine:\n  failed_step_policy: sometimes\n")
    with pytest.raises(ConfigurationError):
        load_config(str(config_path))


def test_get_store_uses_config(tmp_path, monkeypatch):
    config_path = tmp_path / "durastep.yaml"
    config_path.write_text(f"database_url: sqlite://{tmp_path / 'steps.db'}\n")
    monkeypatch.setenv("DURASTEP_CONFIG", str(config_path))
    monkeypatch.delenv("DURASTEP_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    store = get_store(config=load_config())
    assert isinstance(store, SQLiteStepRecordStore)


def test_get_store_defaults_to_memory(tmp_path, monkeypatch):
    monkeypatch.delenv("DURASTEP_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    store = get_store(config=load_config(str(tmp_path / "nope.yaml")))
    assert isinstance(store, InMemoryStepRecordStore)


def test_get_store_rejects_unknown_backend():
    with pytest.raises(ConfigurationError):
        get_store("mysql://localhost/steps")
