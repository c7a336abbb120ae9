from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError


class EngineSettings(BaseModel):
    """Behaviour knobs for the step executor."""

    failed_step_policy: Literal["retry", "raise"] = "retry"
    step_delay: float = Field(default=0.0, ge=0.0)
    history_limit: int = Field(default=50, gt=0)


class DurastepConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    engine: EngineSettings = EngineSettings()


def load_config(path: Optional[str] = None) -> DurastepConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to DURASTEP_CONFIG env
            variable or 'durastep.yaml' in the current directory.
    """

    config_path = path or os.getenv("DURASTEP_CONFIG", "durastep.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        try:
            config = DurastepConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config in {config_path}: {e}") from e
    else:
        config = DurastepConfig()

    env_db_url = os.getenv("DURASTEP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
