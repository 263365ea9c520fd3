"""
Settings for the credo service, read from one YAML file.

Only the log directory is optional; any other missing or unknown key
stops startup with a pydantic ValidationError.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parents[2]


class _Section(BaseModel):
    """Config block that rejects unknown keys."""

    model_config = ConfigDict(extra="forbid")


class ServiceConfig(_Section):
    """Service identity configuration."""

    name: str
    version: str


class ServerConfig(_Section):
    """HTTP server configuration."""

    host: str
    port: int
    log_level: str


class LoggingConfig(_Section):
    """Logging configuration. Without a directory, logs go to stdout only."""

    level: str
    directory: str | None = None


class DatabaseConfig(_Section):
    """Database configuration."""

    path: str


class IdentityConfig(_Section):
    """Identity service connection configuration."""

    base_url: str
    verify_jws_path: str
    timeout_seconds: int


class RequestConfig(_Section):
    """Request handling configuration."""

    max_body_size: int


class TasksConfig(_Section):
    """Task field limits and expiry sweep schedule."""

    max_title_length: int
    max_description_length: int
    max_reward_length: int
    max_reason_length: int
    expiry_sweep_interval_seconds: int


class CommentsConfig(_Section):
    """Comment thread limits."""

    max_comment_length: int


class ReputationConfig(_Section):
    """Rating seed value and leaderboard sizing."""

    initial_rating: float
    max_rating_comment_length: int
    leaderboard_size: int


class Settings(_Section):
    """Top-level layout of config.yaml."""

    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    identity: IdentityConfig
    request: RequestConfig
    tasks: TasksConfig
    comments: CommentsConfig
    reputation: ReputationConfig


def get_config_path() -> Path:
    """Determine configuration file path from CONFIG_PATH or the project root."""
    override = os.environ.get("CONFIG_PATH")
    if override:
        return Path(override)
    return _PROJECT_ROOT / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings from the YAML config file."""
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Drop cached settings so the next call re-reads the file."""
    get_settings.cache_clear()
