"""Unit tests for the application state container."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from credo_service.core.state import AppState, get_app_state, init_app_state, reset_app_state

_SERVICES = (
    "store",
    "identity_client",
    "token_validator",
    "comment_service",
    "task_manager",
    "user_manager",
    "expiry_sweeper",
)


@pytest.mark.unit
def test_fresh_state_is_not_ready() -> None:
    state = AppState()
    assert state.ready is False
    assert state.sweeper_task is None


@pytest.mark.unit
def test_ready_once_every_service_is_wired() -> None:
    state = AppState()
    for name in _SERVICES[:-1]:
        setattr(state, name, MagicMock())
    assert state.ready is False

    state.expiry_sweeper = MagicMock()
    assert state.ready is True


@pytest.mark.unit
def test_require_returns_wired_service() -> None:
    state = AppState()
    manager = MagicMock()
    state.task_manager = manager
    assert state.require("task_manager") is manager


@pytest.mark.unit
def test_require_unwired_service_raises() -> None:
    with pytest.raises(RuntimeError, match="user_manager not initialized"):
        AppState().require("user_manager")


@pytest.mark.unit
def test_require_unknown_name_raises() -> None:
    with pytest.raises(KeyError):
        AppState().require("start_time")


@pytest.mark.unit
def test_uptime_and_started_at() -> None:
    state = AppState(start_time=datetime.now(UTC) - timedelta(seconds=90))
    assert state.uptime_seconds >= 90

    started = datetime(2026, 3, 1, 8, 30, tzinfo=UTC)
    assert AppState(start_time=started).started_at == "2026-03-01T08:30:00Z"


@pytest.mark.unit
def test_global_state_lifecycle() -> None:
    reset_app_state()
    with pytest.raises(RuntimeError):
        get_app_state()

    state = init_app_state()
    assert get_app_state() is state

    reset_app_state()
    with pytest.raises(RuntimeError):
        get_app_state()
