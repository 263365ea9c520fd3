"""Unit test fixtures: cache clearing and in-process service wiring."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from credo_service.config import TasksConfig, clear_settings_cache
from credo_service.core.state import reset_app_state
from credo_service.services.comments import CommentService
from credo_service.services.expiry_sweeper import ExpirySweeper
from credo_service.services.market_store import MarketStore
from credo_service.services.reputation import ReputationLedger
from credo_service.services.task_manager import TaskManager
from credo_service.services.users import UserManager

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

GIVER_ID = "u-giver"
ALICE_ID = "u-alice"
BOB_ID = "u-bob"

FUTURE_DEADLINE = "2099-01-01T00:00:00Z"
PAST_DEADLINE = "2000-01-01T00:00:00Z"


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[MarketStore]:
    """A fresh SQLite store in a temp directory."""
    market_store = MarketStore(db_path=str(tmp_path / "credo.db"))
    yield market_store
    market_store.close()


@pytest.fixture
def user_manager(store: MarketStore) -> UserManager:
    return UserManager(store=store, initial_rating=5.0, leaderboard_size=50)


@pytest.fixture
def comment_service(store: MarketStore) -> CommentService:
    return CommentService(store=store, max_comment_length=500)


@pytest.fixture
def ledger(store: MarketStore) -> ReputationLedger:
    return ReputationLedger(store=store, initial_rating=5.0)


@pytest.fixture
def manager(
    store: MarketStore,
    ledger: ReputationLedger,
    comment_service: CommentService,
) -> TaskManager:
    limits = TasksConfig(
        max_title_length=200,
        max_description_length=2000,
        max_reward_length=100,
        max_reason_length=500,
        expiry_sweep_interval_seconds=0,
    )
    return TaskManager(
        store=store,
        ledger=ledger,
        comments=comment_service,
        limits=limits,
        max_rating_comment_length=500,
    )


@pytest.fixture
def sweeper(store: MarketStore) -> ExpirySweeper:
    return ExpirySweeper(store=store, interval_seconds=0)


@pytest.fixture
def users(user_manager: UserManager) -> dict[str, str]:
    """Register a giver and two workers; returns their ids by name."""
    for index, user_id in enumerate((GIVER_ID, ALICE_ID, BOB_ID)):
        user_manager.register(
            user_id,
            {
                "username": user_id.removeprefix("u-"),
                "phone_number": f"98765432{index:02d}",
                "roll_number": f"R{index:03d}",
            },
        )
    return {"giver": GIVER_ID, "alice": ALICE_ID, "bob": BOB_ID}


def post_task(manager: TaskManager, deadline: str = FUTURE_DEADLINE, **fields: Any) -> str:
    """Create a task as the giver and return its id."""
    data = {
        "title": "Pick up groceries",
        "description": "Two bags from the campus store",
        "reward": "Coffee",
        "deadline": deadline,
    }
    data.update(fields)
    return str(manager.create_task(GIVER_ID, data)["task_id"])


def task_in_progress(manager: TaskManager, acceptor_id: str = ALICE_ID) -> str:
    """Create a task and accept ``acceptor_id`` on it."""
    task_id = post_task(manager)
    manager.apply(task_id, acceptor_id)
    manager.accept_application(task_id, GIVER_ID, acceptor_id)
    return task_id
