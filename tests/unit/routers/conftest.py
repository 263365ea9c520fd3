"""Router test fixtures with a mocked Identity service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
import yaml
from httpx import ASGITransport, AsyncClient

from credo_service.app import create_app
from credo_service.config import clear_settings_cache
from credo_service.core.exceptions import ServiceError
from credo_service.core.lifespan import lifespan
from credo_service.core.state import get_app_state, reset_app_state
from tests.helpers import identity_answer, sign_as

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


# ---------------------------------------------------------------------------
# Fixed user IDs
# ---------------------------------------------------------------------------
GIVER_ID = "u-giver-uuid"
ALICE_ID = "u-alice-uuid"
BOB_ID = "u-bob-uuid"

FUTURE_DEADLINE = "2099-01-01T00:00:00Z"


def token_for(user_id: str, action: str, **fields: Any) -> str:
    """Sign a payload for ``user_id`` carrying ``action`` and extra fields."""
    return sign_as(user_id, {"action": action, **fields})


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
def _test_settings(db_path: Path) -> dict[str, Any]:
    return {
        "service": {"name": "credo", "version": "0.1.0"},
        "server": {"host": "127.0.0.1", "port": 8010, "log_level": "info"},
        "logging": {"level": "WARNING"},
        "database": {"path": str(db_path)},
        "identity": {
            "base_url": "http://localhost:8001",
            "verify_jws_path": "/agents/verify-jws",
            "timeout_seconds": 10,
        },
        "request": {"max_body_size": 4096},
        "tasks": {
            "max_title_length": 200,
            "max_description_length": 2000,
            "max_reward_length": 200,
            "max_reason_length": 500,
            "expiry_sweep_interval_seconds": 0,
        },
        "comments": {"max_comment_length": 500},
        "reputation": {
            "initial_rating": 5.0,
            "max_rating_comment_length": 500,
            "leaderboard_size": 50,
        },
    }


@pytest.fixture
async def app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[Any]:
    """Running app on a temp database; Identity accepts every token as its kid."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(_test_settings(tmp_path / "test.db")))
    monkeypatch.setenv("CONFIG_PATH", str(config_path))
    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()
        real_identity = state.identity_client
        fake_identity = AsyncMock()
        fake_identity.verify_jws = AsyncMock(side_effect=identity_answer)
        state.identity_client = fake_identity
        state.require("token_validator")._identity_client = fake_identity
        yield test_app
        state.identity_client = real_identity

    reset_app_state()
    clear_settings_cache()


@pytest.fixture
def identity(app: Any) -> AsyncMock:
    """The Identity double wired into the running app."""
    fake: AsyncMock = get_app_state().require("identity_client")
    return fake


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
async def users(client: AsyncClient) -> dict[str, str]:
    """Register the giver, alice and bob through the API."""
    for index, (name, user_id) in enumerate(
        (("giver", GIVER_ID), ("alice", ALICE_ID), ("bob", BOB_ID))
    ):
        response = await register_user(client, user_id, name, index)
        assert response.status_code == 201, response.text
    return {"giver": GIVER_ID, "alice": ALICE_ID, "bob": BOB_ID}


@pytest.fixture
def mock_identity_unavailable(identity: AsyncMock) -> None:
    identity.verify_jws.side_effect = ConnectionError("Identity service unreachable")


@pytest.fixture
def mock_identity_rejects(identity: AsyncMock) -> None:
    identity.verify_jws.side_effect = ServiceError(
        "FORBIDDEN", "JWS signature verification failed", 403, {}
    )


# ---------------------------------------------------------------------------
# API helper functions
# ---------------------------------------------------------------------------
async def register_user(client: AsyncClient, user_id: str, username: str, index: int) -> Any:
    """Register a profile via POST /users."""
    token = token_for(
        user_id,
        "register_user",
        username=username,
        phone_number=f"99000000{index:02d}",
        roll_number=f"ROLL-{index}",
    )
    return await client.post("/users", json={"token": token})


async def create_task(
    client: AsyncClient,
    giver_id: str = GIVER_ID,
    *,
    title: str = "Return library books",
    description: str = "Three books due at the central library",
    reward: str = "Chai",
    deadline: str = FUTURE_DEADLINE,
) -> Any:
    """Post a task via POST /tasks and return the response."""
    token = token_for(
        giver_id,
        "create_task",
        title=title,
        description=description,
        reward=reward,
        deadline=deadline,
    )
    return await client.post("/tasks", json={"token": token})


async def post_task_id(client: AsyncClient, **kwargs: Any) -> str:
    response = await create_task(client, **kwargs)
    assert response.status_code == 201, response.text
    return str(response.json()["task_id"])


async def apply(client: AsyncClient, task_id: str, applicant_id: str) -> Any:
    token = token_for(applicant_id, "apply_task", task_id=task_id)
    return await client.post(f"/tasks/{task_id}/applications", json={"token": token})


async def accept(
    client: AsyncClient, task_id: str, applicant_id: str, giver_id: str = GIVER_ID
) -> Any:
    token = token_for(giver_id, "accept_application", task_id=task_id)
    return await client.post(
        f"/tasks/{task_id}/applications/{applicant_id}/accept", json={"token": token}
    )


async def task_action(
    client: AsyncClient, task_id: str, caller_id: str, action: str, path: str, **fields: Any
) -> Any:
    """POST to /tasks/{task_id}/{path} with a token for ``action``."""
    token = token_for(caller_id, action, task_id=task_id, **fields)
    return await client.post(f"/tasks/{task_id}/{path}", json={"token": token})


async def in_progress_task_id(client: AsyncClient, acceptor_id: str = ALICE_ID) -> str:
    """Post a task, have ``acceptor_id`` apply, and accept them."""
    task_id = await post_task_id(client)
    assert (await apply(client, task_id, acceptor_id)).status_code == 201
    assert (await accept(client, task_id, acceptor_id)).status_code == 200
    return task_id
