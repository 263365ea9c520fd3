"""Router tests for user profile and leaderboard endpoints."""

from __future__ import annotations

import pytest

from tests.unit.routers.conftest import (
    ALICE_ID,
    BOB_ID,
    GIVER_ID,
    in_progress_task_id,
    register_user,
    task_action,
    token_for,
)


@pytest.mark.unit
async def test_register_returns_profile_with_contact(client) -> None:
    response = await register_user(client, "u-dana", "dana", 7)

    assert response.status_code == 201
    body = response.json()
    assert body["user_id"] == "u-dana"
    assert body["phone_number"] == "9900000007"
    assert body["giving_rating"] == 5.0
    assert body["total_trophies"] == 0


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_register_twice_conflicts(client) -> None:
    response = await register_user(client, ALICE_ID, "alice2", 9)
    assert response.status_code == 409
    assert response.json()["error"] == "USER_EXISTS"


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_register_taken_username(client) -> None:
    response = await register_user(client, "u-dana", "alice", 9)
    assert response.status_code == 409
    assert response.json()["error"] == "USERNAME_TAKEN"


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_get_me_includes_contact(client) -> None:
    token = token_for(ALICE_ID, "get_profile")

    response = await client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json()["user_id"] == ALICE_ID
    assert response.json()["roll_number"] == "ROLL-1"


@pytest.mark.unit
async def test_get_me_requires_bearer_scheme(client) -> None:
    response = await client.get("/users/me", headers={"Authorization": "Token abc"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_JWS"


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_update_me(client) -> None:
    token = token_for(ALICE_ID, "update_profile", phone_number="9111111111")

    response = await client.post("/users/me", json={"token": token})

    assert response.status_code == 200
    assert response.json()["phone_number"] == "9111111111"


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_public_profile_hides_contact(client) -> None:
    response = await client.get(f"/users/{BOB_ID}")

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "bob"
    assert "phone_number" not in body
    assert body["stats"]["tasks_given"] == 0


@pytest.mark.unit
async def test_unknown_profile(client) -> None:
    response = await client.get("/users/u-nobody")
    assert response.status_code == 404
    assert response.json()["error"] == "USER_NOT_FOUND"


@pytest.mark.unit
@pytest.mark.usefixtures("users")
async def test_leaderboard_ranks_by_trophies(client) -> None:
    task_id = await in_progress_task_id(client, BOB_ID)
    await task_action(client, task_id, GIVER_ID, "complete_task", "complete")

    response = await client.get("/leaderboard", params={"category": "acceptor"})

    assert response.status_code == 200
    body = response.json()
    assert body["category"] == "acceptor"
    assert body["users"][0]["user_id"] == BOB_ID
    assert body["users"][0]["rank"] == 1

    overall = (await client.get("/leaderboard")).json()
    assert overall["category"] == "overall"
    assert len(overall["users"]) == 3


@pytest.mark.unit
async def test_leaderboard_unknown_category(client) -> None:
    response = await client.get("/leaderboard", params={"category": "speed"})
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_CATEGORY"
