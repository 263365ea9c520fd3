"""Router tests for rating endpoints."""

from __future__ import annotations

from typing import Any

import pytest

from tests.unit.routers.conftest import (
    ALICE_ID,
    BOB_ID,
    GIVER_ID,
    in_progress_task_id,
    task_action,
    token_for,
)

pytestmark = [pytest.mark.unit, pytest.mark.usefixtures("users")]


async def _rate(client, task_id: str, rater_id: str, rated_id: Any, value: Any, **fields) -> Any:
    return await task_action(
        client,
        task_id,
        rater_id,
        "submit_rating",
        "ratings",
        rated_user_id=rated_id,
        rating_value=value,
        **fields,
    )


async def _completed_task_id(client) -> str:
    task_id = await in_progress_task_id(client)
    response = await task_action(client, task_id, GIVER_ID, "complete_task", "complete")
    assert response.status_code == 200
    return task_id


async def test_rate_after_completion(client) -> None:
    task_id = await _completed_task_id(client)

    response = await _rate(client, task_id, GIVER_ID, ALICE_ID, 3, comment="Late but done")

    assert response.status_code == 201
    body = response.json()
    assert body["rating_type"] == "ACCEPTING"
    assert body["comment"] == "Late but done"
    profile = (await client.get(f"/users/{ALICE_ID}")).json()
    assert profile["accepting_rating"] == pytest.approx(4.0)
    assert profile["accepting_rating_count"] == 1


async def test_rate_twice_conflicts(client) -> None:
    task_id = await _completed_task_id(client)
    await _rate(client, task_id, ALICE_ID, GIVER_ID, 5)

    response = await _rate(client, task_id, ALICE_ID, GIVER_ID, 4)

    assert response.status_code == 409
    assert response.json()["error"] == "RATING_EXISTS"


@pytest.mark.parametrize("value", [0, 6, 3.5, "4", None])
async def test_rating_value_validation(client, value: Any) -> None:
    task_id = await _completed_task_id(client)
    response = await _rate(client, task_id, GIVER_ID, ALICE_ID, value)
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_RATING"


async def test_rating_requires_rated_user(client) -> None:
    task_id = await _completed_task_id(client)
    response = await _rate(client, task_id, GIVER_ID, None, 4)
    assert response.status_code == 400
    assert response.json()["error"] == "MISSING_FIELD"


async def test_outsider_cannot_rate(client) -> None:
    task_id = await _completed_task_id(client)
    response = await _rate(client, task_id, BOB_ID, GIVER_ID, 1)
    assert response.status_code == 403
    assert response.json()["error"] == "FORBIDDEN"


async def test_withdrawal_allows_giver_rating(client) -> None:
    task_id = await in_progress_task_id(client)
    await task_action(client, task_id, ALICE_ID, "withdraw_task", "withdraw", reason="Busy")

    response = await _rate(client, task_id, GIVER_ID, ALICE_ID, 2)

    assert response.status_code == 201
    assert response.json()["rating_type"] == "ACCEPTING"


async def test_has_rated(client) -> None:
    task_id = await _completed_task_id(client)
    token = token_for(GIVER_ID, "has_rated", task_id=task_id)
    headers = {"Authorization": f"Bearer {token}"}

    before = await client.get(f"/tasks/{task_id}/ratings/mine", headers=headers)
    await _rate(client, task_id, GIVER_ID, ALICE_ID, 5)
    after = await client.get(f"/tasks/{task_id}/ratings/mine", headers=headers)

    assert before.json() == {"task_id": task_id, "has_rated": False}
    assert after.json() == {"task_id": task_id, "has_rated": True}


async def test_has_rated_requires_bearer(client) -> None:
    task_id = await _completed_task_id(client)
    response = await client.get(f"/tasks/{task_id}/ratings/mine")
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_JWS"


async def test_ratings_received_listing(client) -> None:
    task_id = await _completed_task_id(client)
    await _rate(client, task_id, ALICE_ID, GIVER_ID, 4, comment="Clear brief")

    response = await client.get(f"/users/{GIVER_ID}/ratings")

    assert response.status_code == 200
    ratings = response.json()["ratings"]
    assert len(ratings) == 1
    assert ratings[0]["rater_username"] == "alice"
    assert ratings[0]["rating_type"] == "GIVING"
