"""Router tests for task lifecycle endpoints."""

from __future__ import annotations

from typing import Any

import pytest

from tests.unit.routers.conftest import (
    ALICE_ID,
    BOB_ID,
    GIVER_ID,
    apply,
    create_task,
    in_progress_task_id,
    post_task_id,
    task_action,
    token_for,
)

pytestmark = [pytest.mark.unit, pytest.mark.usefixtures("users")]


def _assert_error(response: Any, status_code: int, error: str) -> None:
    assert response.status_code == status_code, response.text
    assert response.json()["error"] == error


async def test_create_task_returns_201(client) -> None:
    response = await create_task(client)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "OPEN"
    assert body["giver_id"] == GIVER_ID
    assert body["giver_username"] == "giver"
    assert body["acceptor_id"] is None
    assert body["deadline"] == "2099-01-01T00:00:00.000000Z"


async def test_create_task_missing_title(client) -> None:
    response = await create_task(client, title="  ")
    _assert_error(response, 400, "MISSING_FIELD")


async def test_create_task_requires_profile(client) -> None:
    response = await create_task(client, giver_id="u-stranger")
    _assert_error(response, 403, "USER_NOT_REGISTERED")


async def test_create_task_wrong_action(client) -> None:
    token = token_for(GIVER_ID, "cancel_task", title="T", description="D", reward="R")
    response = await client.post("/tasks", json={"token": token})
    _assert_error(response, 400, "INVALID_PAYLOAD")


async def test_list_tasks_filters(client) -> None:
    open_id = await post_task_id(client)
    busy_id = await in_progress_task_id(client)

    response = await client.get("/tasks", params={"status": "OPEN"})
    assert response.status_code == 200
    assert [task["task_id"] for task in response.json()["tasks"]] == [open_id]

    response = await client.get("/tasks", params={"acceptor_id": ALICE_ID})
    assert [task["task_id"] for task in response.json()["tasks"]] == [busy_id]

    response = await client.get("/tasks", params={"limit": 1})
    assert len(response.json()["tasks"]) == 1


@pytest.mark.parametrize(
    "params",
    [{"status": "DONE"}, {"limit": "0"}, {"limit": "ten"}, {"offset": "-1"}],
)
async def test_list_tasks_rejects_bad_query(client, params: dict[str, str]) -> None:
    response = await client.get("/tasks", params=params)
    _assert_error(response, 400, "INVALID_PAYLOAD")


async def test_get_task_includes_applications(client) -> None:
    task_id = await post_task_id(client)
    await apply(client, task_id, ALICE_ID)

    response = await client.get(f"/tasks/{task_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["task"]["task_id"] == task_id
    assert [app["applicant_id"] for app in body["applications"]] == [ALICE_ID]
    assert body["applications"][0]["applicant_username"] == "alice"


async def test_get_task_not_found(client) -> None:
    response = await client.get("/tasks/t-missing")
    _assert_error(response, 404, "TASK_NOT_FOUND")


async def test_complete_task(client) -> None:
    task_id = await in_progress_task_id(client)

    response = await task_action(client, task_id, GIVER_ID, "complete_task", "complete")

    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"
    profile = (await client.get(f"/users/{ALICE_ID}")).json()
    assert profile["trophies_accepted"] == 1


async def test_complete_by_acceptor_is_forbidden(client) -> None:
    task_id = await in_progress_task_id(client)
    response = await task_action(client, task_id, ALICE_ID, "complete_task", "complete")
    _assert_error(response, 403, "FORBIDDEN")


async def test_complete_open_task_conflicts(client) -> None:
    task_id = await post_task_id(client)
    response = await task_action(client, task_id, GIVER_ID, "complete_task", "complete")
    _assert_error(response, 409, "INVALID_STATUS")


async def test_cancel_task(client) -> None:
    task_id = await in_progress_task_id(client)

    response = await task_action(client, task_id, GIVER_ID, "cancel_task", "cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["acceptor_id"] is None


async def test_withdraw_reopens_task(client) -> None:
    task_id = await in_progress_task_id(client)

    response = await task_action(
        client, task_id, ALICE_ID, "withdraw_task", "withdraw", reason="Exams"
    )

    assert response.status_code == 200
    assert response.json()["status"] == "OPEN"
    comments = (await client.get(f"/tasks/{task_id}/comments")).json()["comments"]
    assert comments[0]["is_system"] is True
    assert comments[0]["comment_text"] == "Acceptor withdrew: Exams"


async def test_withdraw_without_reason(client) -> None:
    task_id = await in_progress_task_id(client)
    response = await task_action(client, task_id, ALICE_ID, "withdraw_task", "withdraw")
    _assert_error(response, 400, "MISSING_FIELD")


async def test_remove_acceptor(client) -> None:
    task_id = await in_progress_task_id(client)

    response = await task_action(
        client, task_id, GIVER_ID, "remove_acceptor", "remove-acceptor", reason="Silent"
    )

    assert response.status_code == 200
    assert response.json()["status"] == "OPEN"
    detail = (await client.get(f"/tasks/{task_id}")).json()
    assert detail["applications"][0]["status"] == "REMOVED"


async def test_remove_acceptor_by_stranger(client) -> None:
    task_id = await in_progress_task_id(client)
    response = await task_action(
        client, task_id, BOB_ID, "remove_acceptor", "remove-acceptor", reason="Mine now"
    )
    _assert_error(response, 403, "FORBIDDEN")


async def test_extend_deadline(client) -> None:
    task_id = await post_task_id(client)

    response = await task_action(
        client,
        task_id,
        GIVER_ID,
        "extend_deadline",
        "extend",
        deadline="2100-01-01T00:00:00Z",
        comment="Pushed back",
    )

    assert response.status_code == 200
    assert response.json()["deadline"] == "2100-01-01T00:00:00.000000Z"


async def test_extend_deadline_invalid(client) -> None:
    task_id = await post_task_id(client)
    response = await task_action(
        client, task_id, GIVER_ID, "extend_deadline", "extend", deadline="soon"
    )
    _assert_error(response, 400, "INVALID_DEADLINE")


async def test_duplicate_task(client) -> None:
    task_id = await post_task_id(client, title="Weekly groceries")

    response = await task_action(
        client,
        task_id,
        GIVER_ID,
        "duplicate_task",
        "duplicate",
        deadline="2100-01-01T00:00:00Z",
    )

    assert response.status_code == 201
    body = response.json()
    assert body["task_id"] != task_id
    assert body["title"] == "Weekly groceries"
    assert body["status"] == "OPEN"


async def test_expire_tasks(client) -> None:
    overdue = await post_task_id(client, deadline="2000-01-01T00:00:00Z")
    token = token_for(GIVER_ID, "expire_tasks")

    first = await client.post("/tasks/expire", json={"token": token})
    second = await client.post("/tasks/expire", json={"token": token})

    assert first.json() == {"count": 1}
    assert second.json() == {"count": 0}
    task = (await client.get(f"/tasks/{overdue}")).json()["task"]
    assert task["status"] == "CANCELLED"


async def test_token_for_other_task_is_rejected(client) -> None:
    """A token bound to one task cannot drive another."""
    first = await in_progress_task_id(client)
    second = await in_progress_task_id(client, BOB_ID)
    token = token_for(GIVER_ID, "complete_task", task_id=first)

    response = await client.post(f"/tasks/{second}/complete", json={"token": token})

    _assert_error(response, 400, "INVALID_PAYLOAD")
