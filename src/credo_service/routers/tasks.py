"""Task lifecycle endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from credo_service.routers.validation import (
    get_expiry_sweeper,
    get_task_manager,
    parse_int_param,
    verify_body_caller,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# POST /tasks and GET /tasks (MUST be before GET /tasks/{task_id})
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=201)
async def create_task(request: Request) -> JSONResponse:
    """Post a new task with the caller as giver."""
    signer_id, payload = await verify_body_caller(request, "create_task")
    result = get_task_manager().create_task(signer_id, payload)
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks")
async def list_tasks(request: Request) -> dict[str, Any]:
    """List tasks with optional status, giver, and acceptor filters."""
    params = request.query_params
    tasks = get_task_manager().list_tasks(
        status=params.get("status"),
        giver_id=params.get("giver_id"),
        acceptor_id=params.get("acceptor_id"),
        limit=parse_int_param(params.get("limit"), "limit", minimum=1),
        offset=parse_int_param(params.get("offset"), "offset", minimum=0),
    )
    return {"tasks": tasks}


@router.post("/tasks/expire")
async def expire_tasks(request: Request) -> dict[str, int]:
    """Cancel every OPEN task whose deadline has passed."""
    await verify_body_caller(request, "expire_tasks")
    return get_expiry_sweeper().sweep()


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/complete")
async def complete_task(task_id: str, request: Request) -> dict[str, Any]:
    """Mark an in-progress task completed and award trophies."""
    signer_id, _payload = await verify_body_caller(request, "complete_task", task_id=task_id)
    return get_task_manager().complete_task(task_id, signer_id)


@router.post("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, request: Request) -> dict[str, Any]:
    """Cancel an open or in-progress task."""
    signer_id, _payload = await verify_body_caller(request, "cancel_task", task_id=task_id)
    return get_task_manager().cancel_task(task_id, signer_id)


@router.post("/tasks/{task_id}/withdraw")
async def withdraw_from_task(task_id: str, request: Request) -> dict[str, Any]:
    """Acceptor gives the task back with a reason."""
    signer_id, payload = await verify_body_caller(request, "withdraw_task", task_id=task_id)
    return get_task_manager().withdraw(task_id, signer_id, payload.get("reason"))


@router.post("/tasks/{task_id}/remove-acceptor")
async def remove_acceptor(task_id: str, request: Request) -> dict[str, Any]:
    """Giver removes the current acceptor with a reason."""
    signer_id, payload = await verify_body_caller(request, "remove_acceptor", task_id=task_id)
    return get_task_manager().remove_acceptor(task_id, signer_id, payload.get("reason"))


@router.post("/tasks/{task_id}/extend")
async def extend_deadline(task_id: str, request: Request) -> dict[str, Any]:
    """Replace the deadline of an active task."""
    signer_id, payload = await verify_body_caller(request, "extend_deadline", task_id=task_id)
    return get_task_manager().extend_deadline(
        task_id,
        signer_id,
        payload.get("deadline"),
        payload.get("comment"),
    )


@router.post("/tasks/{task_id}/duplicate", status_code=201)
async def duplicate_task(task_id: str, request: Request) -> JSONResponse:
    """Post a copy of an existing task."""
    signer_id, payload = await verify_body_caller(request, "duplicate_task", task_id=task_id)
    result = get_task_manager().duplicate_task(task_id, signer_id, payload)
    return JSONResponse(status_code=201, content=result)


# ---------------------------------------------------------------------------
# GET /tasks/{task_id} (MUST be LAST: parameterized catch-all)
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}")
async def get_task(task_id: str) -> dict[str, Any]:
    """Get a task with all of its applications."""
    return get_task_manager().get_task(task_id)
