"""Rating endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from credo_service.routers.validation import (
    extract_bearer_token,
    get_task_manager,
    verify_body_caller,
    verify_caller,
)

router = APIRouter()


@router.post("/tasks/{task_id}/ratings", status_code=201)
async def submit_rating(task_id: str, request: Request) -> JSONResponse:
    """Rate the other party of a task."""
    signer_id, payload = await verify_body_caller(request, "submit_rating", task_id=task_id)
    result = get_task_manager().rate(
        task_id,
        signer_id,
        payload.get("rated_user_id"),
        payload.get("rating_value"),
        payload.get("comment"),
    )
    return JSONResponse(status_code=201, content=result)


@router.get("/tasks/{task_id}/ratings/mine")
async def has_rated(
    task_id: str,
    authorization: str | None = Header(default=None),
) -> dict[str, Any]:
    """Tell the caller whether they already rated this task."""
    token = extract_bearer_token(authorization)
    signer_id, _payload = await verify_caller(token, "has_rated", task_id=task_id)
    return {"task_id": task_id, "has_rated": get_task_manager().has_rated(task_id, signer_id)}
