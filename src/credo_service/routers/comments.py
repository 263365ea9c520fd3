"""Comment thread endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from credo_service.routers.validation import get_comment_service, verify_body_caller

router = APIRouter()


@router.get("/tasks/{task_id}/comments")
async def list_comments(task_id: str) -> dict[str, Any]:
    """Return the task's comment thread as nested replies."""
    return {"task_id": task_id, "comments": get_comment_service().list_comments(task_id)}


@router.post("/tasks/{task_id}/comments", status_code=201)
async def add_comment(task_id: str, request: Request) -> JSONResponse:
    """Post a comment or a reply to an existing comment."""
    signer_id, payload = await verify_body_caller(request, "add_comment", task_id=task_id)
    node = get_comment_service().add_comment(
        task_id,
        signer_id,
        payload.get("comment_text"),
        payload.get("parent_comment_id"),
    )
    return JSONResponse(status_code=201, content=node)
