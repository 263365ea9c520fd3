"""Application endpoints: apply, accept, reject."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from credo_service.routers.validation import get_task_manager, verify_body_caller

router = APIRouter()


@router.post("/tasks/{task_id}/applications", status_code=201)
async def apply_to_task(task_id: str, request: Request) -> JSONResponse:
    """Apply to an open task."""
    signer_id, _payload = await verify_body_caller(request, "apply_task", task_id=task_id)
    result = get_task_manager().apply(task_id, signer_id)
    return JSONResponse(status_code=201, content=result)


@router.post("/tasks/{task_id}/applications/{applicant_id}/accept")
async def accept_application(task_id: str, applicant_id: str, request: Request) -> dict[str, Any]:
    """Accept one applicant; all other applications are rejected."""
    signer_id, _payload = await verify_body_caller(
        request, "accept_application", task_id=task_id
    )
    return get_task_manager().accept_application(task_id, signer_id, applicant_id)


@router.post("/tasks/{task_id}/applications/{applicant_id}/reject")
async def reject_application(task_id: str, applicant_id: str, request: Request) -> dict[str, Any]:
    """Reject one pending application."""
    signer_id, _payload = await verify_body_caller(
        request, "reject_application", task_id=task_id
    )
    return get_task_manager().reject_application(task_id, signer_id, applicant_id)
