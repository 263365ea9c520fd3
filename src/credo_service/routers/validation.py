"""Shared request validation and caller authentication helpers for routers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from credo_service.core.exceptions import ServiceError
from credo_service.core.state import get_app_state

if TYPE_CHECKING:
    from fastapi import Request

    from credo_service.services.comments import CommentService
    from credo_service.services.expiry_sweeper import ExpirySweeper
    from credo_service.services.task_manager import TaskManager
    from credo_service.services.token_validator import TokenValidator
    from credo_service.services.users import UserManager


def parse_json_body(raw_body: bytes) -> dict[str, Any]:
    """Parse JSON body, raising ServiceError on failure."""
    try:
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ServiceError("INVALID_JSON", "Request body is not valid JSON", 400, {}) from exc

    if not isinstance(data, dict):
        raise ServiceError("INVALID_JSON", "Request body must be a JSON object", 400, {})

    return data


def extract_token(data: dict[str, Any], field_name: str) -> str:
    """Extract and validate a token field from parsed JSON body."""
    value = data.get(field_name)
    if value is None:
        raise ServiceError("INVALID_JWS", f"Missing required field: {field_name}", 400, {})
    if not isinstance(value, str):
        raise ServiceError("INVALID_JWS", f"Field '{field_name}' must be a string", 400, {})
    if not value:
        raise ServiceError("INVALID_JWS", f"Field '{field_name}' must not be empty", 400, {})
    return value


def extract_bearer_token(authorization: str | None) -> str:
    """Extract JWS token from an Authorization header."""
    if authorization is None:
        raise ServiceError("INVALID_JWS", "Missing Authorization header", 400, {})

    if not authorization.startswith("Bearer "):
        raise ServiceError(
            "INVALID_JWS",
            "Authorization header must use Bearer scheme",
            400,
            {},
        )

    token = authorization[len("Bearer ") :]
    if not token:
        raise ServiceError("INVALID_JWS", "Bearer token must not be empty", 400, {})
    return token


async def verify_caller(
    token: str,
    action: str,
    *,
    task_id: str | None = None,
) -> tuple[str, dict[str, Any]]:
    """
    Verify a caller token and return (signer_id, payload).

    When the route is scoped to a task, a task_id in the payload must
    match the URL so a token signed for one task cannot act on another.
    """
    validator: TokenValidator = get_app_state().require("token_validator")
    payload = await validator.validate_jws_token(token, action)
    if task_id is not None and "task_id" in payload and payload["task_id"] != task_id:
        raise ServiceError(
            "INVALID_PAYLOAD",
            "task_id in payload does not match URL path",
            400,
            {},
        )
    return str(payload["_signer_id"]), payload


async def verify_body_caller(
    request: Request,
    action: str,
    *,
    task_id: str | None = None,
) -> tuple[str, dict[str, Any]]:
    """Read ``{"token": ...}`` from the body and verify it."""
    data = parse_json_body(await request.body())
    token = extract_token(data, "token")
    return await verify_caller(token, action, task_id=task_id)


def parse_int_param(raw: str | None, name: str, *, minimum: int) -> int | None:
    """Parse an optional integer query parameter with a lower bound."""
    if raw is None:
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be an integer", 400, {}) from exc
    if value < minimum:
        raise ServiceError("INVALID_PAYLOAD", f"{name} must be >= {minimum}", 400, {})
    return value


def get_task_manager() -> TaskManager:
    manager: TaskManager = get_app_state().require("task_manager")
    return manager


def get_user_manager() -> UserManager:
    manager: UserManager = get_app_state().require("user_manager")
    return manager


def get_comment_service() -> CommentService:
    service: CommentService = get_app_state().require("comment_service")
    return service


def get_expiry_sweeper() -> ExpirySweeper:
    sweeper: ExpirySweeper = get_app_state().require("expiry_sweeper")
    return sweeper
