"""User profile, ratings received, and leaderboard endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from credo_service.routers.validation import (
    extract_bearer_token,
    get_user_manager,
    verify_body_caller,
    verify_caller,
)

router = APIRouter()


@router.post("/users", status_code=201)
async def register_user(request: Request) -> JSONResponse:
    """Create the caller's marketplace profile."""
    signer_id, payload = await verify_body_caller(request, "register_user")
    result = get_user_manager().register(signer_id, payload)
    return JSONResponse(status_code=201, content=result)


@router.get("/users/me")
async def get_my_profile(authorization: str | None = Header(default=None)) -> dict[str, Any]:
    """Return the caller's own profile including contact fields."""
    token = extract_bearer_token(authorization)
    signer_id, _payload = await verify_caller(token, "get_profile")
    return get_user_manager().get_profile(signer_id, include_contact=True)


@router.post("/users/me")
async def update_my_profile(request: Request) -> dict[str, Any]:
    """Update the caller's phone number or roll number."""
    signer_id, payload = await verify_body_caller(request, "update_profile")
    return get_user_manager().update_profile(signer_id, payload)


@router.get("/users/{user_id}")
async def get_profile(user_id: str) -> dict[str, Any]:
    """Return a user's public profile and stats."""
    return get_user_manager().get_profile(user_id, include_contact=False)


@router.get("/users/{user_id}/ratings")
async def list_ratings_received(user_id: str) -> dict[str, Any]:
    """Return ratings the user has received, newest first."""
    return {"user_id": user_id, "ratings": get_user_manager().list_ratings_received(user_id)}


@router.get("/users/{user_id}/applications")
async def list_user_applications(user_id: str) -> dict[str, Any]:
    """Return the tasks a user applied to and each application's status."""
    return {"user_id": user_id, "applications": get_user_manager().list_applications(user_id)}


@router.get("/leaderboard")
async def leaderboard(category: str = "overall") -> dict[str, Any]:
    """Rank users for the overall, giver, or acceptor category."""
    return {"category": category, "users": get_user_manager().leaderboard(category)}
