"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from credo_service.core.state import get_app_state
from credo_service.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse.from_state(get_app_state())
