"""Pydantic models for the documented response bodies."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from credo_service.core.state import AppState


class HealthResponse(BaseModel):
    """Liveness plus marketplace size, as served by GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_users: int
    total_tasks: int
    tasks_by_status: dict[str, int]

    @classmethod
    def from_state(cls, state: AppState) -> HealthResponse:
        """Build the payload; counts stay zero until the task manager is wired."""
        stats: dict[str, Any] = {"total_users": 0, "total_tasks": 0, "tasks_by_status": {}}
        if state.task_manager is not None:
            stats = state.task_manager.get_stats()
        return cls(
            status="ok",
            uptime_seconds=state.uptime_seconds,
            started_at=state.started_at,
            total_users=stats["total_users"],
            total_tasks=stats["total_tasks"],
            tasks_by_status=stats["tasks_by_status"],
        )


class ErrorResponse(BaseModel):
    """Envelope for every 4xx/5xx answer: machine code, human message, context."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]
