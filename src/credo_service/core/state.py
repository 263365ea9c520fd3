"""Process-wide container for the services wired up at startup."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import asyncio

    from credo_service.clients.identity_client import IdentityClient
    from credo_service.services.comments import CommentService
    from credo_service.services.expiry_sweeper import ExpirySweeper
    from credo_service.services.market_store import MarketStore
    from credo_service.services.task_manager import TaskManager
    from credo_service.services.token_validator import TokenValidator
    from credo_service.services.users import UserManager

_SERVICE_FIELDS = (
    "store",
    "identity_client",
    "token_validator",
    "comment_service",
    "task_manager",
    "user_manager",
    "expiry_sweeper",
)


@dataclass
class AppState:
    """Services owned by the running marketplace, filled in by the lifespan."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    store: MarketStore | None = None
    identity_client: IdentityClient | None = None
    token_validator: TokenValidator | None = None
    comment_service: CommentService | None = None
    task_manager: TaskManager | None = None
    user_manager: UserManager | None = None
    expiry_sweeper: ExpirySweeper | None = None
    sweeper_task: asyncio.Task[None] | None = None

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """Start time as a UTC ISO timestamp ending in ``Z``."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")

    @property
    def ready(self) -> bool:
        """True once every service has been wired."""
        return all(getattr(self, name) is not None for name in _SERVICE_FIELDS)

    def require(self, name: str) -> Any:
        """Return the wired service called ``name``; fail loudly if startup skipped it."""
        if name not in _SERVICE_FIELDS:
            msg = f"Unknown service: {name}"
            raise KeyError(msg)
        service = getattr(self, name)
        if service is None:
            msg = f"{name} not initialized"
            raise RuntimeError(msg)
        return service


_current: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    app_state = _current["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Install a fresh state for a starting application."""
    app_state = AppState()
    _current["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    _current["app_state"] = None
