"""FastAPI application factory."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from credo_service.config import get_settings
from credo_service.core.exceptions import register_exception_handlers
from credo_service.core.lifespan import lifespan
from credo_service.core.middleware import RequestValidationMiddleware
from credo_service.routers import applications, comments, health, ratings, tasks, users
from credo_service.schemas import ErrorResponse

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status_code: {"model": ErrorResponse} for status_code in (400, 403, 404, 409, 502, 503)
}


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI instance with all routers registered.
    """
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.service.name} Service",
        version=settings.service.version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Operations"])
    app.include_router(users.router, tags=["Users"], responses=_ERROR_RESPONSES)
    app.include_router(tasks.router, tags=["Tasks"], responses=_ERROR_RESPONSES)
    app.include_router(applications.router, tags=["Applications"], responses=_ERROR_RESPONSES)
    app.include_router(ratings.router, tags=["Ratings"], responses=_ERROR_RESPONSES)
    app.include_router(comments.router, tags=["Comments"], responses=_ERROR_RESPONSES)

    app.add_middleware(
        RequestValidationMiddleware,
        max_body_size=settings.request.max_body_size,
    )

    return app
