"""API routers."""

from credo_service.routers import applications, comments, health, ratings, tasks, users

__all__ = ["applications", "comments", "health", "ratings", "tasks", "users"]
