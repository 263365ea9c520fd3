"""Comment threads attached to tasks."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from credo_service.core.exceptions import ServiceError
from credo_service.logging import get_logger
from credo_service.services.timestamps import now_iso

if TYPE_CHECKING:
    from credo_service.services.market_store import MarketStore


def build_comment_forest(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    Assemble flat comment nodes into a forest.

    Rows must already be in creation order; children keep that order.
    A child whose parent is not among the rows is dropped.
    """
    nodes: dict[str, dict[str, Any]] = {}
    for row in rows:
        node = dict(row)
        node["replies"] = []
        nodes[node["comment_id"]] = node

    roots: list[dict[str, Any]] = []
    for node in nodes.values():
        parent_id = node["parent_comment_id"]
        if parent_id is None:
            roots.append(node)
        elif parent_id in nodes:
            nodes[parent_id]["replies"].append(node)
    return roots


class CommentService:
    """Adds comments to tasks and returns threads as nested trees."""

    def __init__(self, store: MarketStore, max_comment_length: int) -> None:
        self._store = store
        self._max_comment_length = max_comment_length
        self._logger = get_logger(__name__)

    def _to_node(self, row: dict[str, Any], giver_id: str) -> dict[str, Any]:
        return {
            "comment_id": row["comment_id"],
            "task_id": row["task_id"],
            "user_id": row["user_id"],
            "username": row["username"],
            "total_trophies": row["total_trophies"],
            "is_giver": row["user_id"] == giver_id,
            "is_system": bool(row["is_system"]),
            "comment_text": row["comment_text"],
            "parent_comment_id": row["parent_comment_id"],
            "created_at": row["created_at"],
        }

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        return task

    def add_comment(
        self,
        task_id: str,
        author_id: str,
        text: object,
        parent_comment_id: object = None,
    ) -> dict[str, Any]:
        """Post a comment or reply and return the annotated node."""
        if not isinstance(text, str) or text.strip() == "":
            raise ServiceError("MISSING_FIELD", "Comment text must not be empty", 400, {})
        text = text.strip()
        if len(text) > self._max_comment_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"Comment text must be at most {self._max_comment_length} characters",
                400,
                {},
            )
        if parent_comment_id is not None and not isinstance(parent_comment_id, str):
            raise ServiceError("INVALID_PAYLOAD", "parent_comment_id must be a string", 400, {})

        task = self._load_task(task_id)
        author = self._store.get_user(author_id)
        if author is None:
            raise ServiceError("USER_NOT_REGISTERED", "Caller has no profile", 403, {})

        if parent_comment_id is not None:
            parent = self._store.get_comment(parent_comment_id)
            if parent is None or parent["task_id"] != task_id:
                raise ServiceError(
                    "PARENT_COMMENT_NOT_FOUND",
                    "Parent comment not found on this task",
                    404,
                    {},
                )

        row = self._insert(task_id, author_id, text, parent_comment_id, is_system=False)
        row["username"] = author["username"]
        row["total_trophies"] = author["trophies_given"] + author["trophies_accepted"]
        node = self._to_node(row, task["giver_id"])
        node["replies"] = []

        self._logger.info(
            "Comment added",
            extra={"task_id": task_id, "comment_id": node["comment_id"], "user_id": author_id},
        )
        return node

    def add_system_comment(self, task_id: str, user_id: str, text: str) -> None:
        """Record a lifecycle notice on the thread, joining any open transaction."""
        self._insert(task_id, user_id, text, None, is_system=True)

    def _insert(
        self,
        task_id: str,
        user_id: str,
        text: str,
        parent_comment_id: str | None,
        *,
        is_system: bool,
    ) -> dict[str, Any]:
        row: dict[str, Any] = {
            "comment_id": f"c-{uuid.uuid4()}",
            "task_id": task_id,
            "user_id": user_id,
            "comment_text": text,
            "parent_comment_id": parent_comment_id,
            "is_system": is_system,
            "created_at": now_iso(),
        }
        self._store.insert_comment(row)
        return row

    def list_comments(self, task_id: str) -> list[dict[str, Any]]:
        """Return the task's full comment thread as a forest."""
        task = self._load_task(task_id)
        rows = self._store.list_comments(task_id)
        return build_comment_forest([self._to_node(row, task["giver_id"]) for row in rows])
