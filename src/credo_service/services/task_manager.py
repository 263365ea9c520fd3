"""Task lifecycle management: every task and application transition lives here."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from credo_service.core.exceptions import ServiceError
from credo_service.logging import get_logger
from credo_service.services.market_store import DuplicateApplicationError, DuplicateRatingError
from credo_service.services.reputation import RatingSubmitted, TaskCompleted, rating_targets
from credo_service.services.timestamps import normalize_timestamp, now_iso

if TYPE_CHECKING:
    from credo_service.config import TasksConfig
    from credo_service.services.comments import CommentService
    from credo_service.services.market_store import MarketStore
    from credo_service.services.reputation import ReputationLedger

_VALID_STATUSES = frozenset({"OPEN", "IN_PROGRESS", "COMPLETED", "CANCELLED"})

_TASK_RESPONSE_FIELDS: tuple[str, ...] = (
    "task_id",
    "giver_id",
    "giver_username",
    "giver_giving_rating",
    "giver_total_trophies",
    "acceptor_id",
    "acceptor_username",
    "title",
    "description",
    "reward",
    "deadline",
    "status",
    "created_at",
    "accepted_at",
    "completed_at",
    "cancelled_at",
)


def _is_rating_value(value: object) -> bool:
    """Check if value is an integer 1-5 (not float, not bool)."""
    return isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 5


class TaskManager:
    """
    Manages the task lifecycle: creation, applications, acceptance,
    completion, cancellation, withdrawal, removal, and rating.

    Callers pass identity-verified user ids. Persistence goes through
    MarketStore; reputation side effects are emitted as events to the
    ReputationLedger inside the same transaction.
    """

    def __init__(
        self,
        store: MarketStore,
        ledger: ReputationLedger,
        comments: CommentService,
        limits: TasksConfig,
        max_rating_comment_length: int,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._comments = comments
        self._limits = limits
        self._max_rating_comment_length = max_rating_comment_length
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Private helper methods
    # ------------------------------------------------------------------

    def _task_to_response(self, row: dict[str, Any]) -> dict[str, Any]:
        return {field_name: row[field_name] for field_name in _TASK_RESPONSE_FIELDS}

    def _application_to_response(self, row: dict[str, Any]) -> dict[str, Any]:
        return {
            "application_id": row["application_id"],
            "task_id": row["task_id"],
            "applicant_id": row["applicant_id"],
            "applicant_username": row["applicant_username"],
            "applicant_phone_number": row["applicant_phone_number"],
            "applicant_accepting_rating": row["applicant_accepting_rating"],
            "applicant_total_trophies": row["applicant_total_trophies"],
            "status": row["status"],
            "applied_at": row["applied_at"],
            "updated_at": row["updated_at"],
        }

    def _require_user(self, user_id: str) -> dict[str, Any]:
        user = self._store.get_user(user_id)
        if user is None:
            raise ServiceError(
                "USER_NOT_REGISTERED",
                "Caller must register a profile first",
                403,
                {},
            )
        return user

    def _load_task(self, task_id: str) -> dict[str, Any]:
        task = self._store.get_task(task_id)
        if task is None:
            raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
        return task

    def _reload_task(self, task_id: str) -> dict[str, Any]:
        updated = self._store.get_task(task_id)
        if updated is None:
            msg = f"Task {task_id} not found after update"
            raise RuntimeError(msg)
        return self._task_to_response(updated)

    @staticmethod
    def _require_status(task: dict[str, Any], *allowed: str) -> None:
        if task["status"] not in allowed:
            expected = "' or '".join(allowed)
            raise ServiceError(
                "INVALID_STATUS",
                f"Task is '{task['status']}', must be '{expected}'",
                409,
                {"status": task["status"]},
            )

    @staticmethod
    def _require_giver(task: dict[str, Any], caller_id: str, action: str) -> None:
        if caller_id != task["giver_id"]:
            raise ServiceError("FORBIDDEN", f"Only the task giver can {action}", 403, {})

    def _require_text(self, data: dict[str, Any], field_name: str, max_length: int) -> str:
        value = data.get(field_name)
        if value is None:
            raise ServiceError(
                "MISSING_FIELD", f"Missing required field: {field_name}", 400, {"field": field_name}
            )
        if not isinstance(value, str):
            raise ServiceError(
                "INVALID_PAYLOAD", f"{field_name} must be a string", 400, {"field": field_name}
            )
        stripped = value.strip()
        if stripped == "":
            raise ServiceError(
                "MISSING_FIELD", f"{field_name} must not be empty", 400, {"field": field_name}
            )
        if len(stripped) > max_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"{field_name} must be at most {max_length} characters",
                400,
                {"field": field_name},
            )
        return stripped

    def _parse_deadline(self, value: object) -> str:
        if value is None:
            raise ServiceError(
                "MISSING_FIELD", "Missing required field: deadline", 400, {"field": "deadline"}
            )
        if not isinstance(value, str):
            raise ServiceError("INVALID_DEADLINE", "deadline must be an ISO 8601 string", 400, {})
        try:
            return normalize_timestamp(value)
        except ValueError as exc:
            raise ServiceError(
                "INVALID_DEADLINE", "deadline must be an ISO 8601 timestamp", 400, {}
            ) from exc

    def _insert_task(self, giver_id: str, fields: dict[str, str]) -> dict[str, Any]:
        task_id = f"t-{uuid.uuid4()}"
        self._store.insert_task(
            {
                "task_id": task_id,
                "giver_id": giver_id,
                "acceptor_id": None,
                "title": fields["title"],
                "description": fields["description"],
                "reward": fields["reward"],
                "deadline": fields["deadline"],
                "status": "OPEN",
                "created_at": now_iso(),
            }
        )
        self._logger.info("Task created", extra={"task_id": task_id, "giver_id": giver_id})
        return self._reload_task(task_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, giver_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Post a new OPEN task with the caller as giver. Past deadlines are accepted."""
        self._require_user(giver_id)
        fields = {
            "title": self._require_text(data, "title", self._limits.max_title_length),
            "description": self._require_text(
                data, "description", self._limits.max_description_length
            ),
            "reward": self._require_text(data, "reward", self._limits.max_reward_length),
            "deadline": self._parse_deadline(data.get("deadline")),
        }
        return self._insert_task(giver_id, fields)

    def list_tasks(
        self,
        status: str | None,
        giver_id: str | None,
        acceptor_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters, newest first."""
        if status is not None and status not in _VALID_STATUSES:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"status must be one of {sorted(_VALID_STATUSES)}",
                400,
                {},
            )
        rows = self._store.list_tasks(
            status=status,
            giver_id=giver_id,
            acceptor_id=acceptor_id,
            limit=limit,
            offset=offset,
        )
        return [self._task_to_response(row) for row in rows]

    def get_task(self, task_id: str) -> dict[str, Any]:
        """Return the task with all of its applications."""
        task = self._load_task(task_id)
        applications = self._store.list_applications_for_task(task_id)
        return {
            "task": self._task_to_response(task),
            "applications": [self._application_to_response(row) for row in applications],
        }

    def complete_task(self, task_id: str, caller_id: str) -> dict[str, Any]:
        """Mark an IN_PROGRESS task COMPLETED and award trophies."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "complete this task")
        self._require_status(task, "IN_PROGRESS")

        with self._store.transaction():
            changed = self._store.update_task(
                task_id,
                {"status": "COMPLETED", "completed_at": now_iso()},
                expected_status="IN_PROGRESS",
            )
            if changed == 0:
                raise ServiceError("INVALID_STATUS", "Task is no longer in progress", 409, {})
            self._ledger.apply(
                TaskCompleted(
                    task_id=task_id,
                    giver_id=task["giver_id"],
                    acceptor_id=task["acceptor_id"],
                )
            )

        self._logger.info(
            "Task completed",
            extra={"task_id": task_id, "acceptor_id": task["acceptor_id"]},
        )
        return self._reload_task(task_id)

    def cancel_task(self, task_id: str, caller_id: str) -> dict[str, Any]:
        """Cancel an OPEN or IN_PROGRESS task. The acceptance record is kept."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "cancel this task")
        self._require_status(task, "OPEN", "IN_PROGRESS")

        changed = self._store.update_task(
            task_id,
            {"status": "CANCELLED", "acceptor_id": None, "cancelled_at": now_iso()},
            expected_status=("OPEN", "IN_PROGRESS"),
        )
        if changed == 0:
            raise ServiceError("INVALID_STATUS", "Task can no longer be cancelled", 409, {})

        self._logger.info("Task cancelled", extra={"task_id": task_id, "giver_id": caller_id})
        return self._reload_task(task_id)

    def withdraw(self, task_id: str, caller_id: str, reason: object) -> dict[str, Any]:
        """Acceptor gives the task back; it reopens for new applications."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        if task["acceptor_id"] is None or caller_id != task["acceptor_id"]:
            raise ServiceError("FORBIDDEN", "Only the acceptor can withdraw", 403, {})
        self._require_status(task, "IN_PROGRESS")
        reason_text = self._require_text(
            {"reason": reason}, "reason", self._limits.max_reason_length
        )

        self._release_acceptor(task, "WITHDRAWN", f"Acceptor withdrew: {reason_text}", caller_id)
        self._logger.info(
            "Acceptor withdrew",
            extra={"task_id": task_id, "acceptor_id": caller_id},
        )
        return self._reload_task(task_id)

    def remove_acceptor(self, task_id: str, caller_id: str, reason: object) -> dict[str, Any]:
        """Giver takes the task back from its acceptor; it reopens."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "remove the acceptor")
        self._require_status(task, "IN_PROGRESS")
        if task["acceptor_id"] is None:
            raise ServiceError("NO_ACCEPTOR", "Task has no acceptor to remove", 409, {})
        reason_text = self._require_text(
            {"reason": reason}, "reason", self._limits.max_reason_length
        )

        self._release_acceptor(
            task, "REMOVED", f"Giver removed the acceptor: {reason_text}", caller_id
        )
        self._logger.info(
            "Acceptor removed",
            extra={"task_id": task_id, "acceptor_id": task["acceptor_id"]},
        )
        return self._reload_task(task_id)

    def _release_acceptor(
        self,
        task: dict[str, Any],
        outcome: str,
        notice: str,
        author_id: str,
    ) -> None:
        task_id = task["task_id"]
        timestamp = now_iso()
        with self._store.transaction():
            changed = self._store.update_application_status(
                task_id,
                task["acceptor_id"],
                outcome,
                timestamp,
                expected_statuses=("ACCEPTED",),
            )
            if changed == 0:
                raise ServiceError(
                    "INVALID_APPLICATION_STATUS", "Acceptor's application is not accepted", 409, {}
                )
            self._comments.add_system_comment(task_id, author_id, notice)
            changed = self._store.update_task(
                task_id,
                {"status": "OPEN", "acceptor_id": None, "accepted_at": None},
                expected_status="IN_PROGRESS",
            )
            if changed == 0:
                raise ServiceError("INVALID_STATUS", "Task is no longer in progress", 409, {})

    def extend_deadline(
        self,
        task_id: str,
        caller_id: str,
        deadline: object,
        comment: object = None,
    ) -> dict[str, Any]:
        """Replace the deadline of an active task and optionally note why."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "extend the deadline")
        self._require_status(task, "OPEN", "IN_PROGRESS")
        new_deadline = self._parse_deadline(deadline)
        if comment is not None and not isinstance(comment, str):
            raise ServiceError("INVALID_PAYLOAD", "comment must be a string", 400, {})

        with self._store.transaction():
            changed = self._store.update_task(
                task_id,
                {"deadline": new_deadline},
                expected_status=("OPEN", "IN_PROGRESS"),
            )
            if changed == 0:
                raise ServiceError("INVALID_STATUS", "Task is no longer active", 409, {})
            if comment is not None and comment.strip() != "":
                self._comments.add_comment(task_id, caller_id, comment)

        self._logger.info(
            "Deadline extended",
            extra={"task_id": task_id, "deadline": new_deadline},
        )
        return self._reload_task(task_id)

    def duplicate_task(
        self,
        task_id: str,
        caller_id: str,
        overrides: dict[str, Any],
    ) -> dict[str, Any]:
        """Post a new OPEN task copying another task's content."""
        self._require_user(caller_id)
        source = self._load_task(task_id)
        # An explicit null copies the source field like an absent key.
        merged = {
            name: source[name] if overrides.get(name) is None else overrides[name]
            for name in ("title", "description", "reward")
        }
        fields = {
            "title": self._require_text(merged, "title", self._limits.max_title_length),
            "description": self._require_text(
                merged, "description", self._limits.max_description_length
            ),
            "reward": self._require_text(merged, "reward", self._limits.max_reward_length),
            "deadline": self._parse_deadline(overrides.get("deadline")),
        }
        created = self._insert_task(caller_id, fields)
        self._logger.info(
            "Task duplicated",
            extra={"source_task_id": task_id, "task_id": created["task_id"]},
        )
        return created

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def apply(self, task_id: str, applicant_id: str) -> dict[str, Any]:
        """Create a PENDING application on an OPEN task."""
        self._require_user(applicant_id)
        task = self._load_task(task_id)
        self._require_status(task, "OPEN")
        if applicant_id == task["giver_id"]:
            raise ServiceError("SELF_APPLICATION", "Cannot apply to your own task", 400, {})

        timestamp = now_iso()
        application = {
            "application_id": f"app-{uuid.uuid4()}",
            "task_id": task_id,
            "applicant_id": applicant_id,
            "status": "PENDING",
            "applied_at": timestamp,
            "updated_at": timestamp,
        }
        try:
            self._store.insert_application(application)
        except DuplicateApplicationError as exc:
            raise ServiceError(
                "APPLICATION_EXISTS",
                "You have already applied to this task",
                409,
                {},
            ) from exc

        self._logger.info(
            "Application submitted",
            extra={"task_id": task_id, "applicant_id": applicant_id},
        )
        return application

    def accept_application(
        self,
        task_id: str,
        caller_id: str,
        applicant_id: str,
    ) -> dict[str, Any]:
        """
        Bind the applicant as acceptor and reject every sibling application.

        The OPEN guard is committed with a conditional update, so of two
        concurrent accepts exactly one succeeds.
        """
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "accept applications")
        self._require_status(task, "OPEN")

        application = self._store.get_application(task_id, applicant_id)
        if application is None:
            raise ServiceError("APPLICATION_NOT_FOUND", "Application not found", 404, {})
        if application["status"] not in ("PENDING", "REJECTED"):
            raise ServiceError(
                "INVALID_APPLICATION_STATUS",
                f"Cannot accept an application in '{application['status']}' status",
                409,
                {"status": application["status"]},
            )

        timestamp = now_iso()
        with self._store.transaction():
            changed = self._store.update_task(
                task_id,
                {"status": "IN_PROGRESS", "acceptor_id": applicant_id, "accepted_at": timestamp},
                expected_status="OPEN",
            )
            if changed == 0:
                raise ServiceError("INVALID_STATUS", "Task is not open", 409, {})
            changed = self._store.update_application_status(
                task_id,
                applicant_id,
                "ACCEPTED",
                timestamp,
                expected_statuses=("PENDING", "REJECTED"),
            )
            if changed == 0:
                raise ServiceError(
                    "INVALID_APPLICATION_STATUS", "Application can no longer be accepted", 409, {}
                )
            self._store.reject_other_applications(task_id, applicant_id, timestamp)

        self._logger.info(
            "Application accepted",
            extra={"task_id": task_id, "acceptor_id": applicant_id},
        )
        return self.get_task(task_id)

    def reject_application(
        self,
        task_id: str,
        caller_id: str,
        applicant_id: str,
    ) -> dict[str, Any]:
        """Reject one PENDING application; the task status is unchanged."""
        self._require_user(caller_id)
        task = self._load_task(task_id)
        self._require_giver(task, caller_id, "reject applications")

        application = self._store.get_application(task_id, applicant_id)
        if application is None:
            raise ServiceError("APPLICATION_NOT_FOUND", "Application not found", 404, {})

        changed = self._store.update_application_status(
            task_id,
            applicant_id,
            "REJECTED",
            now_iso(),
            expected_statuses=("PENDING",),
        )
        if changed == 0:
            raise ServiceError(
                "INVALID_APPLICATION_STATUS",
                f"Cannot reject an application in '{application['status']}' status",
                409,
                {"status": application["status"]},
            )

        self._logger.info(
            "Application rejected",
            extra={"task_id": task_id, "applicant_id": applicant_id},
        )
        refreshed = self._store.get_application(task_id, applicant_id)
        if refreshed is None:
            msg = f"Application for {applicant_id} on {task_id} not found after update"
            raise RuntimeError(msg)
        return refreshed

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def rate(
        self,
        task_id: str,
        rater_id: str,
        rated_id: object,
        rating_value: object,
        comment: object = None,
    ) -> dict[str, Any]:
        """
        Rate the other party of a task and update their running average.

        Eligibility comes from the task outcome and the rater's
        participation history. One rating per (task, rater).
        """
        self._require_user(rater_id)
        if not _is_rating_value(rating_value):
            raise ServiceError(
                "INVALID_RATING", "rating_value must be an integer from 1 to 5", 400, {}
            )
        if not isinstance(rated_id, str) or rated_id == "":
            raise ServiceError(
                "MISSING_FIELD",
                "Missing required field: rated_user_id",
                400,
                {"field": "rated_user_id"},
            )
        if comment is not None:
            if not isinstance(comment, str):
                raise ServiceError("INVALID_PAYLOAD", "comment must be a string", 400, {})
            comment = comment.strip() or None
        if comment is not None and len(comment) > self._max_rating_comment_length:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"comment must be at most {self._max_rating_comment_length} characters",
                400,
                {},
            )
        if rated_id == rater_id:
            raise ServiceError("FORBIDDEN", "Cannot rate yourself", 403, {})

        task = self._load_task(task_id)
        targets = rating_targets(task, rater_id, self._store.list_participation(task_id))
        rating_type = targets.get(rated_id)
        if rating_type is None:
            raise ServiceError(
                "FORBIDDEN",
                "You are not eligible to rate this user for this task",
                403,
                {},
            )

        rating = {
            "rating_id": f"r-{uuid.uuid4()}",
            "task_id": task_id,
            "rater_id": rater_id,
            "rated_id": rated_id,
            "rating_value": rating_value,
            "rating_type": rating_type,
            "comment": comment,
            "created_at": now_iso(),
        }
        try:
            with self._store.transaction():
                self._store.insert_rating(rating)
                self._ledger.apply(
                    RatingSubmitted(
                        task_id=task_id,
                        rater_id=rater_id,
                        rated_id=rated_id,
                        rating_type=rating_type,
                        rating_value=rating_value,
                    )
                )
        except DuplicateRatingError as exc:
            raise ServiceError(
                "RATING_EXISTS", "You have already rated this task", 409, {}
            ) from exc

        self._logger.info(
            "Rating submitted",
            extra={"task_id": task_id, "rater_id": rater_id, "rating_type": rating_type},
        )
        return rating

    def has_rated(self, task_id: str, rater_id: str) -> bool:
        """Check whether the caller already rated this task."""
        self._load_task(task_id)
        return self._store.has_rating(task_id, rater_id)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Return counts for the health endpoint."""
        return {
            "total_tasks": self._store.count_tasks(),
            "tasks_by_status": self._store.count_tasks_by_status(),
            "total_users": self._store.count_users(),
        }
