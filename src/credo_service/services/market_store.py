"""SQLite-backed storage for users, tasks, applications, ratings, and comments."""

from __future__ import annotations

import contextlib
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator


class DuplicateUserError(Exception):
    """Raised when a username, phone number, or roll number is already taken."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"A user with this {field_name} already exists")
        self.field_name = field_name


class DuplicateApplicationError(Exception):
    """Raised when a user applies to the same task twice."""


class DuplicateRatingError(Exception):
    """Raised when a rater submits a second rating for the same task."""


@dataclass(frozen=True)
class ParticipationRecord:
    """A user's past or present acceptance of a task, read from application history."""

    task_id: str
    user_id: str
    role: str
    outcome: str


# Application statuses that record an acceptance, current or historical.
_PARTICIPATION_STATUSES = ("ACCEPTED", "WITHDRAWN", "REMOVED")

_USER_UNIQUE_FIELDS = ("username", "phone_number", "roll_number")

_USER_COLUMNS: tuple[str, ...] = (
    "user_id",
    "username",
    "phone_number",
    "roll_number",
    "giving_rating",
    "accepting_rating",
    "giving_rating_count",
    "accepting_rating_count",
    "trophies_given",
    "trophies_accepted",
    "created_at",
)
_USER_COUNTER_COLUMNS = frozenset({"trophies_given", "trophies_accepted"})

_TASK_COLUMNS: tuple[str, ...] = (
    "task_id",
    "giver_id",
    "acceptor_id",
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

_TASK_SELECT_SQL = (
    "SELECT t.task_id, t.giver_id, t.acceptor_id, t.title, t.description, t.reward, "
    "t.deadline, t.status, t.created_at, t.accepted_at, t.completed_at, t.cancelled_at, "
    "g.username AS giver_username, g.giving_rating AS giver_giving_rating, "
    "g.trophies_given + g.trophies_accepted AS giver_total_trophies, "
    "a.username AS acceptor_username "
    "FROM tasks t "
    "JOIN users g ON g.user_id = t.giver_id "
    "LEFT JOIN users a ON a.user_id = t.acceptor_id"
)

# Leaderboard orderings keyed by category. Values are fixed SQL, never user input.
_LEADERBOARD_ORDERING: dict[str, str] = {
    "overall": (
        "(trophies_given + trophies_accepted) DESC, "
        "((giving_rating + accepting_rating) / 2.0) DESC, username ASC"
    ),
    "giver": "trophies_given DESC, giving_rating DESC, username ASC",
    "acceptor": "trophies_accepted DESC, accepting_rating DESC, username ASC",
}


def _row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {key: row[key] for key in row.keys()}  # noqa: SIM118


class MarketStore:
    """
    SQLite-backed storage for the marketplace.

    Owns the SQLite connection, sets pragmas, creates the schema and
    exposes row-level operations. Multi-statement effect sets run inside
    ``transaction()``; a write issued outside one commits on its own.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._in_transaction = False
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")
        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            self._db.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id                 TEXT PRIMARY KEY,
                    username                TEXT NOT NULL UNIQUE,
                    phone_number            TEXT NOT NULL UNIQUE,
                    roll_number             TEXT NOT NULL UNIQUE,
                    giving_rating           REAL NOT NULL,
                    accepting_rating        REAL NOT NULL,
                    giving_rating_count     INTEGER NOT NULL DEFAULT 0,
                    accepting_rating_count  INTEGER NOT NULL DEFAULT 0,
                    trophies_given          INTEGER NOT NULL DEFAULT 0,
                    trophies_accepted       INTEGER NOT NULL DEFAULT 0,
                    created_at              TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS tasks (
                    task_id       TEXT PRIMARY KEY,
                    giver_id      TEXT NOT NULL REFERENCES users(user_id),
                    acceptor_id   TEXT REFERENCES users(user_id),
                    title         TEXT NOT NULL,
                    description   TEXT NOT NULL,
                    reward        TEXT NOT NULL,
                    deadline      TEXT NOT NULL,
                    status        TEXT NOT NULL DEFAULT 'OPEN',
                    created_at    TEXT NOT NULL,
                    accepted_at   TEXT,
                    completed_at  TEXT,
                    cancelled_at  TEXT
                );

                CREATE TABLE IF NOT EXISTS task_applications (
                    application_id  TEXT PRIMARY KEY,
                    task_id         TEXT NOT NULL REFERENCES tasks(task_id),
                    applicant_id    TEXT NOT NULL REFERENCES users(user_id),
                    status          TEXT NOT NULL DEFAULT 'PENDING',
                    applied_at      TEXT NOT NULL,
                    updated_at      TEXT NOT NULL,
                    UNIQUE(task_id, applicant_id)
                );

                CREATE TABLE IF NOT EXISTS ratings (
                    rating_id     TEXT PRIMARY KEY,
                    task_id       TEXT NOT NULL REFERENCES tasks(task_id),
                    rater_id      TEXT NOT NULL REFERENCES users(user_id),
                    rated_id      TEXT NOT NULL REFERENCES users(user_id),
                    rating_value  INTEGER NOT NULL CHECK (rating_value BETWEEN 1 AND 5),
                    rating_type   TEXT NOT NULL CHECK (rating_type IN ('GIVING', 'ACCEPTING')),
                    comment       TEXT,
                    created_at    TEXT NOT NULL,
                    UNIQUE(task_id, rater_id)
                );

                CREATE TABLE IF NOT EXISTS task_comments (
                    comment_id         TEXT PRIMARY KEY,
                    task_id            TEXT NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                    user_id            TEXT NOT NULL REFERENCES users(user_id),
                    comment_text       TEXT NOT NULL,
                    parent_comment_id  TEXT
                        REFERENCES task_comments(comment_id) ON DELETE CASCADE,
                    is_system          INTEGER NOT NULL DEFAULT 0,
                    created_at         TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_tasks_status_deadline
                    ON tasks(status, deadline);
                CREATE INDEX IF NOT EXISTS idx_applications_applicant
                    ON task_applications(applicant_id);
                CREATE INDEX IF NOT EXISTS idx_ratings_rated_type
                    ON ratings(rated_id, rating_type);
                CREATE INDEX IF NOT EXISTS idx_comments_task
                    ON task_comments(task_id, created_at);
                """
            )
            self._db.commit()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Run the enclosed writes as one unit of work.

        Commits on normal exit; rolls back and re-raises on any exception.
        A nested call joins the outer transaction.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return
            self._db.execute("BEGIN IMMEDIATE")
            self._in_transaction = True
            try:
                yield
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
            else:
                self._db.commit()
            finally:
                self._in_transaction = False

    def _write(self, query: str, params: tuple[object, ...] | list[object]) -> int:
        with self._lock:
            cursor = self._db.execute(query, params)
            if not self._in_transaction:
                self._db.commit()
        return int(cursor.rowcount)

    def _rollback_if_standalone(self) -> None:
        if not self._in_transaction:
            with contextlib.suppress(sqlite3.Error):
                self._db.rollback()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def insert_user(self, user_data: dict[str, Any]) -> None:
        """Insert a new user row."""
        values = tuple(user_data[column] for column in _USER_COLUMNS)
        query = (
            "INSERT INTO users (" + ", ".join(_USER_COLUMNS) + ") "
            "VALUES (" + ", ".join("?" for _ in _USER_COLUMNS) + ")"
        )
        with self._lock:
            try:
                self._write(query, values)
            except sqlite3.IntegrityError as exc:
                self._rollback_if_standalone()
                raise self._duplicate_user_error(exc) from exc

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        """Fetch a user by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT " + ", ".join(_USER_COLUMNS) + " FROM users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    def update_user(self, user_id: str, updates: dict[str, Any]) -> int:
        """Set user columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0
        if any(column not in _USER_COLUMNS or column == "user_id" for column in updates):
            msg = "Attempted to update unknown user column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = [*updates.values(), user_id]
        query = "UPDATE users SET " + set_clause + " WHERE user_id = ?"  # nosec B608
        with self._lock:
            try:
                return self._write(query, params)
            except sqlite3.IntegrityError as exc:
                self._rollback_if_standalone()
                raise self._duplicate_user_error(exc) from exc

    def increment_user_counter(self, user_id: str, column: str, amount: int = 1) -> int:
        """Add ``amount`` to a trophy counter in place."""
        if column not in _USER_COUNTER_COLUMNS:
            msg = f"Not a user counter column: {column}"
            raise ValueError(msg)
        query = f"UPDATE users SET {column} = {column} + ? WHERE user_id = ?"  # nosec B608
        return self._write(query, (amount, user_id))

    def user_rating_totals(self, user_id: str, rating_type: str) -> tuple[int, int]:
        """Return (sum, count) of all ratings of a type received by a user."""
        with self._lock:
            row = self._db.execute(
                "SELECT COALESCE(SUM(rating_value), 0), COUNT(*) FROM ratings "
                "WHERE rated_id = ? AND rating_type = ?",
                (user_id, rating_type),
            ).fetchone()
        return int(row[0]), int(row[1])

    def user_activity_counts(self, user_id: str) -> dict[str, int]:
        """Count the tasks and applications a user is involved in."""
        with self._lock:
            tasks_given = self._db.execute(
                "SELECT COUNT(*) FROM tasks WHERE giver_id = ?", (user_id,)
            ).fetchone()[0]
            tasks_accepted = self._db.execute(
                "SELECT COUNT(*) FROM tasks WHERE acceptor_id = ?", (user_id,)
            ).fetchone()[0]
            tasks_completed = self._db.execute(
                "SELECT COUNT(*) FROM tasks WHERE acceptor_id = ? AND status = 'COMPLETED'",
                (user_id,),
            ).fetchone()[0]
            applications = self._db.execute(
                "SELECT COUNT(*) FROM task_applications WHERE applicant_id = ?", (user_id,)
            ).fetchone()[0]
        return {
            "tasks_given": int(tasks_given),
            "tasks_accepted": int(tasks_accepted),
            "tasks_completed": int(tasks_completed),
            "applications": int(applications),
        }

    def list_leaderboard(self, category: str, limit: int) -> list[dict[str, Any]]:
        """List users ranked for a leaderboard category."""
        ordering = _LEADERBOARD_ORDERING.get(category)
        if ordering is None:
            msg = f"Unknown leaderboard category: {category}"
            raise ValueError(msg)
        query = (
            "SELECT user_id, username, giving_rating, accepting_rating, "
            "giving_rating_count, accepting_rating_count, trophies_given, trophies_accepted "
            "FROM users ORDER BY " + ordering + " LIMIT ?"  # nosec B608
        )
        with self._lock:
            rows = self._db.execute(query, (limit,)).fetchall()
        return [_row_to_dict(row) for row in rows]

    def count_users(self) -> int:
        """Count registered users."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM users").fetchone()
        return int(row[0]) if row is not None else 0

    @staticmethod
    def _duplicate_user_error(exc: sqlite3.IntegrityError) -> Exception:
        error_msg = str(exc).lower()
        if "unique" in error_msg:
            if "users.user_id" in error_msg:
                return DuplicateUserError("user_id")
            for field_name in _USER_UNIQUE_FIELDS:
                if f"users.{field_name}" in error_msg:
                    return DuplicateUserError(field_name)
        return exc

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data.get(column) for column in _TASK_COLUMNS)
        query = (
            "INSERT INTO tasks (" + ", ".join(_TASK_COLUMNS) + ") "
            "VALUES (" + ", ".join("?" for _ in _TASK_COLUMNS) + ")"
        )
        self._write(query, values)

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID, including giver and acceptor display fields."""
        with self._lock:
            row = self._db.execute(_TASK_SELECT_SQL + " WHERE t.task_id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | tuple[str, ...] | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0

        if any(column not in _TASK_COLUMNS or column == "task_id" for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())

        query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
        params.append(task_id)
        if isinstance(expected_status, str):
            query += " AND status = ?"
            params.append(expected_status)
        elif expected_status is not None:
            query += " AND status IN (" + ", ".join("?" for _ in expected_status) + ")"
            params.extend(expected_status)

        return self._write(query, params)

    def list_tasks(
        self,
        status: str | None,
        giver_id: str | None,
        acceptor_id: str | None,
        limit: int | None,
        offset: int | None,
    ) -> list[dict[str, Any]]:
        """List tasks with optional filters, newest first."""
        query = _TASK_SELECT_SQL
        clauses: list[str] = []
        params: list[object] = []

        if status is not None:
            clauses.append("t.status = ?")
            params.append(status)
        if giver_id is not None:
            clauses.append("t.giver_id = ?")
            params.append(giver_id)
        if acceptor_id is not None:
            clauses.append("t.acceptor_id = ?")
            params.append(acceptor_id)

        if len(clauses) > 0:
            query += " WHERE " + " AND ".join(clauses)

        query += " ORDER BY t.created_at DESC, t.rowid DESC"

        if limit is not None or offset is not None:
            query += " LIMIT ?"
            params.append(limit if limit is not None else -1)
        if offset is not None:
            query += " OFFSET ?"
            params.append(offset)

        with self._lock:
            rows = self._db.execute(query, params).fetchall()
        return [_row_to_dict(row) for row in rows]

    def cancel_expired_tasks(self, now: str) -> int:
        """Cancel every OPEN task whose deadline is before ``now``."""
        return self._write(
            "UPDATE tasks SET status = 'CANCELLED', cancelled_at = ? "
            "WHERE status = 'OPEN' AND deadline < ?",
            (now, now),
        )

    def count_tasks(self) -> int:
        """Count total tasks."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM tasks").fetchone()
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        with self._lock:
            rows = self._db.execute("SELECT status, COUNT(*) FROM tasks GROUP BY status").fetchall()
        return {str(row[0]): int(row[1]) for row in rows}

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def insert_application(self, application_data: dict[str, Any]) -> None:
        """Insert a new application row."""
        with self._lock:
            try:
                self._write(
                    """
                    INSERT INTO task_applications (
                        application_id, task_id, applicant_id, status, applied_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        application_data["application_id"],
                        application_data["task_id"],
                        application_data["applicant_id"],
                        application_data["status"],
                        application_data["applied_at"],
                        application_data["updated_at"],
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self._rollback_if_standalone()
                if "unique" in str(exc).lower():
                    raise DuplicateApplicationError(
                        "This user already applied to this task"
                    ) from exc
                raise

    def get_application(self, task_id: str, applicant_id: str) -> dict[str, Any] | None:
        """Fetch the application of one applicant on a task."""
        with self._lock:
            row = self._db.execute(
                "SELECT application_id, task_id, applicant_id, status, applied_at, updated_at "
                "FROM task_applications WHERE task_id = ? AND applicant_id = ?",
                (task_id, applicant_id),
            ).fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    def list_applications_for_task(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all applications on a task with applicant details, oldest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT ap.application_id, ap.task_id, ap.applicant_id, ap.status, "
                "ap.applied_at, ap.updated_at, u.username AS applicant_username, "
                "u.phone_number AS applicant_phone_number, "
                "u.accepting_rating AS applicant_accepting_rating, "
                "u.trophies_given + u.trophies_accepted AS applicant_total_trophies "
                "FROM task_applications ap JOIN users u ON u.user_id = ap.applicant_id "
                "WHERE ap.task_id = ? ORDER BY ap.applied_at, ap.rowid",
                (task_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def list_applications_by_user(self, applicant_id: str) -> list[dict[str, Any]]:
        """Fetch a user's applications with task and giver details, newest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT ap.application_id, ap.task_id, ap.applicant_id, ap.status, "
                "ap.applied_at, ap.updated_at, t.title, t.description, t.reward, t.deadline, "
                "t.status AS task_status, t.giver_id, g.username AS giver_username "
                "FROM task_applications ap "
                "JOIN tasks t ON t.task_id = ap.task_id "
                "JOIN users g ON g.user_id = t.giver_id "
                "WHERE ap.applicant_id = ? ORDER BY ap.applied_at DESC, ap.rowid DESC",
                (applicant_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def update_application_status(
        self,
        task_id: str,
        applicant_id: str,
        status: str,
        updated_at: str,
        *,
        expected_statuses: tuple[str, ...] | None,
    ) -> int:
        """Set one application's status, optionally guarded by its current status."""
        query = (
            "UPDATE task_applications SET status = ?, updated_at = ? "
            "WHERE task_id = ? AND applicant_id = ?"
        )
        params: list[object] = [status, updated_at, task_id, applicant_id]
        if expected_statuses is not None:
            query += " AND status IN (" + ", ".join("?" for _ in expected_statuses) + ")"
            params.extend(expected_statuses)
        return self._write(query, params)

    def reject_other_applications(
        self,
        task_id: str,
        accepted_applicant_id: str,
        updated_at: str,
    ) -> int:
        """Reject every PENDING or ACCEPTED application on a task except one."""
        return self._write(
            "UPDATE task_applications SET status = 'REJECTED', updated_at = ? "
            "WHERE task_id = ? AND applicant_id != ? AND status IN ('PENDING', 'ACCEPTED')",
            (updated_at, task_id, accepted_applicant_id),
        )

    def list_participation(self, task_id: str) -> list[ParticipationRecord]:
        """Return the acceptance history of a task as participation records."""
        with self._lock:
            rows = self._db.execute(
                "SELECT task_id, applicant_id, status FROM task_applications "
                "WHERE task_id = ? AND status IN (?, ?, ?) ORDER BY updated_at, rowid",
                (task_id, *_PARTICIPATION_STATUSES),
            ).fetchall()
        return [
            ParticipationRecord(
                task_id=row["task_id"],
                user_id=row["applicant_id"],
                role="ACCEPTOR",
                outcome=row["status"],
            )
            for row in rows
        ]

    def count_applications(self) -> int:
        """Count total applications."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM task_applications").fetchone()
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def insert_rating(self, rating_data: dict[str, Any]) -> None:
        """Insert an immutable rating row."""
        with self._lock:
            try:
                self._write(
                    """
                    INSERT INTO ratings (
                        rating_id, task_id, rater_id, rated_id,
                        rating_value, rating_type, comment, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        rating_data["rating_id"],
                        rating_data["task_id"],
                        rating_data["rater_id"],
                        rating_data["rated_id"],
                        rating_data["rating_value"],
                        rating_data["rating_type"],
                        rating_data["comment"],
                        rating_data["created_at"],
                    ),
                )
            except sqlite3.IntegrityError as exc:
                self._rollback_if_standalone()
                if "unique" in str(exc).lower():
                    raise DuplicateRatingError("This user already rated this task") from exc
                raise

    def has_rating(self, task_id: str, rater_id: str) -> bool:
        """Check whether a rater already rated a task."""
        with self._lock:
            row = self._db.execute(
                "SELECT 1 FROM ratings WHERE task_id = ? AND rater_id = ?",
                (task_id, rater_id),
            ).fetchone()
        return row is not None

    def list_ratings_received(self, rated_id: str) -> list[dict[str, Any]]:
        """Fetch ratings a user received, newest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT r.rating_id, r.task_id, r.rater_id, r.rated_id, r.rating_value, "
                "r.rating_type, r.comment, r.created_at, u.username AS rater_username, "
                "t.title AS task_title "
                "FROM ratings r "
                "JOIN users u ON u.user_id = r.rater_id "
                "JOIN tasks t ON t.task_id = r.task_id "
                "WHERE r.rated_id = ? ORDER BY r.created_at DESC, r.rowid DESC",
                (rated_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def count_ratings(self) -> int:
        """Count total ratings."""
        with self._lock:
            row = self._db.execute("SELECT COUNT(*) FROM ratings").fetchone()
        return int(row[0]) if row is not None else 0

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def insert_comment(self, comment_data: dict[str, Any]) -> None:
        """Insert a comment row."""
        self._write(
            """
            INSERT INTO task_comments (
                comment_id, task_id, user_id, comment_text,
                parent_comment_id, is_system, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                comment_data["comment_id"],
                comment_data["task_id"],
                comment_data["user_id"],
                comment_data["comment_text"],
                comment_data["parent_comment_id"],
                1 if comment_data["is_system"] else 0,
                comment_data["created_at"],
            ),
        )

    def get_comment(self, comment_id: str) -> dict[str, Any] | None:
        """Fetch a comment by ID."""
        with self._lock:
            row = self._db.execute(
                "SELECT comment_id, task_id, user_id, comment_text, parent_comment_id, "
                "is_system, created_at FROM task_comments WHERE comment_id = ?",
                (comment_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_dict(row)

    def list_comments(self, task_id: str) -> list[dict[str, Any]]:
        """Fetch all comments on a task with author details, oldest first."""
        with self._lock:
            rows = self._db.execute(
                "SELECT c.comment_id, c.task_id, c.user_id, c.comment_text, "
                "c.parent_comment_id, c.is_system, c.created_at, u.username, "
                "u.trophies_given + u.trophies_accepted AS total_trophies "
                "FROM task_comments c JOIN users u ON u.user_id = c.user_id "
                "WHERE c.task_id = ? ORDER BY c.created_at, c.rowid",
                (task_id,),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
