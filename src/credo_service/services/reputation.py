"""Reputation events, rating eligibility, and aggregate updates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from credo_service.logging import get_logger

if TYPE_CHECKING:
    from credo_service.services.market_store import MarketStore, ParticipationRecord

GIVING = "GIVING"
ACCEPTING = "ACCEPTING"

_RATING_COLUMNS: dict[str, tuple[str, str]] = {
    GIVING: ("giving_rating", "giving_rating_count"),
    ACCEPTING: ("accepting_rating", "accepting_rating_count"),
}


@dataclass(frozen=True)
class TaskCompleted:
    """A task reached COMPLETED with the given parties."""

    task_id: str
    giver_id: str
    acceptor_id: str


@dataclass(frozen=True)
class RatingSubmitted:
    """A rating row was written for ``rated_id``."""

    task_id: str
    rater_id: str
    rated_id: str
    rating_type: str
    rating_value: int


ReputationEvent = TaskCompleted | RatingSubmitted


def running_average(initial_rating: float, rating_sum: int, rating_count: int) -> float:
    """
    Average of all ratings plus one virtual seed rating.

    The seed never ages out, so a user with ratings [4, 5, 3] and a seed
    of 5.0 averages (5.0 + 12) / 4 = 4.25.
    """
    return (initial_rating + rating_sum) / (rating_count + 1)


def rating_targets(
    task: dict[str, Any],
    rater_id: str,
    participation: list[ParticipationRecord],
) -> dict[str, str]:
    """
    Map each user the rater may rate on this task to the rating type.

    Completed tasks allow both parties to rate each other. A cancelled
    task lets its former acceptor rate the giver. Withdrawal history lets
    the giver rate the withdrawn acceptor, and removal history lets the
    removed acceptor rate the giver.
    """
    giver_id: str = task["giver_id"]
    targets: dict[str, str] = {}

    if task["status"] == "COMPLETED":
        acceptor_id = task["acceptor_id"]
        if rater_id == giver_id and acceptor_id is not None:
            targets[acceptor_id] = ACCEPTING
        elif rater_id == acceptor_id:
            targets[giver_id] = GIVING
    elif task["status"] == "CANCELLED":
        if any(p.user_id == rater_id and p.outcome == "ACCEPTED" for p in participation):
            targets[giver_id] = GIVING

    for record in participation:
        if record.outcome == "WITHDRAWN" and rater_id == giver_id:
            targets.setdefault(record.user_id, ACCEPTING)
        elif record.outcome == "REMOVED" and record.user_id == rater_id:
            targets.setdefault(giver_id, GIVING)

    return targets


class ReputationLedger:
    """
    Applies reputation events to user aggregates.

    Callers invoke ``apply`` inside the store transaction that produced
    the event, so the aggregate update commits or rolls back with it.
    """

    def __init__(self, store: MarketStore, initial_rating: float) -> None:
        self._store = store
        self._initial_rating = initial_rating
        self._logger = get_logger(__name__)

    @property
    def initial_rating(self) -> float:
        """Seed value for new users' rating averages."""
        return self._initial_rating

    def apply(self, event: ReputationEvent) -> None:
        """Dispatch an event to its aggregate update."""
        if isinstance(event, TaskCompleted):
            self._apply_task_completed(event)
        elif isinstance(event, RatingSubmitted):
            self._apply_rating_submitted(event)
        else:
            msg = f"Unsupported reputation event: {type(event).__name__}"
            raise TypeError(msg)

    def _apply_task_completed(self, event: TaskCompleted) -> None:
        self._store.increment_user_counter(event.acceptor_id, "trophies_accepted")
        self._store.increment_user_counter(event.giver_id, "trophies_given")
        self._logger.info(
            "Trophies awarded",
            extra={
                "task_id": event.task_id,
                "giver_id": event.giver_id,
                "acceptor_id": event.acceptor_id,
            },
        )

    def _apply_rating_submitted(self, event: RatingSubmitted) -> None:
        average_column, count_column = _RATING_COLUMNS[event.rating_type]
        rating_sum, rating_count = self._store.user_rating_totals(
            event.rated_id, event.rating_type
        )
        average = running_average(self._initial_rating, rating_sum, rating_count)
        self._store.update_user(
            event.rated_id,
            {average_column: average, count_column: rating_count},
        )
        self._logger.info(
            "Rating applied",
            extra={
                "task_id": event.task_id,
                "rated_id": event.rated_id,
                "rating_type": event.rating_type,
                "average": average,
                "count": rating_count,
            },
        )
