"""User profiles, received ratings, and leaderboards."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from credo_service.core.exceptions import ServiceError
from credo_service.logging import get_logger
from credo_service.services.market_store import DuplicateUserError
from credo_service.services.timestamps import now_iso

if TYPE_CHECKING:
    from credo_service.services.market_store import MarketStore

LEADERBOARD_CATEGORIES = ("overall", "giver", "acceptor")

_PHONE_RE = re.compile(r"^\d{10}$")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,32}$")
_MAX_ROLL_NUMBER_LENGTH = 32


def _total_trophies(row: dict[str, Any]) -> int:
    return int(row["trophies_given"]) + int(row["trophies_accepted"])


class UserManager:
    """Registration and read models over the users table."""

    def __init__(self, store: MarketStore, initial_rating: float, leaderboard_size: int) -> None:
        self._store = store
        self._initial_rating = initial_rating
        self._leaderboard_size = leaderboard_size
        self._logger = get_logger(__name__)

    def _require_existing(self, user_id: str) -> dict[str, Any]:
        user = self._store.get_user(user_id)
        if user is None:
            raise ServiceError("USER_NOT_FOUND", "User not found", 404, {})
        return user

    @staticmethod
    def _validate_phone(value: object) -> str:
        if not isinstance(value, str) or _PHONE_RE.match(value.strip()) is None:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "phone_number must be exactly 10 digits",
                400,
                {"field": "phone_number"},
            )
        return value.strip()

    @staticmethod
    def _validate_roll_number(value: object) -> str:
        if not isinstance(value, str) or value.strip() == "":
            raise ServiceError(
                "MISSING_FIELD",
                "Missing required field: roll_number",
                400,
                {"field": "roll_number"},
            )
        if len(value.strip()) > _MAX_ROLL_NUMBER_LENGTH:
            raise ServiceError(
                "INVALID_PAYLOAD",
                f"roll_number must be at most {_MAX_ROLL_NUMBER_LENGTH} characters",
                400,
                {"field": "roll_number"},
            )
        return value.strip()

    @staticmethod
    def _duplicate_to_service_error(exc: DuplicateUserError) -> ServiceError:
        codes = {
            "user_id": "USER_EXISTS",
            "username": "USERNAME_TAKEN",
            "phone_number": "PHONE_NUMBER_TAKEN",
            "roll_number": "ROLL_NUMBER_TAKEN",
        }
        return ServiceError(
            codes.get(exc.field_name, "USER_EXISTS"),
            str(exc),
            409,
            {"field": exc.field_name},
        )

    def register(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create the local profile for an identity-verified user."""
        username = data.get("username")
        if not isinstance(username, str) or _USERNAME_RE.match(username) is None:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "username must be 3-32 letters, digits, '.', '_' or '-'",
                400,
                {"field": "username"},
            )
        phone_number = self._validate_phone(data.get("phone_number"))
        roll_number = self._validate_roll_number(data.get("roll_number"))

        user = {
            "user_id": user_id,
            "username": username,
            "phone_number": phone_number,
            "roll_number": roll_number,
            "giving_rating": self._initial_rating,
            "accepting_rating": self._initial_rating,
            "giving_rating_count": 0,
            "accepting_rating_count": 0,
            "trophies_given": 0,
            "trophies_accepted": 0,
            "created_at": now_iso(),
        }
        try:
            self._store.insert_user(user)
        except DuplicateUserError as exc:
            raise self._duplicate_to_service_error(exc) from exc

        self._logger.info("User registered", extra={"user_id": user_id, "username": username})
        return self.get_profile(user_id, include_contact=True)

    def update_profile(self, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update the caller's contact fields. Absent fields are left unchanged."""
        self._require_existing(user_id)
        updates: dict[str, Any] = {}
        if "phone_number" in data:
            updates["phone_number"] = self._validate_phone(data["phone_number"])
        if "roll_number" in data:
            updates["roll_number"] = self._validate_roll_number(data["roll_number"])
        if len(updates) == 0:
            raise ServiceError(
                "INVALID_PAYLOAD",
                "Provide phone_number or roll_number to update",
                400,
                {},
            )

        try:
            self._store.update_user(user_id, updates)
        except DuplicateUserError as exc:
            raise self._duplicate_to_service_error(exc) from exc

        self._logger.info(
            "Profile updated",
            extra={"user_id": user_id, "fields": sorted(updates)},
        )
        return self.get_profile(user_id, include_contact=True)

    def get_profile(self, user_id: str, *, include_contact: bool) -> dict[str, Any]:
        """Return a user's reputation aggregates and activity stats."""
        user = self._require_existing(user_id)
        profile: dict[str, Any] = {
            "user_id": user["user_id"],
            "username": user["username"],
            "giving_rating": user["giving_rating"],
            "accepting_rating": user["accepting_rating"],
            "giving_rating_count": user["giving_rating_count"],
            "accepting_rating_count": user["accepting_rating_count"],
            "trophies_given": user["trophies_given"],
            "trophies_accepted": user["trophies_accepted"],
            "total_trophies": _total_trophies(user),
            "created_at": user["created_at"],
            "stats": self._store.user_activity_counts(user_id),
        }
        if include_contact:
            profile["phone_number"] = user["phone_number"]
            profile["roll_number"] = user["roll_number"]
        return profile

    def list_ratings_received(self, user_id: str) -> list[dict[str, Any]]:
        """Return ratings the user received, newest first."""
        self._require_existing(user_id)
        return self._store.list_ratings_received(user_id)

    def list_applications(self, user_id: str) -> list[dict[str, Any]]:
        """Return the user's applications with task details."""
        self._require_existing(user_id)
        return self._store.list_applications_by_user(user_id)

    def leaderboard(self, category: str) -> list[dict[str, Any]]:
        """Rank users by trophies, then rating, for a category."""
        if category not in LEADERBOARD_CATEGORIES:
            raise ServiceError(
                "INVALID_CATEGORY",
                f"category must be one of {list(LEADERBOARD_CATEGORIES)}",
                400,
                {},
            )
        rows = self._store.list_leaderboard(category, self._leaderboard_size)
        ranked: list[dict[str, Any]] = []
        for rank, row in enumerate(rows, start=1):
            entry = dict(row)
            entry["rank"] = rank
            entry["total_trophies"] = _total_trophies(row)
            ranked.append(entry)
        return ranked
