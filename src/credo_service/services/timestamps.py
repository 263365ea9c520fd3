"""UTC timestamp helpers shared by the lifecycle services."""

from __future__ import annotations

from datetime import UTC, datetime


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def normalize_timestamp(value: str) -> str:
    """
    Parse an ISO 8601 timestamp and render it in the stored form.

    Naive values are taken as UTC. The stored form always carries
    microseconds and a Z suffix, so string order equals time order.

    Raises:
        ValueError: If the value is not an ISO 8601 timestamp, or its UTC
            equivalent falls outside the datetime range
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    try:
        in_utc = parsed.astimezone(UTC)
    except OverflowError as exc:
        msg = f"Timestamp out of range in UTC: {value}"
        raise ValueError(msg) from exc
    return in_utc.isoformat(timespec="microseconds").replace("+00:00", "Z")
