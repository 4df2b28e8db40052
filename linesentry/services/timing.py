"""Time helpers shared by ingestion, detection and settlement."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_until(start: datetime | None, at: datetime) -> float | None:
    """Hours from ``at`` until ``start``; negative once the event has begun."""
    if start is None:
        return None
    return (ensure_utc(start) - ensure_utc(at)).total_seconds() / 3600


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, accepting a trailing Z."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
