from __future__ import annotations

from datetime import date, datetime, time, timezone


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def utc_now() -> datetime:
    """Current UTC time (timezone-aware).

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc)


def start_of_day_utc(value: datetime | date | None = None) -> datetime:
    """Truncate to midnight UTC of the given instant's UTC calendar day."""
    if value is None:
        value = utc_now()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        day = value.date()
    else:
        day = value
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from MySQL."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """MySQL DATETIME columns store naive UTC values."""
    return as_utc(value).replace(tzinfo=None)
