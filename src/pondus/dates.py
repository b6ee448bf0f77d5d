"""Date parsing and statistics windows."""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pondus.models import Timeframe


def ensure_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_iso(moment: datetime) -> str:
    """ISO 8601 in the ``Z`` form the GitHub API expects."""
    return ensure_utc(moment).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_date(value: str, end_of_day: bool = False) -> datetime:
    """Parse ``YYYY-MM-DD`` or a full ISO timestamp.

    A bare date means midnight UTC. With ``end_of_day`` it means the start
    of the following day, so the whole day falls inside a half-open window.
    """
    text = value.strip()
    try:
        if "T" not in text:
            parsed = datetime.strptime(text, "%Y-%m-%d")
            if end_of_day:
                parsed += timedelta(days=1)
            return parsed.replace(tzinfo=timezone.utc)
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        raise ValueError(f"Invalid date format: {value}") from None


def year_timeframe(year: Optional[int] = None) -> Timeframe:
    """January 1st of ``year`` (default: this year) up to the next January 1st."""
    year = year or datetime.now(timezone.utc).year
    return Timeframe(
        since=datetime(year, 1, 1, tzinfo=timezone.utc),
        until=datetime(year + 1, 1, 1, tzinfo=timezone.utc),
    )


def month_timeframe(year: int, month: int) -> Timeframe:
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
    return Timeframe(
        since=datetime(year, month, 1, tzinfo=timezone.utc),
        until=datetime(next_year, next_month, 1, tzinfo=timezone.utc),
    )


def quarter_timeframe(year: int, quarter: int) -> Timeframe:
    if not 1 <= quarter <= 4:
        raise ValueError(f"Invalid quarter: {quarter}")
    first = month_timeframe(year, 3 * quarter - 2)
    last = month_timeframe(year, 3 * quarter)
    return Timeframe(since=first.since, until=last.until)
