from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

from wallet_pnl.errors import InvalidDateRange

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: str) -> date:
    text = str(value or "").strip()
    if not _DATE_RE.match(text):
        raise InvalidDateRange(f"Invalid date format: {value!r}. Expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDateRange(f"Invalid calendar date: {value!r}") from exc


def is_valid_date(value: str) -> bool:
    try:
        parse_date(value)
    except InvalidDateRange:
        return False
    return True


def format_date(value: date | datetime) -> str:
    if isinstance(value, datetime):
        value = _ensure_utc(value).date()
    return value.isoformat()


def date_range(start: str, end: str, *, max_days: int | None = None) -> list[str]:
    start_date = parse_date(start)
    end_date = parse_date(end)
    if start_date > end_date:
        raise InvalidDateRange(f"Start date ({start}) must be before or equal to end date ({end})")
    days = (end_date - start_date).days + 1
    if max_days is not None and days > max_days:
        raise InvalidDateRange(f"Date range cannot exceed {max_days} days (got {days})")
    return [(start_date + timedelta(days=offset)).isoformat() for offset in range(days)]


def validate_date_sequence(dates: list[str]) -> None:
    previous: date | None = None
    for value in dates:
        current = parse_date(value)
        if previous is not None and current - previous != timedelta(days=1):
            raise InvalidDateRange(
                f"Dates must be strictly ascending in one-day steps: {previous.isoformat()} -> {value}"
            )
        previous = current


def day_bounds_ms(value: str) -> tuple[int, int]:
    day = parse_date(value)
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000) - 1


def timestamp_to_date(value: datetime) -> str:
    return format_date(value)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
