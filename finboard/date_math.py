from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timedelta

ISO_FORMAT = "%Y-%m-%d"


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def add_months_clamped(value: date, months: int) -> date:
    """Shift ``value`` by ``months`` months, clamping to the target month's length."""
    total_month = value.month - 1 + months
    year = value.year + total_month // 12
    month = total_month % 12 + 1
    day = min(value.day, days_in_month(year, month))
    return date(year, month, day)


def add_years_clamped(value: date, years: int) -> date:
    return add_months_clamped(value, 12 * years)


def compare_iso(left: str, right: str) -> int:
    # Zero-padded YYYY-MM-DD strings sort the same way the dates do.
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def parse_iso_date(value: str) -> date:
    try:
        parsed = datetime.strptime(value, ISO_FORMAT).date()
    except (TypeError, ValueError) as exc:
        raise ValueError("Date must be in YYYY-MM-DD format.") from exc
    if parsed.isoformat() != value:
        raise ValueError("Date must be in YYYY-MM-DD format.")
    return parsed


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    month_index = year * 12 + month - 1 + months
    return month_index // 12, month_index % 12 + 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"
