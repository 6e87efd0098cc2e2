from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
import logging
from typing import List, Optional

from finboard.date_math import add_days, add_months_clamped, add_years_clamped

logger = logging.getLogger(__name__)

WEEKLY_DAYS = 7
MONTHS_PER_YEAR = 12


class EntryKind(str, Enum):
    income = "income"
    expense = "expense"


class Frequency(str, Enum):
    weekly = "WEEKLY"
    monthly = "MONTHLY"
    yearly = "YEARLY"


@dataclass(frozen=True)
class RecurringEntry:
    id: int
    kind: EntryKind
    name: str
    amount: Decimal
    start_date: date
    recurrence_frequency: Optional[Frequency] = None
    recurrence_interval: Optional[int] = 1
    one_shot: bool = False
    active: bool = True
    wallet_id: Optional[int] = None
    expense_category_id: Optional[int] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class Occurrence:
    entry_id: int
    kind: EntryKind
    date: date
    amount: Decimal
    name: str


def occurrences_in_range(
    entry: RecurringEntry,
    range_start: date,
    range_end: date,
) -> List[date]:
    if not entry.active or range_start > range_end or range_end < entry.start_date:
        return []
    if entry.one_shot:
        if range_start <= entry.start_date <= range_end:
            return [entry.start_date]
        return []

    frequency = normalize_frequency(entry.recurrence_frequency)
    interval = entry.recurrence_interval
    if frequency is None or interval is None or interval < 1:
        logger.warning(
            "Skipping %s entry %s with invalid recurrence rule (frequency=%r, interval=%r)",
            _kind_value(entry.kind),
            entry.id,
            entry.recurrence_frequency,
            interval,
        )
        return []

    dates: List[date] = []
    index = _first_index_on_or_after(entry.start_date, range_start, frequency, interval)
    candidate = _nth_occurrence(entry.start_date, frequency, interval, index)
    while candidate <= range_end:
        dates.append(candidate)
        index += 1
        candidate = _nth_occurrence(entry.start_date, frequency, interval, index)
    return dates


def expand_entry(
    entry: RecurringEntry,
    range_start: date,
    range_end: date,
) -> List[Occurrence]:
    kind = EntryKind(_kind_value(entry.kind))
    amount = coerce_amount(entry.amount)
    return [
        Occurrence(
            entry_id=entry.id,
            kind=kind,
            date=occurrence_date,
            amount=amount,
            name=entry.name,
        )
        for occurrence_date in occurrences_in_range(entry, range_start, range_end)
    ]


def is_recurring(entry: RecurringEntry) -> bool:
    return not entry.one_shot and entry.recurrence_frequency is not None


def normalize_frequency(value: Frequency | str | None) -> Optional[Frequency]:
    if value is None:
        return None
    if isinstance(value, Frequency):
        return value
    normalized = value.strip().upper()
    try:
        return Frequency(normalized)
    except ValueError:
        return None


def coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def _nth_occurrence(start_date: date, frequency: Frequency, interval: int, index: int) -> date:
    # Always derived from start_date so a clamped month never shifts later ones.
    if frequency == Frequency.weekly:
        return add_days(start_date, WEEKLY_DAYS * interval * index)
    if frequency == Frequency.monthly:
        return add_months_clamped(start_date, interval * index)
    return add_years_clamped(start_date, interval * index)


def _first_index_on_or_after(
    start_date: date,
    minimum_date: date,
    frequency: Frequency,
    interval: int,
) -> int:
    if start_date >= minimum_date:
        return 0
    if frequency == Frequency.weekly:
        step_days = WEEKLY_DAYS * interval
        days_between = (minimum_date - start_date).days
        return (days_between + step_days - 1) // step_days

    step_months = interval if frequency == Frequency.monthly else MONTHS_PER_YEAR * interval
    months_between = (minimum_date.year - start_date.year) * 12 + (
        minimum_date.month - start_date.month
    )
    index = months_between // step_months
    while _nth_occurrence(start_date, frequency, interval, index) < minimum_date:
        index += 1
    return index


def _kind_value(kind: EntryKind | str) -> str:
    if isinstance(kind, EntryKind):
        return kind.value
    return kind.strip().lower()
