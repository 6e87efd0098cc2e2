from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from finboard.date_math import add_days, add_years_clamped, month_bounds, month_key, shift_month
from finboard.recurrence import EntryKind, Occurrence, RecurringEntry, expand_entry

ZERO = Decimal("0")
UPCOMING_INITIAL_HORIZON_DAYS = 31
UPCOMING_MAX_YEARS = 5
KIND_ORDER = {EntryKind.income: 0, EntryKind.expense: 1}


@dataclass(frozen=True)
class MonthTotals:
    income: Decimal
    expense: Decimal


@dataclass(frozen=True)
class AverageTotals:
    income: Decimal
    expense: Decimal
    net: Decimal


@dataclass(frozen=True)
class CashflowMonth:
    month: str
    income: Decimal
    expense: Decimal


def list_occurrences_in_range(
    entries: Iterable[RecurringEntry],
    range_start: date,
    range_end: date,
) -> List[Occurrence]:
    occurrences: List[Occurrence] = []
    for entry in entries:
        occurrences.extend(expand_entry(entry, range_start, range_end))
    return occurrences


def totals_for_month(
    income_entries: Iterable[RecurringEntry],
    expense_entries: Iterable[RecurringEntry],
    year: int,
    month: int,
) -> MonthTotals:
    start, end = month_bounds(year, month)
    return MonthTotals(
        income=_sum_amounts(list_occurrences_in_range(income_entries, start, end)),
        expense=_sum_amounts(list_occurrences_in_range(expense_entries, start, end)),
    )


def average_monthly_totals(
    income_entries: Sequence[RecurringEntry],
    expense_entries: Sequence[RecurringEntry],
    year: int,
    month: int,
    window_size: int,
) -> AverageTotals:
    """Mean monthly income/expense over ``window_size`` months ending at ``(year, month)``.

    Months without occurrences still count towards the divisor.
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1.")
    income_total = ZERO
    expense_total = ZERO
    for offset in range(window_size):
        cursor_year, cursor_month = shift_month(year, month, -offset)
        totals = totals_for_month(income_entries, expense_entries, cursor_year, cursor_month)
        income_total += totals.income
        expense_total += totals.expense

    divisor = Decimal(window_size)
    avg_income = income_total / divisor
    avg_expense = expense_total / divisor
    return AverageTotals(
        income=avg_income,
        expense=avg_expense,
        net=avg_income - avg_expense,
    )


def monthly_series(
    income_entries: Sequence[RecurringEntry],
    expense_entries: Sequence[RecurringEntry],
    year: int,
    month: int,
    months: int,
) -> List[CashflowMonth]:
    series: List[CashflowMonth] = []
    for offset in range(months - 1, -1, -1):
        cursor_year, cursor_month = shift_month(year, month, -offset)
        totals = totals_for_month(income_entries, expense_entries, cursor_year, cursor_month)
        series.append(
            CashflowMonth(
                month=month_key(cursor_year, cursor_month),
                income=totals.income,
                expense=totals.expense,
            )
        )
    return series


def upcoming_occurrences(
    income_entries: Sequence[RecurringEntry],
    expense_entries: Sequence[RecurringEntry],
    limit: int,
    today: Optional[date] = None,
) -> List[Occurrence]:
    """Return the next ``limit`` occurrences from ``today`` on, across both kinds.

    The search horizon doubles until enough occurrences are found or it
    reaches five years, in which case fewer than ``limit`` are returned.
    """
    if limit <= 0:
        return []
    today = today or date.today()
    ceiling = add_years_clamped(today, UPCOMING_MAX_YEARS)
    horizon_days = UPCOMING_INITIAL_HORIZON_DAYS
    while True:
        range_end = min(add_days(today, horizon_days), ceiling)
        occurrences = list_occurrences_in_range(income_entries, today, range_end)
        occurrences.extend(list_occurrences_in_range(expense_entries, today, range_end))
        if len(occurrences) >= limit or range_end >= ceiling:
            break
        horizon_days *= 2

    occurrences.sort(key=_upcoming_sort_key)
    return occurrences[:limit]


def _upcoming_sort_key(occurrence: Occurrence) -> tuple[date, int, int]:
    return occurrence.date, KIND_ORDER[occurrence.kind], occurrence.entry_id


def _sum_amounts(occurrences: Iterable[Occurrence]) -> Decimal:
    total = ZERO
    for occurrence in occurrences:
        total += occurrence.amount
    return total
