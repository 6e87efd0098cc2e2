from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence

from finboard.cashflow import (
    CashflowMonth,
    average_monthly_totals,
    monthly_series,
    upcoming_occurrences,
)
from finboard.date_math import month_bounds
from finboard.recurrence import EntryKind, RecurringEntry, is_recurring
from finboard.wallet_totals import (
    BreakdownItem,
    ExpenseCategory,
    Snapshot,
    SnapshotLineDetail,
    WalletType,
    breakdown_by_wallet,
    category_breakdown,
    normalize_wallet_type,
    totals_by_wallet_type,
)

ZERO = Decimal("0")
PALETTE = [
    "#9B7BFF",
    "#5C9DFF",
    "#F6C177",
    "#66D19E",
    "#C084FC",
    "#FF8FAB",
    "#6EE7B7",
    "#94A3B8",
]
DEFAULT_WINDOW_SIZE = 6
DEFAULT_UPCOMING_LIMIT = 8
INCOME_LABEL = "Income"
EXPENSE_LABEL = "Expense"


@dataclass(frozen=True)
class DashboardInput:
    latest_lines: Sequence[SnapshotLineDetail] = ()
    snapshots: Sequence[Snapshot] = ()
    snapshot_lines: Mapping[int, Sequence[SnapshotLineDetail]] = field(default_factory=dict)
    income_entries: Sequence[RecurringEntry] = ()
    expense_entries: Sequence[RecurringEntry] = ()
    expense_categories: Sequence[ExpenseCategory] = ()


@dataclass(frozen=True)
class KPIItem:
    id: str
    label: str
    value: Decimal
    delta_value: Decimal
    delta_pct: Decimal
    accent: str
    breakdown: List[BreakdownItem]


@dataclass(frozen=True)
class PortfolioPoint:
    date: date
    total: Decimal
    liquidity: Decimal
    investments: Decimal


@dataclass(frozen=True)
class DistributionItem:
    id: str
    label: str
    value: Decimal
    color: str


@dataclass(frozen=True)
class CashflowSummary:
    avg_income: Decimal
    avg_expense: Decimal
    avg_savings: Decimal
    months: List[CashflowMonth]


@dataclass(frozen=True)
class CategoryRow:
    id: str
    label: str
    value: Decimal
    color: str
    pct: Decimal


@dataclass(frozen=True)
class RecurrenceRow:
    id: str
    entry_id: int
    date: date
    type: EntryKind
    category: str
    category_color: Optional[str]
    description: str
    amount: Decimal
    recurring: bool


@dataclass(frozen=True)
class DashboardData:
    kpis: List[KPIItem]
    portfolio_series: List[PortfolioPoint]
    distributions: List[DistributionItem]
    cashflow: CashflowSummary
    categories: List[CategoryRow]
    recurrences: List[RecurrenceRow]


def build_dashboard_data(
    data: DashboardInput,
    today: Optional[date] = None,
    window_size: int = DEFAULT_WINDOW_SIZE,
    upcoming_limit: int = DEFAULT_UPCOMING_LIMIT,
) -> DashboardData:
    today = today or date.today()
    portfolio = build_portfolio_series(data.snapshots, data.snapshot_lines)
    return DashboardData(
        kpis=build_kpis(data.latest_lines, portfolio),
        portfolio_series=portfolio,
        distributions=build_distribution(data.latest_lines),
        cashflow=build_cashflow(data.income_entries, data.expense_entries, today, window_size),
        categories=build_categories(data.expense_entries, data.expense_categories, today),
        recurrences=build_recurrences(
            data.income_entries,
            data.expense_entries,
            data.expense_categories,
            upcoming_limit,
            today,
        ),
    )


def build_portfolio_series(
    snapshots: Sequence[Snapshot],
    snapshot_lines: Mapping[int, Sequence[SnapshotLineDetail]],
) -> List[PortfolioPoint]:
    points: List[PortfolioPoint] = []
    for snapshot in sorted(snapshots, key=lambda item: (item.date, item.id)):
        totals = totals_by_wallet_type(snapshot_lines.get(snapshot.id, ()))
        points.append(
            PortfolioPoint(
                date=snapshot.date,
                total=totals.net_worth,
                liquidity=totals.liquidity,
                investments=totals.investments,
            )
        )
    return points


def build_kpis(
    latest_lines: Sequence[SnapshotLineDetail],
    portfolio: Sequence[PortfolioPoint],
) -> List[KPIItem]:
    totals = totals_by_wallet_type(latest_lines)
    last = portfolio[-1] if portfolio else None
    prev = portfolio[-2] if len(portfolio) > 1 else None

    def delta(attribute: str) -> tuple[Decimal, Decimal]:
        if last is None or prev is None:
            return ZERO, ZERO
        base = getattr(prev, attribute)
        change = getattr(last, attribute) - base
        return change, percent_change(change, base)

    liquidity_lines = [
        line for line in latest_lines if normalize_wallet_type(line.wallet_type) == WalletType.liquidity
    ]
    invest_lines = [
        line for line in latest_lines if normalize_wallet_type(line.wallet_type) == WalletType.invest
    ]

    kpis: List[KPIItem] = []
    for kpi_id, label, value, attribute, accent, lines in (
        ("liquidity", "Liquidity", totals.liquidity, "liquidity", PALETTE[0], liquidity_lines),
        ("investments", "Investments", totals.investments, "investments", PALETTE[1], invest_lines),
        ("netWorth", "Net worth", totals.net_worth, "total", PALETTE[3], latest_lines),
    ):
        delta_value, delta_pct = delta(attribute)
        kpis.append(
            KPIItem(
                id=kpi_id,
                label=label,
                value=value,
                delta_value=delta_value,
                delta_pct=delta_pct,
                accent=accent,
                breakdown=breakdown_by_wallet(lines),
            )
        )
    return kpis


def build_distribution(latest_lines: Sequence[SnapshotLineDetail]) -> List[DistributionItem]:
    items = sorted(breakdown_by_wallet(latest_lines), key=lambda item: item.value, reverse=True)
    return [
        DistributionItem(
            id=f"{item.label}-{index}",
            label=item.label,
            value=item.value,
            color=PALETTE[index % len(PALETTE)],
        )
        for index, item in enumerate(items)
    ]


def build_cashflow(
    income_entries: Sequence[RecurringEntry],
    expense_entries: Sequence[RecurringEntry],
    today: date,
    window_size: int,
) -> CashflowSummary:
    averages = average_monthly_totals(
        income_entries, expense_entries, today.year, today.month, window_size
    )
    return CashflowSummary(
        avg_income=averages.income,
        avg_expense=averages.expense,
        avg_savings=averages.net,
        months=monthly_series(income_entries, expense_entries, today.year, today.month, window_size),
    )


def build_categories(
    expense_entries: Sequence[RecurringEntry],
    categories: Sequence[ExpenseCategory],
    today: date,
) -> List[CategoryRow]:
    start, end = month_bounds(today.year, today.month)
    buckets = category_breakdown(expense_entries, categories, start, end)
    rows = [
        CategoryRow(
            id=f"{bucket.label}-{index}",
            label=bucket.label,
            value=bucket.value,
            color=bucket.color or PALETTE[index % len(PALETTE)],
            pct=bucket.pct,
        )
        for index, bucket in enumerate(buckets)
    ]
    rows.sort(key=lambda row: row.value, reverse=True)
    return rows


def build_recurrences(
    income_entries: Sequence[RecurringEntry],
    expense_entries: Sequence[RecurringEntry],
    categories: Sequence[ExpenseCategory],
    limit: int,
    today: date,
) -> List[RecurrenceRow]:
    category_map = {category.id: category for category in categories}
    entries: Dict[tuple[EntryKind, int], RecurringEntry] = {}
    for entry in income_entries:
        entries[(EntryKind.income, entry.id)] = entry
    for entry in expense_entries:
        entries[(EntryKind.expense, entry.id)] = entry

    rows: List[RecurrenceRow] = []
    occurrences = upcoming_occurrences(income_entries, expense_entries, limit, today=today)
    for index, occurrence in enumerate(occurrences):
        entry = entries.get((occurrence.kind, occurrence.entry_id))
        category_label = INCOME_LABEL
        category_color = None
        if occurrence.kind == EntryKind.expense:
            category = None
            if entry is not None and entry.expense_category_id is not None:
                category = category_map.get(entry.expense_category_id)
            category_label = category.name if category else EXPENSE_LABEL
            category_color = category.color if category else None
        rows.append(
            RecurrenceRow(
                id=f"{occurrence.entry_id}-{index}",
                entry_id=occurrence.entry_id,
                date=occurrence.date,
                type=occurrence.kind,
                category=category_label,
                category_color=category_color,
                description=occurrence.name,
                amount=occurrence.amount,
                recurring=entry is not None and is_recurring(entry),
            )
        )
    return rows


def percent_change(delta: Decimal, base: Decimal) -> Decimal:
    if base == ZERO:
        return ZERO
    return delta / base
