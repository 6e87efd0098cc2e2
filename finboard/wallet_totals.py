from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional

from finboard.recurrence import EntryKind, RecurringEntry, coerce_amount, occurrences_in_range

ZERO = Decimal("0")
UNCATEGORIZED_LABEL = "Uncategorized"
DEFAULT_CATEGORY_COLOR = "#9B7BFF"


class WalletType(str, Enum):
    liquidity = "LIQUIDITY"
    invest = "INVEST"


@dataclass(frozen=True)
class ExpenseCategory:
    id: int
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    active: bool = True


@dataclass(frozen=True)
class Snapshot:
    id: int
    date: date
    note: Optional[str] = None


@dataclass(frozen=True)
class SnapshotLineDetail:
    """A snapshot line joined with its wallet.

    The wallet fields are ``None`` when the line points at a wallet that no
    longer exists.
    """

    snapshot_id: int
    wallet_id: int
    amount: Decimal
    wallet_name: Optional[str] = None
    wallet_type: Optional[WalletType] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class WalletTypeTotals:
    liquidity: Decimal
    investments: Decimal
    net_worth: Decimal


@dataclass(frozen=True)
class BreakdownItem:
    label: str
    value: Decimal


@dataclass(frozen=True)
class CategoryBucket:
    category_id: Optional[int]
    label: str
    color: Optional[str]
    value: Decimal
    pct: Decimal


def totals_by_wallet_type(lines: Iterable[SnapshotLineDetail]) -> WalletTypeTotals:
    liquidity = ZERO
    investments = ZERO
    for line in lines:
        wallet_type = normalize_wallet_type(line.wallet_type)
        if wallet_type == WalletType.liquidity:
            liquidity += coerce_amount(line.amount)
        elif wallet_type == WalletType.invest:
            investments += coerce_amount(line.amount)
    return WalletTypeTotals(
        liquidity=liquidity,
        investments=investments,
        net_worth=liquidity + investments,
    )


def breakdown_by_wallet(lines: Iterable[SnapshotLineDetail]) -> List[BreakdownItem]:
    totals: Dict[str, Decimal] = {}
    for line in lines:
        if not line.wallet_name:
            continue
        totals[line.wallet_name] = totals.get(line.wallet_name, ZERO) + coerce_amount(line.amount)
    return [BreakdownItem(label=label, value=value) for label, value in totals.items()]


def category_breakdown(
    expense_entries: Iterable[RecurringEntry],
    categories: Iterable[ExpenseCategory],
    range_start: date,
    range_end: date,
) -> List[CategoryBucket]:
    """Spend per expense category over ``[range_start, range_end]``.

    Entries without a known category land in a single uncategorized bucket.
    Buckets are returned in first-seen order; ``pct`` is each bucket's share
    of the total, or 0 when nothing was spent.
    """
    category_map = {category.id: category for category in categories}
    totals: Dict[Optional[int], Decimal] = {}
    for entry in expense_entries:
        if entry.kind != EntryKind.expense:
            continue
        count = len(occurrences_in_range(entry, range_start, range_end))
        if count == 0:
            continue
        category_id = entry.expense_category_id
        if category_id not in category_map:
            category_id = None
        totals[category_id] = totals.get(category_id, ZERO) + coerce_amount(entry.amount) * count

    grand_total = sum(totals.values(), ZERO)
    buckets: List[CategoryBucket] = []
    for category_id, value in totals.items():
        category = category_map.get(category_id) if category_id is not None else None
        buckets.append(
            CategoryBucket(
                category_id=category_id,
                label=category.name if category else UNCATEGORIZED_LABEL,
                color=category.color if category else None,
                value=value,
                pct=ZERO if grand_total == ZERO else value / grand_total,
            )
        )
    return buckets


def normalize_wallet_type(value: WalletType | str | None) -> Optional[WalletType]:
    if value is None:
        return None
    if isinstance(value, WalletType):
        return value
    try:
        return WalletType(value.strip().upper())
    except ValueError:
        return None
