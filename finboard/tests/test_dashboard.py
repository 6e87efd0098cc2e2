import unittest
from datetime import date
from decimal import Decimal

from finboard.dashboard import (
    EXPENSE_LABEL,
    INCOME_LABEL,
    PALETTE,
    DashboardInput,
    build_dashboard_data,
    percent_change,
)
from finboard.recurrence import EntryKind, Frequency, RecurringEntry
from finboard.wallet_totals import (
    UNCATEGORIZED_LABEL,
    ExpenseCategory,
    Snapshot,
    SnapshotLineDetail,
    WalletType,
)

TODAY = date(2024, 3, 15)


def _line(snapshot_id: int, wallet_id: int, amount: str) -> SnapshotLineDetail:
    names = {1: ("Cash", WalletType.liquidity), 2: ("Bank", WalletType.liquidity), 3: ("Broker", WalletType.invest)}
    name, wallet_type = names[wallet_id]
    return SnapshotLineDetail(
        snapshot_id=snapshot_id,
        wallet_id=wallet_id,
        amount=Decimal(amount),
        wallet_name=name,
        wallet_type=wallet_type,
        currency="EUR",
    )


class DashboardAssemblerTests(unittest.TestCase):
    def setUp(self) -> None:
        first = [_line(10, 1, "1000"), _line(10, 2, "4000"), _line(10, 3, "20000")]
        second = [_line(11, 1, "1500"), _line(11, 2, "4000"), _line(11, 3, "18000")]
        self.categories = [
            ExpenseCategory(id=1, name="Home", color="#66D19E"),
            ExpenseCategory(id=2, name="Food", color="#C084FC"),
        ]
        self.income = [
            RecurringEntry(
                id=1,
                kind=EntryKind.income,
                name="Salary",
                amount=Decimal("2400"),
                start_date=date(2023, 6, 27),
                recurrence_frequency=Frequency.monthly,
                recurrence_interval=1,
            ),
        ]
        self.expense = [
            RecurringEntry(
                id=1,
                kind=EntryKind.expense,
                name="Rent",
                amount=Decimal("900"),
                start_date=date(2023, 1, 1),
                recurrence_frequency=Frequency.monthly,
                recurrence_interval=1,
                expense_category_id=1,
            ),
            RecurringEntry(
                id=2,
                kind=EntryKind.expense,
                name="Groceries",
                amount=Decimal("75"),
                start_date=date(2024, 3, 4),
                recurrence_frequency=Frequency.weekly,
                recurrence_interval=1,
                expense_category_id=2,
            ),
            RecurringEntry(
                id=3,
                kind=EntryKind.expense,
                name="Gift",
                amount=Decimal("60"),
                start_date=date(2024, 3, 16),
                one_shot=True,
            ),
        ]
        self.data = DashboardInput(
            latest_lines=second,
            # Deliberately out of order.
            snapshots=[Snapshot(id=11, date=date(2024, 3, 1)), Snapshot(id=10, date=date(2024, 2, 1))],
            snapshot_lines={10: first, 11: second},
            income_entries=self.income,
            expense_entries=self.expense,
            expense_categories=self.categories,
        )

    def test_portfolio_series_is_chronological(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY)

        self.assertEqual([point.date for point in result.portfolio_series], [date(2024, 2, 1), date(2024, 3, 1)])
        self.assertEqual(result.portfolio_series[0].total, Decimal("25000"))
        self.assertEqual(result.portfolio_series[1].liquidity, Decimal("5500"))
        self.assertEqual(result.portfolio_series[1].investments, Decimal("18000"))

    def test_kpis_carry_values_and_deltas(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY)

        kpis = {kpi.id: kpi for kpi in result.kpis}
        self.assertEqual(list(kpis), ["liquidity", "investments", "netWorth"])
        self.assertEqual(kpis["liquidity"].value, Decimal("5500"))
        self.assertEqual(kpis["liquidity"].delta_value, Decimal("500"))
        self.assertEqual(kpis["liquidity"].delta_pct, Decimal("0.1"))
        self.assertEqual(kpis["investments"].delta_value, Decimal("-2000"))
        self.assertEqual(kpis["investments"].delta_pct, Decimal("-0.1"))
        self.assertEqual(kpis["netWorth"].value, Decimal("23500"))
        self.assertEqual(kpis["netWorth"].delta_value, Decimal("-1500"))
        self.assertEqual(kpis["netWorth"].delta_pct, Decimal("-0.06"))
        self.assertEqual([item.label for item in kpis["liquidity"].breakdown], ["Cash", "Bank"])
        self.assertEqual([item.label for item in kpis["investments"].breakdown], ["Broker"])

    def test_kpi_deltas_are_zero_with_single_snapshot(self) -> None:
        data = DashboardInput(
            latest_lines=self.data.snapshot_lines[11],
            snapshots=[Snapshot(id=11, date=date(2024, 3, 1))],
            snapshot_lines={11: self.data.snapshot_lines[11]},
        )

        result = build_dashboard_data(data, today=TODAY)

        for kpi in result.kpis:
            self.assertEqual(kpi.delta_value, Decimal("0"))
            self.assertEqual(kpi.delta_pct, Decimal("0"))

    def test_distribution_sorted_by_value(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY)

        self.assertEqual([item.label for item in result.distributions], ["Broker", "Bank", "Cash"])
        self.assertEqual([item.color for item in result.distributions], PALETTE[:3])

    def test_cashflow_uses_window(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY, window_size=3)

        cashflow = result.cashflow
        self.assertEqual([month.month for month in cashflow.months], ["2024-01", "2024-02", "2024-03"])
        # March: rent 900 + groceries 4 x 75 + gift 60.
        self.assertEqual(cashflow.months[-1].expense, Decimal("1260"))
        self.assertEqual(cashflow.avg_income, Decimal("2400"))
        self.assertEqual(cashflow.avg_expense, Decimal("1020"))
        self.assertEqual(cashflow.avg_savings, Decimal("1380"))

    def test_current_month_categories(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY)

        rows = [(row.label, row.value) for row in result.categories]
        self.assertEqual(
            rows,
            [("Home", Decimal("900")), ("Food", Decimal("300")), (UNCATEGORIZED_LABEL, Decimal("60"))],
        )
        self.assertEqual(result.categories[0].color, "#66D19E")
        self.assertAlmostEqual(float(sum(row.pct for row in result.categories)), 1.0, places=9)

    def test_upcoming_rows(self) -> None:
        result = build_dashboard_data(self.data, today=TODAY, upcoming_limit=4)

        rows = [(row.date, row.type, row.description, row.category) for row in result.recurrences]
        self.assertEqual(
            rows,
            [
                (date(2024, 3, 16), EntryKind.expense, "Gift", EXPENSE_LABEL),
                (date(2024, 3, 18), EntryKind.expense, "Groceries", "Food"),
                (date(2024, 3, 25), EntryKind.expense, "Groceries", "Food"),
                (date(2024, 3, 27), EntryKind.income, "Salary", INCOME_LABEL),
            ],
        )
        self.assertFalse(result.recurrences[0].recurring)
        self.assertTrue(result.recurrences[1].recurring)
        self.assertEqual(result.recurrences[1].category_color, "#C084FC")
        self.assertIsNone(result.recurrences[3].category_color)

    def test_empty_input(self) -> None:
        result = build_dashboard_data(DashboardInput(), today=TODAY)

        self.assertEqual(result.portfolio_series, [])
        self.assertEqual(result.distributions, [])
        self.assertEqual(result.categories, [])
        self.assertEqual(result.recurrences, [])
        self.assertEqual(len(result.cashflow.months), 6)
        self.assertEqual([kpi.value for kpi in result.kpis], [Decimal("0")] * 3)

    def test_is_deterministic(self) -> None:
        first = build_dashboard_data(self.data, today=TODAY)
        second = build_dashboard_data(self.data, today=TODAY)

        self.assertEqual(first, second)

    def test_percent_change_with_zero_base(self) -> None:
        self.assertEqual(percent_change(Decimal("50"), Decimal("0")), Decimal("0"))
        self.assertEqual(percent_change(Decimal("50"), Decimal("200")), Decimal("0.25"))


if __name__ == "__main__":
    unittest.main()
