"""Tests for budget_tracker.aggregation pure functions."""

import pytest

from budget_tracker.aggregation import compute_totals, category_breakdown, category_shares
from budget_tracker.models import IncomeRecord, ExpenseRecord


def expense(amount, category="Other", record_id=None):
    return ExpenseRecord(id=record_id or f"e-{category}-{amount}", date="2024-01-02",
                         description="Expense", amount=amount, category=category)


class TestComputeTotals:
    def test_worked_example(self):
        income = [IncomeRecord(id="i1", date="2024-01-01", description="Salary", amount=3_000_000)]
        expenses = [expense(1_200_000, "Food & Drinks")]

        totals = compute_totals(income, expenses, rate=1200)

        assert totals.income_krw == 3_000_000
        assert totals.expense_krw == 1_200_000
        assert totals.remaining_krw == 1_800_000
        assert round(totals.remaining_usd, 2) == 1500.00
        assert totals.formatted()["remaining_usd"] == "$1,500.00"
        assert totals.formatted()["remaining_krw"] == "₩1,800,000"

    def test_empty_ledger(self):
        totals = compute_totals([], [], rate=1388)
        assert totals.to_dict() == {
            "income_krw": 0, "expense_krw": 0, "remaining_krw": 0,
            "income_usd": 0, "expense_usd": 0, "remaining_usd": 0,
        }

    def test_invalid_rate_zeroes_usd_only(self):
        income = [IncomeRecord(id="i1", date="2024-01-01", description="Salary", amount=10_000)]
        totals = compute_totals(income, [], rate=0)
        assert totals.income_krw == 10_000
        assert totals.income_usd == 0

    def test_overspending_goes_negative(self):
        income = [IncomeRecord(id="i1", date="2024-01-01", description="Salary", amount=1000)]
        totals = compute_totals(income, [expense(2500)], rate=1000)
        assert totals.remaining_krw == -1500
        assert totals.remaining_usd == pytest.approx(-1.5)


class TestCategoryBreakdown:
    def test_sums_by_category_in_first_seen_order(self):
        expenses = [
            expense(100, "Shopping", "a"),
            expense(250, "Food & Drinks", "b"),
            expense(50, "Shopping", "c"),
        ]
        assert category_breakdown(expenses) == {"Shopping": 150, "Food & Drinks": 250}
        assert list(category_breakdown(expenses)) == ["Shopping", "Food & Drinks"]

    def test_breakdown_sums_to_total_expense(self):
        expenses = [expense(a, c, f"x{i}") for i, (a, c) in enumerate([
            (12_000, "Transportation"), (4_500, "Food & Drinks"), (700_000, "Room and Utility"),
            (33_333, "Other"), (1, "Transportation"),
        ])]
        totals = compute_totals([], expenses, rate=1300)
        assert sum(category_breakdown(expenses).values()) == pytest.approx(totals.expense_krw)


class TestCategoryShares:
    def test_single_category_is_hundred_percent(self):
        shares = category_shares([expense(1_200_000, "Food & Drinks")])
        assert len(shares) == 1
        assert shares[0].category == "Food & Drinks"
        assert shares[0].percent == pytest.approx(100.0)

    def test_percentages_sum_to_hundred(self):
        expenses = [expense(a, c, f"x{i}") for i, (a, c) in enumerate([
            (1, "A"), (1, "B"), (1, "C"), (7, "A"), (13, "D"),
        ])]
        shares = category_shares(expenses)
        assert sum(s.percent for s in shares) == pytest.approx(100.0)

    def test_zero_total_gives_zero_percentages(self):
        shares = category_shares([expense(0, "Shopping"), expense(0, "Other")])
        assert [s.percent for s in shares] == [0, 0]

    def test_no_expenses_no_shares(self):
        assert category_shares([]) == []
