"""
Budget Tracker - Aggregation

PURPOSE: Derived totals and per-category breakdown of a ledger
SCOPE: Pure folds over record lists, recomputed on every request
DEPENDENCIES: currency.py, models.py
"""

from dataclasses import dataclass, asdict
from typing import Dict, Iterable, List

from .currency import krw_to_usd, format_krw, format_usd
from .models import IncomeRecord, ExpenseRecord


@dataclass
class LedgerTotals:
    income_krw: float
    expense_krw: float
    remaining_krw: float
    income_usd: float
    expense_usd: float
    remaining_usd: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def formatted(self) -> Dict[str, str]:
        return {
            'income_krw': format_krw(self.income_krw),
            'expense_krw': format_krw(self.expense_krw),
            'remaining_krw': format_krw(self.remaining_krw),
            'income_usd': format_usd(self.income_usd),
            'expense_usd': format_usd(self.expense_usd),
            'remaining_usd': format_usd(self.remaining_usd),
        }


@dataclass
class CategoryShare:
    category: str
    amount: float
    percent: float


def compute_totals(income: Iterable[IncomeRecord], expenses: Iterable[ExpenseRecord],
                   rate: float) -> LedgerTotals:
    """Sum income and expenses and convert each total to USD."""
    income_krw = sum(float(r.amount or 0) for r in income)
    expense_krw = sum(float(r.amount or 0) for r in expenses)
    remaining_krw = income_krw - expense_krw
    return LedgerTotals(
        income_krw=income_krw,
        expense_krw=expense_krw,
        remaining_krw=remaining_krw,
        income_usd=krw_to_usd(income_krw, rate),
        expense_usd=krw_to_usd(expense_krw, rate),
        remaining_usd=krw_to_usd(remaining_krw, rate),
    )


def category_breakdown(expenses: Iterable[ExpenseRecord]) -> Dict[str, float]:
    """Fold expense amounts into a category -> total mapping (first-seen order)."""
    by_category: Dict[str, float] = {}
    for expense in expenses:
        by_category[expense.category] = by_category.get(expense.category, 0.0) + float(expense.amount or 0)
    return by_category


def category_shares(expenses: Iterable[ExpenseRecord]) -> List[CategoryShare]:
    """Breakdown with each category's percentage of total expense."""
    by_category = category_breakdown(expenses)
    total = sum(by_category.values())
    # An empty ledger divides by 1 so every share is 0
    divisor = total or 1
    return [
        CategoryShare(category=name, amount=amount, percent=amount / divisor * 100)
        for name, amount in by_category.items()
    ]
