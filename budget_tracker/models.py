"""
Budget Tracker - Ledger Models

PURPOSE: Plain record types for income, expenses and the combined ledger
SCOPE: Dataclasses, id generation and category merging
DEPENDENCIES: config.py
"""

import secrets
import string
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional

from .config import config

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(value: int) -> str:
    if value == 0:
        return '0'
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return ''.join(reversed(digits))


def generate_id() -> str:
    """Return an opaque record id such as ``id-lq2x9k1a-4f7k2z``."""
    millis = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(_BASE36) for _ in range(6))
    return f"id-{_to_base36(millis)}-{suffix}"


@dataclass
class IncomeRecord:
    id: str
    date: str
    description: str
    amount: float
    notes: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'IncomeRecord':
        return cls(
            id=str(row['id']),
            date=str(row.get('date') or ''),
            description=str(row.get('description') or ''),
            amount=float(row.get('amount') or 0),
            notes=str(row.get('notes') or ''),
        )


@dataclass
class ExpenseRecord(IncomeRecord):
    category: str = 'Other'

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'ExpenseRecord':
        return cls(
            id=str(row['id']),
            date=str(row.get('date') or ''),
            description=str(row.get('description') or ''),
            amount=float(row.get('amount') or 0),
            notes=str(row.get('notes') or ''),
            category=str(row.get('category') or 'Other'),
        )


def merge_categories(*sources: Iterable[str]) -> List[str]:
    """Union of category names, keeping first-seen order and skipping blanks."""
    merged = []
    seen = set()
    for source in sources:
        for name in source:
            if name and name not in seen:
                seen.add(name)
                merged.append(name)
    return merged


@dataclass
class Ledger:
    """A user's income and expense records with the categories and rate in effect."""
    income: List[IncomeRecord] = field(default_factory=list)
    expenses: List[ExpenseRecord] = field(default_factory=list)
    categories: List[str] = field(default_factory=lambda: list(config.DEFAULT_CATEGORIES))
    rate: Optional[float] = None
