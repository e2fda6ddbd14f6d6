"""
Budget Tracker - Ledger Import/Export

PURPOSE: Serialize a ledger to the export JSON document and parse it back
SCOPE: Export document shape, import validation and default-filling
DEPENDENCIES: json, models.py

Imported documents come from users' files, so every field is coerced:
missing ids are generated, amounts are clamped to be non-negative and blank
categories become "Other". Anything structurally wrong raises
ImportFormatError with a message fit to show the user.
"""

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set, Union

from .config import config
from .models import IncomeRecord, ExpenseRecord, Ledger, generate_id, merge_categories

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


class ImportFormatError(ValueError):
    """Raised when an import document cannot be turned into a ledger."""


def build_export_document(ledger: Ledger, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Return the export dict for a ledger (caller serializes it)."""
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        'version': EXPORT_VERSION,
        'rate': ledger.rate,
        'exportedAt': exported_at.isoformat(),
        'income': [r.to_dict() for r in ledger.income],
        'expenses': [r.to_dict() for r in ledger.expenses],
        'categories': list(ledger.categories),
    }


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"budget_export_{now.strftime('%Y-%m-%d')}.json"


def parse_import_document(raw: Union[str, bytes, Dict[str, Any]]) -> Ledger:
    """Parse and validate an export document, returning the ledger it describes."""
    document = _load_document(raw)

    if (not isinstance(document, dict)
            or not isinstance(document.get('income'), list)
            or not isinstance(document.get('expenses'), list)):
        raise ImportFormatError("Invalid format: Missing income/expenses arrays")

    income_ids: Set[str] = set()
    income = [
        _parse_income(item, index, income_ids)
        for index, item in enumerate(document['income'])
    ]
    expense_ids: Set[str] = set()
    expenses = [
        _parse_expense(item, index, expense_ids)
        for index, item in enumerate(document['expenses'])
    ]

    explicit = document.get('categories')
    if isinstance(explicit, list) and explicit:
        base_categories = [str(c) for c in explicit]
    else:
        base_categories = list(config.DEFAULT_CATEGORIES)
    categories = merge_categories(base_categories, [e.category for e in expenses])

    logger.info(f"Parsed import document: {len(income)} income, {len(expenses)} expenses")
    return Ledger(income=income, expenses=expenses, categories=categories,
                  rate=_parse_rate(document.get('rate')))


def _load_document(raw: Union[str, bytes, Dict[str, Any]]) -> Any:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ImportFormatError("File is not valid UTF-8 text")
    try:
        return json.loads(raw or '{}')
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})")


def _parse_income(item: Any, index: int, used_ids: Set[str]) -> IncomeRecord:
    fields = _common_fields(item, f"income record {index + 1}", used_ids)
    return IncomeRecord(**fields)


def _parse_expense(item: Any, index: int, used_ids: Set[str]) -> ExpenseRecord:
    fields = _common_fields(item, f"expense record {index + 1}", used_ids)
    return ExpenseRecord(category=_text(item.get('category')) or 'Other', **fields)


def _common_fields(item: Any, label: str, used_ids: Set[str]) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise ImportFormatError(f"Invalid {label}: expected an object")

    record_id = _text(item.get('id'))
    if not record_id or record_id in used_ids:
        record_id = generate_id()
    used_ids.add(record_id)

    return {
        'id': record_id,
        'date': _text(item.get('date')),
        'description': _text(item.get('description') or item.get('desc')),
        'amount': _parse_amount(item.get('amount'), label),
        'notes': _text(item.get('notes')),
    }


def _text(value: Any) -> str:
    return str(value).strip() if value is not None else ''


def _parse_amount(value: Any, label: str) -> float:
    if value is None or value == '':
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ImportFormatError(f"Invalid amount in {label}: {value!r}")
    if not math.isfinite(amount):
        raise ImportFormatError(f"Invalid amount in {label}: {value!r}")
    return max(0.0, amount)


def _parse_rate(value: Any) -> Optional[float]:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return None
    return rate if math.isfinite(rate) and rate > 0 else None
