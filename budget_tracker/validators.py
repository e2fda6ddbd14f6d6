"""
Budget Tracker - Data Validation

PURPOSE: Data validation and business rule enforcement
SCOPE: Input validation, default-filling, and error messages
DEPENDENCIES: typing, config.py
"""

import math
from typing import Dict, Any, List, Optional, Tuple

from .config import config
from .models import generate_id

ALLOWED_SETTINGS = {
    'theme': ('dark', 'light'),
    'active_tab': ('income', 'expenses', 'summary'),
}

BCRYPT_MAX_PASSWORD_BYTES = 72

# Largest whole number a float (SQLite REAL) holds exactly
MAX_AMOUNT = 2 ** 53


def normalize_amount(value: Any) -> Optional[int]:
    """Round an amount to whole won (half up); None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(amount):
        return None
    return int(math.floor(amount + 0.5))


def validate_record_data(record_data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate an income/expense record; errors name the fields to fill in."""
    errors = []

    if not str(record_data.get('date') or '').strip():
        errors.append("Date")

    amount = normalize_amount(record_data.get('amount'))
    if amount is None or amount <= 0 or amount > MAX_AMOUNT:
        errors.append("Amount")

    return len(errors) == 0, errors


def prepare_record_values(record_data: Dict[str, Any], kind: str) -> Dict[str, Any]:
    """Apply defaults to a validated record. ``kind`` is 'income' or 'expense'."""
    values = {
        'id': str(record_data.get('id') or '').strip() or generate_id(),
        'date': str(record_data.get('date') or '').strip(),
        'description': str(record_data.get('description') or '').strip()
                       or ('Income' if kind == 'income' else 'Expense'),
        'amount': normalize_amount(record_data.get('amount')),
        'notes': str(record_data.get('notes') or '').strip(),
    }
    if kind == 'expense':
        values['category'] = str(record_data.get('category') or '').strip() or 'Other'
    return values


def validate_category_name(name: str) -> Tuple[bool, List[str]]:
    """Validate category name."""
    errors = []

    if not name or not name.strip():
        errors.append("Category name is required")
    elif len(name.strip()) > 100:
        errors.append("Category name must be 100 characters or less")

    return len(errors) == 0, errors


def validate_registration_data(data: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a sign-up request."""
    errors = []

    email = str(data.get('email') or '').strip()
    if not email:
        errors.append("Email is required")
    elif '@' not in email:
        errors.append("Email address is invalid")

    password = str(data.get('password') or '')
    if len(password) < config.MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters")
    elif len(password.encode('utf-8')) > BCRYPT_MAX_PASSWORD_BYTES:
        errors.append(f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes")

    return len(errors) == 0, errors


def validate_settings_data(settings: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate user settings against the recognized keys and values."""
    errors = []

    for key, value in settings.items():
        allowed = ALLOWED_SETTINGS.get(key)
        if allowed is None:
            errors.append(f"Unknown setting: {key}")
        elif value not in allowed:
            errors.append(f"{key} must be one of: {', '.join(allowed)}")

    return len(errors) == 0, errors


def sanitize_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize form data by stripping whitespace."""
    sanitized = {}

    for key, value in form_data.items():
        if isinstance(value, str):
            sanitized[key] = value.strip()
        else:
            sanitized[key] = value

    return sanitized
