"""
Budget Tracker Backend Package

PURPOSE: Package initialization for the budget tracker backend
SCOPE: Module imports and package configuration
"""

__version__ = "1.0.0"
__description__ = "Personal KRW budget tracker with USD conversion"

# Package imports for easier access
from .config import config
from .database import DatabaseManager
from .managers import (
    IncomeManager, ExpenseManager, CategoryManager, LedgerManager,
    UserManager, SessionManager, SettingsManager,
)
from .rates import ExchangeRateService
from .currency import krw_to_usd
from .aggregation import compute_totals, category_breakdown, category_shares
from .ledger_io import build_export_document, parse_import_document, ImportFormatError

__all__ = [
    "config",
    "DatabaseManager",
    "IncomeManager",
    "ExpenseManager",
    "CategoryManager",
    "LedgerManager",
    "UserManager",
    "SessionManager",
    "SettingsManager",
    "ExchangeRateService",
    "krw_to_usd",
    "compute_totals",
    "category_breakdown",
    "category_shares",
    "build_export_document",
    "parse_import_document",
    "ImportFormatError",
]
