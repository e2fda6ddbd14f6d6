"""
Budget Tracker - Configuration and Constants

PURPOSE: Central configuration management for the application
SCOPE: Application settings, constants, and environment variables
DEPENDENCIES: None (foundational module)
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Dict


@dataclass
class AppConfig:
    """Application configuration constants."""
    DB_FILE: str = 'budget.db'
    DEFAULT_CATEGORIES: List[str] = None
    DEFAULT_RATE: float = 1388.0
    RATE_API_URL: str = 'https://open.er-api.com/v6/latest/KRW'
    RATE_MAX_AGE_HOURS: int = 12
    RATE_TIMEOUT_SECONDS: float = 10.0
    SESSION_COOKIE_NAME: str = 'budget_session'
    SESSION_TTL_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12
    MIN_PASSWORD_LENGTH: int = 6
    DEFAULT_SETTINGS: Dict[str, str] = None
    LOG_LEVEL: str = 'INFO'

    def __post_init__(self):
        if self.DEFAULT_CATEGORIES is None:
            self.DEFAULT_CATEGORIES = [
                'Room and Utility', 'Daily Expense', 'Borrow Others',
                'Food & Drinks', 'Transportation', 'Entertainment',
                'Shopping', 'Other'
            ]
        if self.DEFAULT_SETTINGS is None:
            self.DEFAULT_SETTINGS = {'theme': 'dark', 'active_tab': 'income'}

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Build a config, letting BUDGET_* environment variables override defaults."""
        return cls(
            DB_FILE=os.getenv('BUDGET_DB_FILE', cls.DB_FILE),
            RATE_API_URL=os.getenv('BUDGET_RATE_API_URL', cls.RATE_API_URL),
            SESSION_TTL_DAYS=int(os.getenv('BUDGET_SESSION_TTL_DAYS', cls.SESSION_TTL_DAYS)),
            BCRYPT_ROUNDS=int(os.getenv('BUDGET_BCRYPT_ROUNDS', cls.BCRYPT_ROUNDS)),
            LOG_LEVEL=os.getenv('BUDGET_LOG_LEVEL', cls.LOG_LEVEL).upper(),
        )


# Global configuration instance
config = AppConfig.from_env()

# Set up logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)
