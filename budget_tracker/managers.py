"""
Budget Tracker - Data Managers

PURPOSE: Data access layer for users, sessions, ledger records, categories and settings
SCOPE: CRUD operations scoped to the owning user
DEPENDENCIES: aiosqlite, bcrypt (via auth.py), database.py
"""

import asyncio
import logging
import uuid
from datetime import timedelta
from typing import List, Dict, Any, Optional

import aiosqlite

from .auth import (
    hash_password, verify_password, new_session_token, hash_session_token,
    utcnow, parse_iso_datetime,
)
from .config import config
from .database import DatabaseManager
from .models import IncomeRecord, ExpenseRecord, Ledger, merge_categories

logger = logging.getLogger(__name__)


class RecordManager:
    """CRUD for one ledger table; every query is keyed by the owning user."""

    table = ''
    columns: List[str] = []
    record_type = IncomeRecord

    def __init__(self, db_file: str):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)

    async def get_all(self, user_id: str) -> List[Dict[str, Any]]:
        """Get the user's records, newest date first."""
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(f'''
                SELECT id, {', '.join(self.columns)} FROM {self.table}
                WHERE user_id = ?
                ORDER BY date DESC, created_at DESC, rowid DESC
            ''', (user_id,))
            return [self._sanitize_row(dict(row)) for row in await cursor.fetchall()]

    async def get(self, user_id: str, record_id: str) -> Optional[Dict[str, Any]]:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                f'SELECT id, {", ".join(self.columns)} FROM {self.table} WHERE id = ? AND user_id = ?',
                (record_id, user_id)
            )
            row = await cursor.fetchone()
            return self._sanitize_row(dict(row)) if row else None

    async def create(self, user_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a prepared record. A duplicate id raises aiosqlite.IntegrityError."""
        placeholders = ', '.join('?' * (len(self.columns) + 2))
        async with self.db_manager.get_connection() as conn:
            await conn.execute(
                f'INSERT INTO {self.table} (id, user_id, {", ".join(self.columns)}) VALUES ({placeholders})',
                (values['id'], user_id, *[values[c] for c in self.columns])
            )
            await conn.commit()

        logger.info(f"Created {self.table} record {values['id']} for user {user_id}")
        return self._sanitize_row(values)

    async def update(self, user_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a record in place and return the stored row; None when the user has no record with that id."""
        assignments = ', '.join(f'{c} = ?' for c in self.columns)
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                f'UPDATE {self.table} SET {assignments}, updated_at = CURRENT_TIMESTAMP '
                f'WHERE id = ? AND user_id = ?',
                (*[values[c] for c in self.columns], values['id'], user_id)
            )
            await conn.commit()
            if cursor.rowcount == 0:
                return None

        logger.info(f"Updated {self.table} record {values['id']} for user {user_id}")
        return await self.get(user_id, values['id'])

    async def delete(self, user_id: str, record_id: str) -> bool:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                f'DELETE FROM {self.table} WHERE id = ? AND user_id = ?',
                (record_id, user_id)
            )
            await conn.commit()
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted {self.table} record {record_id} for user {user_id}")
        return deleted

    async def get_records(self, user_id: str) -> List[IncomeRecord]:
        return [self.record_type.from_row(row) for row in await self.get_all(user_id)]

    def _sanitize_row(self, row_data: Dict[str, Any]) -> Dict[str, Any]:
        """Shape a database row (or prepared values) for API output."""
        return self.record_type.from_row(row_data).to_dict()


class IncomeManager(RecordManager):
    table = 'income'
    columns = ['date', 'description', 'amount', 'notes']
    record_type = IncomeRecord


class ExpenseManager(RecordManager):
    table = 'expenses'
    columns = ['date', 'category', 'description', 'amount', 'notes']
    record_type = ExpenseRecord

    async def get_used_categories(self, user_id: str) -> List[str]:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute('''
                SELECT category FROM expenses
                WHERE user_id = ? AND category != ''
                GROUP BY category ORDER BY MIN(rowid)
            ''', (user_id,))
            return [row[0] for row in await cursor.fetchall()]


class CategoryManager:
    """Handles expense category operations."""

    def __init__(self, db_file: str):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)
        self.expense_manager = ExpenseManager(db_file)

    async def get_user_categories(self, user_id: str) -> List[str]:
        """Categories the user added explicitly, in the order added."""
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                'SELECT name FROM categories WHERE user_id = ? ORDER BY id', (user_id,)
            )
            return [row[0] for row in await cursor.fetchall()]

    async def get_all_categories(self, user_id: str) -> List[str]:
        """Defaults, then the user's own categories, then those seen on expenses."""
        return merge_categories(
            config.DEFAULT_CATEGORIES,
            await self.get_user_categories(user_id),
            await self.expense_manager.get_used_categories(user_id),
        )

    async def add_category(self, user_id: str, name: str) -> bool:
        """Add a category; False when it already exists (case-insensitive)."""
        known = await self.get_all_categories(user_id)
        if any(c.lower() == name.lower() for c in known):
            logger.warning(f"Category already exists: {name}")
            return False

        async with self.db_manager.get_connection() as conn:
            try:
                await conn.execute(
                    'INSERT INTO categories (user_id, name) VALUES (?, ?)', (user_id, name)
                )
                await conn.commit()
            except aiosqlite.IntegrityError as e:
                logger.warning(f"Category already exists or error: {e}")
                return False

        logger.info(f"Added new category for user {user_id}: {name}")
        return True


class LedgerManager:
    """Whole-ledger operations: load, replace (import) and clear."""

    def __init__(self, db_file: str):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)
        self.income_manager = IncomeManager(db_file)
        self.expense_manager = ExpenseManager(db_file)
        self.category_manager = CategoryManager(db_file)

    async def load_ledger(self, user_id: str, rate: Optional[float] = None) -> Ledger:
        income = await self.income_manager.get_records(user_id)
        expenses = await self.expense_manager.get_records(user_id)
        categories = await self.category_manager.get_all_categories(user_id)
        return Ledger(income=income, expenses=expenses, categories=categories, rate=rate)

    async def replace_ledger(self, user_id: str, ledger: Ledger) -> Dict[str, int]:
        """Replace all of the user's records and custom categories in one commit."""
        custom_categories = [c for c in ledger.categories if c not in config.DEFAULT_CATEGORIES]

        async with self.db_manager.get_connection() as conn:
            try:
                await self._delete_user_rows(conn, user_id)
                await conn.executemany(
                    'INSERT INTO income (id, user_id, date, description, amount, notes) '
                    'VALUES (?, ?, ?, ?, ?, ?)',
                    [(r.id, user_id, r.date, r.description, r.amount, r.notes) for r in ledger.income]
                )
                await conn.executemany(
                    'INSERT INTO expenses (id, user_id, date, category, description, amount, notes) '
                    'VALUES (?, ?, ?, ?, ?, ?, ?)',
                    [(r.id, user_id, r.date, r.category, r.description, r.amount, r.notes)
                     for r in ledger.expenses]
                )
                await conn.executemany(
                    'INSERT OR IGNORE INTO categories (user_id, name) VALUES (?, ?)',
                    [(user_id, name) for name in custom_categories]
                )
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise

        counts = {'income': len(ledger.income), 'expenses': len(ledger.expenses),
                  'categories': len(custom_categories)}
        logger.info(f"Replaced ledger for user {user_id}: {counts}")
        return counts

    async def clear_ledger(self, user_id: str) -> None:
        async with self.db_manager.get_connection() as conn:
            await self._delete_user_rows(conn, user_id)
            await conn.commit()
        logger.info(f"Cleared ledger for user {user_id}")

    async def _delete_user_rows(self, conn: aiosqlite.Connection, user_id: str) -> None:
        for table in ('income', 'expenses', 'categories'):
            await conn.execute(f'DELETE FROM {table} WHERE user_id = ?', (user_id,))


class UserManager:
    """Handles registration and credential checks."""

    def __init__(self, db_file: str, bcrypt_rounds: int = config.BCRYPT_ROUNDS):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)
        self.bcrypt_rounds = bcrypt_rounds

    async def create_user(self, email: str, password: str, name: str = '') -> Optional[Dict[str, Any]]:
        """Create a user; None when the email is already registered."""
        email = email.strip().lower()
        # bcrypt is CPU bound, keep it off the event loop
        loop = asyncio.get_running_loop()
        password_hash = await loop.run_in_executor(
            None, lambda: hash_password(password, self.bcrypt_rounds)
        )
        user = {'id': str(uuid.uuid4()), 'email': email, 'name': name.strip()}

        async with self.db_manager.get_connection() as conn:
            try:
                await conn.execute(
                    'INSERT INTO users (id, email, password, name) VALUES (?, ?, ?, ?)',
                    (user['id'], email, password_hash, user['name'])
                )
                await conn.commit()
            except aiosqlite.IntegrityError:
                logger.warning(f"Registration rejected, email already exists: {email}")
                return None

        logger.info(f"Registered user {user['id']}")
        return user

    async def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                'SELECT id, email, name, password FROM users WHERE email = ?',
                (email.strip().lower(),)
            )
            row = await cursor.fetchone()
        if not row:
            return None

        loop = asyncio.get_running_loop()
        ok = await loop.run_in_executor(None, lambda: verify_password(password, row['password']))
        if not ok:
            return None
        return {'id': row['id'], 'email': row['email'], 'name': row['name'] or ''}

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                'SELECT id, email, name FROM users WHERE id = ?', (user_id,)
            )
            row = await cursor.fetchone()
            return {'id': row['id'], 'email': row['email'], 'name': row['name'] or ''} if row else None


class SessionManager:
    """Issues and validates login sessions."""

    def __init__(self, db_file: str, ttl_days: int = config.SESSION_TTL_DAYS):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)
        self.ttl = timedelta(days=ttl_days)

    async def create_session(self, user_id: str) -> str:
        """Create a session and return the raw token for the cookie."""
        token = new_session_token()
        now = utcnow()
        async with self.db_manager.get_connection() as conn:
            await conn.execute('DELETE FROM sessions WHERE expires_at <= ?', (now.isoformat(),))
            await conn.execute(
                'INSERT INTO sessions (token_hash, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)',
                (hash_session_token(token), user_id, now.isoformat(), (now + self.ttl).isoformat())
            )
            await conn.commit()
        return token

    async def get_user_id(self, token: Optional[str]) -> Optional[str]:
        """Resolve a session token to its user id; expired sessions are removed."""
        token = (token or '').strip()
        if not token:
            return None

        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                'SELECT id, user_id, expires_at FROM sessions WHERE token_hash = ?',
                (hash_session_token(token),)
            )
            row = await cursor.fetchone()
            if not row:
                return None

            expires_at = parse_iso_datetime(row['expires_at'])
            if not expires_at or expires_at <= utcnow():
                await conn.execute('DELETE FROM sessions WHERE id = ?', (row['id'],))
                await conn.commit()
                return None
            return row['user_id']

    async def delete_session(self, token: Optional[str]) -> None:
        token = (token or '').strip()
        if not token:
            return
        async with self.db_manager.get_connection() as conn:
            await conn.execute('DELETE FROM sessions WHERE token_hash = ?', (hash_session_token(token),))
            await conn.commit()


class SettingsManager:
    """Global key/value settings and per-user preferences."""

    def __init__(self, db_file: str):
        self.db_file = db_file
        self.db_manager = DatabaseManager(db_file)

    async def get_value(self, key: str) -> Optional[str]:
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute('SELECT value FROM settings WHERE key = ?', (key,))
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set_values(self, values: Dict[str, str]) -> None:
        async with self.db_manager.get_connection() as conn:
            await conn.executemany('''
                INSERT INTO settings (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
            ''', list(values.items()))
            await conn.commit()

    async def get_user_settings(self, user_id: str) -> Dict[str, str]:
        """User preferences merged over the defaults."""
        settings = dict(config.DEFAULT_SETTINGS)
        async with self.db_manager.get_connection() as conn:
            cursor = await conn.execute(
                'SELECT key, value FROM user_settings WHERE user_id = ?', (user_id,)
            )
            for row in await cursor.fetchall():
                settings[row['key']] = row['value']
        return settings

    async def update_user_settings(self, user_id: str, values: Dict[str, str]) -> Dict[str, str]:
        async with self.db_manager.get_connection() as conn:
            await conn.executemany('''
                INSERT INTO user_settings (user_id, key, value, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(user_id, key) DO UPDATE SET value = excluded.value,
                                                        updated_at = CURRENT_TIMESTAMP
            ''', [(user_id, key, value) for key, value in values.items()])
            await conn.commit()
        return await self.get_user_settings(user_id)
