"""
Budget Tracker - Database Management

PURPOSE: Database schema, migrations, and connection management
SCOPE: SQLite operations, schema versioning, and data persistence
DEPENDENCIES: aiosqlite
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class DatabaseManager:
    """Handles connections, schema creation and migrations."""

    def __init__(self, db_file: str):
        self.db_file = db_file

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection with dict-like rows and foreign keys enforced."""
        async with aiosqlite.connect(self.db_file) as conn:
            conn.row_factory = aiosqlite.Row
            await conn.execute('PRAGMA foreign_keys = ON')
            yield conn

    async def initialize_database(self) -> None:
        """Initialize SQLite database with proper schema and migrations."""
        async with self.get_connection() as conn:
            await self._setup_schema_versioning(conn)
            current_version = await self._get_current_schema_version(conn)
            logger.info(f"Current database schema version: {current_version}")

            if current_version < 1:
                await self._migrate_to_version_1(conn)
            if current_version < 2:
                await self._migrate_to_version_2(conn)

            await conn.commit()

    async def _setup_schema_versioning(self, conn: aiosqlite.Connection) -> None:
        """Set up schema version tracking table."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

    async def _get_current_schema_version(self, conn: aiosqlite.Connection) -> int:
        """Get the current database schema version."""
        cursor = await conn.execute('SELECT MAX(version) FROM schema_version')
        result = await cursor.fetchone()
        return result[0] or 0

    async def _migrate_to_version_1(self, conn: aiosqlite.Connection) -> None:
        """Create the users, sessions, ledger, category and settings tables."""
        logger.info("Migrating to schema version 1: Creating ledger tables")

        await self._create_user_tables(conn)
        await self._create_ledger_tables(conn)
        await self._create_supporting_tables(conn)

        await conn.execute('INSERT INTO schema_version (version) VALUES (1)')
        logger.info("Schema migration to version 1 completed")

    async def _migrate_to_version_2(self, conn: aiosqlite.Connection) -> None:
        """Add per-user settings and ledger lookup indexes."""
        logger.info("Migrating to schema version 2: Adding user settings")

        await conn.execute('''
            CREATE TABLE IF NOT EXISTS user_settings (
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, key)
            )
        ''')
        await conn.execute('CREATE INDEX IF NOT EXISTS idx_income_user_date ON income (user_id, date)')
        await conn.execute('CREATE INDEX IF NOT EXISTS idx_expenses_user_date ON expenses (user_id, date)')

        await conn.execute('INSERT OR REPLACE INTO schema_version (version) VALUES (2)')
        logger.info("Schema migration to version 2 completed")

    async def _create_user_tables(self, conn: aiosqlite.Connection) -> None:
        """Create authentication tables."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL COLLATE NOCASE,
                password TEXT NOT NULL,
                name TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                token_hash TEXT UNIQUE NOT NULL,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
        ''')

    async def _create_ledger_tables(self, conn: aiosqlite.Connection) -> None:
        """Create income and expense tables; ids are unique per owning user."""
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS income (
                id TEXT NOT NULL,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                date TEXT NOT NULL,
                description TEXT NOT NULL,
                amount REAL NOT NULL,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, id)
            )
        ''')
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS expenses (
                id TEXT NOT NULL,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                date TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'Other',
                description TEXT NOT NULL,
                amount REAL NOT NULL,
                notes TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (user_id, id)
            )
        ''')

    async def _create_supporting_tables(self, conn: aiosqlite.Connection) -> None:
        """Create supporting tables for categories and the cached exchange rate."""
        # Categories added explicitly by a user; defaults live in config
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS categories (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(user_id, name)
            )
        ''')

        # Global key/value store (exchange rate cache)
        await conn.execute('''
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
