"""Tests for budget_tracker.managers against a temporary SQLite file."""

import aiosqlite
import pytest
import pytest_asyncio

from budget_tracker.config import config
from budget_tracker.database import DatabaseManager, SCHEMA_VERSION
from budget_tracker.ledger_io import parse_import_document
from budget_tracker.models import IncomeRecord, Ledger
from budget_tracker.managers import (
    IncomeManager, ExpenseManager, CategoryManager, LedgerManager,
    UserManager, SessionManager, SettingsManager,
)


@pytest_asyncio.fixture
async def users(initialized_db):
    manager = UserManager(initialized_db, bcrypt_rounds=4)
    alice = await manager.create_user("alice@example.com", "password1", "Alice")
    bob = await manager.create_user("bob@example.com", "password2", "Bob")
    return alice["id"], bob["id"]


def expense_values(record_id, amount=10_000, category="Food & Drinks"):
    return {"id": record_id, "date": "2024-01-02", "category": category,
            "description": "Lunch", "amount": amount, "notes": ""}


class TestDatabaseManager:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, db_file):
        manager = DatabaseManager(db_file)
        await manager.initialize_database()
        await manager.initialize_database()

        async with manager.get_connection() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            assert (await cursor.fetchone())[0] == SCHEMA_VERSION
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row[0] for row in await cursor.fetchall()}
        assert {"users", "sessions", "income", "expenses", "categories",
                "settings", "user_settings"} <= tables


class TestRecordManagers:
    @pytest.mark.asyncio
    async def test_create_and_list(self, initialized_db, users):
        alice, _ = users
        manager = IncomeManager(initialized_db)
        created = await manager.create(alice, {"id": "i1", "date": "2024-01-01",
                                               "description": "Salary", "amount": 3_000_000,
                                               "notes": ""})
        assert created["amount"] == 3_000_000.0

        rows = await manager.get_all(alice)
        assert rows == [{"id": "i1", "date": "2024-01-01", "description": "Salary",
                         "amount": 3_000_000.0, "notes": ""}]

    @pytest.mark.asyncio
    async def test_listing_newest_date_first(self, initialized_db, users):
        alice, _ = users
        manager = ExpenseManager(initialized_db)
        await manager.create(alice, {**expense_values("old"), "date": "2024-01-01"})
        await manager.create(alice, {**expense_values("new"), "date": "2024-03-01"})
        assert [r["id"] for r in await manager.get_all(alice)] == ["new", "old"]

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected_per_user(self, initialized_db, users):
        alice, bob = users
        manager = ExpenseManager(initialized_db)
        await manager.create(alice, expense_values("e1"))
        with pytest.raises(aiosqlite.IntegrityError):
            await manager.create(alice, expense_values("e1"))
        # Same id is fine for another owner
        await manager.create(bob, expense_values("e1"))

    @pytest.mark.asyncio
    async def test_records_are_scoped_to_owner(self, initialized_db, users):
        alice, bob = users
        manager = ExpenseManager(initialized_db)
        await manager.create(alice, expense_values("e1"))

        assert await manager.get_all(bob) == []
        assert await manager.get(bob, "e1") is None
        assert await manager.update(bob, expense_values("e1", amount=1)) is None
        assert await manager.delete(bob, "e1") is False
        assert (await manager.get(alice, "e1"))["amount"] == 10_000

    @pytest.mark.asyncio
    async def test_update_and_delete(self, initialized_db, users):
        alice, _ = users
        manager = ExpenseManager(initialized_db)
        await manager.create(alice, expense_values("e1"))

        updated = await manager.update(alice, expense_values("e1", amount=20_000, category="Shopping"))
        assert updated["category"] == "Shopping"
        assert (await manager.get(alice, "e1"))["amount"] == 20_000

        assert await manager.delete(alice, "e1") is True
        assert await manager.delete(alice, "e1") is False

    @pytest.mark.asyncio
    async def test_delete_missing_leaves_rows(self, initialized_db, users):
        alice, _ = users
        manager = IncomeManager(initialized_db)
        await manager.create(alice, {"id": "i1", "date": "2024-01-01", "description": "Salary",
                                     "amount": 100, "notes": ""})
        assert await manager.delete(alice, "missing") is False
        assert len(await manager.get_all(alice)) == 1


class TestCategoryManager:
    @pytest.mark.asyncio
    async def test_merges_defaults_custom_and_observed(self, initialized_db, users):
        alice, _ = users
        categories = CategoryManager(initialized_db)
        await ExpenseManager(initialized_db).create(alice, expense_values("e1", category="Pets"))
        assert await categories.add_category(alice, "Gifts") is True

        merged = await categories.get_all_categories(alice)
        assert merged == list(config.DEFAULT_CATEGORIES) + ["Gifts", "Pets"]

    @pytest.mark.asyncio
    async def test_duplicate_is_case_insensitive(self, initialized_db, users):
        alice, bob = users
        categories = CategoryManager(initialized_db)
        assert await categories.add_category(alice, "shopping") is False
        assert await categories.add_category(alice, "Gifts") is True
        assert await categories.add_category(alice, "GIFTS") is False
        assert await categories.add_category(bob, "Gifts") is True


class TestLedgerManager:
    @pytest.mark.asyncio
    async def test_replace_ledger(self, initialized_db, users):
        alice, bob = users
        ledger_manager = LedgerManager(initialized_db)
        await ledger_manager.expense_manager.create(alice, expense_values("stale"))
        await ledger_manager.expense_manager.create(bob, expense_values("bobs"))

        imported = parse_import_document({
            "income": [{"id": "i1", "date": "2024-01-01", "description": "Salary", "amount": 500}],
            "expenses": [{"id": "e9", "date": "2024-01-03", "amount": 70, "category": "Pets"}],
        })
        counts = await ledger_manager.replace_ledger(alice, imported)
        assert counts == {"income": 1, "expenses": 1, "categories": 1}

        ledger = await ledger_manager.load_ledger(alice, rate=1200)
        assert [r.id for r in ledger.income] == ["i1"]
        assert [r.id for r in ledger.expenses] == ["e9"]
        assert "Pets" in ledger.categories
        assert ledger.rate == 1200
        # Other users untouched
        assert len(await ledger_manager.expense_manager.get_all(bob)) == 1

    @pytest.mark.asyncio
    async def test_failed_replace_keeps_existing_rows(self, initialized_db, users):
        alice, _ = users
        ledger_manager = LedgerManager(initialized_db)
        await ledger_manager.income_manager.create(alice, {"id": "keep", "date": "2024-01-01",
                                                           "description": "Salary",
                                                           "amount": 1000, "notes": ""})
        await ledger_manager.expense_manager.create(alice, expense_values("e1"))
        await ledger_manager.category_manager.add_category(alice, "Gifts")

        # Two income rows sharing an id fail on insert, after the deletes have run
        clashing = Ledger(income=[IncomeRecord(id="dup", date="2024-02-01", description="A", amount=1),
                                  IncomeRecord(id="dup", date="2024-02-02", description="B", amount=2)])
        with pytest.raises(aiosqlite.IntegrityError):
            await ledger_manager.replace_ledger(alice, clashing)

        ledger = await ledger_manager.load_ledger(alice)
        assert [r.id for r in ledger.income] == ["keep"]
        assert [r.id for r in ledger.expenses] == ["e1"]
        assert "Gifts" in ledger.categories

    @pytest.mark.asyncio
    async def test_clear_ledger(self, initialized_db, users):
        alice, _ = users
        ledger_manager = LedgerManager(initialized_db)
        await ledger_manager.expense_manager.create(alice, expense_values("e1"))
        await ledger_manager.category_manager.add_category(alice, "Gifts")

        await ledger_manager.clear_ledger(alice)

        ledger = await ledger_manager.load_ledger(alice)
        assert ledger.income == [] and ledger.expenses == []
        assert ledger.categories == list(config.DEFAULT_CATEGORIES)


class TestUsersAndSessions:
    @pytest.mark.asyncio
    async def test_duplicate_email_is_case_insensitive(self, initialized_db, users):
        manager = UserManager(initialized_db, bcrypt_rounds=4)
        assert await manager.create_user("ALICE@example.com", "whatever1") is None

    @pytest.mark.asyncio
    async def test_authenticate(self, initialized_db, users):
        manager = UserManager(initialized_db, bcrypt_rounds=4)
        user = await manager.authenticate(" Alice@Example.com ", "password1")
        assert user["name"] == "Alice"
        assert "password" not in user
        assert await manager.authenticate("alice@example.com", "wrong") is None
        assert await manager.authenticate("nobody@example.com", "password1") is None

    @pytest.mark.asyncio
    async def test_password_is_hashed(self, initialized_db, users):
        async with DatabaseManager(initialized_db).get_connection() as conn:
            cursor = await conn.execute("SELECT password FROM users WHERE email = 'alice@example.com'")
            stored = (await cursor.fetchone())[0]
        assert stored != "password1"
        assert stored.startswith("$2")

    @pytest.mark.asyncio
    async def test_session_lifecycle(self, initialized_db, users):
        alice, _ = users
        sessions = SessionManager(initialized_db)
        token = await sessions.create_session(alice)

        assert await sessions.get_user_id(token) == alice
        assert await sessions.get_user_id("forged") is None
        assert await sessions.get_user_id(None) is None

        await sessions.delete_session(token)
        assert await sessions.get_user_id(token) is None

    @pytest.mark.asyncio
    async def test_expired_session_rejected(self, initialized_db, users):
        alice, _ = users
        sessions = SessionManager(initialized_db, ttl_days=-1)
        token = await sessions.create_session(alice)
        assert await sessions.get_user_id(token) is None


class TestSettingsManager:
    @pytest.mark.asyncio
    async def test_global_values(self, initialized_db):
        settings = SettingsManager(initialized_db)
        assert await settings.get_value("krw_per_usd") is None
        await settings.set_values({"krw_per_usd": "1300.5"})
        await settings.set_values({"krw_per_usd": "1310"})
        assert await settings.get_value("krw_per_usd") == "1310"

    @pytest.mark.asyncio
    async def test_user_settings_default_and_update(self, initialized_db, users):
        alice, bob = users
        settings = SettingsManager(initialized_db)
        assert await settings.get_user_settings(alice) == {"theme": "dark", "active_tab": "income"}

        updated = await settings.update_user_settings(alice, {"theme": "light"})
        assert updated == {"theme": "light", "active_tab": "income"}
        assert (await settings.get_user_settings(bob))["theme"] == "dark"
