"""
Shared fixtures.

Every test gets its own SQLite file and a mocked rate service, so no test
touches the network.
"""

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from budget_tracker.app import create_app
from budget_tracker.database import DatabaseManager

USD_PER_KRW = 1 / 1200


class RateServiceStub:
    """Counts requests and answers with a configurable payload or status."""

    def __init__(self):
        self.calls = 0
        self.status_code = 200
        self.payload = {"result": "success", "base_code": "KRW", "rates": {"USD": USD_PER_KRW}}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def rate_stub():
    return RateServiceStub()


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "budget_test.db")


@pytest_asyncio.fixture
async def initialized_db(db_file):
    await DatabaseManager(db_file).initialize_database()
    return db_file


@pytest.fixture
def app(db_file, rate_stub):
    return create_app(db_file=db_file, rate_transport=rate_stub.transport, bcrypt_rounds=4)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def register_and_login(client, email="minji@example.com", password="secret123", name="Minji"):
    response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert response.status_code == 201, response.text
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def auth_client(client):
    register_and_login(client)
    return client


@pytest.fixture
def other_client(app):
    """A second, independently logged-in user on the same app."""
    with TestClient(app) as test_client:
        register_and_login(test_client, email="joon@example.com", name="Joon")
        yield test_client
