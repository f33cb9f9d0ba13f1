import os

# Test configuration must be in place before any accounts module reads settings
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"  # lowest bcrypt cost - keeps the suite fast

import pytest
from fastapi.testclient import TestClient

from accounts.core.database import ensure_indexes, get_db
from accounts.core.security import create_access_token
from accounts.repositories.users import UserRepository
from fakes import FakeDatabase

DEFAULT_PASSWORD = "password123"


@pytest.fixture
def db():
    database = FakeDatabase()
    ensure_indexes(database)
    return database


@pytest.fixture
def users_repo(db):
    return UserRepository(db)


@pytest.fixture
def app(db):
    from accounts.main import app as fastapi_app

    fastapi_app.dependency_overrides[get_db] = lambda: db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    # Lifespan is not entered (no `with`), so nothing connects to MongoDB
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def make_user(users_repo):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "fullname": f"User {counter['n']}",
            "email": f"user{counter['n']}@example.com",
            "password": DEFAULT_PASSWORD,
        }
        data.update(overrides)
        return users_repo.create(data)

    return _make


def bearer(user) -> dict:
    """Authorization header carrying a fresh token for user"""
    return {"Authorization": f"Bearer {create_access_token(str(user['_id']))}"}


@pytest.fixture
def auth_headers():
    return bearer
