import time

import mongomock
import pyotp
import pytest
from fastapi.testclient import TestClient

import auth_service
import database
from main import app
from schemas import RoleName
from security import create_access_token
from storage import LocalBlobStore, get_blob_store

PASSWORD = "correct-horse-battery"


@pytest.fixture
def mongo_db(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr(database, "db", db)
    database.init_database(db)
    return db


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "uploads"))


@pytest.fixture
def client(mongo_db, blob_store):
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(mongo_db):
    def _make(username: str, role: RoleName = RoleName.DEVELOPER, password: str = PASSWORD) -> str:
        return auth_service.register(username, f"{username}@example.com", password, role.value)
    return _make


@pytest.fixture
def admin(make_user):
    return make_user("alice", RoleName.ADMIN)


@pytest.fixture
def lead(make_user):
    return make_user("leo", RoleName.PROJECT_LEAD)


@pytest.fixture
def developer(make_user):
    return make_user("dana", RoleName.DEVELOPER)


def auth_header(user_id: str, role: RoleName) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


def wrong_code(secret: str) -> str:
    """A 6-digit code that is not accepted for `secret` right now."""
    totp = pyotp.TOTP(secret)
    now = time.time()
    valid = {totp.at(now + offset) for offset in (-60, -30, 0, 30, 60)}
    return next(c for c in ("000000", "111111", "222222", "333333", "444444", "555555") if c not in valid)
