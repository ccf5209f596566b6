import os

os.environ.setdefault("SUPABASE_URL", "https://project.supabase.test")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-role-key")
os.environ.setdefault("DAILY_API_KEY", "daily-test-key")

import pytest
from fastapi.testclient import TestClient

from fakes import FakeRooms, FakeSupabase, seed_account
from lms_portal.db import supabase as supabase_db
from lms_portal.integrations.daily import get_room_provider
from lms_portal.main import app


@pytest.fixture
def db(monkeypatch):
    fake = FakeSupabase()
    monkeypatch.setattr(supabase_db, "create_client", lambda url, key: fake)
    supabase_db.create_supabase_client.cache_clear()
    yield fake
    supabase_db.create_supabase_client.cache_clear()


@pytest.fixture
def rooms():
    return FakeRooms()


@pytest.fixture
def client(db, rooms):
    app.dependency_overrides[get_room_provider] = lambda: rooms
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return seed_account(db, "admin", name="Ada Admin")


@pytest.fixture
def teacher(db):
    return seed_account(db, "teacher", name="Tom Teacher")


@pytest.fixture
def student(db):
    return seed_account(db, "student", name="Sam Student")
