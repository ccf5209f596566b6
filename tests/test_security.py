from datetime import datetime, timedelta, timezone

from fakes import FakeSupabase, seed_account
from lms_portal.core import clock
from lms_portal.core.security import get_password_hash, resolve_session, verify_password
from lms_portal.db.identity import IdentityStore


def test_password_hash_roundtrip():
    hashed = get_password_hash("correct horse battery")
    assert hashed != "correct horse battery"
    assert verify_password("correct horse battery", hashed)
    assert not verify_password("wrong password", hashed)


def test_verify_password_with_garbage_hash_is_false():
    assert verify_password("whatever1", "not-a-bcrypt-hash") is False


def test_valid_token_resolves_to_identity():
    db = FakeSupabase()
    account = seed_account(db, "teacher", name="Tom")
    identity = resolve_session(IdentityStore(db), account.token)
    assert identity.user_id == account.user_id
    assert identity.role == "teacher"
    assert identity.name == "Tom"


def test_resolution_is_idempotent_and_read_only():
    db = FakeSupabase()
    account = seed_account(db, "student")
    store = IdentityStore(db)
    first = resolve_session(store, account.token)
    second = resolve_session(store, account.token)
    assert first == second
    assert all(op == "select" for op, _ in db.calls)


def test_expired_token_resolves_to_none_and_is_kept():
    db = FakeSupabase()
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    account = seed_account(db, "student", expires_at=past)
    assert resolve_session(IdentityStore(db), account.token) is None
    assert len(db.rows("sessions")) == 1


def test_expiry_is_compared_against_given_clock():
    db = FakeSupabase()
    expires = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    account = seed_account(db, "admin", expires_at=expires)
    store = IdentityStore(db)
    assert resolve_session(store, account.token, now=expires - timedelta(seconds=1)) is not None
    assert resolve_session(store, account.token, now=expires) is None


def test_default_clock_is_the_shared_utc_clock(monkeypatch):
    db = FakeSupabase()
    expires = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    account = seed_account(db, "admin", expires_at=expires)
    monkeypatch.setattr(clock, "utcnow", lambda: expires + timedelta(hours=1))
    assert resolve_session(IdentityStore(db), account.token) is None


def test_missing_or_malformed_token_skips_lookup():
    db = FakeSupabase()
    store = IdentityStore(db)
    assert resolve_session(store, None) is None
    assert resolve_session(store, "") is None
    assert resolve_session(store, "abc") is None
    assert resolve_session(store, "x' OR 1=1 --  padding padding") is None
    assert db.calls == []


def test_unknown_token_resolves_to_none():
    db = FakeSupabase()
    assert resolve_session(IdentityStore(db), "A" * 43) is None


def test_backend_error_resolves_to_none():
    db = FakeSupabase()
    account = seed_account(db, "admin")
    db.fail_on.add(("select", "sessions"))
    assert resolve_session(IdentityStore(db), account.token) is None


def test_session_for_deleted_user_resolves_to_none():
    db = FakeSupabase()
    account = seed_account(db, "student")
    db.tables["users"] = []
    assert resolve_session(IdentityStore(db), account.token) is None
