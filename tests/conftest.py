# tests/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from firebase_admin import auth as admin_auth

from tests.fakes.firestore import FakeFirestore

GET_DB_USERS = (
    "a_users.sync.get_db",
    "a_rtchat.firebase_sync.get_db",
    "a_rtchat.subscriptions.get_db",
    "a_rtchat.management.commands.migrate_legacy_groups.get_db",
)
NOW_ISO_USERS = (
    "a_users.sync.now_iso",
    "a_rtchat.firebase_sync.now_iso",
)


class FakeClock:
    """Deterministic now_iso(): every call is one millisecond after the previous one."""

    def __init__(self, start=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def iso(self) -> str:
        self.current += timedelta(milliseconds=1)
        return self.current.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def store(monkeypatch, settings):
    """Every test talks to a fresh in-memory Firestore."""
    settings.FIRESTORE_BATCH_LIMIT = 500
    fake = FakeFirestore()
    for target in GET_DB_USERS:
        monkeypatch.setattr(target, lambda: fake)
    return fake


@pytest.fixture(autouse=True)
def clock(monkeypatch):
    fake_clock = FakeClock()
    for target in NOW_ISO_USERS:
        monkeypatch.setattr(target, fake_clock.iso)
    return fake_clock


@pytest.fixture
def auth_tokens(monkeypatch):
    """
    Firebase Auth replacement: "token-<uid>" verifies as <uid>, anything
    else is rejected. Returns the set of revoked tokens to play with.
    """
    revoked = set()

    def verify_id_token(token, app=None, check_revoked=False):
        if check_revoked and token in revoked:
            raise admin_auth.RevokedIdTokenError("revoked token")
        if not token or not token.startswith("token-"):
            raise admin_auth.InvalidIdTokenError("invalid token", cause=None)
        uid = token[len("token-"):]
        return {"uid": uid, "email": f"{uid.upper()}@Example.com", "name": uid.title()}

    monkeypatch.setattr("a_users.session.get_app", lambda: None)
    monkeypatch.setattr(admin_auth, "verify_id_token", verify_id_token)
    return revoked


@pytest.fixture
def users(store):
    """Three profiles written straight into the store."""
    for uid, name, username in (
        ("alice", "Alice Liddell", "alice"),
        ("bob", "Bob Builder", "bobb"),
        ("carol", "Carol Danvers", "captain"),
    ):
        store.collection("users").document(uid).set({
            "email": f"{uid}@example.com",
            "displayName": name,
            "username": username,
            "status": "offline",
            "createdAt": "2025-01-01T00:00:00.000Z",
            "lastSeen": "2025-01-01T00:00:00.000Z",
        })
    return ("alice", "bob", "carol")


@pytest.fixture
def as_user(client, auth_tokens):
    """Test client carrying the authToken cookie of the given user."""

    def _as(uid):
        client.cookies["authToken"] = f"token-{uid}"
        return client

    return _as
