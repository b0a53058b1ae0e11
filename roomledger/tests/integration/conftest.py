"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig uses TEST_DATABASE_URL when set (PostgreSQL) and an
    in-memory SQLite database otherwise.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - On PostgreSQL the enum types are created explicitly before
    db.create_all() because the models use create_type=False (Alembic owns
    them).

Identity:
  RoomLedger does not issue tokens. Users are inserted directly and
  bearer tokens are minted here with PyJWT, the way the identity provider
  would.

Helper functions (not fixtures):
  - make_user(app, ...)          → user id
  - token_for(app, user_id)      → signed bearer token
  - auth_headers(token)          → {"Authorization": "Bearer <token>"}
  - make_room(client, ...)       → HTTP response
  - make_event(client, ...)      → event data dict
  - add_event_member(...)        → HTTP response
  - submit_settlement(...)       → HTTP response
  - resolve_settlement(...)      → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from roomledger.app import create_app
from roomledger.app.extensions import db as _db
from roomledger.app.extensions import notifications
from roomledger.app.models.user import User


_PG_ENUMS = {
    "split_type_enum": "('equal', 'custom')",
    "event_role_enum": "('owner', 'member')",
    "settlement_status_enum": "('pending', 'approved', 'rejected')",
    "payment_method_enum": "('cash', 'zelle', 'venmo', 'paypal', 'bank_transfer')",
}


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        if _db.engine.dialect.name == "postgresql":
            with _db.engine.connect() as conn:
                for name, values in _PG_ENUMS.items():
                    conn.execute(text(
                        "DO $$ BEGIN "
                        f"CREATE TYPE {name} AS ENUM {values}; "
                        "EXCEPTION WHEN duplicate_object THEN NULL; "
                        "END $$;"
                    ))
                conn.commit()

        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM participant_shares"))
            conn.execute(text("DELETE FROM rooms"))
            conn.execute(text("DELETE FROM event_members"))
            conn.execute(text("DELETE FROM events"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()

    notifications.set_sender(None)


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def sent_notifications():
    """Captures notifications instead of logging them."""
    sent = []
    notifications.set_sender(sent.append)
    return sent


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, username: str = "alice", email: str | None = None) -> int:
    """Inserts a user row and returns its id."""
    with app.app_context():
        user = User(username=username, email=email or f"{username}@test.com")
        _db.session.add(user)
        _db.session.commit()
        return user.id


def token_for(app, user_id: int, expires_in: timedelta = timedelta(minutes=15)) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        app.config["JWT_SECRET_KEY"],
        algorithm=app.config["JWT_ALGORITHM"],
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_room(
    client,
    token: str,
    participant_ids: list[int],
    total_amount: str = "90.00",
    split_type: str = "equal",
    custom_amounts: list[str] | None = None,
    name: str = "Dinner",
    event_id: int | None = None,
):
    """Creates a room and returns the HTTP response."""
    payload: dict = {
        "name": name,
        "total_amount": total_amount,
        "split_type": split_type,
        "participant_ids": participant_ids,
    }
    if custom_amounts is not None:
        payload["custom_amounts"] = custom_amounts
    if event_id is not None:
        payload["event_id"] = event_id

    return client.post("/api/v1/rooms", json=payload, headers=auth_headers(token))


def make_event(client, token: str, name: str = "Trip") -> dict:
    """Creates an event; the token owner becomes its owner."""
    resp = client.post("/api/v1/events", json={"name": name}, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_event failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_event_member(client, token: str, event_id: int, user_id: int, role: str = "member"):
    return client.post(
        f"/api/v1/events/{event_id}/members",
        json={"user_id": user_id, "role": role},
        headers=auth_headers(token),
    )


def submit_settlement(client, token: str, room_id: int, amount: str, method: str = "cash"):
    return client.post(
        f"/api/v1/rooms/{room_id}/settlements",
        json={"amount": amount, "method": method},
        headers=auth_headers(token),
    )


def resolve_settlement(client, token: str, settlement_id: int, approved: bool = True):
    return client.post(
        f"/api/v1/settlements/{settlement_id}/resolve",
        json={"approved": approved},
        headers=auth_headers(token),
    )


def share_of(room: dict, user_id: int) -> dict:
    """Picks one participant's share out of a serialised room."""
    return next(s for s in room["shares"] if s["user_id"] == user_id)
