"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session with create_app("testing"). The
    testing config points at TEST_DATABASE_URL, or an in-memory SQLite
    database when it is unset.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Every settlement event the app emits is captured in `notifications`.

Identity is external: tokens are minted here with the testing secret, and
groups and memberships are inserted directly, since the ledger service has
no endpoints for them.

Helper functions (not fixtures) are provided for common operations:
  - token_for(member_id)               → signed bearer token
  - headers_for(member_id)             → auth headers for that member
  - auth_headers(token)                → {"Authorization": "Bearer <token>"}
  - seed_group(app, group_id, members) → inserts a group and its memberships
  - seed_expense(app, ...)             → records an expense through the store
  - propose(client, payer_id, ...)     → HTTP response
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from groupledger.app import create_app
from groupledger.app.extensions import db as _db
from groupledger.app.extensions import snapshot_hub
from groupledger.app.ledger.records import ExpenseRecord
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.store.sql import SqlLedgerStore, SqlMembershipDirectory

TEST_SECRET = "test-secret-key"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

_events: list = []


@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing", notifier=_events.append)

    with flask_app.app_context():
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
    _events.clear()
    yield

    with app.app_context():
        _db.session.rollback()
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM splits"))
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.commit()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def notifications():
    """SettlementEvents emitted during the current test."""
    return _events


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(member_id: str, expires_in: timedelta = timedelta(minutes=15)) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": member_id, "iat": now, "exp": now + expires_in},
        TEST_SECRET,
        algorithm="HS256",
    )


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def headers_for(member_id: str) -> dict:
    return auth_headers(token_for(member_id))


def seed_group(
    app,
    group_id: str = "g1",
    members: tuple[str, ...] = ("alice", "bob", "carol"),
    currency: str = "INR",
    former: tuple[str, ...] = (),
) -> None:
    """Inserts a group with current members and, optionally, former ones."""
    with app.app_context():
        _db.session.add(Group(id=group_id, name=f"Group {group_id}", currency=currency))
        for member_id in members:
            _db.session.add(Membership(
                member_id=member_id,
                group_id=group_id,
                display_name=member_id.title(),
            ))
        for member_id in former:
            _db.session.add(Membership(
                member_id=member_id,
                group_id=group_id,
                display_name=member_id.title(),
                left_at=datetime.now(timezone.utc),
            ))
        _db.session.commit()


def seed_expense(
    app,
    expense_id: str,
    payer_id: str,
    splits: dict[str, int],
    group_id: str = "g1",
    currency: str = "INR",
) -> None:
    with app.app_context():
        store = SqlLedgerStore(
            _db.session,
            hub=snapshot_hub,
            directory=SqlMembershipDirectory(_db.session),
        )
        store.add_expense(ExpenseRecord(
            id=expense_id,
            group_id=group_id,
            payer_id=payer_id,
            amount=sum(splits.values()),
            currency=currency,
            splits=splits,
        ))


def propose(client, payer_id: str, to_member_id: str, amount, group_id: str = "g1", **extra):
    """POSTs a settlement from `payer_id` and returns the HTTP response."""
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"to_member_id": to_member_id, "amount": amount, **extra},
        headers=headers_for(payer_id),
    )
