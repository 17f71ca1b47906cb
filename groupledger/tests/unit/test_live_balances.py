"""
tests/unit/test_live_balances.py — BalanceFeed over the in-memory store.

What this file proves:
  - A fresh feed sees the current state straight away
  - Writes show up as a new view with a higher version
  - A view is computed once per version and reused afterwards
  - Older snapshots never replace a newer view
  - run() delivers each new view once and stops on its event
"""

from __future__ import annotations

import threading

import pytest

from groupledger.app.ledger.records import ExpenseRecord, SettlementRecord, SettlementStatus, SimplifiedDebt
from groupledger.app.services.live_balances import BalanceFeed, view_for_snapshot
from groupledger.app.store.memory import InMemoryLedgerStore, InMemoryMembershipDirectory
from groupledger.app.store.updates import LedgerSnapshot, SnapshotHub


def _expense(eid="e1") -> ExpenseRecord:
    return ExpenseRecord(
        id=eid,
        group_id="g1",
        payer_id="A",
        amount=300,
        currency="INR",
        splits={"A": 100, "B": 100, "C": 100},
    )


@pytest.fixture
def store():
    directory = InMemoryMembershipDirectory()
    directory.add_group("g1")
    for member in ("A", "B", "C"):
        directory.add_member("g1", member)
    s = InMemoryLedgerStore(hub=SnapshotHub(), directory=directory)
    s.add_expense(_expense())
    return s


def test_feed_is_primed_with_current_balances(store):
    with store.subscribe("g1") as subscription:
        view = BalanceFeed(subscription).poll(timeout=1)

    assert view.balances == {"A": 200, "B": -100, "C": -100}
    assert view.simplified_debts == (
        SimplifiedDebt("B", "A", 100),
        SimplifiedDebt("C", "A", 100),
    )


def test_confirmed_settlement_produces_new_view(store):
    feed = BalanceFeed(store.subscribe("g1"))
    first = feed.poll(timeout=1)

    s = store.create_settlement(SettlementRecord(
        id=None, group_id="g1", from_member_id="B", to_member_id="A", amount=100, currency="INR",
    ))
    store.update_settlement_status(s.id, SettlementStatus.PENDING, SettlementStatus.CONFIRMED)
    second = feed.poll(timeout=1)
    feed.close()

    assert second.version > first.version
    assert second.balances == {"A": 100, "B": 0, "C": -100}
    assert second.simplified_debts == (SimplifiedDebt("C", "A", 100),)


def test_poll_without_news_returns_previous_view(store):
    feed = BalanceFeed(store.subscribe("g1"))
    first = feed.poll(timeout=1)
    assert feed.poll(timeout=0.01) is first
    assert feed.current is first
    feed.close()


def test_same_version_is_not_recomputed(monkeypatch):
    from groupledger.app.services import live_balances

    calls = []
    real = live_balances.view_for_snapshot

    def counting(snapshot):
        calls.append(snapshot.version)
        return real(snapshot)

    monkeypatch.setattr(live_balances, "view_for_snapshot", counting)

    feed = BalanceFeed(subscription=None)
    snapshot = LedgerSnapshot("g1", 3, (_expense(),), (), ("A", "B", "C"), "INR")
    older = LedgerSnapshot("g1", 2, (), (), ("A", "B", "C"), "INR")

    first = feed.compute(snapshot)
    assert feed.compute(snapshot) is first
    assert feed.compute(older) is first
    assert calls == [3]


def test_view_drops_settled_former_member():
    snapshot = LedgerSnapshot(
        group_id="g1",
        version=1,
        expenses=(ExpenseRecord(
            id="e1", group_id="g1", payer_id="A", amount=200, currency="INR",
            splits={"A": 100, "B": 100},
        ),),
        settlements=(),
        member_ids=("A", "B"),
        currency="INR",
    )
    assert set(view_for_snapshot(snapshot).balances) == {"A", "B"}

    no_longer_current = LedgerSnapshot(
        group_id="g1", version=2, expenses=(), settlements=(), member_ids=("A",), currency="INR",
    )
    assert view_for_snapshot(no_longer_current).balances == {"A": 0}


def test_run_delivers_each_version_once(store):
    feed = BalanceFeed(store.subscribe("g1"))
    stop = threading.Event()
    seen = []

    def on_view(view):
        seen.append(view.version)
        if len(seen) == 1:
            store.add_expense(_expense("e2"))
        else:
            stop.set()

    worker = threading.Thread(target=feed.run, args=(on_view, stop), kwargs={"poll_interval": 0.05})
    worker.start()
    worker.join(timeout=5)
    feed.close()

    assert not worker.is_alive()
    assert len(seen) == 2
    assert seen[0] < seen[1]


def test_run_exits_when_subscription_closes(store):
    feed = BalanceFeed(store.subscribe("g1"))
    worker = threading.Thread(target=feed.run, args=(lambda view: None,), kwargs={"poll_interval": 0.05})
    worker.start()
    feed.close()
    worker.join(timeout=5)
    assert not worker.is_alive()
