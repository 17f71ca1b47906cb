"""
services/live_balances.py — Balances that follow the store's live updates.

BalanceFeed wraps a store Subscription. Each time a consumer asks for the
current view it drains the queued snapshots, keeps only the newest one and
recomputes balances and simplified debts for it. Results are memoised by
snapshot version, so asking twice for the same version costs nothing and
always returns the same answer.

    with store.subscribe(group_id) as subscription:
        feed = BalanceFeed(subscription)
        view = feed.poll(timeout=1.0)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from groupledger.app.ledger.accumulator import accumulate
from groupledger.app.ledger.records import RejectedRecord, SimplifiedDebt
from groupledger.app.ledger.simplifier import simplify
from groupledger.app.store.updates import LedgerSnapshot, Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BalanceView:
    group_id: str
    version: int
    balances: dict[str, int] = field(hash=False)
    simplified_debts: tuple[SimplifiedDebt, ...] = ()
    rejected: tuple[RejectedRecord, ...] = ()


def view_for_snapshot(snapshot: LedgerSnapshot) -> BalanceView:
    """Pure recomputation of one snapshot."""
    result = accumulate(
        snapshot.expenses,
        snapshot.settlements,
        member_ids=snapshot.member_ids,
        currency=snapshot.currency,
    )
    current = set(snapshot.member_ids)
    balances = {
        member_id: amount
        for member_id, amount in result.balances.items()
        if amount != 0 or member_id in current
    }
    return BalanceView(
        group_id=snapshot.group_id,
        version=snapshot.version,
        balances=balances,
        simplified_debts=tuple(simplify(balances)),
        rejected=result.rejected,
    )


class BalanceFeed:

    def __init__(self, subscription: Subscription) -> None:
        self.subscription = subscription
        self._lock = threading.Lock()
        self._current: BalanceView | None = None

    @property
    def current(self) -> BalanceView | None:
        """The last view computed, without waiting for anything new."""
        return self._current

    def compute(self, snapshot: LedgerSnapshot) -> BalanceView:
        """Returns the view for `snapshot`, reusing it if already computed."""
        with self._lock:
            if self._current is not None and self._current.version >= snapshot.version:
                # Older or identical snapshot; the newest view wins.
                return self._current
            view = view_for_snapshot(snapshot)
            self._current = view
        logger.debug(
            "Recomputed balances for group %s at version %d (%d transfers)",
            view.group_id, view.version, len(view.simplified_debts),
        )
        return view

    def poll(self, timeout: float | None = None) -> BalanceView | None:
        """
        Waits up to `timeout` for new snapshots and returns the view for the
        newest. Returns the previous view when nothing arrived, or None if
        there has never been one.
        """
        snapshot = self.subscription.latest(timeout=timeout)
        if snapshot is None:
            return self._current
        return self.compute(snapshot)

    def run(
            self,
            callback: Callable[[BalanceView], None],
            stop_event: threading.Event | None = None,
            poll_interval: float = 0.5,
    ) -> None:
        """
        Calls `callback` with every new view until `stop_event` is set or the
        subscription is closed.
        """
        stop_event = stop_event or threading.Event()
        last_version = None
        while not stop_event.is_set() and not self.subscription.closed:
            view = self.poll(timeout=poll_interval)
            if view is None or view.version == last_version:
                continue
            last_version = view.version
            callback(view)

    def close(self) -> None:
        self.subscription.close()
