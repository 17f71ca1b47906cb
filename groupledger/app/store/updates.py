"""
store/updates.py — Live-update channel between store adapters and consumers.

A store adapter publishes a LedgerSnapshot after every successful write. The
SnapshotHub stamps it with a per-group version and fans it out to every open
Subscription for that group. Consumers read snapshots from their
Subscription; none of this leaks into the pure ledger functions.

Ordering: versions are assigned and enqueued under one lock, so every
subscriber sees a group's snapshots in version order. Consumers that fall
behind call Subscription.latest(), which drains the queue and keeps only the
newest snapshot. Each subscription holds at most `maxsize` undelivered
snapshots; when full, the oldest is dropped to make room.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterator

from groupledger.app.ledger.records import ExpenseRecord, SettlementRecord

logger = logging.getLogger(__name__)

_CLOSED = object()

MAX_PENDING_SNAPSHOTS = 16


@dataclass(frozen=True)
class LedgerSnapshot:
    group_id: str
    version: int
    expenses: tuple[ExpenseRecord, ...]
    settlements: tuple[SettlementRecord, ...]
    member_ids: tuple[str, ...] = ()
    currency: str | None = None


class Subscription:
    """A message channel of LedgerSnapshots for one group."""

    def __init__(
            self,
            hub: "SnapshotHub",
            group_id: str,
            maxsize: int = MAX_PENDING_SNAPSHOTS,
    ) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1.")
        self._hub = hub
        self.group_id = group_id
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _deliver(self, snapshot: LedgerSnapshot) -> None:
        if not self.closed:
            self._offer(snapshot)

    def _offer(self, item) -> None:
        """Enqueues without blocking, evicting the oldest snapshot if full."""
        while True:
            try:
                self._queue.put_nowait(item)
                return
            except queue.Full:
                pass
            try:
                dropped = self._queue.get_nowait()
            except queue.Empty:
                continue
            if dropped is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                return
            logger.debug(
                "Dropped snapshot v%d for group %s; subscriber is behind",
                dropped.version, self.group_id,
            )

    def get(self, timeout: float | None = None) -> LedgerSnapshot | None:
        """
        Blocks for the next snapshot. Returns None on timeout or once the
        subscription is closed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            self._offer(_CLOSED)  # keep later readers unblocked
            return None
        return item

    def latest(self, timeout: float | None = None) -> LedgerSnapshot | None:
        """
        Waits for at least one snapshot, then drains everything queued and
        returns the one with the highest version.
        """
        newest = self.get(timeout=timeout)
        if newest is None:
            return None
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSED:
                self._offer(_CLOSED)
                break
            if item.version > newest.version:
                newest = item
        return newest

    def close(self) -> None:
        if self.closed:
            return
        self._closed.set()
        self._hub._unsubscribe(self)
        self._offer(_CLOSED)

    def __iter__(self) -> Iterator[LedgerSnapshot]:
        while True:
            snapshot = self.get()
            if snapshot is None:
                return
            yield snapshot

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class SnapshotHub:
    """In-process fan-out of ledger snapshots, keyed by group id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self._versions: dict[str, int] = defaultdict(int)

    def subscribe(self, group_id: str, maxsize: int = MAX_PENDING_SNAPSHOTS) -> Subscription:
        subscription = Subscription(self, group_id, maxsize=maxsize)
        with self._lock:
            self._subscribers[group_id].append(subscription)
        logger.debug("Subscribed to ledger updates for group %s", group_id)
        return subscription

    def has_subscribers(self, group_id: str) -> bool:
        with self._lock:
            return bool(self._subscribers.get(group_id))

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.group_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)

    def publish(
            self,
            group_id: str,
            expenses,
            settlements,
            member_ids=(),
            currency: str | None = None,
            only: Subscription | None = None,
    ) -> LedgerSnapshot:
        """
        Stamps the next version for the group and delivers the snapshot.
        With `only`, the snapshot goes to that subscriber alone (used to
        prime a new subscription with the current state).
        """
        with self._lock:
            self._versions[group_id] += 1
            snapshot = LedgerSnapshot(
                group_id=group_id,
                version=self._versions[group_id],
                expenses=tuple(expenses),
                settlements=tuple(settlements),
                member_ids=tuple(member_ids),
                currency=currency,
            )
            targets = [only] if only is not None else list(self._subscribers.get(group_id, []))
            for subscription in targets:
                subscription._deliver(snapshot)
        return snapshot
