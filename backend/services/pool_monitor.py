"""
Polling monitor for live pool changes.

Event cards show "live odds".  Rather than holding a socket per card, the
service polls the options of every active event at a fixed interval and
notifies subscribers when an option's backing or stored odds changed.

Design:
    - Runs as an APScheduler interval job (default: every 30 seconds).
    - Keeps the last pool snapshot per event; ``GET /api/events/{id}/odds``
      prices from it instead of hitting the backend per card.
    - Subscribers register per event and get the full, fresh option list.
      ``wait_for_update`` wraps this for the long-poll endpoint.
    - Unsubscribing (request teardown) drops the callback immediately.
"""

import itertools
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from backend.models import BetOption, Event
from backend.services.backend_client import BackendClient, BackendError, get_backend_client

logger = logging.getLogger(__name__)

POOL_MONITOR_INTERVAL_SEC = int(os.getenv("POOL_MONITOR_INTERVAL_SEC", "30"))

OptionsCallback = Callable[[List[BetOption]], None]


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class PoolSnapshot:
    """Point-in-time capture of an event's pool and options."""

    event_id: str
    total_pool: float
    options: List[BetOption]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def signature(self) -> Tuple:
        """What a change is measured on: the pool plus each option's backing and odds."""
        return (
            self.total_pool,
            tuple((o.id, o.total_bets, o.bettors, o.odds) for o in self.options),
        )

    def as_event(self) -> Event:
        """Minimal :class:`Event` for pricing with :mod:`backend.core.parimutuel`."""
        return Event(
            id=self.event_id,
            title="",
            total_pool=self.total_pool,
            options=list(self.options),
        )


@dataclass(frozen=True)
class Subscription:
    """Handle returned by :meth:`PoolMonitor.subscribe`."""

    id: int
    event_id: str


def _pool_total(row: dict) -> float:
    embedded = row.get("events") or {}
    try:
        return float(embedded.get("total_pool") or 0)
    except (TypeError, ValueError):
        return 0.0


# ---------------------------------------------------------------------------
# Core monitor
# ---------------------------------------------------------------------------

class PoolMonitor:
    """
    Polls active events and pushes option updates to subscribers.

    Usage::

        monitor = get_pool_monitor()
        sub = monitor.subscribe(event_id, on_update)
        monitor.poll()           # called from APScheduler
        monitor.unsubscribe(sub)

    Subscriptions come from request threads while ``poll`` runs on the
    scheduler thread, so shared state is guarded by one lock.  Callbacks
    run outside it.
    """

    def __init__(self, client: Optional[BackendClient] = None):
        self._client = client
        self._lock = threading.Lock()
        self._snapshots: Dict[str, PoolSnapshot] = {}
        self._subscribers: Dict[str, Dict[int, OptionsCallback]] = {}
        self._ids = itertools.count(1)
        self._last_poll: Optional[datetime] = None

    @property
    def client(self) -> BackendClient:
        if self._client is None:
            self._client = get_backend_client()
        return self._client

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, event_id: str, callback: OptionsCallback) -> Subscription:
        with self._lock:
            sub = Subscription(id=next(self._ids), event_id=event_id)
            self._subscribers.setdefault(event_id, {})[sub.id] = callback
        logger.debug("Subscribed %d to event %s", sub.id, event_id)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a callback; unknown or repeated subscriptions are ignored."""
        with self._lock:
            callbacks = self._subscribers.get(subscription.event_id)
            if not callbacks:
                return
            callbacks.pop(subscription.id, None)
            if not callbacks:
                del self._subscribers[subscription.event_id]

    def subscriber_count(self, event_id: Optional[str] = None) -> int:
        with self._lock:
            if event_id is not None:
                return len(self._subscribers.get(event_id, {}))
            return sum(len(cbs) for cbs in self._subscribers.values())

    def wait_for_update(self, event_id: str, timeout: float) -> Optional[List[BetOption]]:
        """
        Block until the next change to ``event_id`` or ``timeout`` seconds.

        Returns the fresh options, or ``None`` on timeout.  The temporary
        subscription is always removed.
        """
        fired = threading.Event()
        received: List[List[BetOption]] = []

        def _on_update(options: List[BetOption]) -> None:
            received.append(options)
            fired.set()

        sub = self.subscribe(event_id, _on_update)
        try:
            fired.wait(timeout)
        finally:
            self.unsubscribe(sub)
        return received[-1] if received else None

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def poll(self) -> Dict:
        """
        Fetch options for all active events, detect changes, fire callbacks.

        Returns a summary dict for logging / the admin status endpoint.
        """
        now = datetime.now(timezone.utc)
        try:
            rows = self.client.select(
                "bet_options",
                columns="id, event_id, label, odds, total_bets, bettors, events!inner(status, total_pool)",
                filters=[("events.status", "eq", "active")],
            )
        except BackendError as exc:
            logger.error("Pool monitor poll failed: %s", exc)
            return {"status": "error", "error": str(exc)}

        options_by_event: Dict[str, List[BetOption]] = {}
        pools: Dict[str, float] = {}
        for row in rows:
            event_id = str(row["event_id"])
            options_by_event.setdefault(event_id, []).append(BetOption.from_row(row))
            pools.setdefault(event_id, _pool_total(row))

        changed: List[PoolSnapshot] = []
        with self._lock:
            for event_id, options in options_by_event.items():
                snap = PoolSnapshot(event_id, pools[event_id], options, timestamp=now)
                previous = self._snapshots.get(event_id)
                self._snapshots[event_id] = snap
                if previous is not None and previous.signature() != snap.signature():
                    changed.append(snap)

            # Events that closed since the last poll are no longer tracked.
            for event_id in [eid for eid in self._snapshots if eid not in options_by_event]:
                del self._snapshots[event_id]

            self._last_poll = now
            events_tracked = len(self._snapshots)

        for snap in changed:
            self._notify(snap.event_id, snap.options)

        result = {
            "status": "ok",
            "events_tracked": events_tracked,
            "events_changed": len(changed),
            "subscribers": self.subscriber_count(),
            "timestamp": now.isoformat(),
        }
        logger.info(
            "Pool monitor: %d events, %d changed, %d subscribers",
            result["events_tracked"], result["events_changed"], result["subscribers"],
        )
        return result

    def _notify(self, event_id: str, options: List[BetOption]) -> None:
        # Copy: a callback may unsubscribe itself.
        with self._lock:
            callbacks = list(self._subscribers.get(event_id, {}).values())
        for callback in callbacks:
            try:
                callback(list(options))
            except Exception as exc:
                logger.error("Pool monitor callback error for event %s: %s", event_id, exc)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_snapshot(self, event_id: str) -> Optional[PoolSnapshot]:
        with self._lock:
            return self._snapshots.get(event_id)

    def get_status(self) -> Dict:
        """Return monitor status for the admin endpoint."""
        with self._lock:
            events_tracked = len(self._snapshots)
            last_poll = self._last_poll
        return {
            "active": True,
            "events_tracked": events_tracked,
            "subscribers": self.subscriber_count(),
            "last_poll": last_poll.isoformat() if last_poll else None,
            "interval_sec": POOL_MONITOR_INTERVAL_SEC,
        }


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_pool_monitor: Optional[PoolMonitor] = None


def get_pool_monitor() -> PoolMonitor:
    global _pool_monitor
    if _pool_monitor is None:
        _pool_monitor = PoolMonitor()
    return _pool_monitor
