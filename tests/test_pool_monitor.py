"""Tests for the live pool monitor (backend mocked)."""

import threading
import time
from unittest.mock import MagicMock

from backend.services.backend_client import BackendError
from backend.services.pool_monitor import PoolMonitor


def _rows(yes_total=600, event_id="e1", total_pool=None):
    pool = {"status": "active", "total_pool": total_pool if total_pool is not None else yes_total + 400}
    return [
        {"id": "yes", "event_id": event_id, "label": "Yes", "odds": 1.4, "total_bets": yes_total,
         "bettors": 5, "events": pool},
        {"id": "no", "event_id": event_id, "label": "No", "odds": 2.1, "total_bets": 400,
         "bettors": 3, "events": pool},
    ]


def _monitor(*polls):
    client = MagicMock()
    client.select.side_effect = list(polls)
    return PoolMonitor(client=client), client


def test_first_poll_only_records_snapshot():
    monitor, client = _monitor(_rows())
    callback = MagicMock()
    monitor.subscribe("e1", callback)

    result = monitor.poll()

    assert result["status"] == "ok"
    assert result["events_tracked"] == 1
    assert result["events_changed"] == 0
    callback.assert_not_called()
    assert client.select.call_args[1]["filters"] == [("events.status", "eq", "active")]


def test_change_notifies_subscribers_of_that_event():
    monitor, _ = _monitor(_rows(600), _rows(750))
    cb_e1, cb_e2 = MagicMock(), MagicMock()
    monitor.subscribe("e1", cb_e1)
    monitor.subscribe("e2", cb_e2)

    monitor.poll()
    result = monitor.poll()

    assert result["events_changed"] == 1
    options = cb_e1.call_args[0][0]
    assert [o.total_bets for o in options] == [750, 400]
    cb_e2.assert_not_called()


def test_unchanged_pool_is_quiet():
    monitor, _ = _monitor(_rows(), _rows())
    callback = MagicMock()
    monitor.subscribe("e1", callback)
    monitor.poll()
    assert monitor.poll()["events_changed"] == 0
    callback.assert_not_called()


def test_unsubscribe_stops_updates():
    monitor, _ = _monitor(_rows(600), _rows(700))
    callback = MagicMock()
    sub = monitor.subscribe("e1", callback)
    monitor.poll()

    monitor.unsubscribe(sub)
    monitor.unsubscribe(sub)
    monitor.poll()

    callback.assert_not_called()
    assert monitor.subscriber_count() == 0


def test_callback_error_does_not_stop_others():
    monitor, _ = _monitor(_rows(600), _rows(700))
    broken = MagicMock(side_effect=RuntimeError("ui gone"))
    healthy = MagicMock()
    monitor.subscribe("e1", broken)
    monitor.subscribe("e1", healthy)

    monitor.poll()
    monitor.poll()

    healthy.assert_called_once()


def test_closed_events_are_pruned():
    monitor, _ = _monitor(_rows(event_id="e1") + _rows(event_id="e2"), _rows(event_id="e2"))
    monitor.poll()
    assert monitor.get_snapshot("e1") is not None

    result = monitor.poll()

    assert result["events_tracked"] == 1
    assert monitor.get_snapshot("e1") is None


def test_backend_error_reports_status():
    monitor, _ = _monitor(BackendError("select bet_options", "down"))
    result = monitor.poll()
    assert result["status"] == "error"
    assert monitor.get_status()["last_poll"] is None


def test_status_after_poll():
    monitor, _ = _monitor(_rows())
    monitor.subscribe("e1", MagicMock())
    monitor.poll()

    status = monitor.get_status()

    assert status["events_tracked"] == 1
    assert status["subscribers"] == 1
    assert status["last_poll"] is not None


def test_pool_total_change_alone_counts():
    monitor, _ = _monitor(_rows(total_pool=1000), _rows(total_pool=1200))
    callback = MagicMock()
    monitor.subscribe("e1", callback)

    monitor.poll()
    assert monitor.poll()["events_changed"] == 1

    callback.assert_called_once()
    assert monitor.get_snapshot("e1").total_pool == 1200


def test_snapshot_prices_as_event():
    monitor, client = _monitor(_rows())
    monitor.poll()

    event = monitor.get_snapshot("e1").as_event()

    assert event.id == "e1"
    assert event.total_pool == 1000
    assert [o.id for o in event.options] == ["yes", "no"]
    assert "total_pool" in client.select.call_args[1]["columns"]


class TestWaitForUpdate:

    def test_times_out_without_change_and_cleans_up(self):
        monitor, _ = _monitor(_rows())
        assert monitor.wait_for_update("e1", timeout=0.01) is None
        assert monitor.subscriber_count("e1") == 0

    def test_returns_fresh_options_when_pool_moves(self):
        monitor, _ = _monitor(_rows(600), _rows(900))
        monitor.poll()
        result = {}

        waiter = threading.Thread(
            target=lambda: result.setdefault("options", monitor.wait_for_update("e1", timeout=5))
        )
        waiter.start()
        for _ in range(500):
            if monitor.subscriber_count("e1"):
                break
            time.sleep(0.01)
        monitor.poll()
        waiter.join(timeout=5)

        assert [o.total_bets for o in result["options"]] == [900, 400]
        assert monitor.subscriber_count("e1") == 0
