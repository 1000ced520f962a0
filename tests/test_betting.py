"""Tests for events, bet validation and placement (backend mocked)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from backend.models import Bet, BetOption, Event, User
from backend.services.betting import (
    BetRejected,
    EventNotFound,
    bet_result,
    filter_events,
    get_event,
    get_events,
    matches_filters,
    place_bet,
    quote_bet,
    validate_bet,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _event_row(eid="e1", **extra):
    row = {"id": eid, "title": "Will BTC close above 70k?", "category": "Cryptocurrency",
           "status": "active", "total_pool": 1000, "participant_count": 8,
           "created_at": "2024-02-28T10:00:00Z"}
    row.update(extra)
    return row


def _option_rows(eid="e1"):
    return [
        {"id": "yes", "event_id": eid, "label": "Yes", "odds": 1.4, "total_bets": 600, "bettors": 5},
        {"id": "no", "event_id": eid, "label": "No", "odds": 2.1, "total_bets": 400, "bettors": 3},
    ]


def _event(eid="e1", status="active", title="Rain in Mumbai", category="Weather",
           created_hours_ago=1, resolved_hours_ago=None, winning_option=None):
    return Event(
        id=eid, title=title, category=category, status=status, total_pool=1000,
        options=[BetOption("yes", "Yes", total_bets=600), BetOption("no", "No", total_bets=400)],
        created_at=NOW - timedelta(hours=created_hours_ago),
        resolved_at=NOW - timedelta(hours=resolved_hours_ago) if resolved_hours_ago is not None else None,
        winning_option=winning_option,
    )


def _user(balance=5000.0, is_admin=False):
    return User(id="u1", name="Asha", balance=balance, is_admin=is_admin)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReads:

    def test_get_events_attaches_options(self):
        client = MagicMock()
        client.select.side_effect = [[_event_row("e1"), _event_row("e2")], _option_rows("e1")]

        events = get_events(status="active", client=client)

        assert [e.id for e in events] == ["e1", "e2"]
        assert [o.id for o in events[0].options] == ["yes", "no"]
        assert events[1].options == []
        first, second = client.select.call_args_list
        assert first[1]["filters"] == [("status", "eq", "active")]
        assert second[1]["filters"] == [("event_id", "in", ["e1", "e2"])]

    def test_get_events_empty_skips_options_query(self):
        client = MagicMock()
        client.select.return_value = []
        assert get_events(client=client) == []
        client.select.assert_called_once()

    def test_get_event_not_found(self):
        client = MagicMock()
        client.select.return_value = None
        with pytest.raises(EventNotFound):
            get_event("missing", client=client)

    def test_quote_bet_uses_user_limits(self):
        client = MagicMock()
        client.select.side_effect = [_event_row(), _option_rows()]

        calc = quote_bet("e1", "no", 100, _user(balance=300), client=client)

        assert calc.effective_odds == pytest.approx(1.87)
        assert calc.max_bet_amount == 300


# ---------------------------------------------------------------------------
# validate_bet
# ---------------------------------------------------------------------------

class TestValidateBet:

    def test_valid_bet(self):
        validate_bet(_event(), "yes", 100, _user(), now=NOW)

    def test_closed_event(self):
        with pytest.raises(BetRejected):
            validate_bet(_event(status="closed"), "yes", 100, _user(), now=NOW)

    def test_expired_event(self):
        event = _event()
        event.expires_at = NOW - timedelta(minutes=1)
        with pytest.raises(BetRejected):
            validate_bet(event, "yes", 100, _user(), now=NOW)

    def test_unknown_option(self):
        with pytest.raises(BetRejected):
            validate_bet(_event(), "maybe", 100, _user(), now=NOW)

    @pytest.mark.parametrize("amount", [0, -10, float("nan")])
    def test_bad_amount(self, amount):
        with pytest.raises(BetRejected):
            validate_bet(_event(), "yes", amount, _user(), now=NOW)

    def test_insufficient_balance(self):
        with pytest.raises(BetRejected, match="Insufficient balance"):
            validate_bet(_event(), "yes", 600, _user(balance=500), now=NOW)

    def test_over_max_bet(self):
        with pytest.raises(BetRejected, match="maximum"):
            validate_bet(_event(), "yes", 10_001, _user(balance=50_000), now=NOW)

    def test_admin_bypasses_limits(self):
        validate_bet(_event(), "yes", 1_000_000, _user(balance=0, is_admin=True), now=NOW)


# ---------------------------------------------------------------------------
# place_bet
# ---------------------------------------------------------------------------

class TestPlaceBet:

    def _client(self, rpc_result):
        client = MagicMock()
        client.select.side_effect = [_event_row(), _option_rows()]
        client.rpc.return_value = rpc_result
        return client

    def test_submits_rpc_and_refreshes_streak_window(self):
        client = self._client([{
            "id": "b1", "user_id": "u1", "event_id": "e1", "option_id": "no",
            "amount": 250, "status": "active", "placed_at": "2024-03-01T12:00:00Z",
        }])

        bet = place_bet(_user(), "e1", "no", 250, client=client)

        assert bet.id == "b1"
        assert bet.amount == 250
        client.rpc.assert_called_once_with("place_bet", {
            "user_uuid": "u1", "event_uuid": "e1", "option_uuid": "no", "bet_amount": 250,
        })
        assert client.update.call_args[0][0] == "users"

    def test_scalar_rpc_result(self):
        bet = place_bet(_user(), "e1", "yes", 100, client=self._client("b-42"))
        assert bet.id == "b-42"
        assert bet.option_id == "yes"
        assert bet.status == "active"

    def test_rejected_bet_is_not_sent(self):
        client = self._client(None)
        with pytest.raises(BetRejected):
            place_bet(_user(balance=50), "e1", "yes", 100, client=client)
        client.rpc.assert_not_called()


# ---------------------------------------------------------------------------
# Filtering and results
# ---------------------------------------------------------------------------

class TestFilterEvents:

    def test_matches_filters(self):
        event = _event(title="Rain in Mumbai", category="Weather")
        assert matches_filters(event)
        assert matches_filters(event, search="mumbai")
        assert matches_filters(event, category="Weather")
        assert not matches_filters(event, search="delhi")
        assert not matches_filters(event, category="Sports")

    def test_active_tab_puts_user_bets_first(self):
        events = [
            _event("new", created_hours_ago=1),
            _event("mine", created_hours_ago=10),
            _event("old", created_hours_ago=20),
        ]
        active, _ = filter_events(events, user_bet_event_ids={"mine"})
        assert [e.id for e in active] == ["mine", "new", "old"]

    def test_completed_tab_only_user_events(self):
        events = [
            _event("r1", status="resolved", resolved_hours_ago=5),
            _event("r2", status="resolved", resolved_hours_ago=1),
            _event("r3", status="resolved", resolved_hours_ago=2),
        ]
        _, completed = filter_events(events, user_bet_event_ids={"r1", "r2"})
        assert [e.id for e in completed] == ["r2", "r1"]

    def test_admin_sees_all_completed(self):
        events = [_event("r1", status="resolved", resolved_hours_ago=3),
                  _event("r2", status="resolved", resolved_hours_ago=1)]
        _, completed = filter_events(events, is_admin=True)
        assert [e.id for e in completed] == ["r2", "r1"]

    def test_closed_events_in_neither_tab(self):
        active, completed = filter_events([_event("c1", status="closed")], is_admin=True)
        assert active == [] and completed == []

    def test_search_applies_to_both_tabs(self):
        events = [_event("a", title="Rain in Mumbai"),
                  _event("r", status="resolved", title="Sensex above 75k", resolved_hours_ago=1)]
        active, completed = filter_events(events, search="sensex", is_admin=True)
        assert active == []
        assert [e.id for e in completed] == ["r"]


@pytest.mark.parametrize("status, winning, option, expected", [
    ("resolved", "yes", "yes", "won"),
    ("resolved", "yes", "no",  "lost"),
    ("active",   None,  "yes", "active"),
])
def test_bet_result(status, winning, option, expected):
    bet = Bet(id="b1", user_id="u1", event_id="e1", option_id=option, amount=100)
    assert bet_result(bet, _event(status=status, winning_option=winning)) == expected
