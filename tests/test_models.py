"""Tests for row-to-model conversion."""

from datetime import datetime, timedelta, timezone

from backend.models import Bet, Event, LeaderboardUser, User, parse_timestamp


def test_parse_timestamp():
    assert parse_timestamp("2024-03-01T12:00:00Z") == datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-01T12:00:00").tzinfo == timezone.utc
    assert parse_timestamp(None) is None
    assert parse_timestamp("") is None


def test_event_from_row_with_embedded_options():
    event = Event.from_row({
        "id": 7,
        "title": "Nifty above 23k?",
        "total_pool": "1500.50",
        "winning_option": None,
        "bet_options": [{"id": 1, "label": "Yes", "total_bets": 1000}],
    })

    assert event.id == "7"
    assert event.category == "Other"
    assert event.status == "active"
    assert event.total_pool == 1500.5
    assert event.option("1").label == "Yes"
    assert event.option("2") is None
    assert event.winning_option is None


def test_event_is_open():
    now = datetime(2024, 3, 1, tzinfo=timezone.utc)
    event = Event(id="e", title="t", expires_at=now + timedelta(hours=1))
    assert event.is_open(now)
    assert not event.is_open(now + timedelta(hours=2))
    event.status = "closed"
    assert not event.is_open(now)
    assert Event(id="e", title="t").is_open(now)


def test_bet_from_row_defaults():
    bet = Bet.from_row({"id": "b", "event_id": "e", "option_id": "o", "amount": 50})
    assert bet.status == "active"
    assert bet.payout is None
    assert bet.placed_at is None


def test_user_from_row_nulls():
    user = User.from_row({"id": "u", "name": None, "balance": None, "tier": None})
    assert user.name == ""
    assert user.balance == 0.0
    assert user.tier == "Bronze"
    assert not user.is_admin


def test_leaderboard_user_from_row():
    entry = LeaderboardUser.from_row({"id": "u", "name": "Asha", "achievements": None,
                                      "is_verified": None, "weekly_earnings": 12.5})
    assert entry.achievements == []
    assert entry.is_verified is False
    assert entry.weekly_earnings == 12.5
