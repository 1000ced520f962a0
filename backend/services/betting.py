"""
Events and bet placement.

Reads events, options and bets from the backend, prices quotes with
:mod:`backend.core.parimutuel` and submits bets through the ``place_bet``
stored procedure.  Pool accounting and settlement happen on the backend;
this module only validates a bet before sending it.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from backend.core.parimutuel import (
    BetCalculation,
    calculate_bet_returns,
    format_currency,
    max_bet_for,
)
from backend.models import Bet, BetOption, Event, User
from backend.services.backend_client import BackendClient, get_backend_client
from backend.services.streak_manager import update_last_bet_timestamp

logger = logging.getLogger(__name__)

EVENT_CATEGORIES = [
    "All",
    "Weather",
    "Cryptocurrency",
    "Sports",
    "Technology",
    "Finance",
    "Politics",
    "Entertainment",
]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class EventNotFound(LookupError):
    pass


class BetRejected(ValueError):
    """The bet failed client-side validation and was not sent."""


def _client(client: Optional[BackendClient]) -> BackendClient:
    return client or get_backend_client()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _options_by_event(db: BackendClient, event_ids: List[str]) -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {eid: [] for eid in event_ids}
    if not event_ids:
        return grouped
    rows = db.select(
        "bet_options",
        filters=[("event_id", "in", event_ids)],
        order="created_at",
        ascending=True,
    )
    for row in rows:
        grouped.setdefault(str(row["event_id"]), []).append(row)
    return grouped


def get_events(status: Optional[str] = None, client: Optional[BackendClient] = None) -> List[Event]:
    """All events (optionally one status), newest first, with options."""
    db = _client(client)
    filters = [("status", "eq", status)] if status else None
    rows = db.select("events", filters=filters, order="created_at")
    options = _options_by_event(db, [str(r["id"]) for r in rows])
    events = [Event.from_row(r, options.get(str(r["id"]), [])) for r in rows]
    logger.info("Loaded %d events (status=%s)", len(events), status or "any")
    return events


def get_event(event_id: str, client: Optional[BackendClient] = None) -> Event:
    db = _client(client)
    row = db.select("events", filters=[("id", "eq", event_id)], maybe_single=True)
    if row is None:
        raise EventNotFound(f"Event {event_id} not found")
    options = _options_by_event(db, [str(row["id"])])
    return Event.from_row(row, options[str(row["id"])])


def get_real_time_odds(event_id: str, client: Optional[BackendClient] = None) -> List[BetOption]:
    """Fresh option totals and stored odds for one event."""
    rows = _client(client).select(
        "bet_options",
        filters=[("event_id", "eq", event_id)],
        order="created_at",
        ascending=True,
    )
    return [BetOption.from_row(r) for r in rows]


def get_user_bets(user_id: str, limit: int = 100, client: Optional[BackendClient] = None) -> List[Bet]:
    rows = _client(client).select(
        "bets",
        filters=[("user_id", "eq", user_id)],
        order="placed_at",
        limit=limit,
    )
    return [Bet.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Quotes and placement
# ---------------------------------------------------------------------------

def quote_bet(
    event_id: str,
    option_id: str,
    amount: float,
    user: User,
    client: Optional[BackendClient] = None,
) -> BetCalculation:
    """Price a bet for ``user`` against the event's live pool."""
    event = get_event(event_id, client=client)
    return calculate_bet_returns(
        event, option_id, amount, user.is_admin, user_balance=user.balance
    )


def validate_bet(event: Event, option_id: str, amount: float, user: User,
                 now: Optional[datetime] = None) -> None:
    """Raise :class:`BetRejected` if the bet must not be sent."""
    if not event.is_open(now):
        raise BetRejected(f"Event {event.id} is not open for betting")
    if event.option(option_id) is None:
        raise BetRejected(f"Option {option_id} is not part of event {event.id}")
    if not math.isfinite(amount) or amount <= 0:
        raise BetRejected("Bet amount must be positive")
    if user.is_admin:
        return
    if amount > user.balance:
        raise BetRejected(
            f"Insufficient balance: {format_currency(amount)} requested, "
            f"{format_currency(user.balance)} available"
        )
    limit = max_bet_for(False, user.balance)
    if amount > limit:
        raise BetRejected(f"Bet amount exceeds maximum of {format_currency(limit)}")


def place_bet(
    user: User,
    event_id: str,
    option_id: str,
    amount: float,
    client: Optional[BackendClient] = None,
) -> Bet:
    """
    Validate and submit a bet.

    The ``place_bet`` procedure debits the balance and updates the pool
    atomically on the backend.  The streak window is refreshed afterwards.
    """
    db = _client(client)
    event = get_event(event_id, client=db)
    validate_bet(event, option_id, amount, user)

    result = db.rpc(
        "place_bet",
        {
            "user_uuid": user.id,
            "event_uuid": event_id,
            "option_uuid": option_id,
            "bet_amount": amount,
        },
    )
    row = result[0] if isinstance(result, list) and result else result
    if not isinstance(row, dict):
        row = {
            "id": str(row) if row else "",
            "user_id": user.id,
            "event_id": event_id,
            "option_id": option_id,
            "amount": amount,
            "status": "active",
            "placed_at": datetime.now(timezone.utc).isoformat(),
        }
    bet = Bet.from_row(row)
    logger.info(
        "Bet placed: user=%s event=%s option=%s amount=%.2f",
        user.id, event_id, option_id, amount,
    )

    update_last_bet_timestamp(user.id, client=db)
    return bet


# ---------------------------------------------------------------------------
# Presentation helpers (pure)
# ---------------------------------------------------------------------------

def matches_filters(event: Event, search: str = "", category: str = "All") -> bool:
    """Case-insensitive title search plus category (``All`` matches any)."""
    if search and search.lower() not in event.title.lower():
        return False
    return category in ("", "All") or event.category == category


def filter_events(
    events: Iterable[Event],
    search: str = "",
    category: str = "All",
    user_bet_event_ids: Iterable[str] = (),
    is_admin: bool = False,
) -> Tuple[List[Event], List[Event]]:
    """
    Split events into the active and completed tabs.

    Active: events the user has bet on first, then newest first.
    Completed: resolved events, most recently resolved first; non-admins
    only see events they bet on.
    """
    bet_ids = set(user_bet_event_ids)
    events = list(events)

    active = [e for e in events if e.status == "active" and matches_filters(e, search, category)]
    active.sort(key=lambda e: (e.id in bet_ids, e.created_at or _EPOCH), reverse=True)

    completed = [
        e for e in events
        if e.status == "resolved"
        and matches_filters(e, search, category)
        and (is_admin or e.id in bet_ids)
    ]
    completed.sort(key=lambda e: e.resolved_at or _EPOCH, reverse=True)

    return active, completed


def bet_result(bet: Bet, event: Event) -> str:
    """``won`` / ``lost`` from the winning option once resolved, else the stored status."""
    if event.status == "resolved" and event.winning_option:
        return "won" if bet.option_id == event.winning_option else "lost"
    return bet.status
