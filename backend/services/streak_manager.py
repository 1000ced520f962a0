"""
Streak window enforcement.

A user's streak is stored on the backend.  This service checks it against
the 24-hour betting window (see :mod:`backend.core.streak_rules`) on login,
on demand and every 30 minutes while a session is watched, and asks the
backend to reset it once the window has lapsed.

Nothing here raises to the caller: a failed check degrades to a neutral
status so the UI keeps working.
"""

import logging
import math
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backend.core.streak_rules import (
    STREAK_REMINDER_HOURS,
    STREAK_TIMEOUT_HOURS,
    validate_streak_status,
)
from backend.models import parse_timestamp
from backend.services.backend_client import BackendClient, BackendError, get_backend_client
from backend.services.leaderboard import log_user_activity

logger = logging.getLogger(__name__)

STREAK_CHECK_INTERVAL_MIN = int(os.getenv("STREAK_CHECK_INTERVAL_MIN", "30"))

DEFAULT_RESET_REASON = "Missed 24-hour betting window"


@dataclass
class StreakData:
    current_streak: int
    longest_streak: int
    last_bet_at: Optional[datetime]
    last_streak_check: Optional[datetime]


@dataclass
class StreakStatus:
    streak_reset: bool
    current_streak: int
    hours_remaining: float
    message: Optional[str] = None


def _client(client: Optional[BackendClient]) -> BackendClient:
    return client or get_backend_client()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Backend reads / writes
# ---------------------------------------------------------------------------

def get_user_streak_data(user_id: str, client: Optional[BackendClient] = None) -> Optional[StreakData]:
    """Stored streak counters plus the time of the user's latest bet.

    Returns ``None`` when the user row cannot be read.  A failed last-bet
    lookup is logged and treated as "no bet on record".
    """
    try:
        db = _client(client)
        user = db.select(
            "users",
            columns="current_streak, longest_streak, last_activity, created_at",
            filters=[("id", "eq", user_id)],
            single=True,
        )
    except (BackendError, ValueError) as exc:
        logger.error("Error fetching user streak data for %s: %s", user_id, exc)
        return None

    last_bet = None
    try:
        last_bet = db.select(
            "bets",
            columns="placed_at",
            filters=[("user_id", "eq", user_id)],
            order="placed_at",
            limit=1,
            maybe_single=True,
        )
    except BackendError as exc:
        logger.error("Error fetching last bet for %s: %s", user_id, exc)

    return StreakData(
        current_streak=int(user.get("current_streak") or 0),
        longest_streak=int(user.get("longest_streak") or 0),
        last_bet_at=parse_timestamp(last_bet["placed_at"]) if last_bet else None,
        last_streak_check=parse_timestamp(user.get("last_activity") or user.get("created_at")),
    )


def reset_user_streak(
    user_id: str,
    reason: str = DEFAULT_RESET_REASON,
    previous_streak: int = 0,
    client: Optional[BackendClient] = None,
) -> bool:
    """Zero the stored streak and record why.  Returns success."""
    logger.info("Resetting streak for user %s: %s", user_id, reason)
    now = _now_iso()
    try:
        _client(client).update(
            "users",
            {"current_streak": 0, "last_activity": now, "updated_at": now},
            filters=[("id", "eq", user_id)],
        )
    except (BackendError, ValueError) as exc:
        logger.error("Error resetting streak for %s: %s", user_id, exc)
        return False

    # Activity logging is best-effort and never fails the reset.
    log_user_activity(
        user_id,
        "streak_bonus",
        0,
        f"Streak reset: {reason}",
        {"reset_reason": reason, "reset_timestamp": now, "previous_streak": previous_streak},
        client=client,
    )
    return True


def update_last_bet_timestamp(user_id: str, client: Optional[BackendClient] = None) -> None:
    """Mark the user active after a bet.  Errors are logged only."""
    now = _now_iso()
    try:
        _client(client).update(
            "users",
            {"last_activity": now, "updated_at": now},
            filters=[("id", "eq", user_id)],
        )
    except (BackendError, ValueError) as exc:
        logger.error("Error updating last bet timestamp for %s: %s", user_id, exc)


# ---------------------------------------------------------------------------
# Status check
# ---------------------------------------------------------------------------

def check_and_update_streak_status(
    user_id: str,
    now: Optional[datetime] = None,
    client: Optional[BackendClient] = None,
) -> StreakStatus:
    """
    Main entry point for login / session checks.

    Resets the stored streak only when the window has lapsed *and* there
    is a streak to lose.  Adds a reminder when fewer than six hours remain.
    """
    try:
        data = get_user_streak_data(user_id, client=client)
        if data is None:
            return StreakStatus(False, 0, float(STREAK_TIMEOUT_HOURS), "Unable to fetch streak data")

        validation = validate_streak_status(data.last_bet_at, now=now)

        if validation.should_reset and data.current_streak > 0:
            hours_since = math.floor(validation.time_since_last_bet / 3600)
            reset_ok = reset_user_streak(
                user_id,
                f"No bet placed within 24 hours ({hours_since} hours since last bet)",
                previous_streak=data.current_streak,
                client=client,
            )
            if reset_ok:
                return StreakStatus(
                    streak_reset=True,
                    current_streak=0,
                    hours_remaining=float(STREAK_TIMEOUT_HOURS),
                    message=(
                        f"Your {data.current_streak}-day streak has been reset. "
                        "Start a new streak by placing a bet!"
                    ),
                )

        message = None
        if validation.hours_remaining < STREAK_REMINDER_HOURS:
            message = (
                f"Place a bet within {math.floor(validation.hours_remaining)} hours "
                "to maintain your streak!"
            )
        return StreakStatus(
            streak_reset=False,
            current_streak=data.current_streak,
            hours_remaining=validation.hours_remaining,
            message=message,
        )
    except Exception as exc:
        logger.error("Streak check failed for %s: %s", user_id, exc, exc_info=True)
        return StreakStatus(False, 0, float(STREAK_TIMEOUT_HOURS), "Error checking streak status")


# ---------------------------------------------------------------------------
# Periodic checks
# ---------------------------------------------------------------------------

def schedule_streak_checks(
    user_id: str,
    on_streak_reset: Optional[Callable[[str], None]] = None,
    scheduler: Optional[BaseScheduler] = None,
    interval_minutes: int = STREAK_CHECK_INTERVAL_MIN,
) -> Callable[[], None]:
    """
    Re-check a user's streak every ``interval_minutes``.

    ``on_streak_reset`` receives the reset message.  Returns a cleanup
    function that removes the job; calling it twice is harmless.
    """
    if scheduler is None:
        from backend.scheduler import ensure_started
        scheduler = ensure_started()

    def _check() -> None:
        result = check_and_update_streak_status(user_id)
        if result.streak_reset and on_streak_reset and result.message:
            try:
                on_streak_reset(result.message)
            except Exception as exc:
                logger.error("Streak reset callback error: %s", exc)

    job = scheduler.add_job(
        _check,
        IntervalTrigger(minutes=interval_minutes),
        id=f"streak_check_{user_id}_{uuid.uuid4().hex[:8]}",
        name=f"Streak check ({user_id})",
        replace_existing=True,
    )

    def cleanup() -> None:
        try:
            scheduler.remove_job(job.id)
        except JobLookupError as exc:
            logger.debug("Streak job %s already removed: %s", job.id, exc)

    return cleanup


# ---------------------------------------------------------------------------
# Session watches
# ---------------------------------------------------------------------------
# One periodic check per signed-in user.  A reset found by the background
# job is parked as a notice until the user's next streak read picks it up.

_watch_lock = threading.Lock()
_watches: Dict[str, Callable[[], None]] = {}
_notices: Dict[str, str] = {}


def _park_notice(user_id: str, message: str) -> None:
    with _watch_lock:
        _notices[user_id] = message


def watch_user_streak(
    user_id: str,
    scheduler: Optional[BaseScheduler] = None,
    interval_minutes: int = STREAK_CHECK_INTERVAL_MIN,
) -> bool:
    """Start periodic checks for ``user_id``.  Returns False if already watched."""
    with _watch_lock:
        if user_id in _watches:
            return False
        _watches[user_id] = schedule_streak_checks(
            user_id,
            on_streak_reset=lambda message: _park_notice(user_id, message),
            scheduler=scheduler,
            interval_minutes=interval_minutes,
        )
    logger.info("Watching streak for %s every %d min", user_id, interval_minutes)
    return True


def unwatch_user_streak(user_id: str) -> bool:
    """Stop checks for ``user_id`` and drop any unread notice.  Returns False if not watched."""
    with _watch_lock:
        cleanup = _watches.pop(user_id, None)
        _notices.pop(user_id, None)
    if cleanup is None:
        return False
    cleanup()
    return True


def unwatch_all() -> None:
    with _watch_lock:
        user_ids = list(_watches)
    for user_id in user_ids:
        unwatch_user_streak(user_id)


def is_watched(user_id: str) -> bool:
    with _watch_lock:
        return user_id in _watches


def pop_streak_notice(user_id: str) -> Optional[str]:
    """The reset message parked by the background check, at most once."""
    with _watch_lock:
        return _notices.pop(user_id, None)
