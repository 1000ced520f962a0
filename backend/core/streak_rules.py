"""Streak window rules.

A streak survives as long as the user places a bet at least once every
:data:`STREAK_TIMEOUT_HOURS`.  The backend owns the stored streak; these
helpers decide *when* the service should ask it to reset and how urgently
the user should be warned.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Final, Iterable, Optional

STREAK_TIMEOUT_HOURS: Final[int] = 24

#: Below this many hours the streak status carries a reminder message.
STREAK_REMINDER_HOURS: Final[int] = 6

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class StreakValidation:
    should_reset: bool
    time_since_last_bet: float  # seconds
    hours_remaining: float
    is_expired: bool


@dataclass(frozen=True)
class StreakWarning:
    show_warning: bool
    urgency_level: str  # "low" | "medium" | "high"
    message: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_streak_status(
    last_bet_at: Optional[datetime],
    now: Optional[datetime] = None,
) -> StreakValidation:
    """Check the 24-hour rule against the most recent bet.

    With no bet on record nothing can expire and the full window remains.
    The streak expires only once strictly more than 24 hours have passed.
    """
    if last_bet_at is None:
        return StreakValidation(
            should_reset=False,
            time_since_last_bet=0.0,
            hours_remaining=float(STREAK_TIMEOUT_HOURS),
            is_expired=False,
        )

    now = now or _utcnow()
    if last_bet_at.tzinfo is None:
        last_bet_at = last_bet_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    elapsed = (now - last_bet_at).total_seconds()
    hours_remaining = max(0.0, STREAK_TIMEOUT_HOURS - elapsed / 3600.0)
    expired = elapsed > STREAK_TIMEOUT_HOURS * 3600

    return StreakValidation(
        should_reset=expired,
        time_since_last_bet=elapsed,
        hours_remaining=hours_remaining,
        is_expired=expired,
    )


def get_streak_warning_status(hours_remaining: float) -> StreakWarning:
    """Map the time left in the window to a warning level."""
    hours = math.floor(hours_remaining)
    if hours_remaining <= 2:
        return StreakWarning(True, "high", f"Only {hours} hours left to maintain your streak!")
    if hours_remaining <= 6:
        return StreakWarning(True, "medium", f"{hours} hours remaining to keep your streak alive")
    if hours_remaining <= 12:
        return StreakWarning(True, "low", f"{hours} hours left in your streak window")
    return StreakWarning(False, "low", "")


def winning_streak(bets: Iterable) -> int:
    """Consecutive wins counting back from the latest resolved bet.

    ``bets`` may contain active bets; they are ignored.
    """
    resolved = [b for b in bets if b.status in ("won", "lost")]
    resolved.sort(key=lambda b: b.placed_at or _EPOCH, reverse=True)
    streak = 0
    for bet in resolved:
        if bet.status != "won":
            break
        streak += 1
    return streak
