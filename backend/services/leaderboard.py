"""
Leaderboard rankings, points and user activity.

Ranks, points and streak counters are computed by stored procedures on the
backend; this module reads the results and triggers recomputation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from backend.models import LeaderboardUser, UserActivity
from backend.services.backend_client import BackendClient, BackendError, get_backend_client

logger = logging.getLogger(__name__)

LEADERBOARD_SORT_FIELDS = (
    "total_winnings",
    "weekly_earnings",
    "monthly_earnings",
    "current_streak",
    "total_points",
)

# Columns read from ``users`` when the leaderboard view is unavailable.
_USER_FALLBACK_COLUMNS = """
    id, name, total_points, rank_position, tier, current_streak,
    longest_streak, total_winnings, total_bets, balance, is_verified,
    achievements, created_at
"""

# Period earnings only exist on the view; the users table has no such columns.
_VIEW_ONLY_SORT_FIELDS = {"weekly_earnings", "monthly_earnings"}


@dataclass
class UserRank:
    rank: int
    total_users: int
    percentile: float


def _client(client: Optional[BackendClient]) -> BackendClient:
    return client or get_backend_client()


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_leaderboard(
    limit: int = 100,
    offset: int = 0,
    sort_by: str = "total_winnings",
    client: Optional[BackendClient] = None,
) -> List[LeaderboardUser]:
    """
    One page of the leaderboard, highest ``sort_by`` first.

    Reads the materialised ``leaderboard_view``; if that fails, falls back
    to the ``users`` table with zeroed period earnings.  Raises
    :class:`BackendError` only when both sources fail.
    """
    if sort_by not in LEADERBOARD_SORT_FIELDS:
        raise ValueError(f"Cannot sort leaderboard by {sort_by!r}")

    db = _client(client)
    try:
        rows = db.select(
            "leaderboard_view", order=sort_by, limit=limit, offset=offset,
        )
        return [LeaderboardUser.from_row(r) for r in rows]
    except BackendError as exc:
        logger.warning("Leaderboard view failed, falling back to users table: %s", exc)

    fallback_sort = "total_winnings" if sort_by in _VIEW_ONLY_SORT_FIELDS else sort_by
    rows = db.select(
        "users",
        columns=_USER_FALLBACK_COLUMNS,
        order=fallback_sort,
        limit=limit,
        offset=offset,
    )
    return [
        LeaderboardUser.from_row({**r, "weekly_earnings": 0, "monthly_earnings": 0})
        for r in rows
    ]


def _period_leaderboard(
    column: str, limit: int, offset: int, client: Optional[BackendClient]
) -> List[LeaderboardUser]:
    rows = _client(client).select("leaderboard_view", order=column, limit=limit, offset=offset)
    return [LeaderboardUser.from_row(r) for r in rows]


def get_weekly_leaderboard(
    limit: int = 50, offset: int = 0, client: Optional[BackendClient] = None
) -> List[LeaderboardUser]:
    return _period_leaderboard("weekly_earnings", limit, offset, client)


def get_monthly_leaderboard(
    limit: int = 50, offset: int = 0, client: Optional[BackendClient] = None
) -> List[LeaderboardUser]:
    return _period_leaderboard("monthly_earnings", limit, offset, client)


def get_user_rank(user_id: str, client: Optional[BackendClient] = None) -> UserRank:
    """
    Rank, ranked-user count and percentile for one user.

    Only users with points count towards the total (minimum 1, so a lone
    user is not divided by zero).
    """
    db = _client(client)
    user = db.select(
        "users",
        columns="rank_position, total_points",
        filters=[("id", "eq", user_id)],
        single=True,
    )
    total_users = db.count("users", filters=[("total_points", "gt", 0)]) or 1
    rank = int(user.get("rank_position") or 0)
    percentile = (total_users - rank) / total_users * 100 if total_users > 0 else 0.0

    return UserRank(rank=rank, total_users=total_users, percentile=round(percentile, 2))


def get_user_activity(
    user_id: str,
    limit: int = 50,
    client: Optional[BackendClient] = None,
) -> List[UserActivity]:
    rows = _client(client).select(
        "user_activity_log",
        filters=[("user_id", "eq", user_id)],
        order="created_at",
        limit=limit,
    )
    return [UserActivity.from_row(r) for r in rows]


# ---------------------------------------------------------------------------
# Recomputation (stored procedures)
# ---------------------------------------------------------------------------

def update_user_streak(user_id: str, client: Optional[BackendClient] = None) -> int:
    """Recompute a user's streak after a bet resolves; returns the new streak."""
    return int(_client(client).rpc("update_user_streak", {"user_uuid": user_id}) or 0)


def update_user_points(user_id: str, client: Optional[BackendClient] = None) -> float:
    """Recompute a user's total points; returns the new total."""
    return float(_client(client).rpc("calculate_user_points", {"user_uuid": user_id}) or 0)


def refresh_leaderboard(client: Optional[BackendClient] = None) -> None:
    """
    Recompute rank positions, then refresh the materialised view.

    A failed view refresh is logged but not raised; the view catches up on
    the next refresh.
    """
    db = _client(client)
    db.rpc("update_leaderboard_rankings")
    try:
        db.rpc("refresh_leaderboard")
    except BackendError as exc:
        logger.error("Error refreshing leaderboard view: %s", exc)


def log_user_activity(
    user_id: str,
    action_type: str,
    points_earned: float,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
    client: Optional[BackendClient] = None,
) -> bool:
    """Append to the activity log.  Never raises; returns success."""
    try:
        _client(client).insert(
            "user_activity_log",
            {
                "user_id": user_id,
                "action_type": action_type,
                "points_earned": points_earned,
                "description": description,
                "metadata": metadata or {},
            },
        )
        return True
    except (BackendError, ValueError) as exc:
        logger.error("Error logging user activity: %s", exc)
        return False
