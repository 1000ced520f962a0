"""
Domain models for Pool Predict.

The remote backend owns storage; these dataclasses are the in-process view
of its rows.  ``from_row`` constructors accept the backend's snake_case
JSON and fill sensible defaults for missing columns.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

EVENT_STATUSES = ("active", "closed", "resolved")
BET_STATUSES = ("active", "won", "lost")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp ('Z' suffix allowed) to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _num(value: Any, default: float = 0.0) -> float:
    return float(value) if value is not None else default


def _int(value: Any, default: int = 0) -> int:
    return int(value) if value is not None else default


@dataclass
class BetOption:
    """One selectable outcome of an event."""

    id: str
    label: str
    odds: float = 1.0
    total_bets: float = 0.0
    bettors: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BetOption":
        return cls(
            id=str(row["id"]),
            label=row.get("label") or "",
            odds=_num(row.get("odds"), 1.0),
            total_bets=_num(row.get("total_bets")),
            bettors=_int(row.get("bettors")),
        )


@dataclass
class Event:
    """A betting market."""

    id: str
    title: str
    category: str = "Other"
    status: str = "active"
    total_pool: float = 0.0
    participant_count: int = 0
    options: List[BetOption] = field(default_factory=list)
    winning_option: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], options: Optional[List[Dict]] = None) -> "Event":
        option_rows = options if options is not None else (row.get("bet_options") or row.get("options") or [])
        winning = row.get("winning_option")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            category=row.get("category") or "Other",
            status=row.get("status") or "active",
            total_pool=_num(row.get("total_pool")),
            participant_count=_int(row.get("participant_count")),
            options=[BetOption.from_row(o) for o in option_rows],
            winning_option=str(winning) if winning is not None else None,
            expires_at=parse_timestamp(row.get("expires_at")),
            created_at=parse_timestamp(row.get("created_at")),
            resolved_at=parse_timestamp(row.get("resolved_at")),
            description=row.get("description"),
        )

    def option(self, option_id: str) -> Optional[BetOption]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def is_open(self, now: Optional[datetime] = None) -> bool:
        """Active and not yet past its expiry."""
        if self.status != "active":
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or datetime.now(timezone.utc))


@dataclass
class Bet:
    """A user's stake on one option."""

    id: str
    user_id: str
    event_id: str
    option_id: str
    amount: float
    status: str = "active"
    payout: Optional[float] = None
    placed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Bet":
        payout = row.get("payout")
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            event_id=str(row["event_id"]),
            option_id=str(row["option_id"]),
            amount=_num(row.get("amount")),
            status=row.get("status") or "active",
            payout=float(payout) if payout is not None else None,
            placed_at=parse_timestamp(row.get("placed_at")),
        )


@dataclass
class User:
    """Read-only profile; every field is computed by the backend."""

    id: str
    name: str
    balance: float = 0.0
    total_bets: int = 0
    total_winnings: float = 0.0
    is_admin: bool = False
    current_streak: int = 0
    longest_streak: int = 0
    tier: str = "Bronze"
    rank_position: int = 0
    total_points: float = 0.0
    net_pl: float = 0.0
    last_activity: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "User":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            balance=_num(row.get("balance")),
            total_bets=_int(row.get("total_bets")),
            total_winnings=_num(row.get("total_winnings")),
            is_admin=bool(row.get("is_admin", False)),
            current_streak=_int(row.get("current_streak")),
            longest_streak=_int(row.get("longest_streak")),
            tier=row.get("tier") or "Bronze",
            rank_position=_int(row.get("rank_position")),
            total_points=_num(row.get("total_points")),
            net_pl=_num(row.get("net_pl")),
            last_activity=parse_timestamp(row.get("last_activity")),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class LeaderboardUser:
    id: str
    name: str
    total_points: float = 0.0
    rank_position: int = 0
    tier: str = "Bronze"
    current_streak: int = 0
    longest_streak: int = 0
    total_winnings: float = 0.0
    total_bets: int = 0
    balance: float = 0.0
    is_verified: bool = False
    achievements: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    weekly_earnings: float = 0.0
    monthly_earnings: float = 0.0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LeaderboardUser":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            total_points=_num(row.get("total_points")),
            rank_position=_int(row.get("rank_position")),
            tier=row.get("tier") or "Bronze",
            current_streak=_int(row.get("current_streak")),
            longest_streak=_int(row.get("longest_streak")),
            total_winnings=_num(row.get("total_winnings")),
            total_bets=_int(row.get("total_bets")),
            balance=_num(row.get("balance")),
            is_verified=bool(row.get("is_verified") or False),
            achievements=list(row.get("achievements") or []),
            created_at=parse_timestamp(row.get("created_at")),
            weekly_earnings=_num(row.get("weekly_earnings")),
            monthly_earnings=_num(row.get("monthly_earnings")),
        )


@dataclass
class UserActivity:
    id: str
    action_type: str
    points_earned: float = 0.0
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "UserActivity":
        return cls(
            id=str(row["id"]),
            action_type=row.get("action_type") or "",
            points_earned=_num(row.get("points_earned")),
            description=row.get("description") or "",
            metadata=dict(row.get("metadata") or {}),
            created_at=parse_timestamp(row.get("created_at")),
        )
