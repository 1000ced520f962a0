"""
Pool and user analytics for the live views.

All public functions take already-loaded models and return plain dicts so
they can be called from FastAPI endpoints or the dashboard without any
backend round trips.
"""

from typing import Dict, List

from backend.core.parimutuel import available_pool, house_cut, pool_split
from backend.core.streak_rules import winning_streak
from backend.models import Bet, Event, User


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _win_rate(wins: int, total: int) -> float:
    return round(wins / total * 100, 2) if total > 0 else 0.0


# ---------------------------------------------------------------------------
# Event pool
# ---------------------------------------------------------------------------

def event_analytics(event: Event) -> Dict:
    """
    Pool distribution for one event.

    ``volatility`` is the spread between the most and least backed
    options in percentage points; it is ``None`` with fewer than two
    options.
    """
    shares = pool_split(event)

    most_popular = None
    if shares:
        # First option wins ties, as in the option list order.
        most_popular = max(shares, key=lambda s: s.percentage).label

    volatility = None
    if len(shares) > 1:
        pcts = [s.percentage for s in shares]
        volatility = round(max(pcts) - min(pcts), 1)

    avg_bet = event.total_pool / event.participant_count if event.participant_count > 0 else 0.0

    return {
        "event_id": event.id,
        "total_pool": event.total_pool,
        "available_pool": available_pool(event.total_pool),
        "house_cut": house_cut(event.total_pool),
        "participant_count": event.participant_count,
        "options": [
            {
                "option_id": s.option_id,
                "label": s.label,
                "total_bets": s.total_bets,
                "bettors": s.bettors,
                "percentage": round(s.percentage, 1),
                "available_percentage": round(s.available_percentage, 1),
            }
            for s in shares
        ],
        "most_popular": most_popular,
        "volatility": volatility,
        "average_bet": round(avg_bet, 2),
    }


# ---------------------------------------------------------------------------
# User summary
# ---------------------------------------------------------------------------

def user_summary(user: User, bets: List[Bet]) -> Dict:
    """Profile / dashboard stats for one user."""
    active = [b for b in bets if b.status == "active"]
    won = [b for b in bets if b.status == "won"]
    resolved = [b for b in bets if b.status in ("won", "lost")]

    return {
        "user_id": user.id,
        "name": user.name,
        "balance": user.balance,
        "tier": user.tier,
        "total_bets": len(bets),
        "active_bets": len(active),
        "active_bet_amount": round(sum(b.amount for b in active), 2),
        "won_bets": len(won),
        "resolved_bets": len(resolved),
        "win_rate": _win_rate(len(won), len(resolved)),
        "net_pl": user.net_pl,
        "total_winnings": user.total_winnings,
        "current_streak": winning_streak(bets),
        "longest_streak": user.longest_streak,
    }
