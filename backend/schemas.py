"""
Pydantic request/response schemas for the Pool Predict API.

Explicit schemas keep the HTTP contract independent of the backend's row
layout and generate accurate OpenAPI docs.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from backend.core.parimutuel import BetCalculation, format_currency


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class BetOptionResponse(BaseModel):
    id: str
    label: str
    odds: float
    total_bets: float
    bettors: int
    display_odds: Optional[float] = None

    class Config:
        from_attributes = True


class EventResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str
    status: Literal["active", "closed", "resolved"]
    total_pool: float
    available_pool: float
    participant_count: int
    options: list[BetOptionResponse]
    winning_option: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EventListResponse(BaseModel):
    total: int
    events: list[EventResponse]


# ---------------------------------------------------------------------------
# Quotes and bets
# ---------------------------------------------------------------------------

class BetQuoteRequest(BaseModel):
    """
    Payload for POST /api/events/{event_id}/quote.

    Sent on every amount / option change in the bet form.
    """

    option_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0, description="Stake in rupees")

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be a finite number")
        return v

    model_config = {
        "json_schema_extra": {"example": {"option_id": "opt-yes", "amount": 500}}
    }


class BetQuoteResponse(BaseModel):
    option_id: str
    bet_amount: float
    effective_odds: float
    potential_return: float
    potential_profit: float
    available_pool: float
    max_bet_amount: Optional[float] = Field(None, description="None when uncapped (admins)")
    uncapped: bool
    pool_share: float
    exceeds_max: bool
    display: dict

    @classmethod
    def from_calculation(cls, calc: BetCalculation) -> "BetQuoteResponse":
        uncapped = math.isinf(calc.max_bet_amount)
        return cls(
            option_id=calc.option_id,
            bet_amount=calc.bet_amount,
            effective_odds=calc.effective_odds,
            potential_return=calc.potential_return,
            potential_profit=calc.potential_profit,
            available_pool=calc.available_pool,
            max_bet_amount=None if uncapped else calc.max_bet_amount,
            uncapped=uncapped,
            pool_share=round(calc.pool_share, 4),
            exceeds_max=calc.exceeds_max,
            display={
                "potential_return": format_currency(calc.potential_return),
                "potential_profit": format_currency(calc.potential_profit),
                "available_pool": format_currency(calc.available_pool),
                "max_bet_amount": format_currency(calc.max_bet_amount),
                "effective_odds": f"{calc.effective_odds:.2f}x",
            },
        )


class BetCreate(BaseModel):
    """Payload for POST /api/bets."""

    event_id: str = Field(..., min_length=1)
    option_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("amount must be a finite number")
        return round(v, 2)


class BetResponse(BaseModel):
    id: str
    event_id: str
    option_id: str
    amount: float
    status: Literal["active", "won", "lost"]
    payout: Optional[float] = None
    placed_at: Optional[datetime] = None
    result: Optional[Literal["active", "won", "lost"]] = Field(
        default=None, description="Outcome from the event's winning option once resolved"
    )

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# Leaderboard / users
# ---------------------------------------------------------------------------

class LeaderboardEntry(BaseModel):
    id: str
    name: str
    rank_position: int
    tier: str
    total_points: float
    current_streak: int
    longest_streak: int
    total_winnings: float
    total_bets: int
    is_verified: bool
    achievements: list[str]
    weekly_earnings: float
    monthly_earnings: float

    class Config:
        from_attributes = True


class LeaderboardResponse(BaseModel):
    period: Literal["all", "weekly", "monthly"]
    sort_by: str
    entries: list[LeaderboardEntry]


class UserRankResponse(BaseModel):
    rank: int
    total_users: int
    percentile: float
    tier: str
    points_to_next_tier: Optional[float] = None


class StreakWarningResponse(BaseModel):
    show_warning: bool
    urgency_level: Literal["low", "medium", "high"]
    message: str


class StreakStatusResponse(BaseModel):
    streak_reset: bool
    current_streak: int
    hours_remaining: float
    message: Optional[str] = None
    warning: StreakWarningResponse


class ActivityResponse(BaseModel):
    id: str
    action_type: str
    points_earned: float
    description: str
    metadata: dict
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
