"""Pari-mutuel pool mathematics: the single source of truth for odds.

Every function here is **pure**: no I/O and no side effects.  The only
logging is a DEBUG line in :func:`display_odds` when it falls back to the
stored odds.  Import from this module; never reimplement the odds formula
in services or dashboard pages.

The pillars exposed are:

1. **Pool split**: how much of the pool each option holds.
2. **Effective odds**: what a stake on an option would return if the
   event resolved right after the stake joined the pool.
3. **Currency display**: whole-rupee INR formatting.

Design decisions
----------------
* 15% of every pool is withheld as the house edge; the remaining 85%
  (the *available pool*) is shared by the winners in proportion to their
  stakes.
* Effective odds are computed on the **post-bet** pool::

      odds = 0.85 * (pool + stake) / (option_total + stake)

  so the number shown to a bettor already accounts for their own stake
  diluting the winning side.  The stored ``option.odds`` are a cached
  pre-bet value and are only used as a fallback.
* ``pool`` is ``max(event.total_pool, sum of option totals)``.  An option
  can then never hold more than the whole pool, and the odds are
  non-increasing in the stake.
* Odds are floored at 1.00x; with an empty pool the first bettor sees
  exactly 1.00x.
* Options with identical backing get identical odds.  No tie-break is
  applied and results keep the event's option order.

Run tests with::

    pytest tests/test_parimutuel.py -v
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import TYPE_CHECKING, Final, List, Optional

if TYPE_CHECKING:
    from backend.models import BetOption, Event

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Share of the pool withheld before payout distribution.
HOUSE_EDGE: Final[float] = 0.15

#: Share of the pool distributed to winners.
PAYOUT_RATIO: Final[float] = 0.85

#: Hard ceiling on a single stake for non-admin users (rupees).
MAX_BET_AMOUNT: Final[float] = 10_000

#: Effective odds never drop below even money returned.
MIN_ODDS: Final[float] = 1.0

#: Stake used to price the odds shown on event cards.
DISPLAY_REFERENCE_AMOUNT: Final[float] = 100

_ODDS_QUANTUM = Decimal("0.01")
_MONEY_QUANTUM = Decimal("0.01")
_WHOLE_QUANTUM = Decimal("1")

# Digits needed to quantize any finite float (up to ~1.8e308) to 0.01.
_DECIMAL_PRECISION = 400


class BetCalculationError(ValueError):
    """Raised when a bet cannot be priced (unknown option, bad amount)."""


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BetCalculation:
    """Priced bet for one option of an event."""

    option_id: str
    bet_amount: float
    effective_odds: float
    potential_return: float
    potential_profit: float
    available_pool: float
    max_bet_amount: float
    pool_share: float
    exceeds_max: bool


@dataclass(frozen=True)
class OptionShare:
    """One option's slice of the pool."""

    option_id: str
    label: str
    total_bets: float
    bettors: int
    percentage: float
    available_percentage: float


# ---------------------------------------------------------------------------
# Pool helpers
# ---------------------------------------------------------------------------


def available_pool(total_pool: float) -> float:
    """Pool left for winners after the house edge."""
    return total_pool * PAYOUT_RATIO


def house_cut(total_pool: float) -> float:
    """Amount withheld by the house."""
    return total_pool * HOUSE_EDGE


def _quantize(value: float, quantum: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PRECISION
        return Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)


def _round_half_up(value: float, quantum: Decimal) -> float:
    return float(_quantize(value, quantum))


def _effective_pool(event: "Event") -> float:
    backed = sum(max(opt.total_bets, 0.0) for opt in event.options)
    return max(event.total_pool, backed, 0.0)


def _find_option(event: "Event", option_id: str) -> Optional["BetOption"]:
    for option in event.options:
        if option.id == option_id:
            return option
    return None


def pool_split(event: "Event") -> List[OptionShare]:
    """Return each option's share of the total and of the available pool.

    Percentages are 0 for every option while the pool is empty.
    """
    total = event.total_pool
    payout_pool = available_pool(total)
    shares = []
    for option in event.options:
        shares.append(
            OptionShare(
                option_id=option.id,
                label=option.label,
                total_bets=option.total_bets,
                bettors=option.bettors,
                percentage=(option.total_bets / total) * 100 if total > 0 else 0.0,
                available_percentage=(
                    (option.total_bets / payout_pool) * 100 if payout_pool > 0 else 0.0
                ),
            )
        )
    return shares


def implied_odds(event: "Event") -> dict:
    """Pre-bet odds per option id.

    An option nobody has backed yet has no defined price and maps to
    ``None``.
    """
    pool = _effective_pool(event)
    result = {}
    for option in event.options:
        if option.total_bets <= 0:
            result[option.id] = None
            continue
        odds = max(MIN_ODDS, PAYOUT_RATIO * pool / option.total_bets)
        result[option.id] = _round_half_up(odds, _ODDS_QUANTUM)
    return result


# ---------------------------------------------------------------------------
# Bet pricing
# ---------------------------------------------------------------------------


def max_bet_for(is_admin: bool, user_balance: Optional[float] = None) -> float:
    """Largest stake a user may place.

    Admins are uncapped.  Everyone else is limited by :data:`MAX_BET_AMOUNT`
    and, when known, their balance.
    """
    if is_admin:
        return math.inf
    if user_balance is None:
        return MAX_BET_AMOUNT
    return max(0.0, min(MAX_BET_AMOUNT, user_balance))


def calculate_bet_returns(
    event: "Event",
    option_id: str,
    bet_amount: float,
    is_admin: bool = False,
    *,
    user_balance: Optional[float] = None,
) -> BetCalculation:
    """Price a hypothetical bet against the event's current pool.

    Args:
        event: Event with ``total_pool`` and per-option ``total_bets``.
        option_id: Option the stake goes on.
        bet_amount: Stake in rupees; must be a positive finite number.
        is_admin: Admins bypass the stake cap.
        user_balance: Caller's balance, used to tighten the cap for
            non-admins.

    Returns:
        :class:`BetCalculation` with effective odds ≥ 1.00, the potential
        return and the maximum allowed stake.

    Raises:
        BetCalculationError: If ``option_id`` is not an option of the event
            or ``bet_amount`` is not a positive finite number, or the
            post-bet pool overflows a float.
    """
    try:
        amount = float(bet_amount)
    except (TypeError, ValueError):
        raise BetCalculationError(f"Bet amount {bet_amount!r} is not a number")
    if not math.isfinite(amount) or amount <= 0:
        raise BetCalculationError(
            f"Bet amount must be a positive number, got {bet_amount!r}"
        )

    option = _find_option(event, option_id)
    if option is None:
        raise BetCalculationError(
            f"Option {option_id!r} is not part of event {event.id!r}"
        )

    pool_after = _effective_pool(event) + amount
    backing_after = max(option.total_bets, 0.0) + amount
    if not math.isfinite(pool_after):
        raise BetCalculationError(f"Bet amount {bet_amount!r} is too large to price")

    raw_odds = max(MIN_ODDS, PAYOUT_RATIO * pool_after / backing_after)
    effective_odds = _round_half_up(raw_odds, _ODDS_QUANTUM)
    potential_return = _round_half_up(amount * effective_odds, _MONEY_QUANTUM)
    if not math.isfinite(potential_return):
        raise BetCalculationError(f"Bet amount {bet_amount!r} is too large to price")

    max_bet = max_bet_for(is_admin, user_balance)

    return BetCalculation(
        option_id=option.id,
        bet_amount=amount,
        effective_odds=effective_odds,
        potential_return=potential_return,
        potential_profit=round(potential_return - amount, 2),
        available_pool=available_pool(event.total_pool),
        max_bet_amount=max_bet,
        pool_share=backing_after / pool_after,
        exceeds_max=amount > max_bet,
    )


def display_odds(
    event: "Event",
    option_id: str,
    is_admin: bool = False,
    reference_amount: float = DISPLAY_REFERENCE_AMOUNT,
) -> Optional[float]:
    """Odds to show on an event card.

    Prices a small reference stake so cards and the bet form agree.  Falls back
    to the stored ``option.odds`` when the option cannot be priced; returns
    ``None`` only when the option does not exist at all.
    """
    try:
        return calculate_bet_returns(event, option_id, reference_amount, is_admin).effective_odds
    except BetCalculationError as exc:
        logger.debug("Falling back to stored odds for %s/%s: %s", event.id, option_id, exc)
        option = _find_option(event, option_id)
        return option.odds if option else None


# ---------------------------------------------------------------------------
# Currency display
# ---------------------------------------------------------------------------


def _group_indian(digits: str) -> str:
    """Group an integer string the Indian way: 12,34,567."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_currency(amount: float) -> str:
    """Format rupees with no decimals, e.g. ``₹1,00,000`` or ``-₹500``.

    Halves round away from zero, matching ``Intl.NumberFormat('en-IN')``.
    """
    if amount is None:
        amount = 0
    amount = float(amount)
    if math.isnan(amount):
        return "—"
    if math.isinf(amount):
        return "∞" if amount > 0 else "-∞"
    whole = _quantize(amount, _WHOLE_QUANTUM)
    sign = "-" if whole < 0 else ""
    return f"{sign}₹{_group_indian(str(abs(int(whole))))}"
