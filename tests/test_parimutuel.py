"""
Tests for pari-mutuel pool math
Run with: pytest tests/test_parimutuel.py -v
"""

import math

import pytest

from backend.core.parimutuel import (
    MAX_BET_AMOUNT,
    BetCalculationError,
    available_pool,
    calculate_bet_returns,
    display_odds,
    format_currency,
    house_cut,
    implied_odds,
    max_bet_for,
    pool_split,
)
from backend.models import BetOption, Event


def _event(total_pool=1000.0, backing=(600.0, 400.0), odds=(1.4, 2.1)):
    options = [
        BetOption(id=chr(ord("a") + i), label=f"Option {i}", odds=o, total_bets=b, bettors=3)
        for i, (b, o) in enumerate(zip(backing, odds))
    ]
    return Event(id="evt-1", title="Will it rain?", total_pool=total_pool, options=options)


# ---------------------------------------------------------------------------
# Pool helpers
# ---------------------------------------------------------------------------

class TestPool:

    def test_available_pool_is_85_percent(self):
        assert available_pool(1000) == pytest.approx(850.0)
        assert available_pool(0) == 0

    def test_house_cut_is_15_percent(self):
        assert house_cut(1000) == pytest.approx(150.0)

    def test_cut_and_available_sum_to_pool(self):
        assert available_pool(1234.5) + house_cut(1234.5) == pytest.approx(1234.5)

    def test_pool_split_percentages(self):
        shares = pool_split(_event())
        assert [s.option_id for s in shares] == ["a", "b"]
        assert shares[0].percentage == pytest.approx(60.0)
        assert shares[1].percentage == pytest.approx(40.0)
        assert shares[0].available_percentage == pytest.approx(600 / 850 * 100)

    def test_pool_split_empty_pool(self):
        shares = pool_split(_event(total_pool=0, backing=(0, 0)))
        assert all(s.percentage == 0 and s.available_percentage == 0 for s in shares)

    def test_implied_odds(self):
        odds = implied_odds(_event())
        assert odds["a"] == pytest.approx(1.42)
        assert odds["b"] == pytest.approx(2.13)   # 2.125 rounds half up

    def test_implied_odds_unbacked_option_is_none(self):
        odds = implied_odds(_event(backing=(1000, 0)))
        assert odds["b"] is None


# ---------------------------------------------------------------------------
# calculate_bet_returns
# ---------------------------------------------------------------------------

class TestCalculateBetReturns:

    def test_underdog_bet(self):
        # (1000 + 100) * 0.85 / (400 + 100) = 1.87
        calc = calculate_bet_returns(_event(), "b", 100)
        assert calc.effective_odds == pytest.approx(1.87)
        assert calc.potential_return == pytest.approx(187.0)
        assert calc.potential_profit == pytest.approx(87.0)
        assert calc.available_pool == pytest.approx(850.0)
        assert calc.pool_share == pytest.approx(500 / 1100)
        assert not calc.exceeds_max

    def test_favourite_bet_rounds_half_up(self):
        # 935 / 700 = 1.3357...
        calc = calculate_bet_returns(_event(), "a", 100)
        assert calc.effective_odds == pytest.approx(1.34)
        assert calc.potential_return == pytest.approx(134.0)

    def test_return_equals_amount_times_odds(self):
        for amount in (1, 55.5, 250, 999.99, 5000):
            calc = calculate_bet_returns(_event(), "b", amount)
            assert calc.potential_return == pytest.approx(amount * calc.effective_odds, abs=0.01)

    def test_odds_never_below_one(self):
        # Heavy favourite: 0.85 * 1100 / 1100 < 1
        calc = calculate_bet_returns(_event(backing=(1000, 0)), "a", 100)
        assert calc.effective_odds == 1.0
        assert calc.potential_return == pytest.approx(100.0)

    def test_first_bettor_on_empty_pool_gets_even_money(self):
        calc = calculate_bet_returns(_event(total_pool=0, backing=(0, 0)), "a", 100)
        assert calc.effective_odds == 1.0
        assert calc.available_pool == 0

    def test_odds_non_increasing_in_stake(self):
        event = _event()
        odds = [calculate_bet_returns(event, "b", amt).effective_odds for amt in (10, 100, 1000, 10000)]
        assert odds == sorted(odds, reverse=True)

    def test_less_backed_option_pays_more(self):
        event = _event()
        assert (
            calculate_bet_returns(event, "b", 100).effective_odds
            > calculate_bet_returns(event, "a", 100).effective_odds
        )

    def test_tied_options_get_equal_odds(self):
        event = _event(backing=(500, 500))
        a = calculate_bet_returns(event, "a", 250)
        b = calculate_bet_returns(event, "b", 250)
        assert a.effective_odds == b.effective_odds

    def test_pool_smaller_than_option_totals_uses_option_totals(self):
        # Stale total_pool: the options already hold 1000
        stale = calculate_bet_returns(_event(total_pool=200), "b", 100)
        fresh = calculate_bet_returns(_event(total_pool=1000), "b", 100)
        assert stale.effective_odds == fresh.effective_odds

    def test_unknown_option_raises(self):
        with pytest.raises(BetCalculationError):
            calculate_bet_returns(_event(), "zzz", 100)

    @pytest.mark.parametrize("amount", [0, -5, float("nan"), float("inf"), "abc", None])
    def test_invalid_amount_raises(self, amount):
        with pytest.raises(BetCalculationError):
            calculate_bet_returns(_event(), "a", amount)

    def test_error_is_a_value_error(self):
        assert issubclass(BetCalculationError, ValueError)


# ---------------------------------------------------------------------------
# Stake caps
# ---------------------------------------------------------------------------

class TestMaxBet:

    def test_admin_uncapped(self):
        assert math.isinf(max_bet_for(True, 10))

    @pytest.mark.parametrize("balance, expected", [
        (None,   MAX_BET_AMOUNT),
        (500,    500),
        (50_000, MAX_BET_AMOUNT),
        (-20,    0.0),
    ])
    def test_non_admin_cap(self, balance, expected):
        assert max_bet_for(False, balance) == expected

    def test_non_admin_max_never_exceeds_balance_or_limit(self):
        for balance in (0, 1, 9_999, 10_000, 10_001, 1e9):
            calc = calculate_bet_returns(_event(), "a", 100, user_balance=balance)
            assert calc.max_bet_amount <= min(balance, MAX_BET_AMOUNT)

    def test_exceeds_max_flag(self):
        calc = calculate_bet_returns(_event(), "a", 600, user_balance=500)
        assert calc.exceeds_max
        assert calc.max_bet_amount == 500

    def test_admin_never_exceeds(self):
        calc = calculate_bet_returns(_event(), "a", 1_000_000, is_admin=True)
        assert math.isinf(calc.max_bet_amount)
        assert not calc.exceeds_max


# ---------------------------------------------------------------------------
# Numeric boundaries
# ---------------------------------------------------------------------------

class TestBoundaries:

    @pytest.mark.parametrize("total_pool, backing, option_id, amount", [
        (1000,    (600, 400),   "b", 0.01),
        (1000,    (600, 400),   "b", 1e26),
        (1000,    (600, 400),   "a", 1e300),
        (1e300,   (6e299, 4e299), "b", 100),
        (-500,    (600, 400),   "b", 100),    # negative pool
        (200,     (600, 400),   "b", 100),    # stale pool
        (350,     (-50, 400),   "a", 100),    # negative backing
        (-10,     (0, 0),       "a", 100),
    ])
    def test_odds_and_return_stay_consistent(self, total_pool, backing, option_id, amount):
        calc = calculate_bet_returns(
            _event(total_pool=total_pool, backing=backing), option_id, amount, is_admin=True,
        )
        assert calc.effective_odds >= 1.0
        assert math.isfinite(calc.potential_return)
        assert calc.potential_return == pytest.approx(amount * calc.effective_odds, rel=1e-9, abs=0.01)

    def test_huge_admin_stake_prices(self):
        calc = calculate_bet_returns(_event(), "b", 1e26, is_admin=True)
        assert calc.effective_odds == 1.0
        assert calc.potential_return == pytest.approx(1e26)
        assert not calc.exceeds_max

    def test_tiny_stake_rounds_to_paise(self):
        calc = calculate_bet_returns(_event(), "b", 0.01)
        assert calc.effective_odds == pytest.approx(2.12)
        assert calc.potential_return == pytest.approx(0.02)

    def test_negative_backing_is_treated_as_empty(self):
        # pool = max(350, 0 + 400) = 400; 0.85 * 500 / 100
        calc = calculate_bet_returns(_event(total_pool=350, backing=(-50, 400)), "a", 100)
        assert calc.effective_odds == pytest.approx(4.25)

    def test_negative_pool_uses_option_totals(self):
        negative = calculate_bet_returns(_event(total_pool=-500), "b", 100)
        assert negative.effective_odds == calculate_bet_returns(_event(), "b", 100).effective_odds

    def test_overflowing_pool_raises(self):
        with pytest.raises(BetCalculationError, match="too large"):
            calculate_bet_returns(_event(total_pool=1.7e308, backing=(0, 0)), "a", 1.7e308, is_admin=True)


# ---------------------------------------------------------------------------
# display_odds
# ---------------------------------------------------------------------------

class TestDisplayOdds:

    def test_prices_reference_stake(self):
        assert display_odds(_event(), "b") == calculate_bet_returns(_event(), "b", 100).effective_odds

    def test_falls_back_to_stored_odds(self):
        assert display_odds(_event(), "b", reference_amount=0) == pytest.approx(2.1)

    def test_unknown_option_is_none(self):
        assert display_odds(_event(), "zzz") is None


# ---------------------------------------------------------------------------
# format_currency
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("amount, expected", [
    (0,         "₹0"),
    (999,       "₹999"),
    (1000,      "₹1,000"),
    (100000,    "₹1,00,000"),
    (1234567,   "₹12,34,567"),
    (2.5,       "₹3"),
    (1499.49,   "₹1,499"),
    (-500,      "-₹500"),
    (None,      "₹0"),
    (math.inf,  "∞"),
    (-math.inf, "-∞"),
    (math.nan,  "—"),
])
def test_format_currency(amount, expected):
    assert format_currency(amount) == expected


def test_format_currency_beyond_default_decimal_precision():
    assert format_currency(1e30).replace(",", "") == "₹1" + "0" * 30
    assert format_currency(-1e30).startswith("-₹10,00,")
