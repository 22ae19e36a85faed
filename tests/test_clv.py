"""
Tests for closing line value
Run with: pytest tests/test_clv.py -v
"""

import pytest

from betedge.services.clv import calculate_clv, clv_rating, no_vig_clv


@pytest.mark.parametrize("bet_odds, closing_odds, clv, rating", [
    (2.20, 2.00, 10.0, "Excellent"),
    (2.06, 2.00, 3.0, "Good"),
    (2.00, 2.00, 0.0, "Fair"),
    (1.90, 2.00, -5.0, "Poor"),
])
def test_calculate_clv(bet_odds, closing_odds, clv, rating):
    result = calculate_clv(bet_odds, closing_odds, outcome="home_win")

    assert result.clv == pytest.approx(clv)
    assert result.clv_rating == rating
    assert result.is_positive() == (clv > 0)


def test_opening_defaults_to_closing():
    result = calculate_clv(2.2, 2.0)
    assert result.opening_odds == 2.0
    assert result.market == "match_result"


def test_explicit_opening_odds():
    assert calculate_clv(2.2, 2.0, opening_odds=2.4).opening_odds == 2.4


@pytest.mark.parametrize("bet_odds, closing_odds", [(2.0, 0.5), (0.9, 2.0)])
def test_invalid_prices(bet_odds, closing_odds):
    assert calculate_clv(bet_odds, closing_odds) is None


def test_no_vig_clv():
    assert no_vig_clv(2.20, [2.00, 2.00], 0) == pytest.approx(0.5 - 1 / 2.2)


def test_rating_boundaries():
    assert clv_rating(5.0) == "Excellent"
    assert clv_rating(-0.01) == "Poor"
