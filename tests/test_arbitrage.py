"""
Tests for N-way arbitrage detection
Run with: pytest tests/test_arbitrage.py -v
"""

import pytest

from betedge.core.arbitrage import build_opportunity, detect_arbitrage


class TestDetectArbitrage:
    def test_three_way_arbitrage(self):
        result = detect_arbitrage([3.00, 3.00, 3.50])

        assert result.is_arbitrage
        assert sum(result.stakes) == pytest.approx(1.0)
        assert result.profit_percentage == pytest.approx(5.0)

    def test_bookmaker_market_is_not_arbitrage(self):
        result = detect_arbitrage([3.50, 3.20, 2.10])

        assert not result.is_arbitrage
        assert result.profit_percentage == 0
        assert result.stakes == (0.0, 0.0, 0.0)

    def test_two_way(self):
        result = detect_arbitrage([2.10, 2.10])

        assert result.is_arbitrage
        assert result.stakes == pytest.approx((0.5, 0.5))
        assert result.profit_percentage == pytest.approx(5.0)

    def test_five_way(self):
        result = detect_arbitrage([6.0] * 5)

        assert result.is_arbitrage
        assert result.profit_percentage == pytest.approx(20.0)
        assert len(result.stakes) == 5

    def test_exactly_fair_book_is_not_arbitrage(self):
        assert not detect_arbitrage([2.0, 4.0, 4.0]).is_arbitrage

    def test_equal_return_on_every_outcome(self):
        odds = [2.40, 4.10, 4.60]
        result = detect_arbitrage(odds)

        returns = [s * o for s, o in zip(result.stakes, odds)]
        assert returns == pytest.approx([returns[0]] * 3)
        assert returns[0] == pytest.approx(1 + result.profit_percentage / 100)

    @pytest.mark.parametrize("odds", [[], [3.0], [0.5, 10.0]])
    def test_degenerate_markets(self, odds):
        result = detect_arbitrage(odds)

        assert not result.is_arbitrage
        assert result.profit_percentage == 0


class TestOpportunity:
    def test_none_without_arbitrage(self):
        quotes = [("over_2.5", 1.90, "A"), ("under_2.5", 1.90, "B")]
        assert build_opportunity("over_under", "O/U", quotes) is None

    def test_legs_carry_bookmakers(self):
        quotes = [("over_2.5", 2.10, "A"), ("under_2.5", 2.10, "B")]
        opp = build_opportunity("over_under", "O/U", quotes)

        assert [leg.bookmaker for leg in opp.legs] == ["A", "B"]
        assert opp.total_stake == 1.0
        assert opp.risk_level == "None"
        assert opp.guaranteed_profit == pytest.approx(0.05)

    def test_scaled(self):
        quotes = [("over_2.5", 2.10, "A"), ("under_2.5", 2.10, "B")]
        opp = build_opportunity("over_under", "O/U", quotes).scaled(100.0)

        assert sum(leg.stake for leg in opp.legs) == pytest.approx(100.0)
        assert opp.guaranteed_profit == pytest.approx(5.0)
        assert opp.to_dict()["guaranteed_profit"] == pytest.approx(5.0)
