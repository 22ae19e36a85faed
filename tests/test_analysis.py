"""
Tests for the recommendation builder (analyze_betting_opportunities)
Run with: pytest tests/test_analysis.py -v
"""

import json

import pytest

from betedge.core.engine_config import EngineConfig
from betedge.models import BetRecommendation, MarketOdds, Prediction
from betedge.services.analysis import (
    analyze_betting_opportunities,
    analyze_margins,
    build_recommendation,
    find_arbitrage_opportunities,
    market_efficiency,
)


def _make_prediction(**overrides):
    defaults = dict(
        home_win_prob=0.50,
        draw_prob=0.25,
        away_win_prob=0.25,
        expected_home_score=1.6,
        expected_away_score=1.1,
        confidence=0.80,
        home_team="Arsenal",
        away_team="Chelsea",
    )
    defaults.update(overrides)
    return Prediction(**defaults)


def _make_odds(**overrides):
    defaults = dict(home_win=2.30, draw=3.40, away_win=3.20, over_25=1.90, under_25=1.95)
    defaults.update(overrides)
    return MarketOdds(**defaults)


def _rec(analysis, outcome):
    return next(r for r in analysis.recommendations if r.outcome == outcome)


class TestStrongValueScenario:
    """Home side underpriced, everything else overpriced"""

    @pytest.fixture
    def analysis(self):
        return analyze_betting_opportunities(_make_prediction(), _make_odds(), bankroll=1000)

    def test_one_market_per_outcome(self, analysis):
        outcomes = sorted(r.outcome for r in analysis.recommendations)
        assert outcomes == sorted(["home_win", "draw", "away_win", "over_2.5", "under_2.5"])

    def test_home_win_numbers(self, analysis):
        home = _rec(analysis, "home_win")

        assert home.description == "Arsenal to Win"
        assert home.expected_value == pytest.approx(15.0)
        assert home.implied_prob == pytest.approx(1 / 2.30)
        assert home.value_rating == "Excellent"
        assert home.risk_level == "Low"
        assert home.is_value_bet and home.is_strong_value
        assert home.recommended_stake.kelly == pytest.approx(0.15 / 1.3)
        assert home.recommended_stake.kelly_fractional == pytest.approx(0.25 * 0.15 / 1.3)
        assert home.recommended_stake.fixed_percentage == 2.0
        assert home.recommended_stake.fixed_amount == pytest.approx(20.0)
        assert home.potential_profit == pytest.approx(0.15)

    def test_overpriced_outcomes(self, analysis):
        draw = _rec(analysis, "draw")
        assert draw.expected_value == pytest.approx(-15.0)
        assert draw.value_rating == "Negative"
        assert draw.risk_level == "Very High"
        assert not draw.is_value_bet
        assert draw.recommended_stake.kelly == 0.0

    def test_totals_use_poisson_goal_model(self, analysis):
        over = _rec(analysis, "over_2.5")
        under = _rec(analysis, "under_2.5")
        assert over.model_prob == pytest.approx(0.5064, abs=1e-3)
        assert over.model_prob + under.model_prob == pytest.approx(1.0)
        assert over.description == "Over 2.5 Goals"

    def test_aggregates(self, analysis):
        assert [r.outcome for r in analysis.top_recommendations] == ["home_win"]
        assert analysis.total_opportunities == 1
        assert analysis.best_bet_type == "match_result"
        evs = [r.expected_value for r in analysis.recommendations]
        assert analysis.overall_ev == pytest.approx(sum(evs) / len(evs))

    def test_margins(self, analysis):
        margins = analysis.margin_analysis
        assert set(margins) == {"match_result", "over_under", "overall"}
        assert margins["match_result"] == pytest.approx(4.14, abs=0.01)
        assert margins["over_under"] == pytest.approx(3.91, abs=0.01)
        assert margins["overall"] == pytest.approx(
            (margins["match_result"] + margins["over_under"]) / 2
        )
        assert analysis.market_efficiency == pytest.approx(1 - margins["overall"] / 25)

    def test_strategy_advice(self, analysis):
        advice = {a.strategy: a for a in analysis.strategy_advice}

        assert set(advice) == {"ValueBetting", "KellyCriterion", "FixedStake"}
        assert advice["ValueBetting"].recommended
        assert advice["KellyCriterion"].recommended
        assert advice["FixedStake"].recommended

    def test_no_warnings(self, analysis):
        assert analysis.warnings == []
        assert analysis.arbitrage_opportunities == []

    def test_json_serialisable(self, analysis):
        data = json.loads(json.dumps(analysis.to_dict()))
        assert data["prediction"]["home_team"] == "Arsenal"
        assert isinstance(data["analyzed_at"], str)


class TestProperties:
    """Properties that hold for any well-formed input"""

    SCENARIOS = [
        (_make_prediction(), _make_odds()),
        (_make_prediction(confidence=0.4), _make_odds(home_win=3.0, draw=4.5, away_win=5.0)),
        (_make_prediction(), _make_odds(over_25=None, under_25=None)),
        (
            _make_prediction(home_win_prob=0.2, draw_prob=0.3, away_win_prob=0.5),
            _make_odds(home_win=6.0, draw=4.0, away_win=2.5, home_or_draw=2.2,
                       home_or_away=1.4, draw_or_away=1.3),
        ),
    ]

    @pytest.mark.parametrize("prediction, odds", SCENARIOS)
    def test_top_recommendations(self, prediction, odds):
        analysis = analyze_betting_opportunities(prediction, odds)
        top = analysis.top_recommendations

        assert len(top) <= 5
        assert all(r.is_value_bet for r in top)
        assert [r.expected_value for r in top] == sorted(
            (r.expected_value for r in top), reverse=True
        )

    @pytest.mark.parametrize("prediction, odds", SCENARIOS)
    def test_fractional_never_exceeds_full_kelly(self, prediction, odds):
        analysis = analyze_betting_opportunities(prediction, odds)
        for rec in analysis.recommendations:
            assert 0.0 <= rec.recommended_stake.kelly_fractional <= rec.recommended_stake.kelly <= 1.0

    @pytest.mark.parametrize("prediction, odds", SCENARIOS)
    def test_strong_implies_value(self, prediction, odds):
        analysis = analyze_betting_opportunities(prediction, odds)
        for rec in analysis.recommendations:
            if rec.is_strong_value:
                assert rec.is_value_bet

    @pytest.mark.parametrize("prediction, odds", SCENARIOS)
    def test_efficiency_bounded(self, prediction, odds):
        analysis = analyze_betting_opportunities(prediction, odds)
        assert 0.0 <= analysis.market_efficiency <= 1.0

    def test_top_n_cap(self):
        # Every outcome underpriced: eight value bets, five returned
        prediction = _make_prediction(over25_prob=0.5)
        odds = _make_odds(
            home_win=3.0, draw=5.0, away_win=5.0, over_25=2.5, under_25=2.5,
            home_or_draw=2.0, home_or_away=2.0, draw_or_away=3.0,
        )
        analysis = analyze_betting_opportunities(prediction, odds)

        assert analysis.total_opportunities == 8
        assert len(analysis.top_recommendations) == 5


class TestEdgeCases:
    def test_evenly_matched_fair_market(self):
        prediction = _make_prediction(
            home_win_prob=0.4, draw_prob=0.3, away_win_prob=0.3, over25_prob=0.5,
        )
        odds = _make_odds(home_win=2.5, draw=1 / 0.3, away_win=1 / 0.3, over_25=2.0, under_25=2.0)

        analysis = analyze_betting_opportunities(prediction, odds)

        assert abs(analysis.overall_ev) < 5
        assert analysis.margin_analysis["match_result"] == pytest.approx(0.0, abs=1e-9)
        assert analysis.market_efficiency == pytest.approx(1.0)

    def test_no_value_bets(self):
        analysis = analyze_betting_opportunities(
            _make_prediction(),
            _make_odds(home_win=1.5, draw=3.0, away_win=3.0, over_25=None, under_25=None),
        )
        advice = {a.strategy: a for a in analysis.strategy_advice}

        assert analysis.top_recommendations == []
        assert analysis.best_bet_type is None
        assert any("No value bets" in w for w in analysis.warnings)
        assert any("margin" in w for w in analysis.warnings)
        assert analysis.market_efficiency == 0.0
        assert not advice["ValueBetting"].recommended
        assert "KellyCriterion" not in advice
        assert advice["FixedStake"].recommended

    def test_low_confidence_warning(self):
        analysis = analyze_betting_opportunities(_make_prediction(confidence=0.5), _make_odds())
        assert any("confidence" in w.lower() for w in analysis.warnings)
        assert not _rec(analysis, "home_win").is_strong_value

    def test_small_bankroll_warning(self):
        analysis = analyze_betting_opportunities(_make_prediction(), _make_odds(), bankroll=200)
        assert any("bankroll" in w.lower() for w in analysis.warnings)
        assert _rec(analysis, "home_win").recommended_stake.fixed_amount == pytest.approx(4.0)

    def test_totals_skipped_without_both_prices(self):
        analysis = analyze_betting_opportunities(_make_prediction(), _make_odds(under_25=None))
        assert {r.bet_type for r in analysis.recommendations} == {"match_result"}
        assert "over_under" not in analysis.margin_analysis

    def test_totals_skipped_without_goals_estimate(self):
        prediction = _make_prediction(
            home_win_prob=0.4, draw_prob=0.3, away_win_prob=0.3,
            expected_home_score=0.0, expected_away_score=0.0,
        )
        analysis = analyze_betting_opportunities(
            prediction, _make_odds(over_25=1.8, under_25=2.0),
        )

        assert {r.bet_type for r in analysis.recommendations} == {"match_result"}
        assert [r.outcome for r in analysis.top_recommendations] == ["draw"]
        # The market itself is still priced
        assert "over_under" in analysis.margin_analysis

    def test_very_high_risk_warning(self):
        # A negative value threshold lets overpriced outcomes into the top list
        cfg = EngineConfig(value_ev_threshold=-20.0)
        analysis = analyze_betting_opportunities(_make_prediction(), _make_odds(), config=cfg)

        assert "draw" in [r.outcome for r in analysis.top_recommendations]
        assert "Some recommendations have very high risk" in analysis.warnings

    def test_model_over_probability_preferred(self):
        analysis = analyze_betting_opportunities(
            _make_prediction(over25_prob=0.62), _make_odds(),
        )
        assert _rec(analysis, "over_2.5").model_prob == pytest.approx(0.62)

    def test_custom_config(self):
        cfg = EngineConfig.default().with_kelly_ratio(0.5)
        analysis = analyze_betting_opportunities(_make_prediction(), _make_odds(), config=cfg)
        stake = _rec(analysis, "home_win").recommended_stake
        assert stake.kelly_fractional == pytest.approx(0.5 * stake.kelly)


class TestDoubleChance:
    def test_partial_quotes(self):
        analysis = analyze_betting_opportunities(
            _make_prediction(), _make_odds(home_or_draw=1.30),
        )
        dc = [r for r in analysis.recommendations if r.bet_type == "double_chance"]

        assert [r.outcome for r in dc] == ["home_or_draw"]
        assert dc[0].model_prob == pytest.approx(0.75)
        assert dc[0].description == "Arsenal or Draw"
        assert "double_chance" not in analysis.margin_analysis

    def test_full_book_margin(self):
        odds = _make_odds(home_or_draw=1.30, home_or_away=1.25, draw_or_away=1.90)
        margins = analyze_margins(odds)
        assert margins["double_chance"] == pytest.approx(4.78, abs=0.01)
        assert margins["overall"] == pytest.approx(
            (margins["match_result"] + margins["over_under"] + margins["double_chance"]) / 3
        )


class TestArbitrage:
    @pytest.fixture
    def odds(self):
        return MarketOdds.best_of([
            MarketOdds(home_win=2.30, draw=3.40, away_win=3.20, bookmaker="BookA"),
            MarketOdds(home_win=2.10, draw=4.20, away_win=4.50, bookmaker="BookB"),
        ])

    def test_best_of_composite(self, odds):
        assert (odds.home_win, odds.draw, odds.away_win) == (2.30, 4.20, 4.50)
        assert odds.bookmaker_for("home_win") == "BookA"
        assert odds.bookmaker_for("away_win") == "BookB"

    def test_detected(self, odds):
        [opp] = find_arbitrage_opportunities(odds)

        assert opp.market == "match_result"
        assert opp.description == "Arbitrage on Match Result (1X2)"
        assert [leg.bookmaker for leg in opp.legs] == ["BookA", "BookB", "BookB"]
        assert sum(opp.stakes.values()) == pytest.approx(1.0)
        assert opp.profit_percentage == pytest.approx(11.72, abs=0.01)

    def test_analysis_flags_legs(self, odds):
        analysis = analyze_betting_opportunities(_make_prediction(), odds)
        advice = {a.strategy for a in analysis.strategy_advice}

        assert all(r.is_arbitrage for r in analysis.recommendations)
        assert "ArbitrageBetting" in advice
        # Negative margin still counts against efficiency
        assert analysis.market_efficiency < 1.0

    def test_analysis_json_includes_guaranteed_profit(self, odds):
        analysis = analyze_betting_opportunities(_make_prediction(), odds)
        [opp] = analysis.arbitrage_opportunities

        data = json.loads(json.dumps(analysis.to_dict()))
        [arb] = data["arbitrage_opportunities"]

        assert arb["guaranteed_profit"] == pytest.approx(opp.guaranteed_profit)
        assert [leg["bookmaker"] for leg in arb["legs"]] == ["BookA", "BookB", "BookB"]

    def test_totals_arbitrage(self):
        [opp] = find_arbitrage_opportunities(
            _make_odds(over_25=2.10, under_25=2.10),
        )
        assert opp.market == "over_under"


class TestHelpers:
    def test_build_recommendation_round_trip(self):
        rec = build_recommendation("match_result", "home_win", "Home", 0.5, 2.3, 0.8, 1000)
        assert BetRecommendation.from_dict(rec.to_dict()) == rec

    def test_efficiency_clamped(self):
        assert market_efficiency(40.0) == 0.0
        assert market_efficiency(0.0) == 1.0

    def test_missing_match_result_price(self):
        with pytest.raises(ValueError):
            MarketOdds.from_mapping({"homeWin": 2.0, "draw": 3.2})

    def test_from_mapping_aliases(self):
        odds = MarketOdds.from_mapping({"homeWin": 2.0, "draw": 3.2, "awayWin": 4.0, "over25": 1.8})
        assert odds.get("away_win") == 4.0
        assert odds.over_25 == 1.8
        assert not odds.has_totals()
