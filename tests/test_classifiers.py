"""
Tests for value/risk classification and the engine threshold registry
Run with: pytest tests/test_classifiers.py -v
"""

import dataclasses

import pytest

from betedge.core.classifiers import risk_level, risk_rank, value_bet_quality
from betedge.core.engine_config import EngineConfig


@pytest.mark.parametrize("ev, rating", [
    (25.0, "Excellent"),
    (10.0, "Excellent"),
    (9.99, "Good"),
    (5.0, "Good"),
    (4.99, "Fair"),
    (2.0, "Fair"),
    (1.99, "Poor"),
    (0.01, "Poor"),
    (0.0, "Negative"),
    (-12.0, "Negative"),
])
def test_value_bet_quality(ev, rating):
    assert value_bet_quality(ev) == rating


class TestRiskLevel:
    def test_negative_edge_overrides_everything(self):
        assert risk_level(0.99, 1.20, -0.1) == "Very High"

    def test_low(self):
        assert risk_level(0.80, 2.00, 5.0) == "Low"

    @pytest.mark.parametrize("confidence, odds", [(0.70, 2.0), (0.80, 3.5)])
    def test_medium(self, confidence, odds):
        assert risk_level(confidence, odds, 5.0) == "Medium"

    @pytest.mark.parametrize("confidence, odds", [(0.50, 2.0), (0.80, 6.0)])
    def test_high(self, confidence, odds):
        assert risk_level(confidence, odds, 5.0) == "High"

    def test_risk_rises_with_odds(self):
        ranks = [risk_rank(risk_level(0.8, o, 1.0)) for o in (1.5, 3.5, 7.0)]
        assert ranks == sorted(ranks)

    def test_risk_falls_with_confidence(self):
        ranks = [risk_rank(risk_level(c, 2.0, 1.0)) for c in (0.5, 0.7, 0.9)]
        assert ranks == sorted(ranks, reverse=True)

    def test_custom_cut_points(self):
        cfg = dataclasses.replace(EngineConfig.default(), medium_risk_odds=1.5)
        assert risk_level(0.80, 2.00, 5.0, cfg) == "Medium"


class TestEngineConfig:
    def test_defaults(self):
        cfg = EngineConfig.default()
        assert cfg.kelly_ratio == 0.25
        assert cfg.strong_ev_threshold == 5.0
        assert cfg.top_n == 5

    def test_conservative_is_tighter(self):
        default, conservative = EngineConfig.default(), EngineConfig.conservative()
        assert conservative.kelly_ratio < default.kelly_ratio
        assert conservative.strong_ev_threshold > default.strong_ev_threshold

    def test_with_kelly_ratio_copies(self):
        base = EngineConfig.default()
        half = base.with_kelly_ratio(0.5)
        assert half.kelly_ratio == 0.5
        assert base.kelly_ratio == 0.25

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            EngineConfig.default().kelly_ratio = 1.0
