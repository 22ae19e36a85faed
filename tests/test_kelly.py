"""
Tests for Kelly criterion sizing
Run with: pytest tests/test_kelly.py -v
"""

import pytest

from betedge.core.kelly import (
    fractional_kelly,
    kelly_fraction,
    kelly_to_units,
    units_to_dollars,
)


class TestKellyFraction:
    """Full Kelly stake"""

    def test_known_value(self):
        # b = 2.5, p = 0.3 → (0.75 − 0.7) / 2.5
        assert kelly_fraction(0.30, 3.50) == pytest.approx(0.02)

    def test_negative_edge_is_zero(self):
        assert kelly_fraction(0.20, 2.00) == 0.0

    def test_zero_edge_is_zero(self):
        assert kelly_fraction(0.50, 2.00) == 0.0

    @pytest.mark.parametrize("p, odds", [
        (0.0, 2.0),
        (1.0, 2.0),
        (0.5, 1.0),
        (0.5, 0.8),
    ])
    def test_degenerate_inputs(self, p, odds):
        assert kelly_fraction(p, odds) == 0.0

    @pytest.mark.parametrize("p, odds", [
        (0.9, 1.5), (0.6, 2.2), (0.35, 4.0), (0.99, 500.0), (0.05, 30.0),
    ])
    def test_bounded(self, p, odds):
        assert 0.0 <= kelly_fraction(p, odds) <= 1.0


class TestFractionalKelly:
    @pytest.mark.parametrize("ratio", [0.125, 0.25, 0.5, 1.0])
    def test_scales_full_kelly(self, ratio):
        full = kelly_fraction(0.55, 2.10)
        assert fractional_kelly(0.55, 2.10, ratio) == pytest.approx(full * ratio)

    def test_default_is_quarter_kelly(self):
        assert fractional_kelly(0.30, 3.50) == pytest.approx(0.005)

    def test_ratio_above_one_is_clamped(self):
        assert fractional_kelly(0.55, 2.10, 3.0) == pytest.approx(kelly_fraction(0.55, 2.10))

    def test_negative_ratio_is_zero(self):
        assert fractional_kelly(0.55, 2.10, -0.5) == 0.0

    def test_never_exceeds_full(self):
        for p in (0.3, 0.45, 0.6, 0.8):
            for odds in (1.5, 2.0, 3.0, 6.0):
                assert fractional_kelly(p, odds) <= kelly_fraction(p, odds)


def test_unit_conversion():
    assert kelly_to_units(0.025) == pytest.approx(2.5)
    assert units_to_dollars(2.5, 1000) == pytest.approx(25.0)
