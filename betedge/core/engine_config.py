"""Engine configuration — every decision threshold in one place.

This module is the **registry** for the cut-points the recommendation
builder, classifiers and alert engine use.  Nowhere else in the codebase
should EV thresholds, confidence floors or Kelly ratios be hard-coded.

Architecture
------------
:class:`EngineConfig` is a frozen dataclass.  Named constructors
(:meth:`EngineConfig.default`, :meth:`EngineConfig.conservative`) return
pre-populated instances.  Override a single value with
:func:`dataclasses.replace`::

    from dataclasses import replace
    from betedge.core.engine_config import EngineConfig

    cfg = replace(EngineConfig.default(), kelly_ratio=0.5)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Final

#: Market efficiency below which a market-inefficiency alert is raised.
INEFFICIENT_MARKET_THRESHOLD: Final[float] = 0.7


@dataclass(frozen=True)
class EngineConfig:
    """Immutable threshold bundle for one analysis pass.

    Attributes:
        --- Value flags ---
        value_ev_threshold: EV (%) above which a recommendation is a value
            bet.
        strong_ev_threshold: EV (%) above which a value bet is strong.
        strong_confidence: Minimum model confidence for a strong value bet.

        --- Staking ---
        kelly_ratio: Fractional Kelly multiplier (0.25 = quarter-Kelly).
        fixed_pct_high / fixed_pct_mid / fixed_pct_low: Fixed-percentage
            stakes (% of bankroll) for EV above ``fixed_ev_high``, above
            ``fixed_ev_mid``, and otherwise.

        --- Risk classifier ---
        high_risk_confidence / medium_risk_confidence: Confidence floors
            below which risk is High / Medium.
        high_risk_odds / medium_risk_odds: Odds above which risk is
            High / Medium.

        --- Market analysis ---
        efficiency_margin_ceiling: Margin (%) at which market efficiency
            reaches 0.
        high_margin_warning: Overall margin (%) that triggers a warning.
        min_confidence: Model confidence below which a warning is raised.
        small_bankroll: Bankroll below which a variance warning is raised.
        kelly_advice_min_edge: Full Kelly fraction above which Kelly
            strategy advice is offered.
        kelly_advice_max_edge: Full Kelly fraction above which Kelly
            advice is marked not recommended (likely overconfidence).
        top_n: Maximum number of top recommendations.
    """

    # Value flags
    value_ev_threshold: float = 0.0
    strong_ev_threshold: float = 5.0
    strong_confidence: float = 0.7

    # Staking
    kelly_ratio: float = 0.25
    fixed_ev_high: float = 5.0
    fixed_ev_mid: float = 2.0
    fixed_pct_high: float = 2.0
    fixed_pct_mid: float = 1.0
    fixed_pct_low: float = 0.5

    # Risk classifier
    high_risk_confidence: float = 0.6
    medium_risk_confidence: float = 0.75
    high_risk_odds: float = 5.0
    medium_risk_odds: float = 3.0

    # Market analysis
    efficiency_margin_ceiling: float = 25.0
    high_margin_warning: float = 10.0
    min_confidence: float = 0.6
    small_bankroll: float = 500.0
    kelly_advice_min_edge: float = 0.01
    kelly_advice_max_edge: float = 0.2
    top_n: int = 5

    # ------------------------------------------------------------------ #
    #  Named constructors                                                  #
    # ------------------------------------------------------------------ #

    @classmethod
    def default(cls) -> EngineConfig:
        """Thresholds used out of the box."""
        return cls()

    @classmethod
    def conservative(cls) -> EngineConfig:
        """Tighter thresholds: eighth-Kelly, stronger edge for strong value."""
        return cls(
            kelly_ratio=0.125,
            strong_ev_threshold=8.0,
            strong_confidence=0.75,
            min_confidence=0.65,
        )

    def with_kelly_ratio(self, ratio: float) -> EngineConfig:
        """Return a copy with a different fractional Kelly ratio."""
        return replace(self, kelly_ratio=ratio)
