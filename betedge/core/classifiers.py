"""Qualitative value and risk ratings for a single bet.

Pure functions; thresholds come from :class:`~betedge.core.engine_config.EngineConfig`.
"""

from __future__ import annotations

from typing import Optional

from betedge.core.engine_config import EngineConfig

VALUE_RATINGS = ("Excellent", "Good", "Fair", "Poor", "Negative")
RISK_LEVELS = ("Low", "Medium", "High", "Very High")


def value_bet_quality(ev: float) -> str:
    """Band an EV percentage into a value rating.

    ``≥10`` Excellent, ``≥5`` Good, ``≥2`` Fair, ``>0`` Poor, ``≤0`` Negative.
    """
    if ev >= 10.0:
        return "Excellent"
    if ev >= 5.0:
        return "Good"
    if ev >= 2.0:
        return "Fair"
    if ev > 0.0:
        return "Poor"
    return "Negative"


def risk_level(
    confidence: float,
    odds: float,
    edge: float,
    config: Optional[EngineConfig] = None,
) -> str:
    """Composite risk tier from model confidence, price and edge.

    A negative edge is always "Very High" regardless of confidence or odds.
    Otherwise longer odds (more variance) raise the tier and higher
    confidence lowers it.
    """
    cfg = config or EngineConfig.default()

    if edge < 0:
        return "Very High"
    if confidence < cfg.high_risk_confidence or odds > cfg.high_risk_odds:
        return "High"
    if confidence < cfg.medium_risk_confidence or odds > cfg.medium_risk_odds:
        return "Medium"
    return "Low"


def risk_rank(level: str) -> int:
    """Ordinal position of a risk tier (Low = 0 … Very High = 3)."""
    return RISK_LEVELS.index(level)
