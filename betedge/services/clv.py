"""
Closing Line Value (CLV) calculation.

CLV is the primary edge-validation metric in betting.  Positive CLV means
the bet was struck at a better price than where the market settled (the
closing line), which correlates with long-term profitability independent
of individual results.

For decimal odds the price edge is::

    clv  =  (bet_odds − closing_odds) / closing_odds × 100

so backing at 2.20 a selection that closes at 2.00 is +10% CLV.

``no_vig_clv`` gives the probability-space view: the margin-free closing
probability minus the probability implied by the bet price.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Sequence

from betedge.core.odds_math import MIN_DECIMAL_ODDS, implied_probability, remove_vig_proportional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data container
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClosingLineValue:
    """CLV metrics for a single bet."""

    market: str
    outcome: str
    opening_odds: float
    closing_odds: float
    bet_odds: float       # price actually taken
    clv: float            # percent, positive = beat the close
    clv_rating: str       # Excellent | Good | Fair | Poor

    def is_positive(self) -> bool:
        """True when the bet beat the closing line."""
        return self.clv > 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clv_rating(clv: float) -> str:
    """``≥5`` Excellent, ``≥2`` Good, ``≥0`` Fair, else Poor."""
    if clv >= 5.0:
        return "Excellent"
    if clv >= 2.0:
        return "Good"
    if clv >= 0.0:
        return "Fair"
    return "Poor"


def calculate_clv(
    bet_odds: float,
    closing_odds: float,
    market: str = "match_result",
    outcome: str = "",
    opening_odds: Optional[float] = None,
) -> Optional[ClosingLineValue]:
    """
    Compute CLV for a bet.

    Args:
        bet_odds:     Decimal price the bet was placed at.
        closing_odds: Final decimal price before the event started.
        market:       Market key (e.g. ``"match_result"``).
        outcome:      Outcome key (e.g. ``"home_win"``).
        opening_odds: First observed price; defaults to ``closing_odds``.

    Returns:
        ClosingLineValue, or None when either price is not a valid decimal
        price (< 1.0).
    """
    if closing_odds < MIN_DECIMAL_ODDS or bet_odds < MIN_DECIMAL_ODDS:
        logger.debug("CLV skipped for %s/%s: invalid odds", market, outcome)
        return None

    clv = (bet_odds - closing_odds) / closing_odds * 100.0
    return ClosingLineValue(
        market=market,
        outcome=outcome,
        opening_odds=opening_odds if opening_odds is not None else closing_odds,
        closing_odds=closing_odds,
        bet_odds=bet_odds,
        clv=clv,
        clv_rating=clv_rating(clv),
    )


def no_vig_clv(bet_odds: float, closing_book: Sequence[float], index: int) -> float:
    """
    Probability edge against the margin-free closing line.

    Args:
        bet_odds:     Price taken on the selection.
        closing_book: Closing prices for every outcome of the market.
        index:        Position of the selection in ``closing_book``.

    Returns:
        ``fair_closing_prob − implied_prob(bet_odds)``; positive when the
        bet price implied a lower probability than the fair close.
    """
    fair = remove_vig_proportional(closing_book)
    return fair[index] - implied_probability(bet_odds)
