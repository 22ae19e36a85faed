"""Fundamental odds mathematics — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The pillars exposed are:

1. **Odds conversion** — decimal odds ↔ implied probability ↔ fair odds.
2. **Expected value** — percentage return per unit staked.
3. **Overround** — bookmaker margin and proportional vig removal.

Design decisions
----------------
* All functions take **decimal** (European) odds.  Decimal odds are the
  total payout per unit staked *including* the stake, so 1.0 means a
  certain outcome that can never return a profit.
* Degenerate inputs never raise.  Odds below 1.0 cannot be produced by a
  real bookmaker; they are treated as an invalid price with implied
  probability 0 so that a single bad quote cannot crash an analysis pass.
  Probabilities of exactly 0 or 1 map to fair odds of 1.0 rather than
  infinity.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

from typing import Final, Iterable, List, Sequence

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Lowest decimal price a bookmaker can quote (certainty, zero profit).
MIN_DECIMAL_ODDS: Final[float] = 1.0

#: Fair odds returned for probabilities with no finite fair price.
_DEGENERATE_FAIR_ODDS: Final[float] = 1.0


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def implied_probability(odds: float) -> float:
    """Raw implied probability from decimal odds (vig-inclusive).

    Args:
        odds: Decimal odds.  Values below 1.0 are not valid prices.

    Returns:
        ``1 / odds`` for valid odds, so ``implied_probability(1.0) == 1``.
        Returns ``0.0`` for odds strictly below 1.0.

    Examples::

        implied_probability(2.00) → 0.5
        implied_probability(4.00) → 0.25
        implied_probability(0.50) → 0.0   (invalid price)
    """
    if odds < MIN_DECIMAL_ODDS:
        return 0.0
    return 1.0 / odds


def fair_odds(probability: float) -> float:
    """Margin-free decimal odds for a probability.

    Inverse of :func:`implied_probability`.

    Args:
        probability: Event probability.

    Returns:
        ``1 / probability`` for ``0 < probability < 1``; ``1.0`` for
        probabilities at or outside either bound (no finite fair price, or
        a certainty).
    """
    if probability <= 0.0 or probability >= 1.0:
        return _DEGENERATE_FAIR_ODDS
    return 1.0 / probability


# ---------------------------------------------------------------------------
# Expected value
# ---------------------------------------------------------------------------


def expected_value(model_probability: float, market_odds: float) -> float:
    """Expected value of a unit stake, as a percentage.

    A winning unit stake returns ``odds`` (profit ``odds − 1``); a losing one
    returns nothing.  The expected return per unit is therefore::

        EV  =  p · (odds − 1)  −  (1 − p)  =  p · odds − 1

    Positive EV means the market underprices the outcome relative to the
    model.

    Examples::

        expected_value(0.30, 3.50) →   5.0
        expected_value(0.20, 2.00) → −60.0
        expected_value(0.50, 2.00) →   0.0
    """
    return (model_probability * market_odds - 1.0) * 100.0


# ---------------------------------------------------------------------------
# Overround / margin
# ---------------------------------------------------------------------------


def overround(odds: Iterable[float]) -> float:
    """Sum of implied probabilities across a market (``Σ 1/odds_i``).

    A fair book sums to exactly 1.0; a bookmaker book sums to more.  A sum
    below 1.0 means an arbitrage exists.  Invalid prices contribute 0.
    """
    return sum(implied_probability(o) for o in odds)


def bookmaker_margin(odds: Sequence[float]) -> float:
    """Bookmaker margin for a complete, mutually exclusive market, in percent.

    ``margin = (Σ 1/odds_i − 1) × 100``.  Zero for a perfectly fair book;
    higher values mean worse value for bettors.

    Returns ``0.0`` for an empty market.

    Examples::

        bookmaker_margin([3.50, 3.20, 2.10]) → 7.5
        bookmaker_margin([2.00, 2.00])       → 0.0
    """
    if not odds:
        return 0.0
    return (overround(odds) - 1.0) * 100.0


def remove_vig_proportional(odds: Sequence[float]) -> List[float]:
    """True (no-vig) probabilities by proportional normalisation.

    Each raw implied probability is divided by the overround so the result
    sums to 1.0.  Proportional normalisation is exact when the bookmaker
    spreads the margin evenly across outcomes; it is the standard
    reference price for N-way football markets.

    Returns a list of zeros when the market has no valid prices.
    """
    raw = [implied_probability(o) for o in odds]
    total = sum(raw)
    if total <= 0.0:
        return [0.0 for _ in raw]
    return [p / total for p in raw]
