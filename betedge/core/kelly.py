"""Kelly criterion sizing — the single source of truth for bet sizing math.

All functions here are **pure**: no I/O, no logging.
Import from this module; never reimplement Kelly locally in services.

1. :func:`kelly_fraction` — full Kelly for a win/loss bet at decimal odds.
2. :func:`fractional_kelly` — full Kelly scaled by a caller-supplied ratio.
3. :func:`kelly_to_units` / :func:`units_to_dollars` — display helpers.

Design decisions
----------------
* **Fractional Kelly** (a quarter of full Kelly by default) is the standard
  practice.  Full Kelly maximises long-run log-wealth only when the edge is
  known exactly; model probabilities carry estimation error and overbetting
  is punished asymmetrically.
* Degenerate inputs (``p`` of 0 or 1, odds of 1.0 or below) return 0.0
  rather than raising, so one bad quote cannot abort an analysis pass.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default fractional Kelly ratio (quarter-Kelly).
DEFAULT_KELLY_RATIO: Final[float] = 0.25

#: Full Kelly is a fraction of bankroll and is clamped to this ceiling.
MAX_KELLY_FRACTION: Final[float] = 1.0


# ---------------------------------------------------------------------------
# Standard Kelly
# ---------------------------------------------------------------------------


def kelly_fraction(win_prob: float, decimal_odds: float) -> float:
    """Full Kelly stake as a fraction of bankroll.

    The Kelly criterion maximises the expected logarithm of wealth.  For a
    bet that pays ``b`` profit per unit with probability ``p`` and loses the
    stake with probability ``q = 1 − p``, the closed form is::

        f*  =  (b · p − q) / b                                   (1)

    where ``b = decimal_odds − 1``.

    Args:
        win_prob: Model probability of winning the bet.
        decimal_odds: Decimal odds offered.

    Returns:
        Full Kelly fraction in ``[0, 1]``.  Returns 0.0 for a non-positive
        edge, and for the degenerate inputs ``win_prob ≤ 0``,
        ``win_prob ≥ 1`` or ``decimal_odds ≤ 1``.

    Examples::

        kelly_fraction(0.30, 3.50) → 0.02
        kelly_fraction(0.20, 2.00) → 0.0   (negative edge)
        kelly_fraction(0.50, 1.00) → 0.0   (no payout possible)
    """
    if win_prob <= 0.0 or win_prob >= 1.0 or decimal_odds <= 1.0:
        return 0.0

    profit_per_unit = decimal_odds - 1.0
    loss_prob = 1.0 - win_prob

    # Equation (1)
    full_kelly = (profit_per_unit * win_prob - loss_prob) / profit_per_unit

    if full_kelly <= 0.0:
        return 0.0
    return min(full_kelly, MAX_KELLY_FRACTION)


def fractional_kelly(
    win_prob: float,
    decimal_odds: float,
    ratio: float = DEFAULT_KELLY_RATIO,
) -> float:
    """Full Kelly scaled by ``ratio`` (e.g. 0.25 for quarter-Kelly).

    ``ratio`` is clamped to ``[0, 1]`` so the fractional stake can never
    exceed the full Kelly stake.

    Examples::

        fractional_kelly(0.30, 3.50)        → 0.005
        fractional_kelly(0.30, 3.50, 0.5)   → 0.01
    """
    ratio = max(0.0, min(ratio, 1.0))
    return kelly_fraction(win_prob, decimal_odds) * ratio


# ---------------------------------------------------------------------------
# Utility: unit conversion
# ---------------------------------------------------------------------------


def units_to_dollars(units: float, bankroll: float) -> float:
    """Convert unit-based sizing to a currency amount.

    One unit = 1% of current bankroll, so ``units_to_dollars(2.5, 1000)``
    is 25.0.
    """
    return (units / 100.0) * bankroll


def kelly_to_units(kelly_fraction_val: float) -> float:
    """Convert a Kelly fraction to units (0.025 → 2.5 units)."""
    return kelly_fraction_val * 100.0
