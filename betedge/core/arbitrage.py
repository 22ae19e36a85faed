"""Arbitrage detection — guaranteed-profit books across bookmakers.

Pure functions and records; no I/O, no logging.

An arbitrage exists when the best available price for every outcome of a
mutually exclusive market comes from books that, combined, sum to less
than 100% implied probability::

    S  =  Σ 1/odds_i  <  1

Staking each outcome in proportion to its implied probability,
``stake_i = (1/odds_i) / S``, returns ``1/S`` on every outcome, so the
locked-in profit is ``(1/S − 1) × 100`` percent of the total stake.

Run tests with::

    pytest tests/test_arbitrage.py -v
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from betedge.core.odds_math import MIN_DECIMAL_ODDS, implied_probability


@dataclass(frozen=True)
class ArbitrageResult:
    """Outcome of :func:`detect_arbitrage` for one market.

    ``stakes`` are fractions of a unit total and sum to exactly 1.0 when
    ``is_arbitrage`` is True; they are all 0.0 otherwise.
    """

    is_arbitrage: bool
    profit_percentage: float
    stakes: Tuple[float, ...]
    total_implied: float


def detect_arbitrage(odds: Sequence[float]) -> ArbitrageResult:
    """Check an N-way market for arbitrage.

    Args:
        odds: Best decimal price for each mutually exclusive outcome.

    Returns:
        :class:`ArbitrageResult`.  A market with fewer than two outcomes or
        any price below 1.0 is never an arbitrage.

    Examples::

        detect_arbitrage([2.10, 2.10]).profit_percentage → 5.0
        detect_arbitrage([1.90, 1.90]).is_arbitrage      → False
    """
    zeros = tuple(0.0 for _ in odds)
    if len(odds) < 2 or any(o < MIN_DECIMAL_ODDS for o in odds):
        return ArbitrageResult(False, 0.0, zeros, sum(implied_probability(o) for o in odds))

    implied = [implied_probability(o) for o in odds]
    total = sum(implied)
    if total >= 1.0:
        return ArbitrageResult(False, 0.0, zeros, total)

    stakes = [p / total for p in implied]
    # Absorb rounding in the last leg so the stakes sum to exactly 1
    stakes[-1] = 1.0 - sum(stakes[:-1])

    return ArbitrageResult(
        is_arbitrage=True,
        profit_percentage=(1.0 / total - 1.0) * 100.0,
        stakes=tuple(stakes),
        total_implied=total,
    )


# ---------------------------------------------------------------------------
# Opportunity records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ArbitrageLeg:
    outcome: str
    odds: float
    stake: float
    bookmaker: Optional[str] = None


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """A detected arbitrage, staked for a unit total by default."""

    market: str
    description: str
    legs: Tuple[ArbitrageLeg, ...]
    profit_percentage: float
    total_stake: float = 1.0
    risk_level: str = "None"
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def guaranteed_profit(self) -> float:
        """Locked-in profit in stake currency for ``total_stake``."""
        return self.total_stake * self.profit_percentage / 100.0

    @property
    def stakes(self) -> Dict[str, float]:
        return {leg.outcome: leg.stake for leg in self.legs}

    def scaled(self, total_stake: float) -> ArbitrageOpportunity:
        """Same opportunity with every leg scaled to ``total_stake``."""
        factor = total_stake / self.total_stake if self.total_stake else 0.0
        legs = tuple(replace(leg, stake=leg.stake * factor) for leg in self.legs)
        return replace(self, legs=legs, total_stake=total_stake)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["guaranteed_profit"] = self.guaranteed_profit
        return d


def build_opportunity(
    market: str,
    description: str,
    quotes: Sequence[Tuple[str, float, Optional[str]]],
) -> Optional[ArbitrageOpportunity]:
    """Run :func:`detect_arbitrage` over ``(outcome, odds, bookmaker)`` quotes.

    Returns the unit-staked :class:`ArbitrageOpportunity`, or None when the
    quotes do not form an arbitrage.
    """
    result = detect_arbitrage([price for _, price, _ in quotes])
    if not result.is_arbitrage:
        return None

    legs: List[ArbitrageLeg] = [
        ArbitrageLeg(outcome=outcome, odds=price, stake=stake, bookmaker=bookmaker)
        for (outcome, price, bookmaker), stake in zip(quotes, result.stakes)
    ]
    return ArbitrageOpportunity(
        market=market,
        description=description,
        legs=tuple(legs),
        profit_percentage=result.profit_percentage,
    )
