"""
Domain records shared by the analysis, bankroll and alert services.

Inputs (``Prediction``, ``MarketOdds``) come from external collaborators:
the statistical models and whatever feeds odds into the engine.  Outputs
(``BetRecommendation``, ``BettingAnalysis``) are plain dataclasses with a
``to_dict()`` that is JSON-serialisable.
"""

import math
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from betedge.core.arbitrage import ArbitrageOpportunity

# ---------------------------------------------------------------------------
# Outcome keys
# ---------------------------------------------------------------------------

HOME_WIN = "home_win"
DRAW = "draw"
AWAY_WIN = "away_win"
OVER_25 = "over_2.5"
UNDER_25 = "under_2.5"
HOME_OR_DRAW = "home_or_draw"
HOME_OR_AWAY = "home_or_away"
DRAW_OR_AWAY = "draw_or_away"

MATCH_RESULT_KEYS = (HOME_WIN, DRAW, AWAY_WIN)
TOTALS_KEYS = (OVER_25, UNDER_25)
DOUBLE_CHANCE_KEYS = (HOME_OR_DRAW, HOME_OR_AWAY, DRAW_OR_AWAY)
OUTCOME_KEYS = MATCH_RESULT_KEYS + TOTALS_KEYS + DOUBLE_CHANCE_KEYS

# Outcome key -> MarketOdds attribute
_ATTR_BY_KEY = {
    HOME_WIN: "home_win",
    DRAW: "draw",
    AWAY_WIN: "away_win",
    OVER_25: "over_25",
    UNDER_25: "under_25",
    HOME_OR_DRAW: "home_or_draw",
    HOME_OR_AWAY: "home_or_away",
    DRAW_OR_AWAY: "draw_or_away",
}

# Accepted spellings from client payloads
_KEY_ALIASES = {
    "homeWin": HOME_WIN,
    "awayWin": AWAY_WIN,
    "over25": OVER_25,
    "under25": UNDER_25,
    "over_25": OVER_25,
    "under_25": UNDER_25,
    "homeOrDraw": HOME_OR_DRAW,
    "homeOrAway": HOME_OR_AWAY,
    "drawOrAway": DRAW_OR_AWAY,
}


def normalise_outcome_key(key: str) -> str:
    """Map an accepted alias (e.g. ``homeWin``) to its canonical key."""
    return _KEY_ALIASES.get(key, key)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class Prediction:
    """Model output for one match (consumed as an opaque input record)."""

    home_win_prob: float
    draw_prob: float
    away_win_prob: float
    expected_home_score: float = 0.0
    expected_away_score: float = 0.0
    confidence: float = 0.5       # [0, 1]
    over25_prob: Optional[float] = None
    home_team: str = "Home"
    away_team: str = "Away"

    def has_goals_estimate(self) -> bool:
        """True when the model gave an over-2.5 figure or a positive goal expectation."""
        return (
            self.over25_prob is not None
            or self.expected_home_score + self.expected_away_score > 0
        )

    def over_25_probability(self) -> float:
        """P(total goals > 2.5).

        Uses the model's own figure when supplied; otherwise treats total
        goals as Poisson with mean ``expected_home_score + expected_away_score``.
        Check :meth:`has_goals_estimate` first: with neither input the
        Poisson mean is 0 and this returns 0.
        """
        if self.over25_prob is not None:
            return self.over25_prob
        lam = max(self.expected_home_score + self.expected_away_score, 0.0)
        return 1.0 - math.exp(-lam) * (1.0 + lam + lam * lam / 2.0)

    def under_25_probability(self) -> float:
        return 1.0 - self.over_25_probability()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MarketOdds:
    """Decimal odds for one match, keyed by outcome.

    Match-result prices are required; totals and double-chance prices are
    optional.  ``bookmakers`` records which bookmaker quoted each outcome
    when the odds are a best-price composite; ``bookmaker`` is the single
    source otherwise.
    """

    home_win: float
    draw: float
    away_win: float
    over_25: Optional[float] = None
    under_25: Optional[float] = None
    home_or_draw: Optional[float] = None
    home_or_away: Optional[float] = None
    draw_or_away: Optional[float] = None
    bookmaker: Optional[str] = None
    bookmakers: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Mapping view
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[float]:
        """Price for an outcome key, or None when not quoted."""
        attr = _ATTR_BY_KEY.get(normalise_outcome_key(key))
        if attr is None:
            return None
        return getattr(self, attr)

    def as_mapping(self) -> Dict[str, float]:
        """Outcome key -> decimal odds for every quoted outcome."""
        return {k: self.get(k) for k in OUTCOME_KEYS if self.get(k) is not None}

    def bookmaker_for(self, key: str) -> Optional[str]:
        return self.bookmakers.get(normalise_outcome_key(key), self.bookmaker)

    def has_totals(self) -> bool:
        return self.over_25 is not None and self.under_25 is not None

    @classmethod
    def from_mapping(
        cls,
        odds: Mapping[str, float],
        bookmaker: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "MarketOdds":
        """Build from an outcome-key mapping.

        Raises:
            ValueError: If a match-result price is missing.
        """
        canonical = {normalise_outcome_key(k): v for k, v in odds.items() if v is not None}
        missing = [k for k in MATCH_RESULT_KEYS if k not in canonical]
        if missing:
            raise ValueError(f"Market odds missing required outcomes: {', '.join(missing)}")

        kwargs = {
            _ATTR_BY_KEY[k]: float(v) for k, v in canonical.items() if k in _ATTR_BY_KEY
        }
        return cls(bookmaker=bookmaker, timestamp=timestamp, **kwargs)

    @classmethod
    def best_of(cls, quotes: Sequence["MarketOdds"]) -> "MarketOdds":
        """Best available price per outcome across several bookmakers.

        The composite records the bookmaker behind each price in
        ``bookmakers`` so arbitrage legs can name where to place them.

        Raises:
            ValueError: If ``quotes`` is empty.
        """
        if not quotes:
            raise ValueError("best_of() needs at least one bookmaker quote")

        best: Dict[str, float] = {}
        sources: Dict[str, str] = {}
        for quote in quotes:
            for key, price in quote.as_mapping().items():
                if key not in best or price > best[key]:
                    best[key] = price
                    source = quote.bookmaker_for(key)
                    if source:
                        sources[key] = source
                    else:
                        sources.pop(key, None)

        composite = cls.from_mapping(best)
        composite.bookmakers = sources
        return composite

    def to_dict(self) -> Dict[str, Any]:
        return _jsonable(asdict(self))


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass
class StakePlan:
    """Stake suggestions for one recommendation.

    Kelly values are fractions of bankroll; ``fixed_percentage`` is a
    percentage; ``fixed_amount`` is in bankroll currency.
    """

    kelly: float
    kelly_fractional: float
    fixed_percentage: float
    fixed_amount: float


@dataclass
class BetRecommendation:
    bet_type: str              # match_result | over_under | double_chance
    outcome: str               # outcome key, e.g. "home_win"
    description: str

    market_odds: float
    implied_prob: float
    model_prob: float

    expected_value: float      # percent
    value_rating: str

    confidence: float
    variance: float
    risk_level: str

    recommended_stake: StakePlan

    win_probability: float
    potential_profit: float    # EV per unit stake

    is_value_bet: bool
    is_strong_value: bool
    is_arbitrage: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BetRecommendation":
        names = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in names}
        stake = values.get("recommended_stake")
        if isinstance(stake, Mapping):
            values["recommended_stake"] = StakePlan(**stake)
        return cls(**values)


@dataclass
class StrategyAdvice:
    strategy: str              # ValueBetting | KellyCriterion | FixedStake | ArbitrageBetting
    recommended: bool
    reasoning: str
    expected_return: float
    risk_level: str
    bankroll_requirement: float


@dataclass
class BettingAnalysis:
    """Complete betting analysis for one match."""

    prediction: Prediction
    market_odds: MarketOdds
    recommendations: List[BetRecommendation]
    top_recommendations: List[BetRecommendation]
    overall_ev: float
    total_opportunities: int
    best_bet_type: Optional[str]
    market_efficiency: float
    margin_analysis: Dict[str, float]
    arbitrage_opportunities: List[ArbitrageOpportunity]
    strategy_advice: List[StrategyAdvice]
    warnings: List[str]
    analyzed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def value_bets(self) -> List[BetRecommendation]:
        return [r for r in self.recommendations if r.is_value_bet]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["arbitrage_opportunities"] = [a.to_dict() for a in self.arbitrage_opportunities]
        return _jsonable(d)
