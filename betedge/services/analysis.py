"""
Recommendation builder: prediction + market odds → BettingAnalysis.

For every market present in the odds (match result always, 2.5 totals when
both prices are quoted, each quoted double-chance outcome) a
``BetRecommendation`` is built from the core maths:

    implied probability → EV → full / fractional Kelly → fixed stake
    → value rating → risk tier → value flags

The per-market recommendations are then aggregated into margins, market
efficiency, arbitrage opportunities, strategy advice and warnings.

Public API:
  analyze_betting_opportunities(prediction, market_odds, bankroll, config)
      → BettingAnalysis
  find_arbitrage_opportunities(market_odds) → List[ArbitrageOpportunity]
  analyze_margins(market_odds) → Dict[str, float]
"""

import logging
from typing import Dict, List, Optional

from betedge.core.arbitrage import ArbitrageOpportunity, build_opportunity
from betedge.core.classifiers import risk_level, value_bet_quality
from betedge.core.engine_config import EngineConfig
from betedge.core.kelly import fractional_kelly, kelly_fraction
from betedge.core.odds_math import bookmaker_margin, expected_value, implied_probability, overround
from betedge.models import (
    AWAY_WIN,
    DOUBLE_CHANCE_KEYS,
    DRAW,
    DRAW_OR_AWAY,
    HOME_OR_AWAY,
    HOME_OR_DRAW,
    HOME_WIN,
    MATCH_RESULT_KEYS,
    OVER_25,
    UNDER_25,
    BetRecommendation,
    BettingAnalysis,
    MarketOdds,
    Prediction,
    StakePlan,
    StrategyAdvice,
)

logger = logging.getLogger(__name__)

MATCH_RESULT = "match_result"
OVER_UNDER = "over_under"
DOUBLE_CHANCE = "double_chance"

DEFAULT_BANKROLL = 1000.0


# ---------------------------------------------------------------------------
# Single recommendation
# ---------------------------------------------------------------------------

def variance(probability: float, odds: float) -> float:
    """Per-unit variance of a win/loss bet: ``p(1−p)·odds²``.

    A win returns ``odds − 1`` and a loss ``−1``; the spread between the two
    is ``odds``.
    """
    return probability * (1.0 - probability) * odds ** 2


def fixed_percentage(ev: float, cfg: EngineConfig) -> float:
    """Flat stake as a percentage of bankroll, banded by EV."""
    if ev > cfg.fixed_ev_high:
        return cfg.fixed_pct_high
    if ev > cfg.fixed_ev_mid:
        return cfg.fixed_pct_mid
    return cfg.fixed_pct_low


def build_recommendation(
    bet_type: str,
    outcome: str,
    description: str,
    model_prob: float,
    odds: float,
    confidence: float,
    bankroll: float,
    config: Optional[EngineConfig] = None,
) -> BetRecommendation:
    """Evaluate one outcome at one price."""
    cfg = config or EngineConfig.default()

    ev = expected_value(model_prob, odds)
    pct = fixed_percentage(ev, cfg)
    stake = StakePlan(
        kelly=kelly_fraction(model_prob, odds),
        kelly_fractional=fractional_kelly(model_prob, odds, cfg.kelly_ratio),
        fixed_percentage=pct,
        fixed_amount=bankroll * pct / 100.0,
    )

    is_value = ev > cfg.value_ev_threshold
    is_strong = (
        is_value
        and ev > cfg.strong_ev_threshold
        and confidence >= cfg.strong_confidence
    )

    return BetRecommendation(
        bet_type=bet_type,
        outcome=outcome,
        description=description,
        market_odds=odds,
        implied_prob=implied_probability(odds),
        model_prob=model_prob,
        expected_value=ev,
        value_rating=value_bet_quality(ev),
        confidence=confidence,
        variance=variance(model_prob, odds),
        risk_level=risk_level(confidence, odds, ev, cfg),
        recommended_stake=stake,
        win_probability=model_prob,
        potential_profit=ev / 100.0,
        is_value_bet=is_value,
        is_strong_value=is_strong,
    )


# ---------------------------------------------------------------------------
# Per-market analysers
# ---------------------------------------------------------------------------

def analyze_match_result(
    prediction: Prediction,
    market_odds: MarketOdds,
    bankroll: float = DEFAULT_BANKROLL,
    config: Optional[EngineConfig] = None,
) -> List[BetRecommendation]:
    p = prediction
    legs = [
        (HOME_WIN, f"{p.home_team} to Win", p.home_win_prob),
        (DRAW, "Draw", p.draw_prob),
        (AWAY_WIN, f"{p.away_team} to Win", p.away_win_prob),
    ]
    return [
        build_recommendation(
            MATCH_RESULT, key, desc, prob, market_odds.get(key),
            p.confidence, bankroll, config,
        )
        for key, desc, prob in legs
    ]


def analyze_totals(
    prediction: Prediction,
    market_odds: MarketOdds,
    bankroll: float = DEFAULT_BANKROLL,
    config: Optional[EngineConfig] = None,
) -> List[BetRecommendation]:
    """Over/under 2.5 goals.

    Empty unless both sides are quoted and the prediction carries a goals
    estimate (an over-2.5 probability or expected scores).
    """
    if not market_odds.has_totals():
        return []
    if not prediction.has_goals_estimate():
        logger.debug(
            "%s vs %s: totals quoted but no goals estimate, skipping over/under",
            prediction.home_team,
            prediction.away_team,
        )
        return []

    p_over = prediction.over_25_probability()
    legs = [
        (OVER_25, "Over 2.5 Goals", p_over),
        (UNDER_25, "Under 2.5 Goals", 1.0 - p_over),
    ]
    return [
        build_recommendation(
            OVER_UNDER, key, desc, prob, market_odds.get(key),
            prediction.confidence, bankroll, config,
        )
        for key, desc, prob in legs
    ]


def analyze_double_chance(
    prediction: Prediction,
    market_odds: MarketOdds,
    bankroll: float = DEFAULT_BANKROLL,
    config: Optional[EngineConfig] = None,
) -> List[BetRecommendation]:
    """Each quoted double-chance outcome; model probability is the sum of its two legs."""
    p = prediction
    legs = {
        HOME_OR_DRAW: (f"{p.home_team} or Draw", p.home_win_prob + p.draw_prob),
        HOME_OR_AWAY: (f"{p.home_team} or {p.away_team}", p.home_win_prob + p.away_win_prob),
        DRAW_OR_AWAY: (f"Draw or {p.away_team}", p.draw_prob + p.away_win_prob),
    }

    recs = []
    for key in DOUBLE_CHANCE_KEYS:
        odds = market_odds.get(key)
        if odds is None:
            continue
        desc, prob = legs[key]
        recs.append(build_recommendation(
            DOUBLE_CHANCE, key, desc, prob, odds, p.confidence, bankroll, config,
        ))
    return recs


# ---------------------------------------------------------------------------
# Market-level analysis
# ---------------------------------------------------------------------------

def analyze_margins(market_odds: MarketOdds) -> Dict[str, float]:
    """Bookmaker margin (%) per complete market plus their mean as ``overall``.

    A double-chance book covers every result twice, so its fair overround is
    2 and the margin is ``(Σ/2 − 1)·100``.
    """
    margins: Dict[str, float] = {
        MATCH_RESULT: bookmaker_margin([market_odds.get(k) for k in MATCH_RESULT_KEYS]),
    }
    if market_odds.has_totals():
        margins[OVER_UNDER] = bookmaker_margin([market_odds.over_25, market_odds.under_25])

    dc = [market_odds.get(k) for k in DOUBLE_CHANCE_KEYS]
    if all(o is not None for o in dc):
        margins[DOUBLE_CHANCE] = (overround(dc) / 2.0 - 1.0) * 100.0

    margins["overall"] = sum(margins.values()) / len(margins)
    return margins


def market_efficiency(overall_margin: float, config: Optional[EngineConfig] = None) -> float:
    """1.0 for a fair book, falling linearly to 0.0 at the margin ceiling."""
    cfg = config or EngineConfig.default()
    if cfg.efficiency_margin_ceiling <= 0:
        return 0.0
    score = 1.0 - abs(overall_margin) / cfg.efficiency_margin_ceiling
    return max(0.0, min(score, 1.0))


def find_arbitrage_opportunities(market_odds: MarketOdds) -> List[ArbitrageOpportunity]:
    """Arbitrage on the match-result market and, when quoted, the 2.5 totals."""
    opportunities: List[ArbitrageOpportunity] = []

    markets = [(MATCH_RESULT, "Arbitrage on Match Result (1X2)", MATCH_RESULT_KEYS)]
    if market_odds.has_totals():
        markets.append((OVER_UNDER, "Arbitrage on Over/Under 2.5 Goals", (OVER_25, UNDER_25)))

    for market, description, keys in markets:
        quotes = [(k, market_odds.get(k), market_odds.bookmaker_for(k)) for k in keys]
        opp = build_opportunity(market, description, quotes)
        if opp is not None:
            opportunities.append(opp)

    return opportunities


# ---------------------------------------------------------------------------
# Advice and warnings
# ---------------------------------------------------------------------------

def generate_strategy_advice(
    recommendations: List[BetRecommendation],
    bankroll: float,
    arbitrage: Optional[List[ArbitrageOpportunity]] = None,
    config: Optional[EngineConfig] = None,
) -> List[StrategyAdvice]:
    """Staking strategy suggestions.

    ValueBetting and FixedStake are always present (FixedStake is always
    recommended).  KellyCriterion is offered only when some outcome carries
    a full Kelly stake above ``kelly_advice_min_edge``; it is marked not
    recommended above ``kelly_advice_max_edge``, which usually signals an
    overconfident model.  ArbitrageBetting appears when arbitrage exists.
    """
    cfg = config or EngineConfig.default()
    value_bets = [r for r in recommendations if r.is_value_bet]
    avg_ev = (
        sum(r.expected_value for r in value_bets) / len(value_bets) if value_bets else 0.0
    )

    advice = [StrategyAdvice(
        strategy="ValueBetting",
        recommended=bool(value_bets),
        reasoning=(
            f"Found {len(value_bets)} value bet(s) with average EV of {avg_ev:.2f}%"
            if value_bets else "No positive EV opportunities found"
        ),
        expected_return=avg_ev,
        risk_level="Low" if avg_ev > 10 else "Medium" if avg_ev > 5 else "High",
        bankroll_requirement=bankroll * 20,
    )]

    max_kelly = max((r.recommended_stake.kelly for r in recommendations), default=0.0)
    if max_kelly > cfg.kelly_advice_min_edge:
        too_high = max_kelly >= cfg.kelly_advice_max_edge
        advice.append(StrategyAdvice(
            strategy="KellyCriterion",
            recommended=not too_high,
            reasoning=(
                "Kelly stake too high - suggests either huge edge or overconfidence. "
                "Use fractional Kelly."
                if too_high else
                f"Kelly suggests {max_kelly * 100:.2f}% stake - optimal for long-term growth"
            ),
            expected_return=avg_ev,
            risk_level="High" if max_kelly > 0.15 else "Medium" if max_kelly > 0.05 else "Low",
            bankroll_requirement=bankroll * 30,
        ))

    advice.append(StrategyAdvice(
        strategy="FixedStake",
        recommended=True,
        reasoning="Conservative approach - good for beginners. Stake 1-2% of bankroll per bet.",
        expected_return=avg_ev * 0.8,
        risk_level="Low",
        bankroll_requirement=bankroll * 10,
    ))

    if arbitrage:
        best = max(arbitrage, key=lambda a: a.profit_percentage)
        advice.append(StrategyAdvice(
            strategy="ArbitrageBetting",
            recommended=True,
            reasoning=(
                f"Found {len(arbitrage)} arbitrage opportunit"
                f"{'y' if len(arbitrage) == 1 else 'ies'}; best locks in "
                f"{best.profit_percentage:.2f}% regardless of result"
            ),
            expected_return=best.profit_percentage,
            risk_level="Low",
            bankroll_requirement=bankroll,
        ))

    return advice


def generate_warnings(
    prediction: Prediction,
    margins: Dict[str, float],
    recommendations: List[BetRecommendation],
    top: List[BetRecommendation],
    bankroll: float,
    config: Optional[EngineConfig] = None,
) -> List[str]:
    cfg = config or EngineConfig.default()
    warnings: List[str] = []

    if margins["overall"] > cfg.high_margin_warning:
        warnings.append("High bookmaker margin detected - market is expensive")
    if not any(r.is_value_bet for r in recommendations):
        warnings.append("No value bets found - market prices exceed model probabilities")
    if prediction.confidence < cfg.min_confidence:
        warnings.append("Low model confidence - predictions may be unreliable")
    if any(r.risk_level == "Very High" for r in top):
        warnings.append("Some recommendations have very high risk")
    if bankroll < cfg.small_bankroll:
        warnings.append("Small bankroll - variance can be problematic")

    return warnings


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def analyze_betting_opportunities(
    prediction: Prediction,
    market_odds: MarketOdds,
    bankroll: float = DEFAULT_BANKROLL,
    config: Optional[EngineConfig] = None,
) -> BettingAnalysis:
    """
    Full analysis pass for one match.

    Args:
        prediction:  Model probabilities and confidence.
        market_odds: Decimal odds; match-result prices are required.
        bankroll:    Capital the fixed-amount stakes are sized against.
        config:      Decision thresholds (defaults to ``EngineConfig.default()``).

    Returns:
        BettingAnalysis with every evaluated recommendation (descending EV)
        and at most ``config.top_n`` value-flagged top recommendations.
    """
    cfg = config or EngineConfig.default()

    recommendations: List[BetRecommendation] = []
    recommendations.extend(analyze_match_result(prediction, market_odds, bankroll, cfg))
    recommendations.extend(analyze_totals(prediction, market_odds, bankroll, cfg))
    recommendations.extend(analyze_double_chance(prediction, market_odds, bankroll, cfg))

    arbitrage = find_arbitrage_opportunities(market_odds)
    arb_legs = {(a.market, leg.outcome) for a in arbitrage for leg in a.legs}
    for rec in recommendations:
        rec.is_arbitrage = (rec.bet_type, rec.outcome) in arb_legs

    recommendations.sort(key=lambda r: r.expected_value, reverse=True)
    value_bets = [r for r in recommendations if r.is_value_bet]
    top = value_bets[: cfg.top_n]

    overall_ev = (
        sum(r.expected_value for r in recommendations) / len(recommendations)
        if recommendations else 0.0
    )

    ev_by_type: Dict[str, float] = {}
    for rec in value_bets:
        ev_by_type[rec.bet_type] = ev_by_type.get(rec.bet_type, 0.0) + rec.expected_value
    best_bet_type = max(ev_by_type, key=ev_by_type.get) if ev_by_type else None

    margins = analyze_margins(market_odds)

    analysis = BettingAnalysis(
        prediction=prediction,
        market_odds=market_odds,
        recommendations=recommendations,
        top_recommendations=top,
        overall_ev=overall_ev,
        total_opportunities=len(value_bets),
        best_bet_type=best_bet_type,
        market_efficiency=market_efficiency(margins["overall"], cfg),
        margin_analysis=margins,
        arbitrage_opportunities=arbitrage,
        strategy_advice=generate_strategy_advice(recommendations, bankroll, arbitrage, cfg),
        warnings=generate_warnings(prediction, margins, recommendations, top, bankroll, cfg),
    )

    logger.debug(
        "Analysis %s vs %s: %d recommendations, %d value, %d arbitrage, margin %.2f%%",
        prediction.home_team,
        prediction.away_team,
        len(recommendations),
        len(value_bets),
        len(arbitrage),
        margins["overall"],
    )
    return analysis
