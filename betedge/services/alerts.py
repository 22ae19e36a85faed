"""
Alert rule engine — turns analysis results into alerts.

Stateless apart from its rule configuration: every ``evaluate_*`` call
returns the ``MatchedAlert`` list for its input and stores nothing.
Storage, rate limiting and delivery belong to
:class:`betedge.services.dispatcher.AlertDispatcher`.

Each alert type is gated by the first enabled ``AlertRule`` of that type.
A type without an enabled rule is dropped silently.

Public API:
  default_rules()                          → List[AlertRule]
  AlertRuleEngine.evaluate_analysis(a)     → List[MatchedAlert]
  AlertRuleEngine.evaluate_odds_movements  → List[MatchedAlert]
  AlertRuleEngine.evaluate_clv(clv)        → List[MatchedAlert]
  AlertRuleEngine.evaluate_bankroll(state) → List[MatchedAlert]
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from betedge.core.classifiers import risk_rank
from betedge.core.engine_config import INEFFICIENT_MARKET_THRESHOLD
from betedge.models import BetRecommendation, BettingAnalysis

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

VALUE_BET = "value_bet"
STRONG_VALUE_BET = "strong_value_bet"
ARBITRAGE = "arbitrage"
ODDS_MOVEMENT = "odds_movement"
CLOSING_LINE = "closing_line"
BANKROLL_THRESHOLD = "bankroll_threshold"
PROFIT_TARGET = "profit_target"
STOP_LOSS = "stop_loss"
MODEL_CONFIDENCE = "model_confidence"
MARKET_INEFFICIENCY = "market_inefficiency"

ALERT_TYPES = (
    VALUE_BET, STRONG_VALUE_BET, ARBITRAGE, ODDS_MOVEMENT, CLOSING_LINE,
    BANKROLL_THRESHOLD, PROFIT_TARGET, STOP_LOSS, MODEL_CONFIDENCE,
    MARKET_INEFFICIENCY,
)

SEVERITIES = ("low", "medium", "high", "critical")

CHANNELS = (
    "console", "browser", "sound", "email", "webhook",
    "slack", "discord", "telegram", "sms",
)

#: Odds movement (%) at or above which a movement alert is high severity.
HIGH_MOVEMENT_PCT = 10.0
#: CLV (%) at or above which a CLV alert is high severity.
HIGH_CLV_PCT = 5.0
#: Bankroll (% of starting) at which the profit target fires when the rule sets none.
DEFAULT_PROFIT_TARGET_PCT = 150.0


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AlertConditions:
    """Threshold conditions; ``None`` means the condition is not applied."""

    min_ev: Optional[float] = None
    min_confidence: Optional[float] = None
    max_risk: Optional[str] = None
    min_odds_movement: Optional[float] = None
    min_clv: Optional[float] = None
    bankroll_threshold: Optional[float] = None   # percent of starting bankroll


@dataclass(frozen=True)
class AlertRule:
    id: str
    type: str
    enabled: bool = True
    conditions: AlertConditions = field(default_factory=AlertConditions)
    channels: Tuple[str, ...] = ("console",)
    priority: str = "medium"


@dataclass
class Alert:
    id: str
    timestamp: datetime
    type: str
    severity: str
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    read: bool = False
    dismissed: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": self.read,
            "dismissed": self.dismissed,
        }


@dataclass(frozen=True)
class MatchedAlert:
    """An alert together with the rule that let it through."""

    alert: Alert
    rule: AlertRule


def default_rules() -> List[AlertRule]:
    """Rule set used when none is configured."""
    return [
        AlertRule(
            id="value-bet",
            type=VALUE_BET,
            conditions=AlertConditions(min_ev=2.0, min_confidence=0.6),
            channels=("console", "browser"),
            priority="medium",
        ),
        AlertRule(
            id="strong-value-bet",
            type=STRONG_VALUE_BET,
            conditions=AlertConditions(min_ev=5.0, min_confidence=0.7),
            channels=("console", "browser", "sound"),
            priority="high",
        ),
        AlertRule(
            id="arbitrage",
            type=ARBITRAGE,
            channels=("console", "browser", "sound"),
            priority="critical",
        ),
        AlertRule(
            id="odds-movement",
            type=ODDS_MOVEMENT,
            conditions=AlertConditions(min_odds_movement=5.0),
            channels=("console",),
            priority="low",
        ),
        AlertRule(
            id="closing-line",
            type=CLOSING_LINE,
            conditions=AlertConditions(min_clv=2.0),
            channels=("console", "browser"),
            priority="medium",
        ),
        AlertRule(
            id="stop-loss",
            type=STOP_LOSS,
            conditions=AlertConditions(bankroll_threshold=80.0),
            channels=("console", "browser", "sound"),
            priority="critical",
        ),
        AlertRule(
            id="market-inefficiency",
            type=MARKET_INEFFICIENCY,
            channels=("console",),
            priority="medium",
        ),
        AlertRule(
            id="profit-target",
            type=PROFIT_TARGET,
            enabled=False,
            conditions=AlertConditions(bankroll_threshold=DEFAULT_PROFIT_TARGET_PCT),
            channels=("console", "browser"),
            priority="low",
        ),
        AlertRule(
            id="model-confidence",
            type=MODEL_CONFIDENCE,
            enabled=False,
            conditions=AlertConditions(min_confidence=0.6),
            channels=("console",),
            priority="medium",
        ),
    ]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class AlertRuleEngine:
    """
    Matches analysis output against a fixed rule list.

    Usage::

        engine = AlertRuleEngine()
        matched = engine.evaluate_analysis(analysis)
        dispatcher.dispatch_all(matched)
    """

    def __init__(
        self,
        rules: Optional[Sequence[AlertRule]] = None,
        clock: Optional[Clock] = None,
    ):
        self.rules: List[AlertRule] = list(rules) if rules is not None else default_rules()
        self._clock = clock or utcnow

    # ------------------------------------------------------------------
    # Rule lookup
    # ------------------------------------------------------------------

    def find_rule(self, alert_type: str) -> Optional[AlertRule]:
        """First enabled rule of ``alert_type``, or None."""
        for rule in self.rules:
            if rule.type == alert_type and rule.enabled:
                return rule
        return None

    def _make(
        self,
        rule: Optional[AlertRule],
        severity: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[MatchedAlert]:
        if rule is None:
            return None
        alert = Alert(
            id=f"alert-{uuid.uuid4().hex[:12]}",
            timestamp=self._clock(),
            type=rule.type,
            severity=severity,
            title=title,
            message=message,
            data=data or {},
        )
        return MatchedAlert(alert=alert, rule=rule)

    @staticmethod
    def _passes(rule: AlertRule, rec: BetRecommendation) -> bool:
        c = rule.conditions
        if c.min_ev is not None and rec.expected_value < c.min_ev:
            return False
        if c.min_confidence is not None and rec.confidence < c.min_confidence:
            return False
        if c.max_risk is not None and risk_rank(rec.risk_level) > risk_rank(c.max_risk):
            return False
        return True

    # ------------------------------------------------------------------
    # Evaluators
    # ------------------------------------------------------------------

    def evaluate_analysis(self, analysis: BettingAnalysis) -> List[MatchedAlert]:
        """
        Alerts for one analysis pass, in this order:

          1. strong_value_bet / value_bet per top recommendation
          2. arbitrage per opportunity
          3. market_inefficiency when efficiency < 0.7
          4. model_confidence when the prediction is below the rule's floor

        A strongly-flagged bet that fails the strong rule's conditions is
        still considered for a plain value alert.
        """
        out: List[Optional[MatchedAlert]] = []
        strong_rule = self.find_rule(STRONG_VALUE_BET)
        value_rule = self.find_rule(VALUE_BET)

        for rec in analysis.top_recommendations:
            message = f"{rec.description} - EV: {rec.expected_value:.1f}% @ {rec.market_odds:.2f}"
            if rec.is_strong_value and strong_rule and self._passes(strong_rule, rec):
                out.append(self._make(
                    strong_rule, "high", "Strong Value Bet Detected!", message, rec.to_dict(),
                ))
            elif rec.is_value_bet and value_rule and self._passes(value_rule, rec):
                out.append(self._make(
                    value_rule, "medium", "Value Bet Found", message, rec.to_dict(),
                ))

        arb_rule = self.find_rule(ARBITRAGE)
        for arb in analysis.arbitrage_opportunities:
            out.append(self._make(
                arb_rule,
                "critical",
                "Arbitrage Opportunity!",
                f"{arb.description} - Guaranteed {arb.profit_percentage:.2f}% profit",
                arb.to_dict(),
            ))

        if analysis.market_efficiency < INEFFICIENT_MARKET_THRESHOLD:
            out.append(self._make(
                self.find_rule(MARKET_INEFFICIENCY),
                "medium",
                "Inefficient Market Detected",
                f"Market efficiency: {analysis.market_efficiency * 100:.1f}% "
                "- Good opportunity for value betting",
                {
                    "market_efficiency": analysis.market_efficiency,
                    "margin_analysis": dict(analysis.margin_analysis),
                },
            ))

        conf_rule = self.find_rule(MODEL_CONFIDENCE)
        if conf_rule is not None:
            floor = conf_rule.conditions.min_confidence
            confidence = analysis.prediction.confidence
            if floor is not None and confidence < floor:
                out.append(self._make(
                    conf_rule,
                    "medium",
                    "Low Model Confidence",
                    f"{analysis.prediction.home_team} vs {analysis.prediction.away_team}: "
                    f"confidence {confidence:.0%} below {floor:.0%}",
                    {"confidence": confidence, "min_confidence": floor},
                ))

        matched = [m for m in out if m is not None]
        logger.debug(
            "%s vs %s: %d alert(s) matched",
            analysis.prediction.home_team,
            analysis.prediction.away_team,
            len(matched),
        )
        return matched

    def evaluate_odds_movements(self, movements: Iterable[Any]) -> List[MatchedAlert]:
        """One alert per movement whose |change_percent| clears the rule minimum."""
        rule = self.find_rule(ODDS_MOVEMENT)
        if rule is None:
            return []

        minimum = rule.conditions.min_odds_movement
        if minimum is None:
            minimum = 5.0

        out = []
        for mv in movements:
            size = abs(mv.change_percent)
            if size < minimum:
                continue
            sign = "+" if mv.change_percent >= 0 else ""
            out.append(self._make(
                rule,
                "high" if size >= HIGH_MOVEMENT_PCT else "medium",
                "Significant Odds Movement",
                f"{mv.bookmaker} - {mv.outcome}: {mv.previous_odds:.2f} → "
                f"{mv.current_odds:.2f} ({sign}{mv.change_percent:.1f}%)",
                mv.to_dict(),
            ))
        return out

    def evaluate_clv(self, clv: Any) -> List[MatchedAlert]:
        """Alert when a bet beat the closing line by at least the rule minimum."""
        rule = self.find_rule(CLOSING_LINE)
        if rule is None or clv is None:
            return []

        minimum = rule.conditions.min_clv
        if minimum is None:
            minimum = 2.0
        if clv.clv < minimum:
            return []

        return [self._make(
            rule,
            "high" if clv.clv >= HIGH_CLV_PCT else "medium",
            "Positive CLV!",
            f"{clv.outcome} - Beat closing line by {clv.clv:.1f}% ({clv.clv_rating})",
            clv.to_dict(),
        )]

    def evaluate_bankroll(self, state: Any) -> List[MatchedAlert]:
        """
        Bankroll alerts from a ledger snapshot.

        ``stop_loss`` (critical) when current/starting falls to the rule's
        threshold (default 80%); ``bankroll_threshold`` (high) when it falls
        below that rule's threshold; ``profit_target`` (low) at 150% or the
        rule's own threshold.
        """
        if state.starting_bankroll <= 0:
            return []

        pct = state.current_bankroll / state.starting_bankroll * 100.0
        data = {
            "current_bankroll": state.current_bankroll,
            "starting_bankroll": state.starting_bankroll,
            "percentage": pct,
        }
        out: List[Optional[MatchedAlert]] = []

        stop = self.find_rule(STOP_LOSS)
        if stop is not None:
            threshold = stop.conditions.bankroll_threshold or 80.0
            if pct <= threshold:
                out.append(self._make(
                    stop, "critical", "Stop Loss Alert",
                    f"Bankroll at {pct:.1f}% of starting value. Consider stopping.",
                    data,
                ))

        low = self.find_rule(BANKROLL_THRESHOLD)
        if low is not None and low.conditions.bankroll_threshold is not None:
            if pct < low.conditions.bankroll_threshold:
                out.append(self._make(
                    low, "high", "Bankroll Below Threshold",
                    f"Bankroll at {pct:.1f}% of starting value "
                    f"(threshold {low.conditions.bankroll_threshold:.0f}%)",
                    data,
                ))

        target = self.find_rule(PROFIT_TARGET)
        if target is not None:
            goal = target.conditions.bankroll_threshold or DEFAULT_PROFIT_TARGET_PCT
            if pct >= goal:
                out.append(self._make(
                    target, "low", "Profit Target Reached!",
                    f"Bankroll at {pct:.1f}% - Great performance!",
                    data,
                ))

        return [m for m in out if m is not None]
