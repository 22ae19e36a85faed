"""
Odds monitor: per-match price history and the refresh → alert pipeline.

The engine has no odds-provider client of its own.  Fresh odds arrive
either pushed through :meth:`OddsMonitor.ingest` (e.g. from the HTTP
refresh endpoint) or pulled by :meth:`OddsMonitor.poll` from an injected
feed callable.  Each refresh:

    1. Records a snapshot and emits ``OddsMovement`` for every outcome
       whose price changed since the previous snapshot.
    2. Re-runs the betting analysis for the match.
    3. Passes the analysis and movements through the alert rule engine
       and dispatches whatever matches.

Design:
    - Runs as an APScheduler interval job (default: every 5 minutes).
    - Keeps a rolling window of the last 50 snapshots per match.
    - ``stop()`` removes the job; a poll already running finishes.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from apscheduler.triggers.interval import IntervalTrigger

from betedge.core.engine_config import EngineConfig
from betedge.models import DOUBLE_CHANCE_KEYS, TOTALS_KEYS, BettingAnalysis, MarketOdds, Prediction
from betedge.services.alerts import AlertRuleEngine, Clock, MatchedAlert, utcnow
from betedge.services.analysis import (
    DEFAULT_BANKROLL,
    DOUBLE_CHANCE,
    MATCH_RESULT,
    OVER_UNDER,
    analyze_betting_opportunities,
)
from betedge.services.dispatcher import AlertDispatcher

logger = logging.getLogger(__name__)

JOB_ID = "odds_monitor"


def market_of(outcome: str) -> str:
    if outcome in TOTALS_KEYS:
        return OVER_UNDER
    if outcome in DOUBLE_CHANCE_KEYS:
        return DOUBLE_CHANCE
    return MATCH_RESULT


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class OddsSnapshot:
    """Point-in-time capture of a match's odds."""

    match_id: str
    odds: MarketOdds
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class OddsMovement:
    """Price change for one outcome between two snapshots."""

    match_id: str
    bookmaker: str
    market: str
    outcome: str
    previous_odds: float
    current_odds: float
    change: float
    change_percent: float
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["timestamp"] = self.timestamp.isoformat()
        return d


@dataclass
class MatchFeedItem:
    """One match as delivered by a feed callable."""

    match_id: str
    prediction: Prediction
    odds: MarketOdds
    bankroll: Optional[float] = None


@dataclass
class IngestResult:
    match_id: str
    analysis: BettingAnalysis
    movements: List[OddsMovement]
    alerts_matched: int
    alerts_dispatched: int


Feed = Callable[[], Iterable[MatchFeedItem]]


# ---------------------------------------------------------------------------
# Core monitor
# ---------------------------------------------------------------------------

class OddsMonitor:
    """
    Tracks odds per match and turns refreshes into alerts.

    Usage::

        monitor = OddsMonitor(engine, dispatcher, feed=my_feed)
        monitor.on_significant_move(my_callback)
        monitor.schedule(scheduler, minutes=5)
    """

    HISTORY_SIZE = 50              # Snapshots kept per match
    MAX_TRACKED_MATCHES = 500      # Least recently updated match evicted past this
    SIGNIFICANT_MOVE_PCT = 5.0     # |change %| that fires callbacks

    def __init__(
        self,
        engine: Optional[AlertRuleEngine] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        feed: Optional[Feed] = None,
        bankroll: float = DEFAULT_BANKROLL,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine or AlertRuleEngine()
        self.dispatcher = dispatcher
        self.feed = feed
        self.bankroll = bankroll
        self.config = config or EngineConfig.default()
        self._clock = clock or utcnow

        self._history: Dict[str, List[OddsSnapshot]] = {}
        self._callbacks: List[Callable[[OddsMovement], None]] = []
        self._last_poll: Optional[datetime] = None
        self._scheduler = None
        self._job = None

    # ------------------------------------------------------------------
    # Callback registration
    # ------------------------------------------------------------------

    def on_significant_move(self, callback: Callable[[OddsMovement], None]) -> None:
        """Register a callback fired for each movement of at least 5%."""
        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Refresh pipeline
    # ------------------------------------------------------------------

    def record(self, match_id: str, odds: MarketOdds) -> List[OddsMovement]:
        """Store a snapshot and return movements against the previous one."""
        now = self._clock()
        # Re-inserted below so dict order tracks recency of updates
        snaps = self._history.pop(match_id, [])
        movements: List[OddsMovement] = []

        if snaps:
            prev = snaps[-1].odds.as_mapping()
            for outcome, price in odds.as_mapping().items():
                old = prev.get(outcome)
                if old is None or abs(price - old) < 1e-9:
                    continue
                change = price - old
                movements.append(OddsMovement(
                    match_id=match_id,
                    bookmaker=odds.bookmaker_for(outcome) or "best",
                    market=market_of(outcome),
                    outcome=outcome,
                    previous_odds=old,
                    current_odds=price,
                    change=change,
                    change_percent=change / old * 100.0 if old else 0.0,
                    timestamp=now,
                ))

        snaps.append(OddsSnapshot(match_id=match_id, odds=odds, timestamp=now))
        self._history[match_id] = snaps[-self.HISTORY_SIZE:]

        while len(self._history) > self.MAX_TRACKED_MATCHES:
            stale = next(iter(self._history))
            del self._history[stale]
            logger.debug("Odds monitor: evicted history for %s", stale)
        return movements

    def ingest(
        self,
        match_id: str,
        prediction: Prediction,
        odds: MarketOdds,
        bankroll: Optional[float] = None,
    ) -> IngestResult:
        """Record, analyse and alert for one odds refresh."""
        movements = self.record(match_id, odds)
        analysis = analyze_betting_opportunities(
            prediction, odds, bankroll if bankroll is not None else self.bankroll, self.config,
        )

        matched: List[MatchedAlert] = self.engine.evaluate_analysis(analysis)
        matched.extend(self.engine.evaluate_odds_movements(movements))
        dispatched = self.dispatcher.dispatch_all(matched) if self.dispatcher else 0

        for movement in movements:
            if abs(movement.change_percent) < self.SIGNIFICANT_MOVE_PCT:
                continue
            for cb in self._callbacks:
                try:
                    cb(movement)
                except Exception as exc:
                    logger.error("Odds monitor callback error: %s", exc)

        return IngestResult(
            match_id=match_id,
            analysis=analysis,
            movements=movements,
            alerts_matched=len(matched),
            alerts_dispatched=dispatched,
        )

    def poll(self) -> Dict:
        """
        Pull every match from the feed and ingest it.

        Returns a summary dict for logging / the admin status endpoint.
        """
        if self.feed is None:
            return {"status": "no_feed"}

        now = self._clock()
        try:
            items = list(self.feed())
        except Exception as exc:
            logger.error("Odds monitor poll failed: %s", exc)
            return {"status": "error", "error": str(exc)}

        movements = alerts = errors = 0
        for item in items:
            try:
                result = self.ingest(item.match_id, item.prediction, item.odds, item.bankroll)
            except Exception as exc:
                errors += 1
                logger.error("Odds monitor failed on %s: %s", item.match_id, exc, exc_info=True)
                continue
            movements += len(result.movements)
            alerts += result.alerts_dispatched

        # Drop history for matches no longer on the feed
        current_ids = {item.match_id for item in items}
        for mid in [m for m in self._history if m not in current_ids]:
            del self._history[mid]

        self._last_poll = now
        logger.info(
            "Odds monitor: %d matches, %d movements, %d alerts dispatched",
            len(items),
            movements,
            alerts,
        )
        return {
            "status": "ok",
            "matches": len(items),
            "movements_detected": movements,
            "alerts_dispatched": alerts,
            "errors": errors,
            "timestamp": now.isoformat(),
        }

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def schedule(self, scheduler, minutes: int = 5):
        """Add the poll job to an APScheduler scheduler."""
        self._scheduler = scheduler
        self._job = scheduler.add_job(
            self.poll,
            IntervalTrigger(minutes=minutes),
            id=JOB_ID,
            name="Odds monitor poll",
            replace_existing=True,
        )
        logger.info("Odds monitor scheduled every %d min", minutes)
        return self._job

    def stop(self) -> None:
        """Remove the poll job; a poll in progress is not interrupted."""
        if self._scheduler is not None and self._job is not None:
            self._scheduler.remove_job(JOB_ID)
            logger.info("Odds monitor stopped")
        self._job = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_odds_history(self, match_id: str) -> List[OddsSnapshot]:
        """Return all captured snapshots for a match."""
        return list(self._history.get(match_id, []))

    def get_status(self) -> Dict:
        """Return monitor status for the admin endpoint."""
        return {
            "active": self._job is not None,
            "feed_configured": self.feed is not None,
            "matches_tracked": len(self._history),
            "last_poll": self._last_poll.isoformat() if self._last_poll else None,
        }
