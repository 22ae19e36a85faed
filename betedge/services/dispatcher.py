"""
Alert dispatcher — rate-limited store and fan-out for matched alerts.

The dispatcher is an explicit, caller-owned object: construct one and pass
it to whatever needs it.  Its state (alert store, rate window, listeners)
is process-local with a single assumed consumer.

Dispatch pipeline for one ``MatchedAlert``:

    1. Disabled dispatcher → rejected.
    2. Rate window pruned to the last hour; at the cap → warning, rejected.
    3. Alert appended to the insertion-ordered store.
    4. Listeners notified in subscription order.
    5. Fan-out to the rule's channels.  ``console`` logs synchronously,
       ``browser``/``sound`` call registered sinks, and outbound channels
       are submitted to a thread pool so the caller never blocks on I/O.
"""

import logging
import os
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import timedelta
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv

from betedge.services.alerts import Alert, Clock, MatchedAlert, utcnow
from betedge.services.notifications import (
    OUTBOUND_CHANNELS,
    SEVERITY_ICONS,
    ChannelConfig,
    NotificationResult,
    NotificationService,
)

load_dotenv()

logger = logging.getLogger(__name__)
console_logger = logging.getLogger("betedge.alerts.console")

RATE_WINDOW = timedelta(hours=1)
DEFAULT_MAX_ALERTS_PER_HOUR = 20
DELIVERY_RESULT_BACKLOG = 100    # Finished delivery results kept for wait_for_deliveries()

_CONSOLE_LEVELS = {
    "low": logging.INFO,
    "medium": logging.INFO,
    "high": logging.WARNING,
    "critical": logging.CRITICAL,
}

Listener = Callable[[Alert], None]


class AlertDispatcher:
    """
    Stores accepted alerts and delivers them to channels.

    Usage::

        dispatcher = AlertDispatcher.from_env()
        unsubscribe = dispatcher.subscribe(print)
        dispatcher.dispatch_all(engine.evaluate_analysis(analysis))
    """

    def __init__(
        self,
        channel_config: Optional[ChannelConfig] = None,
        notifier: Optional[NotificationService] = None,
        max_alerts_per_hour: int = DEFAULT_MAX_ALERTS_PER_HOUR,
        rate_limit_enabled: bool = True,
        clock: Optional[Clock] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        enabled: bool = True,
    ):
        self.channel_config = channel_config or ChannelConfig()
        self._notifier = notifier or NotificationService(self.channel_config)
        self.max_alerts_per_hour = max_alerts_per_hour
        self.rate_limit_enabled = rate_limit_enabled
        self.enabled = enabled
        self._clock = clock or utcnow
        self._executor = executor
        self._owns_executor = executor is None

        self._alerts: Dict[str, Alert] = {}
        self._window: Deque = deque()
        self._listeners: List[Listener] = []
        self._sinks: Dict[str, Callable[[Alert], None]] = {}
        self._delivery_lock = threading.Lock()
        self._pending: Dict[Future, Tuple[str, str]] = {}
        self._results: Deque[NotificationResult] = deque(maxlen=DELIVERY_RESULT_BACKLOG)
        self._delivery_failures = 0

        self._accepted = 0
        self._rate_limited = 0
        self._rejected_disabled = 0

    @classmethod
    def from_env(cls, **kwargs) -> "AlertDispatcher":
        """Build from ``ALERTS_*`` environment variables and channel credentials."""
        return cls(
            channel_config=ChannelConfig.from_env(),
            max_alerts_per_hour=int(os.getenv("ALERTS_MAX_PER_HOUR", str(DEFAULT_MAX_ALERTS_PER_HOUR))),
            rate_limit_enabled=os.getenv("ALERTS_RATE_LIMIT_ENABLED", "true").lower() == "true",
            enabled=os.getenv("ALERTS_ENABLED", "true").lower() == "true",
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, matched: MatchedAlert) -> bool:
        """Run one alert through the pipeline; True when it was accepted."""
        alert = matched.alert
        if not self.enabled:
            self._rejected_disabled += 1
            return False

        now = self._clock()
        self._prune(now)
        if self.rate_limit_enabled and len(self._window) >= self.max_alerts_per_hour:
            self._rate_limited += 1
            logger.warning(
                "Alert rate limit reached (%d/hour), dropping %s alert %s",
                self.max_alerts_per_hour,
                alert.type,
                alert.id,
            )
            return False

        self._alerts[alert.id] = alert
        self._window.append(now)
        self._accepted += 1

        for listener in list(self._listeners):
            try:
                listener(alert)
            except Exception as exc:
                logger.error("Alert listener error for %s: %s", alert.id, exc)

        for channel in matched.rule.channels:
            self._deliver(alert, channel)

        return True

    def dispatch_all(self, matched: Iterable[MatchedAlert]) -> int:
        """Dispatch in order; returns the number accepted."""
        return sum(1 for m in matched if self.dispatch(m))

    def _prune(self, now) -> None:
        cutoff = now - RATE_WINDOW
        while self._window and self._window[0] <= cutoff:
            self._window.popleft()

    def _deliver(self, alert: Alert, channel: str) -> None:
        if channel == "console":
            self._send_console(alert)
        elif channel in ("browser", "sound"):
            self._send_local(alert, channel)
        elif channel in OUTBOUND_CHANNELS:
            future = self._get_executor().submit(self._notifier.send, alert, channel)
            with self._delivery_lock:
                self._pending[future] = (alert.id, channel)
            future.add_done_callback(self._collect)
        else:
            logger.warning("Unknown alert channel %r for %s", channel, alert.id)

    def _send_console(self, alert: Alert) -> None:
        level = _CONSOLE_LEVELS.get(alert.severity, logging.INFO)
        console_logger.log(
            level,
            "%s [%s] %s: %s",
            SEVERITY_ICONS.get(alert.severity, ""),
            alert.type,
            alert.title,
            alert.message,
        )

    def _send_local(self, alert: Alert, channel: str) -> None:
        enabled = (
            self.channel_config.browser_enabled if channel == "browser"
            else self.channel_config.sound_enabled
        )
        sink = self._sinks.get(channel)
        if not enabled or sink is None:
            return
        try:
            sink(alert)
        except Exception as exc:
            logger.error("Alert dispatch failed (%s) for %s: %s", channel, alert.id, exc)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="alert-delivery")
        return self._executor

    def _collect(self, future: Future) -> None:
        """Done-callback: move a finished delivery out of the pending map.

        Runs at most once per future; a second call is a no-op.
        """
        with self._delivery_lock:
            entry = self._pending.pop(future, None)
            if entry is None:
                return
            alert_id, channel = entry
            try:
                result = future.result()
            except Exception as exc:
                logger.error("Alert dispatch failed (%s) for %s: %s", channel, alert_id, exc)
                result = NotificationResult(False, channel, alert_id, str(exc))
            if not result.success:
                self._delivery_failures += 1
            self._results.append(result)

    def wait_for_deliveries(self, timeout: Optional[float] = None) -> List[NotificationResult]:
        """
        Wait for in-flight outbound deliveries and return the results
        collected since the last call.

        Only the most recent ``DELIVERY_RESULT_BACKLOG`` results are kept.
        Deliveries still running after ``timeout`` seconds stay pending and
        are returned by a later call.
        """
        with self._delivery_lock:
            in_flight = list(self._pending)
        if in_flight:
            done, _ = wait(in_flight, timeout=timeout)
            # wait() can return before the done-callbacks have run
            for future in done:
                self._collect(future)

        with self._delivery_lock:
            results = list(self._results)
            self._results.clear()
        return results

    def shutdown(self, wait_for_pending: bool = True) -> None:
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=wait_for_pending)
            self._executor = None

    # ------------------------------------------------------------------
    # Listeners and sinks
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def register_sink(self, channel: str, sink: Callable[[Alert], None]) -> None:
        """Attach the handler for an environment-bound channel (browser, sound)."""
        if channel not in ("browser", "sound"):
            raise ValueError(f"Sinks are only supported for browser and sound, not {channel!r}")
        self._sinks[channel] = sink

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    def get_alerts(
        self,
        unread_only: bool = False,
        types: Optional[Iterable[str]] = None,
        include_dismissed: bool = False,
    ) -> List[Alert]:
        """Stored alerts in insertion order."""
        wanted = set(types) if types else None
        return [
            a for a in self._alerts.values()
            if (include_dismissed or not a.dismissed)
            and (not unread_only or not a.read)
            and (wanted is None or a.type in wanted)
        ]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self._alerts.get(alert_id)

    def mark_as_read(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None:
            return False
        alert.read = True
        return True

    def mark_all_read(self) -> int:
        count = 0
        for alert in self._alerts.values():
            if not alert.read:
                alert.read = True
                count += 1
        return count

    def dismiss(self, alert_id: str) -> bool:
        alert = self._alerts.get(alert_id)
        if alert is None:
            return False
        alert.dismissed = True
        return True

    def clear_all(self) -> None:
        """Empty the store and reset the rate window."""
        self._alerts.clear()
        self._window.clear()

    def unread_count(self) -> int:
        return sum(1 for a in self._alerts.values() if not a.read and not a.dismissed)

    def get_status(self) -> Dict:
        """Dispatcher status for the admin endpoint."""
        self._prune(self._clock())
        return {
            "enabled": self.enabled,
            "stored": len(self._alerts),
            "unread": self.unread_count(),
            "accepted": self._accepted,
            "rate_limited": self._rate_limited,
            "rejected_disabled": self._rejected_disabled,
            "rate_limit_enabled": self.rate_limit_enabled,
            "max_alerts_per_hour": self.max_alerts_per_hour,
            "alerts_last_hour": len(self._window),
            "listeners": len(self._listeners),
            "pending_deliveries": len(self._pending),
            "delivery_failures": self._delivery_failures,
            "outbound_channels": self.channel_config.configured_channels(),
        }
