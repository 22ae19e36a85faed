"""
Tests for the alert dispatcher: rate limiting, store, listeners and delivery
Run with: pytest tests/test_dispatcher.py -v
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from betedge.services.alerts import Alert, AlertRule, MatchedAlert
from betedge.services.dispatcher import DELIVERY_RESULT_BACKLOG, AlertDispatcher
from betedge.services.notifications import ChannelConfig, NotificationResult


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


_counter = 0


def _matched(alert_type="value_bet", channels=("console",), severity="medium"):
    global _counter
    _counter += 1
    alert = Alert(
        id=f"alert-{_counter}",
        timestamp=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        type=alert_type,
        severity=severity,
        title="Value Bet Found",
        message="Arsenal to Win - EV: 15.0% @ 2.30",
    )
    return MatchedAlert(alert=alert, rule=AlertRule(id="r", type=alert_type, channels=channels))


def _dispatcher(**kwargs):
    kwargs.setdefault("clock", FakeClock())
    kwargs.setdefault("notifier", MagicMock())
    return AlertDispatcher(**kwargs)


class TestDispatch:
    def test_accepts_and_stores(self):
        d = _dispatcher()
        first, second = _matched(), _matched()

        assert d.dispatch(first) is True
        assert d.dispatch(second) is True
        assert [a.id for a in d.get_alerts()] == [first.alert.id, second.alert.id]

    def test_disabled_rejects(self):
        d = _dispatcher(enabled=False)

        assert d.dispatch(_matched()) is False
        assert d.get_alerts() == []
        assert d.get_status()["rejected_disabled"] == 1

    def test_set_enabled(self):
        d = _dispatcher()
        d.set_enabled(False)
        assert d.dispatch(_matched()) is False
        d.set_enabled(True)
        assert d.dispatch(_matched()) is True

    def test_dispatch_all_counts_accepted(self):
        d = _dispatcher(max_alerts_per_hour=2)
        assert d.dispatch_all([_matched() for _ in range(3)]) == 2


class TestRateLimit:
    def test_cap_within_hour(self, caplog):
        d = _dispatcher(max_alerts_per_hour=3)

        with caplog.at_level(logging.WARNING, logger="betedge.services.dispatcher"):
            results = [d.dispatch(_matched()) for _ in range(4)]

        assert results == [True, True, True, False]
        assert len(d.get_alerts()) == 3
        assert "rate limit" in caplog.text
        assert d.get_status()["rate_limited"] == 1

    def test_window_slides(self):
        clock = FakeClock()
        d = _dispatcher(max_alerts_per_hour=2, clock=clock)
        d.dispatch(_matched())
        d.dispatch(_matched())
        assert d.dispatch(_matched()) is False

        clock.advance(minutes=61)
        assert d.dispatch(_matched()) is True

    def test_partial_window(self):
        clock = FakeClock()
        d = _dispatcher(max_alerts_per_hour=2, clock=clock)
        d.dispatch(_matched())
        clock.advance(minutes=40)
        d.dispatch(_matched())
        clock.advance(minutes=30)

        # Only the first alert has aged out
        assert d.dispatch(_matched()) is True
        assert d.dispatch(_matched()) is False

    def test_rate_limit_disabled(self):
        d = _dispatcher(max_alerts_per_hour=1, rate_limit_enabled=False)
        assert all(d.dispatch(_matched()) for _ in range(5))

    def test_clear_all_resets_window(self):
        d = _dispatcher(max_alerts_per_hour=1)
        d.dispatch(_matched())
        assert d.dispatch(_matched()) is False

        d.clear_all()

        assert d.get_alerts() == []
        assert d.dispatch(_matched()) is True


class TestListeners:
    def test_called_in_subscription_order(self):
        d = _dispatcher()
        calls = []
        d.subscribe(lambda a: calls.append(("first", a.id)))
        d.subscribe(lambda a: calls.append(("second", a.id)))

        m = _matched()
        d.dispatch(m)

        assert calls == [("first", m.alert.id), ("second", m.alert.id)]

    def test_unsubscribe(self):
        d = _dispatcher()
        listener = MagicMock()
        unsubscribe = d.subscribe(listener)
        unsubscribe()

        d.dispatch(_matched())

        listener.assert_not_called()

    def test_failing_listener_is_isolated(self, caplog):
        d = _dispatcher()
        after = MagicMock()
        d.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        d.subscribe(after)

        with caplog.at_level(logging.ERROR):
            assert d.dispatch(_matched()) is True

        after.assert_called_once()
        assert "boom" in caplog.text


class TestChannels:
    def test_console_logs(self, caplog):
        d = _dispatcher()
        with caplog.at_level(logging.INFO, logger="betedge.alerts.console"):
            d.dispatch(_matched())

        assert "Value Bet Found" in caplog.text
        assert "[value_bet]" in caplog.text

    def test_browser_sink(self):
        d = _dispatcher()
        sink = MagicMock()
        d.register_sink("browser", sink)

        m = _matched(channels=("browser",))
        d.dispatch(m)

        sink.assert_called_once_with(m.alert)

    def test_browser_sink_disabled_by_config(self):
        d = _dispatcher(channel_config=ChannelConfig(browser_enabled=False))
        sink = MagicMock()
        d.register_sink("browser", sink)

        d.dispatch(_matched(channels=("browser",)))

        sink.assert_not_called()

    def test_sink_only_for_local_channels(self):
        with pytest.raises(ValueError):
            _dispatcher().register_sink("slack", MagicMock())

    def test_outbound_delivery(self):
        notifier = MagicMock()
        notifier.send.side_effect = lambda alert, ch: NotificationResult(True, ch, alert.id)
        executor = ThreadPoolExecutor(max_workers=1)
        d = _dispatcher(notifier=notifier, executor=executor)

        m = _matched(channels=("console", "webhook", "slack"))
        assert d.dispatch(m) is True
        results = d.wait_for_deliveries(timeout=5)
        executor.shutdown()

        assert sorted(r.channel for r in results) == ["slack", "webhook"]
        assert all(r.success for r in results)
        notifier.send.assert_any_call(m.alert, "webhook")

    def test_outbound_failure_is_reported(self, caplog):
        notifier = MagicMock()
        notifier.send.side_effect = RuntimeError("network down")
        d = _dispatcher(notifier=notifier)

        m = _matched(channels=("webhook",))
        with caplog.at_level(logging.ERROR):
            assert d.dispatch(m) is True
            [result] = d.wait_for_deliveries(timeout=5)
        d.shutdown()

        assert result.success is False
        assert result.alert_id == m.alert.id
        assert "network down" in caplog.text
        assert d.get_alert(m.alert.id) is not None
        assert d.get_status()["delivery_failures"] == 1

    def test_unawaited_deliveries_do_not_accumulate(self):
        notifier = MagicMock()
        notifier.send.side_effect = lambda alert, ch: NotificationResult(True, ch, alert.id)
        executor = ThreadPoolExecutor(max_workers=2)
        d = _dispatcher(notifier=notifier, executor=executor, rate_limit_enabled=False)

        for _ in range(500):
            d.dispatch(_matched(channels=("webhook",)))
        executor.shutdown(wait=True)

        assert notifier.send.call_count == 500
        assert d.get_status()["pending_deliveries"] == 0
        assert len(d.wait_for_deliveries()) == DELIVERY_RESULT_BACKLOG


class TestStore:
    def test_mark_as_read(self):
        d = _dispatcher()
        m = _matched()
        d.dispatch(m)
        d.dispatch(_matched())

        assert d.mark_as_read(m.alert.id) is True
        assert d.unread_count() == 1
        assert len(d.get_alerts(unread_only=True)) == 1

    def test_unknown_ids(self):
        d = _dispatcher()
        assert d.get_alert("nope") is None
        assert d.mark_as_read("nope") is False
        assert d.dismiss("nope") is False

    def test_mark_all_read(self):
        d = _dispatcher()
        d.dispatch_all([_matched() for _ in range(3)])

        assert d.mark_all_read() == 3
        assert d.unread_count() == 0

    def test_dismiss_hides_alert(self):
        d = _dispatcher()
        m = _matched()
        d.dispatch(m)
        d.dispatch(_matched())

        d.dismiss(m.alert.id)

        assert m.alert.id not in [a.id for a in d.get_alerts()]
        assert m.alert.id in [a.id for a in d.get_alerts(include_dismissed=True)]

    def test_filter_by_type(self):
        d = _dispatcher()
        d.dispatch(_matched("value_bet"))
        d.dispatch(_matched("arbitrage"))

        assert [a.type for a in d.get_alerts(types=["arbitrage"])] == ["arbitrage"]


class TestStatusAndConfig:
    def test_status_keys(self):
        status = _dispatcher().get_status()
        for key in (
            "enabled", "stored", "unread", "accepted", "rate_limited",
            "max_alerts_per_hour", "alerts_last_hour", "listeners",
            "pending_deliveries", "outbound_channels",
        ):
            assert key in status

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("ALERTS_MAX_PER_HOUR", "5")
        monkeypatch.setenv("ALERTS_ENABLED", "false")
        monkeypatch.setenv("SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")

        d = AlertDispatcher.from_env(clock=FakeClock())

        assert d.max_alerts_per_hour == 5
        assert d.enabled is False
        assert "slack" in d.get_status()["outbound_channels"]
