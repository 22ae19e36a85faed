"""
Outbound notification channels.

Payload builders are pure functions of an ``Alert`` so their shape can be
tested without network access.  ``NotificationService`` performs the
delivery: HTTP webhooks through ``requests``, email through SendGrid and
SMS through Twilio.  Every send is isolated: failures are caught, logged
with the channel and alert id, and reported as a ``NotificationResult``.

Public API:
  ChannelConfig.from_env()                    → ChannelConfig
  build_webhook_payload(alert)                → dict
  build_slack_payload(alert)                  → dict
  build_discord_payload(alert)                → dict
  build_telegram_payload(alert, chat_id)      → dict
  build_email(alert)                          → EmailMessage
  NotificationService.send(alert, channel)    → NotificationResult
  NotificationService.send_alert(alert, chs)  → List[NotificationResult]
"""

import html
import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests
from dotenv import load_dotenv

from betedge.services.alerts import Alert

load_dotenv()

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10  # seconds
TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"
FOOTER = "Betting Analytics"

OUTBOUND_CHANNELS = ("email", "webhook", "slack", "discord", "telegram", "sms")

SEVERITY_COLORS: Dict[str, str] = {
    "low": "#3b82f6",
    "medium": "#f59e0b",
    "high": "#ef4444",
    "critical": "#dc2626",
}

SLACK_EMOJI: Dict[str, str] = {
    "low": ":information_source:",
    "medium": ":warning:",
    "high": ":fire:",
    "critical": ":rotating_light:",
}

SEVERITY_ICONS: Dict[str, str] = {
    "low": "ℹ️",
    "medium": "⚠️",
    "high": "🔥",
    "critical": "🚨",
}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChannelConfig:
    """Credentials and destinations for outbound channels; unset means off."""

    email_to: Optional[str] = None
    email_from: str = "alerts@betedge.local"
    sendgrid_api_key: Optional[str] = None
    webhook_url: Optional[str] = None
    slack_webhook_url: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    twilio_to_number: Optional[str] = None
    browser_enabled: bool = True
    sound_enabled: bool = True

    @classmethod
    def from_env(cls) -> "ChannelConfig":
        return cls(
            email_to=os.getenv("ALERT_EMAIL"),
            email_from=os.getenv("ALERT_EMAIL_FROM", "alerts@betedge.local"),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
            webhook_url=os.getenv("ALERT_WEBHOOK_URL"),
            slack_webhook_url=os.getenv("SLACK_WEBHOOK_URL"),
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL"),
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID"),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
            twilio_from_number=os.getenv("TWILIO_FROM_NUMBER"),
            twilio_to_number=os.getenv("TWILIO_TO_NUMBER"),
            browser_enabled=os.getenv("ALERTS_BROWSER_ENABLED", "true").lower() == "true",
            sound_enabled=os.getenv("ALERTS_SOUND_ENABLED", "true").lower() == "true",
        )

    def is_configured(self, channel: str) -> bool:
        if channel == "email":
            return bool(self.sendgrid_api_key and self.email_to)
        if channel == "webhook":
            return bool(self.webhook_url)
        if channel == "slack":
            return bool(self.slack_webhook_url)
        if channel == "discord":
            return bool(self.discord_webhook_url)
        if channel == "telegram":
            return bool(self.telegram_bot_token and self.telegram_chat_id)
        if channel == "sms":
            return all([
                self.twilio_account_sid, self.twilio_auth_token,
                self.twilio_from_number, self.twilio_to_number,
            ])
        return False

    def configured_channels(self) -> List[str]:
        return [c for c in OUTBOUND_CHANNELS if self.is_configured(c)]


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    channel: str
    alert_id: str
    error: Optional[str] = None


@dataclass(frozen=True)
class EmailMessage:
    subject: str
    html: str
    text: str


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def _type_label(alert: Alert) -> str:
    return alert.type.replace("_", " ")


def build_webhook_payload(alert: Alert) -> dict:
    """Generic webhook body: ``{"type": "betting_alert", "alert": {...}}``."""
    return {
        "type": "betting_alert",
        "alert": {
            "id": alert.id,
            "timestamp": alert.timestamp.isoformat(),
            "type": alert.type,
            "severity": alert.severity,
            "title": alert.title,
            "message": alert.message,
            "data": alert.data,
        },
    }


def build_slack_payload(alert: Alert) -> dict:
    return {
        "text": f"{SLACK_EMOJI.get(alert.severity, '')} *{alert.title}*",
        "attachments": [
            {
                "color": SEVERITY_COLORS.get(alert.severity),
                "fields": [
                    {"title": "Message", "value": alert.message, "short": False},
                    {"title": "Severity", "value": alert.severity.upper(), "short": True},
                    {"title": "Type", "value": _type_label(alert), "short": True},
                ],
                "footer": FOOTER,
                "ts": int(alert.timestamp.timestamp()),
            }
        ],
    }


def build_discord_payload(alert: Alert) -> dict:
    color = SEVERITY_COLORS.get(alert.severity, "#000000")
    return {
        "embeds": [
            {
                "title": alert.title,
                "description": alert.message,
                "color": int(color.lstrip("#"), 16),
                "fields": [
                    {"name": "Severity", "value": alert.severity.upper(), "inline": True},
                    {"name": "Type", "value": _type_label(alert), "inline": True},
                ],
                "timestamp": alert.timestamp.isoformat(),
                "footer": {"text": FOOTER},
            }
        ],
    }


def build_telegram_payload(alert: Alert, chat_id: str) -> dict:
    text = (
        f"{SEVERITY_ICONS.get(alert.severity, '')} <b>{html.escape(alert.title)}</b>\n\n"
        f"{html.escape(alert.message)}\n\n"
        f"<i>Severity: {alert.severity.upper()}</i>\n"
        f"<i>Type: {_type_label(alert)}</i>\n"
        f"<i>Time: {alert.timestamp.isoformat()}</i>"
    )
    return {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}


def build_email(alert: Alert) -> EmailMessage:
    """Subject ``[SEVERITY] Title`` with HTML and plain-text bodies."""
    color = SEVERITY_COLORS.get(alert.severity, "#6b7280")
    details = json.dumps(alert.data, indent=2, default=str) if alert.data else ""
    when = alert.timestamp.isoformat()

    details_html = (
        '<h2 style="font-size:18px;color:#1f2937;">Details</h2>'
        f'<pre style="background:#f3f4f6;padding:15px;">{html.escape(details)}</pre>'
        if details else ""
    )
    body_html = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(alert.title)}</title></head>"
        "<body style=\"font-family:Arial,sans-serif;max-width:600px;margin:0 auto;\">"
        f"<div style=\"background:{color};color:white;padding:30px;text-align:center;\">"
        f"<h1 style=\"margin:0;\">{html.escape(alert.title)}</h1>"
        f"<p style=\"text-transform:uppercase;font-size:12px;\">"
        f"{alert.severity} &bull; {_type_label(alert)}</p></div>"
        "<div style=\"background:#f9fafb;padding:30px;\">"
        "<h2 style=\"font-size:18px;color:#1f2937;\">Message</h2>"
        f"<p>{html.escape(alert.message)}</p>"
        f"{details_html}"
        f"<p style=\"font-size:12px;color:#6b7280;\">Received at {when}</p>"
        f"<p style=\"font-size:11px;color:#9ca3af;\">{FOOTER} Alert System</p>"
        "</div></body></html>"
    )

    text = (
        f"{alert.title}\n"
        f"{'=' * len(alert.title)}\n\n"
        f"Severity: {alert.severity.upper()}\n"
        f"Type: {_type_label(alert)}\n"
        f"Time: {when}\n\n"
        f"Message:\n{alert.message}"
    )
    if details:
        text += f"\n\nDetails:\n{details}"
    text += f"\n\n---\n{FOOTER} Alert System"

    return EmailMessage(
        subject=f"[{alert.severity.upper()}] {alert.title}",
        html=body_html,
        text=text,
    )


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

class NotificationService:
    """
    Delivers alerts to outbound channels.

    Usage::

        service = NotificationService(ChannelConfig.from_env())
        results = service.send_alert(alert, ["slack", "email"])
    """

    def __init__(self, config: Optional[ChannelConfig] = None):
        self.config = config or ChannelConfig.from_env()

    def send_alert(
        self,
        alert: Alert,
        channels: Optional[Iterable[str]] = None,
    ) -> List[NotificationResult]:
        """Send to each channel independently; defaults to every configured one."""
        targets = list(channels) if channels is not None else self.config.configured_channels()
        return [self.send(alert, channel) for channel in targets]

    def send(self, alert: Alert, channel: str) -> NotificationResult:
        """Deliver ``alert`` on one channel; never raises."""
        if channel not in OUTBOUND_CHANNELS:
            return NotificationResult(False, channel, alert.id, "unknown channel")
        if not self.config.is_configured(channel):
            logger.debug("%s alerts not configured, skipping", channel)
            return NotificationResult(False, channel, alert.id, "not configured")

        try:
            getattr(self, f"_send_{channel}")(alert)
        except Exception as exc:
            logger.error("Alert dispatch failed (%s) for %s: %s", channel, alert.id, exc)
            return NotificationResult(False, channel, alert.id, str(exc))

        logger.info("Alert %s sent via %s", alert.id, channel)
        return NotificationResult(True, channel, alert.id)

    # ------------------------------------------------------------------
    # Transports
    # ------------------------------------------------------------------

    def _post(self, url: str, payload: dict) -> None:
        resp = requests.post(url, json=payload, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()

    def _send_webhook(self, alert: Alert) -> None:
        self._post(self.config.webhook_url, build_webhook_payload(alert))

    def _send_slack(self, alert: Alert) -> None:
        self._post(self.config.slack_webhook_url, build_slack_payload(alert))

    def _send_discord(self, alert: Alert) -> None:
        self._post(self.config.discord_webhook_url, build_discord_payload(alert))

    def _send_telegram(self, alert: Alert) -> None:
        url = TELEGRAM_API.format(token=self.config.telegram_bot_token)
        self._post(url, build_telegram_payload(alert, self.config.telegram_chat_id))

    def _send_email(self, alert: Alert) -> None:
        import sendgrid
        from sendgrid.helpers.mail import Mail

        email = build_email(alert)
        msg = Mail(
            from_email=self.config.email_from,
            to_emails=self.config.email_to,
            subject=email.subject,
            plain_text_content=email.text,
            html_content=email.html,
        )
        sendgrid.SendGridAPIClient(api_key=self.config.sendgrid_api_key).send(msg)

    def _send_sms(self, alert: Alert) -> None:
        from twilio.rest import Client

        body = f"BetEdge {alert.severity.upper()}: {alert.title} - {alert.message}"
        Client(self.config.twilio_account_sid, self.config.twilio_auth_token).messages.create(
            body=body[:160],
            from_=self.config.twilio_from_number,
            to=self.config.twilio_to_number,
        )
