"""Outbound notification channels: SMTP email and chat webhooks."""

from __future__ import annotations

import smtplib
import ssl
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from quorum.config import Settings
from quorum.domain.errors import ChannelError
from quorum.observability import get_logger

logger = get_logger(__name__)

NOTIFICATION_TITLE = "Quorum Calendar Notification"
DISCORD_EMBED_COLOR = 5814783
TELEGRAM_API_URL = "https://api.telegram.org"


class SMTPEmailSender:
    """Sends HTML email through the SMTP server configured in settings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def is_configured(self) -> bool:
        return self.settings.smtp_configured()

    def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.is_configured():
            raise ChannelError("SMTP is not configured")

        s = self.settings
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = s.smtp_from
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        try:
            if s.smtp_use_ssl:
                context = ssl.create_default_context()
                server = smtplib.SMTP_SSL(
                    s.smtp_host,
                    s.smtp_port,
                    context=context,
                    timeout=s.external_timeout_seconds,
                )
            else:
                server = smtplib.SMTP(
                    s.smtp_host, s.smtp_port, timeout=s.external_timeout_seconds
                )
                if s.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())

            with server:
                if s.smtp_username:
                    server.login(s.smtp_username, s.smtp_password or "")
                server.sendmail(s.smtp_from, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelError(f"SMTP send to {to} failed: {exc}") from exc

        logger.info("email_sent", to=to, subject=subject)


class WebhookNotifier:
    """Posts plain-text messages to Discord, Slack and Telegram.

    ``client`` is injectable; by default one is built with the configured
    timeout so a slow endpoint cannot hold a worker for long.
    """

    def __init__(
        self,
        settings: Settings,
        client: httpx.Client | None = None,
        telegram_api_url: str = TELEGRAM_API_URL,
    ) -> None:
        self._client = client or httpx.Client(timeout=settings.external_timeout_seconds)
        self._telegram_api_url = telegram_api_url.rstrip("/")

    def close(self) -> None:
        self._client.close()

    def send_discord(self, webhook_url: str, message: str) -> None:
        if not webhook_url:
            raise ChannelError("discord webhook URL not configured")
        payload = {
            "content": message,
            "embeds": [
                {
                    "title": NOTIFICATION_TITLE,
                    "description": message,
                    "color": DISCORD_EMBED_COLOR,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                }
            ],
        }
        self._post("discord", webhook_url, payload)

    def send_slack(self, webhook_url: str, message: str) -> None:
        if not webhook_url:
            raise ChannelError("slack webhook URL not configured")
        payload = {
            "text": message,
            "blocks": [
                {"type": "section", "text": {"type": "mrkdwn", "text": message}}
            ],
        }
        self._post("slack", webhook_url, payload)

    def send_telegram(self, bot_token: str, chat_id: str, message: str) -> None:
        if not bot_token or not chat_id:
            raise ChannelError("telegram bot token or chat id not configured")
        url = f"{self._telegram_api_url}/bot{bot_token}/sendMessage"
        payload = {"chat_id": chat_id, "text": message, "parse_mode": "Markdown"}
        self._post("telegram", url, payload)

    def _post(self, channel: str, url: str, payload: dict) -> None:
        try:
            response = self._client.post(url, json=payload)
        except httpx.RequestError as exc:
            raise ChannelError(f"{channel} request failed: {exc}") from exc

        if not response.is_success:
            raise ChannelError(f"{channel} returned status {response.status_code}")

        logger.info("webhook_sent", channel=channel)
