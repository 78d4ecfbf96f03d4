"""Threshold notifications: recipient collection, anti-spam and dispatch."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, timedelta
from typing import Protocol

from pydantic import BaseModel

from quorum.config import Settings
from quorum.domain.errors import ChannelError
from quorum.domain.models import (
    Calendar,
    Channel,
    NotificationLogEntry,
    NotifyConfig,
    RecipientType,
    ThresholdTransition,
    TransitionType,
    User,
)
from quorum.observability import get_logger
from quorum.repos.memory import (
    CalendarRepository,
    NotificationLogRepository,
    ParticipantRepository,
    UserRepository,
)
from quorum.services import messages
from quorum.services.aggregation import AvailabilityAggregator
from quorum.services.threshold import ThresholdDetector

logger = get_logger(__name__)


class EmailSender(Protocol):
    def is_configured(self) -> bool: ...

    def send(self, to: str, subject: str, html_body: str) -> None: ...


class ExternalNotifier(Protocol):
    def send_discord(self, webhook_url: str, message: str) -> None: ...

    def send_slack(self, webhook_url: str, message: str) -> None: ...

    def send_telegram(self, bot_token: str, chat_id: str, message: str) -> None: ...


class EmailRecipient(BaseModel):
    email: str
    name: str
    locale: str = messages.DEFAULT_LOCALE
    # User id for the owner, participant id otherwise
    recipient_id: str
    participant_id: str | None = None
    is_owner: bool = False


class NotifyService:
    """Turns an availability change into deduplicated notifications.

    Chat channels go to the calendar owner only. Email goes to the owner and
    to verified participants available on the date, one message per address.
    """

    def __init__(
        self,
        calendar_repo: CalendarRepository,
        participant_repo: ParticipantRepository,
        user_repo: UserRepository,
        notification_log: NotificationLogRepository,
        aggregator: AvailabilityAggregator,
        detector: ThresholdDetector,
        email_sender: EmailSender,
        external_notifier: ExternalNotifier,
        settings: Settings,
    ) -> None:
        self.calendar_repo = calendar_repo
        self.participant_repo = participant_repo
        self.user_repo = user_repo
        self.notification_log = notification_log
        self.aggregator = aggregator
        self.detector = detector
        self.email_sender = email_sender
        self.external_notifier = external_notifier
        self.settings = settings

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(minutes=self.settings.notification_dedup_minutes)

    def check_threshold_and_notify(
        self, calendar_id: str, day: date, previous_count: int
    ) -> ThresholdTransition | None:
        """Detect a transition for ``day`` and notify if there is one.

        Returns the transition, or ``None`` when notifications are disabled
        for the calendar.
        """
        calendar = self.calendar_repo.get(calendar_id)
        if calendar is None:
            logger.warning("notify_calendar_missing", calendar_id=calendar_id)
            return None

        config = calendar.notify_config
        if config is None or not config.enabled:
            logger.debug("notify_disabled", calendar_id=calendar_id)
            return None

        transition = self.detector.detect_transition(
            calendar.id, day, calendar.threshold, previous_count
        )
        if transition.transition_type == TransitionType.NONE:
            return transition

        logger.info(
            "threshold_notification_dispatch",
            calendar_id=calendar.id,
            date=day.isoformat(),
            transition=transition.transition_type.value,
            new_count=transition.new_count,
            threshold=transition.threshold,
        )

        if config.notify_owner:
            self._notify_owner_external(calendar, config, transition)
        if config.notify_owner or config.notify_participants:
            self._send_emails(calendar, config, transition)

        return transition

    def cleanup_old_logs(self) -> int:
        removed = self.notification_log.cleanup_older_than(
            timedelta(days=self.settings.notification_retention_days)
        )
        logger.info("notification_log_cleanup", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def collect_email_recipients(
        self, calendar: Calendar, config: NotifyConfig, day: date
    ) -> list[EmailRecipient]:
        recipients: dict[str, EmailRecipient] = {}
        participants = self.participant_repo.list_for_calendar(calendar.id)

        if config.notify_owner:
            owner = self.user_repo.get(calendar.owner_id)
            if owner is None:
                logger.warning("notify_owner_missing", owner_id=calendar.owner_id)
            else:
                # Best effort: the owner's participant row shares their display name
                owner_participant = next(
                    (p for p in participants if p.name == owner.display_name), None
                )
                recipients[owner.email] = EmailRecipient(
                    email=owner.email,
                    name=owner.display_name,
                    locale=owner.locale,
                    recipient_id=owner.id,
                    participant_id=owner_participant.id if owner_participant else None,
                    is_owner=True,
                )

        if config.notify_participants:
            available = self.aggregator.participant_ids_on(calendar.id, day)
            for p in participants:
                if p.id not in available or not p.email or not p.email_verified:
                    continue
                if p.email in recipients:
                    continue
                recipients[p.email] = EmailRecipient(
                    email=p.email,
                    name=p.name,
                    locale=p.locale,
                    recipient_id=p.id,
                    participant_id=p.id,
                )

        return list(recipients.values())

    def participant_names_on(self, calendar_id: str, day: date) -> list[str]:
        available = self.aggregator.participant_ids_on(calendar_id, day)
        return [
            p.name
            for p in self.participant_repo.list_for_calendar(calendar_id)
            if p.id in available
        ]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _notify_owner_external(
        self, calendar: Calendar, config: NotifyConfig, transition: ThresholdTransition
    ) -> None:
        owner = self.user_repo.get(calendar.owner_id)
        if owner is None:
            logger.warning("notify_owner_missing", owner_id=calendar.owner_id)
            return

        text = messages.render_text(calendar.name, transition)
        notifier = self.external_notifier
        discord, slack, telegram = (
            config.channels.discord,
            config.channels.slack,
            config.channels.telegram,
        )

        pending: list[tuple[Channel, Callable[[], None]]] = []
        if discord.enabled and discord.webhook_url:
            pending.append(
                (Channel.DISCORD, lambda: notifier.send_discord(discord.webhook_url, text))
            )
        if slack.enabled and slack.webhook_url:
            pending.append(
                (Channel.SLACK, lambda: notifier.send_slack(slack.webhook_url, text))
            )
        if telegram.enabled and telegram.bot_token and telegram.chat_id:
            pending.append(
                (
                    Channel.TELEGRAM,
                    lambda: notifier.send_telegram(
                        telegram.bot_token, telegram.chat_id, text
                    ),
                )
            )

        for channel, send in pending:
            self._send_to_owner(calendar, transition, owner, channel, send)

    def _send_to_owner(
        self,
        calendar: Calendar,
        transition: ThresholdTransition,
        owner: User,
        channel: Channel,
        send: Callable[[], None],
    ) -> None:
        if self._recently_sent(transition, owner.id, channel):
            logger.debug(
                "notification_suppressed", channel=channel.value, recipient_id=owner.id
            )
            return
        try:
            send()
        except ChannelError:
            logger.exception(
                "notification_send_failed",
                calendar_id=calendar.id,
                channel=channel.value,
                recipient_id=owner.id,
            )
            return
        self._log_sent(transition, RecipientType.OWNER, owner.id, channel)

    def _send_emails(
        self, calendar: Calendar, config: NotifyConfig, transition: ThresholdTransition
    ) -> None:
        if not config.channels.email.enabled or not self.email_sender.is_configured():
            logger.debug("email_channel_unavailable", calendar_id=calendar.id)
            return

        recipients = self.collect_email_recipients(calendar, config, transition.date)
        names = self.participant_names_on(calendar.id, transition.date)
        logger.info(
            "email_recipients_collected",
            calendar_id=calendar.id,
            recipients=len(recipients),
        )

        for recipient in recipients:
            if self._recently_sent(transition, recipient.recipient_id, Channel.EMAIL):
                logger.debug(
                    "notification_suppressed",
                    channel=Channel.EMAIL.value,
                    recipient_id=recipient.recipient_id,
                )
                continue

            url = self._calendar_url(calendar, recipient.participant_id)
            body = messages.render_html(
                calendar.name,
                transition,
                url,
                recipient.locale,
                names,
                show_cancel=recipient.participant_id is not None,
            )
            try:
                self.email_sender.send(
                    recipient.email, messages.email_subject(recipient.locale), body
                )
            except ChannelError:
                logger.exception(
                    "notification_send_failed",
                    calendar_id=calendar.id,
                    channel=Channel.EMAIL.value,
                    recipient_id=recipient.recipient_id,
                )
                continue

            recipient_type = (
                RecipientType.OWNER if recipient.is_owner else RecipientType.PARTICIPANT
            )
            self._log_sent(transition, recipient_type, recipient.recipient_id, Channel.EMAIL)

    def _calendar_url(self, calendar: Calendar, participant_id: str | None) -> str:
        base = f"{self.settings.app_url.rstrip('/')}/c/{calendar.public_token}"
        return f"{base}/p/{participant_id}" if participant_id else base

    def _recently_sent(
        self, transition: ThresholdTransition, recipient_id: str, channel: Channel
    ) -> bool:
        try:
            return self.notification_log.was_sent_recently(
                transition.calendar_id,
                transition.date,
                transition.transition_type.value,
                recipient_id,
                channel,
                self.dedup_window,
            )
        except Exception:
            # Unknown history never blocks a send
            logger.exception(
                "notification_log_check_failed",
                calendar_id=transition.calendar_id,
                channel=channel.value,
                recipient_id=recipient_id,
            )
            return False

    def _log_sent(
        self,
        transition: ThresholdTransition,
        recipient_type: RecipientType,
        recipient_id: str,
        channel: Channel,
    ) -> None:
        entry = NotificationLogEntry(
            calendar_id=transition.calendar_id,
            date=transition.date,
            event_type=transition.transition_type.value,
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            channel=channel,
        )
        try:
            self.notification_log.log(entry)
        except Exception:
            logger.exception(
                "notification_log_write_failed",
                calendar_id=transition.calendar_id,
                channel=channel.value,
                recipient_id=recipient_id,
            )
