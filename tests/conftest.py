"""Shared fixtures: fresh repositories, a synchronous bus and fake channels."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from quorum.config import Settings
from quorum.domain.bus import EventBus
from quorum.domain.errors import ChannelError
from quorum.domain.handlers import HandlerRegistry
from quorum.domain.models import Calendar, Participant, User
from quorum.repos.memory import (
    AvailabilityRepository,
    CalendarRepository,
    NotificationLogRepository,
    ParticipantRepository,
    RecurrenceRepository,
    UserRepository,
)
from quorum.services.aggregation import AvailabilityAggregator
from quorum.services.availability import AvailabilityService
from quorum.services.datevalidation import StaticHolidays
from quorum.services.notify import NotifyService
from quorum.services.participant_email import ParticipantEmailService
from quorum.services.threshold import ThresholdDetector

TODAY = date(2025, 6, 1)
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

US_HOLIDAYS = StaticHolidays(
    {
        "US": {
            date(2025, 7, 4): "Independence Day",
            date(2025, 12, 25): "Christmas Day",
        }
    }
)


class FakeEmailSender:
    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.sent: list[tuple[str, str, str]] = []
        self.fail_for: set[str] = set()

    def is_configured(self) -> bool:
        return self.configured

    def send(self, to: str, subject: str, html_body: str) -> None:
        if to in self.fail_for:
            raise ChannelError(f"mailbox {to} unavailable")
        self.sent.append((to, subject, html_body))

    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.failing: set[str] = set()

    def _record(self, channel: str, message: str) -> None:
        if channel in self.failing:
            raise ChannelError(f"{channel} down")
        self.sent.append((channel, message))

    def send_discord(self, webhook_url: str, message: str) -> None:
        self._record("discord", message)

    def send_slack(self, webhook_url: str, message: str) -> None:
        self._record("slack", message)

    def send_telegram(self, bot_token: str, chat_id: str, message: str) -> None:
        self._record("telegram", message)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class Env:
    """Bag of wired collaborators plus small factories for test data."""

    def make_owner(self, **overrides) -> User:
        defaults = dict(email="owner@example.com", display_name="Olivia")
        defaults.update(overrides)
        owner = User(**defaults)
        self.user_repo.add(owner)
        return owner

    def make_calendar(self, owner: User | None = None, **overrides) -> Calendar:
        owner = owner or self.make_owner()
        defaults = dict(
            owner_id=owner.id, name="Board games", timezone="America/New_York"
        )
        defaults.update(overrides)
        calendar = Calendar(**defaults)
        self.calendar_repo.add(calendar)
        return calendar

    def make_participant(self, calendar: Calendar, name: str, **overrides) -> Participant:
        participant = Participant(calendar_id=calendar.id, name=name, **overrides)
        self.participant_repo.add(participant)
        return participant


@pytest.fixture()
def env():
    """Fresh bus + repos + services for each test."""
    settings = Settings(app_url="https://quorum.test", _env_file=None)
    clock = Clock(NOW)
    bus = EventBus()

    calendar_repo = CalendarRepository()
    user_repo = UserRepository()
    participant_repo = ParticipantRepository()
    availability_repo = AvailabilityRepository()
    recurrence_repo = RecurrenceRepository()
    notification_log = NotificationLogRepository(clock=clock)

    aggregator = AvailabilityAggregator(
        participant_repo, availability_repo, recurrence_repo
    )
    email_sender = FakeEmailSender()
    notifier = FakeNotifier()

    availability_service = AvailabilityService(
        calendar_repo=calendar_repo,
        participant_repo=participant_repo,
        availability_repo=availability_repo,
        recurrence_repo=recurrence_repo,
        aggregator=aggregator,
        bus=bus,
        holidays=US_HOLIDAYS,
        today=lambda: TODAY,
    )
    notify_service = NotifyService(
        calendar_repo=calendar_repo,
        participant_repo=participant_repo,
        user_repo=user_repo,
        notification_log=notification_log,
        aggregator=aggregator,
        detector=ThresholdDetector(aggregator),
        email_sender=email_sender,
        external_notifier=notifier,
        settings=settings,
    )
    participant_email_service = ParticipantEmailService(
        calendar_repo=calendar_repo,
        participant_repo=participant_repo,
        bus=bus,
        email_sender=email_sender,
        settings=settings,
        clock=clock,
    )
    registry = HandlerRegistry(
        bus=bus,
        notify_service=notify_service,
        participant_email_service=participant_email_service,
    )

    e = Env()
    e.settings = settings
    e.clock = clock
    e.bus = bus
    e.calendar_repo = calendar_repo
    e.user_repo = user_repo
    e.participant_repo = participant_repo
    e.availability_repo = availability_repo
    e.recurrence_repo = recurrence_repo
    e.notification_log = notification_log
    e.aggregator = aggregator
    e.email_sender = email_sender
    e.notifier = notifier
    e.availability = availability_service
    e.notify = notify_service
    e.participant_email = participant_email_service
    e.registry = registry
    return e

