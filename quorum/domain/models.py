"""Domain models for the shared availability calendar."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class HolidaysPolicy(StrEnum):
    IGNORE = "ignore"
    ALLOW = "allow"
    BLOCK = "block"


class AvailabilitySource(StrEnum):
    MANUAL = "manual"
    RECURRENCE = "recurrence"


class TransitionType(StrEnum):
    THRESHOLD_REACHED = "threshold_reached"
    THRESHOLD_LOST = "threshold_lost"
    NONE = "none"


class RecipientType(StrEnum):
    OWNER = "owner"
    PARTICIPANT = "participant"


class Channel(StrEnum):
    EMAIL = "email"
    DISCORD = "discord"
    SLACK = "slack"
    TELEGRAM = "telegram"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Calendar configuration
# ---------------------------------------------------------------------------


class TimeWindow(BaseModel):
    """An allowed-hours window; a missing side means unrestricted."""

    model_config = ConfigDict(frozen=True)

    start: str | None = None
    end: str | None = None

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


class AllowedHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Keyed by weekday, 0=Sunday .. 6=Saturday
    weekdays: dict[int, TimeWindow] = Field(default_factory=dict)
    holidays: TimeWindow = Field(default_factory=TimeWindow)
    holiday_eves: TimeWindow = Field(default_factory=TimeWindow)


class EmailChannelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False


class WebhookChannelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    webhook_url: str = ""


class TelegramChannelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


class ChannelConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: EmailChannelConfig = Field(default_factory=EmailChannelConfig)
    discord: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)
    slack: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)
    telegram: TelegramChannelConfig = Field(default_factory=TelegramChannelConfig)


class ReminderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    hours_before: int = Field(default=24, ge=1, le=168)


class NotifyConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    notify_owner: bool = False
    notify_participants: bool = False
    channels: ChannelConfig = Field(default_factory=ChannelConfig)
    reminders: ReminderConfig = Field(default_factory=ReminderConfig)


class Calendar(BaseModel):
    """Read-only snapshot of a calendar's configuration."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    owner_id: str
    name: str
    public_token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timezone: str = "UTC"
    allowed_weekdays: list[int] = Field(default_factory=lambda: list(range(7)))
    holidays_policy: HolidaysPolicy = HolidaysPolicy.IGNORE
    allow_holiday_eves: bool = False
    allowed_hours: AllowedHours = Field(default_factory=AllowedHours)
    min_duration_hours: int = Field(default=0, ge=0)
    threshold: int = Field(default=1, ge=1)
    lock_participants: bool = False
    start_date: date | None = None
    end_date: date | None = None
    notify_config: NotifyConfig | None = None


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    email: str
    display_name: str
    locale: str = "en"


class Participant(BaseModel):
    id: str = Field(default_factory=_new_id)
    calendar_id: str
    name: str
    email: str | None = None
    email_verified: bool = False
    locale: str = "en"
    verification_token: str | None = None
    verification_expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Availability records
# ---------------------------------------------------------------------------


class Availability(BaseModel):
    id: str = Field(default_factory=_new_id)
    participant_id: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = None
    source: AvailabilitySource = AvailabilitySource.MANUAL
    recurrence_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Recurrence(BaseModel):
    id: str = Field(default_factory=_new_id)
    participant_id: str
    day_of_week: int = Field(ge=0, le=6)
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = None
    start_date: date
    end_date: date | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class RecurrenceException(BaseModel):
    id: str = Field(default_factory=_new_id)
    recurrence_id: str
    excluded_date: date
    created_at: datetime = Field(default_factory=_utcnow)


class RecurrenceWithExceptions(Recurrence):
    exceptions: list[RecurrenceException] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class ThresholdTransition(BaseModel):
    model_config = ConfigDict(frozen=True)

    calendar_id: str
    date: date
    previous_count: int
    new_count: int
    threshold: int
    transition_type: TransitionType


class NotificationLogEntry(BaseModel):
    id: str = Field(default_factory=_new_id)
    calendar_id: str
    date: date
    event_type: str
    recipient_type: RecipientType
    recipient_id: str
    channel: Channel
    sent_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class CreateAvailabilityRequest(BaseModel):
    date: str
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = Field(default=None, max_length=1000)


class UpdateAvailabilityRequest(BaseModel):
    """Partial update; only fields present in the payload are applied.

    An empty string for ``start_time``/``end_time`` clears it (all day).
    """

    start_time: str | None = None
    end_time: str | None = None
    note: str | None = Field(default=None, max_length=1000)


class CreateRecurrenceRequest(BaseModel):
    day_of_week: int | None = None
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = Field(default=None, max_length=500)
    start_date: str
    end_date: str | None = None


class UpdateRecurrenceRequest(CreateRecurrenceRequest):
    pass


class CreateExceptionRequest(BaseModel):
    excluded_date: str


class AddEmailRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)


class AvailabilityResponse(BaseModel):
    id: str
    participant_id: str
    participant_name: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = None
    created_at: datetime
    updated_at: datetime


class AvailabilityItem(BaseModel):
    id: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = None
    created_at: datetime
    updated_at: datetime


class ParticipantInfo(BaseModel):
    id: str
    name: str
    email: str | None = None
    email_verified: bool = False


class ParticipantAvailabilities(BaseModel):
    participant: ParticipantInfo
    availabilities: list[AvailabilityItem] = Field(default_factory=list)


class ParticipantAvailabilitySummary(BaseModel):
    # None when masked by lock_participants
    participant_id: str | None = None
    participant_name: str
    start_time: str | None = None
    end_time: str | None = None
    note: str | None = None


class DateAvailabilitySummary(BaseModel):
    date: date
    total_count: int
    participants: list[ParticipantAvailabilitySummary] = Field(default_factory=list)


class ThresholdSegment(BaseModel):
    start_time: str
    end_time: str
    max_count: int
