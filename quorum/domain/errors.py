"""Domain errors raised by the availability and notification services."""

from __future__ import annotations


class QuorumError(Exception):
    """Base class for all domain errors."""

    default_message = "domain error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class CalendarNotFound(QuorumError):
    default_message = "calendar not found"


class ParticipantNotFound(QuorumError):
    default_message = "participant not found"


class InvalidDate(QuorumError):
    default_message = "invalid date format, expected YYYY-MM-DD"


class InvalidTime(QuorumError):
    default_message = "invalid time format, expected HH:MM"


class InvalidTimeRange(QuorumError):
    default_message = "end time must be after start time"


class TimeOutsideAllowedHours(QuorumError):
    default_message = "time range does not fit within allowed hours for this day"


class DurationTooShort(QuorumError):
    default_message = "availability duration is less than the minimum required"


class AvailabilityExists(QuorumError):
    default_message = "availability already exists for this date"


class AvailabilityNotFound(QuorumError):
    default_message = "availability not found"


class RecurrenceNotFound(QuorumError):
    default_message = "recurrence not found"


class RecurrenceOverlap(QuorumError):
    default_message = "recurrence overlaps with an existing recurrence on the same day"


class InvalidDayOfWeek(QuorumError):
    default_message = "day_of_week must be between 0 (Sunday) and 6 (Saturday)"


class WeekdayNotAllowed(QuorumError):
    default_message = "this day of the week is not allowed for this calendar"


class DateInPast(QuorumError):
    default_message = "cannot modify availability for past dates"


class InvalidVerificationToken(QuorumError):
    default_message = "invalid or expired verification token"


class EmailVerificationError(QuorumError):
    default_message = "email verification is not possible for this participant"


# ---------------------------------------------------------------------------
# Infrastructure errors (never surfaced to API callers as-is)
# ---------------------------------------------------------------------------


class DuplicateAvailabilityError(Exception):
    """Raised by storage when the (participant, date) uniqueness is violated."""


class ChannelError(Exception):
    """Raised by a notification channel when a send fails."""
