"""In-memory repositories for calendars, participants and availability data.

Every store guards its dict with a lock: notification handlers read from
background threads while request handlers write.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone

from quorum.domain.errors import DuplicateAvailabilityError
from quorum.domain.models import (
    Availability,
    Calendar,
    Channel,
    NotificationLogEntry,
    Participant,
    Recurrence,
    RecurrenceException,
    User,
)


class CalendarRepository:
    """Dict-backed store for Calendar snapshots, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Calendar] = {}
        self._lock = threading.Lock()

    def add(self, calendar: Calendar) -> None:
        with self._lock:
            self._store[calendar.id] = calendar

    def get(self, calendar_id: str) -> Calendar | None:
        with self._lock:
            return self._store.get(calendar_id)

    def get_by_token(self, token: str) -> Calendar | None:
        with self._lock:
            for calendar in self._store.values():
                if calendar.public_token == token:
                    return calendar
        return None


class UserRepository:
    def __init__(self) -> None:
        self._store: dict[str, User] = {}
        self._lock = threading.Lock()

    def add(self, user: User) -> None:
        with self._lock:
            self._store[user.id] = user

    def get(self, user_id: str) -> User | None:
        with self._lock:
            return self._store.get(user_id)


class ParticipantRepository:
    """Dict-backed store for Participant instances, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Participant] = {}
        self._lock = threading.Lock()

    def add(self, participant: Participant) -> None:
        with self._lock:
            self._store[participant.id] = participant

    def get(self, participant_id: str) -> Participant | None:
        with self._lock:
            return self._store.get(participant_id)

    def update(self, participant: Participant) -> None:
        with self._lock:
            self._store[participant.id] = participant

    def list_for_calendar(self, calendar_id: str) -> list[Participant]:
        with self._lock:
            return [p for p in self._store.values() if p.calendar_id == calendar_id]

    def get_by_verification_token(self, token: str) -> Participant | None:
        with self._lock:
            for participant in self._store.values():
                if participant.verification_token == token:
                    return participant
        return None


class AvailabilityRepository:
    """Explicit availability records, unique per (participant, date)."""

    def __init__(self) -> None:
        self._store: dict[str, Availability] = {}
        self._lock = threading.Lock()

    def add(self, availability: Availability) -> None:
        with self._lock:
            for existing in self._store.values():
                if (
                    existing.participant_id == availability.participant_id
                    and existing.date == availability.date
                ):
                    raise DuplicateAvailabilityError(
                        f"{availability.participant_id} already has {availability.date}"
                    )
            self._store[availability.id] = availability

    def get_for_participant_on(
        self, participant_id: str, day: date
    ) -> Availability | None:
        with self._lock:
            for availability in self._store.values():
                if availability.participant_id == participant_id and availability.date == day:
                    return availability
        return None

    def update(self, availability: Availability) -> None:
        with self._lock:
            self._store[availability.id] = availability

    def delete(self, availability_id: str) -> None:
        with self._lock:
            self._store.pop(availability_id, None)

    def list_for_participant(
        self,
        participant_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[Availability]:
        with self._lock:
            found = [
                a
                for a in self._store.values()
                if a.participant_id == participant_id
                and (start is None or a.date >= start)
                and (end is None or a.date <= end)
            ]
        return sorted(found, key=lambda a: a.date)

    def list_for_participants(
        self, participant_ids: Iterable[str], start: date, end: date
    ) -> list[Availability]:
        """Records of any of ``participant_ids`` dated within ``[start, end]``."""
        ids = set(participant_ids)
        with self._lock:
            found = [
                a
                for a in self._store.values()
                if a.participant_id in ids and start <= a.date <= end
            ]
        return sorted(found, key=lambda a: (a.date, a.created_at))


class RecurrenceRepository:
    """Weekly recurrences and their exceptions; deleting one cascades."""

    def __init__(self) -> None:
        self._store: dict[str, Recurrence] = {}
        self._exceptions: dict[str, RecurrenceException] = {}
        self._lock = threading.Lock()

    def add(self, recurrence: Recurrence) -> None:
        with self._lock:
            self._store[recurrence.id] = recurrence

    def get(self, recurrence_id: str) -> Recurrence | None:
        with self._lock:
            return self._store.get(recurrence_id)

    def update(self, recurrence: Recurrence) -> None:
        with self._lock:
            self._store[recurrence.id] = recurrence

    def delete(self, recurrence_id: str) -> None:
        with self._lock:
            self._store.pop(recurrence_id, None)
            for exc_id in [
                eid
                for eid, e in self._exceptions.items()
                if e.recurrence_id == recurrence_id
            ]:
                del self._exceptions[exc_id]

    def list_for_participant(self, participant_id: str) -> list[Recurrence]:
        with self._lock:
            found = [r for r in self._store.values() if r.participant_id == participant_id]
        return sorted(found, key=lambda r: (r.day_of_week, r.start_date))

    def list_for_participants(self, participant_ids: Iterable[str]) -> list[Recurrence]:
        ids = set(participant_ids)
        with self._lock:
            return [r for r in self._store.values() if r.participant_id in ids]

    def add_exception(self, exception: RecurrenceException) -> RecurrenceException:
        """Store ``exception`` unless that date is already excluded.

        Returns the stored exception, which is the existing one on a repeat.
        """
        with self._lock:
            for existing in self._exceptions.values():
                if (
                    existing.recurrence_id == exception.recurrence_id
                    and existing.excluded_date == exception.excluded_date
                ):
                    return existing
            self._exceptions[exception.id] = exception
            return exception

    def delete_exception(self, recurrence_id: str, excluded_date: date) -> bool:
        with self._lock:
            for exc_id, e in self._exceptions.items():
                if e.recurrence_id == recurrence_id and e.excluded_date == excluded_date:
                    del self._exceptions[exc_id]
                    return True
        return False

    def list_exceptions(self, recurrence_id: str) -> list[RecurrenceException]:
        with self._lock:
            found = [e for e in self._exceptions.values() if e.recurrence_id == recurrence_id]
        return sorted(found, key=lambda e: e.excluded_date)

    def excluded_dates(self, recurrence_ids: Iterable[str]) -> set[tuple[str, date]]:
        """``(recurrence_id, excluded_date)`` pairs for the given recurrences."""
        ids = set(recurrence_ids)
        with self._lock:
            return {
                (e.recurrence_id, e.excluded_date)
                for e in self._exceptions.values()
                if e.recurrence_id in ids
            }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationLogRepository:
    """Append-only log of sent notifications, used for anti-spam checks.

    ``clock`` is injectable so tests can move time forward.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._entries: list[NotificationLogEntry] = []
        self._lock = threading.Lock()
        self._clock = clock

    def was_sent_recently(
        self,
        calendar_id: str,
        day: date,
        event_type: str,
        recipient_id: str,
        channel: Channel,
        within: timedelta,
    ) -> bool:
        cutoff = self._clock() - within
        with self._lock:
            return any(
                e.calendar_id == calendar_id
                and e.date == day
                and e.event_type == event_type
                and e.recipient_id == recipient_id
                and e.channel == channel
                and e.sent_at > cutoff
                for e in self._entries
            )

    def log(self, entry: NotificationLogEntry) -> None:
        entry = entry.model_copy(update={"sent_at": self._clock()})
        with self._lock:
            self._entries.append(entry)

    def cleanup_older_than(self, retention: timedelta) -> int:
        """Drop entries older than ``retention``; returns how many were removed."""
        cutoff = self._clock() - retention
        with self._lock:
            kept = [e for e in self._entries if e.sent_at >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries = kept
        return removed

    def list_all(self) -> list[NotificationLogEntry]:
        with self._lock:
            return list(self._entries)
