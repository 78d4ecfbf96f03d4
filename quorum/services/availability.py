"""Availability and recurrence operations exposed to the public calendar API.

Every operation is addressed by the calendar's public token and, where it
acts on someone's data, a participant id that must belong to that calendar.
Mutations of explicit availabilities publish ``AvailabilityChanged`` so the
threshold check runs in the background and never delays the caller.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, timezone

from quorum.domain.bus import EventBus
from quorum.domain.errors import (
    AvailabilityExists,
    AvailabilityNotFound,
    DateInPast,
    DuplicateAvailabilityError,
    DurationTooShort,
    InvalidDate,
    InvalidDayOfWeek,
    InvalidTimeRange,
    RecurrenceNotFound,
    RecurrenceOverlap,
    TimeOutsideAllowedHours,
    WeekdayNotAllowed,
)
from quorum.domain.events import AvailabilityChanged
from quorum.domain.models import (
    Availability,
    AvailabilityItem,
    AvailabilityResponse,
    Calendar,
    CreateAvailabilityRequest,
    CreateExceptionRequest,
    CreateRecurrenceRequest,
    DateAvailabilitySummary,
    Participant,
    ParticipantAvailabilities,
    ParticipantAvailabilitySummary,
    ParticipantInfo,
    Recurrence,
    RecurrenceException,
    RecurrenceWithExceptions,
    ThresholdSegment,
    TimeWindow,
    UpdateAvailabilityRequest,
    UpdateRecurrenceRequest,
)
from quorum.observability import get_logger
from quorum.repos.memory import (
    AvailabilityRepository,
    CalendarRepository,
    ParticipantRepository,
    RecurrenceRepository,
)
from quorum.services import allowed_hours, datevalidation
from quorum.services.aggregation import AvailabilityAggregator
from quorum.services.datevalidation import HolidayProvider
from quorum.services.lookup import calendar_by_token, participant_in_calendar
from quorum.services.recurrence import recurrences_overlap
from quorum.services.simultaneous import (
    feasible_duration_hours,
    max_simultaneous,
    threshold_segments,
)
from quorum.services.threshold import UNKNOWN_COUNT
from quorum.services.times import (
    compare_times,
    duration_hours,
    normalize_time_range,
    parse_date,
    parse_time,
)

logger = get_logger(__name__)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _optional_time(value: str | None) -> str | None:
    """Validate a time field where ``None`` and ``""`` both mean unset."""
    if not value:
        return None
    return parse_time(value)


class AvailabilityService:
    def __init__(
        self,
        calendar_repo: CalendarRepository,
        participant_repo: ParticipantRepository,
        availability_repo: AvailabilityRepository,
        recurrence_repo: RecurrenceRepository,
        aggregator: AvailabilityAggregator,
        bus: EventBus,
        holidays: HolidayProvider | None = None,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        self.calendar_repo = calendar_repo
        self.participant_repo = participant_repo
        self.availability_repo = availability_repo
        self.recurrence_repo = recurrence_repo
        self.aggregator = aggregator
        self.bus = bus
        self.holidays = holidays
        self.today = today

    # ------------------------------------------------------------------
    # Explicit availabilities
    # ------------------------------------------------------------------

    def create_availability(
        self, token: str, participant_id: str, request: CreateAvailabilityRequest
    ) -> AvailabilityResponse:
        calendar, participant = self._resolve(token, participant_id)
        day = parse_date(request.date)
        self._check_not_past(day)
        self._check_in_calendar_range(calendar, day)
        if not datevalidation.is_date_allowed(
            day,
            calendar.timezone,
            calendar.allowed_weekdays,
            calendar.holidays_policy,
            calendar.allow_holiday_eves,
            self.holidays,
        ):
            raise WeekdayNotAllowed()

        start, end = self._fit_times(
            calendar,
            _optional_time(request.start_time),
            _optional_time(request.end_time),
            allowed_hours.resolve_window(day, calendar, self.holidays),
        )

        previous_count = self._previous_count(calendar, day)
        availability = Availability(
            participant_id=participant.id,
            date=day,
            start_time=start,
            end_time=end,
            note=request.note,
        )
        try:
            self.availability_repo.add(availability)
        except DuplicateAvailabilityError as exc:
            raise AvailabilityExists() from exc

        logger.info(
            "availability_created",
            calendar_id=calendar.id,
            participant_id=participant.id,
            date=day.isoformat(),
        )
        self._publish_change(calendar, day, previous_count)
        return self._to_response(availability, participant)

    def update_availability(
        self,
        token: str,
        participant_id: str,
        date_str: str,
        request: UpdateAvailabilityRequest,
    ) -> AvailabilityResponse:
        """Apply the fields present in ``request``; an empty time clears it."""
        calendar, participant = self._resolve(token, participant_id)
        day = parse_date(date_str)
        self._check_not_past(day)

        existing = self.availability_repo.get_for_participant_on(participant.id, day)
        if existing is None:
            raise AvailabilityNotFound()

        provided = request.model_fields_set
        start = existing.start_time
        end = existing.end_time
        if "start_time" in provided:
            start = _optional_time(request.start_time)
        if "end_time" in provided:
            end = _optional_time(request.end_time)

        start, end = self._fit_times(
            calendar,
            start,
            end,
            allowed_hours.resolve_window(day, calendar, self.holidays),
        )

        changes = {
            "start_time": start,
            "end_time": end,
            "updated_at": datetime.now(timezone.utc),
        }
        if "note" in provided:
            changes["note"] = request.note

        previous_count = self._previous_count(calendar, day)
        updated = existing.model_copy(update=changes)
        self.availability_repo.update(updated)

        logger.info(
            "availability_updated",
            calendar_id=calendar.id,
            participant_id=participant.id,
            date=day.isoformat(),
        )
        self._publish_change(calendar, day, previous_count)
        return self._to_response(updated, participant)

    def delete_availability(self, token: str, participant_id: str, date_str: str) -> None:
        calendar, participant = self._resolve(token, participant_id)
        day = parse_date(date_str)
        self._check_not_past(day)

        existing = self.availability_repo.get_for_participant_on(participant.id, day)
        if existing is None:
            raise AvailabilityNotFound()

        previous_count = self._previous_count(calendar, day)
        self.availability_repo.delete(existing.id)

        logger.info(
            "availability_deleted",
            calendar_id=calendar.id,
            participant_id=participant.id,
            date=day.isoformat(),
        )
        self._publish_change(calendar, day, previous_count)

    def get_participant_availabilities(
        self,
        token: str,
        participant_id: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> ParticipantAvailabilities:
        _, participant = self._resolve(token, participant_id)
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None

        records = self.availability_repo.list_for_participant(participant.id, start, end)
        return ParticipantAvailabilities(
            participant=ParticipantInfo(
                id=participant.id,
                name=participant.name,
                email=participant.email,
                email_verified=participant.email_verified,
            ),
            availabilities=[
                AvailabilityItem(
                    id=a.id,
                    date=a.date,
                    start_time=a.start_time,
                    end_time=a.end_time,
                    note=a.note,
                    created_at=a.created_at,
                    updated_at=a.updated_at,
                )
                for a in records
            ],
        )

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    def get_date_summary(self, token: str, date_str: str) -> DateAvailabilitySummary:
        calendar = calendar_by_token(self.calendar_repo, token)
        day = parse_date(date_str)
        entries = self.aggregator.summaries_for_date(calendar.id, day)
        return self._summarize(calendar, day, entries)

    def get_range_summary(
        self,
        token: str,
        start_date: str,
        end_date: str,
        requesting_participant_id: str | None = None,
    ) -> list[DateAvailabilitySummary]:
        """Per-date summaries over a range, omitting empty or too-short dates.

        With ``lock_participants`` set, every participant id except the
        requester's own is removed from the response.
        """
        calendar = calendar_by_token(self.calendar_repo, token)
        start = parse_date(start_date)
        end = parse_date(end_date)
        if end < start:
            raise InvalidDate("end date must not be before start date")

        summaries = []
        for day, entries in self.aggregator.summaries_for_range(
            calendar.id, start, end
        ).items():
            summary = self._summarize(calendar, day, entries)
            if summary.total_count == 0:
                continue
            summary.participants = self._mask(
                calendar, summary.participants, requesting_participant_id
            )
            summaries.append(summary)
        return summaries

    def get_threshold_windows(self, token: str, date_str: str) -> list[ThresholdSegment]:
        calendar = calendar_by_token(self.calendar_repo, token)
        day = parse_date(date_str)
        entries = self.aggregator.summaries_for_date(calendar.id, day)
        return threshold_segments(entries, calendar.threshold)

    # ------------------------------------------------------------------
    # Recurrences
    # ------------------------------------------------------------------

    def create_recurrence(
        self, token: str, participant_id: str, request: CreateRecurrenceRequest
    ) -> Recurrence:
        calendar, participant = self._resolve(token, participant_id)
        fields = self._recurrence_fields(calendar, participant, request, exclude_id=None)
        recurrence = Recurrence(participant_id=participant.id, **fields)
        self.recurrence_repo.add(recurrence)
        logger.info(
            "recurrence_created",
            calendar_id=calendar.id,
            participant_id=participant.id,
            day_of_week=recurrence.day_of_week,
        )
        return recurrence

    def update_recurrence(
        self,
        token: str,
        participant_id: str,
        recurrence_id: str,
        request: UpdateRecurrenceRequest,
    ) -> Recurrence:
        calendar, participant = self._resolve(token, participant_id)
        existing = self._owned_recurrence(participant, recurrence_id)
        fields = self._recurrence_fields(
            calendar, participant, request, exclude_id=existing.id
        )
        updated = existing.model_copy(update=fields)
        self.recurrence_repo.update(updated)
        logger.info(
            "recurrence_updated", calendar_id=calendar.id, recurrence_id=existing.id
        )
        return updated

    def delete_recurrence(
        self, token: str, participant_id: str, recurrence_id: str
    ) -> None:
        calendar, participant = self._resolve(token, participant_id)
        recurrence = self._owned_recurrence(participant, recurrence_id)
        self.recurrence_repo.delete(recurrence.id)
        logger.info(
            "recurrence_deleted", calendar_id=calendar.id, recurrence_id=recurrence.id
        )

    def get_participant_recurrences(
        self, token: str, participant_id: str
    ) -> list[RecurrenceWithExceptions]:
        _, participant = self._resolve(token, participant_id)
        return [
            RecurrenceWithExceptions(
                **r.model_dump(),
                exceptions=self.recurrence_repo.list_exceptions(r.id),
            )
            for r in self.recurrence_repo.list_for_participant(participant.id)
        ]

    def create_exception(
        self,
        token: str,
        participant_id: str,
        recurrence_id: str,
        request: CreateExceptionRequest,
    ) -> RecurrenceException:
        _, participant = self._resolve(token, participant_id)
        recurrence = self._owned_recurrence(participant, recurrence_id)
        excluded = parse_date(request.excluded_date)
        return self.recurrence_repo.add_exception(
            RecurrenceException(recurrence_id=recurrence.id, excluded_date=excluded)
        )

    def delete_exception(
        self, token: str, participant_id: str, recurrence_id: str, date_str: str
    ) -> None:
        _, participant = self._resolve(token, participant_id)
        recurrence = self._owned_recurrence(participant, recurrence_id)
        excluded = parse_date(date_str)
        if not self.recurrence_repo.delete_exception(recurrence.id, excluded):
            logger.debug(
                "recurrence_exception_absent",
                recurrence_id=recurrence.id,
                date=excluded.isoformat(),
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve(self, token: str, participant_id: str) -> tuple[Calendar, Participant]:
        calendar = calendar_by_token(self.calendar_repo, token)
        participant = participant_in_calendar(
            self.participant_repo, calendar, participant_id
        )
        return calendar, participant

    def _check_not_past(self, day: date) -> None:
        if day < self.today():
            raise DateInPast()

    @staticmethod
    def _check_in_calendar_range(calendar: Calendar, day: date) -> None:
        if calendar.start_date is not None and day < calendar.start_date:
            raise InvalidDate(
                f"date is before calendar start date ({calendar.start_date.isoformat()})"
            )
        if calendar.end_date is not None and day > calendar.end_date:
            raise InvalidDate(
                f"date is after calendar end date ({calendar.end_date.isoformat()})"
            )

    @staticmethod
    def _fit_times(
        calendar: Calendar,
        start: str | None,
        end: str | None,
        window: TimeWindow,
    ) -> tuple[str | None, str | None]:
        """Normalize, clamp into ``window`` and validate a time range.

        An empty range caused by clamping is reported as
        ``TimeOutsideAllowedHours``; one present in the request itself as
        ``InvalidTimeRange``.
        """
        start, end = normalize_time_range(start, end)
        if start and end and compare_times(start, end) == 0:
            raise InvalidTimeRange()

        adjusted_start, adjusted_end = allowed_hours.adjust_requested_times(
            start, end, window
        )
        if adjusted_start and adjusted_end:
            if compare_times(adjusted_start, adjusted_end) >= 0:
                raise TimeOutsideAllowedHours()
            if calendar.min_duration_hours > 0 and (
                duration_hours(adjusted_start, adjusted_end)
                < calendar.min_duration_hours
            ):
                raise DurationTooShort()
        return adjusted_start, adjusted_end

    def _previous_count(self, calendar: Calendar, day: date) -> int:
        try:
            return self.aggregator.simultaneous_count(calendar.id, day)
        except Exception:
            logger.warning(
                "previous_count_unavailable",
                calendar_id=calendar.id,
                date=day.isoformat(),
                exc_info=True,
            )
            return UNKNOWN_COUNT

    def _publish_change(self, calendar: Calendar, day: date, previous_count: int) -> None:
        self.bus.publish(
            AvailabilityChanged(
                calendar_id=calendar.id, date=day, previous_count=previous_count
            )
        )

    @staticmethod
    def _summarize(
        calendar: Calendar,
        day: date,
        entries: list[ParticipantAvailabilitySummary],
    ) -> DateAvailabilitySummary:
        if (
            entries
            and calendar.min_duration_hours > 0
            and feasible_duration_hours(entries) < calendar.min_duration_hours
        ):
            return DateAvailabilitySummary(date=day, total_count=0, participants=[])
        return DateAvailabilitySummary(
            date=day, total_count=max_simultaneous(entries), participants=entries
        )

    @staticmethod
    def _mask(
        calendar: Calendar,
        entries: list[ParticipantAvailabilitySummary],
        requesting_participant_id: str | None,
    ) -> list[ParticipantAvailabilitySummary]:
        if not calendar.lock_participants:
            return entries
        return [
            e
            if requesting_participant_id and e.participant_id == requesting_participant_id
            else e.model_copy(update={"participant_id": None})
            for e in entries
        ]

    def _owned_recurrence(self, participant: Participant, recurrence_id: str) -> Recurrence:
        recurrence = self.recurrence_repo.get(recurrence_id)
        if recurrence is None or recurrence.participant_id != participant.id:
            raise RecurrenceNotFound()
        return recurrence

    def _recurrence_fields(
        self,
        calendar: Calendar,
        participant: Participant,
        request: CreateRecurrenceRequest,
        exclude_id: str | None,
    ) -> dict:
        """Validate a recurrence request and return the fields to store."""
        dow = request.day_of_week
        if dow is None or not 0 <= dow <= 6:
            raise InvalidDayOfWeek()
        if not datevalidation.is_weekday_allowed(dow, calendar.allowed_weekdays):
            raise WeekdayNotAllowed()

        start_time = _optional_time(request.start_time)
        end_time = _optional_time(request.end_time)

        start_date = parse_date(request.start_date)
        end_date = parse_date(request.end_date) if request.end_date else None
        if end_date is not None and end_date < start_date:
            raise InvalidDate("end date must not be before start date")

        start_time, end_time = self._fit_times(
            calendar,
            start_time,
            end_time,
            allowed_hours.resolve_weekday_window(dow, calendar),
        )

        for other in self.recurrence_repo.list_for_participant(participant.id):
            if other.id == exclude_id or other.day_of_week != dow:
                continue
            if recurrences_overlap(start_date, end_date, other.start_date, other.end_date):
                raise RecurrenceOverlap()

        return {
            "day_of_week": dow,
            "start_time": start_time,
            "end_time": end_time,
            "note": request.note,
            "start_date": start_date,
            "end_date": end_date,
        }

    @staticmethod
    def _to_response(
        availability: Availability, participant: Participant
    ) -> AvailabilityResponse:
        return AvailabilityResponse(
            id=availability.id,
            participant_id=participant.id,
            participant_name=participant.name,
            date=availability.date,
            start_time=availability.start_time,
            end_time=availability.end_time,
            note=availability.note,
            created_at=availability.created_at,
            updated_at=availability.updated_at,
        )
