"""Merge explicit availabilities with weekly recurrences into per-date views."""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from quorum.domain.models import ParticipantAvailabilitySummary
from quorum.repos.memory import (
    AvailabilityRepository,
    ParticipantRepository,
    RecurrenceRepository,
)
from quorum.services.recurrence import occurrence_dates
from quorum.services.simultaneous import max_simultaneous


class AvailabilityAggregator:
    """Read side shared by summaries, the threshold detector and notifications.

    For a given participant and date an explicit record always wins over a
    recurrence, and an excluded date suppresses the recurrence.
    """

    def __init__(
        self,
        participant_repo: ParticipantRepository,
        availability_repo: AvailabilityRepository,
        recurrence_repo: RecurrenceRepository,
    ) -> None:
        self.participant_repo = participant_repo
        self.availability_repo = availability_repo
        self.recurrence_repo = recurrence_repo

    def summaries_for_range(
        self, calendar_id: str, start: date, end: date
    ) -> dict[date, list[ParticipantAvailabilitySummary]]:
        """Contributions per date in ``[start, end]``; empty dates are omitted."""
        participants = {
            p.id: p for p in self.participant_repo.list_for_calendar(calendar_id)
        }
        by_date: dict[date, list[ParticipantAvailabilitySummary]] = defaultdict(list)
        explicit: set[tuple[str, date]] = set()

        for availability in self.availability_repo.list_for_participants(
            participants, start, end
        ):
            participant = participants[availability.participant_id]
            explicit.add((participant.id, availability.date))
            by_date[availability.date].append(
                ParticipantAvailabilitySummary(
                    participant_id=participant.id,
                    participant_name=participant.name,
                    start_time=availability.start_time,
                    end_time=availability.end_time,
                    note=availability.note,
                )
            )

        recurrences = self.recurrence_repo.list_for_participants(participants)
        excluded = self.recurrence_repo.excluded_dates(r.id for r in recurrences)
        for recurrence in recurrences:
            participant = participants[recurrence.participant_id]
            for day in occurrence_dates(recurrence, start, end):
                if (recurrence.id, day) in excluded:
                    continue
                if (participant.id, day) in explicit:
                    continue
                by_date[day].append(
                    ParticipantAvailabilitySummary(
                        participant_id=participant.id,
                        participant_name=participant.name,
                        start_time=recurrence.start_time,
                        end_time=recurrence.end_time,
                        note=recurrence.note,
                    )
                )

        return dict(sorted(by_date.items()))

    def summaries_for_date(
        self, calendar_id: str, day: date
    ) -> list[ParticipantAvailabilitySummary]:
        return self.summaries_for_range(calendar_id, day, day).get(day, [])

    def participant_ids_on(self, calendar_id: str, day: date) -> set[str]:
        return {
            s.participant_id
            for s in self.summaries_for_date(calendar_id, day)
            if s.participant_id is not None
        }

    def simultaneous_count(self, calendar_id: str, day: date) -> int:
        return max_simultaneous(self.summaries_for_date(calendar_id, day))
