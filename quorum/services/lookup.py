"""Resolve the calendar and participant a public request refers to."""

from __future__ import annotations

from quorum.domain.errors import CalendarNotFound, ParticipantNotFound
from quorum.domain.models import Calendar, Participant
from quorum.repos.memory import CalendarRepository, ParticipantRepository


def calendar_by_token(calendar_repo: CalendarRepository, token: str) -> Calendar:
    calendar = calendar_repo.get_by_token(token)
    if calendar is None:
        raise CalendarNotFound()
    return calendar


def participant_in_calendar(
    participant_repo: ParticipantRepository, calendar: Calendar, participant_id: str
) -> Participant:
    """Fetch a participant, refusing one that belongs to another calendar."""
    participant = participant_repo.get(participant_id)
    if participant is None or participant.calendar_id != calendar.id:
        raise ParticipantNotFound()
    return participant
