"""Tests for availability, summary and recurrence operations."""

from __future__ import annotations

from datetime import date

import pytest

from quorum.domain.errors import (
    AvailabilityExists,
    AvailabilityNotFound,
    CalendarNotFound,
    DateInPast,
    DurationTooShort,
    InvalidDate,
    InvalidDayOfWeek,
    InvalidTime,
    InvalidTimeRange,
    ParticipantNotFound,
    RecurrenceNotFound,
    RecurrenceOverlap,
    TimeOutsideAllowedHours,
    WeekdayNotAllowed,
)
from quorum.domain.events import AvailabilityChanged
from quorum.domain.models import (
    AllowedHours,
    Availability,
    CreateAvailabilityRequest,
    CreateExceptionRequest,
    CreateRecurrenceRequest,
    HolidaysPolicy,
    TimeWindow,
    UpdateAvailabilityRequest,
    UpdateRecurrenceRequest,
)

TUESDAY = "2025-06-10"
NEXT_TUESDAY = "2025-06-17"
SATURDAY = "2025-06-07"


def _create(env, calendar, participant, day=TUESDAY, start=None, end=None, note=None):
    return env.availability.create_availability(
        calendar.public_token,
        participant.id,
        CreateAvailabilityRequest(date=day, start_time=start, end_time=end, note=note),
    )


def _recur(env, calendar, participant, dow=2, start_date="2025-06-01", **kw):
    return env.availability.create_recurrence(
        calendar.public_token,
        participant.id,
        CreateRecurrenceRequest(day_of_week=dow, start_date=start_date, **kw),
    )


# ---------------------------------------------------------------------------
# create_availability
# ---------------------------------------------------------------------------


def test_create_all_day(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, note="bring snacks")

    assert resp.participant_name == "Ana"
    assert resp.date == date(2025, 6, 10)
    assert resp.start_time is None and resp.end_time is None
    assert resp.note == "bring snacks"


def test_create_swaps_misordered_times(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, start="18:00", end="09:00")

    assert (resp.start_time, resp.end_time) == ("09:00", "18:00")
    stored = env.availability_repo.get_for_participant_on(ana.id, date(2025, 6, 10))
    assert (stored.start_time, stored.end_time) == ("09:00", "18:00")


def test_create_pads_single_digit_hours(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, start="9:30", end="11:00")

    assert resp.start_time == "09:30"


def test_create_clamps_into_allowed_hours(env):
    cal = env.make_calendar(
        allowed_hours=AllowedHours(weekdays={2: TimeWindow(start="09:00", end="17:00")})
    )
    ana = env.make_participant(cal, "Ana")

    clamped = _create(env, cal, ana, start="08:00", end="18:00")
    assert (clamped.start_time, clamped.end_time) == ("09:00", "17:00")


def test_create_all_day_becomes_window(env):
    cal = env.make_calendar(
        allowed_hours=AllowedHours(weekdays={2: TimeWindow(start="09:00", end="17:00")})
    )
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana)
    assert (resp.start_time, resp.end_time) == ("09:00", "17:00")


def test_create_on_holiday_without_holiday_hours_uses_weekday_window(env):
    cal = env.make_calendar(
        holidays_policy=HolidaysPolicy.ALLOW,
        allowed_hours=AllowedHours(weekdays={5: TimeWindow(start="18:00", end="23:00")}),
    )
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, day="2025-07-04", start="01:00", end="23:30")

    assert (resp.start_time, resp.end_time) == ("18:00", "23:00")


def test_create_on_holiday_eve_without_eve_hours_uses_weekday_window(env):
    cal = env.make_calendar(
        allow_holiday_eves=True,
        allowed_hours=AllowedHours(weekdays={4: TimeWindow(start="09:00", end="17:00")}),
    )
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, day="2025-07-03", start="06:00", end="22:00")

    assert (resp.start_time, resp.end_time) == ("09:00", "17:00")


def test_create_outside_allowed_hours_rejected(env):
    cal = env.make_calendar(
        allowed_hours=AllowedHours(weekdays={2: TimeWindow(start="09:00", end="17:00")})
    )
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(TimeOutsideAllowedHours):
        _create(env, cal, ana, start="18:00", end="20:00")


def test_create_equal_times_rejected(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(InvalidTimeRange):
        _create(env, cal, ana, start="10:00", end="10:00")


def test_create_below_min_duration_rejected(env):
    cal = env.make_calendar(min_duration_hours=2)
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(DurationTooShort):
        _create(env, cal, ana, start="09:00", end="10:00")
    assert _create(env, cal, ana, start="09:00", end="11:00").end_time == "11:00"


def test_create_duplicate_rejected(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _create(env, cal, ana)

    with pytest.raises(AvailabilityExists):
        _create(env, cal, ana, start="10:00", end="12:00")


def test_create_in_past_rejected(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(DateInPast):
        _create(env, cal, ana, day="2025-05-31")
    # today itself is fine
    assert _create(env, cal, ana, day="2025-06-01").date == date(2025, 6, 1)


def test_create_on_disallowed_weekday_rejected(env):
    cal = env.make_calendar(allowed_weekdays=[1, 2, 3, 4, 5])
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(WeekdayNotAllowed):
        _create(env, cal, ana, day=SATURDAY)


def test_create_on_blocked_holiday_rejected(env):
    cal = env.make_calendar(holidays_policy=HolidaysPolicy.BLOCK)
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(WeekdayNotAllowed):
        _create(env, cal, ana, day="2025-07-04")


def test_create_on_allowed_holiday_uses_holiday_window(env):
    cal = env.make_calendar(
        allowed_weekdays=[0, 6],
        holidays_policy=HolidaysPolicy.ALLOW,
        allowed_hours=AllowedHours(holidays=TimeWindow(start="12:00", end="22:00")),
    )
    ana = env.make_participant(cal, "Ana")

    resp = _create(env, cal, ana, day="2025-07-04")
    assert (resp.start_time, resp.end_time) == ("12:00", "22:00")


def test_create_outside_calendar_range_rejected(env):
    cal = env.make_calendar(start_date=date(2025, 6, 5), end_date=date(2025, 6, 30))
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(InvalidDate):
        _create(env, cal, ana, day="2025-07-01")
    with pytest.raises(InvalidDate):
        _create(env, cal, ana, day="2025-06-03")


def test_create_with_foreign_participant_rejected(env):
    cal = env.make_calendar()
    other = env.make_calendar(name="Other")
    stranger = env.make_participant(other, "Sam")

    with pytest.raises(ParticipantNotFound):
        _create(env, cal, stranger)


def test_create_with_unknown_token_rejected(env):
    env.make_calendar()

    with pytest.raises(CalendarNotFound):
        env.availability.create_availability(
            "nope", "whoever", CreateAvailabilityRequest(date=TUESDAY)
        )


@pytest.mark.parametrize(
    "day, start, error",
    [
        ("2025-13-01", None, InvalidDate),
        ("10/06/2025", None, InvalidDate),
        (TUESDAY, "25:00", InvalidTime),
        (TUESDAY, "9am", InvalidTime),
    ],
)
def test_create_with_malformed_input(env, day, start, error):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(error):
        _create(env, cal, ana, day=day, start=start, end="12:00" if start else None)


def test_create_publishes_change_with_previous_count(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    seen: list[AvailabilityChanged] = []
    env.bus.subscribe(AvailabilityChanged, seen.append)

    _create(env, cal, ana)
    _create(env, cal, ben)

    assert [e.previous_count for e in seen] == [0, 1]
    assert all(e.calendar_id == cal.id for e in seen)
    assert seen[0].date == date(2025, 6, 10)


# ---------------------------------------------------------------------------
# update / delete / list
# ---------------------------------------------------------------------------


def test_update_only_note_keeps_times(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _create(env, cal, ana, start="09:00", end="12:00", note="maybe")

    resp = env.availability.update_availability(
        cal.public_token, ana.id, TUESDAY, UpdateAvailabilityRequest(note="sure")
    )

    assert (resp.start_time, resp.end_time, resp.note) == ("09:00", "12:00", "sure")


def test_update_times_keeps_note(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _create(env, cal, ana, start="09:00", end="12:00", note="maybe")

    resp = env.availability.update_availability(
        cal.public_token,
        ana.id,
        TUESDAY,
        UpdateAvailabilityRequest(start_time="14:00", end_time="10:00"),
    )

    assert (resp.start_time, resp.end_time, resp.note) == ("10:00", "14:00", "maybe")


def test_update_empty_string_clears_time(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _create(env, cal, ana, start="09:00", end="12:00")

    resp = env.availability.update_availability(
        cal.public_token,
        ana.id,
        TUESDAY,
        UpdateAvailabilityRequest(start_time="", end_time=""),
    )

    assert resp.start_time is None and resp.end_time is None


def test_update_missing_record(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(AvailabilityNotFound):
        env.availability.update_availability(
            cal.public_token, ana.id, TUESDAY, UpdateAvailabilityRequest(note="x")
        )


def test_delete_then_list_is_empty(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _create(env, cal, ana)

    env.availability.delete_availability(cal.public_token, ana.id, TUESDAY)

    listing = env.availability.get_participant_availabilities(cal.public_token, ana.id)
    assert listing.availabilities == []
    with pytest.raises(AvailabilityNotFound):
        env.availability.delete_availability(cal.public_token, ana.id, TUESDAY)


def test_list_is_sorted_and_filterable(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    for day in ("2025-06-20", "2025-06-05", "2025-06-12"):
        _create(env, cal, ana, day=day)

    listing = env.availability.get_participant_availabilities(cal.public_token, ana.id)
    assert [a.date.isoformat() for a in listing.availabilities] == [
        "2025-06-05",
        "2025-06-12",
        "2025-06-20",
    ]
    assert listing.participant.name == "Ana"

    window = env.availability.get_participant_availabilities(
        cal.public_token, ana.id, start_date="2025-06-06", end_date="2025-06-20"
    )
    assert [a.date.isoformat() for a in window.availabilities] == [
        "2025-06-12",
        "2025-06-20",
    ]


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


def _seed(env, participant, day, start=None, end=None):
    env.availability_repo.add(
        Availability(
            participant_id=participant.id,
            date=date.fromisoformat(day),
            start_time=start,
            end_time=end,
        )
    )


def test_date_summary_counts_overlap(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    cleo = env.make_participant(cal, "Cleo")
    _seed(env, ana, TUESDAY, "09:00", "12:00")
    _seed(env, ben, TUESDAY, "11:00", "14:00")
    _seed(env, cleo, TUESDAY, "13:00", "15:00")

    summary = env.availability.get_date_summary(cal.public_token, TUESDAY)

    assert summary.total_count == 2
    assert {p.participant_name for p in summary.participants} == {"Ana", "Ben", "Cleo"}


def test_date_summary_hides_days_below_min_duration(env):
    cal = env.make_calendar(min_duration_hours=2)
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    _seed(env, ana, TUESDAY, "09:00", "11:00")
    _seed(env, ben, TUESDAY, "10:00", "12:00")

    summary = env.availability.get_date_summary(cal.public_token, TUESDAY)

    assert summary.total_count == 0
    assert summary.participants == []


def test_range_summary_omits_empty_and_filtered_dates(env):
    cal = env.make_calendar(min_duration_hours=2)
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    _seed(env, ana, "2025-06-10", "09:00", "11:00")
    _seed(env, ben, "2025-06-10", "10:00", "12:00")
    _seed(env, ana, "2025-06-12", "09:00", "17:00")

    summaries = env.availability.get_range_summary(
        cal.public_token, "2025-06-09", "2025-06-15"
    )

    assert [(s.date.isoformat(), s.total_count) for s in summaries] == [
        ("2025-06-12", 1)
    ]


def test_range_summary_rejects_inverted_range(env):
    cal = env.make_calendar()
    with pytest.raises(InvalidDate):
        env.availability.get_range_summary(cal.public_token, "2025-06-10", "2025-06-01")


def test_range_summary_masks_others_when_locked(env):
    cal = env.make_calendar(lock_participants=True)
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    _seed(env, ana, TUESDAY)
    _seed(env, ben, TUESDAY)

    [summary] = env.availability.get_range_summary(
        cal.public_token, TUESDAY, TUESDAY, requesting_participant_id=ana.id
    )
    ids = {p.participant_name: p.participant_id for p in summary.participants}
    assert ids == {"Ana": ana.id, "Ben": None}

    [anonymous] = env.availability.get_range_summary(cal.public_token, TUESDAY, TUESDAY)
    assert all(p.participant_id is None for p in anonymous.participants)
    assert anonymous.total_count == 2


def test_range_summary_unmasked_when_unlocked(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _seed(env, ana, TUESDAY)

    [summary] = env.availability.get_range_summary(cal.public_token, TUESDAY, TUESDAY)
    assert summary.participants[0].participant_id == ana.id


def test_threshold_windows(env):
    cal = env.make_calendar(threshold=2)
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    _seed(env, ana, TUESDAY, "09:00", "17:00")
    _seed(env, ben, TUESDAY, "12:00", "20:00")

    [window] = env.availability.get_threshold_windows(cal.public_token, TUESDAY)

    assert (window.start_time, window.end_time, window.max_count) == (
        "12:00",
        "17:00",
        2,
    )


# ---------------------------------------------------------------------------
# Recurrences and exceptions
# ---------------------------------------------------------------------------


def test_recurrence_shows_up_in_summaries(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _recur(env, cal, ana, start_time="18:00", end_time="21:00", note="weekly")

    summary = env.availability.get_date_summary(cal.public_token, TUESDAY)

    assert summary.total_count == 1
    [entry] = summary.participants
    assert (entry.start_time, entry.end_time, entry.note) == ("18:00", "21:00", "weekly")

    summaries = env.availability.get_range_summary(
        cal.public_token, "2025-06-01", "2025-06-30"
    )
    assert [s.date.isoformat() for s in summaries] == [
        "2025-06-03",
        "2025-06-10",
        "2025-06-17",
        "2025-06-24",
    ]


def test_explicit_record_wins_over_recurrence(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _recur(env, cal, ana, start_time="18:00", end_time="21:00")
    _create(env, cal, ana, start="10:00", end="11:00")

    summary = env.availability.get_date_summary(cal.public_token, TUESDAY)

    assert summary.total_count == 1
    [entry] = summary.participants
    assert (entry.start_time, entry.end_time) == ("10:00", "11:00")


def test_exception_suppresses_one_occurrence(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    rec = _recur(env, cal, ana)

    env.availability.create_exception(
        cal.public_token, ana.id, rec.id, CreateExceptionRequest(excluded_date=TUESDAY)
    )
    assert env.availability.get_date_summary(cal.public_token, TUESDAY).total_count == 0
    assert (
        env.availability.get_date_summary(cal.public_token, NEXT_TUESDAY).total_count
        == 1
    )

    env.availability.delete_exception(cal.public_token, ana.id, rec.id, TUESDAY)
    assert env.availability.get_date_summary(cal.public_token, TUESDAY).total_count == 1


def test_adding_exception_twice_is_idempotent(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    rec = _recur(env, cal, ana)
    request = CreateExceptionRequest(excluded_date=TUESDAY)

    first = env.availability.create_exception(cal.public_token, ana.id, rec.id, request)
    second = env.availability.create_exception(cal.public_token, ana.id, rec.id, request)

    assert first.id == second.id
    [listed] = env.availability.get_participant_recurrences(cal.public_token, ana.id)
    assert len(listed.exceptions) == 1


def test_deleting_missing_exception_is_a_no_op(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    rec = _recur(env, cal, ana)

    env.availability.delete_exception(cal.public_token, ana.id, rec.id, TUESDAY)


def test_overlapping_recurrence_same_weekday_rejected(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _recur(env, cal, ana, start_date="2025-01-01", end_date="2025-06-30")

    with pytest.raises(RecurrenceOverlap):
        _recur(env, cal, ana, start_date="2025-06-30")


def test_adjacent_and_other_weekday_recurrences_allowed(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    _recur(env, cal, ana, start_date="2025-01-01", end_date="2025-05-31")
    _recur(env, cal, ana, start_date="2025-06-01", end_date="2025-12-31")
    _recur(env, cal, ana, dow=3, start_date="2025-01-01")

    listed = env.availability.get_participant_recurrences(cal.public_token, ana.id)
    assert [(r.day_of_week, r.start_date.isoformat()) for r in listed] == [
        (2, "2025-01-01"),
        (2, "2025-06-01"),
        (3, "2025-01-01"),
    ]


def test_other_participants_do_not_conflict(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    _recur(env, cal, ana)
    _recur(env, cal, ben)


@pytest.mark.parametrize("dow", [None, -1, 7])
def test_invalid_day_of_week(env, dow):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(InvalidDayOfWeek):
        _recur(env, cal, ana, dow=dow)


def test_recurrence_on_disallowed_weekday_rejected(env):
    cal = env.make_calendar(allowed_weekdays=[1, 3, 5])
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(WeekdayNotAllowed):
        _recur(env, cal, ana, dow=2)


def test_recurrence_end_before_start_rejected(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")

    with pytest.raises(InvalidDate):
        _recur(env, cal, ana, start_date="2025-06-10", end_date="2025-06-01")


def test_recurrence_times_clamped_to_weekday_window(env):
    cal = env.make_calendar(
        allowed_hours=AllowedHours(weekdays={2: TimeWindow(start="09:00", end="17:00")})
    )
    ana = env.make_participant(cal, "Ana")

    rec = _recur(env, cal, ana, start_time="07:00", end_time="19:00")
    assert (rec.start_time, rec.end_time) == ("09:00", "17:00")


def test_update_recurrence_does_not_conflict_with_itself(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    rec = _recur(env, cal, ana)

    updated = env.availability.update_recurrence(
        cal.public_token,
        ana.id,
        rec.id,
        UpdateRecurrenceRequest(
            day_of_week=2,
            start_date="2025-06-01",
            start_time="19:00",
            end_time="22:00",
        ),
    )

    assert updated.id == rec.id
    assert (updated.start_time, updated.end_time) == ("19:00", "22:00")


def test_delete_recurrence_drops_exceptions(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    rec = _recur(env, cal, ana)
    env.availability.create_exception(
        cal.public_token, ana.id, rec.id, CreateExceptionRequest(excluded_date=TUESDAY)
    )

    env.availability.delete_recurrence(cal.public_token, ana.id, rec.id)

    assert env.recurrence_repo.list_exceptions(rec.id) == []
    assert env.availability.get_participant_recurrences(cal.public_token, ana.id) == []
    assert (
        env.availability.get_date_summary(cal.public_token, NEXT_TUESDAY).total_count
        == 0
    )


def test_recurrence_of_another_participant_is_not_found(env):
    cal = env.make_calendar()
    ana = env.make_participant(cal, "Ana")
    ben = env.make_participant(cal, "Ben")
    rec = _recur(env, cal, ana)

    with pytest.raises(RecurrenceNotFound):
        env.availability.delete_recurrence(cal.public_token, ben.id, rec.id)
