"""Availability mutations flowing through the bus into notifications."""

from __future__ import annotations

from datetime import date

from quorum.domain.models import (
    ChannelConfig,
    CreateAvailabilityRequest,
    NotifyConfig,
    UpdateAvailabilityRequest,
    WebhookChannelConfig,
)

HOLIDAY = "2025-07-04"


def _watched_calendar(env):
    return env.make_calendar(
        threshold=3,
        notify_config=NotifyConfig(
            enabled=True,
            notify_owner=True,
            channels=ChannelConfig(
                discord=WebhookChannelConfig(
                    enabled=True, webhook_url="https://discord.test/hook"
                )
            ),
        ),
    )


def _join(env, calendar, name, start=None, end=None):
    participant = env.make_participant(calendar, name)
    env.availability.create_availability(
        calendar.public_token,
        participant.id,
        CreateAvailabilityRequest(date=HOLIDAY, start_time=start, end_time=end),
    )
    return participant


def test_threshold_reached_once_on_third_participant(env):
    cal = _watched_calendar(env)

    _join(env, cal, "Ana")
    _join(env, cal, "Ben")
    assert env.notifier.sent == []

    _join(env, cal, "Cleo")
    assert len(env.notifier.sent) == 1
    channel, text = env.notifier.sent[0]
    assert channel == "discord"
    assert "Threshold reached for 2025-07-04! (3/3 participants available)" in text

    _join(env, cal, "Dan")
    assert len(env.notifier.sent) == 1

    [entry] = env.notification_log.list_all()
    assert entry.date == date(2025, 7, 4)
    assert entry.event_type == "threshold_reached"


def test_threshold_lost_after_delete(env):
    cal = _watched_calendar(env)
    _join(env, cal, "Ana")
    _join(env, cal, "Ben")
    cleo = _join(env, cal, "Cleo")

    env.availability.delete_availability(cal.public_token, cleo.id, HOLIDAY)

    reached, lost = (text for _, text in env.notifier.sent)
    assert reached.startswith("\U0001f389")
    assert lost.startswith("⚠️")
    assert "Threshold lost for 2025-07-04 (2/3 participants)" in lost


def test_non_overlapping_times_do_not_reach_threshold(env):
    cal = _watched_calendar(env)
    _join(env, cal, "Ana", "08:00", "10:00")
    _join(env, cal, "Ben", "09:00", "11:00")
    _join(env, cal, "Cleo", "10:30", "12:00")

    assert env.notifier.sent == []
    summary = env.availability.get_date_summary(cal.public_token, HOLIDAY)
    assert summary.total_count == 2


def test_update_that_creates_overlap_reaches_threshold(env):
    cal = _watched_calendar(env)
    _join(env, cal, "Ana", "08:00", "10:00")
    _join(env, cal, "Ben", "09:00", "11:00")
    cleo = _join(env, cal, "Cleo", "10:30", "12:00")

    env.availability.update_availability(
        cal.public_token,
        cleo.id,
        HOLIDAY,
        UpdateAvailabilityRequest(start_time="09:30"),
    )

    assert len(env.notifier.sent) == 1
