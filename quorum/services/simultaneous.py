"""Sweep-line counting of simultaneously available participants on one date.

Each participant contributes a closed ``[start, end]`` interval in minutes;
a missing time means the whole day (``00:00``-``23:59``). The day is cut at
every interval boundary and each cut segment is counted by the participants
whose interval fully covers it.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from quorum.domain.models import ThresholdSegment
from quorum.services.times import (
    DAY_END,
    DAY_START,
    from_minutes,
    is_valid_time,
    to_minutes,
)


class TimedEntry(Protocol):
    start_time: str | None
    end_time: str | None


def _interval(entry: TimedEntry) -> tuple[int, int] | None:
    start = entry.start_time or DAY_START
    end = entry.end_time or DAY_END
    if not (is_valid_time(start) and is_valid_time(end)):
        return None
    return to_minutes(start), to_minutes(end)


def _intervals(entries: Iterable[TimedEntry]) -> list[tuple[int, int]]:
    return [iv for iv in (_interval(e) for e in entries) if iv is not None]


def _segments(
    intervals: Sequence[tuple[int, int]], extra_cuts: Iterable[int] = ()
) -> list[tuple[int, int, int]]:
    """Return ``(seg_start, seg_end, count)`` for every consecutive cut pair."""
    cuts = sorted({b for iv in intervals for b in iv} | set(extra_cuts))
    segments = []
    for seg_start, seg_end in zip(cuts, cuts[1:]):
        count = sum(1 for s, e in intervals if s <= seg_start and e >= seg_end)
        segments.append((seg_start, seg_end, count))
    return segments


def max_simultaneous(entries: Iterable[TimedEntry]) -> int:
    """Largest number of participants available over a common sub-interval."""
    intervals = _intervals(entries)
    if not intervals:
        return 0
    return max((count for _, _, count in _segments(intervals)), default=0)


def threshold_segments(
    entries: Iterable[TimedEntry], threshold: int
) -> list[ThresholdSegment]:
    """Ranges of the day during which at least ``threshold`` people overlap.

    Adjacent qualifying segments are merged; ``max_count`` is the peak
    within each merged range.
    """
    intervals = _intervals(entries)
    if not intervals:
        return []

    day = (to_minutes(DAY_START), to_minutes(DAY_END))
    merged: list[list[int]] = []
    for seg_start, seg_end, count in _segments(intervals, day):
        if count < threshold:
            continue
        if merged and merged[-1][1] == seg_start:
            merged[-1][1] = seg_end
            merged[-1][2] = max(merged[-1][2], count)
        else:
            merged.append([seg_start, seg_end, count])

    return [
        ThresholdSegment(
            start_time=from_minutes(start),
            end_time=from_minutes(end),
            max_count=peak,
        )
        for start, end, peak in merged
    ]


def feasible_duration_hours(entries: Sequence[TimedEntry]) -> float:
    """Hours between the latest start and the earliest end among ``entries``.

    A day where nobody gave times counts as 24 hours; an empty intersection
    counts as zero.
    """
    starts = [to_minutes(e.start_time) for e in entries if e.start_time]
    ends = [to_minutes(e.end_time) for e in entries if e.end_time]
    if not starts or not ends:
        return 24.0
    minutes = min(ends) - max(starts)
    if minutes <= 0:
        return 0.0
    return minutes / 60.0
