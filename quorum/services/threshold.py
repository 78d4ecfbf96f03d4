"""Threshold transition detection for a single date."""

from __future__ import annotations

from datetime import date

from quorum.domain.models import ThresholdTransition, TransitionType
from quorum.observability import get_logger
from quorum.services.aggregation import AvailabilityAggregator

logger = get_logger(__name__)

UNKNOWN_COUNT = -1


def classify_transition(
    previous_count: int, new_count: int, threshold: int
) -> TransitionType:
    """Classify a count change against ``threshold``.

    A negative ``previous_count`` means no baseline was available, in which
    case only ``threshold_reached`` can be reported; a loss is undetectable
    without knowing the earlier state.
    """
    now_met = new_count >= threshold
    if previous_count < 0:
        return TransitionType.THRESHOLD_REACHED if now_met else TransitionType.NONE

    was_met = previous_count >= threshold
    if not was_met and now_met:
        return TransitionType.THRESHOLD_REACHED
    if was_met and not now_met:
        return TransitionType.THRESHOLD_LOST
    return TransitionType.NONE


class ThresholdDetector:
    def __init__(self, aggregator: AvailabilityAggregator) -> None:
        self.aggregator = aggregator

    def current_count(self, calendar_id: str, day: date) -> int:
        return self.aggregator.simultaneous_count(calendar_id, day)

    def detect_transition(
        self,
        calendar_id: str,
        day: date,
        threshold: int,
        previous_count: int = UNKNOWN_COUNT,
    ) -> ThresholdTransition:
        new_count = self.current_count(calendar_id, day)
        transition_type = classify_transition(previous_count, new_count, threshold)

        log = logger.info if transition_type != TransitionType.NONE else logger.debug
        log(
            "threshold_transition_detected",
            calendar_id=calendar_id,
            date=day.isoformat(),
            transition=transition_type.value,
            previous_count=previous_count,
            new_count=new_count,
            threshold=threshold,
        )

        return ThresholdTransition(
            calendar_id=calendar_id,
            date=day,
            previous_count=previous_count,
            new_count=new_count,
            threshold=threshold,
            transition_type=transition_type,
        )
