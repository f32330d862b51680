"""Detection of unaccounted time before a new activity."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

from .clock import minutes_between
from .models import Activity, ActivityCategory, Gap

DEFAULT_GAP_THRESHOLD = timedelta(minutes=5)


def detect_gap(
    candidate_start: datetime,
    closed_activities: Iterable[Activity],
    threshold: timedelta = DEFAULT_GAP_THRESHOLD,
) -> Optional[Gap]:
    """Return the gap between the latest closed activity and ``candidate_start``.

    Only activities that ended at or before the candidate start are
    considered. An activity ending exactly at the candidate start makes the
    timeline contiguous, so it shadows any older activity.
    """
    last_end: Optional[datetime] = None
    for activity in closed_activities:
        if activity.is_ongoing or activity.end_time is None:
            continue
        if activity.end_time > candidate_start:
            continue
        if last_end is None or activity.end_time > last_end:
            last_end = activity.end_time

    if last_end is None:
        return None

    gap_minutes = minutes_between(last_end, candidate_start)
    if gap_minutes > threshold.total_seconds() / 60.0:
        return Gap(start_time=last_end, end_time=candidate_start, duration_minutes=gap_minutes)
    return None


def fill_gap(
    ledger,
    gap: Gap,
    description: str,
    category: Union[str, ActivityCategory] = ActivityCategory.OTHER,
) -> Activity:
    """Materialize ``gap`` as a closed activity spanning exactly its bounds."""
    return ledger.record(description, category, gap.start_time, gap.end_time)
