"""The activity ledger: a per-day, non-overlapping history of activities.

Every mutation builds a candidate copy of the ledger, applies its change to
the copy, checks the ledger invariants against it and only then swaps it in.
A rejected mutation therefore never leaves partial state behind:

* at most one activity in the whole ledger is ongoing;
* a closed activity carries ``end_time`` and a non-negative ``duration``;
* an activity lives under the day key of its ``start_time`` and stays there;
* a started or recorded activity does not overlap any existing one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .clock import day_key, minutes_between, now, parse_instant
from .errors import InvalidStateTransition, NotFoundError, ValidationError
from .models import DESCRIPTION_MAX_LENGTH, Activity, ActivityCategory, DayData

logger = logging.getLogger(__name__)

Listener = Callable[["ActivityLedger"], None]

_EDITABLE_FIELDS = frozenset(
    {"description", "category", "start_time", "end_time", "is_ongoing"}
)


def validate_description(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("description must be a non-empty string")
    description = value.strip()
    if len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"description must be at most {DESCRIPTION_MAX_LENGTH} characters"
        )
    return description


def validate_category(value: Any) -> ActivityCategory:
    try:
        return ActivityCategory(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown category {value!r}") from exc


def validate_instant(value: Any, name: str) -> datetime:
    if not isinstance(value, (str, datetime)):
        raise ValidationError(f"{name} must be an ISO 8601 timestamp")
    return parse_instant(value)  # type: ignore[return-value]


class ActivityLedger:
    """Owns all activities; the single writer for the activity timeline."""

    def __init__(
        self,
        days: Optional[Iterable[DayData]] = None,
        clock: Callable[[], datetime] = now,
    ) -> None:
        self._clock = clock
        self._days: dict[str, DayData] = {}
        self._listeners: list[Listener] = []
        if days:
            candidate = _index(days)
            _check_invariants(candidate)
            self._days = candidate

    # -- listeners ---------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` after every committed mutation."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- queries -----------------------------------------------------------

    def activities_for_day(self, day: Union[str, date]) -> list[Activity]:
        key = day if isinstance(day, str) else day_key(day)
        data = self._days.get(key)
        if data is None:
            return []
        return [replace(a) for a in sorted(data.activities, key=lambda a: a.start_time)]

    def ongoing_activity(self) -> Optional[Activity]:
        found = _find_ongoing(self._days)
        return replace(found) if found else None

    def closed_activities(self) -> list[Activity]:
        return [
            replace(activity)
            for data in self._days.values()
            for activity in data.activities
            if not activity.is_ongoing
        ]

    def get(self, activity_id: str) -> Activity:
        _, activity = _locate(self._days, activity_id)
        return replace(activity)

    def days(self) -> list[DayData]:
        return [
            DayData(date=key, activities=self.activities_for_day(key))
            for key in sorted(self._days)
        ]

    def dates_with_data(self) -> list[str]:
        return sorted(key for key, data in self._days.items() if data.activities)

    def __len__(self) -> int:
        return sum(len(data.activities) for data in self._days.values())

    # -- mutations ---------------------------------------------------------

    def start(
        self,
        description: str,
        category: Union[str, ActivityCategory],
        start_time: Union[str, datetime, None] = None,
    ) -> Activity:
        """Close whatever is ongoing at ``start_time`` and open a new activity."""
        description = validate_description(description)
        category = validate_category(category)
        begins = (
            validate_instant(start_time, "start_time")
            if start_time is not None
            else self._clock()
        )

        candidate = _copy(self._days)
        ongoing = _find_ongoing(candidate)
        if ongoing is not None:
            if begins < ongoing.start_time:
                raise InvalidStateTransition(
                    "new activity would start before the ongoing activity began"
                )
            _close(ongoing, begins)
        _reject_overlap(candidate, begins, None)

        activity = Activity(
            description=description,
            category=category,
            start_time=begins,
            is_ongoing=True,
        )
        _bucket(candidate, begins).activities.append(activity)
        self._commit(candidate)
        logger.info(
            "Started %s activity %r at %s", category.value, description, begins.isoformat()
        )
        return replace(activity)

    def switch(
        self,
        description: str,
        category: Union[str, ActivityCategory],
        start_time: Union[str, datetime, None] = None,
    ) -> Activity:
        return self.start(description, category, start_time)

    def stop(self, end_time: Union[str, datetime, None] = None) -> Optional[Activity]:
        """Close the ongoing activity; returns ``None`` when nothing is ongoing."""
        ends = (
            validate_instant(end_time, "end_time") if end_time is not None else self._clock()
        )
        candidate = _copy(self._days)
        ongoing = _find_ongoing(candidate)
        if ongoing is None:
            return None
        if ends < ongoing.start_time:
            raise InvalidStateTransition("end_time is before the activity started")
        _close(ongoing, ends)
        self._commit(candidate)
        logger.info("Stopped %r after %s minutes", ongoing.description, ongoing.duration)
        return replace(ongoing)

    def record(
        self,
        description: str,
        category: Union[str, ActivityCategory],
        start_time: Union[str, datetime],
        end_time: Union[str, datetime],
    ) -> Activity:
        """Add an already-closed activity without touching the ongoing one."""
        description = validate_description(description)
        category = validate_category(category)
        begins = validate_instant(start_time, "start_time")
        ends = validate_instant(end_time, "end_time")
        if ends < begins:
            raise ValidationError("end_time must be on or after start_time")

        candidate = _copy(self._days)
        _reject_overlap(candidate, begins, ends)
        activity = Activity(
            description=description,
            category=category,
            start_time=begins,
        )
        _close(activity, ends)
        _bucket(candidate, begins).activities.append(activity)
        self._commit(candidate)
        logger.info("Recorded %r (%s minutes)", description, activity.duration)
        return replace(activity)

    def update(self, activity_id: str, changes: Mapping[str, Any]) -> Activity:
        """Apply a partial edit.

        A key present in ``changes`` is applied even when its value is
        ``None``; that is how ``end_time`` gets cleared. Giving an ongoing
        activity an ``end_time`` closes it, and ``is_ongoing=True`` reopens a
        closed one.
        """
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")

        candidate = _copy(self._days)
        original_key, target = _locate(candidate, activity_id)

        if "description" in changes:
            target.description = validate_description(changes["description"])
        if "category" in changes:
            target.category = validate_category(changes["category"])
        if "start_time" in changes:
            target.start_time = validate_instant(changes["start_time"], "start_time")

        reopen = changes.get("is_ongoing") is True
        if "end_time" in changes:
            raw_end = changes["end_time"]
            if raw_end is None:
                if not target.is_ongoing and not reopen:
                    raise InvalidStateTransition(
                        "cannot clear end_time of a closed activity"
                    )
                target.end_time = None
                target.duration = None
                target.is_ongoing = True
            else:
                if reopen:
                    raise InvalidStateTransition(
                        "an ongoing activity cannot have an end_time"
                    )
                target.end_time = validate_instant(raw_end, "end_time")
                target.is_ongoing = False
        elif "is_ongoing" in changes:
            if reopen:
                target.end_time = None
                target.duration = None
                target.is_ongoing = True
            elif target.is_ongoing:
                raise InvalidStateTransition("closing an activity requires an end_time")

        if target.end_time is not None:
            target.duration = minutes_between(target.start_time, target.end_time)

        if day_key(target.start_time) != original_key:
            raise InvalidStateTransition(
                "an activity cannot be moved to a different day"
            )

        self._commit(candidate)
        logger.info("Updated activity %s (%s)", activity_id, ", ".join(sorted(changes)))
        return replace(target)

    def delete(self, activity_id: str) -> Activity:
        candidate = _copy(self._days)
        key, target = _locate(candidate, activity_id)
        candidate[key].activities = [
            a for a in candidate[key].activities if a.id != activity_id
        ]
        self._commit(candidate)
        logger.info("Deleted activity %s (%r)", activity_id, target.description)
        return target

    def replace_all(self, days: Iterable[DayData]) -> None:
        """Swap in a whole new history, e.g. from an import."""
        candidate = _index(days)
        self._commit(candidate)

    def clear(self) -> None:
        self._commit({})

    # -- internals ---------------------------------------------------------

    def _commit(self, candidate: dict[str, DayData]) -> None:
        _check_invariants(candidate)
        self._days = candidate
        for listener in list(self._listeners):
            listener(self)


def _copy(days: Mapping[str, DayData]) -> dict[str, DayData]:
    return {
        key: DayData(date=data.date, activities=[replace(a) for a in data.activities])
        for key, data in days.items()
    }


def _index(days: Iterable[DayData]) -> dict[str, DayData]:
    indexed: dict[str, DayData] = {}
    for data in days:
        if data.date in indexed:
            raise ValidationError(f"Duplicate day {data.date}")
        indexed[data.date] = DayData(
            date=data.date, activities=[replace(a) for a in data.activities]
        )
    return indexed


def _bucket(days: dict[str, DayData], instant: datetime) -> DayData:
    key = day_key(instant)
    data = days.get(key)
    if data is None:
        data = DayData(date=key)
        days[key] = data
    return data


def _find_ongoing(days: Mapping[str, DayData]) -> Optional[Activity]:
    for data in days.values():
        for activity in data.activities:
            if activity.is_ongoing:
                return activity
    return None


def _locate(days: Mapping[str, DayData], activity_id: str) -> tuple[str, Activity]:
    for key, data in days.items():
        for activity in data.activities:
            if activity.id == activity_id:
                return key, activity
    raise NotFoundError(f"No activity with id {activity_id!r}")


def _reject_overlap(
    days: Mapping[str, DayData], begins: datetime, ends: Optional[datetime]
) -> None:
    """Raise when ``[begins, ends)`` intersects an existing activity.

    ``ends=None`` and ongoing activities both mean "still running".
    """
    for data in days.values():
        for activity in data.activities:
            other_ends = None if activity.is_ongoing else activity.end_time
            if (ends is None or activity.start_time < ends) and (
                other_ends is None or begins < other_ends
            ):
                raise InvalidStateTransition(
                    f"overlaps {activity.description!r} "
                    f"({activity.start_time:%H:%M}-"
                    f"{other_ends.strftime('%H:%M') if other_ends else 'now'})"
                )


def _close(activity: Activity, end_time: datetime) -> None:
    activity.end_time = end_time
    activity.duration = minutes_between(activity.start_time, end_time)
    activity.is_ongoing = False


def _check_invariants(days: Mapping[str, DayData]) -> None:
    ongoing = 0
    seen: set[str] = set()
    for key, data in days.items():
        if data.date != key:
            raise InvalidStateTransition(f"day {data.date} stored under key {key}")
        for activity in data.activities:
            if activity.id in seen:
                raise InvalidStateTransition(f"duplicate activity id {activity.id}")
            seen.add(activity.id)
            if day_key(activity.start_time) != key:
                raise InvalidStateTransition(
                    f"activity {activity.id} starts on a different day than {key}"
                )
            if activity.is_ongoing:
                ongoing += 1
                if activity.end_time is not None:
                    raise InvalidStateTransition(
                        f"ongoing activity {activity.id} has an end_time"
                    )
                continue
            if activity.end_time is None or activity.duration is None:
                raise InvalidStateTransition(
                    f"closed activity {activity.id} is missing end_time or duration"
                )
            if activity.end_time < activity.start_time or activity.duration < 0:
                raise InvalidStateTransition(
                    f"activity {activity.id} ends before it starts"
                )
    if ongoing > 1:
        raise InvalidStateTransition("more than one activity would be ongoing")
