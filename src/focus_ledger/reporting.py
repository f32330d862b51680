"""Roll-ups over the ledger and distraction history, plus console output."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Mapping, Optional

from .clock import (
    day_key,
    iso_week_bounds,
    iter_days,
    month_bounds,
    previous_month_bounds,
    round_half_up,
    start_of_day,
)
from .models import PRODUCTIVE_CATEGORIES, Activity, DayData, DistractionEvent


class HeatmapBand(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    HIGH_DISTRACTION = "high_distraction"


@dataclass(slots=True)
class PeriodTotals:
    start: date
    end: date
    productive_minutes: int = 0
    distraction_minutes: int = 0
    logged_minutes: int = 0

    @property
    def integrity(self) -> int:
        return session_integrity(self.productive_minutes, self.distraction_minutes)

    @property
    def actual_work_minutes(self) -> int:
        return max(0, self.productive_minutes - self.distraction_minutes)


@dataclass(slots=True)
class PeriodSummary:
    current: PeriodTotals
    previous: PeriodTotals
    breakdown: list[PeriodTotals] = field(default_factory=list)

    @property
    def productive_trend(self) -> int:
        return self.current.productive_minutes - self.previous.productive_minutes

    @property
    def distraction_trend(self) -> int:
        return self.current.distraction_minutes - self.previous.distraction_minutes


@dataclass(slots=True)
class HeatmapCell:
    hour: int
    productive_minutes: float
    distraction_minutes: int
    band: HeatmapBand

    @property
    def net_minutes(self) -> float:
        return self.productive_minutes - self.distraction_minutes


@dataclass(slots=True)
class LoggingTimeSummary:
    total_seconds: int
    average_daily_seconds: int
    this_week_seconds: int
    last_week_seconds: int
    trend_percent: int
    tracked_days: int
    chart: list[tuple[str, int]]


def is_counted_distraction(event: DistractionEvent) -> bool:
    return (
        event.user_responded
        and event.is_work_related is False
        and bool(event.duration_seconds)
    )


def distraction_minutes(event: DistractionEvent) -> int:
    return round_half_up((event.duration_seconds or 0) / 60.0)


def session_integrity(productive_minutes: float, distraction_minutes_total: float) -> int:
    """Share of productive time not lost to distractions, in percent."""
    if productive_minutes <= 0:
        return 100
    actual = max(0.0, productive_minutes - distraction_minutes_total)
    return round_half_up(actual / productive_minutes * 100)


def productive_minutes(activities: Iterable[Activity]) -> int:
    return sum(
        a.duration
        for a in activities
        if a.duration and a.category in PRODUCTIVE_CATEGORIES
    )


def period_totals(
    days: Iterable[DayData],
    events: Iterable[DistractionEvent],
    start: date,
    end: date,
) -> PeriodTotals:
    """Totals for days in ``[start, end)``."""
    totals = PeriodTotals(start=start, end=end)
    first, last = day_key(start), day_key(end)
    for data in days:
        if not first <= data.date < last:
            continue
        for activity in data.activities:
            if not activity.duration:
                continue
            totals.logged_minutes += activity.duration
            if activity.category in PRODUCTIVE_CATEGORIES:
                totals.productive_minutes += activity.duration
    for event in events:
        if first <= day_key(event.started_at) < last and is_counted_distraction(event):
            totals.distraction_minutes += distraction_minutes(event)
    return totals


def day_summary(
    days: Iterable[DayData], events: Iterable[DistractionEvent], day: date
) -> PeriodSummary:
    days, events = list(days), list(events)
    following = day + timedelta(days=1)
    previous = day - timedelta(days=1)
    return PeriodSummary(
        current=period_totals(days, events, day, following),
        previous=period_totals(days, events, previous, day),
    )


def week_summary(
    days: Iterable[DayData], events: Iterable[DistractionEvent], anchor: date
) -> PeriodSummary:
    """ISO week (Monday start) containing ``anchor`` against the week before."""
    days, events = list(days), list(events)
    start, end = iso_week_bounds(anchor)
    prev_start = start - timedelta(days=7)
    return PeriodSummary(
        current=period_totals(days, events, start, end),
        previous=period_totals(days, events, prev_start, start),
        breakdown=[
            period_totals(days, events, d, d + timedelta(days=1))
            for d in iter_days(start, end)
        ],
    )


def month_summary(
    days: Iterable[DayData], events: Iterable[DistractionEvent], anchor: date
) -> PeriodSummary:
    """Calendar month containing ``anchor`` against the month before."""
    days, events = list(days), list(events)
    start, end = month_bounds(anchor)
    prev_start, prev_end = previous_month_bounds(anchor)
    breakdown: list[PeriodTotals] = []
    week_start, _ = iso_week_bounds(start)
    while week_start < end:
        week_end = week_start + timedelta(days=7)
        breakdown.append(
            period_totals(days, events, max(week_start, start), min(week_end, end))
        )
        week_start = week_end
    return PeriodSummary(
        current=period_totals(days, events, start, end),
        previous=period_totals(days, events, prev_start, prev_end),
        breakdown=breakdown,
    )


def heatmap_band(productive: float, distraction: float) -> HeatmapBand:
    if productive <= 0 and distraction <= 0:
        return HeatmapBand.NONE
    net = productive - distraction
    if net > 30:
        return HeatmapBand.HIGH
    if net > 10:
        return HeatmapBand.MODERATE
    if distraction > productive:
        return HeatmapBand.HIGH_DISTRACTION
    return HeatmapBand.LOW


def hourly_heatmap(
    activities: Iterable[Activity],
    events: Iterable[DistractionEvent],
    day: date,
    now: Optional[datetime] = None,
) -> list[HeatmapCell]:
    """Per-hour productive overlap and distraction minutes for ``day``.

    Ongoing activities are treated as running until ``now``.
    """
    current = now or datetime.now()
    midnight = start_of_day(day)
    productive = [0.0] * 24
    distracted = [0] * 24

    for activity in activities:
        if activity.category not in PRODUCTIVE_CATEGORIES:
            continue
        end = activity.end_time if activity.end_time is not None else current
        if not activity.is_ongoing and activity.end_time is None:
            continue
        for hour in range(24):
            window_start = midnight + timedelta(hours=hour)
            window_end = window_start + timedelta(hours=1)
            overlap_start = max(activity.start_time, window_start)
            overlap_end = min(end, window_end)
            if overlap_end > overlap_start:
                productive[hour] += (overlap_end - overlap_start).total_seconds() / 60.0

    target = day_key(day)
    for event in events:
        if day_key(event.started_at) == target and is_counted_distraction(event):
            distracted[event.started_at.hour] += distraction_minutes(event)

    return [
        HeatmapCell(
            hour=hour,
            productive_minutes=productive[hour],
            distraction_minutes=distracted[hour],
            band=heatmap_band(productive[hour], distracted[hour]),
        )
        for hour in range(24)
    ]


def week_heatmap(
    activities: Iterable[Activity],
    events: Iterable[DistractionEvent],
    anchor: date,
    now: Optional[datetime] = None,
) -> list[tuple[date, list[HeatmapCell]]]:
    activities, events = list(activities), list(events)
    start, end = iso_week_bounds(anchor)
    return [(d, hourly_heatmap(activities, events, d, now)) for d in iter_days(start, end)]


def logging_time_summary(
    session_seconds: Mapping[str, int], today: date, window_days: int = 14
) -> LoggingTimeSummary:
    """How long the tracker itself was in use, last week against the week before."""
    chart_days = [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]
    chart = [
        (day_key(d), round_half_up(session_seconds.get(day_key(d), 0) / 60.0))
        for d in chart_days
    ]
    this_week = sum(session_seconds.get(day_key(d), 0) for d in chart_days[-7:])
    last_week = sum(session_seconds.get(day_key(d), 0) for d in chart_days[-14:-7])
    tracked = [v for v in session_seconds.values() if v > 0]
    total = sum(session_seconds.values())
    average = round_half_up(total / len(tracked)) if tracked else 0
    trend = round_half_up((this_week - last_week) / last_week * 100) if last_week > 0 else 0
    return LoggingTimeSummary(
        total_seconds=total,
        average_daily_seconds=average,
        this_week_seconds=this_week,
        last_week_seconds=last_week,
        trend_percent=trend,
        tracked_days=len(tracked),
        chart=chart,
    )


def minutes_by_category(activities: Iterable[Activity]) -> list[tuple[str, int]]:
    totals: defaultdict[str, int] = defaultdict(int)
    for activity in activities:
        if activity.duration:
            totals[activity.category.value] += activity.duration
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, days: Iterable[DayData], events: Iterable[DistractionEvent]) -> None:
        self.days = list(days)
        self.events = list(events)

    def print_daily_summary(self, day: date) -> None:
        activities = next((d.activities for d in self.days if d.date == day_key(day)), [])
        if not activities:
            print("No activity recorded for the selected day.")
            return

        totals = day_summary(self.days, self.events, day).current
        print(f"Summary for {day_key(day)}")
        print("-" * 40)
        print(f"Logged:       {format_minutes(totals.logged_minutes)}")
        print(f"Productive:   {format_minutes(totals.productive_minutes)}")
        print(f"Distractions: {format_minutes(totals.distraction_minutes)}")
        print(f"Integrity:    {totals.integrity}%")
        print()

        print("Timeline:")
        for activity in sorted(activities, key=lambda a: a.start_time):
            end = activity.end_time.strftime("%H:%M") if activity.end_time else "now"
            print(
                f"  {activity.start_time.strftime('%H:%M')}-{end:<5} "
                f"{activity.category.value:<13} {activity.description[:45]}"
            )

        by_category = minutes_by_category(activities)
        if by_category:
            print()
            print("By category:")
            for category, minutes in by_category:
                print(f"  {category:<13} {format_minutes(minutes)}")

    def print_period_summary(self, label: str, summary: PeriodSummary) -> None:
        current = summary.current
        last_day = current.end - timedelta(days=1)
        print(f"{label}: {day_key(current.start)} to {day_key(last_day)}")
        print("-" * 40)
        print(
            f"Productive:   {format_minutes(current.productive_minutes)} "
            f"({_signed(summary.productive_trend)} vs previous)"
        )
        print(
            f"Distractions: {format_minutes(current.distraction_minutes)} "
            f"({_signed(summary.distraction_trend)} vs previous)"
        )
        print(f"Integrity:    {current.integrity}%")
        if summary.breakdown:
            print()
            for part in summary.breakdown:
                print(
                    f"  {day_key(part.start)}  work {format_minutes(part.productive_minutes):>8}"
                    f"  distraction {format_minutes(part.distraction_minutes):>8}"
                )


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_minutes(minutes: float) -> str:
    total = int(round(minutes))
    hours, mins = divmod(total, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def _signed(minutes: int) -> str:
    return f"+{format_minutes(minutes)}" if minutes >= 0 else f"-{format_minutes(-minutes)}"
