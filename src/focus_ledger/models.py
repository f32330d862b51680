"""Domain models for the activity ledger and distraction history."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

DESCRIPTION_MAX_LENGTH = 500


class ActivityCategory(str, Enum):
    WORK = "work"
    CODING = "coding"
    MEETINGS = "meetings"
    MEALS = "meals"
    EXERCISE = "exercise"
    SLEEP = "sleep"
    LEISURE = "leisure"
    SOCIAL = "social"
    COMMUTE = "commute"
    PERSONAL_CARE = "personal_care"
    BREAK = "break"
    OTHER = "other"


PRODUCTIVE_CATEGORIES = frozenset(
    {ActivityCategory.WORK, ActivityCategory.CODING, ActivityCategory.MEETINGS}
)


class Intent(str, Enum):
    START = "start"
    STOP = "stop"
    SWITCH = "switch"


class Severity(str, Enum):
    IGNORED = "ignored"
    GROUPED = "grouped"
    HARD = "hard"


class EpisodeState(str, Enum):
    IDLE = "idle"
    AWAY = "away"
    RETURNED_UNSCORED = "returned_unscored"


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class Activity:
    """A time-boxed block of a single narrated activity."""

    description: str
    category: ActivityCategory
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    is_ongoing: bool = False
    id: str = field(default_factory=new_id)


@dataclass(slots=True)
class DayData:
    date: str
    activities: list[Activity] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class Gap:
    """Unaccounted time between the last closed activity and a new one."""

    start_time: datetime
    end_time: datetime
    duration_minutes: int


@dataclass(slots=True)
class DistractionEvent:
    package_name: str
    app_name: str
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    is_work_related: Optional[bool] = None
    user_responded: bool = False
    current_activity_description: Optional[str] = None
    reason: Optional[str] = None
    auto_resolved: bool = False
    id: str = field(default_factory=new_id)


@dataclass(slots=True)
class AppCategory:
    package_name: str
    app_name: str
    category: str = "other"
    is_work_app: bool = False
    is_whitelisted: bool = False


@dataclass(slots=True, frozen=True)
class AppSwitch:
    """A foreground-app change reported by the platform collaborator."""

    from_app: Optional[str]
    to_app: str
    to_app_name: str
    timestamp: datetime
    is_distraction: bool = True


@dataclass(slots=True, frozen=True)
class Resolution:
    event_id: str
    is_work_related: bool
    reason: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ParsedActivity:
    intent: Intent
    description: str
    category: ActivityCategory
    start_time: Optional[datetime] = None


@dataclass(slots=True)
class DailyAnalysis:
    summary: str
    red_flags: list[str] = field(default_factory=list)
    green_flags: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
