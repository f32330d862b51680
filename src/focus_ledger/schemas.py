"""Serialized shapes of the ledger, distraction history and app settings.

These are the JSON documents exchanged with the blob store, the HTTP API
and export files. Keys are camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from .clock import parse_instant
from .models import (
    DESCRIPTION_MAX_LENGTH,
    Activity,
    ActivityCategory,
    AppCategory,
    DayData,
    DistractionEvent,
)


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ActivityRecord(_Record):
    id: str = Field(min_length=1)
    description: str = Field(min_length=1, max_length=DESCRIPTION_MAX_LENGTH)
    category: ActivityCategory
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: Optional[int] = None
    is_ongoing: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return parse_instant(value)

    @classmethod
    def from_model(cls, activity: Activity) -> "ActivityRecord":
        return cls(
            id=activity.id,
            description=activity.description,
            category=activity.category,
            start_time=activity.start_time,
            end_time=activity.end_time,
            duration=activity.duration,
            is_ongoing=activity.is_ongoing,
        )

    def to_model(self) -> Activity:
        return Activity(
            id=self.id,
            description=self.description,
            category=self.category,
            start_time=self.start_time,
            end_time=self.end_time,
            duration=self.duration,
            is_ongoing=self.is_ongoing,
        )


class DayRecord(_Record):
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    activities: list[ActivityRecord] = Field(default_factory=list)

    @classmethod
    def from_model(cls, day: DayData) -> "DayRecord":
        return cls(
            date=day.date,
            activities=[ActivityRecord.from_model(a) for a in day.activities],
        )

    def to_model(self) -> DayData:
        return DayData(date=self.date, activities=[a.to_model() for a in self.activities])


class DistractionRecord(_Record):
    id: str = Field(min_length=1)
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

    @field_validator("started_at", "ended_at")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return parse_instant(value)

    @classmethod
    def from_model(cls, event: DistractionEvent) -> "DistractionRecord":
        return cls(
            id=event.id,
            package_name=event.package_name,
            app_name=event.app_name,
            started_at=event.started_at,
            ended_at=event.ended_at,
            duration_seconds=event.duration_seconds,
            is_work_related=event.is_work_related,
            user_responded=event.user_responded,
            current_activity_description=event.current_activity_description,
            reason=event.reason,
            auto_resolved=event.auto_resolved,
        )

    def to_model(self) -> DistractionEvent:
        return DistractionEvent(
            id=self.id,
            package_name=self.package_name,
            app_name=self.app_name,
            started_at=self.started_at,
            ended_at=self.ended_at,
            duration_seconds=self.duration_seconds,
            is_work_related=self.is_work_related,
            user_responded=self.user_responded,
            current_activity_description=self.current_activity_description,
            reason=self.reason,
            auto_resolved=self.auto_resolved,
        )


class AppCategoryRecord(_Record):
    package_name: str = Field(min_length=1)
    app_name: str
    category: str = "other"
    is_work_app: bool = False
    is_whitelisted: bool = False

    @classmethod
    def from_model(cls, category: AppCategory) -> "AppCategoryRecord":
        return cls(
            package_name=category.package_name,
            app_name=category.app_name,
            category=category.category,
            is_work_app=category.is_work_app,
            is_whitelisted=category.is_whitelisted,
        )

    def to_model(self) -> AppCategory:
        return AppCategory(
            package_name=self.package_name,
            app_name=self.app_name,
            category=self.category,
            is_work_app=self.is_work_app,
            is_whitelisted=self.is_whitelisted,
        )


LEDGER_DOCUMENT = TypeAdapter(list[DayRecord])
DISTRACTION_DOCUMENT = TypeAdapter(list[DistractionRecord])
APP_CATEGORY_DOCUMENT = TypeAdapter(list[AppCategoryRecord])
SESSION_TIME_DOCUMENT = TypeAdapter(dict[str, int])
