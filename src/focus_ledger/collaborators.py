"""HTTP clients for the narration parser and the daily insight generator."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable, Optional

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .clock import format_instant, parse_instant
from .errors import CollaboratorUnavailable, SubmissionInProgress, ValidationError
from .models import (
    DESCRIPTION_MAX_LENGTH,
    Activity,
    ActivityCategory,
    DailyAnalysis,
    Intent,
    ParsedActivity,
)

logger = logging.getLogger(__name__)

MAX_INSIGHT_ACTIVITIES = 100


class _ParseResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    intent: Intent
    description: str = ""
    category: ActivityCategory = ActivityCategory.OTHER
    start_time: Optional[datetime] = None


class _InsightResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    summary: str
    red_flags: list[str] = Field(default_factory=list)
    green_flags: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class _Collaborator:
    def __init__(
        self,
        url: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.url:
            raise CollaboratorUnavailable(f"{type(self).__name__} endpoint is not configured")
        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", type(self).__name__, exc)
            raise CollaboratorUnavailable(str(exc) or type(exc).__name__) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            raise CollaboratorUnavailable(str(body["error"]))
        if response.status_code >= 400:
            raise CollaboratorUnavailable(f"HTTP {response.status_code}")
        if not isinstance(body, dict):
            raise CollaboratorUnavailable("response was not a JSON object")
        return body


class NarrationParser(_Collaborator):
    """Turns free text like "started coding at 2pm" into a structured intent."""

    async def request(self, message: str, has_ongoing_activity: bool) -> ParsedActivity:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("message is required")
        if len(message) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"message must be under {DESCRIPTION_MAX_LENGTH} characters"
            )
        body = await self._post(
            {"message": message, "hasOngoingActivity": has_ongoing_activity}
        )
        try:
            parsed = _ParseResponse.model_validate(body)
        except pydantic.ValidationError as exc:
            raise CollaboratorUnavailable("parser returned an unexpected payload") from exc
        return ParsedActivity(
            intent=parsed.intent,
            description=parsed.description.strip(),
            category=parsed.category,
            start_time=parse_instant(parsed.start_time),
        )


class InsightGenerator(_Collaborator):
    """Asks the analysis service for a narrative review of one day."""

    async def request(self, activities: Iterable[Activity], day: str) -> DailyAnalysis:
        closed = [a for a in activities if not a.is_ongoing]
        if len(closed) > MAX_INSIGHT_ACTIVITIES:
            raise ValidationError(
                f"Can analyze at most {MAX_INSIGHT_ACTIVITIES} activities at once"
            )
        body = await self._post(
            {
                "date": day,
                "activities": [
                    {
                        "description": a.description,
                        "category": a.category.value,
                        "startTime": format_instant(a.start_time),
                        "endTime": format_instant(a.end_time),
                        "duration": a.duration,
                    }
                    for a in closed
                ],
            }
        )
        try:
            parsed = _InsightResponse.model_validate(body)
        except pydantic.ValidationError as exc:
            raise CollaboratorUnavailable("insight service returned an unexpected payload") from exc
        return DailyAnalysis(
            summary=parsed.summary,
            red_flags=parsed.red_flags,
            green_flags=parsed.green_flags,
            recommendations=parsed.recommendations,
        )


class SubmissionGuard:
    """Rejects a second submission from one input surface while one is in flight."""

    def __init__(self) -> None:
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        if self._busy:
            raise SubmissionInProgress("a submission is already pending")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False
