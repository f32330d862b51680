"""Distraction correlation: turns foreground-app switches into scored episodes.

The correlator holds at most one open episode (the user is *away* in a
distraction app). When the user returns to the tracker the episode is closed and,
unless it was too short to matter, becomes a :class:`DistractionEvent`
waiting for the user's verdict. Several closed episodes may wait at once;
they are answered one by one or as an atomic batch.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from .clock import day_key, seconds_between
from .config import TrackerSettings
from .errors import InvalidStateTransition, NotFoundError, ValidationError
from .models import (
    DESCRIPTION_MAX_LENGTH,
    AppCategory,
    AppSwitch,
    DistractionEvent,
    EpisodeState,
    Resolution,
    Severity,
)
from .normalization import contradicts_heuristic, is_tracker_package, package_name_for

logger = logging.getLogger(__name__)

Listener = Callable[["DistractionCorrelator"], None]


def classify_severity(
    duration_seconds: int,
    grouped_threshold: timedelta = timedelta(seconds=120),
    hard_threshold: timedelta = timedelta(seconds=300),
) -> Severity:
    if duration_seconds < grouped_threshold.total_seconds():
        return Severity.IGNORED
    if duration_seconds <= hard_threshold.total_seconds():
        return Severity.GROUPED
    return Severity.HARD


class DistractionCorrelator:
    """Owns distraction events and the per-app categorization used to flag them."""

    def __init__(
        self,
        settings: Optional[TrackerSettings] = None,
        activity_description: Callable[[], Optional[str]] = lambda: None,
        events: Iterable[DistractionEvent] = (),
        app_categories: Iterable[AppCategory] = (),
    ) -> None:
        self.settings = settings or TrackerSettings()
        self._activity_description = activity_description
        self._away: Optional[DistractionEvent] = None
        self._events: dict[str, DistractionEvent] = {e.id: replace(e) for e in events}
        self._apps: dict[str, AppCategory] = {
            c.package_name: replace(c) for c in app_categories
        }
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -- state -------------------------------------------------------------

    @property
    def state(self) -> EpisodeState:
        if self._away is not None:
            return EpisodeState.AWAY
        if self.pending():
            return EpisodeState.RETURNED_UNSCORED
        return EpisodeState.IDLE

    @property
    def open_episode(self) -> Optional[DistractionEvent]:
        return replace(self._away) if self._away else None

    def severity(self, event: DistractionEvent) -> Optional[Severity]:
        if event.duration_seconds is None:
            return None
        return classify_severity(
            event.duration_seconds,
            self.settings.grouped_threshold,
            self.settings.hard_threshold,
        )

    # -- app switches ------------------------------------------------------

    def is_distraction_candidate(self, event: AppSwitch) -> bool:
        if not event.is_distraction:
            return False
        if is_tracker_package(event.to_app, self.settings.tracker_markers):
            return False
        category = self._apps.get(event.to_app)
        if category is not None and (category.is_whitelisted or category.is_work_app):
            return False
        return True

    def handle_app_switch(self, event: AppSwitch) -> Optional[DistractionEvent]:
        """Advance the episode state machine; returns a newly recorded event.

        Only a return to the tracker closes an open episode. Switches to other
        apps while away, distracting or not, leave it running.
        """
        if self._away is not None:
            if event.timestamp < self._away.started_at:
                raise ValidationError("app switch is older than the open episode")
            if is_tracker_package(event.to_app, self.settings.tracker_markers):
                return self._close_episode(event.timestamp)
            return None

        if self.is_distraction_candidate(event):
            self._away = DistractionEvent(
                package_name=event.to_app,
                app_name=event.to_app_name or event.to_app,
                started_at=event.timestamp,
                current_activity_description=self._activity_description(),
            )
            logger.debug("Away in %s since %s", event.to_app_name, event.timestamp)
        return None

    def abandon_episode(self) -> None:
        """Forget the open episode, e.g. when monitoring is switched off."""
        if self._away is not None:
            logger.debug("Dropping open episode for %s", self._away.app_name)
        self._away = None

    def _close_episode(self, ended_at: datetime) -> Optional[DistractionEvent]:
        episode, self._away = self._away, None
        if episode is None:
            raise InvalidStateTransition("no episode is open")
        duration = seconds_between(episode.started_at, ended_at)
        if duration <= self.settings.noise_threshold.total_seconds():
            logger.debug("Discarding %ss in %s as noise", duration, episode.app_name)
            return None

        episode.ended_at = ended_at
        episode.duration_seconds = duration
        if self.severity(episode) is Severity.IGNORED:
            episode.auto_resolved = True

        self._events[episode.id] = episode
        logger.info(
            "Distraction in %s for %ss (%s)",
            episode.app_name,
            duration,
            self.severity(episode).value,
        )
        self._notify()
        return replace(episode)

    # -- prompts -----------------------------------------------------------

    def pending(self) -> list[DistractionEvent]:
        """Recorded episodes still waiting for the user's verdict."""
        waiting = [
            replace(e)
            for e in self._events.values()
            if not e.user_responded and not e.auto_resolved
        ]
        return sorted(waiting, key=lambda e: e.started_at)

    def next_hard_prompt(self) -> Optional[DistractionEvent]:
        for event in self.pending():
            if self.severity(event) is Severity.HARD:
                return event
        return None

    def grouped_batch(self) -> list[DistractionEvent]:
        return [e for e in self.pending() if self.severity(e) is Severity.GROUPED]

    def contradicts_heuristic(self, event_id: str, is_work_related: bool) -> bool:
        event = self._get(event_id)
        return contradicts_heuristic(event.app_name, is_work_related, event.package_name)

    def resolve(
        self, event_id: str, is_work_related: bool, reason: Optional[str] = None
    ) -> DistractionEvent:
        return self.resolve_batch([Resolution(event_id, is_work_related, reason)])[0]

    def resolve_batch(self, resolutions: Sequence[Resolution]) -> list[DistractionEvent]:
        """Apply every verdict or none of them."""
        if not resolutions:
            raise ValidationError("at least one resolution is required")
        seen: set[str] = set()
        updated: dict[str, DistractionEvent] = {}
        for resolution in resolutions:
            if resolution.event_id in seen:
                raise ValidationError(f"event {resolution.event_id} resolved twice")
            seen.add(resolution.event_id)
            event = self._get(resolution.event_id)
            if event.user_responded or event.auto_resolved:
                raise InvalidStateTransition(
                    f"event {resolution.event_id} is not awaiting a response"
                )
            updated[event.id] = replace(
                event,
                is_work_related=_validate_verdict(resolution.is_work_related),
                user_responded=True,
                reason=_validate_reason(resolution.reason),
            )

        self._events.update(updated)
        logger.info("Resolved %d distraction event(s)", len(updated))
        self._notify()
        return [replace(e) for e in updated.values()]

    def correct(
        self, event_id: str, is_work_related: bool, reason: Optional[str] = None
    ) -> DistractionEvent:
        """Administrative override of a verdict, answered or not."""
        event = self._get(event_id)
        corrected = replace(
            event,
            is_work_related=_validate_verdict(is_work_related),
            user_responded=True,
            auto_resolved=False,
            reason=_validate_reason(reason) if reason is not None else event.reason,
        )
        self._events[event_id] = corrected
        logger.info("Corrected distraction event %s", event_id)
        self._notify()
        return replace(corrected)

    # -- history -----------------------------------------------------------

    def history(self, day: Optional[str] = None) -> list[DistractionEvent]:
        events = [
            replace(e)
            for e in self._events.values()
            if day is None or day_key(e.started_at) == day
        ]
        return sorted(events, key=lambda e: e.started_at)

    def get(self, event_id: str) -> DistractionEvent:
        return replace(self._get(event_id))

    def _get(self, event_id: str) -> DistractionEvent:
        try:
            return self._events[event_id]
        except KeyError:
            raise NotFoundError(f"No distraction event with id {event_id!r}") from None

    # -- app categories ----------------------------------------------------

    def app_categories(self) -> list[AppCategory]:
        return sorted(
            (replace(c) for c in self._apps.values()), key=lambda c: c.app_name.casefold()
        )

    def work_apps(self) -> list[str]:
        return sorted(p for p, c in self._apps.items() if c.is_work_app)

    def add_app(self, app_name: str, package_name: Optional[str] = None) -> AppCategory:
        name = (app_name or "").strip()
        if not name:
            raise ValidationError("app_name is required")
        key = (package_name or "").strip() or package_name_for(name)
        category = self._apps.get(key) or AppCategory(package_name=key, app_name=name)
        self._apps[key] = category
        self._notify()
        return replace(category)

    def update_app(
        self,
        package_name: str,
        category: Optional[str] = None,
        is_whitelisted: Optional[bool] = None,
        is_work_app: Optional[bool] = None,
    ) -> AppCategory:
        """Change several settings of one app with a single notification."""
        current = self._app(package_name)
        changes: dict[str, object] = {}
        if category is not None and category.strip():
            changes["category"] = category.strip()
        if is_whitelisted is not None:
            changes["is_whitelisted"] = is_whitelisted
        if is_work_app is not None:
            changes["is_work_app"] = is_work_app
        if not changes:
            return replace(current)
        updated = replace(current, **changes)
        self._apps[package_name] = updated
        logger.info("Updated %s: %s", updated.app_name, ", ".join(sorted(changes)))
        self._notify()
        return replace(updated)

    def set_whitelisted(self, package_name: str, whitelisted: bool) -> AppCategory:
        category = self._app(package_name)
        category.is_whitelisted = whitelisted
        logger.info(
            "%s %s", "Whitelisted" if whitelisted else "Un-whitelisted", category.app_name
        )
        self._notify()
        return replace(category)

    def set_work_app(self, package_name: str, is_work_app: bool) -> AppCategory:
        category = self._app(package_name)
        category.is_work_app = is_work_app
        self._notify()
        return replace(category)

    def _app(self, package_name: str) -> AppCategory:
        try:
            return self._apps[package_name]
        except KeyError:
            raise NotFoundError(f"No app registered as {package_name!r}") from None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)


def _validate_verdict(value: object) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("is_work_related must be true or false")
    return value


def _validate_reason(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("reason must be text")
    reason = value.strip()
    if len(reason) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"reason must be at most {DESCRIPTION_MAX_LENGTH} characters")
    return reason or None
