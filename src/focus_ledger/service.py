"""The tracker as one object: ledger, correlator, session clock and persistence."""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import date, datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from .clock import at_clock_time, now, parse_day_key, today_key
from .collaborators import InsightGenerator, NarrationParser, SubmissionGuard
from .config import TrackerSettings
from .correlator import DistractionCorrelator
from .errors import (
    FocusLedgerError,
    InvalidStateTransition,
    PersistenceWriteFailure,
    ReasonRequired,
)
from .gaps import detect_gap
from .gaps import fill_gap as materialize_gap
from .ledger import ActivityLedger
from .models import (
    Activity,
    ActivityCategory,
    AppCategory,
    AppSwitch,
    DailyAnalysis,
    DayData,
    DistractionEvent,
    Gap,
    Intent,
    ParsedActivity,
    Resolution,
)
from .normalization import is_tracker_package
from .reporting import (
    LoggingTimeSummary,
    PeriodSummary,
    day_summary,
    logging_time_summary,
    month_summary,
    week_summary,
)
from .session_time import SessionClock
from .store import LedgerStore, dump_ledger, parse_ledger

logger = logging.getLogger(__name__)


class TrackerService:
    """Serializes every mutation and writes a snapshot after each one."""

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        settings: Optional[TrackerSettings] = None,
        parser: Optional[NarrationParser] = None,
        insights: Optional[InsightGenerator] = None,
        clock: Callable[[], datetime] = now,
    ) -> None:
        self.settings = settings or TrackerSettings()
        self.store = store
        self._clock = clock
        self._lock = threading.RLock()

        days = store.load_ledger() if store else []
        try:
            self.ledger = ActivityLedger(days, clock=clock)
        except FocusLedgerError as exc:
            logger.warning("Stored ledger violates its invariants (%s); starting empty.", exc)
            self.ledger = ActivityLedger(clock=clock)

        self.correlator = DistractionCorrelator(
            self.settings,
            activity_description=self._ongoing_description,
            events=store.load_distractions() if store else (),
            app_categories=store.load_app_categories() if store else (),
        )
        self.session = SessionClock(store.load_session_time() if store else None)

        self.parser = parser or NarrationParser(
            self.settings.parse_url, self.settings.api_key, self.settings.request_timeout
        )
        self.insights = insights or InsightGenerator(
            self.settings.insights_url, self.settings.api_key, self.settings.request_timeout
        )
        self.narration_guard = SubmissionGuard()
        self.insight_guard = SubmissionGuard()

        self.selected_date = today_key()
        self.pending_gap: Optional[Gap] = None
        self.analyses: dict[str, DailyAnalysis] = {}

        if store is not None:
            self.ledger.subscribe(lambda ledger: self._persist(store.save_ledger, ledger.days()))
            self.correlator.subscribe(self._persist_correlator)

    # -- persistence -------------------------------------------------------

    def _persist(self, write: Callable[[Any], None], value: Any) -> None:
        try:
            write(value)
        except PersistenceWriteFailure as exc:
            logger.error("Snapshot not saved: %s", exc)

    def _persist_correlator(self, correlator: DistractionCorrelator) -> None:
        if self.store is None:
            return
        self._persist(self.store.save_distractions, correlator.history())
        self._persist(self.store.save_app_categories, correlator.app_categories())

    def _ongoing_description(self) -> Optional[str]:
        ongoing = self.ledger.ongoing_activity()
        return ongoing.description if ongoing else None

    # -- selection ---------------------------------------------------------

    def select_date(self, value: Union[str, date]) -> str:
        key = value if isinstance(value, str) else value.strftime("%Y-%m-%d")
        parse_day_key(key)
        with self._lock:
            if key != self.selected_date:
                self.pending_gap = None
            self.selected_date = key
        return key

    def activities(self, day: Optional[str] = None) -> list[Activity]:
        return self.ledger.activities_for_day(day or self.selected_date)

    # -- narration ---------------------------------------------------------

    async def narrate(self, message: str) -> Optional[Activity]:
        """Parse a free-text update and apply it to the ledger.

        A result that arrives after the selected day has changed is dropped
        and ``None`` is returned. The ledger write runs on a worker thread.
        """
        async with self.narration_guard.hold():
            requested_for = self.selected_date
            parsed = await self.parser.request(
                message, self.ledger.ongoing_activity() is not None
            )
            return await asyncio.to_thread(self.apply_parsed, parsed, requested_for)

    def apply_parsed(
        self, parsed: ParsedActivity, requested_for: Optional[str] = None
    ) -> Optional[Activity]:
        with self._lock:
            if requested_for is not None and self.selected_date != requested_for:
                logger.info(
                    "Dropping parse result for %s; %s is selected now",
                    requested_for,
                    self.selected_date,
                )
                return None
            if parsed.intent is Intent.STOP:
                self.pending_gap = None
                return self.ledger.stop(parsed.start_time)
            return self._start(parsed.description, parsed.category, parsed.start_time)

    def _start(
        self,
        description: str,
        category: Union[str, ActivityCategory],
        start_time: Union[str, datetime, None],
    ) -> Activity:
        activity = self.ledger.start(description, category, start_time)
        self.pending_gap = detect_gap(
            activity.start_time, self.ledger.closed_activities(), self.settings.gap_threshold
        )
        if self.pending_gap is not None:
            logger.info(
                "Unaccounted %s minutes before %r",
                self.pending_gap.duration_minutes,
                activity.description,
            )
        return activity

    # -- manual edits ------------------------------------------------------

    def add_manual(
        self,
        description: str,
        category: Union[str, ActivityCategory],
        start_time: Union[str, datetime],
        end_time: Union[str, datetime, None] = None,
    ) -> Activity:
        """Add an activity on the selected day; without ``end_time`` it becomes ongoing.

        Times may be ``HH:MM`` on the selected day or full timestamps.
        """
        with self._lock:
            begins = at_clock_time(self.selected_date, start_time)
            if end_time is None:
                return self._start(description, category, begins)
            ends = at_clock_time(self.selected_date, end_time)
            return self.ledger.record(description, category, begins, ends)

    def update_activity(self, activity_id: str, changes: Mapping[str, Any]) -> Activity:
        with self._lock:
            return self.ledger.update(activity_id, changes)

    def delete_activity(self, activity_id: str) -> Activity:
        with self._lock:
            return self.ledger.delete(activity_id)

    def stop(self, end_time: Union[str, datetime, None] = None) -> Optional[Activity]:
        with self._lock:
            return self.ledger.stop(end_time)

    # -- gaps --------------------------------------------------------------

    def fill_gap(
        self,
        description: str,
        category: Union[str, ActivityCategory] = ActivityCategory.OTHER,
    ) -> Activity:
        with self._lock:
            if self.pending_gap is None:
                raise InvalidStateTransition("there is no gap to fill")
            activity = materialize_gap(self.ledger, self.pending_gap, description, category)
            self.pending_gap = None
            return activity

    def skip_gap(self) -> Optional[Gap]:
        with self._lock:
            gap, self.pending_gap = self.pending_gap, None
            return gap

    # -- distractions ------------------------------------------------------

    def handle_app_switch(self, event: AppSwitch) -> Optional[DistractionEvent]:
        """Feed a switch to the correlator.

        Session time runs only while the tracker itself is in front.
        """
        with self._lock:
            recorded = self.correlator.handle_app_switch(event)
            self.set_session_active(
                is_tracker_package(event.to_app, self.settings.tracker_markers)
            )
            return recorded

    def resolve_distractions(
        self, resolutions: Iterable[Resolution]
    ) -> list[DistractionEvent]:
        """Record verdicts; a verdict against the app's usual use must carry a reason."""
        resolutions = list(resolutions)
        with self._lock:
            for resolution in resolutions:
                if resolution.reason:
                    continue
                if self.correlator.contradicts_heuristic(
                    resolution.event_id, resolution.is_work_related
                ):
                    raise ReasonRequired(resolution.event_id)
            return self.correlator.resolve_batch(resolutions)

    def correct_distraction(
        self, event_id: str, is_work_related: bool, reason: Optional[str] = None
    ) -> DistractionEvent:
        with self._lock:
            return self.correlator.correct(event_id, is_work_related, reason)

    def set_monitoring(self, enabled: bool) -> None:
        with self._lock:
            if not enabled:
                self.correlator.abandon_episode()
                self.set_session_active(True)

    # -- app settings ------------------------------------------------------

    def app_categories(self) -> list[AppCategory]:
        with self._lock:
            return self.correlator.app_categories()

    def work_apps(self) -> list[str]:
        with self._lock:
            return self.correlator.work_apps()

    def add_app(self, app_name: str, package_name: Optional[str] = None) -> AppCategory:
        with self._lock:
            return self.correlator.add_app(app_name, package_name)

    def update_app(
        self,
        package_name: str,
        category: Optional[str] = None,
        is_whitelisted: Optional[bool] = None,
        is_work_app: Optional[bool] = None,
    ) -> AppCategory:
        with self._lock:
            return self.correlator.update_app(
                package_name,
                category=category,
                is_whitelisted=is_whitelisted,
                is_work_app=is_work_app,
            )

    # -- session time ------------------------------------------------------

    def set_session_active(self, active: bool) -> None:
        with self._lock:
            if active == self.session.active:
                return
            if active:
                self.session.resume()
            else:
                self.session.pause()
        logger.debug("Session clock %s", "resumed" if active else "paused")

    def tick(self, seconds: int = 1) -> Optional[int]:
        with self._lock:
            total = self.session.tick(seconds)
            if total is not None and self.store is not None:
                self._persist(self.store.save_session_time, self.session.snapshot())
            return total

    def session_summary(self, today: Optional[date] = None) -> LoggingTimeSummary:
        return logging_time_summary(
            self.session.snapshot(), today or parse_day_key(today_key())
        )

    # -- roll-ups ----------------------------------------------------------

    def day_summary(self, day: date) -> PeriodSummary:
        return day_summary(self.ledger.days(), self.correlator.history(), day)

    def week_summary(self, anchor: date) -> PeriodSummary:
        return week_summary(self.ledger.days(), self.correlator.history(), anchor)

    def month_summary(self, anchor: date) -> PeriodSummary:
        return month_summary(self.ledger.days(), self.correlator.history(), anchor)

    async def daily_insights(self, day: Optional[str] = None) -> DailyAnalysis:
        key = day or self.selected_date
        parse_day_key(key)
        async with self.insight_guard.hold():
            analysis = await self.insights.request(self.ledger.activities_for_day(key), key)
        self.analyses[key] = analysis
        return analysis

    # -- import / export ---------------------------------------------------

    def export_document(self) -> str:
        return dump_ledger(self.ledger.days(), indent=2)

    def import_document(self, text: str) -> int:
        """Replace the whole ledger with an exported document; returns the day count."""
        days: list[DayData] = parse_ledger(text)
        with self._lock:
            self.ledger.replace_all(days)
            self.pending_gap = None
        logger.info("Imported %d day(s)", len(days))
        return len(days)

    def clear(self) -> None:
        """Forget all activities and session time; app settings survive."""
        with self._lock:
            self.ledger.clear()
            self.session.reset()
            self.pending_gap = None
            self.analyses.clear()
            if self.store is not None:
                try:
                    self.store.clear()
                except PersistenceWriteFailure as exc:
                    logger.error("Stored data not cleared: %s", exc)
        logger.info("Cleared all tracked data")


