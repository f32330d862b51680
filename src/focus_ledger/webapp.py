"""FastAPI application that exposes the focus ledger over a local HTTP API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Literal, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .clock import format_instant, parse_day_key, today_key
from .collector import MonitorRunner, PollingForegroundSource
from .config import TrackerSettings
from .errors import (
    CollaboratorUnavailable,
    FocusLedgerError,
    InvalidStateTransition,
    NotFoundError,
    ReasonRequired,
    SubmissionInProgress,
    ValidationError,
)
from .models import (
    DESCRIPTION_MAX_LENGTH,
    Activity,
    ActivityCategory,
    AppCategory,
    AppSwitch,
    DailyAnalysis,
    DistractionEvent,
    Gap,
    Resolution,
)
from .paths import get_db_path, get_export_path
from .reporting import HeatmapCell, PeriodSummary, PeriodTotals, hourly_heatmap, week_heatmap
from .schemas import ActivityRecord, AppCategoryRecord, DistractionRecord
from .service import TrackerService
from .store import LedgerStore

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[FocusLedgerError], int], ...] = (
    (ReasonRequired, 422),
    (ValidationError, 400),
    (NotFoundError, 404),
    (InvalidStateTransition, 409),
    (SubmissionInProgress, 429),
    (CollaboratorUnavailable, 502),
)


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ManualActivityPayload(_Payload):
    description: str
    category: ActivityCategory
    start_time: str
    end_time: Optional[str] = None


class ActivityUpdate(_Payload):
    description: Optional[str] = None
    category: Optional[ActivityCategory] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_ongoing: Optional[bool] = None


class StopPayload(_Payload):
    end_time: Optional[datetime] = None


class NarrationPayload(_Payload):
    message: str = Field(max_length=DESCRIPTION_MAX_LENGTH)


class SelectDatePayload(_Payload):
    date: str


class GapFillPayload(_Payload):
    description: str
    category: ActivityCategory = ActivityCategory.OTHER


class AppSwitchPayload(_Payload):
    from_app: Optional[str] = None
    to_app: str
    to_app_name: str
    timestamp: datetime
    is_distraction: bool = True


class ResolutionPayload(_Payload):
    id: str
    is_work_related: bool
    reason: Optional[str] = None


class ResolveBatchPayload(_Payload):
    resolutions: list[ResolutionPayload]


class CorrectionPayload(_Payload):
    is_work_related: bool
    reason: Optional[str] = None


class AddAppPayload(_Payload):
    app_name: str
    package_name: Optional[str] = None


class AppSettingsPayload(_Payload):
    category: Optional[str] = None
    is_whitelisted: Optional[bool] = None
    is_work_app: Optional[bool] = None


class SessionActivePayload(_Payload):
    active: bool


class MonitoringPayload(_Payload):
    enabled: bool


class InsightPayload(_Payload):
    date: Optional[str] = None


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    service: Optional[TrackerService] = None,
    source: Optional[PollingForegroundSource] = None,
    start_monitor: bool = True,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_settings = settings or (service.settings if service else TrackerSettings.from_env())
    if service is None:
        resolved_db_path = Path(db_path or get_db_path())
        service = TrackerService(store=LedgerStore(resolved_db_path), settings=resolved_settings)
    else:
        resolved_db_path = service.store.db_path if service.store else None
    runner = MonitorRunner(service, source=source, settings=resolved_settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        if start_monitor:
            runner.start()
        try:
            yield
        finally:
            runner.stop()

    app = FastAPI(title="Focus Ledger", version="0.3.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path
    app.state.service = service
    app.state.monitor_runner = runner

    for error_type, status_code in _STATUS_BY_ERROR:
        app.add_exception_handler(error_type, _error_handler(status_code))

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": _first_error(exc)})

    # -- status and selection ----------------------------------------------

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        ongoing = svc.ledger.ongoing_activity()
        return {
            **request.app.state.monitor_runner.status(),
            "database_path": str(request.app.state.db_path),
            "selected_date": svc.selected_date,
            "ongoing": _activity(ongoing) if ongoing else None,
            "episode_state": svc.correlator.state.value,
            "gap_minutes": resolved_settings.gap_threshold.total_seconds() / 60.0,
        }

    @app.post("/api/select-date")
    def select_date(payload: SelectDatePayload, request: Request) -> Dict[str, Any]:
        return {"date": request.app.state.service.select_date(payload.date)}

    # -- activities --------------------------------------------------------

    @app.get("/api/activities")
    def list_activities(
        request: Request,
        date: Optional[str] = Query(default=None, description="Date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        key = _day(date or svc.selected_date)
        ongoing = svc.ledger.ongoing_activity()
        return {
            "date": key,
            "activities": [_activity(a) for a in svc.activities(key)],
            "ongoing": _activity(ongoing) if ongoing else None,
            "dates": svc.ledger.dates_with_data(),
        }

    @app.post("/api/activities", status_code=201)
    def add_activity(payload: ManualActivityPayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        activity = svc.add_manual(
            payload.description, payload.category, payload.start_time, payload.end_time
        )
        return {"activity": _activity(activity), "gap": _gap(svc.pending_gap)}

    @app.post("/api/activities/stop")
    def stop_activity(
        request: Request, payload: Optional[StopPayload] = Body(default=None)
    ) -> Dict[str, Any]:
        stopped = request.app.state.service.stop(payload.end_time if payload else None)
        return {"activity": _activity(stopped) if stopped else None}

    @app.patch("/api/activities/{activity_id}")
    def update_activity(
        activity_id: str, payload: ActivityUpdate, request: Request
    ) -> Dict[str, Any]:
        changes = payload.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No changes supplied")
        return {"activity": _activity(request.app.state.service.update_activity(activity_id, changes))}

    @app.delete("/api/activities/{activity_id}")
    def delete_activity(activity_id: str, request: Request) -> Dict[str, Any]:
        return {"activity": _activity(request.app.state.service.delete_activity(activity_id))}

    @app.post("/api/narrate")
    async def narrate(payload: NarrationPayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        activity = await svc.narrate(payload.message)
        return {
            "applied": activity is not None,
            "activity": _activity(activity) if activity else None,
            "gap": _gap(svc.pending_gap),
        }

    # -- gaps --------------------------------------------------------------

    @app.get("/api/gap")
    def pending_gap(request: Request) -> Dict[str, Any]:
        return {"gap": _gap(request.app.state.service.pending_gap)}

    @app.post("/api/gap/fill", status_code=201)
    def fill_gap(payload: GapFillPayload, request: Request) -> Dict[str, Any]:
        activity = request.app.state.service.fill_gap(payload.description, payload.category)
        return {"activity": _activity(activity)}

    @app.post("/api/gap/skip")
    def skip_gap(request: Request) -> Dict[str, Any]:
        return {"skipped": _gap(request.app.state.service.skip_gap())}

    # -- distractions ------------------------------------------------------

    @app.post("/api/app-switches")
    def app_switch(payload: AppSwitchPayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        recorded = svc.handle_app_switch(
            AppSwitch(
                from_app=payload.from_app,
                to_app=payload.to_app,
                to_app_name=payload.to_app_name,
                timestamp=payload.timestamp,
                is_distraction=payload.is_distraction,
            )
        )
        return {
            "state": svc.correlator.state.value,
            "recorded": _event(svc, recorded) if recorded else None,
        }

    @app.get("/api/distractions")
    def distraction_history(
        request: Request,
        date: Optional[str] = Query(default=None, description="Date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        key = _day(date) if date else None
        return {"events": [_event(svc, e) for e in svc.correlator.history(key)]}

    @app.get("/api/distractions/pending")
    def distraction_prompts(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        hard = svc.correlator.next_hard_prompt()
        return {
            "state": svc.correlator.state.value,
            "hard": _event(svc, hard) if hard else None,
            "grouped": [_event(svc, e) for e in svc.correlator.grouped_batch()],
        }

    @app.post("/api/distractions/resolve")
    def resolve_distractions(payload: ResolveBatchPayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        resolved = svc.resolve_distractions(
            Resolution(r.id, r.is_work_related, r.reason) for r in payload.resolutions
        )
        return {"events": [_event(svc, e) for e in resolved]}

    @app.post("/api/distractions/{event_id}/correct")
    def correct_distraction(
        event_id: str, payload: CorrectionPayload, request: Request
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        event = svc.correct_distraction(event_id, payload.is_work_related, payload.reason)
        return {"event": _event(svc, event)}

    @app.post("/api/monitoring")
    def monitoring(payload: MonitoringPayload, request: Request) -> Dict[str, Any]:
        runner: MonitorRunner = request.app.state.monitor_runner
        if payload.enabled:
            enabled = runner.start_monitoring()
        else:
            runner.stop_monitoring()
            enabled = False
        return {"monitoring": enabled}

    # -- app categories ----------------------------------------------------

    @app.get("/api/apps")
    def list_apps(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        return {"apps": [_app(c) for c in svc.app_categories()]}

    @app.post("/api/apps", status_code=201)
    def add_app(payload: AddAppPayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        return {"app": _app(svc.add_app(payload.app_name, payload.package_name))}

    @app.patch("/api/apps/{package_name}")
    def update_app(
        package_name: str, payload: AppSettingsPayload, request: Request
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        updated = svc.update_app(
            package_name,
            category=payload.category,
            is_whitelisted=payload.is_whitelisted,
            is_work_app=payload.is_work_app,
        )
        if payload.is_work_app is not None:
            request.app.state.monitor_runner.refresh_work_apps()
        return {"app": _app(updated)}

    # -- roll-ups ----------------------------------------------------------

    @app.get("/api/summary/{period}")
    def summary(
        period: Literal["day", "week", "month"],
        request: Request,
        date: Optional[str] = Query(default=None, description="Anchor date in YYYY-MM-DD format."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        anchor = parse_day_key(date) if date else _today()
        if period == "day":
            result = svc.day_summary(anchor)
        elif period == "week":
            result = svc.week_summary(anchor)
        else:
            result = svc.month_summary(anchor)
        return {"period": period, **_summary(result)}

    @app.get("/api/heatmap")
    def heatmap(
        request: Request,
        date: Optional[str] = Query(default=None, description="Date in YYYY-MM-DD format."),
        span: Literal["day", "week"] = Query(default="day"),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        anchor = parse_day_key(date) if date else _today()
        activities = [a for d in svc.ledger.days() for a in d.activities]
        events = svc.correlator.history()
        if span == "day":
            return {
                "days": [
                    {"date": anchor.isoformat(), "hours": _cells(hourly_heatmap(activities, events, anchor))}
                ]
            }
        return {
            "days": [
                {"date": d.isoformat(), "hours": _cells(cells)}
                for d, cells in week_heatmap(activities, events, anchor)
            ]
        }

    @app.post("/api/session-time/active")
    def session_active(payload: SessionActivePayload, request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        svc.set_session_active(payload.active)
        return {"active": svc.session.active}

    @app.get("/api/session-time")
    def session_time(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        result = svc.session_summary()
        return {
            "todaySeconds": svc.session.today_seconds,
            "totalSeconds": result.total_seconds,
            "averageDailySeconds": result.average_daily_seconds,
            "thisWeekSeconds": result.this_week_seconds,
            "lastWeekSeconds": result.last_week_seconds,
            "trendPercent": result.trend_percent,
            "trackedDays": result.tracked_days,
            "chart": [{"date": d, "minutes": m} for d, m in result.chart],
        }

    @app.post("/api/insights")
    async def insights(
        request: Request, payload: Optional[InsightPayload] = Body(default=None)
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        key = _day(payload.date) if payload and payload.date else svc.selected_date
        return {"date": key, **_analysis(await svc.daily_insights(key))}

    # -- import / export ---------------------------------------------------

    @app.get("/api/export")
    def export(request: Request) -> PlainTextResponse:
        filename = get_export_path(today_key()).name
        return PlainTextResponse(
            request.app.state.service.export_document(),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.post("/api/import")
    async def import_document(request: Request) -> Dict[str, Any]:
        raw = await request.body()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ValidationError("Import must be UTF-8 JSON") from exc
        return {"days": request.app.state.service.import_document(text)}

    @app.post("/api/clear")
    def clear(request: Request) -> Dict[str, Any]:
        request.app.state.service.clear()
        return {"cleared": True}

    return app


def _error_handler(status_code: int):
    async def handle(_: Request, exc: Exception) -> JSONResponse:
        if status_code >= 500:
            logger.warning("Upstream failure: %s", exc)
        content: Dict[str, Any] = {"detail": str(exc)}
        if isinstance(exc, ReasonRequired):
            content["eventId"] = exc.event_id
        return JSONResponse(status_code=status_code, content=content)

    return handle


def _first_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "invalid")


def _today() -> date:
    return parse_day_key(today_key())


def _day(value: str) -> str:
    parse_day_key(value)
    return value


def _activity(activity: Activity) -> Dict[str, Any]:
    return ActivityRecord.from_model(activity).model_dump(mode="json", by_alias=True)


def _event(service: TrackerService, event: DistractionEvent) -> Dict[str, Any]:
    payload = DistractionRecord.from_model(event).model_dump(mode="json", by_alias=True)
    severity = service.correlator.severity(event)
    payload["severity"] = severity.value if severity else None
    return payload


def _app(category: AppCategory) -> Dict[str, Any]:
    return AppCategoryRecord.from_model(category).model_dump(mode="json", by_alias=True)


def _gap(gap: Optional[Gap]) -> Optional[Dict[str, Any]]:
    if gap is None:
        return None
    return {
        "startTime": format_instant(gap.start_time),
        "endTime": format_instant(gap.end_time),
        "durationMinutes": gap.duration_minutes,
    }


def _totals(totals: PeriodTotals) -> Dict[str, Any]:
    return {
        "start": totals.start.isoformat(),
        "end": totals.end.isoformat(),
        "productiveMinutes": totals.productive_minutes,
        "distractionMinutes": totals.distraction_minutes,
        "loggedMinutes": totals.logged_minutes,
        "actualWorkMinutes": totals.actual_work_minutes,
        "integrity": totals.integrity,
    }


def _summary(summary: PeriodSummary) -> Dict[str, Any]:
    return {
        "current": _totals(summary.current),
        "previous": _totals(summary.previous),
        "productiveTrend": summary.productive_trend,
        "distractionTrend": summary.distraction_trend,
        "breakdown": [_totals(part) for part in summary.breakdown],
    }


def _cells(cells: list[HeatmapCell]) -> list[Dict[str, Any]]:
    return [
        {
            "hour": cell.hour,
            "productiveMinutes": round(cell.productive_minutes, 1),
            "distractionMinutes": cell.distraction_minutes,
            "band": cell.band.value,
        }
        for cell in cells
    ]


def _analysis(analysis: DailyAnalysis) -> Dict[str, Any]:
    return {
        "summary": analysis.summary,
        "redFlags": list(analysis.red_flags),
        "greenFlags": list(analysis.green_flags),
        "recommendations": list(analysis.recommendations),
    }
