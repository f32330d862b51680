"""Foreground-app sampling and the recurring timers behind monitoring."""

from __future__ import annotations

import ctypes
import logging
import sys
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Protocol

import psutil

from .clock import now
from .config import TrackerSettings
from .errors import ValidationError
from .models import AppSwitch

if TYPE_CHECKING:
    from .service import TrackerService

logger = logging.getLogger(__name__)

SwitchHandler = Callable[[AppSwitch], None]


@dataclass(slots=True, frozen=True)
class ForegroundApp:
    package_name: str
    app_name: str


class ForegroundProbe(Protocol):
    def available(self) -> bool: ...

    def request_permission(self) -> bool: ...

    def foreground_app(self) -> Optional[ForegroundApp]: ...


class WindowsForegroundProbe:
    """Reports the process that owns the foreground window."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def available(self) -> bool:
        return True

    def request_permission(self) -> bool:
        return True

    def foreground_app(self) -> Optional[ForegroundApp]:
        from ctypes import wintypes

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None
        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        if not pid.value:
            return None
        try:
            process_name = psutil.Process(pid.value).name()
        except (psutil.Error, ProcessLookupError):
            return None
        stem = process_name[:-4] if process_name.lower().endswith(".exe") else process_name
        return ForegroundApp(package_name=process_name.lower(), app_name=stem)


class UnavailableProbe:
    """Stand-in on platforms without foreground-app access."""

    def available(self) -> bool:
        return False

    def request_permission(self) -> bool:
        logger.warning("Foreground-app monitoring is not supported on %s", sys.platform)
        return False

    def foreground_app(self) -> Optional[ForegroundApp]:
        return None


def default_probe() -> ForegroundProbe:
    if sys.platform == "win32":
        return WindowsForegroundProbe()
    return UnavailableProbe()


class Ticker:
    """Calls ``callback`` every ``interval`` on a daemon thread until stopped."""

    def __init__(self, interval: timedelta, callback: Callable[[], object], name: str) -> None:
        if interval.total_seconds() <= 0:
            raise ValidationError("interval must be positive")
        self.interval = interval
        self.name = name
        self._callback = callback
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop, args=(stop_event,), name=self.name, daemon=True
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
        logger.debug("%s started (every %ss)", self.name, self.interval.total_seconds())

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
            self._thread = None
            self._stop_event = None
        if stop_event is None or thread is None:
            return
        stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.debug("%s stopped", self.name)

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def _run_loop(self, stop_event: threading.Event) -> None:
        interval = self.interval.total_seconds()
        while not stop_event.wait(interval):
            try:
                self._callback()
            except Exception:
                logger.exception("%s callback failed", self.name)


class PollingForegroundSource:
    """Polls a probe and emits an :class:`AppSwitch` whenever the foreground app changes."""

    def __init__(
        self,
        probe: Optional[ForegroundProbe] = None,
        clock: Callable[[], datetime] = now,
    ) -> None:
        self.probe = probe or default_probe()
        self._clock = clock
        self._handlers: list[SwitchHandler] = []
        self._work_apps: frozenset[str] = frozenset()
        self._current: Optional[ForegroundApp] = None
        self._poll_lock = threading.Lock()
        self._ticker: Optional[Ticker] = None

    def has_permission(self) -> bool:
        return self.probe.available()

    def request_permission(self) -> bool:
        return self.probe.request_permission()

    def subscribe(self, handler: SwitchHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def start_monitoring(self, interval_ms: int, work_apps: Iterable[str] = ()) -> None:
        if interval_ms <= 0:
            raise ValidationError("interval_ms must be positive")
        self.stop_monitoring()
        self._work_apps = frozenset(work_apps)
        self._current = None
        self._ticker = Ticker(
            timedelta(milliseconds=interval_ms), self.poll_once, name="foreground-poller"
        )
        self._ticker.start()
        logger.info("Monitoring foreground apps every %d ms", interval_ms)

    def stop_monitoring(self) -> None:
        if self._ticker is not None:
            self._ticker.stop()
            self._ticker = None
            logger.info("Foreground-app monitoring stopped")

    def is_monitoring(self) -> bool:
        return self._ticker is not None and self._ticker.is_running()

    def set_work_apps(self, work_apps: Iterable[str]) -> None:
        self._work_apps = frozenset(work_apps)

    def poll_once(self) -> Optional[AppSwitch]:
        with self._poll_lock:
            app = self.probe.foreground_app()
            if app is None or app == self._current:
                return None
            previous, self._current = self._current, app
            event = AppSwitch(
                from_app=previous.package_name if previous else None,
                to_app=app.package_name,
                to_app_name=app.app_name,
                timestamp=self._clock(),
                is_distraction=app.package_name not in self._work_apps,
            )
            for handler in list(self._handlers):
                handler(event)
            return event


class MonitorRunner:
    """Owns the session ticker and the foreground poller for one service."""

    def __init__(
        self,
        service: "TrackerService",
        source: Optional[PollingForegroundSource] = None,
        settings: Optional[TrackerSettings] = None,
    ) -> None:
        self.service = service
        self.settings = settings or service.settings
        self.source = source or PollingForegroundSource()
        self._session_ticker = Ticker(
            self.settings.tick_interval, self._tick, name="session-ticker"
        )
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self) -> None:
        self._session_ticker.start()
        self.start_monitoring()

    def stop(self) -> None:
        self.stop_monitoring()
        self._session_ticker.stop()

    def start_monitoring(self) -> bool:
        """Begin polling; returns ``False`` when the platform grants no access."""
        if not self.source.has_permission() and not self.source.request_permission():
            logger.info("Foreground-app access unavailable; distraction tracking is off")
            return False
        if self._unsubscribe is None:
            self._unsubscribe = self.source.subscribe(self.service.handle_app_switch)
        interval_ms = int(self.settings.poll_interval.total_seconds() * 1000)
        self.source.start_monitoring(interval_ms, self.service.work_apps())
        self.service.set_monitoring(True)
        return True

    def stop_monitoring(self) -> None:
        self.source.stop_monitoring()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.service.set_monitoring(False)

    def refresh_work_apps(self) -> None:
        self.source.set_work_apps(self.service.work_apps())

    def status(self) -> dict[str, object]:
        return {
            "session_ticker_running": self._session_ticker.is_running(),
            "monitoring": self.source.is_monitoring(),
            "has_permission": self.source.has_permission(),
            "poll_seconds": self.settings.poll_interval.total_seconds(),
        }

    def _tick(self) -> None:
        self.service.tick(max(1, round(self.settings.tick_interval.total_seconds())))
