"""Configuration models and helpers for the focus ledger."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "FOCUS_LEDGER_"


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for the ledger, correlator and monitors."""

    poll_interval: timedelta = timedelta(seconds=2)
    tick_interval: timedelta = timedelta(seconds=1)
    gap_threshold: timedelta = timedelta(minutes=5)
    noise_threshold: timedelta = timedelta(seconds=30)
    grouped_threshold: timedelta = timedelta(seconds=120)
    hard_threshold: timedelta = timedelta(seconds=300)
    tracker_markers: tuple[str, ...] = ("focus-ledger", "focusledger")
    parse_url: str = ""
    insights_url: str = ""
    api_key: str = field(default="", repr=False)
    request_timeout: float = 30.0

    @classmethod
    def from_intervals(
        cls,
        poll_seconds: float = 2.0,
        gap_minutes: float = 5.0,
        noise_seconds: Optional[float] = None,
        tick_seconds: Optional[float] = None,
    ) -> "TrackerSettings":
        noise = noise_seconds if noise_seconds is not None else 30.0
        tick = tick_seconds if tick_seconds is not None else 1.0
        return cls(
            poll_interval=timedelta(seconds=poll_seconds),
            tick_interval=timedelta(seconds=tick),
            gap_threshold=timedelta(minutes=gap_minutes),
            noise_threshold=timedelta(seconds=noise),
        )

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, base: Optional["TrackerSettings"] = None
    ) -> "TrackerSettings":
        """Apply ``FOCUS_LEDGER_*`` overrides on top of ``base`` (or defaults)."""
        env = os.environ if environ is None else environ
        settings = base or cls()
        overrides: dict[str, Any] = {}

        for name, field_name in (
            ("POLL_SECONDS", "poll_interval"),
            ("GAP_MINUTES", "gap_threshold"),
            ("NOISE_SECONDS", "noise_threshold"),
        ):
            raw = env.get(ENV_PREFIX + name)
            if raw is None:
                continue
            try:
                amount = float(raw)
            except ValueError:
                logger.warning("Ignoring invalid value for %s%s: %r", ENV_PREFIX, name, raw)
                continue
            if name == "GAP_MINUTES":
                overrides[field_name] = timedelta(minutes=amount)
            else:
                overrides[field_name] = timedelta(seconds=amount)

        for name, field_name in (
            ("PARSE_URL", "parse_url"),
            ("INSIGHTS_URL", "insights_url"),
            ("API_KEY", "api_key"),
        ):
            raw = env.get(ENV_PREFIX + name)
            if raw is not None:
                overrides[field_name] = raw.strip()

        markers = env.get(ENV_PREFIX + "TRACKER_MARKERS")
        if markers:
            overrides["tracker_markers"] = tuple(
                part.strip().lower() for part in markers.split(",") if part.strip()
            )

        return replace(settings, **overrides) if overrides else settings
