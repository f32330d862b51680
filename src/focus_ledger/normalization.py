"""Utilities to normalize app identifiers and guess how an app is used."""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, Optional


class ExpectedUse(str, Enum):
    WORK = "work"
    DISTRACTION = "distraction"


# Checked in order; the first case-insensitive substring hit wins.
_APP_HINTS: tuple[tuple[str, ExpectedUse], ...] = (
    ("instagram", ExpectedUse.DISTRACTION),
    ("facebook", ExpectedUse.DISTRACTION),
    ("tiktok", ExpectedUse.DISTRACTION),
    ("youtube", ExpectedUse.DISTRACTION),
    ("netflix", ExpectedUse.DISTRACTION),
    ("prime video", ExpectedUse.DISTRACTION),
    ("hotstar", ExpectedUse.DISTRACTION),
    ("twitch", ExpectedUse.DISTRACTION),
    ("reddit", ExpectedUse.DISTRACTION),
    ("twitter", ExpectedUse.DISTRACTION),
    ("snapchat", ExpectedUse.DISTRACTION),
    ("pinterest", ExpectedUse.DISTRACTION),
    ("whatsapp", ExpectedUse.DISTRACTION),
    ("telegram", ExpectedUse.DISTRACTION),
    ("discord", ExpectedUse.DISTRACTION),
    ("spotify", ExpectedUse.DISTRACTION),
    ("game", ExpectedUse.DISTRACTION),
    ("slack", ExpectedUse.WORK),
    ("teams", ExpectedUse.WORK),
    ("zoom", ExpectedUse.WORK),
    ("google meet", ExpectedUse.WORK),
    ("outlook", ExpectedUse.WORK),
    ("gmail", ExpectedUse.WORK),
    ("calendar", ExpectedUse.WORK),
    ("google docs", ExpectedUse.WORK),
    ("sheets", ExpectedUse.WORK),
    ("drive", ExpectedUse.WORK),
    ("notion", ExpectedUse.WORK),
    ("jira", ExpectedUse.WORK),
    ("confluence", ExpectedUse.WORK),
    ("linear", ExpectedUse.WORK),
    ("github", ExpectedUse.WORK),
    ("gitlab", ExpectedUse.WORK),
    ("figma", ExpectedUse.WORK),
    ("visual studio", ExpectedUse.WORK),
    ("vs code", ExpectedUse.WORK),
    ("terminal", ExpectedUse.WORK),
    ("termux", ExpectedUse.WORK),
    ("linkedin", ExpectedUse.WORK),
)

_WHITESPACE = re.compile(r"\s+")


def normalize_app_name(value: Optional[str]) -> str:
    """Lower-case and collapse whitespace so names match the hint table."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip().lower()


def package_name_for(app_name: str) -> str:
    """Derive a package-style key for an app that was added by name only."""
    return _WHITESPACE.sub(".", app_name.strip().lower())


def expected_use(app_name: Optional[str], package_name: Optional[str] = None) -> Optional[ExpectedUse]:
    """Heuristic classification for an app, or ``None`` when unknown."""
    for candidate in (normalize_app_name(app_name), normalize_app_name(package_name)):
        if not candidate:
            continue
        for needle, use in _APP_HINTS:
            if needle in candidate:
                return use
    return None


def contradicts_heuristic(
    app_name: Optional[str], is_work_related: bool, package_name: Optional[str] = None
) -> bool:
    """True when the user's answer disagrees with the app's expected use."""
    use = expected_use(app_name, package_name)
    if use is None:
        return False
    if use is ExpectedUse.DISTRACTION:
        return is_work_related
    return not is_work_related


def is_tracker_package(package_name: Optional[str], markers: Iterable[str]) -> bool:
    if not package_name:
        return False
    lowered = package_name.lower()
    return any(marker and marker.lower() in lowered for marker in markers)
