"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest

from focus_ledger.config import TrackerSettings
from focus_ledger.ledger import ActivityLedger
from focus_ledger.models import AppSwitch
from focus_ledger.store import LedgerStore


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def at(hour: int, minute: int = 0, second: int = 0, day: int = 15) -> datetime:
    """An instant on 2024-01-<day> (a Monday when day=15)."""
    return datetime(2024, 1, day, hour, minute, second)


def switch(to_app: str, name: str, timestamp: datetime, is_distraction: bool = True) -> AppSwitch:
    return AppSwitch(
        from_app=None,
        to_app=to_app,
        to_app_name=name,
        timestamp=timestamp,
        is_distraction=is_distraction,
    )


@pytest.fixture
def clock():
    return FakeClock(at(9))


@pytest.fixture
def settings():
    return TrackerSettings()


@pytest.fixture
def ledger(clock):
    return ActivityLedger(clock=clock)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "ledger.sqlite3"


@pytest.fixture
def store(db_path):
    return LedgerStore(db_path)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
