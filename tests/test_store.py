"""Tests for the blob store and the ledger document format."""

import json
import logging

import pytest

from conftest import at
from focus_ledger.db import LEDGER_KEY, database_connection, read_blob, write_blob
from focus_ledger.errors import PersistenceWriteFailure, ValidationError
from focus_ledger.models import (
    Activity,
    ActivityCategory,
    AppCategory,
    DayData,
    DistractionEvent,
)
from focus_ledger.store import LedgerStore, dump_ledger, parse_ledger


@pytest.fixture
def days():
    return [
        DayData(
            "2024-01-15",
            [
                Activity("coding", ActivityCategory.CODING, at(9), at(9, 30), 30),
                Activity("lunch", ActivityCategory.MEALS, at(9, 30), is_ongoing=True),
            ],
        )
    ]


def test_ledger_document_round_trip(days):
    assert parse_ledger(dump_ledger(days)) == days


def test_ledger_document_uses_camel_case(days):
    document = json.loads(dump_ledger(days))
    first = document[0]["activities"][0]

    assert set(first) == {
        "id", "description", "category", "startTime", "endTime", "duration", "isOngoing",
    }
    assert first["startTime"] == "2024-01-15T09:00:00"


def test_parse_accepts_utc_timestamps():
    text = json.dumps(
        [
            {
                "date": "2024-01-15",
                "activities": [
                    {
                        "id": "a1",
                        "description": "coding",
                        "category": "coding",
                        "startTime": "2024-01-15T09:00:00Z",
                        "isOngoing": True,
                    }
                ],
            }
        ]
    )
    activity = parse_ledger(text)[0].activities[0]
    assert activity.start_time.tzinfo is None


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "{}",
        '[{"date": "15/01/2024", "activities": []}]',
        '[{"date": "2024-01-15", "activities": [{"id": "x", "description": "a", "category": "nap", "startTime": "2024-01-15T09:00:00"}]}]',
    ],
)
def test_parse_rejects_malformed_documents(text):
    with pytest.raises(ValidationError):
        parse_ledger(text)


def test_save_and_load_ledger(store, days):
    store.save_ledger(days)
    assert store.load_ledger() == days


def test_corrupt_ledger_loads_empty(store, db_path, caplog):
    with database_connection(db_path) as conn:
        write_blob(conn, LEDGER_KEY, "{broken")

    with caplog.at_level(logging.WARNING):
        assert store.load_ledger() == []
    assert "unreadable" in caplog.text


def test_missing_database_loads_empty(store):
    assert store.load_ledger() == []
    assert store.load_session_time() == {}
    assert store.load_distractions() == []


def test_companion_documents(store):
    event = DistractionEvent(
        package_name="com.instagram.android",
        app_name="Instagram",
        started_at=at(10),
        ended_at=at(10, 4),
        duration_seconds=240,
    )
    app = AppCategory("com.slack", "Slack", is_work_app=True)

    store.save_distractions([event])
    store.save_app_categories([app])
    store.save_session_time({"2024-01-15": 42})

    assert store.load_distractions() == [event]
    assert store.load_app_categories() == [app]
    assert store.load_session_time() == {"2024-01-15": 42}


def test_clear_keeps_app_settings(store, days, db_path):
    store.save_ledger(days)
    store.save_session_time({"2024-01-15": 42})
    store.save_app_categories([AppCategory("com.slack", "Slack")])

    store.clear()

    with database_connection(db_path) as conn:
        assert read_blob(conn, LEDGER_KEY) is None
    assert store.load_session_time() == {}
    assert len(store.load_app_categories()) == 1


def test_write_failure_is_reported(tmp_path, days):
    unwritable = LedgerStore(tmp_path)  # a directory, not a database file
    with pytest.raises(PersistenceWriteFailure):
        unwritable.save_ledger(days)
