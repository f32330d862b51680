"""Whole-state persistence of the ledger and its companions."""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional

import pydantic

from .db import (
    APP_CATEGORIES_KEY,
    DISTRACTIONS_KEY,
    LEDGER_KEY,
    SESSION_TIME_KEY,
    database_connection,
    delete_blob,
    read_blob,
    write_blob,
)
from .errors import PersistenceWriteFailure, ValidationError
from .models import AppCategory, DayData, DistractionEvent
from .schemas import (
    APP_CATEGORY_DOCUMENT,
    DISTRACTION_DOCUMENT,
    LEDGER_DOCUMENT,
    SESSION_TIME_DOCUMENT,
    AppCategoryRecord,
    DayRecord,
    DistractionRecord,
)

logger = logging.getLogger(__name__)


def dump_ledger(days: Iterable[DayData], *, indent: Optional[int] = None) -> str:
    records = [DayRecord.from_model(day) for day in days]
    payload = LEDGER_DOCUMENT.dump_python(records, mode="json", by_alias=True)
    return json.dumps(payload, indent=indent, ensure_ascii=False)


def parse_ledger(text: str) -> list[DayData]:
    """Parse an exported ledger document; raises ``ValidationError`` if malformed."""
    try:
        records = LEDGER_DOCUMENT.validate_json(text)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Not a ledger document: {exc.error_count()} problem(s)") from exc
    return [record.to_model() for record in records]


class LedgerStore:
    """Reads and writes whole-state snapshots in the blob store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    # -- ledger ------------------------------------------------------------

    def load_ledger(self) -> list[DayData]:
        raw = self._read(LEDGER_KEY)
        if raw is None:
            return []
        try:
            return parse_ledger(raw)
        except ValidationError:
            logger.warning("Stored ledger is unreadable; starting with an empty ledger.")
            return []

    def save_ledger(self, days: Iterable[DayData]) -> None:
        self._write(LEDGER_KEY, dump_ledger(days))

    # -- session time ------------------------------------------------------

    def load_session_time(self) -> dict[str, int]:
        raw = self._read(SESSION_TIME_KEY)
        if raw is None:
            return {}
        try:
            return SESSION_TIME_DOCUMENT.validate_json(raw)
        except pydantic.ValidationError:
            logger.warning("Stored session time is unreadable; starting from zero.")
            return {}

    def save_session_time(self, seconds_by_day: dict[str, int]) -> None:
        self._write(SESSION_TIME_KEY, json.dumps(seconds_by_day, sort_keys=True))

    # -- distractions and apps --------------------------------------------

    def load_distractions(self) -> list[DistractionEvent]:
        raw = self._read(DISTRACTIONS_KEY)
        if raw is None:
            return []
        try:
            return [r.to_model() for r in DISTRACTION_DOCUMENT.validate_json(raw)]
        except pydantic.ValidationError:
            logger.warning("Stored distraction history is unreadable; ignoring it.")
            return []

    def save_distractions(self, events: Iterable[DistractionEvent]) -> None:
        records = [DistractionRecord.from_model(e) for e in events]
        self._write(DISTRACTIONS_KEY, self._dump(DISTRACTION_DOCUMENT, records))

    def load_app_categories(self) -> list[AppCategory]:
        raw = self._read(APP_CATEGORIES_KEY)
        if raw is None:
            return []
        try:
            return [r.to_model() for r in APP_CATEGORY_DOCUMENT.validate_json(raw)]
        except pydantic.ValidationError:
            logger.warning("Stored app categories are unreadable; ignoring them.")
            return []

    def save_app_categories(self, categories: Iterable[AppCategory]) -> None:
        records = [AppCategoryRecord.from_model(c) for c in categories]
        self._write(APP_CATEGORIES_KEY, self._dump(APP_CATEGORY_DOCUMENT, records))

    def clear(self) -> None:
        """Remove the ledger and session time, keeping app settings."""
        try:
            with database_connection(self.db_path) as conn:
                delete_blob(conn, LEDGER_KEY)
                delete_blob(conn, SESSION_TIME_KEY)
        except sqlite3.Error as exc:
            raise PersistenceWriteFailure(str(exc)) from exc

    # -- internals ---------------------------------------------------------

    @staticmethod
    def _dump(adapter: pydantic.TypeAdapter, records: list[Any]) -> str:
        return json.dumps(
            adapter.dump_python(records, mode="json", by_alias=True), ensure_ascii=False
        )

    def _read(self, key: str) -> Optional[str]:
        try:
            with database_connection(self.db_path) as conn:
                return read_blob(conn, key)
        except sqlite3.Error:
            logger.exception("Could not read %s from %s", key, self.db_path)
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            with database_connection(self.db_path) as conn:
                write_blob(conn, key, value)
        except (sqlite3.Error, OSError) as exc:
            raise PersistenceWriteFailure(f"Could not write {key}: {exc}") from exc
