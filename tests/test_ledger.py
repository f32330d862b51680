"""Tests for the activity ledger."""

from datetime import datetime

import pytest

from conftest import at
from focus_ledger.errors import InvalidStateTransition, NotFoundError, ValidationError
from focus_ledger.ledger import ActivityLedger
from focus_ledger.models import Activity, ActivityCategory, DayData


def ongoing_count(ledger):
    return sum(1 for day in ledger.days() for a in day.activities if a.is_ongoing)


class TestStartAndStop:
    def test_start_opens_single_ongoing_activity(self, ledger):
        activity = ledger.start("coding", "coding", at(9))

        assert activity.is_ongoing
        assert activity.end_time is None
        assert ledger.ongoing_activity().id == activity.id
        assert ongoing_count(ledger) == 1

    def test_start_closes_previous_activity_at_new_start(self, ledger):
        first = ledger.start("coding", ActivityCategory.CODING, at(9))
        second = ledger.start("lunch", ActivityCategory.MEALS, at(9, 30))

        closed = ledger.get(first.id)
        assert closed.end_time == at(9, 30)
        assert closed.duration == 30
        assert not closed.is_ongoing
        assert ledger.ongoing_activity().id == second.id
        assert ongoing_count(ledger) == 1

    def test_start_defaults_to_clock(self, ledger, clock):
        clock.set(at(11, 15))
        assert ledger.start("reading", "leisure").start_time == at(11, 15)

    def test_description_is_trimmed(self, ledger):
        assert ledger.start("  coding  ", "coding", at(9)).description == "coding"

    def test_stop_is_idempotent(self, ledger):
        ledger.start("coding", "coding", at(9))
        stopped = ledger.stop(at(10))
        snapshot = ledger.days()

        assert stopped.duration == 60
        assert ledger.stop(at(11)) is None
        assert ledger.days() == snapshot

    def test_stop_before_start_is_rejected_without_change(self, ledger):
        activity = ledger.start("coding", "coding", at(9))

        with pytest.raises(InvalidStateTransition):
            ledger.stop(at(8, 59))

        assert ledger.ongoing_activity().id == activity.id

    def test_start_before_ongoing_start_is_rejected(self, ledger):
        ledger.start("coding", "coding", at(9))

        with pytest.raises(InvalidStateTransition):
            ledger.start("lunch", "meals", at(8))
        assert len(ledger) == 1

    def test_duration_rounds_half_minutes_up(self, ledger):
        ledger.start("coding", "coding", at(9))
        assert ledger.stop(at(9, 0, 30)).duration == 1

    def test_switch_behaves_like_start(self, ledger):
        ledger.start("coding", "coding", at(9))
        ledger.switch("meeting", "meetings", at(9, 45))
        assert [a.description for a in ledger.closed_activities()] == ["coding"]

    def test_activity_lives_under_its_start_day(self, ledger):
        ledger.start("late night", "coding", datetime(2024, 1, 15, 23, 30))
        ledger.stop(datetime(2024, 1, 16, 0, 30))

        assert [a.duration for a in ledger.activities_for_day("2024-01-15")] == [60]
        assert ledger.activities_for_day("2024-01-16") == []


class TestValidation:
    @pytest.mark.parametrize("description", ["", "   ", None, "x" * 501])
    def test_bad_descriptions(self, ledger, description):
        with pytest.raises(ValidationError):
            ledger.start(description, "coding", at(9))
        assert len(ledger) == 0

    def test_unknown_category(self, ledger):
        with pytest.raises(ValidationError):
            ledger.start("coding", "hobbies", at(9))

    def test_malformed_time(self, ledger):
        with pytest.raises(ValidationError):
            ledger.start("coding", "coding", "yesterday-ish")

    def test_record_end_before_start(self, ledger):
        with pytest.raises(ValidationError):
            ledger.record("coding", "coding", at(10), at(9))

    def test_record_keeps_ongoing_activity(self, ledger):
        ongoing = ledger.start("writing", "work", at(11))
        recorded = ledger.record("standup", "meetings", at(9), at(9, 15))

        assert recorded.duration == 15
        assert ledger.ongoing_activity().id == ongoing.id


class TestOverlap:
    def test_start_inside_closed_activity_is_rejected(self, ledger):
        ledger.start("coding", "coding", at(9))
        ledger.stop(at(10))

        with pytest.raises(InvalidStateTransition):
            ledger.start("lunch", "meals", at(9, 30))
        assert len(ledger) == 1
        assert ledger.ongoing_activity() is None

    def test_record_over_existing_block_is_rejected(self, ledger):
        ledger.record("coding", "coding", at(9), at(10))

        with pytest.raises(InvalidStateTransition):
            ledger.record("standup", "meetings", at(9, 45), at(10, 15))
        assert len(ledger) == 1

    def test_record_after_ongoing_start_is_rejected(self, ledger):
        ledger.start("writing", "work", at(11))
        with pytest.raises(InvalidStateTransition):
            ledger.record("standup", "meetings", at(11, 30), at(11, 45))

    def test_touching_blocks_are_allowed(self, ledger):
        ledger.record("coding", "coding", at(9), at(10))
        ledger.record("standup", "meetings", at(10), at(10, 15))
        ledger.start("writing", "work", at(10, 15))
        assert len(ledger) == 3


class TestUpdate:
    def test_new_end_time_recomputes_duration(self, ledger):
        activity = ledger.record("coding", "coding", at(9), at(10))
        updated = ledger.update(activity.id, {"end_time": at(10, 20)})
        assert updated.duration == 80

    def test_setting_end_time_closes_ongoing(self, ledger):
        activity = ledger.start("coding", "coding", at(9))
        updated = ledger.update(activity.id, {"end_time": at(9, 40)})

        assert not updated.is_ongoing
        assert updated.duration == 40
        assert ledger.ongoing_activity() is None

    def test_clearing_end_of_closed_activity_is_rejected(self, ledger):
        activity = ledger.record("coding", "coding", at(9), at(10))
        with pytest.raises(InvalidStateTransition):
            ledger.update(activity.id, {"end_time": None})

    def test_reopen_is_rejected_while_another_is_ongoing(self, ledger):
        closed = ledger.record("coding", "coding", at(9), at(10))
        ledger.start("lunch", "meals", at(12))

        with pytest.raises(InvalidStateTransition):
            ledger.update(closed.id, {"is_ongoing": True})
        assert ledger.get(closed.id).duration == 60

    def test_reopen_when_nothing_is_ongoing(self, ledger):
        closed = ledger.record("coding", "coding", at(9), at(10))
        reopened = ledger.update(closed.id, {"is_ongoing": True})

        assert reopened.is_ongoing
        assert reopened.end_time is None
        assert reopened.duration is None

    def test_unknown_field(self, ledger):
        activity = ledger.record("coding", "coding", at(9), at(10))
        with pytest.raises(ValidationError):
            ledger.update(activity.id, {"duration": 5})

    def test_moving_to_another_day_is_rejected(self, ledger):
        activity = ledger.record("coding", "coding", at(9), at(10))
        with pytest.raises(InvalidStateTransition):
            ledger.update(activity.id, {"start_time": at(9, day=16)})

    def test_unknown_id(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.update("missing", {"description": "x"})


class TestDeleteAndListeners:
    def test_delete_keeps_day_entry(self, ledger):
        activity = ledger.record("coding", "coding", at(9), at(10))
        ledger.delete(activity.id)

        assert ledger.activities_for_day("2024-01-15") == []
        assert ledger.dates_with_data() == []
        with pytest.raises(NotFoundError):
            ledger.delete(activity.id)

    def test_listeners_only_see_committed_changes(self, ledger):
        calls = []
        unsubscribe = ledger.subscribe(lambda l: calls.append(len(l)))

        ledger.start("coding", "coding", at(9))
        with pytest.raises(ValidationError):
            ledger.start("", "coding", at(10))
        unsubscribe()
        ledger.stop(at(10))

        assert calls == [1]

    def test_queries_return_copies(self, ledger):
        activity = ledger.start("coding", "coding", at(9))
        copy = ledger.get(activity.id)
        copy.description = "changed"
        assert ledger.get(activity.id).description == "coding"


def test_loading_two_ongoing_activities_is_rejected():
    days = [
        DayData("2024-01-15", [Activity("a", ActivityCategory.WORK, at(9), is_ongoing=True)]),
        DayData(
            "2024-01-16",
            [Activity("b", ActivityCategory.WORK, at(9, day=16), is_ongoing=True)],
        ),
    ]
    with pytest.raises(InvalidStateTransition):
        ActivityLedger(days)


def test_replace_all_rejects_misfiled_activity(ledger):
    ledger.start("coding", "coding", at(9))
    bad = [DayData("2024-01-16", [Activity("a", ActivityCategory.WORK, at(9), at(10), 60)])]

    with pytest.raises(InvalidStateTransition):
        ledger.replace_all(bad)
    assert len(ledger) == 1
