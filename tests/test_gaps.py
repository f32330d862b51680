"""Tests for gap detection."""

from datetime import timedelta

from conftest import at
from focus_ledger.gaps import detect_gap, fill_gap
from focus_ledger.models import Activity, ActivityCategory, Gap


def closed(start, end):
    return Activity(
        description="block",
        category=ActivityCategory.WORK,
        start_time=start,
        end_time=end,
        duration=int((end - start).total_seconds() // 60),
    )


def test_seven_minutes_after_last_end_is_a_gap():
    gap = detect_gap(at(10, 7), [closed(at(9), at(10))])
    assert gap == Gap(start_time=at(10), end_time=at(10, 7), duration_minutes=7)


def test_five_minutes_is_not_a_gap():
    assert detect_gap(at(10, 5), [closed(at(9), at(10))]) is None


def test_gap_minutes_round_half_up():
    # 5.5 minutes rounds to 6, which is over the threshold
    gap = detect_gap(at(10, 5, 30), [closed(at(9), at(10))])
    assert gap is not None and gap.duration_minutes == 6


def test_no_closed_activities_means_no_gap():
    assert detect_gap(at(10), []) is None


def test_latest_end_before_candidate_wins():
    activities = [closed(at(8), at(9)), closed(at(9, 30), at(10))]
    assert detect_gap(at(10, 3), activities) is None


def test_activities_ending_after_candidate_are_ignored():
    activities = [closed(at(8), at(9)), closed(at(9, 30), at(11))]
    gap = detect_gap(at(10), activities)
    assert gap.start_time == at(9)
    assert gap.duration_minutes == 60


def test_contiguous_activity_shadows_older_ones():
    activities = [closed(at(7), at(8)), closed(at(8, 30), at(10))]
    assert detect_gap(at(10), activities) is None


def test_ongoing_activities_are_skipped():
    ongoing = Activity("now", ActivityCategory.WORK, at(9, 59), is_ongoing=True)
    gap = detect_gap(at(10, 30), [closed(at(9), at(10)), ongoing])
    assert gap.duration_minutes == 30


def test_custom_threshold():
    assert detect_gap(at(10, 7), [closed(at(9), at(10))], timedelta(minutes=10)) is None


def test_fill_gap_records_closed_activity_over_exact_bounds(ledger):
    gap = Gap(start_time=at(10), end_time=at(10, 20), duration_minutes=20)
    ongoing = ledger.start("writing", "work", at(10, 20))

    filled = fill_gap(ledger, gap, "coffee", ActivityCategory.BREAK)

    assert (filled.start_time, filled.end_time, filled.duration) == (at(10), at(10, 20), 20)
    assert not filled.is_ongoing
    assert ledger.ongoing_activity().id == ongoing.id
