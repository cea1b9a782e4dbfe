"""Tests for the temporal status classifier.

Coverage:
  1. Completion exactly at the deadline instant is on time
  2. Missing / 00:00 deadline time means end of day
  3. Open instances judged by calendar day against today
  4. Completed instance without a completion record is on time
  5. Due-tomorrow flag
"""

from datetime import date, datetime, time

from calendario.services.calendar_types import DisplayStatus, LifecycleStatus
from calendario.services.status_classifier import (
    END_OF_DAY,
    classify,
    classify_instance,
    deadline_instant,
    is_due_tomorrow,
)
from fakes import make_instance

TODAY = date(2025, 3, 10)


class TestDeadlineInstant:
    def test_explicit_time_is_used(self):
        assert deadline_instant(date(2025, 3, 10), time(9, 0)) == datetime(2025, 3, 10, 9, 0)

    def test_missing_time_is_end_of_day(self):
        assert deadline_instant(date(2025, 3, 10)) == datetime.combine(date(2025, 3, 10), END_OF_DAY)

    def test_midnight_placeholder_is_end_of_day(self):
        assert deadline_instant(date(2025, 3, 10), time(0, 0)) == deadline_instant(date(2025, 3, 10))


class TestCompletedClassification:
    def test_completion_on_the_boundary_is_on_time(self):
        result = classify(
            date(2025, 3, 10), time(9, 0), LifecycleStatus.COMPLETED,
            datetime(2025, 3, 10, 9, 0, 0), TODAY,
        )
        assert result is DisplayStatus.COMPLETED_ON_TIME

    def test_completion_one_second_after_is_late(self):
        result = classify(
            date(2025, 3, 10), time(9, 0), LifecycleStatus.COMPLETED,
            datetime(2025, 3, 10, 9, 0, 1), TODAY,
        )
        assert result is DisplayStatus.COMPLETED_LATE

    def test_no_time_completion_past_end_of_day_is_late(self):
        result = classify(
            date(2025, 3, 10), None, LifecycleStatus.COMPLETED,
            datetime(2025, 3, 10, 23, 59, 1), TODAY,
        )
        assert result is DisplayStatus.COMPLETED_LATE

    def test_no_time_completion_during_the_day_is_on_time(self):
        result = classify(
            date(2025, 3, 10), None, LifecycleStatus.COMPLETED,
            datetime(2025, 3, 10, 18, 0), TODAY,
        )
        assert result is DisplayStatus.COMPLETED_ON_TIME

    def test_completed_without_record_is_on_time(self):
        result = classify(date(2025, 3, 1), None, LifecycleStatus.COMPLETED, None, TODAY)
        assert result is DisplayStatus.COMPLETED_ON_TIME

    def test_completed_ignores_today(self):
        """A completed instance is never overdue, however old."""
        result = classify(
            date(2020, 1, 1), None, LifecycleStatus.COMPLETED,
            datetime(2019, 12, 31, 10, 0), TODAY,
        )
        assert result is DisplayStatus.COMPLETED_ON_TIME


class TestOpenClassification:
    def test_due_today_regardless_of_time(self):
        result = classify(TODAY, time(0, 1), LifecycleStatus.OPEN, None, TODAY)
        assert result is DisplayStatus.DUE_TODAY

    def test_past_date_is_overdue(self):
        result = classify(date(2025, 3, 9), None, LifecycleStatus.OPEN, None, TODAY)
        assert result is DisplayStatus.OVERDUE

    def test_future_date_is_pending_on_time(self):
        result = classify(date(2025, 3, 11), None, LifecycleStatus.OPEN, None, TODAY)
        assert result is DisplayStatus.PENDING_ON_TIME

    def test_missing_date_is_no_date(self):
        assert classify(None, None, LifecycleStatus.OPEN, None, TODAY) is DisplayStatus.NO_DATE


class TestClassifyInstance:
    def test_uses_last_completion(self):
        inst = make_instance(
            1, deadline_date=date(2025, 3, 10), deadline_time=time(9, 0),
            status=LifecycleStatus.COMPLETED, completed_at=datetime(2025, 3, 10, 9, 0),
        )
        assert classify_instance(inst, TODAY) is DisplayStatus.COMPLETED_ON_TIME

    def test_due_tomorrow_only_for_open_instances(self):
        open_inst = make_instance(1, deadline_date=date(2025, 3, 11))
        done_inst = make_instance(2, deadline_date=date(2025, 3, 11), status=LifecycleStatus.COMPLETED)
        assert is_due_tomorrow(open_inst, TODAY) is True
        assert is_due_tomorrow(done_inst, TODAY) is False
        assert is_due_tomorrow(make_instance(3, deadline_date=date(2025, 3, 12)), TODAY) is False
