"""Unit tests for overlap detection and the booking freeze window."""

from datetime import date, datetime, time
from unittest.mock import MagicMock

import pytest

from autoecole.core.clock import FixedClock
from autoecole.core.exceptions import FreezeWindowException, ValidationException
from autoecole.services.conflict_checker import ConflictChecker, ranges_overlap

LESSON_DAY = date(2026, 3, 3)


def _checker(now: datetime, slots=None) -> ConflictChecker:
    repository = MagicMock()
    repository.list_active_for_owner_day.return_value = slots or []
    return ConflictChecker(MagicMock(), FixedClock(now), repository)


@pytest.mark.unit
class TestRangesOverlap:
    def test_intersecting_ranges_overlap(self):
        assert ranges_overlap(time(10), time(11), time(10, 30), time(11, 30))

    def test_contained_range_overlaps(self):
        assert ranges_overlap(time(9), time(12), time(10), time(11))

    def test_touching_ranges_do_not_overlap(self):
        """End of one slot equal to the start of the next is allowed."""
        assert not ranges_overlap(time(10), time(11), time(11), time(12))
        assert not ranges_overlap(time(11), time(12), time(10), time(11))

    def test_disjoint_ranges(self):
        assert not ranges_overlap(time(8), time(9), time(14), time(15))


@pytest.mark.unit
class TestFindOverlap:
    def test_returns_first_conflicting_slot(self):
        existing = MagicMock(id="slot-a", start_time=time(10), end_time=time(11))
        checker = _checker(datetime(2026, 3, 2, 8), [existing])

        conflict = checker.find_overlap("instructor-1", LESSON_DAY, time(10, 30), time(11, 30))

        assert conflict is existing

    def test_passes_exclusion_to_repository(self):
        checker = _checker(datetime(2026, 3, 2, 8))

        assert checker.find_overlap("instructor-1", LESSON_DAY, time(10), time(11), "slot-a") is None
        checker.repository.list_active_for_owner_day.assert_called_once_with(
            "instructor-1", LESSON_DAY, "slot-a"
        )


@pytest.mark.unit
class TestTimeRange:
    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            ConflictChecker.validate_time_range(time(11), time(10))
        assert exc_info.value.code == "INVALID_TIME_RANGE"

    def test_equal_times_rejected(self):
        with pytest.raises(ValidationException):
            ConflictChecker.validate_time_range(time(10), time(10))


@pytest.mark.unit
class TestFreezeWindow:
    """Bookings and cancellations need two hours of notice."""

    def test_exactly_two_hours_before_is_allowed(self):
        checker = _checker(datetime(2026, 3, 3, 8, 0))
        checker.check_freeze_window(LESSON_DAY, time(10, 0))

    def test_one_minute_inside_window_is_rejected(self):
        checker = _checker(datetime(2026, 3, 3, 8, 1))
        with pytest.raises(FreezeWindowException) as exc_info:
            checker.check_freeze_window(LESSON_DAY, time(10, 0))
        assert exc_info.value.code == "FREEZE_WINDOW"
        assert exc_info.value.details["required_hours"] == 2
        assert exc_info.value.details["provided_hours"] == pytest.approx(1.98, abs=0.01)

    def test_lesson_already_started_reports_zero_hours(self):
        checker = _checker(datetime(2026, 3, 3, 10, 30))
        with pytest.raises(FreezeWindowException) as exc_info:
            checker.check_freeze_window(LESSON_DAY, time(10, 0))
        assert exc_info.value.details["provided_hours"] == 0.0

    def test_hours_until(self):
        checker = _checker(datetime(2026, 3, 3, 6, 30))
        assert checker.hours_until(LESSON_DAY, time(10, 0)) == pytest.approx(3.5)

    def test_rejection_reports_hours_until_the_lesson(self):
        checker = _checker(datetime(2026, 3, 3, 9, 15))
        with pytest.raises(FreezeWindowException) as exc_info:
            checker.check_freeze_window(LESSON_DAY, time(10, 0))
        assert exc_info.value.details["provided_hours"] == round(checker.hours_until(LESSON_DAY, time(10, 0)), 2)
        assert exc_info.value.details["provided_hours"] == pytest.approx(0.75)

    def test_earliest_bookable_is_now_plus_window(self):
        checker = _checker(datetime(2026, 3, 2, 23, 0))
        earliest = checker.earliest_bookable()
        assert earliest.date() == date(2026, 3, 3)
        assert earliest.time().replace(tzinfo=None) == time(1, 0)
