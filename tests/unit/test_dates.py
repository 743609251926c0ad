"""Unit tests for routine date calculation."""

import pytest

from src.domain.routine import Frequency, TimeOfDay
from src.modules.routines import dates
from tests.unit.mocks import MONDAY_9AM, make_routine_model


MONDAY = MONDAY_9AM
TUESDAY = dates.add_days(MONDAY, 1)
WEDNESDAY = dates.add_days(MONDAY, 2)
SATURDAY = dates.add_days(MONDAY, 5)
SUNDAY = dates.add_days(MONDAY, 6)
PREVIOUS_SUNDAY = dates.add_days(MONDAY, -1)


@pytest.mark.unit
class TestCalendarHelpers:
    """Tests for weekday and day-key helpers."""

    def test_day_of_week_uses_sunday_as_zero(self):
        assert dates.day_of_week(MONDAY) == dates.MONDAY
        assert dates.day_of_week(SATURDAY) == dates.SATURDAY
        assert dates.day_of_week(SUNDAY) == dates.SUNDAY

    def test_is_weekend(self):
        assert dates.is_weekend(SATURDAY)
        assert dates.is_weekend(SUNDAY)
        assert not dates.is_weekend(WEDNESDAY)

    def test_normalize_to_day(self):
        assert dates.normalize_to_day(MONDAY) == "2024-01-15"
        assert dates.normalize_to_day(dates.add_hours(MONDAY, 14.9)) == "2024-01-15"
        assert dates.normalize_to_day(dates.add_hours(MONDAY, 15)) == "2024-01-16"

    def test_get_start_of_day(self):
        assert dates.get_start_of_day(MONDAY) == MONDAY - 9 * dates.MS_PER_HOUR

    def test_ms_round_trip(self):
        assert dates.to_ms(dates.to_datetime(MONDAY)) == MONDAY


@pytest.mark.unit
class TestCalculateNextReadyDate:
    """Tests for calculate_next_ready_date."""

    def test_no_history_is_ready_now(self):
        routine = make_routine_model(frequency=Frequency.MONTHLY)

        assert dates.calculate_next_ready_date(routine, now=MONDAY) == MONDAY

    def test_counts_a_full_period_from_last_completion(self):
        routine = make_routine_model(frequency=Frequency.EVERY_OTHER_WEEK)
        last = dates.add_days(MONDAY, -3)

        result = dates.calculate_next_ready_date(routine, last_completed_date=last, now=MONDAY)

        assert result == dates.add_days(last, 14)

    def test_recently_undeferred_without_history_starts_half_a_period_out(self):
        routine = make_routine_model(frequency=Frequency.WEEKLY)

        result = dates.calculate_next_ready_date(routine, was_recently_undeferred=True, now=MONDAY)

        assert result == dates.add_days(MONDAY, 3)

    def test_recently_undeferred_with_history_uses_history(self):
        routine = make_routine_model(frequency=Frequency.WEEKLY)
        last = dates.add_days(MONDAY, -10)

        result = dates.calculate_next_ready_date(
            routine, last_completed_date=last, was_recently_undeferred=True, now=MONDAY
        )

        assert result == dates.add_days(last, 7)


@pytest.mark.unit
class TestAdjustToIdealDay:
    """Tests for adjust_to_ideal_day."""

    def test_moves_forward_to_ideal_weekday(self):
        result = dates.adjust_to_ideal_day(MONDAY, 3, Frequency.WEEKLY)

        assert result == WEDNESDAY

    def test_same_day_is_unchanged(self):
        assert dates.adjust_to_ideal_day(MONDAY, 1, Frequency.MONTHLY) == MONDAY

    def test_wraps_into_next_week(self):
        assert dates.adjust_to_ideal_day(MONDAY, 0, Frequency.WEEKLY) == SUNDAY

    @pytest.mark.parametrize("frequency", [Frequency.DAILY, Frequency.TWICE_A_WEEK])
    def test_ignored_below_weekly(self, frequency):
        assert dates.adjust_to_ideal_day(MONDAY, 3, frequency) == MONDAY

    def test_no_ideal_day(self):
        assert dates.adjust_to_ideal_day(MONDAY, None, Frequency.YEARLY) == MONDAY


@pytest.mark.unit
class TestDueDates:
    """Tests for due date calculation and weekend adjustment."""

    def test_saturday_moves_back_to_friday(self):
        assert dates.adjust_weekend_due_date(SATURDAY) == dates.add_days(SATURDAY, -1)

    def test_sunday_moves_on_to_monday(self):
        assert dates.adjust_weekend_due_date(SUNDAY) == dates.add_days(SUNDAY, 1)

    def test_weekday_is_unchanged(self):
        assert dates.adjust_weekend_due_date(WEDNESDAY) == WEDNESDAY

    def test_weekend_adjustment_is_idempotent(self):
        for offset in range(7):
            ts = dates.add_days(MONDAY, offset)
            once = dates.adjust_weekend_due_date(ts)

            assert dates.adjust_weekend_due_date(once) == once
            assert not dates.is_weekend(once)

    def test_time_anchored_routine_is_due_when_ready(self):
        assert dates.calculate_due_date(MONDAY, TimeOfDay.EVENING, Frequency.MONTHLY) == MONDAY

    def test_weekly_due_date_skips_the_weekend(self):
        # Monday + 6 days is a Sunday, pushed on to the next Monday
        assert dates.calculate_due_date(MONDAY, None, Frequency.WEEKLY) == dates.add_days(MONDAY, 7)

    def test_monthly_due_date(self):
        assert dates.calculate_due_date(MONDAY, None, Frequency.MONTHLY) == dates.add_days(MONDAY, 29)

    def test_daily_due_same_day(self):
        assert dates.calculate_due_date(MONDAY, None, Frequency.DAILY) == MONDAY


@pytest.mark.unit
class TestApplyTimeOfDay:
    """Tests for apply_time_of_day."""

    def test_utc(self):
        result = dates.apply_time_of_day(MONDAY, TimeOfDay.MORNING, "UTC")

        assert result == dates.get_start_of_day(MONDAY) + 7 * dates.MS_PER_HOUR

    def test_local_timezone(self):
        # 3 PM in Los Angeles in January is 11 PM UTC
        result = dates.apply_time_of_day(MONDAY, TimeOfDay.EVENING, "America/Los_Angeles")

        assert result == dates.get_start_of_day(MONDAY) + 23 * dates.MS_PER_HOUR


@pytest.mark.unit
class TestDateEnumerators:
    """Tests for business day and twice-a-week enumeration."""

    def test_business_days_from_monday(self):
        result = dates.get_business_days_ahead(MONDAY, 5)

        assert result == [dates.add_days(MONDAY, i) for i in range(5)]

    def test_business_days_from_saturday_skip_weekend(self):
        result = dates.get_business_days_ahead(SATURDAY, 5)

        assert result[0] == dates.add_days(MONDAY, 7)
        assert len(result) == 5
        assert not any(dates.is_weekend(ts) for ts in result)

    def test_twice_a_week_from_monday(self):
        result = dates.get_twice_a_week_dates(MONDAY, 2)

        assert [dates.normalize_to_day(ts) for ts in result] == [
            "2024-01-15",
            "2024-01-18",
            "2024-01-22",
            "2024-01-25",
        ]

    def test_twice_a_week_from_sunday_starts_next_day(self):
        result = dates.get_twice_a_week_dates(PREVIOUS_SUNDAY, 1)

        assert [dates.normalize_to_day(ts) for ts in result] == ["2024-01-15", "2024-01-18"]

    def test_twice_a_week_midweek_waits_for_next_monday(self):
        result = dates.get_twice_a_week_dates(TUESDAY, 1)

        assert [dates.day_of_week(ts) for ts in result] == [dates.MONDAY, dates.THURSDAY]
        assert dates.normalize_to_day(result[0]) == "2024-01-22"


@pytest.mark.unit
class TestShouldGenerateTask:
    """Tests for the single creation gate."""

    def test_allows_new_day_inside_window(self):
        routine = make_routine_model()

        assert dates.should_generate_task(routine, set(), dates.add_days(MONDAY, 7), now=MONDAY)

    def test_rejects_deferred_routine(self):
        routine = make_routine_model(defer=True)

        assert not dates.should_generate_task(routine, set(), MONDAY, now=MONDAY)

    def test_rejects_existing_day(self):
        routine = make_routine_model()
        later_same_day = dates.add_hours(MONDAY, 3)

        assert not dates.should_generate_task(routine, {"2024-01-15"}, later_same_day, now=MONDAY)

    def test_rejects_beyond_window(self):
        routine = make_routine_model()

        assert not dates.should_generate_task(routine, set(), dates.add_days(MONDAY, 8), now=MONDAY)
