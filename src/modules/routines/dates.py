"""Date calculation for routine task generation.

Every timestamp is an integer count of milliseconds since the Unix epoch,
interpreted in UTC. Weekdays use 0 = Sunday through 6 = Saturday. Functions
that depend on the current time take an explicit ``now`` so callers and tests
control the clock.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from src.core.config import constants
from src.domain.routine import Frequency, Routine, TimeOfDay


MS_PER_HOUR = 60 * 60 * 1000
MS_PER_DAY = 24 * MS_PER_HOUR

SUNDAY = 0
MONDAY = 1
THURSDAY = 4
SATURDAY = 6

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return to_ms(datetime.now(UTC))


def to_ms(dt: datetime) -> int:
    return (dt - _EPOCH) // _ONE_MS


def to_datetime(ts: int) -> datetime:
    return _EPOCH + timedelta(milliseconds=ts)


def add_days(ts: int, days: int) -> int:
    return ts + days * MS_PER_DAY


def add_hours(ts: int, hours: float) -> int:
    return ts + int(hours * MS_PER_HOUR)


def day_of_week(ts: int) -> int:
    """Weekday of a timestamp with Sunday as 0."""
    return (to_datetime(ts).weekday() + 1) % 7


def is_weekend(ts: int) -> bool:
    return day_of_week(ts) in (SUNDAY, SATURDAY)


def normalize_to_day(ts: int) -> str:
    """UTC calendar day of a timestamp as ``YYYY-MM-DD``; the dedup key for routine tasks."""
    return to_datetime(ts).date().isoformat()


def get_start_of_day(ts: int) -> int:
    dt = to_datetime(ts)
    return to_ms(dt.replace(hour=0, minute=0, second=0, microsecond=0))


def calculate_next_ready_date(
    routine: Routine,
    *,
    last_completed_date: int | None = None,
    was_recently_undeferred: bool = False,
    now: int | None = None,
) -> int:
    """Calculate when the next instance of a routine becomes actionable.

    Args:
        routine: Routine being scheduled
        last_completed_date: Anchor to count a full period from; None when there is no history
        was_recently_undeferred: Whether the routine left its paused state within the last day
        now: Current time in epoch ms

    Returns:
        Ready date in epoch ms
    """
    current = now if now is not None else now_ms()
    frequency_days = routine.frequency.days

    # Resuming a paused routine starts halfway through its period
    if was_recently_undeferred and not last_completed_date:
        return add_days(current, frequency_days // 2)

    if not last_completed_date:
        return current

    return add_days(last_completed_date, frequency_days)


def adjust_to_ideal_day(ts: int, ideal_day: int | None, frequency: Frequency) -> int:
    """Shift forward 0-6 days onto the preferred weekday for weekly or longer routines."""
    if ideal_day is None or frequency.days < 7:  # noqa: PLR2004
        return ts

    days_to_add = ideal_day - day_of_week(ts)
    if days_to_add < 0:
        days_to_add += 7

    return add_days(ts, days_to_add)


def adjust_weekend_due_date(ts: int) -> int:
    """Move a Saturday due date back to Friday and a Sunday due date on to Monday."""
    match day_of_week(ts):
        case 0:
            return add_days(ts, 1)
        case 6:
            return add_days(ts, -1)
        case _:
            return ts


def calculate_due_date(ready_date: int, time_of_day: TimeOfDay | None, frequency: Frequency) -> int:
    """Time-anchored tasks are due when ready; others get the rest of their period, off weekends."""
    if time_of_day is not None:
        return ready_date

    due_date = add_days(ready_date, max(0, frequency.days - 1))
    return adjust_weekend_due_date(due_date)


def apply_time_of_day(ts: int, time_of_day: TimeOfDay, timezone: str) -> int:
    """Set the local wall-clock hour of ``time_of_day`` on the UTC calendar day of ``ts``.

    Args:
        ts: Base timestamp; only its UTC calendar date is used
        time_of_day: Slot whose hour should be applied
        timezone: IANA timezone the hour is expressed in

    Returns:
        Epoch ms of that local time
    """
    day = to_datetime(ts).date()
    local = datetime(day.year, day.month, day.day, time_of_day.hour, tzinfo=ZoneInfo(timezone))
    return to_ms(local)


def get_business_days_ahead(start: int, num_days: int) -> list[int]:
    """Return the next ``num_days`` weekdays starting at (and including) ``start``."""
    dates: list[int] = []
    current = start

    while len(dates) < num_days:
        if not is_weekend(current):
            dates.append(current)
        current = add_days(current, 1)

    return dates


def get_twice_a_week_dates(start: int, pairs: int) -> list[int]:
    """Return Monday and Thursday for ``pairs`` weeks, beginning with the first Monday on or after ``start``."""
    current_day = day_of_week(start)
    if current_day == SUNDAY:
        days_to_monday = 1
    elif current_day == MONDAY:
        days_to_monday = 0
    else:
        days_to_monday = 8 - current_day

    monday = add_days(start, days_to_monday)
    dates: list[int] = []
    for _ in range(pairs):
        dates.extend((monday, add_days(monday, THURSDAY - MONDAY)))
        monday = add_days(monday, 7)

    return dates


def should_generate_task(
    routine: Routine,
    existing_day_keys: set[str],
    target_date: int,
    *,
    now: int | None = None,
) -> bool:
    """Single gate for task creation: active routine, unused calendar day, inside the window."""
    if routine.defer:
        return False

    if normalize_to_day(target_date) in existing_day_keys:
        return False

    current = now if now is not None else now_ms()
    return target_date <= add_days(current, constants.GENERATION_WINDOW_DAYS)

