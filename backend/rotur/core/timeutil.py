# rotur/core/timeutil.py
"""Clock helpers and calendar-aware billing periods (all instants in UTC)."""
import calendar
import datetime as dt
import time

PERIODS = ("day", "week", "month", "year")
DEFAULT_PERIOD = "month"


def now_ms() -> int:
    return int(time.time() * 1000)


def now_s() -> int:
    return int(time.time())


EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
MILLISECOND = dt.timedelta(milliseconds=1)


def from_ms(ms: int) -> dt.datetime:
    return EPOCH + dt.timedelta(milliseconds=ms)


def to_ms(value: dt.datetime) -> int:
    return (value - EPOCH) // MILLISECOND


def add_months(value: dt.datetime, months: int) -> dt.datetime:
    """Move by whole calendar months, clamping the day to the end of the target month."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def normalize_period(period: str | None) -> str:
    period = (period or DEFAULT_PERIOD).lower()
    return period if period in PERIODS else DEFAULT_PERIOD


def add_period(ms: int, period: str | None, frequency: int | None = 1) -> int:
    """Return `ms` advanced by `frequency` units of `period` (day/week/month/year)."""
    frequency = frequency if frequency and frequency > 0 else 1
    start = from_ms(ms)
    period = normalize_period(period)
    if period == "day":
        end = start + dt.timedelta(days=frequency)
    elif period == "week":
        end = start + dt.timedelta(weeks=frequency)
    elif period == "year":
        end = add_months(start, 12 * frequency)
    else:
        end = add_months(start, frequency)
    return to_ms(end)


def coerce_ms(value) -> int | None:
    """Stored instants may be int, float or numeric string; anything else reads as absent."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return None
    return None
