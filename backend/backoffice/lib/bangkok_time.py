"""
Business-timezone helpers.

All date bucketing happens in Asia/Bangkok. Timestamps are stored as naive UTC,
so a business day `D` is queried as the UTC equivalent of
`D T00:00:00+07:00` .. `D T23:59:59+07:00` (both ends inclusive).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from backoffice.core.config import settings

BANGKOK_TZ = ZoneInfo(settings.BUSINESS_TIMEZONE)

DAY_START = time(0, 0, 0)
DAY_END = time(23, 59, 59)

# date-fns "EEE" in the th locale, indexed by Python weekday() (Monday = 0)
THAI_WEEKDAY_SHORT = ["จ.", "อ.", "พ.", "พฤ.", "ศ.", "ส.", "อา."]


def bangkok_now() -> datetime:
    return datetime.now(BANGKOK_TZ)


def bangkok_today() -> date:
    return bangkok_now().date()


def utc_now() -> datetime:
    """Naive UTC now, the storage convention for timestamp columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    """Aware datetimes are converted; naive ones are assumed to already be UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def day_bounds_utc(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, DAY_START, tzinfo=BANGKOK_TZ)
    end = datetime.combine(day, DAY_END, tzinfo=BANGKOK_TZ)
    return to_utc_naive(start), to_utc_naive(end)


def range_bounds_utc(start_day: date, end_day: date) -> Tuple[datetime, datetime]:
    start, _ = day_bounds_utc(start_day)
    _, end = day_bounds_utc(end_day)
    return start, end


def to_bangkok(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(BANGKOK_TZ)


def to_bangkok_date(value: Union[datetime, date, None]) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_bangkok(value).date()
    return value


def format_bangkok(value: datetime, fmt: str = "%Y-%m-%d %H:%M:%S") -> str:
    return to_bangkok(value).strftime(fmt)


def iter_dates(start_day: date, end_day: date) -> Iterator[date]:
    day = start_day
    while day <= end_day:
        yield day
        day += timedelta(days=1)


def last_n_days(n: int, end_day: Optional[date] = None) -> List[date]:
    """n consecutive dates ending at end_day (default today), oldest first."""
    end_day = end_day or bangkok_today()
    return [end_day - timedelta(days=offset) for offset in range(n - 1, -1, -1)]


def thai_weekday_short(day: date) -> str:
    return THAI_WEEKDAY_SHORT[day.weekday()]


def export_timestamp(fmt: str = "%Y%m%d-%H%M%S") -> str:
    return bangkok_now().strftime(fmt)
