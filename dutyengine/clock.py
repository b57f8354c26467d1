from datetime import UTC, date, datetime, timedelta

import pytz


def local_now(now: datetime, tz: str) -> datetime:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(pytz.timezone(tz))


def local_today(now: datetime, tz: str) -> date:
    return local_now(now, tz).date()


def local_yesterday(now: datetime, tz: str) -> date:
    return local_today(now, tz) - timedelta(days=1)


def calendar_day(value: date | datetime, tz: str) -> date:
    """
    The calendar date ``value`` falls on in ``tz``.

    Aware datetimes are converted first; naive ones are already local.
    """
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is not None:
        value = value.astimezone(pytz.timezone(tz))
    return value.date()


def minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def date_key(day: date) -> str:
    return day.isoformat()


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"
