from __future__ import annotations
from datetime import date, datetime, timedelta, timezone as dt_tz


def utc_now() -> datetime:
    return datetime.now(dt_tz.utc)


def utc_day(dt: datetime) -> date:
    """
    UTC calendar day of an aware datetime.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from zoneinfo import ZoneInfo
        >>> utc_day(datetime(2026, 1, 10, 23, 30, tzinfo=ZoneInfo("America/New_York")))
        datetime.date(2026, 1, 11)
    """
    if dt.tzinfo is None:
        raise ValueError("naive datetime; pass an aware UTC datetime")
    return dt.astimezone(dt_tz.utc).date()


def yesterday_of(d: date) -> date:
    return d - timedelta(days=1)


def day_start_utc(d: date) -> datetime:
    return datetime(d.year, d.month, d.day, tzinfo=dt_tz.utc)


def iso_week_label(d: date) -> str:
    iso = d.isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def next_monday(d: date) -> date:
    return d + timedelta(days=7 - d.weekday())


def previous_week_label(now: datetime) -> str:
    """ISO week label of the week before `now`, e.g. '2026-W41'."""
    return iso_week_label(utc_day(now) - timedelta(days=7))


def previous_month_label(now: datetime) -> str:
    """Label of the month before `now`, e.g. '2026-09'."""
    first = utc_day(now).replace(day=1)
    last_month = first - timedelta(days=1)
    return f"{last_month.year}-{last_month.month:02d}"
