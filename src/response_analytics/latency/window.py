"""
Business-hours arithmetic for response times.

Scalar functions operate on `datetime` values and are the reference
definitions; the `*_series` variants are their vectorized equivalents for
pandas columns of naive wall-clock datetimes, with latency kept in seconds so
it can be averaged exactly. Both are pure.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

import pandas as pd

from response_analytics.latency.config import OffHoursWindow

SECONDS_PER_MINUTE = 60.0


def _offset(value: time) -> timedelta:
    return timedelta(
        hours=value.hour,
        minutes=value.minute,
        seconds=value.second,
        microseconds=value.microsecond,
    )


def _time_of_day(value: datetime) -> timedelta:
    return value - datetime.combine(value.date(), time(0))


def shift_off_hours(value: datetime, window: OffHoursWindow) -> datetime:
    """Move a timestamp strictly inside the off-hours window to the window end.

    Both bounds are open: exactly `window.start` and exactly `window.end`
    are returned unchanged.
    """
    if window.start < value.time() < window.end:
        return datetime.combine(value.date(), window.end)
    return value


def response_latency_minutes(
    received_at: datetime, sent_at: datetime, window: OffHoursWindow
) -> float:
    """Minutes between a message and its reply, skipping off-hours on day change.

    Same calendar date: plain wall-clock difference. Different dates: the
    remainder of the received day up to `window.day_end` plus the time since
    `window.end` on the reply day. Only a single day boundary is accounted
    for; whole days in between are not added. The result is not clamped.
    """
    if received_at.date() == sent_at.date():
        return (sent_at - received_at).total_seconds() / SECONDS_PER_MINUTE

    tail = _offset(window.day_end) - _time_of_day(received_at)
    head = _time_of_day(sent_at) - _offset(window.end)
    return (tail + head).total_seconds() / SECONDS_PER_MINUTE


def shift_off_hours_series(values: pd.Series, window: OffHoursWindow) -> pd.Series:
    days = values.dt.normalize()
    time_of_day = values - days
    inside = (time_of_day > pd.Timedelta(_offset(window.start))) & (
        time_of_day < pd.Timedelta(_offset(window.end))
    )
    return values.mask(inside, days + pd.Timedelta(_offset(window.end)))


def response_latency_seconds_series(
    received_at: pd.Series, sent_at: pd.Series, window: OffHoursWindow
) -> pd.Series:
    received_day = received_at.dt.normalize()
    sent_day = sent_at.dt.normalize()

    day_end = pd.Timedelta(_offset(window.day_end))
    business_start = pd.Timedelta(_offset(window.end))

    elapsed = (sent_at - received_at).dt.total_seconds()
    tail = (day_end - (received_at - received_day)).dt.total_seconds()
    head = ((sent_at - sent_day) - business_start).dt.total_seconds()

    same_day = received_day == sent_day
    return elapsed.where(same_day, tail + head)
