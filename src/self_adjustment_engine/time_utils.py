"""Datetime normalization helpers."""

from __future__ import annotations

from datetime import datetime

import pandas as pd


def to_utc_timestamp(value: object) -> pd.Timestamp:
    """Normalize datetime-like values to UTC pandas Timestamp."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def to_utc_datetime(value: object) -> datetime:
    return to_utc_timestamp(value).to_pydatetime()


def days_before(reference: object, days: float) -> datetime:
    """Return the UTC datetime `days` before `reference`."""
    return (to_utc_timestamp(reference) - pd.Timedelta(days=days)).to_pydatetime()


def floor_to_hour(value: object) -> pd.Timestamp:
    return to_utc_timestamp(value).floor("h")


def next_hour(value: object) -> pd.Timestamp:
    return floor_to_hour(value) + pd.Timedelta(hours=1)
