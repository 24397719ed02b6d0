"""Date helpers shared by the booking services.

Business dates arrive as ISO-8601 strings from query parameters and rule
stores, sometimes with a time part attached. Parsing goes through
dateutil's ``isoparse`` in one place so callers never reach for
``datetime.fromisoformat`` directly.
"""
from __future__ import annotations

import datetime as _dt
from typing import Union

from dateutil.parser import isoparse as _isoparse

__all__ = ["parse_business_date", "utc_now"]


def parse_business_date(value: Union[str, _dt.date, _dt.datetime]) -> _dt.date:
    """Return the calendar date carried by *value*.

    Accepts ``YYYY-MM-DD`` strings, full ISO-8601 timestamps, and date or
    datetime objects. Timestamps keep their own calendar date; no timezone
    conversion is applied.
    """
    if isinstance(value, _dt.datetime):
        return value.date()
    if isinstance(value, _dt.date):
        return value
    if not isinstance(value, str):
        raise TypeError("parse_business_date expects str or date, got " + type(value).__name__)

    try:
        parsed = _isoparse(value.strip())
    except ValueError as exc:
        raise ValueError(f"invalid business date: {value}") from exc
    return parsed.date()


def utc_now() -> _dt.datetime:
    """Timezone-aware current UTC time."""
    return _dt.datetime.now(_dt.timezone.utc)
