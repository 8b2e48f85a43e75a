# FILE: hospital_billing/utils/timezone.py
from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from hospital_billing.core.config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """
    Naive datetime in the hospital's timezone, for printing on documents.
    Stored timestamps stay naive UTC.
    """
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)


def utc_to_local(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(LOCAL_TZ).replace(tzinfo=None)
