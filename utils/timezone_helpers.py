from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

DEFAULT_SCHOOL_TZ = "Africa/Lagos"


def utc_now() -> datetime:
    """Clock used for every engine timestamp (approval, void, audit)."""
    return datetime.now(timezone.utc)


def school_timezone() -> ZoneInfo:
    name = DEFAULT_SCHOOL_TZ
    if has_app_context():
        name = current_app.config.get("SCHOOL_TIMEZONE") or DEFAULT_SCHOOL_TZ
    return ZoneInfo(name)


def to_school_time(value: Any) -> datetime | None:
    """Convert the provided value to a school-timezone-aware datetime.

    Naive datetimes (as returned by SQLite) are treated as UTC.
    """
    if not value:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(school_timezone())
