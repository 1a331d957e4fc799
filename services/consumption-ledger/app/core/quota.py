"""
Consumption Ledger — Quota window calculator

WEEKLY  → trailing rolling window: now - 7 days.
MONTHLY → first instant of the calendar month containing ``now``,
          in the configured ledger time zone (LEDGER_TIMEZONE).

The window is inclusive: records with taken_at >= window start count.
"""
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo

from app.core.config import get_settings
from app.models.consumption import Period

settings = get_settings()

WEEKLY_WINDOW = timedelta(days=7)


def ledger_timezone() -> tzinfo:
    return ZoneInfo(settings.LEDGER_TIMEZONE)


def window_start(period: Period | str, now: datetime, tz: tzinfo | None = None) -> datetime:
    """Return the inclusive start of the quota window, normalized to UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    period = Period(period)

    if period is Period.WEEKLY:
        return (now - WEEKLY_WINDOW).astimezone(timezone.utc)

    local_now = now.astimezone(tz or ledger_timezone())
    month_start = local_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return month_start.astimezone(timezone.utc)
