"""Shared formatting helpers for the dashboard package."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def format_age(dt: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Format a timestamp as a human-readable age like '2h', '15m'."""
    if dt is None:
        return ""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    secs = (now - dt).total_seconds()
    if secs < 0:
        return "now"
    if secs < 60:
        return f"{int(secs)}s"
    if secs < 3600:
        return f"{int(secs // 60)}m"
    if secs < 86400:
        return f"{int(secs // 3600)}h"
    return f"{int(secs // 86400)}d"


def format_duration(seconds: Optional[float]) -> str:
    """Format a duration like '42s', '3m 05s' or '1h 02m'."""
    if seconds is None:
        return ""
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"
