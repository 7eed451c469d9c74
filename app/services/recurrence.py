from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.exceptions import ValidationError


FREQUENCIES = {"HOURLY", "DAILY", "WEEKLY", "MONTHLY"}


@dataclass(frozen=True)
class Cadence:
    frequency: str
    interval: int = 1


@dataclass(frozen=True)
class Window:
    start: datetime
    end: Optional[datetime]


def parse_rule(rule: str) -> Cadence:
    """Parse ``DAILY``, ``WEEKLY;INTERVAL=2`` or ``FREQ=MONTHLY;INTERVAL=3``."""
    raw = str(rule or "").strip().upper()
    if not raw:
        raise ValidationError("recurrence rule is required", field="recurrence.rule")

    frequency = None
    interval = 1
    for part in (chunk.strip() for chunk in raw.split(";")):
        if not part:
            continue
        if "=" in part:
            key, _, value = part.partition("=")
            key = key.strip()
            value = value.strip()
            if key == "FREQ":
                frequency = value
            elif key == "INTERVAL":
                try:
                    interval = int(value)
                except ValueError:
                    raise ValidationError("recurrence interval must be an integer", field="recurrence.rule")
            # Other RRULE parts (BYDAY, COUNT, ...) are not supported and ignored.
        elif frequency is None:
            frequency = part

    if frequency not in FREQUENCIES:
        raise ValidationError(
            f"unsupported recurrence rule {rule!r}; use one of {', '.join(sorted(FREQUENCIES))}",
            field="recurrence.rule",
        )
    if interval < 1:
        raise ValidationError("recurrence interval must be at least 1", field="recurrence.rule")
    return Cadence(frequency=frequency, interval=interval)


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance(cadence: Cadence, value: datetime) -> datetime:
    if cadence.frequency == "HOURLY":
        return value + timedelta(hours=cadence.interval)
    if cadence.frequency == "DAILY":
        return value + timedelta(days=cadence.interval)
    if cadence.frequency == "WEEKLY":
        return value + timedelta(weeks=cadence.interval)
    return _add_months(value, cadence.interval)


def next_window(
    rule: str,
    last_start: datetime,
    bounding_ends_at: Optional[datetime] = None,
    duration: Optional[timedelta] = None,
) -> Optional[Window]:
    """Next occurrence strictly after ``last_start``, or None once the series is over."""
    start = advance(parse_rule(rule), last_start)
    if bounding_ends_at is not None and start > bounding_ends_at:
        return None
    end = start + duration if duration is not None else None
    return Window(start=start, end=end)


def skip_ahead(
    rule: str,
    last_start: datetime,
    now: datetime,
    duration: Optional[timedelta] = None,
) -> datetime:
    """Move ``last_start`` forward by whole periods whose windows have all ended by ``now``.

    The result is never past the occurrence preceding the first window still open
    at ``now``. Monthly periods vary in length and are left to step one by one.
    """
    cadence = parse_rule(rule)
    if cadence.frequency == "MONTHLY":
        return last_start
    step = advance(cadence, last_start) - last_start
    periods = (now - (duration or timedelta(0)) - last_start) // step - 1
    if periods <= 0:
        return last_start
    return last_start + step * periods
