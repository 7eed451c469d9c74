from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from app.core.exceptions import Conflict
from app.models.announcement import AnnouncementStatus
from app.services.recurrence import next_window, skip_ahead

# Upper bound on catch-up iterations for a long-unread recurring series.
# Fixed-length cadences skip ahead arithmetically first, so only monthly series
# can run into it.
MAX_CATCH_UP_WINDOWS = 10_000

TERMINAL_STATUSES = {AnnouncementStatus.CANCELLED, AnnouncementStatus.EXPIRED}

_ALLOWED = {
    AnnouncementStatus.DRAFT: {
        AnnouncementStatus.DRAFT,
        AnnouncementStatus.SCHEDULED,
        AnnouncementStatus.PUBLISHED,
        AnnouncementStatus.CANCELLED,
    },
    AnnouncementStatus.SCHEDULED: {
        AnnouncementStatus.DRAFT,
        AnnouncementStatus.SCHEDULED,
        AnnouncementStatus.PUBLISHED,
        AnnouncementStatus.CANCELLED,
    },
    AnnouncementStatus.PUBLISHED: {
        AnnouncementStatus.PUBLISHED,
        AnnouncementStatus.CANCELLED,
    },
    AnnouncementStatus.CANCELLED: set(),
    AnnouncementStatus.EXPIRED: {AnnouncementStatus.EXPIRED},
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive timestamps; treat them as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def coerce_status(value) -> AnnouncementStatus:
    if isinstance(value, AnnouncementStatus):
        return value
    return AnnouncementStatus(str(value).strip().lower())


@dataclass(frozen=True)
class Lifecycle:
    """The time-dependent fields of one announcement."""

    status: AnnouncementStatus
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    recurrence_rule: Optional[str] = None
    recurrence_ends_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "Lifecycle":
        return cls(
            status=coerce_status(row.status),
            starts_at=as_utc(row.starts_at),
            ends_at=as_utc(row.ends_at),
            published_at=as_utc(row.published_at),
            recurrence_rule=row.recurrence_rule or None,
            recurrence_ends_at=as_utc(row.recurrence_ends_at),
        )

    def apply_to(self, row) -> None:
        row.status = self.status
        row.starts_at = self.starts_at
        row.ends_at = self.ends_at
        row.published_at = self.published_at


def initial_status(starts_at: Optional[datetime], now: datetime, *, draft: bool = False) -> AnnouncementStatus:
    if draft:
        return AnnouncementStatus.DRAFT
    if starts_at is not None and as_utc(starts_at) > now:
        return AnnouncementStatus.SCHEDULED
    return AnnouncementStatus.PUBLISHED


def ensure_transition(current: AnnouncementStatus, target: AnnouncementStatus) -> None:
    if target not in _ALLOWED[current]:
        raise Conflict(f"Cannot move announcement from {current.value} to {target.value}")


def _rearm(state: Lifecycle, now: datetime) -> Lifecycle:
    start = state.starts_at or state.ends_at
    duration = state.ends_at - state.starts_at if state.starts_at else timedelta(0)
    start = skip_ahead(state.recurrence_rule, start, now, duration)

    window = None
    for _ in range(MAX_CATCH_UP_WINDOWS):
        window = next_window(state.recurrence_rule, start, state.recurrence_ends_at, duration)
        if window is None:
            return replace(state, status=AnnouncementStatus.EXPIRED)
        if window.end is None or window.end >= now:
            break
        start = window.start
    else:
        # Still behind the clock. Park on the last lapsed window unpublished so
        # the next read carries on from it.
        return replace(state, status=AnnouncementStatus.SCHEDULED, starts_at=window.start, ends_at=window.end)

    if now >= window.start:
        return replace(
            state,
            status=AnnouncementStatus.PUBLISHED,
            starts_at=window.start,
            ends_at=window.end,
            published_at=window.start,
        )
    return replace(state, status=AnnouncementStatus.SCHEDULED, starts_at=window.start, ends_at=window.end)


def evaluate(state: Lifecycle, now: datetime) -> Lifecycle:
    """Bring ``state`` up to date with the clock.

    Pure function of the stored fields and ``now``; repeated calls with the
    same inputs give the same answer.
    """
    if state.status not in (AnnouncementStatus.SCHEDULED, AnnouncementStatus.PUBLISHED):
        return state

    if state.status == AnnouncementStatus.SCHEDULED:
        if state.starts_at is not None and now < state.starts_at:
            return state
        state = replace(
            state,
            status=AnnouncementStatus.PUBLISHED,
            published_at=state.published_at or state.starts_at or now,
        )

    if state.ends_at is None or now <= state.ends_at:
        return state
    if state.recurrence_rule:
        return _rearm(state, now)
    return replace(state, status=AnnouncementStatus.EXPIRED)


def publish_now(state: Lifecycle, now: datetime) -> Lifecycle:
    if state.status == AnnouncementStatus.PUBLISHED:
        return state
    if state.status in TERMINAL_STATUSES:
        raise Conflict(f"Cannot publish a {state.status.value} announcement")
    if state.ends_at is not None and state.ends_at < now:
        raise Conflict("Announcement window has already ended")
    return replace(state, status=AnnouncementStatus.PUBLISHED, starts_at=now, published_at=now)


def after_edit(state: Lifecycle, now: datetime, requested: Optional[AnnouncementStatus] = None) -> Lifecycle:
    """Status for a record whose scheduling fields were just edited."""
    current = state.status
    target = requested or current
    ensure_transition(current, target)

    if target == AnnouncementStatus.CANCELLED:
        return replace(state, status=AnnouncementStatus.CANCELLED)
    if target == AnnouncementStatus.DRAFT:
        return replace(state, status=AnnouncementStatus.DRAFT, published_at=None)
    if target == AnnouncementStatus.EXPIRED:
        return state
    if current == AnnouncementStatus.PUBLISHED:
        return evaluate(state, now)
    if target == AnnouncementStatus.PUBLISHED and requested is not None:
        return evaluate(publish_now(state, now), now)

    status = initial_status(state.starts_at, now)
    published_at = state.published_at
    if status == AnnouncementStatus.PUBLISHED:
        published_at = published_at or now
    return evaluate(replace(state, status=status, published_at=published_at), now)
