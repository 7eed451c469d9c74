from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import Conflict
from app.models import AnnouncementStatus
from app.services.status import Lifecycle, after_edit, ensure_transition, evaluate, initial_status, publish_now

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_initial_status():
    assert initial_status(None, NOW) == AnnouncementStatus.PUBLISHED
    assert initial_status(NOW - timedelta(minutes=1), NOW) == AnnouncementStatus.PUBLISHED
    assert initial_status(NOW + timedelta(minutes=1), NOW) == AnnouncementStatus.SCHEDULED
    assert initial_status(NOW + timedelta(minutes=1), NOW, draft=True) == AnnouncementStatus.DRAFT


def test_scheduled_becomes_published_once_start_passes():
    state = Lifecycle(AnnouncementStatus.SCHEDULED, starts_at=NOW + timedelta(hours=1))
    assert evaluate(state, NOW) == state

    later = evaluate(state, NOW + timedelta(hours=1))
    assert later.status == AnnouncementStatus.PUBLISHED
    assert later.published_at == state.starts_at
    assert evaluate(later, NOW + timedelta(hours=1)) == later


def test_published_expires_after_end():
    state = Lifecycle(AnnouncementStatus.PUBLISHED, starts_at=NOW, ends_at=NOW + timedelta(hours=1))
    assert evaluate(state, NOW + timedelta(hours=1)).status == AnnouncementStatus.PUBLISHED
    assert evaluate(state, NOW + timedelta(hours=1, seconds=1)).status == AnnouncementStatus.EXPIRED


def test_lapsed_scheduled_record_expires_directly():
    state = Lifecycle(AnnouncementStatus.SCHEDULED, starts_at=NOW, ends_at=NOW + timedelta(hours=1))
    assert evaluate(state, NOW + timedelta(hours=3)).status == AnnouncementStatus.EXPIRED


def test_draft_and_terminal_states_are_not_touched():
    for status in (AnnouncementStatus.DRAFT, AnnouncementStatus.CANCELLED, AnnouncementStatus.EXPIRED):
        state = Lifecycle(status, starts_at=NOW - timedelta(days=2), ends_at=NOW - timedelta(days=1))
        assert evaluate(state, NOW) == state


def test_recurring_announcement_rearms_to_current_window():
    state = Lifecycle(
        AnnouncementStatus.PUBLISHED,
        starts_at=NOW,
        ends_at=NOW + timedelta(hours=1),
        recurrence_rule="DAILY",
    )
    # Three days later, mid-window of the fourth occurrence.
    result = evaluate(state, NOW + timedelta(days=3, minutes=30))
    assert result.status == AnnouncementStatus.PUBLISHED
    assert result.starts_at == NOW + timedelta(days=3)
    assert result.ends_at == NOW + timedelta(days=3, hours=1)


def test_recurring_announcement_waits_between_windows():
    state = Lifecycle(
        AnnouncementStatus.PUBLISHED,
        starts_at=NOW,
        ends_at=NOW + timedelta(hours=1),
        recurrence_rule="DAILY",
    )
    result = evaluate(state, NOW + timedelta(hours=2))
    assert result.status == AnnouncementStatus.SCHEDULED
    assert result.starts_at == NOW + timedelta(days=1)


def test_recurring_series_terminates_at_bound():
    state = Lifecycle(
        AnnouncementStatus.PUBLISHED,
        starts_at=NOW,
        ends_at=NOW + timedelta(hours=1),
        recurrence_rule="DAILY",
        recurrence_ends_at=NOW + timedelta(days=1, hours=12),
    )
    assert evaluate(state, NOW + timedelta(days=3)).status == AnnouncementStatus.EXPIRED


def test_publish_now_overrides_start():
    state = Lifecycle(AnnouncementStatus.DRAFT, starts_at=NOW + timedelta(days=3))
    result = publish_now(state, NOW)
    assert result.status == AnnouncementStatus.PUBLISHED
    assert result.starts_at == NOW
    assert result.published_at == NOW


@pytest.mark.parametrize("status", [AnnouncementStatus.CANCELLED, AnnouncementStatus.EXPIRED])
def test_publish_now_rejects_terminal_states(status):
    with pytest.raises(Conflict):
        publish_now(Lifecycle(status), NOW)


def test_transitions_out_of_cancelled_conflict():
    for target in AnnouncementStatus:
        with pytest.raises(Conflict):
            ensure_transition(AnnouncementStatus.CANCELLED, target)


def test_edit_never_moves_published_backward():
    state = Lifecycle(AnnouncementStatus.PUBLISHED, starts_at=NOW + timedelta(days=1), published_at=NOW)
    assert after_edit(state, NOW).status == AnnouncementStatus.PUBLISHED
    with pytest.raises(Conflict):
        after_edit(state, NOW, AnnouncementStatus.DRAFT)
    with pytest.raises(Conflict):
        after_edit(state, NOW, AnnouncementStatus.SCHEDULED)


def test_edit_of_scheduled_record_follows_start():
    state = Lifecycle(AnnouncementStatus.SCHEDULED, starts_at=NOW - timedelta(minutes=5))
    result = after_edit(state, NOW)
    assert result.status == AnnouncementStatus.PUBLISHED
    assert result.published_at == NOW


def test_edit_of_draft_keeps_draft_unless_requested():
    state = Lifecycle(AnnouncementStatus.DRAFT, starts_at=NOW + timedelta(hours=1))
    assert after_edit(state, NOW).status == AnnouncementStatus.DRAFT
    assert after_edit(state, NOW, AnnouncementStatus.SCHEDULED).status == AnnouncementStatus.SCHEDULED


def test_long_unread_hourly_series_lands_on_current_window():
    first = NOW - timedelta(days=730)
    state = Lifecycle(
        AnnouncementStatus.PUBLISHED,
        starts_at=first,
        ends_at=first + timedelta(minutes=30),
        recurrence_rule="HOURLY",
    )
    result = evaluate(state, NOW + timedelta(minutes=10))
    assert result.status == AnnouncementStatus.PUBLISHED
    assert result.starts_at == NOW
    assert result.ends_at == NOW + timedelta(minutes=30)


def test_catch_up_limit_never_publishes_a_lapsed_window(monkeypatch):
    monkeypatch.setattr("app.services.status.MAX_CATCH_UP_WINDOWS", 3)
    first = NOW - timedelta(days=400)
    state = Lifecycle(
        AnnouncementStatus.PUBLISHED,
        starts_at=first,
        ends_at=first + timedelta(hours=1),
        recurrence_rule="MONTHLY",
    )
    result = evaluate(state, NOW)
    assert result.status == AnnouncementStatus.SCHEDULED
    assert result.ends_at < NOW

    # Each further read keeps moving towards the clock.
    assert evaluate(result, NOW).starts_at > result.starts_at
