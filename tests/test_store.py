from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import Forbidden, NotFound
from app.models import (
    AnnouncementAuditLog,
    AnnouncementAudience,
    AnnouncementRead,
    AnnouncementStatus,
    InteractionKind,
)
from app.services.audience import AudienceRule
from app.services.permissions import Actor
from app.services.store import AnnouncementFilters, AnnouncementStore

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
AUTHOR = Actor(email="teacher@example.com", role="teacher")


def _create(store, title="Welcome", status=AnnouncementStatus.PUBLISHED, author="teacher@example.com", **fields):
    values = {"title": title, "content": f"{title} body", "status": status}
    values.update(fields)
    audience = values.pop("audience", ())
    return store.create(author, values, audience)


def test_create_persists_audience_in_order(db):
    store = AnnouncementStore(db)
    row = _create(
        store,
        audience=[AudienceRule("course", audience_id="c-1"), AudienceRule("role", audience_value="student")],
    )

    loaded = store.get(row.id)
    assert len(loaded.id) == 36
    assert [rule.audience_type for rule in loaded.audience] == ["course", "role"]
    assert loaded.audience[1].audience_value == "student"


def test_get_missing_raises_not_found(db):
    with pytest.raises(NotFound):
        AnnouncementStore(db).get("missing")


def test_update_checks_ownership(db):
    store = AnnouncementStore(db)
    row = _create(store)

    with pytest.raises(Forbidden):
        store.update(row.id, Actor(email="other@example.com", role="teacher"), {"title": "Hijacked"})
    with pytest.raises(NotFound):
        store.update("missing", AUTHOR, {"title": "x"})


def test_update_replaces_audience_wholesale(db):
    store = AnnouncementStore(db)
    row = _create(store, audience=[AudienceRule("course", audience_id="c-1"), AudienceRule("everyone")])

    store.update(row.id, AUTHOR, {"title": "Edited"}, [AudienceRule("role", audience_value="teacher")])

    loaded = store.get(row.id)
    assert loaded.title == "Edited"
    assert [(rule.audience_type, rule.audience_value) for rule in loaded.audience] == [("role", "teacher")]
    assert db.query(AnnouncementAudience).count() == 1


def test_list_hides_expired_and_cancelled_by_default(db):
    store = AnnouncementStore(db)
    _create(store, "Live")
    _create(store, "Old", status=AnnouncementStatus.EXPIRED)
    _create(store, "Gone", status=AnnouncementStatus.CANCELLED)

    titles = {row.title for row in store.list(AnnouncementFilters())}
    assert titles == {"Live"}

    titles = {row.title for row in store.list(AnnouncementFilters(include_expired=True))}
    assert titles == {"Live", "Old", "Gone"}


def test_list_filters_and_pages(db):
    store = AnnouncementStore(db)
    for index in range(5):
        _create(store, f"Course note {index}", starts_at=NOW + timedelta(hours=index), context_type="course", context_id="c-1")
    _create(store, "Platform maintenance", author="admin@example.com")

    rows = store.list(AnnouncementFilters(context_type="course", context_id="c-1", limit=2, offset=1, sort_order="asc"))
    assert [row.title for row in rows] == ["Course note 1", "Course note 2"]

    rows = store.list(AnnouncementFilters(search="maintenance"))
    assert [row.author_email for row in rows] == ["admin@example.com"]

    rows = store.list(AnnouncementFilters(author_email="TEACHER@example.com", statuses=[AnnouncementStatus.PUBLISHED]))
    assert len(rows) == 5


def test_stale_finds_rows_behind_the_clock(db):
    store = AnnouncementStore(db)
    _create(store, "Due", status=AnnouncementStatus.SCHEDULED, starts_at=NOW - timedelta(minutes=1))
    _create(store, "Not yet", status=AnnouncementStatus.SCHEDULED, starts_at=NOW + timedelta(minutes=1))
    _create(store, "Ended", starts_at=NOW - timedelta(hours=2), ends_at=NOW - timedelta(hours=1))
    _create(store, "Running", starts_at=NOW - timedelta(hours=2), ends_at=NOW + timedelta(hours=1))

    assert {row.title for row in store.stale(AnnouncementFilters(), NOW)} == {"Due", "Ended"}


def test_interaction_upsert_keeps_one_row(db):
    store = AnnouncementStore(db)
    row = _create(store)

    store.record_interaction(row.id, "Student@example.com", InteractionKind.ACKNOWLEDGED, NOW)
    store.record_interaction(row.id, "student@example.com", InteractionKind.DISMISSED, NOW + timedelta(minutes=1))

    records = db.query(AnnouncementRead).all()
    assert len(records) == 1
    assert records[0].kind == InteractionKind.DISMISSED
    assert records[0].acknowledged_at is None
    assert records[0].dismissed_at is not None

    found = store.interactions_for("student@example.com", [row.id])
    assert found[row.id].kind == InteractionKind.DISMISSED


def test_delete_cascades_interactions(db):
    store = AnnouncementStore(db)
    row = _create(store, audience=[AudienceRule("everyone")])
    keep = _create(store, "Other")
    store.record_interaction(row.id, "a@example.com", InteractionKind.ACKNOWLEDGED, NOW)
    store.record_interaction(row.id, "b@example.com", InteractionKind.DISMISSED, NOW)
    store.record_interaction(keep.id, "a@example.com", InteractionKind.ACKNOWLEDGED, NOW)

    with pytest.raises(Forbidden):
        store.delete(row.id, Actor(email="other@example.com", role="teacher"))
    store.delete(row.id, AUTHOR)

    with pytest.raises(NotFound):
        store.get(row.id)
    assert [record.announcement_id for record in db.query(AnnouncementRead).all()] == [keep.id]
    assert db.query(AnnouncementAudience).count() == 0


def test_audit_rows_are_recorded(db):
    store = AnnouncementStore(db)
    row = _create(store)
    store.audit(row.id, AUTHOR.email, "created", {"status": "published"})

    entry = db.query(AnnouncementAuditLog).one()
    assert entry.action == "created"
    assert entry.details == {"status": "published"}
