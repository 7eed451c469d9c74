from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFound
from app.models import (
    Announcement,
    AnnouncementAudience,
    AnnouncementAuditLog,
    AnnouncementRead,
    AnnouncementStatus,
    InteractionKind,
)
from app.services.audience import AudienceRule
from app.services.permissions import Actor, ensure_can_manage
from app.services.status import Lifecycle

logger = logging.getLogger(__name__)

HIDDEN_BY_DEFAULT = (AnnouncementStatus.EXPIRED, AnnouncementStatus.CANCELLED)
SORT_COLUMNS = {"starts_at": Announcement.starts_at, "created_at": Announcement.created_at}
# Bounds the write-through pass on one list call.
STALE_SCAN_LIMIT = 500


@dataclass
class AnnouncementFilters:
    author_email: Optional[str] = None
    context_type: Optional[str] = None
    context_id: Optional[str] = None
    statuses: list[AnnouncementStatus] = field(default_factory=list)
    include_expired: bool = False
    search: Optional[str] = None
    limit: int = 50
    offset: int = 0
    sort_by: str = "starts_at"
    sort_order: str = "desc"


class AnnouncementStore:
    def __init__(self, db: Session):
        self.db = db

    # -- lookups -----------------------------------------------------------

    def get(self, announcement_id: str) -> Announcement:
        row = (
            self.db.query(Announcement)
            .options(selectinload(Announcement.audience))
            .filter(Announcement.id == str(announcement_id))
            .first()
        )
        if not row:
            raise NotFound("Announcement not found")
        return row

    def get_owned(self, announcement_id: str, actor: Actor) -> Announcement:
        row = self.get(announcement_id)
        ensure_can_manage(row, actor)
        return row

    def _scoped(self, filters: AnnouncementFilters):
        query = self.db.query(Announcement)
        if filters.author_email:
            query = query.filter(Announcement.author_email == filters.author_email.strip().lower())
        if filters.context_type:
            query = query.filter(Announcement.context_type == filters.context_type)
        if filters.context_id:
            query = query.filter(Announcement.context_id == filters.context_id)
        if filters.search and filters.search.strip():
            needle = f"%{filters.search.strip()}%"
            query = query.filter(or_(Announcement.title.ilike(needle), Announcement.content.ilike(needle)))
        return query

    def list(self, filters: AnnouncementFilters, now: Optional[datetime] = None) -> list[Announcement]:
        """Filtered page of announcements.

        With ``now`` given, rows whose stored status has lapsed into one of the
        requested statuses are included too, so callers can still materialise
        them when an earlier write-through failed.
        """
        query = self._scoped(filters).options(selectinload(Announcement.audience))
        if filters.statuses:
            condition = Announcement.status.in_(filters.statuses)
            if now is not None:
                condition = or_(condition, *_lapsed_into(filters.statuses, now))
            query = query.filter(condition)
        elif not filters.include_expired:
            query = query.filter(Announcement.status.notin_(HIDDEN_BY_DEFAULT))

        column = SORT_COLUMNS.get(filters.sort_by, Announcement.starts_at)
        if filters.sort_order == "asc":
            ordering = (column.asc(), Announcement.created_at.asc(), Announcement.id.asc())
        else:
            ordering = (column.desc(), Announcement.created_at.desc(), Announcement.id.desc())

        return query.order_by(*ordering).offset(max(0, filters.offset)).limit(filters.limit).all()

    def stale(self, filters: AnnouncementFilters, now: datetime) -> list[Announcement]:
        """Rows whose stored status is behind the clock."""
        return (
            self._scoped(filters)
            .filter(or_(*_lapsed_into([AnnouncementStatus.PUBLISHED, AnnouncementStatus.EXPIRED], now)))
            .limit(STALE_SCAN_LIMIT)
            .all()
        )

    # -- writes ------------------------------------------------------------

    def create(
        self,
        author_email: str,
        fields: dict[str, Any],
        audience: Iterable[AudienceRule] = (),
        *,
        author_role: Optional[str] = None,
    ) -> Announcement:
        row = Announcement(author_email=author_email.strip().lower(), author_role=author_role, **fields)
        row.audience = _audience_rows(audience)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update(
        self,
        announcement_id: str,
        actor: Actor,
        patch: dict[str, Any],
        audience: Optional[Iterable[AudienceRule]] = None,
    ) -> Announcement:
        row = self.get_owned(announcement_id, actor)
        for key, value in patch.items():
            setattr(row, key, value)
        if audience is not None:
            # delete-orphan cascade removes the previous rule rows.
            row.audience = _audience_rows(audience)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete(self, announcement_id: str, actor: Actor) -> None:
        row = self.get_owned(announcement_id, actor)
        try:
            self.db.query(AnnouncementRead).filter(AnnouncementRead.announcement_id == row.id).delete(
                synchronize_session=False
            )
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def save_status(self, row: Announcement, state: Lifecycle) -> bool:
        """Best-effort write-through of a lazily computed status."""
        state.apply_to(row)
        try:
            self.db.commit()
            return True
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not persist status %s for announcement %s: %s", state.status.value, row.id, exc)
            return False

    def record_interaction(
        self,
        announcement_id: str,
        user_email: str,
        kind: InteractionKind,
        now: datetime,
    ) -> AnnouncementRead:
        email = user_email.strip().lower()
        try:
            record = self._upsert_interaction(announcement_id, email, kind, now)
            self.db.commit()
        except IntegrityError:
            # A concurrent request inserted the same key first; overwrite it.
            self.db.rollback()
            record = self._upsert_interaction(announcement_id, email, kind, now)
            self.db.commit()
        self.db.refresh(record)
        return record

    def _upsert_interaction(self, announcement_id: str, email: str, kind: InteractionKind, now: datetime):
        record = (
            self.db.query(AnnouncementRead)
            .filter(
                AnnouncementRead.announcement_id == announcement_id,
                AnnouncementRead.user_email == email,
            )
            .first()
        )
        if record is None:
            record = AnnouncementRead(announcement_id=announcement_id, user_email=email)
            self.db.add(record)
        record.kind = kind
        if kind == InteractionKind.ACKNOWLEDGED:
            record.acknowledged_at = now
            record.dismissed_at = None
        else:
            record.dismissed_at = now
            record.acknowledged_at = None
        self.db.flush()
        return record

    def interactions_for(self, user_email: str, announcement_ids: Iterable[str]) -> dict[str, AnnouncementRead]:
        ids = list(announcement_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(AnnouncementRead)
            .filter(
                AnnouncementRead.user_email == user_email.strip().lower(),
                AnnouncementRead.announcement_id.in_(ids),
            )
            .all()
        )
        return {row.announcement_id: row for row in rows}

    def audit(self, announcement_id: str, performed_by: str, action: str, details: Optional[dict] = None) -> None:
        try:
            self.db.add(
                AnnouncementAuditLog(
                    announcement_id=announcement_id,
                    action=action,
                    performed_by=performed_by,
                    details=details or {},
                )
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.warning("Could not record audit entry %s for announcement %s: %s", action, announcement_id, exc)


def _audience_rows(audience: Iterable[AudienceRule]) -> list[AnnouncementAudience]:
    return [
        AnnouncementAudience(
            position=index,
            audience_type=rule.audience_type,
            audience_id=rule.audience_id,
            audience_value=rule.audience_value,
        )
        for index, rule in enumerate(audience)
    ]


def _lapsed_into(statuses: Iterable[AnnouncementStatus], now: datetime) -> list:
    conditions = []
    wanted = set(statuses)
    if AnnouncementStatus.PUBLISHED in wanted:
        conditions.append(
            and_(
                Announcement.status == AnnouncementStatus.SCHEDULED,
                or_(Announcement.starts_at.is_(None), Announcement.starts_at <= now),
            )
        )
    if AnnouncementStatus.EXPIRED in wanted:
        conditions.append(
            and_(
                Announcement.status.in_([AnnouncementStatus.SCHEDULED, AnnouncementStatus.PUBLISHED]),
                Announcement.ends_at.isnot(None),
                Announcement.ends_at < now,
            )
        )
    return conditions
