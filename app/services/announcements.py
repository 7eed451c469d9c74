from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import Conflict, Forbidden, NotFound, ValidationError
from app.models import Announcement, AnnouncementRead, AnnouncementStatus, InteractionKind
from app.schemas.announcements import AnnouncementCreate, AnnouncementUpdate, AudienceRuleIn
from app.services import status as lifecycle
from app.services.audience import AudienceRule, UserContext, has_context_access, matches
from app.services.membership import MembershipResolver
from app.services.permissions import Actor, can_author, has_admin_override
from app.services.recurrence import parse_rule
from app.services.status import Lifecycle, as_utc
from app.services.store import HIDDEN_BY_DEFAULT, AnnouncementFilters, AnnouncementStore

logger = logging.getLogger(__name__)

CONTENT_FIELDS = ("title", "content", "rich_content", "display_type", "priority")
VIEWER_STATUSES = (AnnouncementStatus.PUBLISHED,)
# Rows fetched per query while collecting a page of visible announcements.
LIST_BATCH_SIZE = 100
NOT_INTERACTIVE = (AnnouncementStatus.DRAFT, AnnouncementStatus.SCHEDULED, AnnouncementStatus.CANCELLED)


def _audience_rules(items: Optional[Iterable[AudienceRuleIn]]) -> list[AudienceRule]:
    rules = []
    for index, item in enumerate(items or []):
        audience_type = str(item.audience_type or "").strip().lower()
        if not audience_type:
            raise ValidationError("audienceType is required", field=f"audience[{index}].audienceType")
        rules.append(
            AudienceRule(
                audience_type=audience_type,
                audience_id=(item.audience_id or "").strip() or None,
                audience_value=(item.audience_value or "").strip() or None,
            )
        )
    return rules


def _validate_window(
    starts_at: Optional[datetime],
    ends_at: Optional[datetime],
    recurrence_rule: Optional[str],
    recurrence_ends_at: Optional[datetime],
) -> None:
    if starts_at and ends_at and ends_at < starts_at:
        raise ValidationError("endsAt must not precede startsAt", field="endsAt")
    if recurrence_rule:
        parse_rule(recurrence_rule)
        if starts_at and recurrence_ends_at and recurrence_ends_at < starts_at:
            raise ValidationError("recurrence.endsAt must not precede startsAt", field="recurrence.endsAt")
    elif recurrence_ends_at:
        raise ValidationError("recurrence.rule is required", field="recurrence.rule")


def _lifecycle_patch(state: Lifecycle) -> dict[str, Any]:
    return {
        "status": state.status,
        "starts_at": state.starts_at,
        "ends_at": state.ends_at,
        "published_at": state.published_at,
        "recurrence_rule": state.recurrence_rule,
        "recurrence_ends_at": state.recurrence_ends_at,
    }


def serialize(row: Announcement, state: Lifecycle, interaction: Optional[AnnouncementRead] = None) -> dict[str, Any]:
    context = None
    if row.context_type and row.context_id:
        context = {"type": row.context_type, "id": row.context_id}
    recurrence = None
    if state.recurrence_rule:
        recurrence = {"rule": state.recurrence_rule, "ends_at": state.recurrence_ends_at}
    return {
        "id": row.id,
        "author_email": row.author_email,
        "author_role": row.author_role,
        "title": row.title,
        "content": row.content,
        "rich_content": row.rich_content,
        "display_type": getattr(row.display_type, "value", row.display_type),
        "priority": getattr(row.priority, "value", row.priority),
        "context": context,
        "starts_at": state.starts_at,
        "ends_at": state.ends_at,
        "status": state.status.value,
        "published_at": state.published_at,
        "recurrence": recurrence,
        "audience": [
            {
                "audience_type": rule.audience_type,
                "audience_id": rule.audience_id,
                "audience_value": rule.audience_value,
            }
            for rule in row.audience
        ],
        "metadata": row.extra or {},
        "interaction": interaction.kind.value if interaction else None,
        "acknowledged_at": as_utc(interaction.acknowledged_at) if interaction else None,
        "dismissed_at": as_utc(interaction.dismissed_at) if interaction else None,
        "created_at": as_utc(row.created_at),
        "updated_at": as_utc(row.updated_at),
    }


class AnnouncementService:
    def __init__(
        self,
        db: Session,
        membership: Optional[MembershipResolver] = None,
        clock: Callable[[], datetime] = lifecycle.utcnow,
    ):
        self.store = AnnouncementStore(db)
        self.membership = membership or MembershipResolver(db)
        self.clock = clock

    # -- status materialisation -------------------------------------------

    def _materialize(self, row: Announcement, now: datetime) -> Lifecycle:
        stored = Lifecycle.from_row(row)
        current = lifecycle.evaluate(stored, now)
        if current != stored:
            logger.info(
                "Announcement %s moved %s -> %s",
                row.id,
                stored.status.value,
                current.status.value,
            )
            self.store.save_status(row, current)
        return current

    def _visible_to(self, row: Announcement, user: UserContext) -> bool:
        if str(row.author_email).lower() == user.email.lower():
            return True
        if not has_context_access(row.context_type, row.context_id, user):
            return False
        return matches(row.audience, user)

    def _ensure_context_owner(self, actor: Actor, context_type: Optional[str], context_id: Optional[str]) -> None:
        if not context_type or not context_id or has_admin_override(actor):
            return
        if not self.membership.teaches(actor.email, context_type, context_id):
            raise Forbidden("Access denied - context not found or not taught by author", field="context")

    @staticmethod
    def _listable(state: Lifecycle, query: AnnouncementFilters) -> bool:
        if query.statuses:
            return state.status in query.statuses
        return query.include_expired or state.status not in HIDDEN_BY_DEFAULT

    def _collect(
        self,
        query: AnnouncementFilters,
        now: datetime,
        user: Optional[UserContext],
    ) -> list[tuple[Announcement, Lifecycle]]:
        """Page over the rows the caller may see rather than over raw SQL rows."""
        wanted = query.offset + query.limit
        batch = replace(query, offset=0, limit=max(query.limit, LIST_BATCH_SIZE))
        selected: list[tuple[Announcement, Lifecycle]] = []
        while True:
            rows = self.store.list(batch, now)
            for row in rows:
                state = self._materialize(row, now)
                if not self._listable(state, query):
                    continue
                if user is not None and not self._visible_to(row, user):
                    continue
                selected.append((row, state))
            if len(selected) >= wanted or len(rows) < batch.limit:
                break
            batch = replace(batch, offset=batch.offset + batch.limit)
        return selected[query.offset:wanted]

    # -- reads -------------------------------------------------------------

    def list_announcements(self, actor: Actor, filters: AnnouncementFilters) -> list[dict[str, Any]]:
        now = self.clock()
        author_view = bool(filters.author_email) and filters.author_email.strip().lower() == actor.email.lower()

        query = replace(filters)
        if not author_view:
            visible = set(VIEWER_STATUSES)
            if filters.include_expired:
                visible.add(AnnouncementStatus.EXPIRED)
            requested = filters.statuses or list(visible)
            query.statuses = [item for item in requested if item in visible]
            if not query.statuses:
                return []

        # Flush lapsed transitions first so the status filter and paging see them.
        for row in self.store.stale(replace(filters, statuses=[]), now):
            self._materialize(row, now)

        user = None if author_view else self.membership.user_context(actor.email, actor.role)
        selected = self._collect(query, now, user)

        interactions = self.store.interactions_for(actor.email, [row.id for row, _ in selected])
        return [serialize(row, state, interactions.get(row.id)) for row, state in selected]

    def get_announcement(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        row = self.store.get_owned(announcement_id, actor)
        state = self._materialize(row, self.clock())
        return serialize(row, state)

    # -- author writes -----------------------------------------------------

    def create_announcement(self, actor: Actor, payload: AnnouncementCreate) -> dict[str, Any]:
        if not can_author(actor):
            raise Forbidden("Teacher access required")
        if not payload.title.strip():
            raise ValidationError("title is required", field="title")
        if not payload.content.strip():
            raise ValidationError("content is required", field="content")
        if payload.status in (AnnouncementStatus.CANCELLED, AnnouncementStatus.EXPIRED):
            raise ValidationError(f"Cannot create an announcement as {payload.status.value}", field="status")
        if payload.context:
            self._ensure_context_owner(actor, payload.context.type, payload.context.id)

        now = self.clock()
        audience = _audience_rules(payload.audience)
        starts_at = as_utc(payload.starts_at)
        ends_at = as_utc(payload.ends_at)
        rule = payload.recurrence.rule.strip() if payload.recurrence else None
        recurrence_ends_at = as_utc(payload.recurrence.ends_at) if payload.recurrence else None
        if rule and starts_at is None:
            # A recurring series needs an anchor to count periods from.
            starts_at = now
        _validate_window(starts_at, ends_at, rule, recurrence_ends_at)

        status = lifecycle.initial_status(starts_at, now, draft=payload.status == AnnouncementStatus.DRAFT)
        state = Lifecycle(
            status=status,
            starts_at=starts_at,
            ends_at=ends_at,
            published_at=now if status == AnnouncementStatus.PUBLISHED else None,
            recurrence_rule=rule,
            recurrence_ends_at=recurrence_ends_at,
        )
        state = lifecycle.evaluate(state, now)

        row = self.store.create(
            actor.email,
            {
                "title": payload.title.strip(),
                "content": payload.content.strip(),
                "rich_content": payload.rich_content or {},
                "display_type": payload.display_type,
                "priority": payload.priority,
                "context_type": payload.context.type if payload.context else None,
                "context_id": payload.context.id if payload.context else None,
                "starts_at": state.starts_at,
                "ends_at": state.ends_at,
                "status": state.status,
                "published_at": state.published_at,
                "recurrence_rule": rule,
                "recurrence_ends_at": recurrence_ends_at,
                "extra": payload.metadata or {},
            },
            audience,
            author_role=actor.role or None,
        )
        self.store.audit(row.id, actor.email, "created", {"status": state.status.value})
        logger.info("Announcement %s created by %s as %s", row.id, actor.email, state.status.value)
        return serialize(row, state)

    def update_announcement(self, announcement_id: str, actor: Actor, payload: AnnouncementUpdate) -> dict[str, Any]:
        row = self.store.get_owned(announcement_id, actor)
        fields_set = set(payload.model_fields_set)
        if not fields_set:
            raise ValidationError("Nothing to update")

        now = self.clock()
        current = lifecycle.evaluate(Lifecycle.from_row(row), now)
        if current.status == AnnouncementStatus.CANCELLED:
            raise Conflict("Cancelled announcements cannot be edited")

        patch: dict[str, Any] = {}
        for name in CONTENT_FIELDS:
            if name not in fields_set:
                continue
            value = getattr(payload, name)
            if name in ("title", "content"):
                if value is None or not value.strip():
                    raise ValidationError(f"{name} is required", field=name)
                value = value.strip()
            elif value is None and name != "rich_content":
                raise ValidationError(f"{name} cannot be null", field=name)
            patch[name] = value
        if "metadata" in fields_set:
            patch["extra"] = payload.metadata or {}
        if "context" in fields_set:
            if payload.context:
                self._ensure_context_owner(actor, payload.context.type, payload.context.id)
            patch["context_type"] = payload.context.type if payload.context else None
            patch["context_id"] = payload.context.id if payload.context else None

        merged = current
        if "starts_at" in fields_set:
            merged = replace(merged, starts_at=as_utc(payload.starts_at))
        if "ends_at" in fields_set:
            merged = replace(merged, ends_at=as_utc(payload.ends_at))
        if "recurrence" in fields_set:
            if payload.recurrence is None:
                merged = replace(merged, recurrence_rule=None, recurrence_ends_at=None)
            else:
                merged = replace(
                    merged,
                    recurrence_rule=payload.recurrence.rule.strip(),
                    recurrence_ends_at=as_utc(payload.recurrence.ends_at),
                )
        if merged.recurrence_rule and merged.starts_at is None:
            merged = replace(merged, starts_at=now)
        _validate_window(merged.starts_at, merged.ends_at, merged.recurrence_rule, merged.recurrence_ends_at)

        audience = None
        if "audience" in fields_set:
            audience = _audience_rules(payload.audience)

        requested = payload.status if "status" in fields_set else None
        if requested == AnnouncementStatus.EXPIRED and current.status != AnnouncementStatus.EXPIRED:
            raise Conflict("Announcements expire automatically")
        state = lifecycle.after_edit(merged, now, requested)

        patch.update(_lifecycle_patch(state))
        row = self.store.update(announcement_id, actor, patch, audience)
        self.store.audit(
            row.id,
            actor.email,
            "updated",
            {"fields": sorted(fields_set), "status": state.status.value},
        )
        return serialize(row, state)

    def delete_announcement(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        self.store.delete(announcement_id, actor)
        self.store.audit(announcement_id, actor.email, "deleted")
        logger.info("Announcement %s deleted by %s", announcement_id, actor.email)
        return {"success": True}

    def cancel_announcement(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        row = self.store.get_owned(announcement_id, actor)
        now = self.clock()
        current = lifecycle.evaluate(Lifecycle.from_row(row), now)
        state = lifecycle.after_edit(current, now, AnnouncementStatus.CANCELLED)
        row = self.store.update(announcement_id, actor, _lifecycle_patch(state))
        self.store.audit(row.id, actor.email, "cancelled", {"previous_status": current.status.value})
        return serialize(row, state)

    def publish_now(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        row = self.store.get_owned(announcement_id, actor)
        now = self.clock()
        current = lifecycle.evaluate(Lifecycle.from_row(row), now)
        state = lifecycle.publish_now(current, now)
        row = self.store.update(announcement_id, actor, _lifecycle_patch(state))
        if state != current:
            self.store.audit(row.id, actor.email, "published_now", {"previous_status": current.status.value})
        return serialize(row, state)

    # -- recipient interactions -------------------------------------------

    def _interact(self, announcement_id: str, actor: Actor, kind: InteractionKind) -> dict[str, Any]:
        row = self.store.get(announcement_id)
        # Outsiders get the same answer as for a missing record.
        if not self._visible_to(row, self.membership.user_context(actor.email, actor.role)):
            raise NotFound("Announcement not found")
        now = self.clock()
        state = self._materialize(row, now)
        if state.status in NOT_INTERACTIVE:
            raise Conflict(f"Announcement is {state.status.value} and cannot be {kind.value}")
        self.store.record_interaction(announcement_id, actor.email, kind, now)
        return {"success": True}

    def acknowledge_announcement(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        return self._interact(announcement_id, actor, InteractionKind.ACKNOWLEDGED)

    def dismiss_announcement(self, announcement_id: str, actor: Actor) -> dict[str, Any]:
        return self._interact(announcement_id, actor, InteractionKind.DISMISSED)
