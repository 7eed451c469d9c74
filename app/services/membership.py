from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models import CourseMembership
from app.services.audience import UserContext, build_memberships

logger = logging.getLogger(__name__)

TEACHING = "teaching"


class MembershipResolver:
    """Looks up the contexts (courses, modules, ...) a user teaches or is enrolled in."""

    def __init__(self, db: Session):
        self.db = db

    def memberships_for(self, email: str) -> list[tuple[str, str]]:
        rows = (
            self.db.query(CourseMembership.context_type, CourseMembership.context_id)
            .filter(CourseMembership.user_email == str(email or "").strip().lower())
            .all()
        )
        return [(row[0], row[1]) for row in rows]

    def user_context(self, email: str, role: str) -> UserContext:
        pairs = self.memberships_for(email)
        logger.debug("Resolved %s membership(s) for %s", len(pairs), email)
        return UserContext(email=email, role=role or "", memberships=build_memberships(pairs))

    def teaches(self, email: str, context_type: str, context_id: str) -> bool:
        row = (
            self.db.query(CourseMembership.id)
            .filter(
                CourseMembership.user_email == str(email or "").strip().lower(),
                CourseMembership.context_type == str(context_type).strip().lower(),
                CourseMembership.context_id == str(context_id),
                CourseMembership.relation == TEACHING,
            )
            .first()
        )
        return row is not None
