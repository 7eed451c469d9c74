from sqlalchemy import Column, Index, Integer, String, UniqueConstraint

from app.core.database import Base
from app.models.base import TimestampMixin


class CourseMembership(Base, TimestampMixin):
    """Read-side mirror of course enrollments and teaching assignments.

    Rows are written by the course service; this engine only reads them to
    resolve audience and context membership.
    """

    __tablename__ = "course_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_email = Column(String(255), nullable=False)
    # Dimension the id belongs to, e.g. "course" or "module".
    context_type = Column(String(64), nullable=False, default="course")
    context_id = Column(String(64), nullable=False)
    # enrolled | teaching
    relation = Column(String(32), nullable=False, default="enrolled")

    __table_args__ = (
        UniqueConstraint("user_email", "context_type", "context_id", "relation", name="uq_course_memberships_key"),
    )


Index("ix_course_memberships_user", CourseMembership.user_email)
