import enum
import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.base import TimestampMixin


def _values(enum_cls):
    return [member.value for member in enum_cls]


def _new_id() -> str:
    return str(uuid.uuid4())


class AnnouncementStatus(str, enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class DisplayType(str, enum.Enum):
    BANNER = "banner"
    MODAL = "modal"
    EMAIL = "email"


class AnnouncementPriority(str, enum.Enum):
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class InteractionKind(str, enum.Enum):
    ACKNOWLEDGED = "acknowledged"
    DISMISSED = "dismissed"


class Announcement(Base, TimestampMixin):
    __tablename__ = "announcements"

    id = Column(String(36), primary_key=True, default=_new_id)
    author_email = Column(String(255), nullable=False)
    author_role = Column(String(32), nullable=True)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    rich_content = Column(JSON, nullable=True)
    display_type = Column(
        Enum(DisplayType, name="announcementdisplaytype", values_callable=_values),
        nullable=False,
        default=DisplayType.BANNER,
    )
    priority = Column(
        Enum(AnnouncementPriority, name="announcementpriority", values_callable=_values),
        nullable=False,
        default=AnnouncementPriority.NORMAL,
    )
    context_type = Column(String(64), nullable=True)
    context_id = Column(String(64), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(AnnouncementStatus, name="announcementstatus", values_callable=_values),
        nullable=False,
        default=AnnouncementStatus.DRAFT,
    )
    published_at = Column(DateTime(timezone=True), nullable=True)
    recurrence_rule = Column(String(64), nullable=True)
    recurrence_ends_at = Column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes.
    extra = Column("metadata", JSON, nullable=True)

    audience = relationship(
        "AnnouncementAudience",
        back_populates="announcement",
        order_by="AnnouncementAudience.position",
        cascade="all, delete-orphan",
    )
    reads = relationship(
        "AnnouncementRead",
        back_populates="announcement",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class AnnouncementAudience(Base):
    __tablename__ = "announcement_audience"

    id = Column(Integer, primary_key=True, index=True)
    announcement_id = Column(String(36), ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    audience_type = Column(String(64), nullable=False)
    audience_id = Column(String(64), nullable=True)
    audience_value = Column(String(255), nullable=True)

    announcement = relationship("Announcement", back_populates="audience")


class AnnouncementRead(Base, TimestampMixin):
    __tablename__ = "announcement_reads"

    id = Column(Integer, primary_key=True, index=True)
    announcement_id = Column(String(36), ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False)
    user_email = Column(String(255), nullable=False)
    kind = Column(
        Enum(InteractionKind, name="announcementinteraction", values_callable=_values),
        nullable=False,
    )
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    announcement = relationship("Announcement", back_populates="reads")

    __table_args__ = (
        UniqueConstraint("announcement_id", "user_email", name="uq_announcement_reads_user"),
    )


class AnnouncementAuditLog(Base):
    __tablename__ = "announcement_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    # No FK: audit rows outlive deleted announcements.
    announcement_id = Column(String(36), nullable=False)
    action = Column(String(32), nullable=False)
    performed_by = Column(String(255), nullable=False)
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


Index("ix_announcements_author_status", Announcement.author_email, Announcement.status)
Index("ix_announcements_context", Announcement.context_type, Announcement.context_id)
Index("ix_announcements_window", Announcement.status, Announcement.starts_at, Announcement.ends_at)
Index("ix_announcement_audience_announcement", AnnouncementAudience.announcement_id)
Index("ix_announcement_audit_logs_announcement", AnnouncementAuditLog.announcement_id)
