from app.models.announcement import (
    Announcement,
    AnnouncementAudience,
    AnnouncementAuditLog,
    AnnouncementPriority,
    AnnouncementRead,
    AnnouncementStatus,
    DisplayType,
    InteractionKind,
)
from app.models.membership import CourseMembership

__all__ = [
    "Announcement",
    "AnnouncementAudience",
    "AnnouncementAuditLog",
    "AnnouncementPriority",
    "AnnouncementRead",
    "AnnouncementStatus",
    "DisplayType",
    "InteractionKind",
    "CourseMembership",
]
