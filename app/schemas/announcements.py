from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.announcement import AnnouncementPriority, AnnouncementStatus, DisplayType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AudienceRuleIn(CamelModel):
    # Left optional so a missing type surfaces as a field-level 400 from the service.
    audience_type: Optional[str] = Field(default=None, max_length=64)
    audience_id: Optional[str] = Field(default=None, max_length=64)
    audience_value: Optional[str] = Field(default=None, max_length=255)


class AudienceRuleOut(CamelModel):
    audience_type: str
    audience_id: Optional[str] = None
    audience_value: Optional[str] = None


class RecurrenceIn(CamelModel):
    rule: str = Field(..., min_length=1, max_length=64)
    ends_at: Optional[datetime] = None


class RecurrenceOut(CamelModel):
    rule: str
    ends_at: Optional[datetime] = None


class ContextIn(CamelModel):
    type: str = Field(..., min_length=1, max_length=64)
    id: str = Field(..., min_length=1, max_length=64)


class AnnouncementCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    rich_content: Optional[dict[str, Any]] = None
    display_type: DisplayType = DisplayType.BANNER
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    context: Optional[ContextIn] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    recurrence: Optional[RecurrenceIn] = None
    audience: list[AudienceRuleIn] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None
    # "draft" keeps the record out of the schedule until it is published.
    status: Optional[AnnouncementStatus] = None


class AnnouncementUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = Field(default=None, min_length=1)
    rich_content: Optional[dict[str, Any]] = None
    display_type: Optional[DisplayType] = None
    priority: Optional[AnnouncementPriority] = None
    context: Optional[ContextIn] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: Optional[AnnouncementStatus] = None
    recurrence: Optional[RecurrenceIn] = None
    audience: Optional[list[AudienceRuleIn]] = None
    metadata: Optional[dict[str, Any]] = None


class ContextOut(CamelModel):
    type: str
    id: str


class AnnouncementOut(CamelModel):
    id: str
    author_email: str
    author_role: Optional[str] = None
    title: str
    content: str
    rich_content: Optional[dict[str, Any]] = None
    display_type: str
    priority: str
    context: Optional[ContextOut] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    status: str
    published_at: Optional[datetime] = None
    recurrence: Optional[RecurrenceOut] = None
    audience: list[AudienceRuleOut] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    interaction: Optional[str] = None
    acknowledged_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnnouncementListResponse(CamelModel):
    items: list[AnnouncementOut]


class SuccessResponse(CamelModel):
    success: bool = True
