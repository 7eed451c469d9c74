from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.core.config import get_settings
from app.dependencies import get_announcement_service, get_current_user, require_author
from app.middlewares.rate_limit import limiter
from app.models import AnnouncementStatus
from app.schemas.announcements import (
    AnnouncementCreate,
    AnnouncementListResponse,
    AnnouncementOut,
    AnnouncementUpdate,
    SuccessResponse,
)
from app.services.announcements import AnnouncementService
from app.services.permissions import Actor
from app.services.store import AnnouncementFilters

settings = get_settings()
router = APIRouter()

_SORT_FIELDS = {"starts_at": "starts_at", "startsat": "starts_at", "created_at": "created_at", "createdat": "created_at"}


def _coerce_statuses(value: Optional[str]) -> list[AnnouncementStatus]:
    if value is None:
        return []
    statuses = []
    for raw in value.split(","):
        raw = raw.strip().lower()
        if not raw:
            continue
        try:
            statuses.append(AnnouncementStatus(raw))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {raw}")
    return list(dict.fromkeys(statuses))


def _coerce_sort(sort_by: Optional[str], sort_order: Optional[str]) -> tuple[str, str]:
    field = _SORT_FIELDS.get(str(sort_by or "starts_at").strip().lower())
    if field is None:
        raise HTTPException(status_code=400, detail="sortBy must be starts_at or created_at")
    order = str(sort_order or "desc").strip().lower()
    if order not in ("asc", "desc"):
        raise HTTPException(status_code=400, detail="sortOrder must be asc or desc")
    return field, order


@router.get("", response_model=AnnouncementListResponse)
def list_announcements(
    author_email: Optional[str] = Query(default=None, alias="authorEmail"),
    context_type: Optional[str] = Query(default=None, alias="contextType"),
    context_id: Optional[str] = Query(default=None, alias="contextId"),
    status: Optional[str] = None,
    include_expired: bool = Query(default=False, alias="includeExpired"),
    search: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    sort_by: Optional[str] = Query(default=None, alias="sortBy"),
    sort_order: Optional[str] = Query(default=None, alias="sortOrder"),
    user: Actor = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    sort_field, order = _coerce_sort(sort_by, sort_order)
    filters = AnnouncementFilters(
        author_email=author_email.strip().lower() if author_email else None,
        context_type=context_type,
        context_id=context_id,
        statuses=_coerce_statuses(status),
        include_expired=include_expired,
        search=search,
        limit=min(limit or settings.announcement_default_limit, settings.announcement_max_limit),
        offset=offset,
        sort_by=sort_field,
        sort_order=order,
    )
    return {"items": service.list_announcements(user, filters)}


@router.post("", response_model=AnnouncementOut, status_code=201)
@limiter.limit(settings.rate_limit_write)
def create_announcement(
    request: Request,
    payload: AnnouncementCreate,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.create_announcement(author, payload)


@router.get("/{announcement_id}", response_model=AnnouncementOut)
def get_announcement(
    announcement_id: str,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.get_announcement(announcement_id, author)


@router.patch("/{announcement_id}", response_model=AnnouncementOut)
@limiter.limit(settings.rate_limit_write)
def update_announcement(
    request: Request,
    announcement_id: str,
    payload: AnnouncementUpdate,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.update_announcement(announcement_id, author, payload)


@router.delete("/{announcement_id}", response_model=SuccessResponse)
@limiter.limit(settings.rate_limit_write)
def delete_announcement(
    request: Request,
    announcement_id: str,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.delete_announcement(announcement_id, author)


@router.post("/{announcement_id}/publish-now", response_model=AnnouncementOut)
@limiter.limit(settings.rate_limit_write)
def publish_announcement_now(
    request: Request,
    announcement_id: str,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.publish_now(announcement_id, author)


@router.post("/{announcement_id}/cancel", response_model=AnnouncementOut)
@limiter.limit(settings.rate_limit_write)
def cancel_announcement(
    request: Request,
    announcement_id: str,
    author: Actor = Depends(require_author),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.cancel_announcement(announcement_id, author)


@router.post("/{announcement_id}/acknowledge", response_model=SuccessResponse)
def acknowledge_announcement(
    announcement_id: str,
    user: Actor = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.acknowledge_announcement(announcement_id, user)


@router.post("/{announcement_id}/dismiss", response_model=SuccessResponse)
def dismiss_announcement(
    announcement_id: str,
    user: Actor = Depends(get_current_user),
    service: AnnouncementService = Depends(get_announcement_service),
):
    return service.dismiss_announcement(announcement_id, user)
