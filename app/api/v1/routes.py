from fastapi import APIRouter
from app.api.v1.endpoints import announcements

router = APIRouter()

router.include_router(announcements.router, prefix="/announcements", tags=["announcements"])
