"""
Domain exceptions for the announcement engine.

Services raise these; ``app.main`` turns them into JSON responses with the
matching HTTP status code.
"""

from typing import Any, Optional


class AnnouncementError(Exception):
    status_code = 500
    code = "announcement_error"

    def __init__(self, detail: str, *, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.detail, "code": self.code}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(AnnouncementError):
    status_code = 400
    code = "validation_error"


class NotFound(AnnouncementError):
    status_code = 404
    code = "not_found"


class Forbidden(AnnouncementError):
    status_code = 403
    code = "forbidden"


class Conflict(AnnouncementError):
    status_code = 409
    code = "conflict"
