from dataclasses import dataclass

from app.core.config import get_settings, parse_roles
from app.core.exceptions import Forbidden


@dataclass(frozen=True)
class Actor:
    email: str
    role: str = ""


def can_author(actor: Actor) -> bool:
    return str(actor.role or "").strip().lower() in parse_roles(get_settings().author_roles)


def has_admin_override(actor: Actor) -> bool:
    return bool(get_settings().allow_admin_override) and str(actor.role or "").lower() == "admin"


def can_manage(announcement, actor: Actor) -> bool:
    """Single ownership predicate for every author-gated operation."""
    if str(announcement.author_email or "").lower() == str(actor.email or "").lower():
        return True
    return has_admin_override(actor)


def ensure_can_manage(announcement, actor: Actor) -> None:
    if not can_manage(announcement, actor):
        raise Forbidden("Insufficient permissions")
