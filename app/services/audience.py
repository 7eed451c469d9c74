from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Protocol


EVERYONE_TYPES = {"everyone", "all", "platform"}
ROLE_TYPES = {"role"}
USER_TYPES = {"user", "email"}


class AudienceRuleLike(Protocol):
    audience_type: str
    audience_id: Optional[str]
    audience_value: Optional[str]


@dataclass(frozen=True)
class AudienceRule:
    audience_type: str
    audience_id: Optional[str] = None
    audience_value: Optional[str] = None


@dataclass(frozen=True)
class UserContext:
    email: str
    role: str = ""
    # dimension -> ids, e.g. {"course": {"c-1", "c-2"}}
    memberships: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def ids_for(self, dimension: str) -> frozenset[str]:
        return self.memberships.get(_norm(dimension), frozenset())


def _norm(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def build_memberships(pairs: Iterable[tuple[str, str]]) -> dict[str, frozenset[str]]:
    grouped: dict[str, set[str]] = {}
    for dimension, context_id in pairs:
        if not dimension or not context_id:
            continue
        grouped.setdefault(_norm(dimension), set()).add(str(context_id))
    return {key: frozenset(values) for key, values in grouped.items()}


def has_context_access(context_type: Optional[str], context_id: Optional[str], user: UserContext) -> bool:
    if not context_type or not context_id:
        return True
    return str(context_id) in user.ids_for(context_type)


def rule_matches(rule: AudienceRuleLike, user: UserContext) -> bool:
    audience_type = _norm(rule.audience_type)
    audience_id = rule.audience_id or None
    audience_value = rule.audience_value or None

    if not audience_type:
        return False
    if audience_type in EVERYONE_TYPES:
        return True
    if audience_type in ROLE_TYPES:
        wanted = audience_value or audience_id
        return bool(wanted) and _norm(wanted) == _norm(user.role)
    if audience_type in USER_TYPES:
        wanted = audience_value or audience_id
        return bool(wanted) and _norm(wanted) == _norm(user.email)

    ids = user.ids_for(audience_type)
    if audience_id is not None and str(audience_id) in ids:
        return True
    if audience_value is not None and str(audience_value) in ids:
        return True
    if audience_id is None and audience_value is None:
        # Dimension-wide rule, e.g. "anyone enrolled in any course".
        return bool(ids)
    return False


def matches(rules: Iterable[AudienceRuleLike], user: UserContext) -> bool:
    """Return True when ``user`` belongs to the audience described by ``rules``.

    An empty rule set is platform-wide. Otherwise one matching rule is enough.
    Context membership is checked separately by ``has_context_access``.
    """
    rules = list(rules or [])
    if not rules:
        return True
    return any(rule_matches(rule, user) for rule in rules)
