"""Centralized Role-Based Access Control logic.

Routes are guarded by a static role table of path patterns. Patterns are
compiled once into literal/parameter segments and matched against the
whole path: `/bookings/:id` accepts `/bookings/abc123` but never
`/bookings/abc123/extra`.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from use_cases.session_models import Role, Session, SessionStatus

log = logging.getLogger(__name__)

# Parameter values: one non-empty path segment.
_PARAM_VALUE = re.compile(r"[^/]+")


@dataclass(frozen=True)
class LiteralSegment:
    text: str

    def matches(self, segment: str) -> bool:
        return segment == self.text


@dataclass(frozen=True)
class ParamSegment:
    name: str

    def matches(self, segment: str) -> bool:
        return _PARAM_VALUE.fullmatch(segment) is not None


Segment = Union[LiteralSegment, ParamSegment]


def _split(path: str) -> Tuple[str, ...]:
    return tuple(path.strip("/").split("/")) if path.strip("/") else ()


@dataclass(frozen=True)
class PathPattern:
    source: str
    segments: Tuple[Segment, ...]

    def matches(self, path: str) -> bool:
        parts = _split(path.split("?", 1)[0])
        if len(parts) != len(self.segments):
            return False
        return all(seg.matches(part) for seg, part in zip(self.segments, parts))

    def params(self, path: str) -> Optional[Dict[str, str]]:
        if not self.matches(path):
            return None
        parts = _split(path.split("?", 1)[0])
        return {
            seg.name: part for seg, part in zip(self.segments, parts) if isinstance(seg, ParamSegment)
        }


def compile_pattern(source: str) -> PathPattern:
    if not source.startswith("/"):
        raise ValueError(f"route pattern must be absolute: {source!r}")
    segments = []
    for part in _split(source):
        if part.startswith(":"):
            if len(part) == 1:
                raise ValueError(f"unnamed parameter in route pattern {source!r}")
            segments.append(ParamSegment(part[1:]))
        else:
            segments.append(LiteralSegment(part))
    return PathPattern(source=source, segments=tuple(segments))


class RoleTable:
    """Immutable role -> compiled path patterns mapping."""

    def __init__(self, routes: Mapping[str, Iterable[str]]):
        self._patterns: Dict[str, Tuple[PathPattern, ...]] = {
            role: tuple(compile_pattern(p) for p in patterns) for role, patterns in routes.items()
        }

    def patterns_for(self, role: str) -> Optional[Tuple[PathPattern, ...]]:
        return self._patterns.get(role)

    def allows(self, role: str, path: str) -> bool:
        """Roles without an entry are unrestricted by the table."""
        patterns = self.patterns_for(role)
        if patterns is None:
            return True
        return any(p.matches(path) for p in patterns)


ROLE_TABLE = RoleTable({
    "admin": (
        "/admin",
        "/admin/dashboard",
        "/admin/bookings",
        "/admin/packages",
        "/admin/users",
        "/admin/payments",
        "/admin/transactions",
        "/admin/settings",
        "/admin/reviews",
        "/admin/contacts",
    ),
    "user": (
        "/profile",
        "/bookings",
        "/bookings/:id",
        "/leave-review",
        "/packages",
        "/packagesDetail",
        "/checkout/:id",
        "/my-reviews",
        "/my-messages",
        "/contact",
    ),
})


@dataclass(frozen=True)
class Requirement:
    """`role=None` means any authenticated user."""

    role: Optional[Role] = None


AUTHENTICATED = Requirement()
ADMIN_ONLY = Requirement(role="admin")
USER_ONLY = Requirement(role="user")


class AccessOutcome(str, Enum):
    ALLOW = "Allow"
    PENDING = "Pending"
    REDIRECT_LOGIN = "RedirectLogin"
    REDIRECT_UNAUTHORIZED = "RedirectUnauthorized"


LOGIN_PATH = "/login"
UNAUTHORIZED_PATH = "/unauthorized"


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    requested_path: str
    redirect_to: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome == AccessOutcome.ALLOW


def decide(
    session: Session,
    requirement: Requirement,
    path: str,
    role_table: RoleTable = ROLE_TABLE,
) -> AccessDecision:
    """Pure routing decision; role requirements are checked before the role table."""
    if session.status == SessionStatus.AUTHENTICATING:
        return AccessDecision(AccessOutcome.PENDING, path)

    if session.status != SessionStatus.AUTHENTICATED or session.user is None:
        return AccessDecision(AccessOutcome.REDIRECT_LOGIN, path, redirect_to=LOGIN_PATH)

    role = session.user.role
    if requirement.role is not None and role != requirement.role:
        return AccessDecision(AccessOutcome.REDIRECT_UNAUTHORIZED, path, redirect_to=UNAUTHORIZED_PATH)

    if not role_table.allows(role, path):
        return AccessDecision(AccessOutcome.REDIRECT_UNAUTHORIZED, path, redirect_to=UNAUTHORIZED_PATH)

    return AccessDecision(AccessOutcome.ALLOW, path)


def enforce(
    session: Session,
    requirement: Requirement,
    path: str,
    role_table: RoleTable = ROLE_TABLE,
) -> AccessDecision:
    """
    Same as `decide`, additionally recording every redirect in the audit log.
    """
    import auth
    from infrastructure.repositories.sqlite_audit_repository import AuditAction

    decision = decide(session, requirement, path, role_table)

    if decision.outcome in (AccessOutcome.REDIRECT_LOGIN, AccessOutcome.REDIRECT_UNAUTHORIZED):
        user = session.user
        log.info(f"Access to {path} denied: {decision.outcome.value}")
        auth.get_audit_repo().log_action(
            AuditAction.RBAC_DENIED,
            target_type="route",
            actor_user_id=user.id if user else None,
            actor_role=user.role if user else None,
            target_id=path,
            metadata={
                "path": path,
                "requirement": requirement.role or "authenticated",
                "decision": decision.outcome.value,
            },
            result="deny",
        )

    return decision
