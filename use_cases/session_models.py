"""Session DTOs shared across application layers."""

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Any, Dict, Literal, Optional

from use_cases.errors import ErrorKind

Role = Literal["admin", "user"]


class SessionStatus(str, Enum):
    UNAUTHENTICATED = "Unauthenticated"
    AUTHENTICATING = "Authenticating"
    AUTHENTICATED = "Authenticated"


@dataclass(frozen=True)
class UserSnapshot:
    id: str
    name: str
    email: str
    role: Role
    profile_image: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "UserSnapshot":
        """Build a snapshot from a backend user object (`_id`/`id`, `profileImage`)."""
        user_id = payload.get("id") or payload.get("_id")
        if not user_id:
            raise ValueError("user payload has no id")
        return cls(
            id=str(user_id),
            name=payload.get("name", ""),
            email=payload.get("email", ""),
            role="admin" if payload.get("role") == "admin" else "user",
            profile_image=payload.get("profileImage") or payload.get("profile_image"),
        )

    def merged(self, payload: Dict[str, Any]) -> "UserSnapshot":
        """Overlay the fields a profile/photo update returned; identity is never changed."""
        changes = {}
        if "name" in payload:
            changes["name"] = payload["name"]
        if "email" in payload:
            changes["email"] = payload["email"]
        if "profileImage" in payload:
            changes["profile_image"] = payload["profileImage"]
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Session:
    """Client-side belief about the authenticated identity.

    `token` is set iff `status` is not UNAUTHENTICATED. `user` may lag the
    server; the next successful refresh overwrites it.
    """

    status: SessionStatus = SessionStatus.UNAUTHENTICATED
    token: Optional[str] = None
    user: Optional[UserSnapshot] = None
    last_error: Optional[ErrorKind] = None

    def __post_init__(self):
        if (self.token is not None) != (self.status != SessionStatus.UNAUTHENTICATED):
            raise ValueError(f"token presence does not match status {self.status.value}")

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED


def is_admin(user: Optional[UserSnapshot]) -> bool:
    return user is not None and user.role == "admin"
