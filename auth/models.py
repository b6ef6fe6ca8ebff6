"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in board/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/ or board/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_USER = "user"
ROLE_ADMIN = "admin"


@dataclass
class User:
    """A registered board member.

    avatar is derived from gender at registration and copied into every
    token issued at login. role is never changed by the application itself;
    promoting a user to admin is an operator action (python main.py set-role).
    """

    username: str
    gender: str
    age: str
    avatar: str = ""
    role: str = ROLE_USER  # "user" | "admin"
    id: int | None = None
    hashed_password: str | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Claims:
    """Decoded, verified payload of a session token.

    A point-in-time snapshot of the User at login. It is NOT re-checked
    against the live user record: a role change or account deletion takes
    effect only when the token expires and the user logs in again.
    """

    user_id: int
    role: str
    avatar: str
    gender: str
    issued_at: datetime
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
