"""
auth/tokens.py -- JWT session tokens and password hashing.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       userId, role, avatar, gender, issue time and expiry. Verification
       returns None on any failure -- the session validator turns that into
       InvalidCredentials.

  Passwords: bcrypt directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether a username exists.

  SECRET_KEY and the token lifetime are passed in by the caller from the
       Settings instance held on app.state. This module holds no config.

Layer rule: no imports from api/ or board/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Claims, User

if TYPE_CHECKING:
    from auth.store import UserStore

logger = logging.getLogger("msgboard.auth")

_ALGORITHM = "HS256"

MALE_AVATAR = "path/to/male-avatar.jpg"
FEMALE_AVATAR = "path/to/female-avatar.jpg"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps password
    length at 72 characters so nothing is silently ignored for ASCII input.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# Timing equalization dummy hash. Computed once at module load so the first
# login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("msgboard_timing_dummy")


def avatar_for_gender(gender: str) -> str:
    return MALE_AVATAR if gender == "male" else FEMALE_AVATAR


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, secret_key: str, expire_seconds: int) -> str:
    """Encode a signed JWT snapshot of the user's identity.

    Args:
        user:           The stored User; must have an id.
        secret_key:     HMAC key from Settings.secret_key.
        expire_seconds: Fixed lifetime from Settings.token_expire_seconds.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "role": user.role,
        "avatar": user.avatar,
        "gender": user.gender,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> Claims | None:
    """Decode and verify a JWT. Returns Claims or None on any failure.

    Signature, expiry and shape are all checked here. Callers decide how a
    None is reported.
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "userId" not in payload or "role" not in payload or "exp" not in payload:
        return None
    try:
        user_id = int(payload["userId"])
    except (TypeError, ValueError):
        return None
    expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc) if "iat" in payload else expires_at
    return Claims(
        user_id=user_id,
        role=payload["role"],
        avatar=payload.get("avatar", ""),
        gender=payload.get("gender", ""),
        issued_at=issued_at,
        expires_at=expires_at,
    )


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Authenticate a username/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown username: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_username(username)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        logger.info("Failed login for user id=%s", user.id)
        return None
    return user
