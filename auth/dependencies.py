"""
auth/dependencies.py -- Session validation and FastAPI Depends() helpers.

Only one auth method exists: an `Authorization: Bearer <token>` header.

  extract_bearer_token() -- header -> raw token, MissingCredentials if absent.
  validate_session()     -- headers -> Claims, InvalidCredentials on a bad token.
  get_current_claims()   -- FastAPI dependency; rejects before the handler runs.

Validation has no side effects: no user lookup, no token refresh. The
returned Claims are trusted as-is until they expire.

Layer rule: no imports from api/ or board/. Importing fastapi is allowed
because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import Request

from auth.models import Claims
from auth.tokens import decode_access_token
from core.errors import InvalidCredentials, MissingCredentials


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token segment of an Authorization header value."""
    if not authorization:
        raise MissingCredentials("Authorization header is required.")
    parts = authorization.split(" ", 1)
    token = parts[1].strip() if len(parts) == 2 else ""
    if not token:
        raise MissingCredentials("Bearer token is required.")
    return token


def validate_session(headers: Mapping[str, str], secret_key: str) -> Claims:
    """Verify the bearer token in headers and return its Claims."""
    token = extract_bearer_token(headers.get("Authorization"))
    claims = decode_access_token(token, secret_key)
    if claims is None:
        raise InvalidCredentials("Invalid or expired token.")
    return claims


def get_current_claims(request: Request) -> Claims:
    """Require a valid session.

    Use as a FastAPI dependency:
        @router.post("/protected")
        async def route(claims: Claims = Depends(get_current_claims)): ...
    """
    return validate_session(request.headers, request.app.state.settings.secret_key)
