"""
api/routes/users.py -- Registration, login and current-user endpoints.

Routes:
  POST /api/register  -- create an account (public)
  POST /api/login     -- password login; returns a bearer token (public)
  GET  /api/user      -- id and live role of the token's user (requires auth)

Security:
  POST /login is rate-limited to 10 requests/minute per IP.
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  Unknown username and wrong password return the same error.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.limiter import limiter
from api.models import (
    CurrentUserResponse,
    ErrorDetail,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
)
from auth.dependencies import get_current_claims
from auth.models import ROLE_USER, Claims, User
from auth.store import UserStore
from auth.tokens import authenticate_user, avatar_for_gender, create_access_token, hash_password
from core.errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger("msgboard.api.users")

# Auth policy:
# - POST /api/register: public
# - POST /api/login:    public -- login endpoint must be unauthenticated
# - GET  /api/user:     requires auth (get_current_claims)
router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a user account with role "user".

    The avatar is picked from gender. A duplicate username is a 400, whether
    it is caught by the lookup or by the UNIQUE constraint on a concurrent
    registration.
    """
    user_store: UserStore = request.app.state.user_store

    if user_store.get_by_username(body.username) is not None:
        raise ValidationError("Username already exists.", code="duplicate_username")

    new_user = User(
        username=body.username,
        hashed_password=hash_password(body.password),
        role=ROLE_USER,
        gender=body.gender,
        age=body.age,
        avatar=avatar_for_gender(body.gender),
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise ValidationError("Username already exists.", code="duplicate_username") from exc

    created = user_store.get_by_id(user_id)
    if created is None:
        raise PersistenceError("User not found after write.")
    logger.info("Registered user id=%d", user_id)
    return UserResponse.from_user(created)


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")  # route decorator stays outermost so FastAPI registers the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a signed bearer token.

    The token carries userId, role, avatar and gender as of right now. Later
    changes to the account are not reflected until the next login.
    """
    settings = request.app.state.settings
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        resp = JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error=ErrorDetail(code="bad_credentials", message="Invalid username or password.")
            ).model_dump(exclude_none=True),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user, settings.secret_key, settings.token_expire_seconds)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            user_id=user.id,
            avatar=user.avatar,
            gender=user.gender,
        ).model_dump(by_alias=True),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/user", response_model=CurrentUserResponse)
def current_user(request: Request, claims: Claims = Depends(get_current_claims)) -> CurrentUserResponse:
    """Return the caller's id and role as currently stored.

    Unlike the token claims, this reads the live record, so a client can
    notice a role change before its token expires.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(claims.user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return CurrentUserResponse(user_id=user.id, role=user.role)
