"""
api/routes/appeals.py -- Appeal (report) routes.

Routes:
  POST   /appeals                   -- file an appeal (auth)
  GET    /appeals                   -- every appeal with reporter info (auth)
  GET    /appeals/user/{user_id}    -- one user's appeals (auth, self or admin)
  DELETE /appeals/{appeal_id}       -- delete (auth, NO ownership or role check)

DELETE deliberately performs no ownership check: any logged-in user may
delete any appeal, and deleting an id that does not exist still answers
200. Tighten this only together with the client that relies on it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from api.models import AppealCreate, AppealResponse, StatusMessage
from auth.dependencies import get_current_claims
from auth.models import Claims
from auth.policy import Action, Resource, require
from auth.store import UserStore
from board.models import Appeal
from board.store import BoardStore
from core.errors import PersistenceError

logger = logging.getLogger("msgboard.api.appeals")

# Every appeal route requires authentication.
router = APIRouter(dependencies=[Depends(get_current_claims)])


@router.post("/appeals", response_model=AppealResponse, status_code=201)
def create_appeal(
    request: Request,
    body: AppealCreate,
    claims: Claims = Depends(get_current_claims),
) -> AppealResponse:
    """File an appeal. The caller is recorded as the reporter."""
    board: BoardStore = request.app.state.board
    appeal_id = board.create_appeal(
        Appeal(
            reporter_id=claims.user_id,
            appeal_type=body.appeal_type,
            report=body.report,
            content=body.content,
        )
    )
    created = board.get_appeal(appeal_id)
    if created is None:
        raise PersistenceError("Appeal not found after write.")
    return AppealResponse.from_appeal(created)


@router.get("/appeals", response_model=list[AppealResponse])
def list_appeals(request: Request) -> list[AppealResponse]:
    """Return all appeals with reporter display info. No pagination."""
    board: BoardStore = request.app.state.board
    user_store: UserStore = request.app.state.user_store
    appeals = board.list_appeals()
    users = user_store.get_many(a.reporter_id for a in appeals)
    return [AppealResponse.from_appeal(a, users.get(a.reporter_id)) for a in appeals]


@router.get("/appeals/user/{user_id}", response_model=list[AppealResponse])
def list_user_appeals(
    request: Request,
    user_id: int,
    claims: Claims = Depends(get_current_claims),
) -> list[AppealResponse]:
    """Return the appeals filed by user_id. Only that user or an admin may look."""
    require(claims, user_id, Resource.appeal, Action.view)
    board: BoardStore = request.app.state.board
    user_store: UserStore = request.app.state.user_store
    reporter = user_store.get_by_id(user_id)
    return [AppealResponse.from_appeal(a, reporter) for a in board.list_appeals(reporter_id=user_id)]


@router.delete("/appeals/{appeal_id}", response_model=StatusMessage)
def delete_appeal(
    request: Request,
    appeal_id: int,
    claims: Claims = Depends(get_current_claims),
) -> StatusMessage:
    board: BoardStore = request.app.state.board
    deleted = board.delete_appeal(appeal_id)
    logger.info("Appeal %d delete by user %d (existed=%s)", appeal_id, claims.user_id, deleted)
    return StatusMessage(message="Appeal deleted.")
