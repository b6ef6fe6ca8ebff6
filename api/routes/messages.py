"""
api/routes/messages.py -- Message, like and reply routes.

Routes:
  GET    /messages                                  -- all messages, authors + replies populated (public)
  POST   /messages                                  -- create message, JSON or multipart with images (auth)
  PUT    /messages/{message_id}                     -- partial edit (auth, owner only)
  DELETE /messages/{message_id}                     -- delete (auth, owner or admin)
  POST   /messages/{message_id}/like                -- +1 (auth, anyone)
  POST   /messages/{message_id}/unlike              -- -1, floored at 0 (auth, anyone)
  GET    /messages/{message_id}/replies             -- replies of one message (public)
  POST   /messages/{message_id}/replies             -- create reply (auth)
  GET    /messages/{message_id}/replies/{reply_id}  -- one reply (public)
  DELETE /messages/{message_id}/replies/{reply_id}  -- delete reply (auth, owner or admin)

Ownership checks go through auth.policy.require() after the entity is
loaded and before any write. Edit has no admin override; delete does.

Deleting a message leaves its replies in the replies table. They are
unreachable through these routes: every reply route 404s once the parent
message is gone.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError as PydanticValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile as StarletteUploadFile

from api.models import (
    AuthorInfo,
    MessageCreate,
    MessageListItem,
    MessagePatch,
    MessageResponse,
    ReplyCreate,
    ReplyResponse,
    StatusMessage,
)
from api.routes.uploads import read_uploads
from auth.dependencies import get_current_claims
from auth.models import Claims
from auth.policy import Action, Resource, require
from auth.store import UserStore
from board.models import Message, Reply
from board.store import BoardStore
from board.uploads import save_images
from core.errors import NotFoundError, PersistenceError, ValidationError

router = APIRouter()


def _message_or_404(board: BoardStore, message_id: int) -> Message:
    message = board.get_message(message_id)
    if message is None:
        raise NotFoundError("Message not found.")
    return message


def _reply_or_404(board: BoardStore, message_id: int, reply_id: int) -> Reply:
    _message_or_404(board, message_id)
    reply = board.get_reply(reply_id)
    if reply is None or reply.message_id != message_id:
        raise NotFoundError("Reply not found.")
    return reply


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@router.get("/messages", response_model=list[MessageListItem])
def list_messages(request: Request) -> list[MessageListItem]:
    """Return every message with its author and replies (each with its author).

    Four queries total regardless of message count: messages, their reply
    ids, replies by id, users by id.
    """
    board: BoardStore = request.app.state.board
    user_store: UserStore = request.app.state.user_store

    messages = board.list_messages()
    replies = board.get_replies(rid for m in messages for rid in m.reply_ids)
    author_ids = {m.author_id for m in messages} | {r.author_id for r in replies.values()}
    users = user_store.get_many(author_ids)

    items = []
    for m in messages:
        items.append(
            MessageListItem(
                id=m.id,
                user_id=m.author_id,
                user=AuthorInfo.from_user(users.get(m.author_id)),
                name=m.name,
                message=m.text,
                text_color=m.text_color,
                images=m.images,
                likes=m.likes,
                replies=[
                    ReplyResponse.from_reply(replies[rid], users.get(replies[rid].author_id))
                    for rid in m.reply_ids
                    if rid in replies
                ],
                created_at=m.created_at,
            )
        )
    return items


def _parse_message(data) -> MessageCreate:
    try:
        return MessageCreate.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Request validation failed.", detail=str(exc.errors())) from exc


async def _message_from_form(request: Request) -> MessageCreate:
    """Read a multipart message form, storing any "images" files first.

    "images" may mix uploaded files with references returned earlier by
    /api/public/upload. The message keeps them in the order sent, with each
    file replaced by its stored name.
    """
    settings = request.app.state.settings
    form = await request.form()
    entries = form.getlist("images")
    fields = {key: value for key, value in form.multi_items() if key != "images"}
    # Placeholder refs so the count limit and text fields are checked before anything hits disk
    body = _parse_message({**fields, "images": [e if isinstance(e, str) else "" for e in entries]})

    uploads = [e for e in entries if isinstance(e, StarletteUploadFile)]
    if not uploads:
        return body
    incoming = await read_uploads(uploads, settings.max_upload_bytes, settings.max_upload_files)
    stored = await run_in_threadpool(
        save_images,
        incoming,
        settings.upload_dir,
        settings.max_upload_bytes,
        settings.max_upload_files,
    )
    stored_names = iter(s.filename for s in stored)
    images = [next(stored_names) if isinstance(e, StarletteUploadFile) else e for e in entries]
    return body.model_copy(update={"images": images})


async def _message_from_json(request: Request) -> MessageCreate:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError("Request body must be JSON or multipart form data.") from exc
    return _parse_message(payload)


@router.post(
    "/messages",
    response_model=MessageResponse,
    status_code=201,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {"schema": MessageCreate.model_json_schema(by_alias=True)},
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "required": ["name", "message"],
                        "properties": {
                            "name": {"type": "string"},
                            "message": {"type": "string"},
                            "textColor": {"type": "string"},
                            "images": {"type": "array", "items": {"type": "string", "format": "binary"}},
                        },
                    }
                },
            },
        }
    },
)
async def create_message(
    request: Request,
    claims: Claims = Depends(get_current_claims),
) -> MessageResponse:
    """Post a message owned by the caller. likes starts at 0.

    Accepts a JSON body (images already uploaded) or a multipart form whose
    "images" files are stored along with the message.
    """
    if request.headers.get("content-type", "").startswith("multipart/form-data"):
        body = await _message_from_form(request)
    else:
        body = await _message_from_json(request)

    board: BoardStore = request.app.state.board
    message_id = await run_in_threadpool(
        board.create_message,
        Message(
            author_id=claims.user_id,
            name=body.name,
            text=body.message,
            text_color=body.text_color,
            images=body.images,
        ),
    )
    created = await run_in_threadpool(board.get_message, message_id)
    if created is None:
        raise PersistenceError("Message not found after write.")
    return MessageResponse.from_message(created)


@router.put("/messages/{message_id}", response_model=MessageResponse)
def edit_message(
    request: Request,
    message_id: int,
    body: MessagePatch,
    claims: Claims = Depends(get_current_claims),
) -> MessageResponse:
    """Apply the fields present in the body. Owner only -- admins cannot edit."""
    board: BoardStore = request.app.state.board
    message = _message_or_404(board, message_id)
    require(claims, message.author_id, Resource.message, Action.edit)

    patch = body.model_dump(exclude_none=True)
    updates: dict = {}
    if "name" in patch:
        updates["name"] = patch["name"]
    if "message" in patch:
        updates["text"] = patch["message"]
    if "text_color" in patch:
        updates["text_color"] = patch["text_color"]

    if not board.update_message(message_id, **updates):
        raise NotFoundError("Message not found.")
    return MessageResponse.from_message(_message_or_404(board, message_id))


@router.delete("/messages/{message_id}", response_model=StatusMessage)
def delete_message(
    request: Request,
    message_id: int,
    claims: Claims = Depends(get_current_claims),
) -> StatusMessage:
    """Delete a message. Owner or admin. Replies are not deleted."""
    board: BoardStore = request.app.state.board
    message = _message_or_404(board, message_id)
    require(claims, message.author_id, Resource.message, Action.delete)
    if not board.delete_message(message_id):
        raise NotFoundError("Message not found.")
    return StatusMessage(message="Message deleted successfully")


@router.post("/messages/{message_id}/like", response_model=MessageResponse)
def like_message(
    request: Request,
    message_id: int,
    _claims: Claims = Depends(get_current_claims),
) -> MessageResponse:
    board: BoardStore = request.app.state.board
    if not board.like(message_id):
        raise NotFoundError("Message not found.")
    return MessageResponse.from_message(_message_or_404(board, message_id))


@router.post("/messages/{message_id}/unlike", response_model=MessageResponse)
def unlike_message(
    request: Request,
    message_id: int,
    _claims: Claims = Depends(get_current_claims),
) -> MessageResponse:
    """Remove one like. A message at zero likes stays at zero."""
    board: BoardStore = request.app.state.board
    if not board.unlike(message_id):
        raise NotFoundError("Message not found.")
    return MessageResponse.from_message(_message_or_404(board, message_id))


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------


@router.get("/messages/{message_id}/replies", response_model=list[ReplyResponse])
def list_replies(request: Request, message_id: int) -> list[ReplyResponse]:
    board: BoardStore = request.app.state.board
    user_store: UserStore = request.app.state.user_store
    _message_or_404(board, message_id)
    replies = board.list_replies(message_id)
    users = user_store.get_many(r.author_id for r in replies)
    return [ReplyResponse.from_reply(r, users.get(r.author_id)) for r in replies]


@router.post("/messages/{message_id}/replies", response_model=ReplyResponse, status_code=201)
def create_reply(
    request: Request,
    message_id: int,
    body: ReplyCreate,
    claims: Claims = Depends(get_current_claims),
) -> ReplyResponse:
    """Reply to a message. The reply joins the parent's reply list in creation order."""
    board: BoardStore = request.app.state.board
    _message_or_404(board, message_id)
    reply_id = board.create_reply(Reply(message_id=message_id, author_id=claims.user_id, text=body.reply))
    if reply_id is None:
        # Parent deleted between the lookup and the transaction
        raise NotFoundError("Message not found.")
    created = board.get_reply(reply_id)
    if created is None:
        raise PersistenceError("Reply not found after write.")
    return ReplyResponse.from_reply(created)


@router.get("/messages/{message_id}/replies/{reply_id}", response_model=ReplyResponse)
def get_reply(request: Request, message_id: int, reply_id: int) -> ReplyResponse:
    board: BoardStore = request.app.state.board
    user_store: UserStore = request.app.state.user_store
    reply = _reply_or_404(board, message_id, reply_id)
    return ReplyResponse.from_reply(reply, user_store.get_by_id(reply.author_id))


@router.delete("/messages/{message_id}/replies/{reply_id}", response_model=StatusMessage)
def delete_reply(
    request: Request,
    message_id: int,
    reply_id: int,
    claims: Claims = Depends(get_current_claims),
) -> StatusMessage:
    """Delete a reply. Owner or admin."""
    board: BoardStore = request.app.state.board
    reply = _reply_or_404(board, message_id, reply_id)
    require(claims, reply.author_id, Resource.reply, Action.delete)
    if not board.delete_reply(message_id, reply_id):
        raise NotFoundError("Reply not found.")
    return StatusMessage(message="Reply deleted.")
