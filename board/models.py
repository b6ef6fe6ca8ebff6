"""
board/models.py -- Domain dataclasses for the message board.

These are pure data containers with zero logic. Persistence and the
reply-list bookkeeping live in board/store.py; ownership checks live in
auth/policy.py.

Each entity records its owner as a user id at creation time:
  Message.author_id, Reply.author_id, Appeal.reporter_id.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Message:
    """A top-level post.

    images holds file references exactly as returned by the upload endpoint,
    in the order the client supplied them.

    reply_ids lists this message's replies in creation order. It is not a
    stored column: the store reads it from the replies table whenever the
    message is loaded.

    id is None before the record is written to the database.
    """

    author_id: int
    name: str
    text: str
    text_color: str = "#000"
    images: list[str] = field(default_factory=list)
    likes: int = 0
    reply_ids: list[int] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Reply:
    message_id: int
    author_id: int
    text: str
    id: Optional[int] = None
    created_at: str = ""


@dataclass
class Appeal:
    """A report filed by a user for administrators to review.

    report names the reported target (a username, message, or free text);
    the board does not interpret it.
    """

    reporter_id: int
    appeal_type: str
    report: str
    content: str
    id: Optional[int] = None
    created_at: str = ""
