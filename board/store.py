"""
board/store.py -- SQLAlchemy-backed persistence layer for messages, replies
and appeals.

Uses SQLAlchemy Core (not ORM) so the dataclasses in board/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. BoardStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Consistency:
  - like/unlike are single UPDATE statements. Concurrent toggles never lose
    a count, and unlike never drives the counter below zero.
  - A message's reply list is not stored on the message. It is read from
    replies.message_id (ordered by reply id) whenever a message is loaded,
    so creating or deleting a reply is a single-row write and two replies
    created at the same time both appear in the list.
  - delete_message() does NOT delete the message's replies. Their rows stay
    behind with a dangling message_id.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = BoardStore("sqlite:///board.db")
    mid = store.create_message(Message(author_id=1, name="alice", text="hi"))
    rid = store.create_reply(Reply(message_id=mid, author_id=2, text="hello"))
    store.delete_reply(mid, rid)
    store.close()
"""

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, case, create_engine, event, select
from sqlalchemy.engine import Connection, Engine

from board.models import Appeal, Message, Reply

logger = logging.getLogger("msgboard.board")

# Columns a message edit may touch. Anything else in an update request is a
# programming error, not user input.
_EDITABLE_MESSAGE_FIELDS = {"name", "text", "text_color"}

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_messages = Table(
    "messages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("author_id", Integer, nullable=False),
    Column("name", String(255), nullable=False),
    Column("text", Text, nullable=False),
    Column("text_color", String(32), nullable=False, server_default="#000"),
    Column("images", Text, nullable=False, server_default="[]"),  # JSON array of file refs
    Column("likes", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    # Never reuse ids; orphaned replies would attach to the new message.
    sqlite_autoincrement=True,
)

_replies = Table(
    "replies",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("message_id", Integer, nullable=False, index=True),
    Column("author_id", Integer, nullable=False),
    Column("text", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_appeals = Table(
    "appeals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reporter_id", Integer, nullable=False, index=True),
    Column("appeal_type", String(100), nullable=False),
    Column("report", Text, nullable=False),
    Column("content", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _message_exists(conn: Connection, message_id: int) -> bool:
    row = conn.execute(select(_messages.c.id).where(_messages.c.id == message_id)).fetchone()
    return row is not None


def _reply_ids_by_message(conn: Connection, message_ids: Iterable[int]) -> dict[int, list[int]]:
    """Return {message_id: [reply ids, oldest first]} in one query."""
    ids = set(message_ids)
    if not ids:
        return {}
    rows = conn.execute(
        select(_replies.c.id, _replies.c.message_id)
        .where(_replies.c.message_id.in_(ids))
        .order_by(_replies.c.id)
    ).fetchall()
    grouped: dict[int, list[int]] = {}
    for row in rows:
        grouped.setdefault(row.message_id, []).append(row.id)
    return grouped


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class BoardStore:
    """Repository for Message, Reply and Appeal entities."""

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and "mode=memory" not in db_url and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def create_message(self, message: Message) -> int:
        """Insert a message and return its id. likes always starts at 0."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _messages.insert().values(
                    author_id=message.author_id,
                    name=message.name,
                    text=message.text,
                    text_color=message.text_color,
                    images=json.dumps(list(message.images)),
                    likes=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_message(self, message_id: int) -> Optional[Message]:
        with self.engine.connect() as conn:
            row = conn.execute(_messages.select().where(_messages.c.id == message_id)).fetchone()
            if row is None:
                return None
            reply_ids = _reply_ids_by_message(conn, [message_id])
        return _row_to_message(row, reply_ids.get(message_id, []))

    def list_messages(self) -> list[Message]:
        """Return all messages, oldest first. Two queries regardless of count."""
        with self.engine.connect() as conn:
            rows = conn.execute(_messages.select().order_by(_messages.c.id)).fetchall()
            reply_ids = _reply_ids_by_message(conn, (r.id for r in rows))
        return [_row_to_message(r, reply_ids.get(r.id, [])) for r in rows]

    def update_message(self, message_id: int, **fields) -> bool:
        """Apply a partial update. Only keys passed in are written.

        Accepted fields: name, text, text_color.
        Returns True if the message exists, False otherwise.
        """
        unknown = set(fields) - _EDITABLE_MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Unknown message fields: {unknown!r}")
        if not fields:
            return self.get_message(message_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_messages.update().where(_messages.c.id == message_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_message(self, message_id: int) -> bool:
        """Delete a message row. Its replies are left in place."""
        with self.engine.connect() as conn:
            result = conn.execute(_messages.delete().where(_messages.c.id == message_id))
            conn.commit()
        return result.rowcount > 0

    def like(self, message_id: int) -> bool:
        """Increment likes. Returns False if the message does not exist."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _messages.update().where(_messages.c.id == message_id).values(likes=_messages.c.likes + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def unlike(self, message_id: int) -> bool:
        """Decrement likes, flooring at zero. Returns False if the message does not exist.

        The floor is part of the UPDATE itself, so the WHERE clause matches
        the row even at zero (rowcount still reports existence).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _messages.update()
                .where(_messages.c.id == message_id)
                .values(likes=case((_messages.c.likes > 0, _messages.c.likes - 1), else_=0))
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def create_reply(self, reply: Reply) -> Optional[int]:
        """Insert a reply under an existing message.

        Returns the new reply id, or None if the parent message does not
        exist (nothing is written). The parent's reply list picks the new id
        up from the replies table; there is no second row to update.
        """
        with self.engine.begin() as conn:
            if not _message_exists(conn, reply.message_id):
                return None
            result = conn.execute(
                _replies.insert().values(
                    message_id=reply.message_id,
                    author_id=reply.author_id,
                    text=reply.text,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_reply(self, reply_id: int) -> Optional[Reply]:
        with self.engine.connect() as conn:
            row = conn.execute(_replies.select().where(_replies.c.id == reply_id)).fetchone()
        return _row_to_reply(row) if row is not None else None

    def get_replies(self, reply_ids: Iterable[int]) -> dict[int, Reply]:
        """Return {id: Reply} for every id that exists, in one query."""
        ids = set(reply_ids)
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_replies.select().where(_replies.c.id.in_(ids))).fetchall()
        return {row.id: _row_to_reply(row) for row in rows}

    def list_replies(self, message_id: int) -> list[Reply]:
        """Return the replies recorded against message_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _replies.select().where(_replies.c.message_id == message_id).order_by(_replies.c.id)
            ).fetchall()
        return [_row_to_reply(r) for r in rows]

    def delete_reply(self, message_id: int, reply_id: int) -> bool:
        """Delete a reply that belongs to message_id.

        Returns False (and deletes nothing) if the reply does not exist or
        belongs to another message.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _replies.delete().where((_replies.c.id == reply_id) & (_replies.c.message_id == message_id))
            )
            conn.commit()
        if result.rowcount == 0:
            return False
        logger.info("Reply %d removed from message %d", reply_id, message_id)
        return True

    # ------------------------------------------------------------------
    # Appeals
    # ------------------------------------------------------------------

    def create_appeal(self, appeal: Appeal) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _appeals.insert().values(
                    reporter_id=appeal.reporter_id,
                    appeal_type=appeal.appeal_type,
                    report=appeal.report,
                    content=appeal.content,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_appeal(self, appeal_id: int) -> Optional[Appeal]:
        with self.engine.connect() as conn:
            row = conn.execute(_appeals.select().where(_appeals.c.id == appeal_id)).fetchone()
        return _row_to_appeal(row) if row is not None else None

    def list_appeals(self, reporter_id: Optional[int] = None) -> list[Appeal]:
        """Return all appeals, or only those filed by reporter_id. Oldest first."""
        stmt = _appeals.select().order_by(_appeals.c.id)
        if reporter_id is not None:
            stmt = stmt.where(_appeals.c.reporter_id == reporter_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_appeal(r) for r in rows]

    def delete_appeal(self, appeal_id: int) -> bool:
        """Delete an appeal. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_appeals.delete().where(_appeals.c.id == appeal_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_message(row, reply_ids: list[int]) -> Message:
    return Message(
        id=row.id,
        author_id=row.author_id,
        name=row.name,
        text=row.text,
        text_color=row.text_color,
        images=json.loads(row.images or "[]"),
        likes=row.likes,
        reply_ids=reply_ids,
        created_at=row.created_at,
    )


def _row_to_reply(row) -> Reply:
    return Reply(
        id=row.id,
        message_id=row.message_id,
        author_id=row.author_id,
        text=row.text,
        created_at=row.created_at,
    )


def _row_to_appeal(row) -> Appeal:
    return Appeal(
        id=row.id,
        reporter_id=row.reporter_id,
        appeal_type=row.appeal_type,
        report=row.report,
        content=row.content,
        created_at=row.created_at,
    )
