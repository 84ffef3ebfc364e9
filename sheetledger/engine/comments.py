"""
Comment and notification engine.

Comments are rows of the Comments collection, attached to a subject
record in some origin collection. Staff reply to them; the author then
confirms having read the reply. Either side can hide a comment.

State machine per comment:
    Submitted -(staff reply)-> Answered -(author confirms)-> Confirmed
    Every new reply clears the confirmation again.
    Hidden by author / hidden by admin are independent flags.

Invariants:
    - Comment storage goes through TableStore only
    - The subject's "latest comment" column is synced best-effort; a
      failed sync is logged and never fails the submission
    - bulk_delete is the only operation that physically removes rows

How to change safely:
    - Keep reply() clearing reply_confirmed, notification queries rely on it
    - New flags go at the end of the Comments header
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from ..errors import ConfigurationError, NotFoundError, SheetLedgerError, ValidationError
from ..identity import Actor, resolve_actor
from ..schema.collections import COMMENTS
from ..schema.types import ColumnMap, ColumnRole, as_bool
from ..storage.base import Cell, cell_text
from .locator import normalize_id
from .records import BulkResult, Record, json_value, to_datetime
from .store import TableStore

logger = logging.getLogger(__name__)

UNKNOWN_SUBJECT = "Unknown subject"


class CommentState(Enum):
    """Reply state of a comment."""

    SUBMITTED = "submitted"
    ANSWERED = "answered"
    CONFIRMED = "confirmed"


@dataclass
class Comment:
    """A comment row.

    Attributes:
        comment_id: Id in the Comments table
        subject_id: Id of the record the comment is about
        subject: Label of that record when the comment was made
        group: Grouping of that record
        created_at: When the comment was submitted
        text: Comment text
        author: Actor id of the author
        origin: Collection of the subject record
        read: Seen by staff
        reply: Staff reply ("" when unanswered)
        replied_at: When the latest reply was written
        hidden_by_author: Hidden by its author
        hidden_by_admin: Hidden by an administrator
        reply_confirmed: Author confirmed the latest reply
    """

    comment_id: Any
    subject_id: Any
    subject: str
    group: str
    created_at: Optional[datetime]
    text: str
    author: str
    origin: str
    read: bool = False
    reply: str = ""
    replied_at: Optional[datetime] = None
    hidden_by_author: bool = False
    hidden_by_admin: bool = False
    reply_confirmed: bool = False

    @property
    def state(self) -> CommentState:
        if not self.reply:
            return CommentState.SUBMITTED
        if self.reply_confirmed:
            return CommentState.CONFIRMED
        return CommentState.ANSWERED

    @classmethod
    def from_record(cls, record: Record, column_map: ColumnMap) -> Comment:
        def value(key: str) -> Cell:
            index = column_map.field_index(key)
            if index < 0:
                return ""
            return record.get(column_map.schema.columns[index], "")

        return cls(
            comment_id=record.record_id,
            subject_id=value("subject_id"),
            subject=cell_text(value("subject")),
            group=cell_text(value("group")),
            created_at=to_datetime(record.role(ColumnRole.CREATED_AT)),
            text=cell_text(value("comment")),
            author=cell_text(value("author")),
            origin=cell_text(value("origin")),
            read=as_bool(value("read")),
            reply=cell_text(value("reply")),
            replied_at=to_datetime(value("replied_at")),
            hidden_by_author=as_bool(value("hidden_by_author")),
            hidden_by_admin=as_bool(value("hidden_by_admin")),
            reply_confirmed=as_bool(value("reply_confirmed")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.comment_id,
            "subject_id": self.subject_id,
            "subject": self.subject,
            "group": self.group,
            "created_at": json_value(self.created_at),
            "comment": self.text,
            "author": self.author,
            "origin": self.origin,
            "read": self.read,
            "reply": self.reply,
            "replied_at": json_value(self.replied_at),
            "hidden_by_author": self.hidden_by_author,
            "hidden_by_admin": self.hidden_by_admin,
            "reply_confirmed": self.reply_confirmed,
            "state": self.state.value,
        }


def _author_id(user: Union[Actor, str]) -> str:
    return user.actor_id if isinstance(user, Actor) else cell_text(user)


class CommentEngine:
    """Comment lifecycle on top of TableStore.

    Example:
        >>> engine = CommentEngine(store)
        >>> comment = await engine.submit("Articles", 1, "Box arrived damaged", actor=alice)
        >>> await engine.reply(comment.comment_id, "Replacement on its way", actor=staff)
        >>> [c.comment_id for c in await engine.list_pending_for_user(alice)]
        [1]
    """

    def __init__(self, store: TableStore, collection: str = COMMENTS) -> None:
        self.store = store
        self.collection = store.registry.require(collection).name

    async def _column_map(self) -> ColumnMap:
        return await self.store.column_map(self.collection)

    async def _load(self, comment_id: Any) -> Comment:
        record = await self.store.read(self.collection, comment_id)
        if record is None:
            raise NotFoundError(
                f"Comment {comment_id} not found",
                resource_type=self.collection,
                resource_id=str(comment_id),
            )
        return Comment.from_record(record, await self._column_map())

    async def _all(self) -> List[Comment]:
        column_map = await self._column_map()
        return [
            Comment.from_record(record, column_map)
            for record in await self.store.read_all(self.collection)
        ]

    # Lifecycle

    async def submit(
        self,
        origin: str,
        subject_id: Any,
        text: str,
        actor: Optional[Actor] = None,
    ) -> Comment:
        """Attach a new comment to a record of the origin collection.

        Raises:
            ConfigurationError: If origin is not a collection that takes comments
            ValidationError: If text is blank
        """
        origin_def = self.store.registry.require(origin)
        if origin_def.append_only or origin_def.name == self.collection:
            raise ConfigurationError(
                f"Collection '{origin_def.name}' does not take comments",
                table=origin_def.table,
            )
        if not cell_text(text):
            raise ValidationError("Comment text cannot be blank", field_name="comment")

        actor = resolve_actor(actor)
        subject = None
        try:
            subject = await self.store.read(origin_def.name, subject_id)
        except SheetLedgerError as e:
            logger.warning(
                f"Could not read subject {subject_id} in {origin_def.name}: {e.message}"
            )
        if subject is None:
            logger.warning(
                f"Comment subject {subject_id} not found in {origin_def.name}; storing comment anyway"
            )

        receipt = await self.store.create(
            self.collection,
            {
                "subject_id": normalize_id(subject_id),
                "subject": subject.label if subject else UNKNOWN_SUBJECT,
                "group": subject.group if subject else "",
                "comment": cell_text(text),
                "author": actor.actor_id,
                "origin": origin_def.name,
                "read": False,
                "reply": "",
                "hidden_by_author": False,
                "hidden_by_admin": False,
                "reply_confirmed": False,
            },
            actor=actor,
        )

        if subject is not None:
            await self._sync_latest_comment(origin_def.name, subject_id, cell_text(text), actor)

        return await self._load(receipt.record_id)

    async def _sync_latest_comment(
        self, origin: str, subject_id: Any, text: str, actor: Actor
    ) -> None:
        """Copy the comment text into the subject's latest-comment column."""
        try:
            column_map = await self.store.column_map(origin)
            if not column_map.has(ColumnRole.LATEST_COMMENT):
                logger.debug(
                    "Origin has no latest-comment column",
                    extra={"collection": origin},
                )
                return
            await self.store.patch(
                origin, subject_id, roles={ColumnRole.LATEST_COMMENT: text}, actor=actor
            )
        except SheetLedgerError as e:
            logger.warning(
                f"Latest comment of {origin} record {subject_id} not updated: {e.message}"
            )

    async def reply(
        self,
        comment_id: Any,
        text: str,
        actor: Optional[Actor] = None,
    ) -> Comment:
        """Answer a comment; the author has to confirm the new reply.

        Raises:
            NotFoundError: If the comment does not exist
            ValidationError: If text is blank
        """
        if not cell_text(text):
            raise ValidationError("Reply text cannot be blank", field_name="reply")
        await self.store.patch(
            self.collection,
            comment_id,
            fields={
                "reply": cell_text(text),
                "replied_at": self.store.clock(),
                "reply_confirmed": False,
            },
            actor=actor,
            action=f"Replied to comment {comment_id}",
        )
        return await self._load(comment_id)

    async def confirm(self, comment_id: Any, actor: Optional[Actor] = None) -> Comment:
        """Author confirms the reply. Idempotent; a comment without a reply is left as is.

        Raises:
            NotFoundError: If the comment does not exist
        """
        comment = await self._load(comment_id)
        if not comment.reply:
            logger.info(f"Comment {comment_id} has no reply to confirm")
            return comment
        await self.store.patch(
            self.collection,
            comment_id,
            fields={"reply_confirmed": True},
            actor=actor,
            action=f"Confirmed reply to comment {comment_id}",
        )
        return await self._load(comment_id)

    async def mark_read(
        self,
        comment_ids: Iterable[Any],
        actor: Optional[Actor] = None,
    ) -> BulkResult:
        """Mark comments as read by staff.

        Unknown ids are reported in not_found; nothing matching is not an error.
        """
        result = await self.store.patch_many(
            self.collection,
            comment_ids,
            fields={"read": True},
            actor=actor,
            action="Marked comment as read",
        )
        if result.count == 0:
            logger.info("No comments matched for mark_read")
        return result

    async def hide_by_author(self, comment_id: Any, actor: Optional[Actor] = None) -> Comment:
        await self.store.patch(
            self.collection,
            comment_id,
            fields={"hidden_by_author": True},
            actor=actor,
            action=f"Comment {comment_id} hidden by author",
        )
        return await self._load(comment_id)

    async def hide_by_admin(self, comment_id: Any, actor: Optional[Actor] = None) -> Comment:
        await self.store.patch(
            self.collection,
            comment_id,
            fields={"hidden_by_admin": True},
            actor=actor,
            action=f"Comment {comment_id} hidden by admin",
        )
        return await self._load(comment_id)

    async def bulk_delete(
        self,
        comment_ids: Iterable[Any],
        actor: Optional[Actor] = None,
    ) -> BulkResult:
        """Physically remove comment rows."""
        result = await self.store.delete_rows(self.collection, comment_ids, actor=actor)
        logger.info(
            "Comments deleted",
            extra={"deleted": result.count, "not_found": len(result.not_found)},
        )
        return result

    # Queries

    async def get(self, comment_id: Any) -> Optional[Comment]:
        record = await self.store.read(self.collection, comment_id)
        if record is None:
            return None
        return Comment.from_record(record, await self._column_map())

    async def list_pending_for_user(
        self,
        user: Union[Actor, str],
        origin: Optional[str] = None,
    ) -> List[Comment]:
        """Answered comments of a user that still await confirmation."""
        return await self._for_user(user, origin, confirmed=False)

    async def list_confirmed_for_user(
        self,
        user: Union[Actor, str],
        origin: Optional[str] = None,
    ) -> List[Comment]:
        """Answered comments of a user whose reply was confirmed."""
        return await self._for_user(user, origin, confirmed=True)

    async def _for_user(
        self,
        user: Union[Actor, str],
        origin: Optional[str],
        confirmed: bool,
    ) -> List[Comment]:
        author = _author_id(user)
        origin_name = self.store.registry.require(origin).name if origin else None
        return [
            c
            for c in await self._all()
            if c.author == author
            and c.reply
            and not c.hidden_by_author
            and c.reply_confirmed == confirmed
            and (origin_name is None or c.origin == origin_name)
        ]

    async def list_for_origin(
        self,
        origin: str,
        subject_id: Any = None,
        include_hidden: bool = False,
    ) -> List[Comment]:
        """Comments attached to records of one collection."""
        origin_name = self.store.registry.require(origin).name
        wanted = normalize_id(subject_id) if subject_id is not None else None
        return [
            c
            for c in await self._all()
            if c.origin == origin_name
            and (wanted is None or normalize_id(c.subject_id) == wanted)
            and (include_hidden or not (c.hidden_by_admin or c.hidden_by_author))
        ]

    async def list_unread(self) -> List[Comment]:
        """Staff inbox: unread comments not hidden by an admin."""
        return [c for c in await self._all() if not c.read and not c.hidden_by_admin]
