"""
Structured-result facade over the engine.

InventoryService is what a controller layer calls. Every method returns a
plain dict, never raises: successes carry "success": True plus a payload,
failures carry the error message, its code and whether a retry may help.

Response shape on failure:
    {"success": False, "error": str, "error_code": str,
     "retryable": bool, "details": dict}

Invariants:
    - Engine errors map to their own code; anything else is INTERNAL
    - A missing record on read is a successful "found": False result
    - Every payload is JSON serialisable

How to change safely:
    - Add new methods through _call so the response shape stays uniform
    - Never change an existing error_code, callers branch on them
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from .engine.audit import AuditLedger
from .engine.comments import CommentEngine
from .engine.store import TableStore
from .errors import SheetLedgerError
from .identity import Actor, IdentityProvider

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


def failure(error: SheetLedgerError) -> Result:
    """Convert an engine error to a failure result."""
    return {
        "success": False,
        "error": error.message,
        "error_code": error.code,
        "retryable": error.retryable,
        "details": error.details,
    }


class InventoryService:
    """Uniform success/failure results for every engine operation.

    Attributes:
        store: Tabular store engine
        comments: Comment engine on the same store
        identity: Supplies the acting user when a call passes none

    Example:
        >>> service = InventoryService(store)
        >>> await service.create("Articles", {"product": "Widget", "received": 10})
        {'success': True, 'message': 'Created Articles record 1', 'id': 1, ...}
        >>> (await service.withdraw("Articles", 1, 100))["error_code"]
        'INSUFFICIENT_STOCK'
    """

    def __init__(
        self,
        store: TableStore,
        comments: Optional[CommentEngine] = None,
        identity: Optional[IdentityProvider] = None,
    ) -> None:
        self.store = store
        self.comments = comments or CommentEngine(store)
        self.identity = identity

    @property
    def ledger(self) -> AuditLedger:
        return self.store.ledger

    def _actor(self, actor: Optional[Actor]) -> Optional[Actor]:
        if actor is not None:
            return actor
        return self.identity.current_actor() if self.identity else None

    async def _call(self, operation: str, fn: Callable[[], Awaitable[Result]]) -> Result:
        try:
            return await fn()
        except SheetLedgerError as e:
            log = logger.warning if e.retryable else logger.info
            log(f"{operation} failed: {e.message}", extra={"error_code": e.code})
            return failure(e)
        except Exception as e:
            logger.error(f"{operation} failed: {e}", exc_info=True)
            return {
                "success": False,
                "error": str(e),
                "error_code": "INTERNAL",
                "retryable": False,
                "details": {},
            }

    # Records

    async def create(
        self, collection: str, fields: Mapping[str, Any], actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            receipt = await self.store.create(collection, fields, actor=self._actor(actor))
            return {
                "success": True,
                "message": f"Created {receipt.collection} record {receipt.record_id}",
                "id": receipt.record_id,
                "image_url": receipt.image_url,
                "receipt": receipt.to_dict(),
            }

        return await self._call("create", run)

    async def read(self, collection: str, record_id: Any) -> Result:
        async def run() -> Result:
            record = await self.store.read(collection, record_id)
            if record is None:
                return {"success": True, "found": False, "record": None}
            return {"success": True, "found": True, "record": record.to_dict()}

        return await self._call("read", run)

    async def list_active(self, collection: str) -> Result:
        async def run() -> Result:
            records = await self.store.read_all_active(collection)
            return {
                "success": True,
                "count": len(records),
                "records": [r.to_dict() for r in records],
            }

        return await self._call("list_active", run)

    async def list_all(self, collection: str) -> Result:
        async def run() -> Result:
            records = await self.store.read_all(collection)
            return {
                "success": True,
                "count": len(records),
                "records": [r.to_dict() for r in records],
            }

        return await self._call("list_all", run)

    async def update(
        self,
        collection: str,
        record_id: Any,
        fields: Mapping[str, Any],
        actor: Optional[Actor] = None,
    ) -> Result:
        async def run() -> Result:
            receipt = await self.store.update(
                collection, record_id, fields, actor=self._actor(actor)
            )
            return {
                "success": True,
                "message": f"Updated {receipt.collection} record {receipt.record_id}",
                "receipt": receipt.to_dict(),
            }

        return await self._call("update", run)

    async def soft_delete(
        self, collection: str, record_id: Any, actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            receipt = await self.store.soft_delete(collection, record_id, actor=self._actor(actor))
            message = (
                f"Deactivated {receipt.collection} record {receipt.record_id}"
                if receipt.changed
                else f"{receipt.collection} has no status column; nothing changed"
            )
            return {"success": True, "message": message, "receipt": receipt.to_dict()}

        return await self._call("soft_delete", run)

    async def withdraw(
        self,
        collection: str,
        record_id: Any,
        quantity: Any,
        actor: Optional[Actor] = None,
    ) -> Result:
        async def run() -> Result:
            receipt = await self.store.withdraw(
                collection, record_id, quantity, actor=self._actor(actor)
            )
            return {
                "success": True,
                "message": (
                    f"Withdrew from {receipt.collection} record {receipt.record_id}, "
                    f"{receipt.quantity_after} left"
                ),
                "available": receipt.quantity_after,
                "receipt": receipt.to_dict(),
            }

        return await self._call("withdraw", run)

    async def bulk_deactivate(
        self, collection: str, record_ids: Iterable[Any], actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            result = await self.store.bulk_deactivate(
                collection, list(record_ids), actor=self._actor(actor)
            )
            return {
                "success": True,
                "message": f"Deactivated {result.count} record(s)",
                **result.to_dict(),
            }

        return await self._call("bulk_deactivate", run)

    async def history(self, subject_id: Any = None, origin: Optional[str] = None) -> Result:
        async def run() -> Result:
            origin_name = self.store.registry.require(origin).name if origin else None
            entries = await self.ledger.entries(subject_id=subject_id, origin=origin_name)
            return {
                "success": True,
                "count": len(entries),
                "entries": [e.to_dict() for e in entries],
            }

        return await self._call("history", run)

    async def schema(self, collection: str) -> Result:
        async def run() -> Result:
            column_map = await self.store.refresh_schema(collection)
            return {
                "success": True,
                "collection": column_map.collection.name,
                "table": column_map.table,
                "columns": list(column_map.schema.columns),
                "duplicates": list(column_map.schema.duplicates),
                "roles": {
                    role.value: column_map.header(role)
                    for role in column_map.role_indices
                },
                "missing_fields": [
                    key
                    for key in column_map.collection.field_keys
                    if column_map.field_index(key) < 0
                ],
            }

        return await self._call("schema", run)

    # Comments

    async def submit_comment(
        self, origin: str, subject_id: Any, text: str, actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            comment = await self.comments.submit(
                origin, subject_id, text, actor=self._actor(actor)
            )
            return {
                "success": True,
                "message": f"Comment {comment.comment_id} submitted",
                "comment": comment.to_dict(),
            }

        return await self._call("submit_comment", run)

    async def reply_comment(
        self, comment_id: Any, text: str, actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            comment = await self.comments.reply(comment_id, text, actor=self._actor(actor))
            return {"success": True, "comment": comment.to_dict()}

        return await self._call("reply_comment", run)

    async def confirm_comment(self, comment_id: Any, actor: Optional[Actor] = None) -> Result:
        async def run() -> Result:
            comment = await self.comments.confirm(comment_id, actor=self._actor(actor))
            return {"success": True, "comment": comment.to_dict()}

        return await self._call("confirm_comment", run)

    async def mark_comments_read(
        self, comment_ids: Iterable[Any], actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            result = await self.comments.mark_read(list(comment_ids), actor=self._actor(actor))
            message = (
                f"Marked {result.count} comment(s) as read"
                if result.count
                else "No comments matched"
            )
            return {"success": True, "message": message, **result.to_dict()}

        return await self._call("mark_comments_read", run)

    async def hide_comment(
        self, comment_id: Any, by_admin: bool = False, actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            if by_admin:
                comment = await self.comments.hide_by_admin(comment_id, actor=self._actor(actor))
            else:
                comment = await self.comments.hide_by_author(comment_id, actor=self._actor(actor))
            return {"success": True, "comment": comment.to_dict()}

        return await self._call("hide_comment", run)

    async def pending_comments(self, user: Any, origin: Optional[str] = None) -> Result:
        async def run() -> Result:
            comments = await self.comments.list_pending_for_user(user, origin)
            return {
                "success": True,
                "count": len(comments),
                "comments": [c.to_dict() for c in comments],
            }

        return await self._call("pending_comments", run)

    async def confirmed_comments(self, user: Any, origin: Optional[str] = None) -> Result:
        async def run() -> Result:
            comments = await self.comments.list_confirmed_for_user(user, origin)
            return {
                "success": True,
                "count": len(comments),
                "comments": [c.to_dict() for c in comments],
            }

        return await self._call("confirmed_comments", run)

    async def delete_comments(
        self, comment_ids: Iterable[Any], actor: Optional[Actor] = None
    ) -> Result:
        async def run() -> Result:
            result = await self.comments.bulk_delete(list(comment_ids), actor=self._actor(actor))
            return {
                "success": True,
                "message": f"Deleted {result.count} comment(s)",
                **result.to_dict(),
            }

        return await self._call("delete_comments", run)

    async def unread_comments(self) -> Result:
        async def run() -> Result:
            comments = await self.comments.list_unread()
            return {
                "success": True,
                "count": len(comments),
                "comments": [c.to_dict() for c in comments],
            }

        return await self._call("unread_comments", run)

    async def comments_for(self, origin: str, subject_id: Any = None) -> Result:
        async def run() -> Result:
            comments = await self.comments.list_for_origin(origin, subject_id)
            return {
                "success": True,
                "count": len(comments),
                "comments": [c.to_dict() for c in comments],
            }

        return await self._call("comments_for", run)
