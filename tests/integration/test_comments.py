"""
Integration tests for the comment engine.

Tests cover:
- Submit / reply / confirm lifecycle
- Latest-comment sync on the subject record
- Pending and confirmed notification queries
- Read flags, hiding and physical deletion
- Invalid origins and texts
"""

import logging

import pytest

from sheetledger.engine.comments import UNKNOWN_SUBJECT, CommentState
from sheetledger.errors import ConfigurationError, NotFoundError, ValidationError
from sheetledger.schema.types import ColumnRole


@pytest.fixture
async def subject(store):
    """One Articles record to comment on."""
    receipt = await store.create("Articles", {"product": "Widget", "program": "Kids", "received": 10})
    return receipt.record_id


class TestLifecycle:
    """Submit, reply and confirm."""

    @pytest.mark.asyncio
    async def test_submit(self, comments, store, subject, alice, clock):
        comment = await comments.submit("Articles", subject, "Box arrived damaged", actor=alice)

        assert comment.comment_id == 1
        assert comment.subject == "Widget"
        assert comment.group == "Kids"
        assert comment.author == "alice@example.com"
        assert comment.origin == "Articles"
        assert comment.created_at == clock()
        assert comment.state == CommentState.SUBMITTED
        assert not comment.read

    @pytest.mark.asyncio
    async def test_submit_syncs_latest_comment(self, comments, store, subject, alice):
        await comments.submit("Articles", subject, "First", actor=alice)
        await comments.submit("Articles", subject, "Second", actor=alice)

        record = await store.read("Articles", subject)

        assert record.role(ColumnRole.LATEST_COMMENT) == "Second"
        assert record.available == 10

    @pytest.mark.asyncio
    async def test_reply_and_confirm(self, comments, subject, alice, staff, clock):
        comment = await comments.submit("Articles", subject, "Need 5 more", actor=alice)
        clock.advance(hours=2)

        answered = await comments.reply(comment.comment_id, "Ordered", actor=staff)

        assert answered.state == CommentState.ANSWERED
        assert answered.reply == "Ordered"
        assert answered.replied_at == clock()

        confirmed = await comments.confirm(comment.comment_id, actor=alice)
        assert confirmed.state == CommentState.CONFIRMED

        again = await comments.reply(comment.comment_id, "Delayed a week", actor=staff)
        assert again.state == CommentState.ANSWERED
        assert not again.reply_confirmed

    @pytest.mark.asyncio
    async def test_confirm_without_reply(self, comments, subject, alice, store):
        """Nothing is confirmed until there is a reply."""
        comment = await comments.submit("Articles", subject, "Any news?", actor=alice)
        entries_before = len(await store.ledger.entries(origin="Comments"))

        unchanged = await comments.confirm(comment.comment_id, actor=alice)

        assert unchanged.state == CommentState.SUBMITTED
        assert not unchanged.reply_confirmed
        assert len(await store.ledger.entries(origin="Comments")) == entries_before
        with pytest.raises(NotFoundError):
            await comments.confirm(42)

    @pytest.mark.asyncio
    async def test_reply_is_audited(self, comments, store, subject, alice, staff):
        comment = await comments.submit("Articles", subject, "Hello", actor=alice)

        await comments.reply(comment.comment_id, "Hi", actor=staff)

        entries = await store.ledger.entries(origin="Comments")
        assert entries[-1].action == f"Replied to comment {comment.comment_id}"
        assert entries[-1].actor == "Warehouse Staff"

    @pytest.mark.asyncio
    async def test_reply_unknown_comment(self, comments):
        with pytest.raises(NotFoundError):
            await comments.reply(12, "Anyone?")

    @pytest.mark.asyncio
    async def test_blank_texts(self, comments, subject):
        with pytest.raises(ValidationError):
            await comments.submit("Articles", subject, "   ")
        with pytest.raises(ValidationError):
            await comments.reply(1, "")


class TestSubmitEdgeCases:
    """Unusual subjects and origins."""

    @pytest.mark.asyncio
    async def test_unknown_subject(self, comments, alice, caplog):
        """A missing subject is logged; the comment is stored anyway."""
        with caplog.at_level(logging.WARNING):
            comment = await comments.submit("Articles", 99, "Where is it?", actor=alice)

        assert comment.subject == UNKNOWN_SUBJECT
        assert comment.subject_id == "99"
        assert "not found" in caplog.text

    @pytest.mark.asyncio
    async def test_origin_without_latest_comment_column(self, comments, store, alice):
        await store.create("Users", {"full_name": "Ana", "username": "ana", "role": "staff"})

        comment = await comments.submit("Users", 1, "Please reset my access", actor=alice)

        assert comment.subject == "ana"

    @pytest.mark.asyncio
    async def test_invalid_origins(self, comments):
        with pytest.raises(ConfigurationError, match="Unknown collection"):
            await comments.submit("Toys", 1, "Hi")
        with pytest.raises(ConfigurationError, match="does not take comments"):
            await comments.submit("History", 1, "Hi")
        with pytest.raises(ConfigurationError, match="does not take comments"):
            await comments.submit("Comments", 1, "Hi")

    @pytest.mark.asyncio
    async def test_author_defaults_to_system(self, comments, subject):
        comment = await comments.submit("Articles", subject, "Stock check")

        assert comment.author == "system"


class TestNotifications:
    """Per-user queries."""

    @pytest.mark.asyncio
    async def test_pending_and_confirmed(self, comments, store, subject, alice, staff):
        food = await store.create("Food", {"product": "Rice"})
        first = await comments.submit("Articles", subject, "One", actor=alice)
        second = await comments.submit("Food", food.record_id, "Two", actor=alice)
        await comments.submit("Articles", subject, "Unanswered", actor=alice)
        other = await comments.submit("Articles", subject, "Not mine", actor=staff)
        for c in (first, second, other):
            await comments.reply(c.comment_id, "Done", actor=staff)
        await comments.confirm(second.comment_id, actor=alice)

        pending = await comments.list_pending_for_user(alice)
        confirmed = await comments.list_confirmed_for_user("alice@example.com")

        assert [c.comment_id for c in pending] == [first.comment_id]
        assert [c.comment_id for c in confirmed] == [second.comment_id]
        assert await comments.list_pending_for_user(alice, origin="Food") == []

    @pytest.mark.asyncio
    async def test_hidden_by_author_leaves_notifications(self, comments, subject, alice, staff):
        comment = await comments.submit("Articles", subject, "One", actor=alice)
        await comments.reply(comment.comment_id, "Done", actor=staff)

        hidden = await comments.hide_by_author(comment.comment_id, actor=alice)

        assert hidden.hidden_by_author
        assert await comments.list_pending_for_user(alice) == []
        assert await comments.list_for_origin("Articles", subject) == []
        assert len(await comments.list_for_origin("Articles", subject, include_hidden=True)) == 1

    @pytest.mark.asyncio
    async def test_hidden_by_admin_leaves_inbox(self, comments, subject, alice, staff):
        comment = await comments.submit("Articles", subject, "Spam", actor=alice)

        await comments.hide_by_admin(comment.comment_id, actor=staff)

        assert await comments.list_unread() == []
        assert (await comments.get(comment.comment_id)).hidden_by_admin


class TestBulkOperations:
    """mark_read and bulk_delete."""

    @pytest.mark.asyncio
    async def test_mark_read_counts_matches(self, comments, subject, alice):
        for i in range(5):
            await comments.submit("Articles", subject, f"Comment {i}", actor=alice)

        result = await comments.mark_read([2, 4, 77])

        assert result.count == 2
        assert result.not_found == [77]
        unread = await comments.list_unread()
        assert [c.comment_id for c in unread] == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_mark_read_nothing_matches(self, comments, subject):
        result = await comments.mark_read([40, 41])

        assert result.count == 0
        assert result.not_found == [40, 41]

    @pytest.mark.asyncio
    async def test_bulk_delete(self, comments, store, subject, alice):
        for i in range(3):
            await comments.submit("Articles", subject, f"Comment {i}", actor=alice)

        result = await comments.bulk_delete([1, 3, 99], actor=alice)

        assert result.updated == [1, 3]
        assert result.not_found == [99]
        assert await comments.get(1) is None
        remaining = await comments.list_for_origin("Articles")
        assert [c.comment_id for c in remaining] == [2]
        assert (await store.ledger.entries(origin="Comments"))[-1].action.startswith("Deleted:")

    @pytest.mark.asyncio
    async def test_ids_not_reused_after_delete(self, comments, subject, alice):
        await comments.submit("Articles", subject, "a", actor=alice)
        await comments.submit("Articles", subject, "b", actor=alice)
        await comments.bulk_delete([1])

        comment = await comments.submit("Articles", subject, "c", actor=alice)

        assert comment.comment_id == 3
