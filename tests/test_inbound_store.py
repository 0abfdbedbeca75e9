"""
Tests for the inbound record store - creation and compare-and-set status transitions.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, func

from inbound_webhooks.models.inbound_webhook import InboundWebhook, WebhookStatus
from inbound_webhooks.models.task_queue import TaskQueue
from inbound_webhooks.services.inbound_store import (
    StatusUpdate,
    create_inbound_webhook,
    find_orphaned_webhooks,
    get_inbound_webhook,
    update_status,
)
from inbound_webhooks.utils.logging import set_correlation_id


async def _status_of(db, webhook_id) -> str:
    result = await db.execute(select(InboundWebhook.status).where(InboundWebhook.id == webhook_id))
    return result.scalar_one()


class TestCreateInboundWebhook:
    async def test_stores_exact_bytes_as_received(self, db):
        body = b'{"title":"X"}  \n\x00\xff'
        record = await create_inbound_webhook(db, "movies", body)
        await db.commit()

        stored = await db.execute(select(InboundWebhook.body).where(InboundWebhook.id == record.id))
        assert stored.scalar_one() == body

    async def test_defaults(self, db):
        record = await create_inbound_webhook(db, "stripe", b"{}")
        await db.commit()

        assert isinstance(record.id, uuid.UUID)
        assert record.provider == "stripe"
        assert record.status == WebhookStatus.RECEIVED
        assert record.created_at is not None
        assert record.updated_at is not None
        assert record.is_terminal is False

    async def test_records_correlation_id(self, db):
        set_correlation_id("cid-123")
        try:
            record = await create_inbound_webhook(db, "movies", b"{}")
        finally:
            set_correlation_id(None)
        assert record.correlation_id == "cid-123"

    async def test_each_call_creates_a_new_record(self, db):
        await create_inbound_webhook(db, "movies", b"same")
        await create_inbound_webhook(db, "movies", b"same")
        await db.commit()

        count = await db.execute(select(func.count()).select_from(InboundWebhook))
        assert count.scalar() == 2


class TestUpdateStatus:
    @pytest.mark.parametrize(
        "new_status",
        [WebhookStatus.PROCESSED, WebhookStatus.SKIPPED, WebhookStatus.FAILED],
    )
    async def test_received_to_terminal(self, db, new_status):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()

        outcome = await update_status(db, record.id, new_status)
        await db.commit()

        assert outcome == StatusUpdate.UPDATED
        assert await _status_of(db, record.id) == new_status

    async def test_refreshes_updated_at(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        record.updated_at = datetime.now(timezone.utc) - timedelta(hours=1)
        await db.commit()
        before = (await db.execute(
            select(InboundWebhook.updated_at).where(InboundWebhook.id == record.id)
        )).scalar_one()

        await update_status(db, record.id, WebhookStatus.PROCESSED)
        await db.commit()

        after = (await db.execute(
            select(InboundWebhook.updated_at).where(InboundWebhook.id == record.id)
        )).scalar_one()
        assert after > before

    async def test_reapplying_is_a_noop(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()

        assert await update_status(db, record.id, WebhookStatus.PROCESSED) == StatusUpdate.UPDATED
        assert await update_status(db, record.id, WebhookStatus.PROCESSED) == StatusUpdate.UNCHANGED
        assert await _status_of(db, record.id) == WebhookStatus.PROCESSED

    async def test_terminal_status_never_changes(self, db):
        """First terminal transition wins; later ones are ignored."""
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()

        await update_status(db, record.id, WebhookStatus.SKIPPED)
        for later in (WebhookStatus.PROCESSED, WebhookStatus.FAILED, WebhookStatus.SKIPPED):
            assert await update_status(db, record.id, later) == StatusUpdate.UNCHANGED
        assert await _status_of(db, record.id) == WebhookStatus.SKIPPED

    async def test_concurrent_sessions_first_terminal_write_wins(self, db, session_factory):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()

        async with session_factory() as worker_a, session_factory() as worker_b:
            loaded = await get_inbound_webhook(worker_a, record.id)
            assert loaded.status == WebhookStatus.RECEIVED

            assert await update_status(worker_b, record.id, WebhookStatus.PROCESSED) == StatusUpdate.UPDATED
            await worker_b.commit()

            # worker_a still holds the stale 'received' copy
            outcome = await update_status(worker_a, record.id, WebhookStatus.SKIPPED)
            await worker_a.commit()

        assert outcome == StatusUpdate.UNCHANGED
        assert await _status_of(db, record.id) == WebhookStatus.PROCESSED

    async def test_cannot_regress_to_received(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await update_status(db, record.id, WebhookStatus.PROCESSED)

        with pytest.raises(ValueError):
            await update_status(db, record.id, WebhookStatus.RECEIVED)
        assert await _status_of(db, record.id) == WebhookStatus.PROCESSED

    async def test_unknown_status_rejected(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        with pytest.raises(ValueError):
            await update_status(db, record.id, "archived")

    async def test_error_message_stored(self, db):
        record = await create_inbound_webhook(db, "movies", b"nope")
        await update_status(db, record.id, WebhookStatus.FAILED, error_message="bad json")
        await db.commit()

        result = await db.execute(
            select(InboundWebhook.error_message).where(InboundWebhook.id == record.id)
        )
        assert result.scalar_one() == "bad json"

    async def test_not_found(self, db):
        assert await update_status(db, uuid.uuid4(), WebhookStatus.PROCESSED) == StatusUpdate.NOT_FOUND

    async def test_invalid_id_string_is_not_found(self, db):
        assert await update_status(db, "not-a-uuid", WebhookStatus.PROCESSED) == StatusUpdate.NOT_FOUND

    async def test_accepts_string_id(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()
        assert await update_status(db, str(record.id), WebhookStatus.PROCESSED) == StatusUpdate.UPDATED


class TestGetInboundWebhook:
    async def test_by_uuid_and_string(self, db):
        record = await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()
        assert (await get_inbound_webhook(db, record.id)).id == record.id
        assert (await get_inbound_webhook(db, str(record.id))).id == record.id

    async def test_invalid_id_returns_none(self, db):
        assert await get_inbound_webhook(db, "garbage") is None


class TestFindOrphanedWebhooks:
    async def _old_record(self, db, status=WebhookStatus.RECEIVED):
        record = await create_inbound_webhook(db, "movies", b"{}")
        record.created_at = datetime.now(timezone.utc) - timedelta(hours=1)
        record.status = status
        await db.commit()
        return record

    async def test_old_received_record_without_task_is_orphaned(self, db):
        record = await self._old_record(db)
        orphans = await find_orphaned_webhooks(db, timedelta(minutes=5))
        assert [o.id for o in orphans] == [record.id]

    async def test_record_with_task_is_not_orphaned(self, db):
        record = await self._old_record(db)
        db.add(TaskQueue(task_type="process_movies_webhook", reference_id=record.id, payload={}))
        await db.commit()

        assert await find_orphaned_webhooks(db, timedelta(minutes=5)) == []

    async def test_dead_lettered_task_still_counts_as_task(self, db):
        record = await self._old_record(db)
        db.add(TaskQueue(
            task_type="process_movies_webhook", reference_id=record.id,
            payload={}, status="failed",
        ))
        await db.commit()

        assert await find_orphaned_webhooks(db, timedelta(minutes=5)) == []

    async def test_recent_record_is_not_orphaned(self, db):
        await create_inbound_webhook(db, "movies", b"{}")
        await db.commit()
        assert await find_orphaned_webhooks(db, timedelta(minutes=5)) == []

    async def test_terminal_record_is_not_orphaned(self, db):
        await self._old_record(db, status=WebhookStatus.PROCESSED)
        assert await find_orphaned_webhooks(db, timedelta(minutes=5)) == []
