"""
Inbound record store - durable storage of verified webhook payloads.

Status changes go through update_status(), a single compare-and-set UPDATE
that only matches rows still in 'received'. Two workers racing on the same
record can't both win, and a terminal record can never move again.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from inbound_webhooks.models.inbound_webhook import (
    InboundWebhook,
    WebhookStatus,
    TERMINAL_STATUSES,
)
from inbound_webhooks.models.task_queue import TaskQueue
from inbound_webhooks.utils.logging import get_correlation_id

logger = logging.getLogger(__name__)


class StatusUpdate(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"  # record already terminal, nothing written
    NOT_FOUND = "not_found"


def _as_uuid(webhook_id: Union[str, uuid.UUID]) -> Optional[uuid.UUID]:
    if isinstance(webhook_id, uuid.UUID):
        return webhook_id
    try:
        return uuid.UUID(str(webhook_id))
    except ValueError:
        return None


async def create_inbound_webhook(
    db: AsyncSession,
    provider: str,
    body: bytes,
) -> InboundWebhook:
    """Add a new 'received' record and flush it. The caller commits."""
    record = InboundWebhook(
        provider=provider,
        body=body,
        status=WebhookStatus.RECEIVED,
        correlation_id=get_correlation_id(),
    )
    db.add(record)
    await db.flush()
    return record


async def get_inbound_webhook(
    db: AsyncSession,
    webhook_id: Union[str, uuid.UUID],
) -> Optional[InboundWebhook]:
    record_id = _as_uuid(webhook_id)
    if record_id is None:
        return None
    return await db.get(InboundWebhook, record_id)


async def update_status(
    db: AsyncSession,
    webhook_id: Union[str, uuid.UUID],
    new_status: str,
    error_message: Optional[str] = None,
) -> StatusUpdate:
    """
    Move a record from 'received' to a terminal status.

    Re-applying a transition to a record that is already terminal is a no-op
    (UNCHANGED), which keeps redelivered tasks harmless.
    """
    if new_status not in TERMINAL_STATUSES:
        raise ValueError(f"Cannot transition a webhook to '{new_status}'")

    record_id = _as_uuid(webhook_id)
    if record_id is None:
        return StatusUpdate.NOT_FOUND

    result = await db.execute(
        update(InboundWebhook)
        .where(
            and_(
                InboundWebhook.id == record_id,
                InboundWebhook.status == WebhookStatus.RECEIVED,
            )
        )
        .values(
            status=new_status,
            error_message=error_message,
            updated_at=datetime.now(timezone.utc),
        )
        # Only rows the database actually matched are synced into the session
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount:
        logger.info(
            "Webhook %s -> %s", str(record_id)[:8], new_status,
            extra={"webhook_id": str(record_id)},
        )
        return StatusUpdate.UPDATED

    current = await db.execute(
        select(InboundWebhook.status).where(InboundWebhook.id == record_id)
    )
    current_status = current.scalar_one_or_none()
    if current_status is None:
        return StatusUpdate.NOT_FOUND

    logger.debug(
        "Webhook %s already %s, ignoring transition to %s",
        str(record_id)[:8], current_status, new_status,
    )
    return StatusUpdate.UNCHANGED


async def find_orphaned_webhooks(
    db: AsyncSession,
    older_than: timedelta,
    limit: int = 50,
) -> list[InboundWebhook]:
    """Records still 'received' after `older_than` that no task references."""
    cutoff = datetime.now(timezone.utc) - older_than
    has_task = (
        select(TaskQueue.id)
        .where(TaskQueue.reference_id == InboundWebhook.id)
        .exists()
    )
    result = await db.execute(
        select(InboundWebhook)
        .where(
            and_(
                InboundWebhook.status == WebhookStatus.RECEIVED,
                InboundWebhook.created_at < cutoff,
                ~has_task,
            )
        )
        .order_by(InboundWebhook.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())
