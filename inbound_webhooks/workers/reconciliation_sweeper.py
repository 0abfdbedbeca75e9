"""
Reconciliation sweeper - re-enqueues webhooks that were stored but never queued.

The ingestion endpoint commits the record before enqueueing its task. If the
enqueue fails the sender gets a 500 and retries, but the first record is
already durable with no task. This sweeper finds those orphans and queues them.
Runs every 5 minutes.
"""
import asyncio
import logging
from datetime import timedelta

from inbound_webhooks.database import async_session_factory
from inbound_webhooks.exceptions import UnknownProviderError
from inbound_webhooks.services.inbound_store import find_orphaned_webhooks
from inbound_webhooks.services.providers import get_provider
from inbound_webhooks.services.task_dispatch import enqueue_task
from inbound_webhooks.utils.alerting import AlertType, send_alert
from inbound_webhooks.utils.redis_client import write_heartbeat

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 300  # 5 minutes
ORPHAN_AGE = timedelta(minutes=5)
BATCH_SIZE = 50
HEARTBEAT_TTL_SECONDS = 600


async def run_reconciliation_sweeper():
    """Main sweeper loop. Runs continuously every 5 minutes."""
    logger.info("Reconciliation sweeper started")

    while True:
        try:
            requeued = await sweep_orphaned_webhooks()
            if requeued > 0:
                logger.info("Reconciliation sweeper re-enqueued %d webhooks", requeued)
        except Exception as e:
            logger.error("Reconciliation sweeper error: %s", str(e), exc_info=True)

        await write_heartbeat("reconciliation_sweeper", HEARTBEAT_TTL_SECONDS)
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)


async def sweep_orphaned_webhooks() -> int:
    """Enqueue a processing task for every orphaned record. Returns count enqueued."""
    async with async_session_factory() as db:
        orphans = await find_orphaned_webhooks(db, ORPHAN_AGE, limit=BATCH_SIZE)

    requeued = 0
    for record in orphans:
        try:
            provider = get_provider(record.provider)
        except UnknownProviderError:
            logger.warning(
                "Orphaned webhook %s has unknown provider %s",
                str(record.id)[:8], record.provider,
                extra={"webhook_id": str(record.id), "provider": record.provider},
            )
            continue

        await enqueue_task(
            task_type=provider.task_type,
            payload={"webhook_id": str(record.id)},
            reference_id=record.id,
        )
        requeued += 1

    if requeued:
        await send_alert(
            AlertType.WEBHOOK_ORPHANS_RECOVERED,
            f"Re-enqueued {requeued} webhook(s) that were stored without a task",
            severity="warning",
        )
    return requeued
