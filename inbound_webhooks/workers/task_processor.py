"""
Task processor worker - polls the task_queue table and dispatches tasks.
Handles retries with exponential backoff and dead-letters exhausted tasks.

Uses BRPOP on a Redis notification key for near-instant wake on new tasks,
with a 30-second timeout falling back to DB poll as safety net.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from inbound_webhooks.database import async_session_factory
from inbound_webhooks.models.task_queue import TaskQueue, TaskStatus
from inbound_webhooks.services.task_dispatch import TASK_NOTIFY_KEY
from inbound_webhooks.utils.alerting import AlertType, send_alert
from inbound_webhooks.utils.redis_client import write_heartbeat

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30  # Fallback DB poll interval
MAX_TASKS_PER_CYCLE = 10
BRPOP_TIMEOUT = 30  # seconds to wait for Redis notification
HEARTBEAT_TTL_SECONDS = 120


async def run_task_processor():
    """Main loop - wait for notification or poll every 30s."""
    logger.info("Task processor started (adaptive polling, BRPOP %ds timeout)", BRPOP_TIMEOUT)

    while True:
        try:
            await process_cycle()
        except Exception as e:
            logger.error("Task processor cycle error: %s", str(e), exc_info=True)

        await write_heartbeat("task_processor", HEARTBEAT_TTL_SECONDS)

        # Wait for either a Redis notification or timeout
        try:
            from inbound_webhooks.utils.redis_client import get_redis
            redis = await get_redis()
            result = await redis.brpop(TASK_NOTIFY_KEY, timeout=BRPOP_TIMEOUT)
            if result:
                # Drain any additional notifications to avoid stacking
                while await redis.rpop(TASK_NOTIFY_KEY):
                    pass
        except Exception as e:
            logger.debug("Redis BRPOP unavailable, falling back to sleep: %s", str(e))
            await asyncio.sleep(POLL_INTERVAL_SECONDS)


async def process_cycle() -> int:
    """Find and execute pending tasks that are due. Returns count executed."""
    now = datetime.now(timezone.utc)

    async with async_session_factory() as db:
        # SKIP LOCKED lets several processors share the queue without double-claiming
        result = await db.execute(
            select(TaskQueue)
            .where(
                and_(
                    TaskQueue.status == TaskStatus.PENDING,
                    TaskQueue.scheduled_at <= now,
                )
            )
            .order_by(TaskQueue.priority.desc(), TaskQueue.created_at)
            .limit(MAX_TASKS_PER_CYCLE)
            .with_for_update(skip_locked=True)
        )
        tasks = result.scalars().all()

        if not tasks:
            return 0

        logger.info("Processing %d pending tasks", len(tasks))

        for task in tasks:
            await _execute_task(db, task)

        await db.commit()
        return len(tasks)


async def _execute_task(db: AsyncSession, task: TaskQueue) -> None:
    """Execute a single task and handle success/failure."""
    task_extra = {"task_id": str(task.id), "task_type": task.task_type}
    task.status = TaskStatus.PROCESSING
    task.started_at = datetime.now(timezone.utc)
    await db.flush()

    try:
        result = await _dispatch_task(task.task_type, task.payload or {})
        task.status = TaskStatus.COMPLETED
        task.completed_at = datetime.now(timezone.utc)
        task.result_data = result
        logger.info(
            "Task completed: id=%s type=%s", str(task.id)[:8], task.task_type,
            extra=task_extra,
        )

    except Exception as e:
        task.retry_count = task.retry_count + 1
        error_msg = str(e)
        task.error_message = error_msg

        if task.retry_count >= task.max_retries:
            task.status = TaskStatus.FAILED
            task.completed_at = datetime.now(timezone.utc)
            logger.error(
                "Task failed (max retries): id=%s type=%s error=%s",
                str(task.id)[:8], task.task_type, error_msg,
                extra=task_extra,
            )
            await send_alert(
                AlertType.WEBHOOK_TASK_DEAD_LETTERED,
                f"Task {task.task_type} for {task.reference_id} dead-lettered after "
                f"{task.retry_count} attempts: {error_msg[:200]}",
                extra=task_extra,
            )
        else:
            # Exponential backoff: 30s, 120s, 480s
            backoff = 30 * (4 ** (task.retry_count - 1))
            task.status = TaskStatus.PENDING
            task.scheduled_at = datetime.now(timezone.utc) + timedelta(seconds=backoff)
            logger.warning(
                "Task retry %d/%d: id=%s type=%s backoff=%ds",
                task.retry_count, task.max_retries,
                str(task.id)[:8], task.task_type, backoff,
                extra=task_extra,
            )


def _get_handlers() -> dict:
    """One handler per registered provider's task type."""
    from inbound_webhooks.services.providers import get_provider_registry
    from inbound_webhooks.workers.webhook_processor import process_inbound_webhook

    return {
        provider.task_type: process_inbound_webhook
        for provider in get_provider_registry().values()
    }


async def _dispatch_task(task_type: str, payload: dict) -> dict:
    """
    Route task to its handler function.
    Each handler receives the payload dict and returns a result dict.
    """
    handler = _get_handlers().get(task_type)
    if not handler:
        logger.warning("Unknown task type: %s", task_type)
        return {"status": "skipped", "reason": f"unknown task type: {task_type}"}

    return await handler(payload)
