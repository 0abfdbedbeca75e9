"""
Task dispatch service - enqueue tasks for background processing.

The task row is committed in its own session, so a committed webhook record
and its task never share a transaction: if this raises, the record is already
durable and the caller decides how to answer the sender.

Also pushes a notification to Redis so the task processor can wake
immediately via BRPOP instead of waiting out its poll interval.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from inbound_webhooks.database import async_session_factory
from inbound_webhooks.models.task_queue import TaskQueue
from inbound_webhooks.utils.redis_client import KEY_PREFIX

logger = logging.getLogger(__name__)

TASK_NOTIFY_KEY = f"{KEY_PREFIX}:task_notify"


async def enqueue_task(
    task_type: str,
    payload: Optional[dict] = None,
    reference_id: Optional[Union[str, uuid.UUID]] = None,
    priority: int = 5,
    delay_seconds: int = 0,
    max_retries: Optional[int] = None,
) -> str:
    """
    Enqueue a task for background processing.

    Args:
        task_type: Handler name (process_stripe_webhook, process_movies_webhook, ...)
        payload: Task-specific data as JSON-serializable dict
        reference_id: Inbound webhook id the task works on
        priority: 0=low, 5=normal, 10=high
        delay_seconds: Delay before task becomes eligible for processing
        max_retries: Attempts before the task is dead-lettered (defaults to settings)

    Returns:
        Task ID as string
    """
    if max_retries is None:
        from inbound_webhooks.config import get_settings
        max_retries = get_settings().task_max_retries

    scheduled_at = datetime.now(timezone.utc)
    if delay_seconds > 0:
        scheduled_at = scheduled_at + timedelta(seconds=delay_seconds)

    if reference_id is not None and not isinstance(reference_id, uuid.UUID):
        reference_id = uuid.UUID(str(reference_id))

    task = TaskQueue(
        task_type=task_type,
        payload=payload or {},
        reference_id=reference_id,
        priority=priority,
        max_retries=max_retries,
        scheduled_at=scheduled_at,
    )

    async with async_session_factory() as db:
        db.add(task)
        await db.commit()
        task_id = str(task.id)

    logger.info(
        "Task enqueued: type=%s priority=%d delay=%ds id=%s",
        task_type, priority, delay_seconds, task_id[:8],
        extra={"task_id": task_id, "task_type": task_type},
    )

    # Wake the task processor (non-blocking, best-effort)
    if delay_seconds == 0:
        try:
            from inbound_webhooks.utils.redis_client import get_redis
            redis = await get_redis()
            await redis.lpush(TASK_NOTIFY_KEY, task_id)
        except Exception as e:
            logger.debug("Failed to notify task processor: %s", str(e))

    return task_id
