"""
Webhook ingestion endpoint - POST /webhooks/{provider}.

Per delivery, in order:
1. Size bound (413 before anything else runs)
2. Signature verification (400, nothing stored)
3. Durable record (committed before we answer; 500 on failure)
4. Processing task enqueue (500 on failure so the sender retries)
5. 200 with an empty body

Responses carry no body: senders only look at the status code, and error
details would tell an attacker which check failed.
"""
import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from inbound_webhooks.config import Settings, get_settings
from inbound_webhooks.database import get_db
from inbound_webhooks.exceptions import PayloadTooLargeError
from inbound_webhooks.services.inbound_store import create_inbound_webhook
from inbound_webhooks.services.providers import WebhookProvider, get_provider_registry
from inbound_webhooks.services.task_dispatch import enqueue_task

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def read_body_limited(request: Request, limit: int) -> bytes:
    """Read the raw body, giving up as soon as it exceeds `limit` bytes."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > limit:
        raise PayloadTooLargeError(limit)

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise PayloadTooLargeError(limit)
    return bytes(body)


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/{provider_name}")
async def receive_webhook(
    provider_name: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    providers: dict[str, WebhookProvider] = Depends(get_provider_registry),
):
    """Receive, verify, store and queue one webhook delivery."""
    provider = providers.get(provider_name)
    if provider is None:
        logger.warning("Webhook for unknown provider '%s' from %s", provider_name, _client_ip(request))
        return Response(status_code=404)

    log_extra = {"provider": provider_name}

    try:
        body = await read_body_limited(request, settings.max_webhook_body_bytes)
    except PayloadTooLargeError:
        logger.warning(
            "Oversized webhook rejected: provider=%s ip=%s limit=%d",
            provider_name, _client_ip(request), settings.max_webhook_body_bytes,
            extra=log_extra,
        )
        return Response(status_code=413)

    verification = provider.verifier.verify(body, request.headers)
    if not verification.accepted:
        logger.warning(
            "Invalid webhook signature: provider=%s ip=%s reason=%s",
            provider_name, _client_ip(request), verification.reason,
            extra=log_extra,
        )
        return Response(status_code=400)

    try:
        record = await create_inbound_webhook(db, provider_name, body)
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(
            "Failed to store %s webhook: %s", provider_name, str(e),
            exc_info=True, extra=log_extra,
        )
        return Response(status_code=500)

    webhook_id = str(record.id)
    log_extra["webhook_id"] = webhook_id

    try:
        await enqueue_task(
            task_type=provider.task_type,
            payload={"webhook_id": webhook_id},
            reference_id=record.id,
        )
    except Exception as e:
        # Record is durable; the sender's retry creates a duplicate, which the
        # worker tolerates, and the reconciliation sweeper picks up this one.
        logger.error(
            "Failed to enqueue %s webhook %s: %s", provider_name, webhook_id[:8], str(e),
            exc_info=True, extra=log_extra,
        )
        return Response(status_code=500)

    logger.info(
        "Webhook accepted: provider=%s id=%s bytes=%d",
        provider_name, webhook_id[:8], len(body),
        extra=log_extra,
    )
    return Response(status_code=200)
