"""
Webhook processor - turns a stored inbound webhook into a business effect.

Invoked by the task processor with {"webhook_id": ...}. State machine:

    received --handler ok---------> processed
    received --no handler---------> skipped
    received --unparseable body---> failed   (alert, task completes, no redelivery)
    received --handler raises-----> received (exception propagates, task retried)

Safe to run more than once for the same record: a terminal record is left
alone and the task still completes, so redelivery never loops.
"""
import logging

from inbound_webhooks.database import async_session_factory
from inbound_webhooks.exceptions import UnknownProviderError, WebhookParseError
from inbound_webhooks.models.inbound_webhook import WebhookStatus
from inbound_webhooks.services.event_handlers import get_event_handler
from inbound_webhooks.services.inbound_store import get_inbound_webhook, update_status
from inbound_webhooks.services.providers import get_provider
from inbound_webhooks.utils.alerting import AlertType, send_alert

logger = logging.getLogger(__name__)


async def process_inbound_webhook(payload: dict) -> dict:
    """Process one inbound webhook. Returns a result dict stored on the task."""
    webhook_id = payload.get("webhook_id")
    if not webhook_id:
        return {"status": "skipped", "reason": "no webhook_id"}

    async with async_session_factory() as db:
        record = await get_inbound_webhook(db, webhook_id)
        if record is None:
            logger.warning("Webhook %s not found", str(webhook_id)[:8])
            return {"status": "skipped", "reason": "webhook not found"}

        log_extra = {"webhook_id": str(record.id), "provider": record.provider}

        if record.is_terminal:
            logger.info(
                "Webhook %s already %s - nothing to do",
                str(record.id)[:8], record.status, extra=log_extra,
            )
            return {"status": record.status, "reason": "already terminal"}

        try:
            provider = get_provider(record.provider)
        except UnknownProviderError:
            # Provider removed from the registry after the record was stored
            await update_status(
                db, record.id, WebhookStatus.FAILED,
                error_message=f"Unknown provider: {record.provider}",
            )
            await db.commit()
            logger.error("Webhook %s has unknown provider", str(record.id)[:8], extra=log_extra)
            return {"status": WebhookStatus.FAILED, "reason": "unknown provider"}

        try:
            event = provider.parse(record.body)
        except WebhookParseError as e:
            await update_status(db, record.id, WebhookStatus.FAILED, error_message=str(e))
            await db.commit()
            logger.error(
                "Webhook %s body could not be parsed: %s",
                str(record.id)[:8], str(e), extra=log_extra,
            )
            await send_alert(
                AlertType.WEBHOOK_PARSE_FAILED,
                f"{record.provider} webhook {record.id} has a malformed body: {e}",
                correlation_id=record.correlation_id,
                extra=log_extra,
            )
            return {"status": WebhookStatus.FAILED, "reason": "parse error"}

        handler = get_event_handler(provider.name, event.event_type)
        if handler is None:
            outcome = await update_status(db, record.id, WebhookStatus.SKIPPED)
            await db.commit()
            logger.info(
                "Webhook %s skipped: no handler for %s",
                str(record.id)[:8], event.event_type, extra=log_extra,
            )
            return {"status": WebhookStatus.SKIPPED, "event_type": event.event_type, "update": outcome.value}

        # Don't hold a pooled connection while the handler talks to other services
        await db.commit()

        # Handler failures propagate: record stays 'received', the task is retried
        await handler(event)

        outcome = await update_status(db, record.id, WebhookStatus.PROCESSED)
        await db.commit()
        return {"status": WebhookStatus.PROCESSED, "event_type": event.event_type, "update": outcome.value}
