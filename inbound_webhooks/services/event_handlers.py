"""
Business handlers for parsed webhook events, keyed by (provider, event_type).

A handler receives the ParsedEvent and either returns (success) or raises
(failure - the task is retried). An event type with no handler is skipped.
Applications plug their own effects in with register_event_handler().
"""
import logging
from typing import Awaitable, Callable, Optional

from inbound_webhooks.schemas.webhook_payloads import ParsedEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ParsedEvent], Awaitable[None]]

_handlers: dict[tuple[str, str], EventHandler] = {}


def register_event_handler(provider: str, event_type: str, handler: EventHandler) -> None:
    """Register (or replace) the handler for one provider event type."""
    _handlers[(provider, event_type)] = handler
    logger.debug("Registered webhook handler: %s/%s", provider, event_type)


def unregister_event_handler(provider: str, event_type: str) -> None:
    _handlers.pop((provider, event_type), None)


def get_event_handler(provider: str, event_type: str) -> Optional[EventHandler]:
    return _handlers.get((provider, event_type))


async def handle_movie(event: ParsedEvent) -> None:
    """Default movie handler - the notification is acknowledged and logged."""
    logger.info(
        "Movie notification received: %s",
        event.data.get("title"),
        extra={"provider": event.provider},
    )


async def handle_stripe_customer_updated(event: ParsedEvent) -> None:
    """Default customer.updated handler - logs which customer changed."""
    logger.info(
        "Stripe customer updated: %s (event %s)",
        event.data.get("id"), event.event_id,
        extra={"provider": event.provider},
    )


def register_default_handlers() -> None:
    register_event_handler("movies", "movie", handle_movie)
    register_event_handler("stripe", "customer.updated", handle_stripe_customer_updated)


register_default_handlers()
