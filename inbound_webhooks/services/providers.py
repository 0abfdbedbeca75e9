"""
Provider registry - maps a webhook route name to everything needed to handle it.

Each provider is chosen explicitly by name at routing time:
    verifier    -> runs in the request path before anything is stored
    task_type   -> queued after the record is committed
    parse       -> runs in the worker, turns stored bytes into a ParsedEvent

Secrets are bound into each Verifier when the registry is built, so strategies
never look credentials up on their own and tests can inject their own.
"""
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

from pydantic import ValidationError

from inbound_webhooks.config import Settings, get_settings
from inbound_webhooks.exceptions import (
    ProviderConfigurationError,
    UnknownProviderError,
    WebhookParseError,
)
from inbound_webhooks.schemas.webhook_payloads import (
    MoviePayload,
    ParsedEvent,
    StripeEventPayload,
)
from inbound_webhooks.utils.webhook_signatures import STRATEGIES, Verifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookProvider:
    name: str
    verifier: Verifier
    task_type: str
    parse: Callable[[bytes], ParsedEvent]


def task_type_for(provider_name: str) -> str:
    return f"process_{provider_name}_webhook"


def _load_json(body: bytes):
    # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting hits the recursion limit
    try:
        return json.loads(body)
    except (ValueError, RecursionError) as e:
        raise WebhookParseError(f"Body is not valid JSON: {e}") from e


def parse_movie_event(body: bytes) -> ParsedEvent:
    data = _load_json(body)
    try:
        movie = MoviePayload.model_validate(data)
    except ValidationError as e:
        raise WebhookParseError(f"Invalid movie payload: {e.error_count()} error(s)") from e
    return ParsedEvent(provider="movies", event_type=movie.event, data=movie.model_dump())


def parse_stripe_event(body: bytes) -> ParsedEvent:
    data = _load_json(body)
    try:
        event = StripeEventPayload.model_validate(data)
    except ValidationError as e:
        raise WebhookParseError(f"Invalid Stripe event: {e.error_count()} error(s)") from e
    return ParsedEvent(
        provider="stripe",
        event_type=event.type,
        event_id=event.id,
        data=event.data.object,
    )


def _build_verifier(
    provider_name: str,
    mode: str,
    secret: str,
    tolerance_seconds: int,
    settings: Settings,
) -> Verifier:
    strategy = STRATEGIES.get(mode)
    if strategy is None:
        raise ProviderConfigurationError(
            f"Unknown verification mode '{mode}' for provider '{provider_name}'"
        )

    if mode == "accept_all":
        if settings.app_env == "production":
            raise ProviderConfigurationError(
                f"accept_all verification is not allowed in production (provider '{provider_name}')"
            )
        logger.warning(
            "Provider '%s' accepts webhooks WITHOUT verification (accept_all). "
            "Development use only.",
            provider_name,
        )
    elif mode == "reject_all":
        logger.info("Provider '%s' rejects all webhooks (reject_all)", provider_name)
    elif not secret:
        logger.error(
            "No webhook secret configured for provider '%s' - every delivery will be rejected",
            provider_name,
        )

    return Verifier(strategy=strategy, secret=secret, tolerance_seconds=tolerance_seconds)


def build_provider_registry(settings: Settings) -> dict[str, WebhookProvider]:
    """Build the provider table from settings. Raises on unsafe configuration."""
    return {
        "movies": WebhookProvider(
            name="movies",
            verifier=_build_verifier(
                "movies",
                settings.movies_webhook_verification,
                settings.movies_webhook_secret,
                settings.movies_webhook_tolerance_seconds,
                settings,
            ),
            task_type=task_type_for("movies"),
            parse=parse_movie_event,
        ),
        "stripe": WebhookProvider(
            name="stripe",
            verifier=_build_verifier(
                "stripe",
                "stripe",
                settings.stripe_webhook_secret,
                settings.stripe_webhook_tolerance_seconds,
                settings,
            ),
            task_type=task_type_for("stripe"),
            parse=parse_stripe_event,
        ),
    }


@lru_cache()
def get_provider_registry() -> dict[str, WebhookProvider]:
    return build_provider_registry(get_settings())


def get_provider(name: str) -> WebhookProvider:
    provider = get_provider_registry().get(name)
    if provider is None:
        raise UnknownProviderError(name)
    return provider
