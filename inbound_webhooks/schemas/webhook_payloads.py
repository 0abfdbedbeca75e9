"""
Webhook payload schemas - structured events parsed from stored raw bodies.
Parsing happens in the processing worker, never in the request path.
"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class ParsedEvent(BaseModel):
    """Provider-neutral event handed to business handlers."""
    provider: str
    event_type: str
    event_id: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class MoviePayload(BaseModel):
    """Content-provider movie notification."""
    model_config = ConfigDict(extra="allow")

    title: str
    year: Optional[int] = None
    event: str = "movie"  # movies only sends one kind of notification today


class StripeEventObject(BaseModel):
    model_config = ConfigDict(extra="allow")

    object: dict[str, Any] = Field(default_factory=dict)
    previous_attributes: Optional[dict[str, Any]] = None


class StripeEventPayload(BaseModel):
    """Stripe Event envelope (https://stripe.com/docs/api/events/object)."""
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    object: str = "event"
    api_version: Optional[str] = None
    created: Optional[int] = None
    livemode: bool = False
    data: StripeEventObject = Field(default_factory=StripeEventObject)
