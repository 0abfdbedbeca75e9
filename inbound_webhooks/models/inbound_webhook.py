"""
Inbound webhook record - the raw payload of every verified delivery.
Written once by the ingestion endpoint; only the status moves afterwards.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, LargeBinary, Index
from sqlalchemy.dialects.postgresql import UUID
from inbound_webhooks.database import Base
from inbound_webhooks.utils.logging import MAX_CORRELATION_ID_LENGTH


class WebhookStatus:
    """Processing status values. received is the only non-terminal state."""
    RECEIVED = "received"
    PROCESSED = "processed"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({
    WebhookStatus.PROCESSED,
    WebhookStatus.SKIPPED,
    WebhookStatus.FAILED,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InboundWebhook(Base):
    __tablename__ = "inbound_webhooks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String(50), nullable=False, index=True)
    body = Column(LargeBinary, nullable=False)  # exact bytes received, never re-encoded
    status = Column(
        String(20), nullable=False,
        default=WebhookStatus.RECEIVED, server_default=WebhookStatus.RECEIVED,
    )
    error_message = Column(Text, nullable=True)
    correlation_id = Column(String(MAX_CORRELATION_ID_LENGTH), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_inbound_webhooks_status_created", "status", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<InboundWebhook {self.provider} {self.id} ({self.status})>"
