"""
TaskQueue model - at-least-once work queue for webhook processing.
Supports delayed tasks, retries with exponential backoff, and dead-lettering
(status=failed once max_retries is exhausted).
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, Text, DateTime, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from inbound_webhooks.database import Base


class TaskStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"  # dead-lettered, kept for manual inspection


class TaskQueue(Base):
    __tablename__ = "task_queue"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )

    task_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # process_stripe_webhook, process_movies_webhook

    payload: Mapped[Optional[dict]] = mapped_column(JSONB)

    # Id of the record the task works on (inbound webhook id)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)

    status: Mapped[str] = mapped_column(
        String(20), default=TaskStatus.PENDING, nullable=False
    )

    priority: Mapped[int] = mapped_column(
        Integer, default=5
    )  # 0=low, 5=normal, 10=high

    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=3)

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    result_data: Mapped[Optional[dict]] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_task_queue_processing", "status", "scheduled_at", "priority"),
    )

    def __repr__(self) -> str:
        return f"<TaskQueue {self.task_type} ({self.status})>"
