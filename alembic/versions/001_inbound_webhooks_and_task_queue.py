"""Create inbound_webhooks and task_queue tables

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Raw payload of every verified delivery; body is write-once
    op.create_table(
        "inbound_webhooks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("body", sa.LargeBinary, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_inbound_webhooks_provider", "inbound_webhooks", ["provider"])
    op.create_index("ix_inbound_webhooks_correlation_id", "inbound_webhooks", ["correlation_id"])
    op.create_index("ix_inbound_webhooks_status_created", "inbound_webhooks", ["status", "created_at"])

    # Work queue for the processing worker; status=failed means dead-lettered
    op.create_table(
        "task_queue",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("task_type", sa.String(50), nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("reference_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=True, server_default="5"),
        sa.Column("retry_count", sa.Integer, nullable=True, server_default="0"),
        sa.Column("max_retries", sa.Integer, nullable=True, server_default="3"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("result_data", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )
    op.create_index("ix_task_queue_processing", "task_queue", ["status", "scheduled_at", "priority"])
    op.create_index("ix_task_queue_reference_id", "task_queue", ["reference_id"])


def downgrade() -> None:
    op.drop_index("ix_task_queue_reference_id", table_name="task_queue")
    op.drop_index("ix_task_queue_processing", table_name="task_queue")
    op.drop_table("task_queue")

    op.drop_index("ix_inbound_webhooks_status_created", table_name="inbound_webhooks")
    op.drop_index("ix_inbound_webhooks_correlation_id", table_name="inbound_webhooks")
    op.drop_index("ix_inbound_webhooks_provider", table_name="inbound_webhooks")
    op.drop_table("inbound_webhooks")
