"""
Database models - import all models here so Alembic can discover them.
"""
from inbound_webhooks.models.inbound_webhook import InboundWebhook
from inbound_webhooks.models.task_queue import TaskQueue

__all__ = [
    "InboundWebhook",
    "TaskQueue",
]
