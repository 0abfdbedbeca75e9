"""
Tests for inbound_webhooks/api/health.py - liveness and readiness endpoints.
"""
from datetime import datetime
from unittest.mock import AsyncMock, patch

from inbound_webhooks.api.health import health_check, readiness_check


class TestHealthCheck:
    async def test_returns_healthy(self):
        result = await health_check()
        assert result["status"] == "healthy"
        assert result["version"] == "1.0.0"

    async def test_timestamp_is_utc_iso(self):
        result = await health_check()
        assert datetime.fromisoformat(result["timestamp"]).tzinfo is not None


class TestReadinessCheck:
    async def test_all_healthy_returns_ready(self, mock_redis):
        mock_redis.get = AsyncMock(return_value="2026-01-01T00:00:00+00:00")

        result = await readiness_check(db=AsyncMock())

        assert result["status"] == "ready"
        assert result["checks"] == {"database": True, "redis": True}
        assert result["workers"] == {"task_processor": True, "reconciliation_sweeper": True}

    async def test_db_failure_returns_degraded(self):
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=Exception("connection refused"))

        result = await readiness_check(db=db)

        assert result["status"] == "degraded"
        assert result["checks"]["database"] is False

    async def test_redis_failure_still_ready(self):
        with patch(
            "inbound_webhooks.utils.redis_client.get_redis",
            new_callable=AsyncMock, side_effect=ConnectionError("redis down"),
        ):
            result = await readiness_check(db=AsyncMock())

        assert result["status"] == "ready"
        assert result["checks"]["redis"] is False
        assert result["workers"] == {}

    async def test_missing_heartbeat_reported(self, mock_redis):
        mock_redis.get = AsyncMock(side_effect=["2026-01-01T00:00:00+00:00", None])

        result = await readiness_check(db=AsyncMock())

        assert result["workers"] == {"task_processor": True, "reconciliation_sweeper": False}
