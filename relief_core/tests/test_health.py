"""
Tests for the health check service.
"""

from unittest.mock import Mock, patch

from relief_core.config import EngineConfig
from relief_core.services.health import HealthCheckService


class TestHealthCheckService:
    """Test dependency aggregation."""

    def setup_method(self):
        """Set up mocked dependencies."""
        self.config = EngineConfig(environment="test", otel_enabled=False)
        self.store = Mock()
        self.store.health_check.return_value = {"status": "healthy", "backend": "memory"}
        self.amqp = Mock()
        self.amqp.health_check.return_value = True
        self.amqp.config.exchange = "relief.events"
        self.redis_lock = Mock()
        self.redis_lock.health_check.return_value = {"status": "healthy"}

    def test_all_healthy(self):
        """Test a fully healthy engine."""
        service = HealthCheckService(self.config, self.store, amqp_service=self.amqp, redis_lock=self.redis_lock)

        health = service.get_health(workers={"acknowledgment_watcher": True})

        assert health["status"] == "healthy"
        assert health["environment"] == "test"
        assert set(health["dependencies"]) == {"store", "amqp", "redis"}
        assert health["dependencies"]["amqp"]["exchange"] == "relief.events"
        assert health["workers"] == {"acknowledgment_watcher": True}
        assert "system_metrics" in health

    def test_optional_dependencies_omitted(self):
        """Test only configured dependencies are checked."""
        health = HealthCheckService(self.config, self.store).get_health()

        assert list(health["dependencies"]) == ["store"]
        assert health["workers"] == {}

    def test_degraded(self):
        """Test one failing dependency degrades the engine."""
        self.amqp.health_check.return_value = False
        service = HealthCheckService(self.config, self.store, amqp_service=self.amqp)

        health = service.get_health()

        assert health["status"] == "degraded"
        assert health["dependencies"]["amqp"]["status"] == "unhealthy"

    def test_unhealthy_store(self):
        """Test a raising store health check is reported as unhealthy."""
        self.store.health_check.side_effect = RuntimeError("connection refused")

        health = HealthCheckService(self.config, self.store).get_health()

        assert health["status"] == "unhealthy"
        assert health["dependencies"]["store"]["error"] == "connection refused"

    def test_system_metrics_failure(self):
        """Test metric collection errors are reported, not raised."""
        with patch('relief_core.services.health.psutil.virtual_memory', side_effect=OSError("no /proc")):
            health = HealthCheckService(self.config, self.store).get_health()

        assert "no /proc" in health["system_metrics"]["error"]
