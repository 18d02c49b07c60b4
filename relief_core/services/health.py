"""
Health Check Service

Reports the status of the engine's dependencies (entity store, AMQP broker,
Redis locks), its background workers and basic system metrics.
"""

import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import psutil
from opentelemetry import trace

from ..config import EngineConfig

tracer = trace.get_tracer(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthCheckService:
    """Health of the coordination engine and its dependencies."""

    def __init__(
        self,
        config: EngineConfig,
        store,
        amqp_service=None,
        redis_lock=None,
        service_version: str = "1.0.0"
    ):
        self.config = config
        self.store = store
        self.amqp_service = amqp_service
        self.redis_lock = redis_lock
        self.service_version = service_version

    def get_health(self, workers: Optional[Dict[str, bool]] = None) -> Dict[str, Any]:
        """
        Check every configured dependency.

        Args:
            workers: Background worker name -> running flag

        Returns:
            Health document with overall status healthy/degraded/unhealthy
        """
        with tracer.start_as_current_span("health.check") as span:
            start_time = time.time()

            dependencies = {"store": self._check_store()}
            if self.amqp_service is not None:
                dependencies["amqp"] = self._check_amqp()
            if self.redis_lock is not None:
                dependencies["redis"] = self._check_redis()

            overall_status = self._determine_overall_status(
                [dependency["status"] for dependency in dependencies.values()]
            )
            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms
            })

            return {
                "status": overall_status,
                "service": "relief-core",
                "version": self.service_version,
                "environment": self.config.environment,
                "timestamp": _timestamp(),
                "response_time_ms": response_time_ms,
                "dependencies": dependencies,
                "workers": workers or {},
                "system_metrics": self._get_system_metrics()
            }

    def _check_store(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.store_check") as span:
            try:
                result = dict(self.store.health_check())
            except Exception as e:
                span.record_exception(e)
                result = {"status": "unhealthy", "error": str(e)}
            result["last_check"] = _timestamp()
            span.set_attribute("store.status", result.get("status", "unknown"))
            return result

    def _check_amqp(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.amqp_check") as span:
            start_time = time.time()
            healthy = self.amqp_service.health_check()
            response_time = round((time.time() - start_time) * 1000, 2)
            status = "healthy" if healthy else "unhealthy"
            span.set_attributes({"amqp.status": status, "amqp.response_time_ms": response_time})
            return {
                "status": status,
                "exchange": self.amqp_service.config.exchange,
                "response_time_ms": response_time,
                "last_check": _timestamp()
            }

    def _check_redis(self) -> Dict[str, Any]:
        with tracer.start_as_current_span("health.redis_check") as span:
            result = dict(self.redis_lock.health_check())
            result["last_check"] = _timestamp()
            span.set_attribute("redis.status", result["status"])
            return result

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            memory = psutil.virtual_memory()
            process = psutil.Process()
            return {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory": {
                    "used_mb": round(memory.used / 1024 / 1024, 2),
                    "total_mb": round(memory.total / 1024 / 1024, 2),
                    "percent": memory.percent
                },
                "process_rss_mb": round(process.memory_info().rss / 1024 / 1024, 2),
                "threads": process.num_threads(),
                "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
            }
        except (psutil.Error, OSError) as e:
            return {"error": f"Failed to collect system metrics: {str(e)}"}

    def _determine_overall_status(self, dependency_statuses: List[str]) -> str:
        """Determine overall status based on dependency health."""
        if all(status == "healthy" for status in dependency_statuses):
            return "healthy"
        if any(status == "healthy" for status in dependency_statuses):
            return "degraded"
        return "unhealthy"
