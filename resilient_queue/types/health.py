"""
Health reporting type definitions.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from resilient_queue.constants import CircuitState, HealthStatus


class Alert(BaseModel):
    """A notable event raised by the health monitor."""

    type: str
    message: str
    timestamp: datetime


class HealthCheckResult(BaseModel):
    """Result of a single registered health check."""

    status: HealthStatus
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    timestamp: datetime


class HealthChecksReport(BaseModel):
    """Aggregate of all registered health checks."""

    overall: HealthStatus
    checks: dict[str, HealthCheckResult] = Field(default_factory=dict)
    timestamp: datetime


class HealthMetrics(BaseModel):
    """Processing counters summarized in a health report."""

    messages_processed: int
    messages_failed: int
    average_processing_time_ms: float
    circuit_breaker_state: CircuitState
    last_health_check: datetime | None = None


class HealthReport(BaseModel):
    """Current health status of the consumer."""

    status: HealthStatus
    timestamp: datetime
    uptime_seconds: float
    metrics: HealthMetrics
    alerts: list[Alert] = Field(default_factory=list)
