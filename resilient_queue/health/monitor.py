"""
Health monitor: sink for processing outcomes and circuit state.

The consumer pushes per-message outcomes here; the monitor summarizes them
into a health status with alerts.
"""

import inspect
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from resilient_queue.constants import (
    DEGRADED_FAILURE_RATE,
    MAX_REPORTED_ALERTS,
    CircuitState,
    HealthStatus,
)
from resilient_queue.types.health import (
    Alert,
    HealthCheckResult,
    HealthChecksReport,
    HealthMetrics,
    HealthReport,
)

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[dict[str, Any]] | dict[str, Any]]

# Older alerts are dropped once this many are held
_ALERT_HISTORY = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthMonitor:
    """
    Tracks processing outcomes and registered health checks.

    Status rules:
    - UNHEALTHY while the circuit breaker is OPEN
    - DEGRADED when more than 10% of processed messages failed
    - HEALTHY otherwise
    """

    def __init__(self):
        self._checks: dict[str, HealthCheck] = {}
        self._alerts: deque[Alert] = deque(maxlen=_ALERT_HISTORY)
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._messages_processed = 0
        self._messages_failed = 0
        self._total_processing_time_ms = 0.0
        self._circuit_state = CircuitState.CLOSED
        self._last_health_check: datetime | None = None
        self._started = time.monotonic()

    def record_success(self, duration_ms: float = 0.0) -> None:
        """Record a successfully processed message."""
        self._messages_processed += 1
        self._total_processing_time_ms += duration_ms
        self._last_health_check = _utcnow()

    def record_failure(self, error: str) -> None:
        """Record a failed message. Circuit breaker errors raise an alert."""
        self._messages_failed += 1
        self._last_health_check = _utcnow()

        if error and "circuit breaker" in error.lower():
            self._alerts.append(
                Alert(type="circuit_breaker", message=error, timestamp=_utcnow())
            )

    def update_circuit_state(self, state: CircuitState) -> None:
        """Track the circuit breaker state; opening raises an alert."""
        if state == CircuitState.OPEN and self._circuit_state != CircuitState.OPEN:
            self._alerts.append(
                Alert(
                    type="circuit_breaker",
                    message="Circuit breaker opened",
                    timestamp=_utcnow(),
                )
            )
            logger.warning("Circuit breaker reported open")
        self._circuit_state = state

    def register_health_check(self, name: str, check: HealthCheck) -> None:
        """Register a check returning ``{"status": ..., "details": {...}}``."""
        self._checks[name] = check

    def unregister_health_check(self, name: str) -> None:
        self._checks.pop(name, None)

    async def perform_health_checks(self) -> HealthChecksReport:
        """Run every registered check; a raising check counts as unhealthy."""
        results: dict[str, HealthCheckResult] = {}
        all_healthy = True

        for name, check in self._checks.items():
            try:
                outcome = check()
                if inspect.isawaitable(outcome):
                    outcome = await outcome
                status = HealthStatus(outcome.get("status", HealthStatus.HEALTHY))
                results[name] = HealthCheckResult(
                    status=status,
                    details=outcome.get("details", {}),
                    timestamp=_utcnow(),
                )
            except Exception as e:
                logger.exception(f"Health check {name} failed")
                status = HealthStatus.UNHEALTHY
                results[name] = HealthCheckResult(
                    status=status,
                    error=str(e),
                    timestamp=_utcnow(),
                )

            if status != HealthStatus.HEALTHY:
                all_healthy = False

        return HealthChecksReport(
            overall=HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY,
            checks=results,
            timestamp=_utcnow(),
        )

    @property
    def failure_rate(self) -> float:
        total = self._messages_processed + self._messages_failed
        return self._messages_failed / total if total else 0.0

    def get_health_status(self) -> HealthReport:
        """Summarize current health."""
        status = HealthStatus.HEALTHY
        if self._circuit_state == CircuitState.OPEN:
            status = HealthStatus.UNHEALTHY
        elif (
            self._messages_failed > 0
            and self._messages_processed > 0
            and self.failure_rate > DEGRADED_FAILURE_RATE
        ):
            status = HealthStatus.DEGRADED

        return HealthReport(
            status=status,
            timestamp=_utcnow(),
            uptime_seconds=time.monotonic() - self._started,
            metrics=self._health_metrics(),
            alerts=list(self._alerts)[-MAX_REPORTED_ALERTS:],
        )

    def _health_metrics(self) -> HealthMetrics:
        average = (
            self._total_processing_time_ms / self._messages_processed
            if self._messages_processed
            else 0.0
        )
        return HealthMetrics(
            messages_processed=self._messages_processed,
            messages_failed=self._messages_failed,
            average_processing_time_ms=round(average, 2),
            circuit_breaker_state=self._circuit_state,
            last_health_check=self._last_health_check,
        )

    def get_metrics(self) -> dict[str, Any]:
        """Detailed counters including success rate and throughput."""
        uptime = time.monotonic() - self._started
        total = self._messages_processed + self._messages_failed
        success_rate = (self._messages_processed / total) * 100 if total else 100.0
        return {
            **self._health_metrics().model_dump(),
            "uptime_seconds": uptime,
            "total_messages": total,
            "success_rate": round(success_rate, 2),
            "throughput_per_second": self._messages_processed / uptime if uptime > 0 else 0.0,
            "alerts": len(self._alerts),
        }

    def clear_metrics(self) -> None:
        """Reset counters and alerts."""
        self._reset_counters()
        self._alerts.clear()

    def get_alerts(self) -> list[Alert]:
        return list(self._alerts)

    def clear_alerts(self) -> None:
        self._alerts.clear()
