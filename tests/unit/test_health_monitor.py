"""
Unit tests for the health monitor.
"""

import pytest

from resilient_queue.constants import CircuitState, HealthStatus
from resilient_queue.health.monitor import HealthMonitor
from resilient_queue.queue.protocol import HealthSink


class TestHealthStatus:
    """Tests for the derived health status."""

    def test_implements_health_sink(self):
        """Test the monitor satisfies the HealthSink port."""
        assert isinstance(HealthMonitor(), HealthSink)

    def test_healthy_by_default(self):
        """Test a fresh monitor reports healthy."""
        report = HealthMonitor().get_health_status()

        assert report.status == HealthStatus.HEALTHY
        assert report.metrics.messages_processed == 0
        assert report.alerts == []

    def test_degraded_on_high_failure_rate(self):
        """Test more than 10% failures degrades health."""
        monitor = HealthMonitor()
        for _ in range(8):
            monitor.record_success(10)
        for _ in range(2):
            monitor.record_failure("boom")

        assert monitor.get_health_status().status == HealthStatus.DEGRADED

    def test_low_failure_rate_is_healthy(self):
        """Test a 10% failure rate is still healthy."""
        monitor = HealthMonitor()
        for _ in range(9):
            monitor.record_success(10)
        monitor.record_failure("boom")

        assert monitor.get_health_status().status == HealthStatus.HEALTHY

    def test_unhealthy_when_circuit_open(self):
        """Test an open breaker makes the consumer unhealthy."""
        monitor = HealthMonitor()

        monitor.update_circuit_state(CircuitState.OPEN)

        report = monitor.get_health_status()
        assert report.status == HealthStatus.UNHEALTHY
        assert report.metrics.circuit_breaker_state == CircuitState.OPEN
        assert report.alerts[0].message == "Circuit breaker opened"

    def test_average_processing_time(self):
        """Test the average covers successful messages."""
        monitor = HealthMonitor()
        monitor.record_success(10)
        monitor.record_success(30)

        assert monitor.get_health_status().metrics.average_processing_time_ms == 20


class TestAlerts:
    """Tests for alerting."""

    def test_circuit_breaker_failure_raises_alert(self):
        """Test failures mentioning the breaker produce an alert."""
        monitor = HealthMonitor()

        monitor.record_failure("Circuit breaker is open - operation not allowed")
        monitor.record_failure("plain failure")

        alerts = monitor.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == "circuit_breaker"

    def test_report_keeps_last_ten_alerts(self):
        """Test the health report carries at most ten alerts."""
        monitor = HealthMonitor()
        for i in range(15):
            monitor.record_failure(f"Circuit breaker failure {i}")

        report = monitor.get_health_status()

        assert len(report.alerts) == 10
        assert report.alerts[-1].message == "Circuit breaker failure 14"

    def test_clear_alerts_and_metrics(self):
        """Test clearing alerts and counters."""
        monitor = HealthMonitor()
        monitor.record_failure("Circuit breaker tripped")
        monitor.record_success(5)

        monitor.clear_alerts()
        assert monitor.get_alerts() == []

        monitor.clear_metrics()
        metrics = monitor.get_metrics()
        assert metrics["messages_processed"] == 0
        assert metrics["messages_failed"] == 0
        assert metrics["success_rate"] == 100.0


class TestHealthChecks:
    """Tests for registered health checks."""

    @pytest.mark.asyncio
    async def test_checks_aggregated(self):
        """Test sync, async and failing checks."""
        monitor = HealthMonitor()

        async def queue_check():
            return {"status": "healthy", "details": {"depth": 3}}

        def broken_check():
            raise RuntimeError("no connection")

        monitor.register_health_check("queue", queue_check)
        monitor.register_health_check("static", lambda: {"status": "healthy"})
        monitor.register_health_check("broken", broken_check)

        report = await monitor.perform_health_checks()

        assert report.overall == HealthStatus.UNHEALTHY
        assert report.checks["queue"].details == {"depth": 3}
        assert report.checks["static"].status == HealthStatus.HEALTHY
        assert report.checks["broken"].status == HealthStatus.UNHEALTHY
        assert report.checks["broken"].error == "no connection"

    @pytest.mark.asyncio
    async def test_unregister(self):
        """Test an unregistered check no longer runs."""
        monitor = HealthMonitor()
        monitor.register_health_check("broken", lambda: 1 / 0)

        monitor.unregister_health_check("broken")
        report = await monitor.perform_health_checks()

        assert report.overall == HealthStatus.HEALTHY
        assert report.checks == {}

    def test_get_metrics(self):
        """Test detailed counters."""
        monitor = HealthMonitor()
        monitor.record_success(10)
        monitor.record_failure("x")

        metrics = monitor.get_metrics()

        assert metrics["total_messages"] == 2
        assert metrics["success_rate"] == 50.0
        assert metrics["uptime_seconds"] >= 0
