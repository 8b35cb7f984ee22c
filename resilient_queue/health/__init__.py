"""
Health module.
Contains the health monitor that collects processing outcomes.
"""

from resilient_queue.health.monitor import HealthMonitor

__all__ = ["HealthMonitor"]
