"""
Resilience module.
Contains the circuit breaker, retry executor and deduplication cache.
"""

from resilient_queue.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from resilient_queue.resilience.deduplication import DeduplicationCache, DeduplicationConfig
from resilient_queue.resilience.retry import RetryExecutor, RetryHooks, RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "RetryExecutor",
    "RetryHooks",
    "RetryPolicy",
    "DeduplicationCache",
    "DeduplicationConfig",
]
