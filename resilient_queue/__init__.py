"""
Resilient Queue Consumer

A resilience layer for managed message queues: circuit breaking, exponential
backoff retries, publish-side deduplication and a bounded-concurrency consumer
loop that only acknowledges messages whose handler succeeded.
"""

__version__ = "1.0.0"
