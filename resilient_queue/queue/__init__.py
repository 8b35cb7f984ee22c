"""
Queue module.
Contains the queue ports, the resilient client and the in-memory transport.
"""

from resilient_queue.queue.client import QueueRetryHooks, ResilientQueueClient
from resilient_queue.queue.memory import InMemoryQueueTransport
from resilient_queue.queue.protocol import (
    HealthSink,
    MessageHandler,
    QueueClient,
    QueueTransport,
)

__all__ = [
    "QueueTransport",
    "QueueClient",
    "HealthSink",
    "MessageHandler",
    "ResilientQueueClient",
    "QueueRetryHooks",
    "InMemoryQueueTransport",
]
