"""
Consumer module.
Contains the processing engine, the polling consumer and message handlers.
"""

from resilient_queue.consumer.engine import ProcessingConfig, ProcessingEngine
from resilient_queue.consumer.handlers import get_handler, list_handlers, register_handler
from resilient_queue.consumer.main import Consumer, ConsumerConfig, run_async

__all__ = [
    "ProcessingConfig",
    "ProcessingEngine",
    "Consumer",
    "ConsumerConfig",
    "run_async",
    "register_handler",
    "get_handler",
    "list_handlers",
]
