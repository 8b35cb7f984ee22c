"""
Publisher module.
Contains the message publisher with publish-side deduplication.
"""

from resilient_queue.publisher.publisher import MessagePublisher

__all__ = ["MessagePublisher"]
