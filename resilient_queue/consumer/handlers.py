"""
Message handler registry and built-in handlers.

Handlers must be idempotent - a message may be delivered more than once
when an earlier delivery was not acknowledged in time.
"""

import logging
from typing import Any, Callable

from resilient_queue.queue.protocol import MessageHandler
from resilient_queue.types.message import MessageContext

logger = logging.getLogger(__name__)

# Handler registry
_handlers: dict[str, MessageHandler] = {}


def register_handler(name: str) -> Callable[[MessageHandler], MessageHandler]:
    """
    Decorator to register a message handler.

    Args:
        name: Name the handler is looked up by.

    Returns:
        Decorator function.

    Example:
        @register_handler("order_created")
        async def handle_order_created(body: Any, context: MessageContext) -> None:
            ...
    """
    def decorator(handler: MessageHandler) -> MessageHandler:
        _handlers[name] = handler
        logger.info(f"Registered message handler: {name}")
        return handler
    return decorator


def get_handler(name: str) -> MessageHandler | None:
    """
    Get a handler by name.

    Args:
        name: The registered handler name.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(name)


def list_handlers() -> list[str]:
    """List all registered handler names."""
    return list(_handlers.keys())


# ============================================================================
# Built-in handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(body: Any, context: MessageContext) -> None:
    """Log the message body and succeed."""
    logger.info(
        "Echo handler received message",
        extra={
            "message_id": context.message_id,
            "receive_count": context.receive_count,
            "body": body,
        },
    )


@register_handler("fail")
async def handle_fail(body: Any, context: MessageContext) -> None:
    """
    Handler that always fails - for exercising redelivery.
    """
    raise RuntimeError(
        f"Intentional failure on delivery {context.receive_count} of {context.message_id}"
    )
