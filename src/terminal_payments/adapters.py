"""Collaborator interfaces the SDK is wired to.

The host application supplies the notification transport, and optionally a
persistence store and a health probe. Only their boundary is defined here.
"""

from collections import defaultdict
from typing import Any, Callable, Optional, Protocol

import structlog

from terminal_payments.models import HealthStatus, PaymentInteractionState, TransactionRecord

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class MessagingAdapter(Protocol):
    """Push-notification subscriber. Delivery is best effort and may never fire."""

    def subscribe(self, channel: str, event: str, handler: MessageHandler) -> Unsubscribe:
        ...


class PersistenceAdapter(Protocol):
    async def save_transaction(self, record: TransactionRecord) -> None:
        ...

    async def update_transaction_status(
        self,
        order_ref: str,
        state: PaymentInteractionState,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        ...


class HealthCheckAdapter(Protocol):
    async def check_health(self) -> HealthStatus:
        ...


class InMemoryMessaging:
    """
    In-process fan-out implementation of MessagingAdapter.

    Useful for local demos and tests: whatever is published on a
    channel/event pair is delivered synchronously to every live handler.
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], list[MessageHandler]] = defaultdict(list)

    def subscribe(self, channel: str, event: str, handler: MessageHandler) -> Unsubscribe:
        key = (channel, event)
        self._handlers[key].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(key)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[key]

        return unsubscribe

    def publish(self, channel: str, event: str, data: Any) -> int:
        """Deliver ``data`` to current subscribers; returns how many received it."""
        handlers = list(self._handlers.get((channel, event), ()))
        for handler in handlers:
            try:
                handler(data)
            except Exception as e:
                logger.error(
                    "messaging_handler_error",
                    channel=channel,
                    event=event,
                    error=str(e),
                    exc_info=True,
                )
        return len(handlers)

    def subscriber_count(self, channel: str, event: str) -> int:
        return len(self._handlers.get((channel, event), ()))
