"""
Notification sinks for loan lifecycle events.

Events: ``loan.created``, ``loan.renewed``, ``loan.returned``,
``loan.lost`` and ``resource.low_stock``. Delivery (email, SMS, toasts)
belongs to whoever implements the sink; the service only announces.
"""

import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

LOAN_CREATED = "loan.created"
LOAN_RENEWED = "loan.renewed"
LOAN_RETURNED = "loan.returned"
LOAN_LOST = "loan.lost"
RESOURCE_LOW_STOCK = "resource.low_stock"


class NotificationSink(Protocol):
    def notify(self, event: str, payload: dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Default sink: writes each event to the log."""

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        logger.info("Loan event %s: %s", event, payload)


class RecordingNotificationSink:
    """Keeps events in memory, newest last."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def of_type(self, event: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]

    def clear(self) -> None:
        self.events.clear()
