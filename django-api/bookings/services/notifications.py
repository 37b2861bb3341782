"""Notification sinks.

Delivery (email and friends) belongs to an external collaborator. The core
only hands over a recipient, a template name and a context, fire-and-forget.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from django.utils.module_loading import import_string

from bookings.conf import get_setting

logger = logging.getLogger(__name__)

BOOKING_CONFIRMED = "booking_confirmed"
BOOKING_CANCELLED = "booking_cancelled"
MEMBERSHIP_PURCHASED = "membership_purchased"


class NotificationSink(ABC):
    """Interface for outbound notifications."""

    @abstractmethod
    def notify(self, recipient: int, template: str, context: dict[str, Any]) -> None:
        ...


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the log. Used where no delivery backend exists."""

    def notify(self, recipient: int, template: str, context: dict[str, Any]) -> None:
        logger.info("Notify user %s with %s: %s", recipient, template, context)


class CeleryNotificationSink(NotificationSink):
    """Queues delivery on a Celery worker so callers never wait on it."""

    def notify(self, recipient: int, template: str, context: dict[str, Any]) -> None:
        from bookings.tasks import deliver_notification

        deliver_notification.delay(recipient, template, context)


def get_notification_sink(setting: str = "NOTIFICATION_SINK") -> NotificationSink:
    return import_string(get_setting(setting))()


def notify_safely(
    sink: NotificationSink, recipient: int, template: str, context: dict[str, Any]
) -> None:
    """Best-effort notify: failures are logged and never reach the caller."""
    try:
        sink.notify(recipient, template, context)
    except Exception:
        logger.error(
            "Failed to send %s notification to user %s",
            template,
            recipient,
            exc_info=True,
        )
