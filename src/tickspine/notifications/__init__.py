"""Notification delivery handler and transports."""

from tickspine.notifications.handler import (
    InMemoryNotificationLog,
    NotificationRecord,
    SendNotificationHandler,
)
from tickspine.notifications.transports import (
    InMemoryPushSubscriptionStore,
    LogOnlyEmailTransport,
    PushSubscription,
    SubscriptionGoneError,
    UnconfiguredPushSender,
    WebPushTransport,
)

__all__ = [
    "InMemoryNotificationLog",
    "InMemoryPushSubscriptionStore",
    "LogOnlyEmailTransport",
    "NotificationRecord",
    "PushSubscription",
    "SendNotificationHandler",
    "SubscriptionGoneError",
    "UnconfiguredPushSender",
    "WebPushTransport",
]
