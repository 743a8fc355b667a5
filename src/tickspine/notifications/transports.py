"""Notification delivery transports.

``WebPushTransport`` fans a message out to every push subscription a user
has. A subscription the push service reports as gone (HTTP 410) is deleted
so it is not tried again; other send failures only count against the
success tally. Delivery succeeds when at least one subscription accepted
the message.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Protocol

from tickspine.core.errors import DeliveryError
from tickspine.core.logging import get_logger

logger = get_logger(__name__)


class SubscriptionGoneError(DeliveryError):
    """The push service no longer accepts this subscription (HTTP 410)."""

    default_retryable = False


@dataclass(frozen=True)
class PushSubscription:
    id: str
    user_id: str
    endpoint: str
    p256dh: str
    auth: str


class PushSubscriptionStore(Protocol):
    def list_for_user(self, user_id: str) -> list[PushSubscription]: ...

    def delete(self, subscription_id: str) -> None: ...


class PushSender(Protocol):
    def send(self, subscription: PushSubscription, payload: str) -> None:
        """Deliver *payload*. Raises ``SubscriptionGoneError`` for a dead subscription."""
        ...


class InMemoryPushSubscriptionStore:
    def __init__(self, subscriptions: list[PushSubscription] | None = None) -> None:
        self._subs: dict[str, PushSubscription] = {s.id: s for s in subscriptions or []}
        self._lock = threading.Lock()

    def add(self, subscription: PushSubscription) -> None:
        with self._lock:
            self._subs[subscription.id] = subscription

    def list_for_user(self, user_id: str) -> list[PushSubscription]:
        with self._lock:
            return [s for s in self._subs.values() if s.user_id == user_id]

    def delete(self, subscription_id: str) -> None:
        with self._lock:
            self._subs.pop(subscription_id, None)


class WebPushTransport:
    """:class:`~tickspine.core.protocols.PushTransport` over a subscription store."""

    def __init__(self, subscriptions: PushSubscriptionStore, sender: PushSender) -> None:
        self._subscriptions = subscriptions
        self._sender = sender

    def send_push(self, user_id: str, title: str, body: str, data: dict[str, Any] | None = None) -> bool:
        subscriptions = self._subscriptions.list_for_user(user_id)
        if not subscriptions:
            logger.info("push_no_subscriptions", user_id=user_id)
            return False

        payload = json.dumps(
            {
                "title": title,
                "body": body,
                "data": data or {},
                "timestamp": int(time.time() * 1000),
            }
        )

        delivered = 0
        for sub in subscriptions:
            try:
                self._sender.send(sub, payload)
                delivered += 1
            except SubscriptionGoneError:
                self._subscriptions.delete(sub.id)
                logger.info("push_subscription_removed", subscription_id=sub.id, user_id=user_id)
            except Exception as e:
                logger.warning("push_send_failed", subscription_id=sub.id, error=str(e))

        logger.info("push_sent", user_id=user_id, delivered=delivered, total=len(subscriptions))
        return delivered > 0


class LogOnlyEmailTransport:
    """Email transport for deployments without a mail relay: logs and reports not sent."""

    def send_email(self, user_id: str, subject: str, body: str) -> bool:
        logger.info("email_not_configured", user_id=user_id, subject=subject)
        return False


class UnconfiguredPushSender:
    """Sender used when no push credentials are configured; every send fails."""

    def send(self, subscription: PushSubscription, payload: str) -> None:
        raise DeliveryError("Web push is not configured")
