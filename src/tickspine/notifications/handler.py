"""send-notification handler.

Payload::

    {
        "user_id": "u-1",
        "title": "Price alert",
        "message": "005930 crossed 80,000",
        "channel": "EMAIL" | "WEB_PUSH",
        "type": "PRICE_ALERT",          # optional
        "priority": "NORMAL",           # optional
        "data": {...}                   # optional, forwarded to push
    }

A notification record is created before delivery and marked sent only when
the transport reports success. An undelivered notification is a normal
outcome (``success: False``), not a job failure.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from tickspine.core.errors import ConfigurationError
from tickspine.core.logging import get_logger
from tickspine.core.protocols import EmailTransport, PushTransport
from tickspine.execution.context import JobContext

logger = get_logger(__name__)

JOB_NAME = "send-notification"

CHANNELS = ("EMAIL", "WEB_PUSH")


@dataclass
class NotificationRecord:
    user_id: str
    title: str
    message: str
    channel: str
    type: str | None = None
    priority: str = "NORMAL"
    data: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    is_sent: bool = False
    sent_at: datetime | None = None


class InMemoryNotificationLog:
    def __init__(self) -> None:
        self._records: dict[str, NotificationRecord] = {}
        self._lock = threading.Lock()

    def create(self, record: NotificationRecord) -> NotificationRecord:
        with self._lock:
            self._records[record.id] = record
        return record

    def mark_sent(self, record_id: str) -> None:
        with self._lock:
            record = self._records[record_id]
            record.is_sent = True
            record.sent_at = datetime.now(UTC)

    def for_user(self, user_id: str) -> list[NotificationRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.user_id == user_id]


class SendNotificationHandler:
    """Delivers one notification over its channel."""

    job_name = JOB_NAME

    def __init__(
        self,
        email: EmailTransport,
        push: PushTransport,
        log: InMemoryNotificationLog | None = None,
    ) -> None:
        self._email = email
        self._push = push
        self._log = log or InMemoryNotificationLog()

    @property
    def log(self) -> InMemoryNotificationLog:
        return self._log

    def __call__(self, ctx: JobContext) -> dict[str, Any]:
        payload = ctx.payload
        channel = str(payload.get("channel", "")).upper()
        if channel not in CHANNELS:
            raise ConfigurationError(f"Unknown notification channel: {payload.get('channel')!r}")
        missing = [k for k in ("user_id", "title", "message") if not payload.get(k)]
        if missing:
            raise ConfigurationError(f"{JOB_NAME} payload missing: {', '.join(missing)}")

        record = self._log.create(
            NotificationRecord(
                user_id=payload["user_id"],
                title=payload["title"],
                message=payload["message"],
                channel=channel,
                type=payload.get("type"),
                priority=payload.get("priority") or "NORMAL",
                data=dict(payload.get("data") or {}),
            )
        )

        if channel == "EMAIL":
            sent = self._email.send_email(record.user_id, record.title, record.message)
        else:
            sent = self._push.send_push(record.user_id, record.title, record.message, record.data)

        if sent:
            self._log.mark_sent(record.id)
        ctx.report_progress(100)
        logger.info("notification_processed", user_id=record.user_id, channel=channel, sent=sent)
        return {"success": sent, "user_id": record.user_id, "channel": channel, "notification_id": record.id}
