"""Requester notifications for finished reports.

Delivery is fire-and-forget: callers log and swallow failures, and nothing
here is retried.
"""

from __future__ import annotations

import abc
import logging
from typing import Any, Mapping

import httpx

from app.core.config import settings


logger = logging.getLogger(__name__)


class NotificationSink(abc.ABC):
    @abc.abstractmethod
    async def notify(self, user_id: str, title: str, message: str, payload: Mapping[str, Any]) -> None:
        ...


class LogNotificationSink(NotificationSink):
    """Default sink: records the notification in the application log only."""

    async def notify(self, user_id: str, title: str, message: str, payload: Mapping[str, Any]) -> None:
        logger.info("Notification for user %s: %s - %s %s", user_id, title, message, dict(payload))


class WebhookNotificationSink(NotificationSink):
    def __init__(self, url: str, *, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def notify(self, user_id: str, title: str, message: str, payload: Mapping[str, Any]) -> None:
        body = {
            "userId": user_id,
            "title": title,
            "body": message,
            "type": "REPORT",
            "data": dict(payload),
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.url, json=body)
            resp.raise_for_status()


def get_notification_sink() -> NotificationSink:
    mode = (settings.REPORT_NOTIFY_MODE or "log").lower()
    if mode == "webhook" and settings.REPORT_NOTIFY_WEBHOOK_URL:
        return WebhookNotificationSink(
            settings.REPORT_NOTIFY_WEBHOOK_URL,
            timeout=settings.REPORT_NOTIFY_TIMEOUT_SECONDS,
        )
    return LogNotificationSink()
