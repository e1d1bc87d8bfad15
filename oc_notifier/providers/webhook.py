"""Generic JSON webhook notification provider."""

from typing import Any

import aiohttp

from ..config import WebhookProviderConfig
from ..models import Notification, NotificationType
from .base import NotificationProvider


class WebhookProvider(NotificationProvider):
    """Sends a plain JSON envelope to an arbitrary URL.

    Payload:
        {
          "event": "session.idle" | "session.question",
          "session": {"id": ..., "title": ...},
          "project": {"id": ..., "directory": ...},
          "desktopUrl": ...,
          "timestamp": ISO 8601,
          "question": ... (question notifications only)
        }
    """

    type = "webhook"

    def __init__(self, config: WebhookProviderConfig, http: aiohttp.ClientSession) -> None:
        super().__init__(config.enabled, http)
        self.url = config.url
        self.method = config.method
        self.headers = dict(config.headers)

    def render(self, notification: Notification) -> dict[str, Any]:
        event = (
            "session.question"
            if notification.type == NotificationType.QUESTION
            else "session.idle"
        )
        body: dict[str, Any] = {
            "event": event,
            "session": {
                "id": notification.session_id,
                "title": notification.session_title,
            },
            "project": {
                "id": notification.project_id,
                "directory": notification.project_directory,
            },
            "desktopUrl": notification.desktop_url,
            "timestamp": notification.timestamp.isoformat(),
        }
        if notification.question:
            body["question"] = notification.question
        return body

    async def send(self, notification: Notification) -> None:
        await self._post_json(
            self.url, self.render(notification), method=self.method, headers=self.headers
        )
