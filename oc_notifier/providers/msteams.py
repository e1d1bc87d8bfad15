"""Microsoft Teams webhook notification provider.

Uses the Adaptive Card message format accepted by Teams incoming webhooks
and Workflows.
"""

from typing import Any

import aiohttp

from ..config import MSTeamsProviderConfig
from ..models import Notification
from .base import (
    OPEN_IN_DESKTOP_LABEL,
    NotificationProvider,
    notification_heading,
    notification_status,
)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"
ADAPTIVE_CARD_SCHEMA = "http://adaptivecards.io/schemas/adaptive-card.json"
ADAPTIVE_CARD_VERSION = "1.4"


class MSTeamsProvider(NotificationProvider):
    """Posts an Adaptive Card to a Teams webhook."""

    type = "msteams"

    def __init__(self, config: MSTeamsProviderConfig, http: aiohttp.ClientSession) -> None:
        super().__init__(config.enabled, http)
        self.webhook_url = config.webhook_url

    def render(self, notification: Notification) -> dict[str, Any]:
        body: list[dict[str, Any]] = [
            {
                "type": "TextBlock",
                "size": "Large",
                "weight": "Bolder",
                "text": notification_heading(notification),
                "style": "heading",
            },
            {
                "type": "FactSet",
                "facts": [
                    {"title": "Project", "value": notification.project_name},
                    {"title": "Session", "value": notification.display_title},
                    {"title": "Status", "value": notification_status(notification)},
                ],
            },
        ]
        if notification.question:
            body.append({"type": "TextBlock", "text": notification.question, "wrap": True})
        body.append(
            {
                "type": "TextBlock",
                "text": notification.project_directory,
                "size": "Small",
                "isSubtle": True,
                "wrap": True,
            }
        )

        return {
            "type": "message",
            "attachments": [
                {
                    "contentType": ADAPTIVE_CARD_CONTENT_TYPE,
                    "content": {
                        "$schema": ADAPTIVE_CARD_SCHEMA,
                        "type": "AdaptiveCard",
                        "version": ADAPTIVE_CARD_VERSION,
                        "body": body,
                        "actions": [
                            {
                                "type": "Action.OpenUrl",
                                "title": OPEN_IN_DESKTOP_LABEL,
                                "url": notification.desktop_url,
                            }
                        ],
                    },
                }
            ],
        }

    async def send(self, notification: Notification) -> None:
        await self._post_json(self.webhook_url, self.render(notification))
