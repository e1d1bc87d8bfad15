"""Discord webhook notification provider."""

from typing import Any

import aiohttp

from ..config import DiscordProviderConfig
from ..models import Notification, NotificationType
from .base import (
    OPEN_IN_DESKTOP_LABEL,
    NotificationProvider,
    notification_heading,
    notification_status,
)

DISCORD_BLURPLE = 0x5865F2
DISCORD_ORANGE = 0xF0B232

# Discord component types and button styles
ACTION_ROW = 1
BUTTON = 2
LINK_BUTTON_STYLE = 5

# Discord rejects embed field values over 1024 characters
MAX_FIELD_LENGTH = 1024


class DiscordProvider(NotificationProvider):
    """Posts an embed with a link button to a Discord webhook."""

    type = "discord"

    def __init__(self, config: DiscordProviderConfig, http: aiohttp.ClientSession) -> None:
        super().__init__(config.enabled, http)
        self.webhook_url = config.webhook_url

    def render(self, notification: Notification) -> dict[str, Any]:
        fields = [
            {"name": "Project", "value": notification.project_name, "inline": True},
            {"name": "Session", "value": notification.display_title, "inline": True},
            {"name": "Status", "value": notification_status(notification), "inline": True},
        ]
        if notification.question:
            fields.append(
                {
                    "name": "Question",
                    "value": notification.question[:MAX_FIELD_LENGTH],
                    "inline": False,
                }
            )

        is_question = notification.type == NotificationType.QUESTION
        embed = {
            "title": notification_heading(notification),
            "color": DISCORD_ORANGE if is_question else DISCORD_BLURPLE,
            "fields": fields,
            "url": notification.desktop_url,
            "timestamp": notification.timestamp.isoformat(),
            "footer": {"text": f"OpenCode | {notification.project_directory}"},
        }

        return {
            "embeds": [embed],
            "components": [
                {
                    "type": ACTION_ROW,
                    "components": [
                        {
                            "type": BUTTON,
                            "style": LINK_BUTTON_STYLE,
                            "label": OPEN_IN_DESKTOP_LABEL,
                            "url": notification.desktop_url,
                        }
                    ],
                }
            ],
        }

    async def send(self, notification: Notification) -> None:
        await self._post_json(self.webhook_url, self.render(notification))
