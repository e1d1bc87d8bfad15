"""Provider interface for notification destinations."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import aiohttp

from ..errors import ProviderError
from ..models import Notification, NotificationType

logger = logging.getLogger(__name__)

DELIVERY_TIMEOUT_SEC = 15.0

# Link button label shared by the rich card providers
OPEN_IN_DESKTOP_LABEL = "Open in OpenCode Desktop"


def notification_heading(notification: Notification) -> str:
    if notification.type == NotificationType.QUESTION:
        return "Question Asked"
    return "Session Idle"


def notification_status(notification: Notification) -> str:
    if notification.type == NotificationType.QUESTION:
        return "Waiting for answer"
    return "Ready for input"


class NotificationProvider(ABC):
    """A single notification destination.

    Subclasses render a notification into their wire payload; delivery and
    status interpretation are shared. A non-2xx response raises ProviderError.
    """

    type: str = ""

    def __init__(self, enabled: bool, http: aiohttp.ClientSession) -> None:
        self.enabled = enabled
        self.http = http
        self.timeout = aiohttp.ClientTimeout(total=DELIVERY_TIMEOUT_SEC)

    @abstractmethod
    def render(self, notification: Notification) -> dict[str, Any]:
        """Build the JSON body for a notification."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        """Deliver a notification."""

    async def _post_json(
        self,
        url: str,
        body: dict[str, Any],
        method: str = "POST",
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        async with self.http.request(
            method, url, json=body, headers=request_headers, timeout=self.timeout
        ) as response:
            if response.status < 200 or response.status >= 300:
                text = await response.text()
                raise ProviderError(self.type, response.status, text[:500])
            logger.debug(f"{self.type} delivery accepted: {response.status}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(enabled={self.enabled})"
