"""Notification dispatcher - sends notifications to all enabled providers.

Every provider is attempted once per notification, concurrently. A failing
provider is logged and counted; it never delays or prevents delivery through
the others, and send() itself never raises.
"""

import asyncio
import logging
from typing import Sequence

from .models import Notification
from .providers import NotificationProvider

logger = logging.getLogger(__name__)


class Notifier:
    """Fans a notification out to the enabled providers."""

    def __init__(self, providers: Sequence[NotificationProvider]) -> None:
        self.providers = [p for p in providers if p.enabled]

        if not self.providers:
            logger.warning("No enabled notification providers configured")
        else:
            logger.info(
                f"Loaded {len(self.providers)} provider(s): "
                f"{', '.join(p.type for p in self.providers)}"
            )

    async def send(self, notification: Notification) -> int:
        """Deliver a notification through every enabled provider.

        Args:
            notification: Finalized notification record

        Returns:
            Number of providers that failed
        """
        if not self.providers:
            return 0

        results = await asyncio.gather(
            *(provider.send(notification) for provider in self.providers),
            return_exceptions=True,
        )

        failures = 0
        for provider, result in zip(self.providers, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failures += 1
                logger.error(
                    f"Failed to send {notification.type.value} notification for "
                    f"{notification.session_id} via {provider.type}: {result}"
                )
            else:
                logger.info(
                    f"{notification.type.value.capitalize()} notification for "
                    f"{notification.session_id} sent via {provider.type}"
                )

        if failures:
            logger.error(f"{failures} provider(s) failed to send notification")
        return failures
