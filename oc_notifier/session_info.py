"""Session metadata lookup for oc-notifier.

Resolves a session id to its title, owning project and parent session via
GET /session/{id}. Lookups never raise: any failure is logged and reported
as "no info available" so a notification can still go out with fallback
fields.
"""

import asyncio
import logging
from typing import Optional

import aiohttp
from pydantic import ValidationError

from .config import OpenCodeConfig
from .models import SessionInfo

logger = logging.getLogger(__name__)

LOOKUP_TIMEOUT_SEC = 10.0


class SessionInfoClient:
    """Fetches and optionally memoizes session metadata.

    Only successful lookups are cached. Cached entries never expire; session
    title changes after the first lookup are therefore not picked up while
    caching is enabled.
    """

    def __init__(
        self,
        config: OpenCodeConfig,
        http: aiohttp.ClientSession,
        cache: bool = True,
        timeout_sec: float = LOOKUP_TIMEOUT_SEC,
    ) -> None:
        """Initialize the lookup client.

        Args:
            config: OpenCode server settings (URL and credentials)
            http: Shared aiohttp session
            cache: Whether to memoize successful lookups
            timeout_sec: Total timeout for one lookup request
        """
        self.base_url = config.server_url
        self.headers = config.auth_headers()
        self.http = http
        self.cache_enabled = cache
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)

        # Session info cache: session_id -> SessionInfo
        self._cache: dict[str, SessionInfo] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def cached(self, session_id: str) -> Optional[SessionInfo]:
        return self._cache.get(session_id)

    def invalidate(self, session_id: str) -> None:
        self._cache.pop(session_id, None)

    def clear(self) -> None:
        self._cache.clear()

    async def fetch(
        self, session_id: str, directory: Optional[str] = None
    ) -> Optional[SessionInfo]:
        """Look up metadata for a session.

        Args:
            session_id: Session to resolve
            directory: Project directory the session belongs to, if known

        Returns:
            SessionInfo, or None if the lookup failed
        """
        if self.cache_enabled:
            cached = self._cache.get(session_id)
            if cached is not None:
                return cached

        url = f"{self.base_url}/session/{session_id}"
        params = {"directory": directory} if directory else None

        try:
            async with self.http.get(
                url, headers=self.headers, params=params, timeout=self.timeout
            ) as response:
                if response.status < 200 or response.status >= 300:
                    logger.error(
                        f"Failed to fetch session info for {session_id}: {response.status}"
                    )
                    return None

                data = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error fetching session info for {session_id}: {e!r}")
            return None

        if not isinstance(data, dict):
            logger.error(f"Unexpected session info response for {session_id}: {data!r}")
            return None

        try:
            info = SessionInfo.from_response(data, session_id)
        except ValidationError as e:
            logger.error(
                f"Unexpected session info fields for {session_id}: {e.error_count()} error(s)"
            )
            return None

        logger.debug(
            f"Session {session_id}: title={info.title!r} project={info.project_id} "
            f"parent={info.parent_id}"
        )

        if self.cache_enabled:
            self._cache[session_id] = info
        return info
