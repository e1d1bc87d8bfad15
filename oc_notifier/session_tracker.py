"""Session state tracker for oc-notifier.

Keeps the last-known status of every session seen on the event stream and
classifies each new observation:

    (no entry)   → any     NEW_SESSION   record only
    idle         → idle    UNCHANGED     record only
    busy/retry   → idle    BECAME_IDLE   candidate for notification
    any          → busy    BECAME_BUSY   record, cancel pending work

An idle status seen first for a session never counts as a transition: the
server reports idle for sessions it has only just learned about, and there
is no prior work to be notified about.

Sessions not observed for RETENTION_SEC are reclaimed by a periodic sweep
together with their subagent marker.
"""

import asyncio
import logging
import time
from typing import Callable, Iterable, Optional

from .models import StatusType, TrackedSession, TransitionDecision

logger = logging.getLogger(__name__)

RETENTION_SEC = 3600.0
SWEEP_INTERVAL_SEC = 300.0

ReclaimHandler = Callable[[list[str]], None]


class SessionStateTracker:
    """Tracks per-session status and detects idle transitions."""

    def __init__(
        self,
        retention_sec: float = RETENTION_SEC,
        sweep_interval_sec: float = SWEEP_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the tracker.

        Args:
            retention_sec: Seconds since last observation before a session is reclaimed
            sweep_interval_sec: Seconds between reclamation sweeps
            clock: Monotonic time source
        """
        self.retention_sec = retention_sec
        self.sweep_interval_sec = sweep_interval_sec
        self._clock = clock

        # Session storage: session_id -> TrackedSession
        self._sessions: dict[str, TrackedSession] = {}

        # Sessions confirmed to have a parent session
        self._subagents: set[str] = set()

        self._reclaim_handlers: list[ReclaimHandler] = []
        self._sweep_task: Optional[asyncio.Task] = None
        self._running = False

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[TrackedSession]:
        return self._sessions.get(session_id)

    def status_of(self, session_id: str) -> Optional[StatusType]:
        session = self._sessions.get(session_id)
        return session.status if session else None

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def observe(
        self,
        session_id: str,
        status: StatusType,
        directory: str = "",
        now: Optional[float] = None,
    ) -> TransitionDecision:
        """Record a status observation and classify it.

        Args:
            session_id: Session the status belongs to
            status: Observed status tag
            directory: Project directory reported with the event
            now: Clock reading for the observation (defaults to the tracker clock)

        Returns:
            The transition decision for this observation
        """
        now = self._clock() if now is None else now
        status = StatusType(status)
        session = self._sessions.get(session_id)

        if session is None:
            self._sessions[session_id] = TrackedSession(
                session_id=session_id,
                status=status,
                directory=directory,
                last_seen=now,
            )
            logger.debug(f"Tracking new session {session_id} ({status.value})")
            return TransitionDecision.NEW_SESSION

        previous = session.status
        session.status = status
        session.last_seen = max(session.last_seen, now)
        if directory:
            session.directory = directory

        if status == previous:
            return TransitionDecision.UNCHANGED
        if status == StatusType.IDLE:
            return TransitionDecision.BECAME_IDLE
        return TransitionDecision.BECAME_BUSY

    # -------------------------------------------------------------------------
    # Subagent markers
    # -------------------------------------------------------------------------

    def is_subagent(self, session_id: str) -> bool:
        return session_id in self._subagents

    def mark_subagent(self, session_id: str) -> None:
        """Remember that a session has a parent session.

        Markers for sessions that are not tracked are ignored so the sweep
        always has a tracked entry to reclaim them with.
        """
        if session_id not in self._sessions:
            logger.debug(f"Not marking untracked session {session_id} as subagent")
            return
        if session_id not in self._subagents:
            self._subagents.add(session_id)
            logger.info(f"Session {session_id} is a subagent, suppressing its notifications")

    # -------------------------------------------------------------------------
    # Reclamation
    # -------------------------------------------------------------------------

    def on_reclaimed(self, handler: ReclaimHandler) -> None:
        """Register a callback receiving the ids removed by each sweep."""
        self._reclaim_handlers.append(handler)

    def sweep(self, now: Optional[float] = None) -> list[str]:
        """Remove sessions not observed within the retention window.

        Args:
            now: Clock reading to measure age against (defaults to the tracker clock)

        Returns:
            Ids of the reclaimed sessions
        """
        now = self._clock() if now is None else now
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.last_seen > self.retention_sec
        ]

        for session_id in expired:
            del self._sessions[session_id]
            self._subagents.discard(session_id)

        if expired:
            logger.info(
                f"Reclaimed {len(expired)} stale session(s); {len(self._sessions)} tracked"
            )
            self._notify_reclaimed(expired)
        return expired

    def _notify_reclaimed(self, session_ids: Iterable[str]) -> None:
        removed = list(session_ids)
        for handler in self._reclaim_handlers:
            try:
                handler(removed)
            except Exception as e:
                logger.error(f"Reclaim handler error: {e}", exc_info=True)

    async def start(self) -> None:
        """Start the periodic reclamation sweep."""
        if self._running:
            return
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            f"Session tracker started (retention {self.retention_sec:.0f}s, "
            f"sweep every {self.sweep_interval_sec:.0f}s)"
        )

    async def stop(self) -> None:
        """Stop the reclamation sweep."""
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        logger.info("Session tracker stopped")

    async def _sweep_loop(self) -> None:
        """Periodically reclaim stale sessions."""
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval_sec)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Reclamation sweep error: {e}")
