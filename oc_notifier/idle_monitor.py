"""Idle and question detection for OpenCode sessions.

Consumes session status and tool part events, decides when a session has
finished working, and dispatches notifications after a debounce window:

    busy/retry → idle    schedule idle timer (debounce_sec)
    idle → busy/retry    cancel idle timer
    timer expires        re-check status → fetch session info
                         → parent session? mark subagent, stop
                         → build notification → fan out

Question tool calls take a separate path: the first time a given question
(by text prefix) is seen for a session, a question timer is scheduled; the
timer is canceled if the tool call finishes before it fires.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .debounce import DebounceScheduler
from .models import (
    EventNames,
    MessagePart,
    Notification,
    NotificationType,
    SessionInfo,
    SessionStatusProperties,
    StatusType,
    TransitionDecision,
    build_desktop_url,
)
from .notifier import Notifier
from .session_info import SessionInfoClient
from .session_tracker import SessionStateTracker

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SEC = 3.0
QUESTION_PREFIX_LENGTH = 100


def idle_timer_key(session_id: str) -> str:
    return f"idle:{session_id}"


def question_timer_key(session_id: str) -> str:
    return f"question:{session_id}"


class IdleMonitor:
    """Turns session events into debounced notifications."""

    def __init__(
        self,
        tracker: SessionStateTracker,
        session_info: SessionInfoClient,
        notifier: Notifier,
        desktop_base_url: str,
        debounce_sec: float = DEFAULT_DEBOUNCE_SEC,
        notify_on_question: bool = True,
        scheduler: Optional[DebounceScheduler] = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            tracker: Per-session status tracker
            session_info: Session metadata lookup
            notifier: Fan-out to notification providers
            desktop_base_url: Base URL for OpenCode Desktop deep links
            debounce_sec: Delay before notifying; canceled if the session resumes
            notify_on_question: Whether question tool calls produce notifications
            scheduler: Timer scheduler (a private one is created if omitted)
        """
        if debounce_sec < 0:
            raise ValueError("debounce_sec must be non-negative")

        self.tracker = tracker
        self.session_info = session_info
        self.notifier = notifier
        self.desktop_base_url = desktop_base_url
        self.debounce_sec = debounce_sec
        self.notify_on_question = notify_on_question
        self.scheduler = scheduler or DebounceScheduler()

        # Question text prefixes already notified: session_id -> prefixes
        self._notified_questions: dict[str, set[str]] = {}

        # Call id of the question each pending question timer belongs to
        self._pending_question_calls: dict[str, Optional[str]] = {}

        self.tracker.on_reclaimed(self._on_sessions_reclaimed)

    # -------------------------------------------------------------------------
    # Event handlers (registered on SSEClient)
    # -------------------------------------------------------------------------

    def handle_session_status(self, event: SessionStatusProperties, directory: str) -> None:
        """Process a session.status event."""
        session_id = event.session_id
        status = event.status.type
        decision = self.tracker.observe(session_id, status, directory)

        if status != StatusType.IDLE:
            if self.scheduler.cancel(idle_timer_key(session_id)):
                logger.info(f"Session {session_id} resumed ({status.value}), idle notification canceled")
            else:
                logger.debug(f"Session {session_id} status: {status.value} (project: {directory})")
            return

        if decision != TransitionDecision.BECAME_IDLE:
            logger.debug(f"Session {session_id} idle ({decision.value}), not a transition")
            return

        if self.tracker.is_subagent(session_id):
            logger.debug(f"Session {session_id} is a subagent, ignoring idle transition")
            return

        logger.info(f"Session {session_id} transitioned to idle (project: {directory})")
        self.scheduler.schedule(
            idle_timer_key(session_id),
            self.debounce_sec,
            lambda: self._on_idle_timer(session_id, directory),
        )

    def handle_message_part(self, part: MessagePart, directory: str) -> None:
        """Process a message.part.updated event for a tool part."""
        if not self.notify_on_question or not part.is_question_tool:
            return

        session_id = part.session_id
        key = question_timer_key(session_id)
        tool_status = part.state.status if part.state else ""

        if tool_status in EventNames.TOOL_FINISHED_STATES:
            pending_call = self._pending_question_calls.get(key)
            if self.scheduler.is_pending(key) and pending_call in (None, part.call_id):
                self.scheduler.cancel(key)
                self._pending_question_calls.pop(key, None)
                logger.info(f"Session {session_id} question answered, notification canceled")
            return

        if tool_status not in EventNames.TOOL_ACTIVE_STATES:
            return

        question = part.question_text()
        if not question:
            logger.debug(f"Session {session_id} question tool call without question text")
            return

        if self.tracker.is_subagent(session_id):
            logger.debug(f"Session {session_id} is a subagent, ignoring question")
            return

        prefix = question[:QUESTION_PREFIX_LENGTH]
        notified = self._notified_questions.setdefault(session_id, set())
        if prefix in notified:
            return

        if self.scheduler.schedule(
            key,
            self.debounce_sec,
            lambda: self._on_question_timer(session_id, directory, question),
        ):
            notified.add(prefix)
            self._pending_question_calls[key] = part.call_id
            logger.info(f"Session {session_id} asked a question (project: {directory})")

    # -------------------------------------------------------------------------
    # Timer callbacks
    # -------------------------------------------------------------------------

    async def _on_idle_timer(self, session_id: str, directory: str) -> None:
        # A busy event may have raced the timer
        if self.tracker.status_of(session_id) != StatusType.IDLE:
            logger.debug(f"Session {session_id} no longer idle, skipping notification")
            return

        info = await self.session_info.fetch(session_id, directory)
        if info is not None and info.is_subagent:
            self.tracker.mark_subagent(session_id)
            return

        # Re-check after the lookup suspended
        if self.tracker.status_of(session_id) != StatusType.IDLE:
            logger.debug(f"Session {session_id} resumed during lookup, skipping notification")
            return

        await self._dispatch(
            self.build_notification(NotificationType.IDLE, session_id, directory, info)
        )

    async def _on_question_timer(self, session_id: str, directory: str, question: str) -> None:
        self._pending_question_calls.pop(question_timer_key(session_id), None)

        info = await self.session_info.fetch(session_id, directory)
        if info is not None and info.is_subagent:
            self.tracker.mark_subagent(session_id)
            return

        await self._dispatch(
            self.build_notification(
                NotificationType.QUESTION, session_id, directory, info, question=question
            )
        )

    async def _dispatch(self, notification: Notification) -> None:
        failures = await self.notifier.send(notification)
        if failures:
            logger.warning(
                f"Notification for {notification.session_id} failed on {failures} provider(s)"
            )

    def build_notification(
        self,
        notification_type: NotificationType,
        session_id: str,
        directory: str,
        info: Optional[SessionInfo],
        question: Optional[str] = None,
    ) -> Notification:
        """Build a notification, using identifier-only fallbacks without session info."""
        project_id = info.project_id if info else ""
        return Notification(
            type=notification_type,
            session_id=session_id,
            session_title=info.title if info else session_id,
            project_id=project_id,
            project_directory=directory,
            desktop_url=build_desktop_url(self.desktop_base_url, project_id, session_id),
            timestamp=datetime.now(timezone.utc),
            question=question,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _on_sessions_reclaimed(self, session_ids: list[str]) -> None:
        for session_id in session_ids:
            self.scheduler.cancel(idle_timer_key(session_id))
            self.scheduler.cancel(question_timer_key(session_id))
            self._pending_question_calls.pop(question_timer_key(session_id), None)
            self._notified_questions.pop(session_id, None)

    def pending_sessions(self) -> list[str]:
        """Session ids with a pending idle notification."""
        prefix = idle_timer_key("")
        return [
            key[len(prefix):] for key in self.scheduler.pending_keys() if key.startswith(prefix)
        ]

    async def stop(self) -> None:
        """Cancel all pending notifications."""
        canceled = self.scheduler.cancel_all()
        self._pending_question_calls.clear()
        if canceled:
            logger.info(f"Canceled {canceled} pending notification(s)")
