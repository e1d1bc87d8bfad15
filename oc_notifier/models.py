"""Pydantic models for oc-notifier.

This module defines the wire records received from the OpenCode server
(global event envelopes, session status and message part payloads, session
metadata) and the internal records built from them (tracked session state,
transition decisions, finalized notifications).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class StatusType(str, Enum):
    """Session status variants reported by the server."""

    IDLE = "idle"
    BUSY = "busy"
    RETRY = "retry"


class TransitionDecision(str, Enum):
    """Outcome of observing a status for a session."""

    NEW_SESSION = "new_session"
    UNCHANGED = "unchanged"
    BECAME_IDLE = "became_idle"
    BECAME_BUSY = "became_busy"


class NotificationType(str, Enum):
    """Why a notification was sent."""

    IDLE = "idle"
    QUESTION = "question"


# Event name constants for the global event stream
class EventNames:
    """Known payload types and tool identifiers from the OpenCode event stream."""

    SESSION_STATUS = "session.status"
    MESSAGE_PART_UPDATED = "message.part.updated"

    # Message part fields
    PART_TYPE_TOOL = "tool"
    QUESTION_TOOL = "question"

    # Tool state lifecycle
    TOOL_ACTIVE_STATES = frozenset({"pending", "running"})
    TOOL_FINISHED_STATES = frozenset({"completed", "error"})


# =============================================================================
# Wire models (event stream)
# =============================================================================


class SessionStatus(BaseModel):
    """Status of a session.

    `attempt`, `message` and `next` are only present for the retry variant
    and are passed through untouched.
    """

    model_config = ConfigDict(extra="allow")

    type: StatusType = Field(description="Status variant tag")
    attempt: Optional[int] = Field(default=None, description="Retry attempt number")
    message: Optional[str] = Field(default=None, description="Retry reason")
    next: Optional[float] = Field(default=None, description="Next retry time (epoch ms)")

    @property
    def is_idle(self) -> bool:
        return self.type == StatusType.IDLE


class EventPayload(BaseModel):
    """Inner event of a global envelope."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(description="Event type, e.g. session.status")
    properties: Optional[dict[str, Any]] = Field(
        default=None, description="Event-specific properties"
    )


class GlobalEvent(BaseModel):
    """Envelope emitted by /global/event, tagged with the project directory."""

    directory: str = Field(description="Project directory the event originated from")
    payload: EventPayload


class SessionStatusProperties(BaseModel):
    """Properties of a session.status event."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(alias="sessionID", min_length=1)
    status: SessionStatus


class ToolState(BaseModel):
    """Execution state of a tool call part."""

    model_config = ConfigDict(extra="allow")

    status: str = Field(description="pending, running, completed or error")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool input arguments")


class MessagePart(BaseModel):
    """A message part as carried by message.part.updated."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    session_id: str = Field(alias="sessionID", min_length=1)
    type: str
    tool: Optional[str] = None
    call_id: Optional[str] = Field(default=None, alias="callID")
    state: Optional[ToolState] = None

    @property
    def is_question_tool(self) -> bool:
        return (
            self.type == EventNames.PART_TYPE_TOOL
            and self.tool == EventNames.QUESTION_TOOL
            and self.state is not None
        )

    def question_text(self) -> Optional[str]:
        """Extract the question asked by a question tool call.

        The tool input either carries a list of questions (the first one is
        used) or a single `question` string.
        """
        if self.state is None:
            return None

        tool_input = self.state.input
        questions = tool_input.get("questions")
        if isinstance(questions, list) and questions:
            first = questions[0]
            if isinstance(first, dict):
                text = first.get("question") or first.get("header")
                if isinstance(text, str) and text.strip():
                    return text.strip()
            elif isinstance(first, str) and first.strip():
                return first.strip()

        text = tool_input.get("question")
        if isinstance(text, str) and text.strip():
            return text.strip()
        return None


class MessagePartProperties(BaseModel):
    """Properties of a message.part.updated event."""

    model_config = ConfigDict(extra="allow")

    part: MessagePart


# =============================================================================
# Session metadata
# =============================================================================


class SessionInfo(BaseModel):
    """Session metadata returned by GET /session/{id}."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    title: str
    project_id: str = Field(default="", alias="projectID")
    parent_id: Optional[str] = Field(default=None, alias="parentID")

    @property
    def is_subagent(self) -> bool:
        return bool(self.parent_id)

    @classmethod
    def from_response(cls, data: dict[str, Any], session_id: str) -> "SessionInfo":
        """Build from a server response, falling back to the requested id."""
        return cls(
            id=data.get("id") or session_id,
            title=data.get("title") or session_id,
            project_id=data.get("projectID") or "",
            parent_id=data.get("parentID") or None,
        )


# =============================================================================
# Internal state
# =============================================================================


class TrackedSession(BaseModel):
    """Last-known status of a session, kept by the state tracker."""

    session_id: str
    status: StatusType
    directory: str = ""
    last_seen: float = Field(description="Monotonic clock reading of the last observation")


class Notification(BaseModel):
    """A finalized notification handed to every provider."""

    model_config = ConfigDict(frozen=True)

    type: NotificationType = NotificationType.IDLE
    session_id: str
    session_title: str
    project_id: str = ""
    project_directory: str = ""
    desktop_url: str
    timestamp: datetime
    question: Optional[str] = None

    @property
    def project_name(self) -> str:
        """Last path component of the project directory."""
        name = self.project_directory.rstrip("/").rsplit("/", 1)[-1]
        return name or self.project_directory

    @property
    def display_title(self) -> str:
        return self.session_title or self.session_id


def build_desktop_url(base_url: str, project_id: str, session_id: str) -> str:
    """Build the OpenCode Desktop deep link for a session."""
    return f"{base_url.removesuffix('/')}/{project_id}/session/{session_id}"
