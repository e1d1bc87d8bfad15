"""Shared test doubles for oc-notifier tests."""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from aiohttp import web
from multidict import CIMultiDict

from oc_notifier.errors import ProviderError
from oc_notifier.models import Notification, SessionInfo
from oc_notifier.providers import NotificationProvider


# =============================================================================
# Event frame builders
# =============================================================================


def status_payload(session_id: str, status_type: str, **extra: Any) -> dict:
    return {
        "type": "session.status",
        "properties": {"sessionID": session_id, "status": {"type": status_type, **extra}},
    }


def question_payload(
    session_id: str,
    tool_status: str,
    question: str = "Which database should I use?",
    call_id: str = "call-1",
) -> dict:
    return {
        "type": "message.part.updated",
        "properties": {
            "part": {
                "id": f"part-{call_id}",
                "sessionID": session_id,
                "messageID": "msg-1",
                "type": "tool",
                "callID": call_id,
                "tool": "question",
                "state": {
                    "status": tool_status,
                    "input": {"questions": [{"question": question, "header": "Choice"}]},
                },
            }
        },
    }


def sse_frame(payload: dict, directory: str = "/p") -> bytes:
    envelope = {"directory": directory, "payload": payload}
    return f"data: {json.dumps(envelope, ensure_ascii=False)}\n\n".encode()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout=timeout)


# =============================================================================
# Notification doubles
# =============================================================================


class RecordingProvider(NotificationProvider):
    """Provider that records notifications instead of posting them."""

    def __init__(
        self,
        name: str = "recording",
        fail: bool = False,
        enabled: bool = True,
        delay_sec: float = 0.0,
    ) -> None:
        super().__init__(enabled, http=None)
        self.type = name
        self.fail = fail
        self.delay_sec = delay_sec
        self.sent: list[Notification] = []

    def render(self, notification: Notification) -> dict[str, Any]:
        return notification.model_dump(mode="json")

    async def send(self, notification: Notification) -> None:
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if self.fail:
            raise ProviderError(self.type, 500, "boom")
        self.sent.append(notification)


class FakeSessionInfo:
    """Stand-in for SessionInfoClient with canned responses."""

    def __init__(self, sessions: Optional[dict[str, SessionInfo]] = None) -> None:
        self.sessions = sessions or {}
        self.calls: list[tuple[str, Optional[str]]] = []

    async def fetch(self, session_id: str, directory: Optional[str] = None) -> Optional[SessionInfo]:
        self.calls.append((session_id, directory))
        return self.sessions.get(session_id)


# =============================================================================
# Fake OpenCode server
# =============================================================================


@dataclass
class StreamScript:
    """What the fake server does for one /global/event connection."""

    status: int = 200
    chunks: list[bytes] = field(default_factory=list)
    hold: bool = True


class FakeOpenCodeServer:
    """aiohttp application mimicking the OpenCode endpoints used by the notifier."""

    def __init__(self) -> None:
        self.app = web.Application()
        self.app.router.add_get("/global/event", self._handle_events)
        self.app.router.add_get("/session/{session_id}", self._handle_session)

        self.base_url = ""
        self.scripts: list[StreamScript] = []
        self.default_script = StreamScript()
        self.event_requests: list[CIMultiDict] = []
        self.sessions: dict[str, dict] = {}
        self.session_requests: list[tuple[str, Optional[str], CIMultiDict]] = []
        self.release = asyncio.Event()

    @property
    def connections(self) -> int:
        return len(self.event_requests)

    def fail_with(self, status: int) -> None:
        """Answer every unscripted connection with an error status."""
        self.default_script = StreamScript(status=status)

    async def _handle_events(self, request: web.Request) -> web.StreamResponse:
        self.event_requests.append(request.headers.copy())
        script = self.scripts.pop(0) if self.scripts else self.default_script

        if script.status != 200:
            return web.Response(status=script.status, text="unavailable")

        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for chunk in script.chunks:
            await response.write(chunk)
            await asyncio.sleep(0)

        if script.hold:
            await self.release.wait()
        return response

    async def _handle_session(self, request: web.Request) -> web.Response:
        session_id = request.match_info["session_id"]
        self.session_requests.append(
            (session_id, request.query.get("directory"), request.headers.copy())
        )
        data = self.sessions.get(session_id)
        if data is None:
            return web.json_response({"error": "not found"}, status=404)
        return web.json_response(data)


class WebhookSink:
    """Records incoming webhook deliveries and answers with a set status."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self.status = 204
        self.url = ""
        self.app = web.Application()
        self.app.router.add_route("*", "/{name}", self._handle)

    async def _handle(self, request: web.Request) -> web.Response:
        body = await request.json() if request.can_read_body else None
        self.requests.append(
            {
                "method": request.method,
                "path": request.path,
                "headers": request.headers.copy(),
                "json": body,
            }
        )
        if self.status >= 400:
            return web.Response(status=self.status, text="rejected by sink")
        return web.Response(status=self.status)
