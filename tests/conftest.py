"""Pytest configuration and fixtures for oc-notifier tests."""

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from helpers import FakeOpenCodeServer, FakeSessionInfo, RecordingProvider, WebhookSink
from oc_notifier.config import OpenCodeConfig
from oc_notifier.idle_monitor import IdleMonitor
from oc_notifier.notifier import Notifier
from oc_notifier.session_tracker import SessionStateTracker


@pytest_asyncio.fixture
async def opencode_server():
    """Fake OpenCode server listening on a random local port."""
    fake = FakeOpenCodeServer()
    server = TestServer(fake.app)
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    try:
        yield fake
    finally:
        fake.release.set()
        await server.close()


@pytest_asyncio.fixture
async def sink():
    """Webhook receiver listening on a random local port."""
    webhook_sink = WebhookSink()
    server = TestServer(webhook_sink.app)
    await server.start_server()
    webhook_sink.url = str(server.make_url("/")).rstrip("/")
    try:
        yield webhook_sink
    finally:
        await server.close()


@pytest_asyncio.fixture
async def http():
    """Shared aiohttp client session."""
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def opencode_config(opencode_server: FakeOpenCodeServer) -> OpenCodeConfig:
    return OpenCodeConfig(
        base_url=opencode_server.base_url,
        desktop_base_url="http://desktop.local/",
    )


@pytest.fixture
def tracker() -> SessionStateTracker:
    return SessionStateTracker()


@pytest.fixture
def provider() -> RecordingProvider:
    return RecordingProvider()


@pytest.fixture
def session_info() -> FakeSessionInfo:
    return FakeSessionInfo()


@pytest.fixture
def monitor(
    tracker: SessionStateTracker,
    session_info: FakeSessionInfo,
    provider: RecordingProvider,
) -> IdleMonitor:
    """Idle monitor with a 50ms debounce window and a recording provider."""
    return IdleMonitor(
        tracker=tracker,
        session_info=session_info,
        notifier=Notifier([provider]),
        desktop_base_url="http://desktop.local/",
        debounce_sec=0.05,
    )
