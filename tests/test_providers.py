"""
Tests for notification providers, the provider factory and the Notifier
fan-out.

Webhook deliveries are posted to the WebhookSink fixture.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from helpers import RecordingProvider
from oc_notifier.config import (
    DiscordProviderConfig,
    MSTeamsProviderConfig,
    WebhookProviderConfig,
)
from oc_notifier.errors import ConfigError, ProviderError
from oc_notifier.models import Notification, NotificationType, build_desktop_url
from oc_notifier.notifier import Notifier
from oc_notifier.providers import (
    DiscordProvider,
    MSTeamsProvider,
    WebhookProvider,
    create_provider,
    create_providers,
)


@pytest.fixture
def idle_notification() -> Notification:
    return Notification(
        type=NotificationType.IDLE,
        session_id="ses_1",
        session_title="Fix flaky test",
        project_id="prj_1",
        project_directory="/home/dev/projects/webapp",
        desktop_url="opencode://prj_1/session/ses_1",
        timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def question_notification(idle_notification) -> Notification:
    return idle_notification.model_copy(
        update={"type": NotificationType.QUESTION, "question": "Keep the old API?"}
    )


class TestNotificationModel:
    """Test derived notification fields."""

    def test_project_name_is_last_path_component(self, idle_notification):
        assert idle_notification.project_name == "webapp"

    def test_project_name_with_trailing_slash(self, idle_notification):
        notification = idle_notification.model_copy(update={"project_directory": "/srv/api/"})
        assert notification.project_name == "api"

    def test_display_title_falls_back_to_id(self, idle_notification):
        notification = idle_notification.model_copy(update={"session_title": ""})
        assert notification.display_title == "ses_1"


class TestDesktopUrl:
    """Test deep link construction."""

    def test_scheme_base_keeps_double_slash(self):
        assert build_desktop_url("opencode://", "prj_1", "ses_1") == "opencode://prj_1/session/ses_1"

    def test_http_base_with_trailing_slash(self):
        url = build_desktop_url("http://desktop.local/", "prj_1", "ses_1")
        assert url == "http://desktop.local/prj_1/session/ses_1"

    def test_only_one_trailing_slash_removed(self):
        assert build_desktop_url("http://x//", "p", "s") == "http://x//p/session/s"


class TestDiscordProvider:
    """Test the Discord embed payload."""

    def test_render_idle(self, idle_notification):
        config = DiscordProviderConfig(type="discord", enabled=True, webhook_url="http://x/d")
        payload = DiscordProvider(config, http=None).render(idle_notification)

        embed = payload["embeds"][0]
        assert embed["title"] == "Session Idle"
        assert embed["url"] == "opencode://prj_1/session/ses_1"
        assert embed["timestamp"] == "2026-01-02T03:04:05+00:00"
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields == {
            "Project": "webapp",
            "Session": "Fix flaky test",
            "Status": "Ready for input",
        }
        button = payload["components"][0]["components"][0]
        assert payload["components"][0]["type"] == 1
        assert button["type"] == 2
        assert button["style"] == 5
        assert button["url"] == "opencode://prj_1/session/ses_1"

    def test_render_question(self, question_notification):
        config = DiscordProviderConfig(type="discord", enabled=True, webhook_url="http://x/d")
        embed = DiscordProvider(config, http=None).render(question_notification)["embeds"][0]

        assert embed["title"] == "Question Asked"
        fields = {f["name"]: f["value"] for f in embed["fields"]}
        assert fields["Question"] == "Keep the old API?"
        assert fields["Status"] == "Waiting for answer"

    @pytest.mark.asyncio
    async def test_send(self, sink, http, idle_notification):
        config = DiscordProviderConfig(
            type="discord", enabled=True, webhook_url=f"{sink.url}/discord"
        )
        await DiscordProvider(config, http).send(idle_notification)

        request = sink.requests[0]
        assert request["method"] == "POST"
        assert request["path"] == "/discord"
        assert request["json"]["embeds"][0]["title"] == "Session Idle"

    @pytest.mark.asyncio
    async def test_send_rejected(self, sink, http, idle_notification):
        sink.status = 400
        config = DiscordProviderConfig(
            type="discord", enabled=True, webhook_url=f"{sink.url}/discord"
        )

        with pytest.raises(ProviderError) as exc_info:
            await DiscordProvider(config, http).send(idle_notification)

        assert exc_info.value.status == 400
        assert exc_info.value.provider == "discord"
        assert "rejected by sink" in str(exc_info.value)


class TestMSTeamsProvider:
    """Test the Adaptive Card payload."""

    def test_render(self, question_notification):
        config = MSTeamsProviderConfig(type="msteams", enabled=True, webhook_url="http://x/t")
        payload = MSTeamsProvider(config, http=None).render(question_notification)

        assert payload["type"] == "message"
        card = payload["attachments"][0]["content"]
        assert payload["attachments"][0]["contentType"] == "application/vnd.microsoft.card.adaptive"
        assert card["version"] == "1.4"
        assert card["body"][0]["text"] == "Question Asked"
        facts = {f["title"]: f["value"] for f in card["body"][1]["facts"]}
        assert facts["Project"] == "webapp"
        assert any(block.get("text") == "Keep the old API?" for block in card["body"])
        assert card["actions"][0]["type"] == "Action.OpenUrl"
        assert card["actions"][0]["url"] == "opencode://prj_1/session/ses_1"

    @pytest.mark.asyncio
    async def test_send(self, sink, http, idle_notification):
        config = MSTeamsProviderConfig(
            type="msteams", enabled=True, webhook_url=f"{sink.url}/teams"
        )
        await MSTeamsProvider(config, http).send(idle_notification)

        assert sink.requests[0]["path"] == "/teams"
        assert sink.requests[0]["json"]["attachments"][0]["content"]["type"] == "AdaptiveCard"


class TestWebhookProvider:
    """Test the generic JSON webhook."""

    def test_render_idle(self, idle_notification):
        config = WebhookProviderConfig(type="webhook", enabled=True, url="http://x/h")
        body = WebhookProvider(config, http=None).render(idle_notification)

        assert body == {
            "event": "session.idle",
            "session": {"id": "ses_1", "title": "Fix flaky test"},
            "project": {"id": "prj_1", "directory": "/home/dev/projects/webapp"},
            "desktopUrl": "opencode://prj_1/session/ses_1",
            "timestamp": "2026-01-02T03:04:05+00:00",
        }

    def test_render_question(self, question_notification):
        config = WebhookProviderConfig(type="webhook", enabled=True, url="http://x/h")
        body = WebhookProvider(config, http=None).render(question_notification)

        assert body["event"] == "session.question"
        assert body["question"] == "Keep the old API?"

    @pytest.mark.asyncio
    async def test_send_with_method_and_headers(self, sink, http, idle_notification):
        config = WebhookProviderConfig(
            type="webhook",
            enabled=True,
            url=f"{sink.url}/hook",
            method="PUT",
            headers={"X-Token": "abc"},
        )
        await WebhookProvider(config, http).send(idle_notification)

        request = sink.requests[0]
        assert request["method"] == "PUT"
        assert request["headers"]["X-Token"] == "abc"
        assert request["json"]["event"] == "session.idle"


class TestProviderFactory:
    """Test building providers from config entries."""

    def test_create_each_type(self):
        providers = create_providers(
            [
                DiscordProviderConfig(type="discord", enabled=True, webhook_url="http://x/d"),
                MSTeamsProviderConfig(type="msteams", webhook_url="http://x/t"),
                WebhookProviderConfig(type="webhook", enabled=True, url="http://x/h"),
            ],
            http=None,
        )

        assert [type(p) for p in providers] == [DiscordProvider, MSTeamsProvider, WebhookProvider]
        assert [p.enabled for p in providers] == [True, False, True]

    def test_unknown_config_rejected(self):
        with pytest.raises(ConfigError):
            create_provider(object(), http=None)


class TestNotifier:
    """Test fan-out to multiple providers."""

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, idle_notification):
        first = RecordingProvider("first")
        broken = RecordingProvider("broken", fail=True)
        third = RecordingProvider("third")

        failures = await Notifier([first, broken, third]).send(idle_notification)

        assert failures == 1
        assert first.sent == [idle_notification]
        assert third.sent == [idle_notification]

    @pytest.mark.asyncio
    async def test_disabled_providers_skipped(self, idle_notification):
        enabled = RecordingProvider("on")
        disabled = RecordingProvider("off", enabled=False)

        notifier = Notifier([enabled, disabled])
        failures = await notifier.send(idle_notification)

        assert failures == 0
        assert notifier.providers == [enabled]
        assert disabled.sent == []

    @pytest.mark.asyncio
    async def test_no_providers(self, idle_notification, caplog):
        with caplog.at_level("WARNING"):
            notifier = Notifier([])

        assert "No enabled notification providers" in caplog.text
        assert await notifier.send(idle_notification) == 0

    @pytest.mark.asyncio
    async def test_deliveries_run_concurrently(self, idle_notification):
        """A slow provider does not delay the others."""
        slow = RecordingProvider("slow", delay_sec=0.2)
        fast = RecordingProvider("fast")

        task = asyncio.create_task(Notifier([slow, fast]).send(idle_notification))
        await asyncio.sleep(0.05)

        assert fast.sent == [idle_notification]
        assert slow.sent == []
        assert await task == 0
        assert slow.sent == [idle_notification]
