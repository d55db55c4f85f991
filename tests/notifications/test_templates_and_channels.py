import pytest

from notification_core.core.exceptions import (
    InvalidDeviceTokenError,
    TemplateError,
    ValidationError,
)
from notification_core.models.enums import NotificationType
from notification_core.modules.notifications import channels as channels_module
from notification_core.modules.notifications.channels import (
    EmailChannel,
    InAppChannel,
    PushChannel,
)
from notification_core.modules.notifications.templates import (
    NotificationTemplate,
    TemplateRegistry,
    default_registry,
)


def test_render_achievement_template():
    rendered = default_registry.get("achievement_unlocked").render(
        {
            "achievement_name": "First Steps",
            "achievement_description": "Finish your first session",
            "achievement_id": 7,
        }
    )

    assert rendered.title == "Achievement unlocked: First Steps"
    assert rendered.body == "Finish your first session"
    assert rendered.action_url == "/achievements/7"
    assert rendered.icon_name == "trophy"


def test_missing_variable_raises_template_error():
    with pytest.raises(TemplateError) as exc_info:
        default_registry.get("new_coaching_note").render({"note_title": "Week 10", "week_number": 10})

    assert exc_info.value.missing == "note_id"
    assert exc_info.value.details == {"template": "new_coaching_note", "variable": "note_id"}


def test_unknown_template_is_a_validation_error():
    with pytest.raises(ValidationError) as exc_info:
        default_registry.get("nope")
    assert exc_info.value.details["field"] == "template_name"


def test_registry_accepts_custom_templates():
    registry = TemplateRegistry([])
    registry.register(
        NotificationTemplate("ping", NotificationType.SYSTEM_ANNOUNCEMENT, "Hi {name}", "Body")
    )

    assert registry.names() == ["ping"]
    assert registry.get("ping").render({"name": "Ada"}).title == "Hi Ada"


def test_default_catalog_covers_scheduled_reminders():
    for name in (
        "daily_study_reminder",
        "new_motivational_message",
        "new_coaching_note",
        "study_plan_reminder",
        "streak_warning",
        "achievement_unlocked",
        "system_announcement",
    ):
        assert name in default_registry.names()


@pytest.mark.asyncio
async def test_in_app_channel_notifies_listeners_and_tolerates_failures():
    received = []

    async def broken(user_id, message):
        raise RuntimeError("socket closed")

    async def recorder(user_id, message):
        received.append((user_id, message["title"], message["notification_id"]))

    channel = InAppChannel([broken])
    channel.subscribe(recorder)

    delivered = await channel.send("42", "Hello", "World", {"notification_id": 9})

    assert delivered is True
    assert received == [(42, "Hello", 9)]


@pytest.mark.asyncio
async def test_email_channel_reports_failure_when_external_delivery_disabled():
    assert await EmailChannel().send("learner@example.com", "Subject", "Body", {}) is False


@pytest.mark.asyncio
async def test_push_channel_builds_platform_message(monkeypatch):
    sent = []

    def fake_send(message, dry_run=False):
        sent.append((message, dry_run))
        return "projects/demo/messages/1"

    monkeypatch.setattr(channels_module, "send_push_message", fake_send)

    delivered = await PushChannel().send(
        "device-token",
        "Title",
        "Body",
        {"platform": "android", "icon_name": "flame", "data": {"notification_id": 3, "action_url": None}},
    )

    assert delivered is True
    message, dry_run = sent[0]
    assert dry_run is False
    assert message.token == "device-token"
    assert message.data == {"notification_id": "3"}
    assert message.android is not None
    assert message.apns is None
    assert message.webpush is None


@pytest.mark.asyncio
async def test_push_verify_maps_rejected_token_to_false(monkeypatch):
    calls = []

    def rejecting(message, dry_run=False):
        calls.append(dry_run)
        raise InvalidDeviceTokenError(message.token)

    monkeypatch.setattr(channels_module, "send_push_message", rejecting)

    assert await PushChannel().verify("dead-token") is False
    assert calls == [True]
