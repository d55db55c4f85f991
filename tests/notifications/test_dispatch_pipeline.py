"""Dispatch pipeline: gating, delivery outcomes, idempotency and retention."""
import asyncio
from datetime import timedelta

import pytest

from notification_core.core.exceptions import InvalidDeviceTokenError, TemplateError
from notification_core.models.enums import DeliveryChannelName, NotificationStatus
from notification_core.modules.devices.models import DeviceToken
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.notifications.channels import DeliveryChannel
from notification_core.modules.notifications.models import Notification, NotificationDeliveryLog
from notification_core.modules.notifications.service import (
    NotificationDispatcher,
    NotificationRequest,
)
from notification_core.modules.preferences.service import PreferenceResolver

from tests.support import NOW

PUSH = DeliveryChannelName.PUSH
EMAIL = DeliveryChannelName.EMAIL
IN_APP = DeliveryChannelName.IN_APP


def _dispatcher(session, channels, when=NOW, **kwargs):
    def clock():
        return when

    return NotificationDispatcher(
        session,
        preferences=PreferenceResolver(session, timezone_name="UTC", clock=clock),
        registry=DeviceTokenRegistry(session, clock=clock),
        channels=channels,
        clock=clock,
        **kwargs,
    )


def _streak(dispatcher, user_id):
    return dispatcher.enqueue(user_id, "streak_reminder", "streak_warning", {"streak_type": "study"})


def _reload(session, model, pk):
    session.expire_all()
    return session.get(model, pk)


@pytest.fixture
def ios_token(session, test_user):
    return DeviceTokenRegistry(session, clock=lambda: NOW).register(test_user.id, "T", "ios")


@pytest.mark.asyncio
async def test_streak_reminder_is_delivered_end_to_end(session, test_user, ios_token, channels):
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)
    assert intent.status == NotificationStatus.PENDING

    summary = await dispatcher.process_pending()

    assert summary.as_dict() == {"processed": 1, "sent": 1, "failed": 0, "deferred": 0, "skipped": 0}
    stored = _reload(session, Notification, intent.id)
    assert stored.status == NotificationStatus.SENT
    assert stored.sent_at == NOW
    assert stored.attempts == 1
    assert _reload(session, DeviceToken, ios_token.id).last_used_at == NOW

    push_call = channels[PUSH].calls[0]
    assert push_call.token == "T"
    assert push_call.title == "Keep your study streak alive"
    assert push_call.payload["platform"] == "ios"
    assert push_call.payload["data"]["notification_id"] == intent.id
    assert channels[EMAIL].calls[0].token == test_user.email
    assert channels[IN_APP].calls[0].token == str(test_user.id)

    logs = session.query(NotificationDeliveryLog).filter_by(notification_id=intent.id).all()
    assert {log.channel for log in logs} == {PUSH, EMAIL, IN_APP}
    assert all(log.success for log in logs)


@pytest.mark.asyncio
async def test_second_pass_sends_nothing(session, test_user, ios_token, channels):
    dispatcher = _dispatcher(session, channels)
    _streak(dispatcher, test_user.id)
    await dispatcher.process_pending()

    again = await dispatcher.process_pending()

    assert again.processed == 0
    assert len(channels[PUSH].calls) == 1


@pytest.mark.asyncio
async def test_all_channels_disabled_defers_and_keeps_pending(session, test_user, ios_token, channels):
    dispatcher = _dispatcher(session, channels)
    dispatcher.preferences.update(
        test_user.id,
        "streak_reminder",
        {"push_enabled": False, "email_enabled": False, "in_app_enabled": False},
    )
    intent = _streak(dispatcher, test_user.id)

    summary = await dispatcher.process_pending()

    assert summary.deferred == 1
    assert _reload(session, Notification, intent.id).status == NotificationStatus.PENDING
    assert all(not channel.calls for channel in channels.values())


@pytest.mark.asyncio
async def test_quiet_hours_defer_until_window_ends(session, test_user, ios_token, channels):
    dispatcher = _dispatcher(session, channels)
    dispatcher.preferences.update(
        test_user.id,
        "streak_reminder",
        {"quiet_hours_start": "22:00", "quiet_hours_end": "07:00"},
    )
    intent = _streak(dispatcher, test_user.id)

    late = await dispatcher.process_pending(now=NOW.replace(hour=23))
    assert late.deferred == 1
    assert _reload(session, Notification, intent.id).status == NotificationStatus.PENDING

    morning = NOW.replace(day=3, hour=7, minute=1)
    summary = await dispatcher.process_pending(now=morning)

    assert summary.sent == 1
    assert _reload(session, Notification, intent.id).sent_at == morning


@pytest.mark.asyncio
async def test_frequency_cap_defers_repeat_within_window(session, test_user, ios_token, channels):
    dispatcher = _dispatcher(session, channels)
    dispatcher.preferences.update(test_user.id, "streak_reminder", {"frequency_hours": 24})
    _streak(dispatcher, test_user.id)
    assert (await dispatcher.process_pending()).sent == 1

    repeat = _streak(dispatcher, test_user.id)
    capped = await dispatcher.process_pending(now=NOW + timedelta(hours=1))
    assert capped.deferred == 1

    released = await dispatcher.process_pending(now=NOW + timedelta(hours=25))
    assert released.sent == 1
    assert _reload(session, Notification, repeat.id).status == NotificationStatus.SENT


@pytest.mark.asyncio
async def test_every_channel_failing_marks_intent_failed(session, test_user, ios_token, channel_factory):
    channels = {
        PUSH: channel_factory(PUSH, result=False),
        EMAIL: channel_factory(EMAIL, error=RuntimeError("smtp down")),
        IN_APP: channel_factory(IN_APP, result=False),
    }
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)

    summary = await dispatcher.process_pending()

    assert summary.failed == 1
    stored = _reload(session, Notification, intent.id)
    assert stored.status == NotificationStatus.FAILED
    assert stored.sent_at is None
    assert "smtp down" in stored.last_error
    logs = session.query(NotificationDeliveryLog).filter_by(notification_id=intent.id).all()
    assert len(logs) == 3
    assert not any(log.success for log in logs)

    # failed intents are never picked up again
    assert (await dispatcher.process_pending()).processed == 0


@pytest.mark.asyncio
async def test_one_channel_success_is_enough(session, test_user, channel_factory):
    # no device tokens and email rejected; in-app still lands
    channels = {
        PUSH: channel_factory(PUSH),
        EMAIL: channel_factory(EMAIL, result=False),
        IN_APP: channel_factory(IN_APP),
    }
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)

    summary = await dispatcher.process_pending()

    assert summary.sent == 1
    assert channels[PUSH].calls == []
    logs = {
        log.channel: log
        for log in session.query(NotificationDeliveryLog).filter_by(notification_id=intent.id)
    }
    assert logs[PUSH].error_message == "no active device tokens"
    assert logs[EMAIL].success is False
    assert logs[IN_APP].success is True


@pytest.mark.asyncio
async def test_invalid_token_is_disabled(session, test_user, ios_token, channels, channel_factory):
    channels[PUSH] = channel_factory(PUSH, error=InvalidDeviceTokenError("T"))
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)

    summary = await dispatcher.process_pending()

    assert summary.sent == 1
    token = _reload(session, DeviceToken, ios_token.id)
    assert token.is_active is False
    assert token.disabled_reason == "invalid_token"
    assert token.last_used_at is None
    assert _reload(session, Notification, intent.id).status == NotificationStatus.SENT


@pytest.mark.asyncio
async def test_slow_channel_times_out(session, test_user, ios_token, channel_factory):
    channels = {
        PUSH: channel_factory(PUSH, delay=0.5),
        EMAIL: channel_factory(EMAIL, result=False),
        IN_APP: channel_factory(IN_APP, result=False),
    }
    dispatcher = _dispatcher(session, channels, timeout=0.01)
    intent = _streak(dispatcher, test_user.id)

    summary = await dispatcher.process_pending()

    assert summary.failed == 1
    assert "timed out" in _reload(session, Notification, intent.id).last_error
    assert _reload(session, DeviceToken, ios_token.id).is_active is True


@pytest.mark.asyncio
async def test_overlapping_passes_deliver_once(session, test_user, ios_token, channels, channel_factory):
    channels[PUSH] = channel_factory(PUSH, delay=0.05)
    first = _dispatcher(session, channels)
    second = _dispatcher(session, channels)
    intent = _streak(first, test_user.id)

    results = await asyncio.gather(first.process_pending(), second.process_pending())

    assert sum(r.sent for r in results) == 1
    # the claimed row is invisible to the second scan
    assert sum(r.processed for r in results) == 1
    assert len(channels[PUSH].calls) == 1
    assert _reload(session, Notification, intent.id).attempts == 1


class _PerIntentDelayChannel(DeliveryChannel):
    """In-app double whose send time depends on the notification being delivered."""

    name = IN_APP

    def __init__(self, delays):
        self.delays = delays
        self.sent_ids = []

    async def send(self, token, title, body, payload):
        notification_id = payload["notification_id"]
        self.sent_ids.append(notification_id)
        await asyncio.sleep(self.delays.get(notification_id, 0))
        return True


@pytest.mark.asyncio
async def test_staggered_passes_do_not_resend_a_delivered_intent(session, session_factory, test_user):
    enqueuer = _dispatcher(session, {})
    first, second = _streak(enqueuer, test_user.id), _streak(enqueuer, test_user.id)
    channel = _PerIntentDelayChannel({first.id: 0.3, second.id: 0.01})
    early_db, late_db = session_factory(), session_factory()

    async def late_pass():
        await asyncio.sleep(0.05)
        return await _dispatcher(late_db, {IN_APP: channel}).process_pending()

    try:
        await asyncio.gather(_dispatcher(early_db, {IN_APP: channel}).process_pending(), late_pass())
    finally:
        early_db.close()
        late_db.close()

    assert sorted(channel.sent_ids) == sorted([first.id, second.id])
    assert _reload(session, Notification, first.id).status == NotificationStatus.SENT
    stored = _reload(session, Notification, second.id)
    assert stored.status == NotificationStatus.SENT
    assert stored.attempts == 1
    assert stored.claim_id is None


@pytest.mark.asyncio
async def test_deferred_backlog_does_not_starve_eligible_intents(
    session, test_user, user_factory, channels
):
    PreferenceResolver(session, timezone_name="UTC").update(
        test_user.id,
        "streak_reminder",
        {"push_enabled": False, "email_enabled": False, "in_app_enabled": False},
    )
    dispatcher = _dispatcher(session, channels, batch_size=3)
    backlog = [_streak(dispatcher, test_user.id) for _ in range(4)]
    eligible = _streak(dispatcher, user_factory().id)

    first = await dispatcher.process_pending()
    second = await dispatcher.process_pending()

    assert (first.processed, first.deferred) == (3, 3)
    assert second.sent == 1
    assert _reload(session, Notification, eligible.id).status == NotificationStatus.SENT
    # deferred rows keep rotating through later passes
    third = await dispatcher.process_pending()
    assert third.deferred == 3
    statuses = {_reload(session, Notification, n.id).status for n in backlog}
    assert statuses == {NotificationStatus.PENDING}


@pytest.mark.asyncio
async def test_expired_claim_from_a_dead_pass_is_taken_over(session, test_user, channels):
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)
    assert dispatcher.repository.claim(intent.id, "dead-pass", NOW - timedelta(hours=1), 600)

    still_held = await _dispatcher(session, channels, when=NOW - timedelta(minutes=59)).process_pending()
    assert still_held.processed == 0
    summary = await dispatcher.process_pending()

    assert summary.sent == 1
    assert _reload(session, Notification, intent.id).claim_id is None


@pytest.mark.asyncio
async def test_read_and_delivery_acknowledgements_move_forward_only(
    session, test_user, user_factory, ios_token, channels
):
    dispatcher = _dispatcher(session, channels)
    intent = _streak(dispatcher, test_user.id)
    assert dispatcher.mark_read(intent.id, test_user.id) is False

    await dispatcher.process_pending()

    assert dispatcher.mark_read(intent.id, user_factory().id) is False
    assert dispatcher.mark_delivered(intent.id) is True
    assert dispatcher.mark_read(intent.id, test_user.id) is True
    assert dispatcher.mark_delivered(intent.id) is False
    stored = _reload(session, Notification, intent.id)
    assert stored.status == NotificationStatus.READ
    assert stored.read_at == NOW
    assert dispatcher.get_stats()["read"] == 1


def test_enqueue_bulk_reports_item_failures(session, user_factory, channels):
    dispatcher = _dispatcher(session, channels)
    first, second = user_factory(), user_factory()

    result = dispatcher.enqueue_bulk(
        [
            NotificationRequest(first.id, "streak_reminder", "streak_warning", {"streak_type": "study"}),
            NotificationRequest(second.id, "streak_reminder", "streak_warning", {}),
        ]
    )

    assert (result.successful, result.failed) == (1, 1)
    assert result.results[0]["notification_id"] is not None
    assert result.results[1] == {
        "user_id": second.id,
        "success": False,
        "error": "Template 'streak_warning' is missing variable 'streak_type'",
    }
    assert session.query(Notification).count() == 1


def test_enqueue_with_missing_variable_raises(session, test_user, channels):
    with pytest.raises(TemplateError):
        _dispatcher(session, channels).enqueue(test_user.id, "streak_reminder", "streak_warning")


@pytest.mark.asyncio
async def test_cleanup_removes_old_intents_and_their_logs(session, test_user, ios_token, channels):
    old = _dispatcher(session, channels, when=NOW - timedelta(days=40))
    stale = _streak(old, test_user.id)
    await old.process_pending()
    dispatcher = _dispatcher(session, channels)
    fresh = _streak(dispatcher, test_user.id)

    stale_id = stale.id

    removed = dispatcher.cleanup_old_notifications(retention_days=30)

    assert removed == [stale_id]
    assert [n.id for n in session.query(Notification).all()] == [fresh.id]
    assert session.query(NotificationDeliveryLog).count() == 0
