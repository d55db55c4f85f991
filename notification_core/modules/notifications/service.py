"""Dispatch pipeline: turns notification intents into channel deliveries.

Responsibilities:
- Resolve templates into pending intents (`enqueue`, `enqueue_bulk`).
- Scan pending intents, apply preference gating (channels, quiet hours,
  frequency caps) and deliver over every enabled channel.
- Record the outcome with status-guarded updates, and keep per-channel
  delivery logs.
- Retention cleanup and read/delivery acknowledgements.

Gated intents stay ``pending``, are stamped with ``last_evaluated_at`` and move
behind never-evaluated intents, so deferred rows cannot starve the scan window;
they are re-evaluated against the wall clock of a later pass. A pass delivers an
intent only after claiming it with a guarded update on the row, so overlapping
passes, in this process or another, send it at most once. An intent is marked ``failed`` only when every enabled
channel errored; the pipeline never re-queues a failed intent by itself.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from notification_core.core.config import settings
from notification_core.core.exceptions import (
    BatchItemError,
    InvalidDeviceTokenError,
    TransientDeliveryError,
)
from notification_core.models.enums import DeliveryChannelName, parse_notification_type
from notification_core.modules.devices.models import TokenDisableReason
from notification_core.modules.devices.service import DeviceTokenRegistry
from notification_core.modules.preferences.schemas import Preference
from notification_core.modules.preferences.service import PreferenceResolver
from notification_core.modules.users.repository import UserRepository

from .channels import DeliveryChannel, default_channels
from .common import in_flight_cache, logger
from .models import Notification
from .repository import NotificationRepository
from .templates import TemplateRegistry, default_registry

ChannelOutcome = Tuple[str, bool, Optional[str]]


@dataclass(frozen=True)
class NotificationRequest:
    user_id: int
    notification_type: Any
    template_name: str
    variables: Mapping[str, Any] = field(default_factory=dict)
    metadata: Optional[Mapping[str, Any]] = None


@dataclass
class BulkEnqueueResult:
    successful: int = 0
    failed: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DispatchSummary:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    deferred: int = 0
    skipped: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class NotificationDispatcher:
    """Enqueue intents and deliver pending ones through the enabled channels."""

    def __init__(
        self,
        db: Session,
        *,
        preferences: Optional[PreferenceResolver] = None,
        registry: Optional[DeviceTokenRegistry] = None,
        users: Optional[UserRepository] = None,
        channels: Optional[Mapping[DeliveryChannelName, DeliveryChannel]] = None,
        templates: Optional[TemplateRegistry] = None,
        claims: Optional[MutableMapping[int, datetime]] = None,
        timeout: Optional[float] = None,
        batch_size: Optional[int] = None,
        clock=None,
    ):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.repository = NotificationRepository(db)
        self.preferences = preferences or PreferenceResolver(db, clock=self._clock)
        self.registry = registry or DeviceTokenRegistry(db, clock=self._clock)
        self.users = users or UserRepository(db)
        self.channels = dict(channels) if channels is not None else default_channels()
        self.templates = templates or default_registry
        self.claims = claims if claims is not None else in_flight_cache
        self.timeout = timeout or settings.channel_timeout_seconds
        self.batch_size = batch_size or settings.pending_batch_size
        self.claim_ttl = settings.in_flight_claim_ttl_seconds

    # ------------------------------------------------------------------ enqueue
    def enqueue(
        self,
        user_id: int,
        notification_type,
        template_name: str,
        variables: Optional[Mapping[str, Any]] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Notification:
        """Render ``template_name`` and store a pending intent."""
        ntype = parse_notification_type(notification_type)
        rendered = self.templates.get(template_name).render(variables or {})
        notification = self.repository.create(
            user_id=user_id,
            notification_type=ntype,
            template_name=template_name,
            title=rendered.title,
            body=rendered.body,
            action_url=rendered.action_url,
            icon_name=rendered.icon_name,
            notification_metadata=dict(metadata or {}),
            created_at=self._clock(),
        )
        logger.debug(
            "Enqueued %s notification %s for user %s",
            ntype.value,
            notification.id,
            user_id,
        )
        return notification

    def enqueue_bulk(self, requests: Iterable[NotificationRequest]) -> BulkEnqueueResult:
        result = BulkEnqueueResult()
        for request in requests:
            try:
                notification = self.enqueue(
                    request.user_id,
                    request.notification_type,
                    request.template_name,
                    request.variables,
                    request.metadata,
                )
            except Exception as exc:
                self.repository.db.rollback()
                error = BatchItemError(request.user_id, exc)
                logger.warning("Bulk enqueue item failed: %s", error.message)
                result.failed += 1
                result.results.append(
                    {"user_id": request.user_id, "success": False, "error": str(exc)}
                )
                continue
            result.successful += 1
            result.results.append(
                {"user_id": request.user_id, "success": True, "notification_id": notification.id}
            )
        logger.info(
            "Bulk enqueue finished: %s successful, %s failed", result.successful, result.failed
        )
        return result

    # ----------------------------------------------------------------- dispatch
    async def process_pending(self, now: Optional[datetime] = None) -> DispatchSummary:
        """Deliver every eligible pending intent once; safe to run concurrently."""
        summary = DispatchSummary()
        scan_time = now or self._clock()
        for intent in self.repository.pending(self.batch_size, scan_time, self.claim_ttl):
            summary.processed += 1
            intent_id = sa_inspect(intent).identity[0]
            try:
                outcome = await self._process_one(intent, now or self._clock())
            except Exception as exc:
                # Store unreachable or similar: leave the intent pending for the next pass.
                self.repository.db.rollback()
                logger.error("Dispatch of notification %s aborted: %s", intent_id, exc)
                outcome = "skipped"
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        if summary.processed:
            logger.info("Processed pending notifications: %s", summary.as_dict())
        return summary

    def deferral_reason(self, preference: Preference, now: datetime) -> Optional[str]:
        if not preference.enabled_channels():
            return "all channels disabled"
        if self.preferences.is_quiet_hours(preference, now):
            return "quiet hours"
        if preference.frequency_hours > 0:
            last_sent = self.repository.last_sent_at(
                preference.user_id, preference.notification_type
            )
            if last_sent and now - last_sent < timedelta(hours=preference.frequency_hours):
                return "frequency cap"
        return None

    async def _process_one(self, intent: Notification, now: datetime) -> str:
        intent_id = intent.id
        if intent_id in self.claims:
            return "skipped"
        claim_id = uuid.uuid4().hex
        # The row may have been sent by another pass since this one read it.
        if not self.repository.claim(intent_id, claim_id, now, self.claim_ttl):
            return "skipped"
        self.claims[intent_id] = now
        try:
            preference = self.preferences.resolve(intent.user_id, intent.notification_type)
            reason = self.deferral_reason(preference, now)
            if reason:
                logger.debug("Deferring notification %s: %s", intent_id, reason)
                self.repository.mark_deferred(intent_id, now)
                return "deferred"

            outcomes = await self._deliver(intent, preference, now)
            self.repository.add_delivery_logs(intent_id, outcomes, now)
            if any(success for _, success, _ in outcomes):
                return "sent" if self.repository.mark_sent(intent_id, now) else "skipped"

            errors = "; ".join(f"{channel}: {error}" for channel, _, error in outcomes)
            logger.warning("All channels failed for notification %s: %s", intent_id, errors)
            return "failed" if self.repository.mark_failed(intent_id, errors) else "skipped"
        except Exception:
            self.repository.db.rollback()
            raise
        finally:
            self.claims.pop(intent_id, None)
            self.repository.release(intent_id, claim_id)

    async def _deliver(
        self, intent: Notification, preference: Preference, now: datetime
    ) -> List[ChannelOutcome]:
        message = {
            "notification_id": intent.id,
            "user_id": intent.user_id,
            "notification_type": intent.notification_type.value,
            "title": intent.title,
            "body": intent.body,
            "action_url": intent.action_url,
            "icon_name": intent.icon_name,
        }
        handlers = {
            DeliveryChannelName.PUSH: self._deliver_push,
            DeliveryChannelName.EMAIL: self._deliver_email,
            DeliveryChannelName.IN_APP: self._deliver_in_app,
        }
        attempts = []
        for name in preference.enabled_channels():
            channel = self.channels.get(name)
            if channel is None:
                attempts.append(self._unavailable(name))
            else:
                attempts.append(handlers[name](channel, message, now))
        return list(await asyncio.gather(*attempts))

    async def _unavailable(self, name: DeliveryChannelName) -> ChannelOutcome:
        return name.value, False, "channel not configured"

    async def _send_bounded(
        self, channel: DeliveryChannel, address: str, message: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> None:
        try:
            delivered = await asyncio.wait_for(
                channel.send(address, message["title"], message["body"], payload),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransientDeliveryError(
                channel.name.value, f"timed out after {self.timeout}s"
            ) from exc
        except TransientDeliveryError:
            raise
        except Exception as exc:
            raise TransientDeliveryError(channel.name.value, str(exc)) from exc
        if not delivered:
            raise TransientDeliveryError(channel.name.value, "channel reported failure")

    async def _deliver_push(self, channel, message, now) -> ChannelOutcome:
        tokens = [
            (token.id, token.token, token.platform.value)
            for token in self.registry.active_tokens_for_user(message["user_id"])
        ]
        if not tokens:
            return DeliveryChannelName.PUSH.value, False, "no active device tokens"

        delivered, errors = 0, []
        for token_id, address, platform in tokens:
            payload = {
                "platform": platform,
                "icon_name": message["icon_name"],
                "data": {
                    "notification_id": message["notification_id"],
                    "type": message["notification_type"],
                    "action_url": message["action_url"],
                },
            }
            try:
                await self._send_bounded(channel, address, message, payload)
            except InvalidDeviceTokenError as exc:
                self.registry.disable_token(token_id, TokenDisableReason.INVALID_TOKEN.value)
                errors.append(f"token {token_id}: {exc.message}")
                continue
            except TransientDeliveryError as exc:
                errors.append(f"token {token_id}: {exc.message}")
                continue
            delivered += 1
            self.registry.touch_last_used(token_id, now)

        if delivered:
            return DeliveryChannelName.PUSH.value, True, None
        return DeliveryChannelName.PUSH.value, False, "; ".join(errors)

    async def _deliver_email(self, channel, message, now) -> ChannelOutcome:
        address = self.users.emails_for([message["user_id"]]).get(message["user_id"])
        if not address:
            return DeliveryChannelName.EMAIL.value, False, "no email address"
        try:
            await self._send_bounded(channel, address, message, message)
        except TransientDeliveryError as exc:
            return DeliveryChannelName.EMAIL.value, False, exc.message
        return DeliveryChannelName.EMAIL.value, True, None

    async def _deliver_in_app(self, channel, message, now) -> ChannelOutcome:
        try:
            await self._send_bounded(channel, str(message["user_id"]), message, message)
        except TransientDeliveryError as exc:
            return DeliveryChannelName.IN_APP.value, False, exc.message
        return DeliveryChannelName.IN_APP.value, True, None

    # ------------------------------------------------------------ maintenance
    def cleanup_old_notifications(self, retention_days: Optional[int] = None) -> List[int]:
        days = settings.notification_retention_days if retention_days is None else retention_days
        removed = self.repository.delete_older_than(self._clock() - timedelta(days=days))
        logger.info("Cleaned up %s notifications older than %s days", len(removed), days)
        return removed

    def mark_read(self, notification_id: int, user_id: int) -> bool:
        return self.repository.mark_read(notification_id, user_id, self._clock())

    def mark_delivered(self, notification_id: int) -> bool:
        return self.repository.mark_delivered(notification_id, self._clock())

    def get_stats(self, since: Optional[datetime] = None) -> Dict[str, int]:
        return self.repository.status_counts(since)


__all__ = [
    "BulkEnqueueResult",
    "DispatchSummary",
    "NotificationDispatcher",
    "NotificationRequest",
]
