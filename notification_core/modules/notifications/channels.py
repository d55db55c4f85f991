"""Delivery channels: push (FCM), email (FastAPI-Mail) and in-app.

Each channel exposes ``send(token, title, body, payload)``; ``token`` is the
channel-specific address (device token, e-mail address, user id). A channel
returns True on success and either returns False or raises on failure. Timeouts
are applied by the dispatcher, not here.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from notification_core.core.exceptions import InvalidDeviceTokenError
from notification_core.firebase_config import build_push_message, send_push_message
from notification_core.models.enums import DeliveryChannelName

from .common import logger
from .email import send_email_notification

InAppListener = Callable[[int, Mapping[str, Any]], Awaitable[None]]


class DeliveryChannel(abc.ABC):
    name: DeliveryChannelName

    @abc.abstractmethod
    async def send(
        self, token: str, title: str, body: str, payload: Mapping[str, Any]
    ) -> bool:
        raise NotImplementedError


class PushChannel(DeliveryChannel):
    """Firebase Cloud Messaging; blocking SDK calls run in a worker thread."""

    name = DeliveryChannelName.PUSH

    async def send(self, token, title, body, payload) -> bool:
        message = build_push_message(
            token,
            title,
            body,
            platform=payload.get("platform"),
            data=payload.get("data"),
            icon=payload.get("icon_name"),
        )
        await asyncio.to_thread(send_push_message, message)
        return True

    async def verify(self, token: str) -> bool:
        """Dry-run send; False only when the provider rejects the token itself."""
        message = build_push_message(token, "ping", "ping")
        try:
            await asyncio.to_thread(send_push_message, message, dry_run=True)
        except InvalidDeviceTokenError:
            return False
        return True


class EmailChannel(DeliveryChannel):
    name = DeliveryChannelName.EMAIL

    async def send(self, token, title, body, payload) -> bool:
        return bool(await send_email_notification(to=token, subject=title, body=body))


class InAppChannel(DeliveryChannel):
    """The stored intent is the in-app inbox entry; listeners get a live copy."""

    name = DeliveryChannelName.IN_APP

    def __init__(self, listeners: Optional[List[InAppListener]] = None):
        self.listeners: List[InAppListener] = list(listeners or [])

    def subscribe(self, listener: InAppListener) -> None:
        self.listeners.append(listener)

    async def send(self, token, title, body, payload) -> bool:
        user_id = int(token)
        message = {"title": title, "body": body, **dict(payload)}
        for listener in self.listeners:
            try:
                await listener(user_id, message)
            except Exception as exc:
                logger.warning("In-app listener failed for user %s: %s", user_id, exc)
        return True


def default_channels() -> dict:
    return {
        DeliveryChannelName.PUSH: PushChannel(),
        DeliveryChannelName.EMAIL: EmailChannel(),
        DeliveryChannelName.IN_APP: InAppChannel(),
    }


__all__ = [
    "DeliveryChannel",
    "EmailChannel",
    "InAppChannel",
    "PushChannel",
    "default_channels",
]
