"""Notification intents, templates, channels and the dispatch pipeline."""

from .channels import DeliveryChannel, EmailChannel, InAppChannel, PushChannel, default_channels
from .models import Notification, NotificationDeliveryLog
from .repository import NotificationRepository
from .service import (
    BulkEnqueueResult,
    DispatchSummary,
    NotificationDispatcher,
    NotificationRequest,
)
from .templates import NotificationTemplate, TemplateRegistry, default_registry

__all__ = [
    "BulkEnqueueResult",
    "DeliveryChannel",
    "DispatchSummary",
    "EmailChannel",
    "InAppChannel",
    "Notification",
    "NotificationDeliveryLog",
    "NotificationDispatcher",
    "NotificationRepository",
    "NotificationRequest",
    "NotificationTemplate",
    "PushChannel",
    "TemplateRegistry",
    "default_channels",
    "default_registry",
]
