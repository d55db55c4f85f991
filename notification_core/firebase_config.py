"""Firebase initialization and push helpers.

Integration details:
- Reads a service-account file path, or inline project/key/email, from `settings`.
- Falls back to no-op on initialization failures so the core can start without FCM;
  the push channel then reports every send as a transient failure.
- Messages carry platform-specific blocks (Android priority/TTL, APNs badge/sound,
  Web Push icon) so one call serves every registered platform.
"""

import logging
from datetime import timedelta
from typing import Mapping, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from notification_core.core.config import settings
from notification_core.core.exceptions import InvalidDeviceTokenError, TransientDeliveryError

logger = logging.getLogger(__name__)

# Provider errors that mean the token will never work again.
PERMANENT_TOKEN_ERRORS = (
    messaging.UnregisteredError,
    messaging.SenderIdMismatchError,
    firebase_exceptions.InvalidArgumentError,
)


def initialize_firebase() -> bool:
    """Initialize the default Firebase app from env-backed settings.

    Returns True when an app is available; returns False and logs when credentials
    are absent/invalid so non-push code paths remain operational.
    """
    if firebase_admin._apps:
        return True
    try:
        if settings.firebase_credentials_path:
            cred = credentials.Certificate(settings.firebase_credentials_path)
        elif settings.firebase_private_key and settings.firebase_project_id:
            cred = credentials.Certificate(
                {
                    "type": "service_account",
                    "project_id": settings.firebase_project_id,
                    "private_key": settings.firebase_private_key.replace("\\n", "\n"),
                    "client_email": settings.firebase_client_email
                    or f"firebase-adminsdk@{settings.firebase_project_id}.iam.gserviceaccount.com",
                    "token_uri": "https://oauth2.googleapis.com/token",
                }
            )
        else:
            logger.warning("Firebase credentials are not configured; push is disabled")
            return False
        firebase_admin.initialize_app(cred)
        logger.info("Firebase initialized successfully")
        return True
    except Exception as e:
        # Fail open: log and return False so the rest of the core can run without push.
        logger.error(f"Failed to initialize Firebase: {str(e)}")
        return False


def is_firebase_ready() -> bool:
    return bool(firebase_admin._apps)


def build_push_message(
    token: str,
    title: str,
    body: str,
    *,
    platform: Optional[str] = None,
    data: Optional[Mapping[str, object]] = None,
    icon: Optional[str] = None,
) -> messaging.Message:
    """Build a single-device message with platform-specific delivery options."""
    payload = {str(key): str(value) for key, value in (data or {}).items() if value is not None}
    kwargs = {}
    if platform in (None, "android"):
        kwargs["android"] = messaging.AndroidConfig(
            priority="high",
            ttl=timedelta(hours=24),
            notification=messaging.AndroidNotification(
                title=title, body=body, icon=icon, sound="default"
            ),
        )
    if platform in (None, "ios"):
        kwargs["apns"] = messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(badge=1, sound="default")),
        )
    if platform in (None, "web"):
        kwargs["webpush"] = messaging.WebpushConfig(
            notification=messaging.WebpushNotification(title=title, body=body, icon=icon),
        )
    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=title, body=body),
        data=payload,
        **kwargs,
    )


def send_push_message(message: messaging.Message, *, dry_run: bool = False) -> str:
    """Send one message; raises `InvalidDeviceTokenError` or `TransientDeliveryError`.

    Blocking call: run it off the event loop.
    """
    if not is_firebase_ready():
        raise TransientDeliveryError("push", "Firebase is not initialized")
    try:
        return messaging.send(message, dry_run=dry_run)
    except PERMANENT_TOKEN_ERRORS as exc:
        raise InvalidDeviceTokenError(message.token or "", str(exc)) from exc
    except firebase_exceptions.FirebaseError as exc:
        raise TransientDeliveryError("push", str(exc)) from exc


__all__ = [
    "PERMANENT_TOKEN_ERRORS",
    "build_push_message",
    "initialize_firebase",
    "is_firebase_ready",
    "send_push_message",
]
