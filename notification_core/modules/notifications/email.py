"""Email delivery utilities for notifications."""

from __future__ import annotations

import os
from typing import List, Optional, Union

from fastapi_mail import MessageSchema

from notification_core.core.config import fm, settings
from .common import handle_async_errors, logger


def build_email_message(
    to: Union[str, List[str]],
    subject: str,
    body: str,
    subtype: str = "plain",
) -> MessageSchema:
    recipients = [to] if isinstance(to, str) else list(to)
    if not recipients:
        raise ValueError("At least one recipient is required.")
    return MessageSchema(subject=subject, recipients=recipients, body=body, subtype=subtype)


@handle_async_errors
async def send_email_notification(
    message: Optional[MessageSchema] = None,
    *,
    to: Union[str, List[str], None] = None,
    subject: Optional[str] = None,
    body: Optional[str] = None,
) -> bool:
    """
    Send an email using FastAPI-Mail. Returns False without sending when mail is
    not configured or external notifications are disabled.
    """
    if os.getenv("DISABLE_EXTERNAL_NOTIFICATIONS") == "1":
        logger.info("Email sending skipped: external notifications disabled.")
        return False

    if message is None:
        if to is None:
            raise ValueError("Recipient e-mail address is required.")
        message = build_email_message(to, subject or "", body or "")

    if not settings.mail_configured:
        logger.info(
            "Mail credentials are not configured; skipping send for recipients %s",
            getattr(message, "recipients", []),
        )
        return False

    await fm.send_message(message)
    logger.info("Email notification sent successfully")
    return True


__all__ = ["build_email_message", "send_email_notification"]
