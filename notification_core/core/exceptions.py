"""
Custom Exception Classes for the Notification Core
Provides a unified error taxonomy with HTTP status codes so thin handlers can render
core failures without translating them.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    """
    Base exception class for all application exceptions.
    Provides consistent error response format.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "error_code": error_code,
                "message": message,
                "details": self.details,
            },
            headers=headers,
        )

    def __str__(self) -> str:
        return self.message


# ==================== Input Validation ====================


class ValidationError(AppException):
    """Malformed caller input (bad platform, negative frequency, bad time, unknown cadence)."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "validation_error",
    ):
        error_details = dict(details or {})
        if field:
            error_details["field"] = field

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            message=message,
            details=error_details,
        )


class TemplateError(ValidationError):
    """A notification template references a variable the caller did not supply."""

    def __init__(self, template_name: str, missing: str):
        super().__init__(
            message=f"Template '{template_name}' is missing variable '{missing}'",
            details={"template": template_name, "variable": missing},
            error_code="template_error",
        )
        self.template_name = template_name
        self.missing = missing


# ==================== Delivery ====================


class TransientDeliveryError(AppException):
    """A channel call failed or timed out; the intent may be reconsidered later."""

    def __init__(
        self,
        channel: str,
        message: str = "Delivery failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="delivery_failed",
            message=message,
            details={"channel": channel, **(details or {})},
        )
        self.channel = channel


class InvalidDeviceTokenError(TransientDeliveryError):
    """The push provider reports the address as unregistered or malformed."""

    def __init__(self, token: str, message: str = "Device token rejected by provider"):
        super().__init__(
            channel="push",
            message=message,
            details={"token_suffix": token[-8:]},
        )
        self.token = token


# ==================== Batches & Scheduling ====================


class BatchItemError(AppException):
    """One item inside a bulk operation failed; the batch keeps going."""

    def __init__(self, item: Any, cause: BaseException):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="batch_item_failed",
            message=f"Batch item {item!r} failed: {cause}",
            details={"item": str(item), "error": str(cause)},
        )
        self.item = item
        self.cause = cause


class SchedulerTaskError(AppException):
    """A scheduled task body raised; captured at the invocation boundary."""

    def __init__(self, job_name: str, cause: BaseException):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="scheduler_task_failed",
            message=f"Job '{job_name}' failed: {cause}",
            details={"job": job_name, "error": str(cause)},
        )
        self.job_name = job_name
        self.cause = cause


class JobNotFoundError(AppException):
    """Raised when an operation names a job the registry does not know."""

    def __init__(self, job_name: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="job_not_found",
            message=f"Job '{job_name}' not found",
            details={"job": job_name},
        )
        self.job_name = job_name


__all__ = [
    "AppException",
    "BatchItemError",
    "InvalidDeviceTokenError",
    "JobNotFoundError",
    "SchedulerTaskError",
    "TemplateError",
    "TransientDeliveryError",
    "ValidationError",
]
