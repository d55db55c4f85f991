"""Device token registry package."""

from .models import DevicePlatform, DeviceToken, TokenDisableReason
from .repository import DeviceTokenRepository
from .service import DeviceTokenRegistry, VerificationReport

__all__ = [
    "DevicePlatform",
    "DeviceToken",
    "DeviceTokenRegistry",
    "DeviceTokenRepository",
    "VerificationReport",
    "TokenDisableReason",
]
