"""Device token registry.

Responsibilities:
- Register or reactivate delivery addresses per user and platform.
- Consolidate duplicate registrations to the most recently used token.
- Detect stale tokens, verify a bounded sample against the push provider, and
  purge long-inactive rows.

Every mutation is idempotent and guarded on ``is_active`` so the six-hourly
duplicate cleanup and the daily stale verification can interleave freely.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notification_core.core.config import settings
from notification_core.core.exceptions import ValidationError

from .models import DevicePlatform, DeviceToken, TokenDisableReason
from .repository import DeviceTokenRepository

logger = logging.getLogger("notification_core.devices")


@dataclass
class VerificationReport:
    checked: int = 0
    disabled: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)


def _parse_platform(platform) -> DevicePlatform:
    if isinstance(platform, DevicePlatform):
        return platform
    try:
        return DevicePlatform(str(platform).strip().lower())
    except ValueError as exc:
        raise ValidationError(
            f"Unsupported platform '{platform}'",
            field="platform",
            details={"allowed": [p.value for p in DevicePlatform]},
        ) from exc


class DeviceTokenRegistry:
    """Owns the device-token lifecycle on top of a `DeviceTokenRepository`."""

    def __init__(
        self,
        db: Session,
        *,
        verifier=None,
        verify_timeout: Optional[float] = None,
        sample_size: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = DeviceTokenRepository(db)
        self.verifier = verifier
        self.verify_timeout = verify_timeout or settings.verify_timeout_seconds
        self.sample_size = sample_size or settings.stale_verify_sample_size
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------ registration
    def register(
        self,
        user_id: int,
        token: str,
        platform,
        *,
        device_id: Optional[str] = None,
        device_model: Optional[str] = None,
        app_version: Optional[str] = None,
    ) -> DeviceToken:
        """Insert or reactivate ``token``; older tokens on the platform stay active."""
        token = (token or "").strip()
        if not token:
            raise ValidationError("Device token must not be empty", field="token")
        parsed = _parse_platform(platform)
        now = self._clock()

        existing = self.repository.get(user_id, token)
        if existing is None:
            candidate = DeviceToken(
                user_id=user_id,
                token=token,
                platform=parsed,
                device_id=device_id,
                device_model=device_model,
                app_version=app_version,
                is_active=True,
                registered_at=now,
                updated_at=now,
            )
            try:
                created = self.repository.add(candidate)
                logger.info(
                    "Registered %s device token %s for user %s",
                    parsed.value,
                    created.id,
                    user_id,
                )
                return created
            except IntegrityError:
                # A concurrent registration inserted the same (user, token) first.
                self.repository.rollback()
                existing = self.repository.get(user_id, token)
                if existing is None:
                    raise

        existing.platform = parsed
        existing.device_id = device_id or existing.device_id
        existing.device_model = device_model or existing.device_model
        existing.app_version = app_version or existing.app_version
        if not existing.is_active:
            logger.info("Reactivating device token %s for user %s", existing.id, user_id)
        existing.is_active = True
        existing.disabled_at = None
        existing.disabled_reason = None
        existing.updated_at = now
        return self.repository.save(existing)

    def active_tokens_for_user(self, user_id: int) -> List[DeviceToken]:
        return self.repository.active_for_user(user_id)

    def touch_last_used(self, token_id: int, when: Optional[datetime] = None) -> bool:
        return self.repository.touch_last_used(token_id, when or self._clock())

    def disable_token(self, token_id: int, reason: str) -> bool:
        disabled = self.repository.deactivate(token_id, reason, self._clock())
        if disabled:
            logger.info("Disabled device token %s (%s)", token_id, reason)
        return disabled

    def clear_user_tokens(self, user_id: int) -> int:
        return self.repository.deactivate_for_user(
            user_id, TokenDisableReason.USER_LOGOUT.value, self._clock()
        )

    def get_platform_stats(self) -> Dict[str, object]:
        return self.repository.counts()

    # ------------------------------------------------------------------ dedup
    def cleanup_duplicate_tokens(self, user_id: Optional[int] = None) -> int:
        """Keep the most recently used token per (user, platform, device) active.

        Runs over every user holding active tokens when ``user_id`` is None.
        """
        user_ids = [user_id] if user_id is not None else self.repository.users_with_active_tokens()
        cleaned = 0
        for uid in user_ids:
            groups: Dict[Tuple[str, Optional[str]], List[DeviceToken]] = defaultdict(list)
            for token in self.repository.active_for_user(uid):
                groups[(token.platform.value, token.device_id)].append(token)

            for (platform, _device), tokens in groups.items():
                if len(tokens) < 2:
                    continue
                tokens.sort(
                    key=lambda t: (t.last_used_at or t.registered_at, t.id),
                    reverse=True,
                )
                keeper, duplicates = tokens[0], tokens[1:]
                stale_ids = [t.id for t in duplicates]
                for token_id in stale_ids:
                    if self.repository.deactivate(
                        token_id, TokenDisableReason.DUPLICATE_CLEANUP.value, self._clock()
                    ):
                        cleaned += 1
                logger.info(
                    "User %s %s: kept token %s, deactivated %s",
                    uid,
                    platform,
                    keeper.id,
                    stale_ids,
                )
        return cleaned

    # -------------------------------------------------------------- staleness
    def detect_stale_tokens(self, threshold_days: Optional[int] = None) -> List[DeviceToken]:
        days = settings.token_stale_days if threshold_days is None else threshold_days
        cutoff = self._clock() - timedelta(days=days)
        return self.repository.stale(cutoff)

    async def _verify(self, token: DeviceToken) -> bool:
        return bool(
            await asyncio.wait_for(self.verifier.verify(token.token), timeout=self.verify_timeout)
        )

    async def verify_and_disable(self, tokens: Sequence[DeviceToken]) -> VerificationReport:
        """Verify at most ``sample_size`` tokens; failures disable with ``stale_invalid``."""
        report = VerificationReport()
        sample = list(tokens)[: self.sample_size]
        report.skipped = max(0, len(tokens) - len(sample))
        if self.verifier is None:
            logger.warning("No token verifier configured; skipping %s checks", len(sample))
            report.skipped += len(sample)
            return report

        for token in sample:
            report.checked += 1
            try:
                valid = await self._verify(token)
            except asyncio.TimeoutError:
                logger.warning("Verification timed out for token %s", token.id)
                valid = False
            except Exception as exc:
                logger.warning("Verification failed for token %s: %s", token.id, exc)
                valid = False

            if valid:
                continue
            try:
                if self.repository.deactivate(
                    token.id, TokenDisableReason.STALE_INVALID.value, self._clock()
                ):
                    report.disabled += 1
            except Exception as exc:
                logger.error("Could not disable token %s: %s", token.id, exc)
                self.repository.rollback()
                report.errors.append(f"token {token.id}: {exc}")

        logger.info(
            "Stale verification finished: checked=%s disabled=%s skipped=%s",
            report.checked,
            report.disabled,
            report.skipped,
        )
        return report

    async def detect_and_verify(self, threshold_days: Optional[int] = None) -> VerificationReport:
        stale = self.detect_stale_tokens(threshold_days)
        return await self.verify_and_disable(stale)

    # ------------------------------------------------------------------ purge
    def purge_old(self, threshold_days: Optional[int] = None) -> List[dict]:
        days = settings.token_purge_days if threshold_days is None else threshold_days
        cutoff = self._clock() - timedelta(days=days)
        removed = self.repository.purge_inactive(cutoff)
        if removed:
            logger.info("Purged %s inactive device tokens older than %s days", len(removed), days)
        return removed


__all__ = ["DeviceTokenRegistry", "VerificationReport"]
