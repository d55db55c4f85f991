"""Shared test doubles and constants."""
import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace

from notification_core.modules.notifications.channels import DeliveryChannel

# Monday noon UTC; every service under test reads this clock.
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class RecordingChannel(DeliveryChannel):
    """Channel double that records every send and can fail, raise or stall."""

    def __init__(self, name, *, result=True, error=None, delay=0.0):
        self.name = name
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def send(self, token, title, body, payload):
        self.calls.append(SimpleNamespace(token=token, title=title, body=body, payload=payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeVerifier:
    """Token verifier double; ``verdicts`` maps token -> bool or exception."""

    def __init__(self, verdicts=None, delay=0.0):
        self.verdicts = verdicts or {}
        self.delay = delay
        self.verified = []

    async def verify(self, token):
        self.verified.append(token)
        if self.delay:
            await asyncio.sleep(self.delay)
        verdict = self.verdicts.get(token, True)
        if isinstance(verdict, Exception):
            raise verdict
        return verdict
