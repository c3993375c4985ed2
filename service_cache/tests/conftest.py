"""
Shared fixtures for cache service tests.
"""

import asyncio
import fnmatch
from typing import Dict, List, Optional, Tuple

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import StoreUnavailable


class ManualClock:
    """Clock the tests advance by hand."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeStore:
    """In-memory stand-in for StoreClient with TTL expiry and outage switch."""

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.data: Dict[str, Tuple[bytes, float]] = {}
        self.available = True
        self.calls: List[tuple] = []
        self.delay = 0.0
        self.started = False
        self.closed = False

    def _check(self, operation: str):
        if not self.available:
            raise StoreUnavailable(f"Store {operation} failed", {"operation": operation})

    def _live(self, key: str) -> Optional[bytes]:
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    async def start(self):
        self._check("ping")
        self.started = True

    async def close(self):
        self.closed = True

    async def health_check(self) -> bool:
        return self.available

    async def get(self, key: str) -> Optional[bytes]:
        self.calls.append(("get", key))
        if self.delay:
            await asyncio.sleep(self.delay)
        self._check("get")
        return self._live(key)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        self.calls.append(("set", key, ttl))
        if self.delay:
            await asyncio.sleep(self.delay)
        self._check("set")
        self.data[key] = (bytes(value), self.clock() + ttl)

    async def delete(self, *keys: str) -> int:
        self.calls.append(("delete",) + keys)
        self._check("delete")
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                del self.data[key]
                deleted += 1
        return deleted

    async def list_keys(self, pattern: str) -> List[str]:
        self.calls.append(("list_keys", pattern))
        self._check("list_keys")
        return [key for key in list(self.data) if self._live(key) is not None and fnmatch.fnmatchcase(key, pattern)]

    def operations(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return ManualClock()


@pytest.fixture
def store(clock):
    """Fake key-value store."""
    return FakeStore(clock)
