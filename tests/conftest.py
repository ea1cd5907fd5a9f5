"""Shared fixtures: in-memory store, message inbox, sample helpers."""

import asyncio

import pytest

from fall_backend.core.motion import SensorSample
from fall_backend.core.store import PersistenceError, SqlEventStore

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def make_sample(ax=0.0, ay=0.0, az=0.0, alpha=0.0, beta=0.0, gamma=0.0, timestamp=0):
    return SensorSample.from_channels(ax, ay, az, alpha, beta, gamma, timestamp=timestamp)


class FailingStore(SqlEventStore):
    """In-memory store whose selected writes raise PersistenceError."""

    def __init__(self, fail_on=("create",)):
        super().__init__(MEMORY_URL)
        self.fail_on = set(fail_on)

    async def create_fall_event(self, *args, **kwargs):
        if "create" in self.fail_on:
            raise PersistenceError("database unavailable")
        return await super().create_fall_event(*args, **kwargs)

    async def update_fall_event(self, *args, **kwargs):
        if "update" in self.fail_on:
            raise PersistenceError("database unavailable")
        return await super().update_fall_event(*args, **kwargs)

    async def create_notification(self, *args, **kwargs):
        if "notify" in self.fail_on:
            raise PersistenceError("database unavailable")
        return await super().create_notification(*args, **kwargs)


class Inbox:
    """Async `send`/`emit` callback that records every message."""

    def __init__(self):
        self.messages = []
        self._changed = asyncio.Event()

    async def __call__(self, message):
        self.messages.append(message)
        self._changed.set()

    def of_type(self, type_):
        return [m for m in self.messages if m.get("type") == type_]

    async def wait_for(self, predicate, timeout=3.0):
        async def _wait():
            while True:
                for message in self.messages:
                    if predicate(message):
                        return message
                self._changed.clear()
                await self._changed.wait()

        return await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
async def store():
    s = SqlEventStore(MEMORY_URL)
    await s.init()
    yield s
    await s.close()


@pytest.fixture
async def failing_store():
    stores = []

    async def _make(*fail_on):
        s = FailingStore(fail_on=fail_on)
        await s.init()
        stores.append(s)
        return s

    yield _make
    for s in stores:
        await s.close()


@pytest.fixture
def inbox():
    return Inbox()
