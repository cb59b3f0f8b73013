"""
Shared fixtures: fake clock, fast call settings, in-memory collaborators
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from consult_call.core.config import CallSettings
from consult_call.domain.services.call_manager import CallClient
from consult_call.infrastructure.media.simulated_engine import SimulatedMediaEngine
from consult_call.infrastructure.notifications.memory_dispatcher import InMemoryNotificationDispatcher
from consult_call.infrastructure.signaling.memory_transport import InMemorySignalingHub, InMemoryTransport


class FakeClock:
    """Wall clock the tests move by hand"""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def call_settings():
    """Real prefixes, short timers"""
    return CallSettings(ringing_timeout_seconds=0.2, ring_interval_seconds=0.05)


@pytest.fixture
def hub():
    return InMemorySignalingHub()


@pytest.fixture
def dispatcher():
    return InMemoryNotificationDispatcher()


@pytest.fixture
def make_client(hub, dispatcher, call_settings, clock):
    """Build (not start) a CallClient on the shared hub"""
    engines = []

    def _make(user_id: str, user_name: str = None, media_config: dict = None, ringtone_sink=None) -> CallClient:
        def engine_factory():
            engine = SimulatedMediaEngine(media_config)
            engines.append(engine)
            return engine

        return CallClient(
            user_id=user_id,
            transport=InMemoryTransport(hub),
            dispatcher=dispatcher,
            media_engine_factory=engine_factory,
            settings=call_settings,
            user_name=user_name,
            clock=clock,
            ringtone_sink=ringtone_sink,
        )

    _make.engines = engines
    return _make


@pytest.fixture
def settle(hub):
    """Wait until the hub and the given clients have nothing left in flight"""
    async def _settle(*clients):
        for _ in range(3):
            await hub.flush()
            for client in clients:
                await client.drain()
            await asyncio.sleep(0)
    return _settle
