import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from routewise.core.engine import RoutewiseEngine
from routewise.core.settings import LearningSettings, Settings
from routewise.learning.snapshot_store import MemorySnapshotStore
from routewise.nlp.intent_parser import RuleBasedIntentParser


# Wednesday
FIXED_NOW = datetime(2024, 3, 13, 15, 30, tzinfo=timezone.utc)


class ManualClock:
    """Clock returning a settable instant; `advance` moves it forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class StaticExecutor:
    """Execution engine returning a canned result and recording calls."""

    def __init__(self, result=None, error: Exception | None = None, delay: float = 0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def execute(self, protocol, server, tool, params):
        self.calls.append((protocol, server, tool, dict(params)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def parser(clock):
    return RuleBasedIntentParser(clock=clock)


@pytest.fixture
def store():
    return MemorySnapshotStore()


@pytest.fixture
def settings():
    return Settings(learning=LearningSettings(flush_every=10))


@pytest.fixture
def make_engine(settings, store):
    def factory(executor=None, catalog=True, **overrides):
        return RoutewiseEngine(
            settings=overrides.pop("settings", settings),
            executor=executor,
            snapshot_store=store,
            load_default_catalog=catalog,
            **overrides,
        )

    return factory


@pytest.fixture
def static_executor():
    return StaticExecutor
