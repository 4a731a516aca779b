from __future__ import annotations

import asyncio
import os
from decimal import Decimal

import pytest

from eurozbot.adapters.dry_run_gateway import DryRunTokenGateway
from eurozbot.config import Settings
from eurozbot.observability import InMemoryInstrumentation, set_instrumentation


@pytest.fixture(autouse=True)
def isolate_settings_from_host_env(monkeypatch: pytest.MonkeyPatch):
    original_env_file = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    explicit = {"PYTEST_CURRENT_TEST"}
    settings_env_keys: set[str] = set()
    for field in Settings.model_fields.values():
        if isinstance(field.alias, str):
            settings_env_keys.add(field.alias)

    for key in list(os.environ):
        if key in settings_env_keys and key not in explicit:
            monkeypatch.delenv(key, raising=False)

    yield

    Settings.model_config["env_file"] = original_env_file


@pytest.fixture
def instrumentation():
    recorder = InMemoryInstrumentation()
    previous = set_instrumentation(recorder)
    yield recorder
    set_instrumentation(previous)


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class BlockingSleep:
    """Sleep function that never returns on its own; only cancellation ends it."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.Event().wait()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blocking_sleep() -> BlockingSleep:
    return BlockingSleep()


@pytest.fixture
def make_gateway():
    def _make(
        *,
        euroz: str | Decimal = "0",
        allowance: str | Decimal = "0",
        **overrides,
    ) -> DryRunTokenGateway:
        gateway = DryRunTokenGateway(**overrides)
        gateway.euroz[gateway.sender] = Decimal(euroz)
        gateway.allowances[(gateway.sender, gateway.wrapper)] = Decimal(allowance)
        return gateway

    return _make

