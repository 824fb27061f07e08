"""Test configuration helpers."""

from __future__ import annotations

import asyncio
import inspect
import random
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autotune.client import AutotuneClient  # noqa: E402
from autotune.config import Settings  # noqa: E402
from autotune.storage import MemoryStorage  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register the asyncio marker for the lightweight runner below."""

    config.addinivalue_line("markers", "asyncio: execute the test inside an event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute ``@pytest.mark.asyncio`` tests without requiring pytest-asyncio."""

    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None

    func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(func):
        return None

    kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(func(**kwargs))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


class _Timer:
    def __init__(self, due: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.due = due
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for ``loop.call_later``; time moves on ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[_Timer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _Timer:
        timer = _Timer(self.now + delay, callback, args)
        self._timers.append(timer)
        return timer

    @property
    def active(self) -> int:
        return sum(1 for timer in self._timers if not timer.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.due)
            self._timers.remove(timer)
            self.now = max(self.now, timer.due)
            timer.callback(*timer.args)
        self._timers = [t for t in self._timers if not t.cancelled]
        self.now = target


class FakeGateway:
    """Records payloads instead of talking to the analytics service."""

    def __init__(self, outcomes: Any = None, *, fail: bool = False) -> None:
        self.outcomes = outcomes if outcomes is not None else {}
        self.fail = fail
        self.started: list[dict[str, Any]] = []
        self.completed: list[dict[str, Any]] = []
        self.fetched: list[str] = []

    def _maybe_fail(self, url: str) -> None:
        if self.fail:
            raise httpx.ConnectError("boom", request=httpx.Request("POST", url))

    async def start_experiments(self, payload: dict[str, Any]) -> None:
        self._maybe_fail("https://example.test/startExperiments")
        self.started.append(payload)

    async def complete_experiments(self, payload: dict[str, Any]) -> None:
        self._maybe_fail("https://example.test/completeExperiments")
        self.completed.append(payload)

    async def fetch_outcomes(self, app_key: str) -> Any:
        self.fetched.append(app_key)
        self._maybe_fail(f"https://example.test/{app_key}.json")
        return self.outcomes


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        STORAGE_DIR=str(tmp_path / "picks"),
        AUTOTUNE_APP_KEY="",
        AUTOTUNE_OUTCOMES_FILE="",
        HTTP_RETRY_ATTEMPTS=0,
        HTTP_RETRY_BACKOFF_INITIAL=0.0,
    )


@pytest.fixture
def make_client(test_settings, gateway, storage, scheduler):
    def _make(**overrides: Any) -> AutotuneClient:
        options: dict[str, Any] = {
            "gateway": gateway,
            "storage": storage,
            "scheduler": scheduler,
            "rng": random.Random(7),
            "context_provider": lambda: {"lang": "en-US", "tzo": 0},
        }
        options.update(overrides)
        return AutotuneClient(test_settings, **options)

    return _make
