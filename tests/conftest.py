"""Shared fakes for research_system tests.

FakeClock and FakeSleep replace wall-clock waits: sleeping advances the clock
instantly. ScriptedTransport replays a list of responses or exceptions and
records every request it receives.
"""

from typing import Any, Callable, Optional, Union

import pytest

from research_system.providers.transport import ProviderRequest, ProviderResponse


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Async sleep that records delays and advances a FakeClock."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        self.clock.advance(delay)


ScriptItem = Union[ProviderResponse, BaseException, Callable[[ProviderRequest], ProviderResponse]]


class ScriptedTransport:
    """In-memory Transport replaying scripted outcomes.

    Once the script is exhausted every call gets ``default``.
    """

    def __init__(self, script: Optional[list[ScriptItem]] = None, default: Optional[ScriptItem] = None):
        self.script = list(script or [])
        self.default = default if default is not None else ok_response()
        self.requests: list[ProviderRequest] = []
        self.timeouts: list[float] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def send(self, request: ProviderRequest, timeout: float) -> ProviderResponse:
        self.requests.append(request)
        self.timeouts.append(timeout)
        item = self.script.pop(0) if self.script else self.default
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item


def ok_response(body: Any = None, status: int = 200) -> ProviderResponse:
    return ProviderResponse(status=status, body=body if body is not None else {"results": []})


def status_response(status: int) -> ProviderResponse:
    return ProviderResponse(status=status, body={"error": f"HTTP {status}"})


def exa_payload(*results: dict) -> dict:
    return {"results": list(results)}


def exa_result(title: str, url: str, contents: str) -> dict:
    return {"title": title, "url": url, "contents": contents, "publishedDate": "2024-03-01"}


# ── Fixtures ──────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeClock:
    return FakeClock(start=1_700_000_000.0)


@pytest.fixture
def fake_sleep(clock) -> FakeSleep:
    return FakeSleep(clock)
