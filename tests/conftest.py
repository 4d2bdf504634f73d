# tests/conftest.py
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import asyncio
import pytest

from tradesmart.models import SessionCredentials

_CLOSE = object()


class FakeTransport:
    """In-memory stand-in for a websocket connection."""

    def __init__(self):
        self.sent: list[str] = []
        self.attempts: list[str] = []
        self.closed = False
        self.close_code = None
        self.close_reason = ""
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._fail_next: list[BaseException] = []

    async def send(self, message: str) -> None:
        self.attempts.append(message)
        if self.closed:
            raise ConnectionError("send on closed transport")
        if self._fail_next:
            raise self._fail_next.pop(0)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSE)

    # test helpers
    def feed(self, message) -> None:
        self._inbox.put_nowait(message)

    def fail_next_send(self, exc: BaseException) -> None:
        """Next send raises exc while the connection itself stays up."""
        self._fail_next.append(exc)

    def drop(self, code: int = 1006, reason: str = "network down") -> None:
        """Peer/network goes away without a manual disconnect."""
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_CLOSE)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _CLOSE:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """
    Hands out scripted outcomes, one per connect call: a FakeTransport, an
    exception instance to raise, or an asyncio.Event to block on before
    returning a fresh transport. Once the script runs out it keeps returning
    new transports (or keeps failing when always_fail is set).
    """

    def __init__(self, *script, always_fail: bool = False):
        self.script = list(script)
        self.always_fail = always_fail
        self.calls: list[str] = []
        self.call_times: list[float] = []
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str):
        self.calls.append(url)
        self.call_times.append(asyncio.get_running_loop().time())
        if self.script:
            outcome = self.script.pop(0)
        elif self.always_fail:
            outcome = OSError("connection refused")
        else:
            outcome = FakeTransport()

        if isinstance(outcome, asyncio.Event):
            await outcome.wait()
            outcome = FakeTransport()
        if isinstance(outcome, BaseException):
            raise outcome
        self.transports.append(outcome)
        return outcome

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def creds():
    return SessionCredentials(uid="FA12345", susertoken="0123456789abcdef0123456789abcdef")


@pytest.fixture
def test_cfg():
    return {
        "session": {"uid": "FA12345", "actid": "", "susertoken": "tok-abcdef123456"},
        "tradesmart": {"ws_url": "wss://feed.example/NorenWSTP/", "instruments_dir": "./instruments"},
        "stream": {"name": "unit", "heartbeat_s": 0.5, "reconnect_interval_s": 0.2, "reconnect_attempts": 4},
    }
