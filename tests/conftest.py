import asyncio
import json
from typing import Any, Optional

import pytest
from websockets.exceptions import ConnectionClosedOK

from reivun_bot.types import Credentials, Snapshot

OPEN_FRAME = '0{"sid":"eio-1","upgrades":[],"pingInterval":25000,"pingTimeout":20000}'
CONNECT_ACK_FRAME = '40{"sid":"sock-1"}'


class FakeWebSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[str] = []
        self.close_calls = 0
        self.close_gate: Optional[asyncio.Event] = None

    async def recv(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise ConnectionClosedOK(None, None)
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, data: str) -> None:
        if self.close_calls:
            raise ConnectionClosedOK(None, None)
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        self.incoming.put_nowait(None)
        if self.close_gate is not None:
            await self.close_gate.wait()

    def push(self, frame: Any) -> None:
        self.incoming.put_nowait(frame)

    def push_event(self, name: str, *args: Any) -> None:
        self.push("42" + json.dumps([name, *args]))

    def drop(self) -> None:
        self.incoming.put_nowait(None)


class FakeSocketServer:
    """Connector that hands out scripted FakeWebSockets."""

    def __init__(self) -> None:
        self.auto_handshake = True
        self.fail_with: Optional[BaseException] = None
        self.urls: list[str] = []
        self.sockets: list[FakeWebSocket] = []

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.fail_with is not None:
            raise self.fail_with
        ws = FakeWebSocket()
        if self.auto_handshake:
            ws.push(OPEN_FRAME)
            ws.push(CONNECT_ACK_FRAME)
        self.sockets.append(ws)
        return ws

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]


@pytest.fixture
def socket_server() -> FakeSocketServer:
    return FakeSocketServer()


class FakeMonitorClient:
    """Returns a canned snapshot, optionally held back until `release()`."""

    def __init__(
        self,
        snapshot: Snapshot,
        *,
        gated: bool = False,
        fail_with: Optional[Exception] = None,
    ) -> None:
        self.snapshot = snapshot
        self.fail_with = fail_with
        self.calls: list[Credentials] = []
        self._gate: Optional[asyncio.Event] = asyncio.Event() if gated else None

    def release(self) -> None:
        assert self._gate is not None
        self._gate.set()

    async def fetch_symbols(self, credentials: Credentials) -> Snapshot:
        self.calls.append(credentials)
        if self._gate is not None:
            await self._gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        return dict(self.snapshot)
