# conftest.py -- Shared test fixtures

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable

import pytest
from starlette.websockets import WebSocketState

from lrserver.connection import Connection, ConnectionState
from lrserver.protocol import PROTOCOL_OFFICIAL_7
from lrserver.server import Server


class FakeWebSocket:
    """Minimal stand-in for starlette.websockets.WebSocket.

    Inbound frames are pushed by the test; outbound text frames are recorded.
    With ``stall=True`` every frame after the server hello blocks until
    ``release()`` is called.
    """

    def __init__(
        self, *, fail_on_send: bool = False, fail_hello: bool = False, stall: bool = False
    ) -> None:
        self.accepted = False
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self._incoming: asyncio.Queue[dict] = asyncio.Queue()
        self._fail_on_send = fail_on_send
        self._fail_hello = fail_hello
        self._stall = stall
        self._released = asyncio.Event()

    async def accept(self) -> None:
        self.accepted = True

    async def receive(self) -> dict:
        message = await self._incoming.get()
        if message["type"] == "websocket.disconnect":
            self.client_state = WebSocketState.DISCONNECTED
        return message

    async def send_text(self, data: str) -> None:
        if self._fail_hello or (self._fail_on_send and self.sent):
            raise RuntimeError("connection closed")
        if self._stall and self.sent:
            await self._released.wait()
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def push(self, text: str) -> None:
        self._incoming.put_nowait({"type": "websocket.receive", "text": text})

    def push_json(self, obj: object) -> None:
        self.push(json.dumps(obj))

    def disconnect(self, code: int = 1000) -> None:
        self._incoming.put_nowait({"type": "websocket.disconnect", "code": code})

    def release(self) -> None:
        self._released.set()

    @property
    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]


HELLO = {"command": "hello", "protocols": [PROTOCOL_OFFICIAL_7]}


async def wait_for(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``predicate()`` is true or fail after ``timeout``."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


async def open_connection(server: Server, ws: FakeWebSocket) -> tuple[Connection, asyncio.Task]:
    """Register a connection on ``server`` and start its state machine."""
    conn = Connection(ws, server, server.connections)
    server.connections.add(conn)
    task = asyncio.create_task(conn.run())
    await asyncio.sleep(0)
    return conn, task


async def open_live_connection(
    server: Server, ws: FakeWebSocket | None = None
) -> tuple[Connection, FakeWebSocket, asyncio.Task]:
    ws = ws if ws is not None else FakeWebSocket()
    conn, task = await open_connection(server, ws)
    ws.push_json(HELLO)
    await wait_for(lambda: conn.state is ConnectionState.LIVE and len(ws.sent) == 1)
    return conn, ws, task


@pytest.fixture
def server() -> Server:
    """Server with a short broadcast deadline, not bound to any socket."""
    srv = Server("TestServer", "127.0.0.1", 0)
    srv.send_timeout = 1.0
    return srv
