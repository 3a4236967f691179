# connection.py -- One LiveReload client socket and its state machine
# Handshake first, then a multiplexed wait on inbound frames, the command
# mailbox and the close signal. Any failure ends in Closing -> Closed.

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Coroutine
from contextlib import suppress
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .protocol import (
    PROTOCOL_OFFICIAL_7,
    DecodeError,
    Hello,
    UnknownCommandError,
    decode_incoming,
    encode_alert,
    encode_hello,
    encode_reload,
)

if TYPE_CHECKING:
    from .server import Server
    from .ws import ConnectionRegistry

log = logging.getLogger(__name__)

_ids = itertools.count(1)

RELOAD = "reload"
ALERT = "alert"


class ConnectionState(Enum):
    CONNECTING = "connecting"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    LIVE = "live"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseCode(IntEnum):
    NORMAL = 1000
    GOING_AWAY = 1001
    PROTOCOL_ERROR = 1002


class HandshakeError(DecodeError):
    """Client's first frame was not a hello naming a supported protocol."""


class Connection:
    """Owns one accepted WebSocket for its whole lifetime.

    Commands reach the socket only through ``enqueue``; the mailbox holds at
    most one pending command, so a stalled client makes broadcasters wait
    (bounded by their timeout) instead of piling up frames in memory.
    """

    def __init__(self, websocket: WebSocket, server: Server, registry: ConnectionRegistry) -> None:
        self.id = next(_ids)
        self.websocket = websocket
        self.server = server
        self.registry = registry
        self.state = ConnectionState.CONNECTING
        self.handshake_complete = False
        self._mailbox: asyncio.Queue[tuple[str, str]] = asyncio.Queue(maxsize=1)
        self._closed = asyncio.Event()
        self._close_code = CloseCode.NORMAL

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.state.value}>"

    @property
    def closed(self) -> bool:
        return self.state is ConnectionState.CLOSED

    # -- inbound side -------------------------------------------------------

    async def run(self) -> None:
        """Drive the connection from handshake to Closed. Never raises for I/O errors."""
        self.state = ConnectionState.AWAITING_HANDSHAKE
        log.debug("Connection %s awaiting handshake", self.id)
        try:
            await self._until_closed(self._handshake())
            if self.state is ConnectionState.LIVE and not self._closed.is_set():
                await self._serve_live()
        except asyncio.CancelledError:
            # The host is tearing the handler down; nothing may be awaited now.
            self._abandon()
            self.state = ConnectionState.CLOSED
            log.debug("Connection %s cancelled", self.id)
            raise
        except HandshakeError as e:
            self._close_code = CloseCode.PROTOCOL_ERROR
            self.server.log_error(f"connection {self.id}: handshake failed: {e}")
        except DecodeError as e:
            self._close_code = CloseCode.PROTOCOL_ERROR
            self.server.log_error(f"connection {self.id}: protocol violation: {e}")
        except WebSocketDisconnect as e:
            log.debug("Connection %s disconnected by client (code %s)", self.id, e.code)
        except (RuntimeError, OSError) as e:
            self.server.log_error(f"connection {self.id}: transport error: {e}")
        finally:
            if self.state is not ConnectionState.CLOSED:
                await self._shutdown()

    async def _read_frame(self) -> str | bytes:
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", CloseCode.NORMAL))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def _handshake(self) -> None:
        try:
            hello = decode_incoming(await self._read_frame())
        except UnknownCommandError as e:
            raise HandshakeError(f"expected hello, got {e.command!r}") from e
        if not hello.supports(PROTOCOL_OFFICIAL_7):
            raise HandshakeError(f"no supported protocol in {hello.protocols!r}")

        # Live before hello goes out: a racing broadcast is queued, and the
        # writer that drains the queue only starts after hello is written.
        self.state = ConnectionState.LIVE
        await self.websocket.send_text(encode_hello(self.server.name))
        self.handshake_complete = True
        log.debug("Connection %s live", self.id)

    async def _serve_live(self) -> None:
        await self._until_closed(self._read_loop(), self._write_loop())

    async def _until_closed(self, *coros: Coroutine[Any, Any, None]) -> None:
        """Run ``coros`` until one returns or raises, or the close signal fires."""
        tasks = {asyncio.create_task(c) for c in coros}
        tasks.add(asyncio.create_task(self._closed.wait()))
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for task in done:
            if not task.cancelled():
                task.result()

    async def _read_loop(self) -> None:
        while True:
            frame = await self._read_frame()
            try:
                msg = decode_incoming(frame)
            except UnknownCommandError as e:
                log.debug("Connection %s ignoring command %r", self.id, e.command)
                continue
            if isinstance(msg, Hello):
                log.debug("Connection %s ignoring repeated hello", self.id)

    async def _write_loop(self) -> None:
        while True:
            kind, payload = await self._mailbox.get()
            if kind == RELOAD:
                frame = encode_reload(payload, self.server.live_css)
            else:
                frame = encode_alert(payload)
            await self.websocket.send_text(frame)

    # -- outbound side ------------------------------------------------------

    async def enqueue(self, kind: str, payload: str, timeout: float | None = None) -> bool:
        """Hand a command to this connection's writer.

        Waits for mailbox space, the close signal, or ``timeout`` seconds,
        whichever comes first. Returns True if the command was accepted.
        Connections that are not Live accept nothing.
        """
        if self.state is not ConnectionState.LIVE:
            return False
        put = asyncio.ensure_future(self._mailbox.put((kind, payload)))
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({put, closed}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed.cancel()
            accepted = put.done() and not put.cancelled()
            if not put.done():
                put.cancel()
        if accepted and self._closed.is_set():
            # Landed in the slot freed by Closing's drain; nobody will read it.
            self._drain()
            return False
        return accepted

    async def send_reload(self, file: str, timeout: float | None = None) -> bool:
        return await self.enqueue(RELOAD, file, timeout)

    async def send_alert(self, message: str, timeout: float | None = None) -> bool:
        return await self.enqueue(ALERT, message, timeout)

    def close(self, code: CloseCode = CloseCode.NORMAL) -> None:
        """Signal the connection to close. Safe to call repeatedly."""
        if self._closed.is_set():
            return
        self._close_code = code
        self._closed.set()

    # -- teardown -------------------------------------------------------------

    def _drain(self) -> int:
        dropped = 0
        while True:
            try:
                self._mailbox.get_nowait()
            except asyncio.QueueEmpty:
                return dropped
            dropped += 1

    def _abandon(self) -> None:
        """Synchronous half of Closing: stop accepting, deregister, drop queued commands."""
        self.state = ConnectionState.CLOSING
        self._closed.set()
        self.registry.remove(self)
        dropped = self._drain()
        if dropped:
            log.debug("Connection %s dropped %d pending command(s)", self.id, dropped)

    async def _shutdown(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self._abandon()
        try:
            if (
                self.websocket.client_state is not WebSocketState.DISCONNECTED
                and self.websocket.application_state is not WebSocketState.DISCONNECTED
            ):
                with suppress(RuntimeError, OSError):
                    await self.websocket.close(code=self._close_code)
        finally:
            self.state = ConnectionState.CLOSED
            log.debug("Connection %s closed (code %d)", self.id, self._close_code)
