# server.py -- LiveReload server facade
# Holds shared configuration, accepts upgraded sockets and fans reload/alert
# commands out to every live connection.

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable
from concurrent.futures import Future

import uvicorn
from starlette.websockets import WebSocket

from .app import create_app
from .config import DEFAULT_HOST, DEFAULT_NAME, DEFAULT_PORT, config
from .connection import ALERT, RELOAD, CloseCode, Connection, ConnectionState
from .ws import ConnectionRegistry

log = logging.getLogger(__name__)


class Server:
    """A LiveReload server.

    File watching is the caller's job: call ``reload``/``alert`` (or their
    ``*_threadsafe`` variants from another thread) when something changes.
    Several servers may run in one process, each with its own connections.
    """

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        registry: ConnectionRegistry | None = None,
    ) -> None:
        self._name = name
        self._host = host
        self._port = port
        self._live_css = True
        self._send_timeout: float | None = config.send_timeout
        self._js_path = config.js_path
        self._status_log: logging.Logger | None = logging.getLogger("lrserver.status")
        self._error_log: logging.Logger | None = logging.getLogger("lrserver.error")

        self.connections = registry if registry is not None else ConnectionRegistry()
        self.app = create_app(self)

        self._socket: socket.socket | None = None
        self._uvicorn: uvicorn.Server | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # -- configuration --------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value

    @property
    def host(self) -> str:
        return self._host

    @host.setter
    def host(self, value: str) -> None:
        self._host = value

    @property
    def port(self) -> int:
        return self._port

    @port.setter
    def port(self, value: int) -> None:
        if not 0 <= value <= 65535:
            raise ValueError(f"port out of range: {value}")
        self._port = value

    @property
    def addr(self) -> str:
        return f"{self._host}:{self._port}"

    @property
    def live_css(self) -> bool:
        return self._live_css

    @live_css.setter
    def live_css(self, value: bool) -> None:
        self._live_css = bool(value)

    @property
    def send_timeout(self) -> float | None:
        """Seconds a broadcast waits on one connection. None waits until it closes."""
        return self._send_timeout

    @send_timeout.setter
    def send_timeout(self, value: float | None) -> None:
        self._send_timeout = value

    @property
    def js_path(self) -> str:
        return self._js_path

    @js_path.setter
    def js_path(self, value: str) -> None:
        self._js_path = value

    @property
    def status_log(self) -> logging.Logger | None:
        return self._status_log

    @status_log.setter
    def status_log(self, logger: logging.Logger | None) -> None:
        self._status_log = logger

    @property
    def error_log(self) -> logging.Logger | None:
        return self._error_log

    @error_log.setter
    def error_log(self, logger: logging.Logger | None) -> None:
        self._error_log = logger

    def log_status(self, msg: str) -> None:
        if self._status_log is not None:
            self._status_log.info("[%s] %s", self._name, msg)

    def log_error(self, msg: str) -> None:
        if self._error_log is not None:
            self._error_log.warning("[%s] %s", self._name, msg)

    # -- broadcast ------------------------------------------------------------

    async def reload(self, file: str) -> None:
        """Ask every live client to reload ``file``."""
        self.log_status(f"requesting reload: {file}")
        await self._broadcast(RELOAD, file)

    async def alert(self, message: str) -> None:
        """Ask every live client to show ``message``."""
        self.log_status(f"requesting alert: {message}")
        await self._broadcast(ALERT, message)

    async def _broadcast(self, kind: str, payload: str) -> None:
        targets: list[Connection] = []
        sends: list[Awaitable[bool]] = []

        def _enqueue(conn: Connection) -> None:
            targets.append(conn)
            sends.append(conn.enqueue(kind, payload, timeout=self._send_timeout))

        self.connections.for_each(_enqueue)
        if not sends:
            return

        results = await asyncio.gather(*sends)
        for conn, accepted in zip(targets, results):
            if accepted:
                continue
            if conn.state is ConnectionState.LIVE:
                self.log_error(f"connection {conn.id}: dropped {kind}, client not reading")
            else:
                log.debug("Skipped %s for %r", kind, conn)

    def reload_threadsafe(self, file: str) -> Future[None]:
        return asyncio.run_coroutine_threadsafe(self.reload(file), self._require_loop())

    def alert_threadsafe(self, message: str) -> Future[None]:
        return asyncio.run_coroutine_threadsafe(self.alert(message), self._require_loop())

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            raise RuntimeError("server is not running")
        return self._loop

    # -- connections ----------------------------------------------------------

    async def handle(self, websocket: WebSocket) -> None:
        """Take ownership of an upgrade request and run it until it closes."""
        await websocket.accept()
        conn = Connection(websocket, self, self.connections)
        self.connections.add(conn)
        await conn.run()

    def close_all(self, code: CloseCode = CloseCode.GOING_AWAY) -> None:
        self.connections.for_each(lambda conn: conn.close(code))

    # -- listening ------------------------------------------------------------

    def listen(self) -> socket.socket:
        """Bind the listening socket. Bind errors propagate to the caller."""
        sock = socket.create_server((self._host, self._port))
        if self._port == 0:
            self._host, self._port = sock.getsockname()[:2]
        self._socket = sock
        return sock

    async def serve(self) -> None:
        sock = self._socket if self._socket is not None else self.listen()
        self._uvicorn = uvicorn.Server(
            uvicorn.Config(self.app, log_level=config.log_level.lower(), lifespan="on")
        )
        self.log_status(f"listening on {self.addr}")
        try:
            await self._uvicorn.serve(sockets=[sock])
        finally:
            self._uvicorn = None
            self._socket = None
            sock.close()

    def listen_and_serve(self) -> None:
        """Bind and serve until interrupted."""
        self.listen()
        asyncio.run(self.serve())

    def shutdown(self) -> None:
        """Close every connection and stop serving. Call from the serving loop."""
        self.close_all()
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True

    def shutdown_threadsafe(self) -> None:
        """Stop a server running in another thread (e.g. under ``listen_and_serve``)."""
        self._require_loop().call_soon_threadsafe(self.shutdown)
