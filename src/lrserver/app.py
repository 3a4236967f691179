# app.py -- FastAPI application wiring and CLI entry point
# One app per Server. Entry point: `python -m lrserver` or `lrserver` CLI.

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from .config import config
from .routes import router

if TYPE_CHECKING:
    from .server import Server

log = logging.getLogger(__name__)


def create_app(server: Server) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Bind the server to the serving loop; close clients on shutdown."""
        server.bind_loop(asyncio.get_running_loop())
        yield
        server.close_all()
        server.bind_loop(None)

    app = FastAPI(
        title=server.name,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.lr_server = server
    app.include_router(router)
    return app


def main() -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)-7s %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
    from .server import Server

    server = Server(config.name, config.host, config.port)
    server.live_css = config.live_css
    try:
        server.listen_and_serve()
    except KeyboardInterrupt:
        log.info("Interrupted")


if __name__ == "__main__":
    main()
