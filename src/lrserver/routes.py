# routes.py -- HTTP surface of the LiveReload server
# /livereload.js serves the client script, /livereload is the WebSocket endpoint.

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import FileResponse, JSONResponse, Response

if TYPE_CHECKING:
    from .server import Server

router = APIRouter()


def get_server(scope: Request | WebSocket) -> Server:
    """Get the owning Server from app.state."""
    server = getattr(scope.app.state, "lr_server", None)
    if server is None:
        raise RuntimeError("LiveReload server not attached to app")
    return server


@router.get("/livereload.js")
async def livereload_js(request: Request) -> Response:
    js_path = get_server(request).js_path
    if not js_path or not Path(js_path).is_file():
        return JSONResponse({"detail": "Not Found"}, status_code=404)
    return FileResponse(js_path, media_type="application/javascript")


@router.websocket("/livereload")
async def livereload_socket(websocket: WebSocket) -> None:
    await get_server(websocket).handle(websocket)
