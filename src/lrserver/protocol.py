# protocol.py -- LiveReload wire codec
# JSON text frames: hello (both directions), reload and alert (server -> client).
# Pure functions, no shared state.

from __future__ import annotations

import json
from dataclasses import dataclass, field

PROTOCOL_OFFICIAL_7 = "http://livereload.com/protocols/official-7"

SUPPORTED_PROTOCOLS = (PROTOCOL_OFFICIAL_7,)


class DecodeError(ValueError):
    """An inbound frame could not be turned into a known command."""


class MalformedFrameError(DecodeError):
    """Frame is not a JSON object with a string ``command``, or hello is malformed."""


class UnknownCommandError(DecodeError):
    """Frame is well-formed but names a command the server does not accept."""

    def __init__(self, command: str) -> None:
        super().__init__(f"unknown command: {command!r}")
        self.command = command


@dataclass(frozen=True)
class Hello:
    protocols: list[str] = field(default_factory=list)

    def supports(self, protocol: str = PROTOCOL_OFFICIAL_7) -> bool:
        return protocol in self.protocols


def decode_incoming(data: str | bytes) -> Hello:
    """Decode one client frame. Only ``hello`` is recognized.

    Raises MalformedFrameError for anything that is not a valid command
    object, and UnknownCommandError for valid objects naming another command.
    """
    try:
        msg = json.loads(data)
    except (ValueError, TypeError) as e:
        raise MalformedFrameError(f"invalid JSON: {e}") from e
    if not isinstance(msg, dict):
        raise MalformedFrameError("frame is not a JSON object")

    command = msg.get("command")
    if not isinstance(command, str):
        raise MalformedFrameError("missing command")
    if command != "hello":
        raise UnknownCommandError(command)

    protocols = msg.get("protocols", [])
    if not isinstance(protocols, list) or not all(isinstance(p, str) for p in protocols):
        raise MalformedFrameError("hello protocols must be a list of strings")
    return Hello(protocols=list(protocols))


def _dump(msg: dict) -> str:
    return json.dumps(msg, separators=(",", ":"))


def encode_hello(server_name: str) -> str:
    return _dump({
        "command": "hello",
        "protocols": list(SUPPORTED_PROTOCOLS),
        "serverName": server_name,
    })


def encode_reload(file: str, live_css: bool) -> str:
    return _dump({"command": "reload", "path": file, "liveCSS": bool(live_css)})


def encode_alert(message: str) -> str:
    return _dump({"command": "alert", "message": message})
