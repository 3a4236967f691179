# config.py -- All configuration from environment variables
# Loads .env file if present, then reads os.environ.
# Values here are defaults for Server construction; setters override per instance.

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

log = logging.getLogger(__name__)

DEFAULT_NAME = "LiveReload"
DEFAULT_HOST = ""
DEFAULT_PORT = 35729

# Walk up from config.py to find .env (supports both src layout and installed)
_project_root = Path(__file__).resolve().parent.parent.parent
load_dotenv(_project_root / ".env")
load_dotenv(override=False)


def _safe_int(
    name: str, default: int, min_val: int | None = None, max_val: int | None = None
) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = int(raw)
    except (ValueError, TypeError):
        log.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default
    if min_val is not None and val < min_val:
        log.warning("%s=%d below minimum %d, using %d", name, val, min_val, min_val)
        return min_val
    if max_val is not None and val > max_val:
        log.warning("%s=%d above maximum %d, using %d", name, val, max_val, max_val)
        return max_val
    return val


def _safe_float(name: str, default: float, min_val: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        val = float(raw)
    except (ValueError, TypeError):
        log.warning("Invalid number for %s=%r, using default %s", name, raw, default)
        return default
    if min_val is not None and val < min_val:
        log.warning("%s=%s below minimum %s, using %s", name, val, min_val, min_val)
        return min_val
    return val


def _safe_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Server identity and address
    name: str = os.getenv("LRSERVER_NAME", DEFAULT_NAME)
    host: str = os.getenv("LRSERVER_HOST", DEFAULT_HOST)
    port: int = _safe_int("LRSERVER_PORT", DEFAULT_PORT, min_val=0, max_val=65535)

    # Whether clients may swap stylesheets without a full reload
    live_css: bool = _safe_bool("LRSERVER_LIVE_CSS", True)

    # Seconds a broadcast waits for one connection to take a command
    send_timeout: float = _safe_float("LRSERVER_SEND_TIMEOUT", 5.0, min_val=0.0)

    # Client script served at /livereload.js (empty = not served)
    js_path: str = os.getenv("LRSERVER_JS_PATH", "")

    log_level: str = os.getenv("LRSERVER_LOG_LEVEL", "INFO").upper()


config = Config()
