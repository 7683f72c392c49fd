"""Logging setup shared by the bridge server, the CLI and uvicorn."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any

__all__ = ["setup_logging", "get_log_path", "uvicorn_log_config", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_DIR = Path.home() / ".contextbridge" / "logs"
_QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "websockets", "uvicorn.access")
_state: dict[str, Any] = {"path": None}


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Route root logging to a rotating file under the log dir (plus stderr).

    Repeated calls are no-ops unless ``force`` is set, so the CLI can call this
    once early and again after settings enable debug logging.
    """

    current: Path | None = _state["path"]
    if current is not None and not force:
        return current

    directory = Path(log_dir or os.environ.get("CONTEXTBRIDGE_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / "contextbridge.log"

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=_DATE_FORMAT)
    rotating = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    handlers: list[logging.Handler] = [rotating]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    quiet_level = max(level, logging.WARNING)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    _state["path"] = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging`."""

    return _state["path"]


def uvicorn_log_config() -> dict[str, Any]:
    """Logging dictConfig for uvicorn that defers to the root handlers."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "loggers": {
            "uvicorn": {"handlers": [], "propagate": True},
            "uvicorn.error": {"handlers": [], "propagate": True},
            "uvicorn.access": {"handlers": [], "propagate": True},
        },
    }
