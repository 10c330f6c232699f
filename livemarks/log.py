from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import Tuple

from rich.logging import RichHandler

# HTTP transport loggers report every request at INFO; a poller would flood the console.
TRANSPORT_LOGGERS: Tuple[str, ...] = ("httpx", "httpcore")

_PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    no_color: bool = False


def parse_level(name: str) -> int:
    """Map DEBUG/INFO/WARN/WARNING/ERROR (any case) to a logging level; unknown names give INFO."""
    key = (name or "").strip().upper()
    if key == "WARN":
        key = "WARNING"
    level = logging.getLevelName(key)
    return level if isinstance(level, int) else logging.INFO


def _console_handler(no_color: bool) -> logging.Handler:
    if no_color or os.getenv("NO_COLOR") is not None or not sys.stderr.isatty():
        handler: logging.Handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
        return handler
    handler = RichHandler(rich_tracebacks=True, show_time=False, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(cfg: LogConfig) -> None:
    level = parse_level(cfg.level)
    handler = _console_handler(cfg.no_color)
    handler.setLevel(level)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(level)

    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
