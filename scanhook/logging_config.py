"""Logging for the webhook service.

Console output always, plus ``scanhook.log`` (rotated) when a log directory
is configured. Both carry the ``[op:event:delivery]`` prefix from
`scanhook.log_context`.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from scanhook.log_context import ContextFilter

LOG_FILE_NAME = "scanhook.log"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3

CONSOLE_FMT = "%(asctime)s %(levelname)-8s %(name)s: %(ctx)s%(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(ctx)s%(message)s"

# Floor levels for library loggers. The server runs its AppRunner with
# ``access_log=None`` and logs each delivery itself, so aiohttp only reports
# protocol errors. psycopg stays quiet unless something goes wrong, since
# `StorageError` already carries the failure into our own logs.
LIBRARY_LEVELS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "psycopg": logging.WARNING,
}

logger = logging.getLogger(__name__)


def _coerce_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: int | str = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure the root logger. Safe to call again; handlers are replaced.

    ``level`` takes a number or a name such as ``"WARNING"``; unknown names
    fall back to INFO. ``verbose`` forces DEBUG for scanhook's own loggers
    while library loggers keep their floor.
    """
    resolved = logging.DEBUG if verbose else _coerce_level(level)

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, RotatingFileHandler):
            handler.close()
    root.setLevel(resolved)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FMT, datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [console]

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(FILE_FMT))
        handlers.append(file_handler)

    ctx_filter = ContextFilter()
    for handler in handlers:
        handler.addFilter(ctx_filter)
        root.addHandler(handler)

    for name, floor in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(max(floor, resolved))

    logger.info("Logging initialized (level=%s)", logging.getLevelName(resolved))
