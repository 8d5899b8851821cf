"""Logging setup for earcon.

Importing the package only adds a console handler when the host application
has not configured logging itself. The debug log file is opt-in: set
``EARCON_LOG_DIR`` or call ``configure_logging(log_file=True)``, as the CLI
does. Voices run on ``earcon-voice-*`` threads, so both formats carry the
thread name.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_DIR_ENV = "EARCON_LOG_DIR"
DEBUG_ENV = "EARCON_DEBUG"
_LOG_FILE = "earcon.log"
_CONSOLE_HANDLER = "earcon-console"
_FILE_HANDLER = "earcon-file"
_CONSOLE_FORMAT = "earcon %(levelname).1s [%(threadName)s] %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s"

_LOGGER = logging.getLogger("earcon.logging")


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV))


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".cache" / "earcon" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _owned(logger: logging.Logger, name: str) -> logging.Handler | None:
    for handler in logger.handlers:
        if handler.get_name() == name:
            return handler
    return None


def configure_logging(*, log_file: bool | None = None, force: bool = False) -> Path | None:
    """Attach the earcon handlers; returns the log file path when file logging is on.

    ``log_file=None`` enables the file only when ``EARCON_LOG_DIR`` is set.
    ``force`` replaces handlers installed by an earlier call.
    """

    logger = logging.getLogger("earcon")
    logger.setLevel(logging.DEBUG)
    if force:
        for name in (_CONSOLE_HANDLER, _FILE_HANDLER):
            handler = _owned(logger, name)
            if handler is not None:
                logger.removeHandler(handler)
                handler.close()

    if _owned(logger, _CONSOLE_HANDLER) is None and (force or not logging.getLogger().handlers):
        console = logging.StreamHandler(stream=sys.__stderr__)
        console.set_name(_CONSOLE_HANDLER)
        console.setLevel(logging.DEBUG if debug_enabled() else logging.INFO)
        console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        logger.addHandler(console)

    want_file = bool(os.environ.get(LOG_DIR_ENV)) if log_file is None else log_file
    existing = _owned(logger, _FILE_HANDLER)
    if existing is not None:
        return get_log_path()
    if not want_file:
        return None
    path = get_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        _LOGGER.warning("Debug log file unavailable at %s: %s", path, exc)
        return None
    file_handler.set_name(_FILE_HANDLER)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
    logger.addHandler(file_handler)
    return path


def log_failure(logger: logging.Logger, context: str, exc: BaseException) -> None:
    """Warn about ``exc`` and keep its traceback at DEBUG for the log file."""

    logger.warning("%s failed: %s", context, exc)
    logger.debug("%s traceback", context, exc_info=exc)
