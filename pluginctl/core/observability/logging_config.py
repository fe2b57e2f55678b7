"""
Logging configuration for the pluginctl process.

main.py calls ``setup_logging`` once per invocation; modules only do
``logger = logging.getLogger(__name__)``.

Console level, highest precedence first:
    --debug / --verbose / --quiet  >  PLUGINCTL_LOG_LEVEL  >  WARNING

A second, independent sink can be enabled with PLUGINCTL_LOG_FILE
(level from PLUGINCTL_LOG_FILE_LEVEL, defaulting to the console level).
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

LOG_LEVEL_ENV = "PLUGINCTL_LOG_LEVEL"
LOG_FILE_ENV = "PLUGINCTL_LOG_FILE"
LOG_FILE_LEVEL_ENV = "PLUGINCTL_LOG_FILE_LEVEL"

# Console formats, keyed by the most verbose level they apply to.
# Command results go to stdout, so the default console format only
# needs to say what went wrong.
_CONSOLE_FORMATS: list[tuple[int, str, str | None]] = [
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
]
_CONSOLE_DEFAULT_FORMAT = "%(levelname)s: %(message)s"

_FILE_FORMAT = "%(asctime)s %(process)d %(levelname)-5s %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level name from the global CLI flags."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get(LOG_LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure the root logger.

    Replaces any handlers already installed, so calling it again (as
    the test-suite's CliRunner does once per invocation) never stacks
    output.

    Args:
        level: Console level name.  Unknown names mean WARNING.
        log_file: Optional log file; its directory is created if needed.
        log_file_level: Level for the file.  Defaults to ``level``.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    root.addHandler(console)

    root_level = console_level
    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(fh)

    root.setLevel(root_level)

    # A broken stderr must not turn into a traceback from the logging module
    logging.raiseExceptions = False


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_DEFAULT_FORMAT)


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.strip().upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
