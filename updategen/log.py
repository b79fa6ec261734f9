from __future__ import annotations

import logging
import sys
from pathlib import Path

# Dedicated log channel; library modules log on its children via __name__.
CHANNEL = "updategen"

_FORMAT = "[%(asctime)s] %(name)s.%(levelname)s: %(message)s"


def channel() -> logging.Logger:
    return logging.getLogger(CHANNEL)


class _DebugEcho(logging.StreamHandler):
    """Echo debug records to stdout (``--debug-output``)."""

    def __init__(self) -> None:
        super().__init__(sys.stdout)
        self.setLevel(logging.DEBUG)
        self.addFilter(lambda record: record.levelno == logging.DEBUG)
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        # sys.stdout may be swapped (pytest capsys) after construction.
        self.stream = sys.stdout
        super().emit(record)


def configure_logging(log_file: Path | None = None, *, debug: bool = False) -> None:
    """Attach handlers to the channel. Safe to call once per invocation."""
    logger = channel()
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(fh)
    if debug:
        logger.addHandler(_DebugEcho())
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())


class Console:
    """User-facing output, duplicated to the log channel."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or channel()

    def info(self, message: str) -> None:
        print(message)
        self.logger.info(message)

    def warn(self, message: str) -> None:
        print(f"Warning: {message}", file=sys.stderr)
        self.logger.warning(message)

    def error(self, message: str) -> None:
        print(f"Error: {message}", file=sys.stderr)
        self.logger.error(message)
