"""Console log formatting."""

from __future__ import annotations

import logging
import os
import re
import sys
from typing import IO

NODE_TAG_PATTERN = re.compile(r"^\[NODE-[^\]]+\]")


class ColoredFormatter(logging.Formatter):
    """Colors the level name and the ``[NODE-<id>]`` prefix of node messages.

    ``NO_COLOR`` disables colors, ``FORCE_COLOR`` enables them even when the
    stream is not a TTY.
    """

    LEVEL_COLORS: dict[int, str] = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    NODE_COLOR = "\033[35m"
    RESET = "\033[0m"

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        stream: IO[str] | None = None,
    ) -> None:
        super().__init__(fmt, datefmt, style)  # type: ignore[arg-type]
        self._stream = stream

    def use_color(self) -> bool:
        if os.environ.get("NO_COLOR") is not None:
            return False
        if os.environ.get("FORCE_COLOR") is not None:
            return True
        stream = self._stream or sys.stderr
        return hasattr(stream, "isatty") and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color():
            return super().format(record)

        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"

        message = record.getMessage()
        tagged = NODE_TAG_PATTERN.sub(lambda m: f"{self.NODE_COLOR}{m.group(0)}{self.RESET}", message)
        if tagged != message:
            record.msg = tagged
            record.args = None
        return super().format(record)
