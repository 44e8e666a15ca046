"""Coloured, levelled diagnostic logger tagged with a node id."""

from __future__ import annotations

import sys
import time
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_LABELS = {
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO ",
    LogLevel.WARN: "WARN ",
    LogLevel.ERROR: "ERROR",
}

_COLORS = {
    LogLevel.DEBUG: "\033[34m",
    LogLevel.INFO: "\033[32m",
    LogLevel.WARN: "\033[33m",
    LogLevel.ERROR: "\033[31m",
}

_COLOR_RESET = "\033[0m"


class Logger:
    """Writes messages at or above a minimum level, one line each."""

    def __init__(self, node_id: str, level: LogLevel = LogLevel.DEBUG, out: TextIO | None = None) -> None:
        self.node_id = node_id
        self.level = level
        self._out = out

    def _log(self, level: LogLevel, message: str) -> None:
        if level < self.level:
            return
        out = self._out if self._out is not None else sys.stdout
        ts = time.time_ns() // 1_000_000
        out.write(f"{_COLORS[level]}[{_LABELS[level]} {ts}] {self.node_id}{_COLOR_RESET} {message}\n")

    @staticmethod
    def _format(fmt: str, args: tuple[Any, ...]) -> str:
        return fmt % args if args else fmt

    def debug(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.DEBUG, self._format(fmt, args))

    def info(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.INFO, self._format(fmt, args))

    def warn(self, fmt: str, *args: Any) -> None:
        self._log(LogLevel.WARN, self._format(fmt, args))

    def error(self, err: BaseException | str, fmt: str, *args: Any) -> None:
        self._log(LogLevel.ERROR, f"{self._format(fmt, args)}: {err}")