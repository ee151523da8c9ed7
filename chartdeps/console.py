"""Leveled console output shared by the engine and the CLI."""
from __future__ import annotations

from typing import TextIO
import sys
import threading

from core.archive import ArchiveConsole


class Console(ArchiveConsole):
    """Simple console output handler with configurable log level.

    Levels: none < error < warning < info < debug
    Default: 'info'. Lines are written under a lock because packaging and
    extraction report from worker threads.
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "warning": 2,
        "info": 3,
        "debug": 4,
    }

    def __init__(
        self,
        level: str = "info",
        dry_run: bool = False,
        *,
        stream: TextIO | None = None,
        error_stream: TextIO | None = None,
    ) -> None:
        if level not in self.LEVELS:
            raise ValueError(f"Unknown log level '{level}'. Choose from: {', '.join(self.LEVELS)}")
        self.level_name = level
        self.level = self.LEVELS[level]
        self.dry_run = dry_run
        self._stream = stream
        self._error_stream = error_stream
        self._lock = threading.Lock()

    def _write(self, message: str, *, error: bool = False) -> None:
        target = (self._error_stream or sys.stderr) if error else (self._stream or sys.stdout)
        with self._lock:
            print(message, file=target)

    def info(self, message: str) -> None:
        if self.level >= self.LEVELS["info"]:
            self._write(f"[INFO] {message}")

    def warning(self, message: str) -> None:
        if self.level >= self.LEVELS["warning"]:
            self._write(f"[WARN] {message}", error=True)

    def error(self, message: str) -> None:
        if self.level >= self.LEVELS["error"]:
            self._write(f"[ERROR] {message}", error=True)

    def dry(self, message: str) -> None:
        if self.dry_run:
            self._write(f"[DRY] {message}")

    def debug(self, message: str) -> None:
        if self.level >= self.LEVELS["debug"]:
            self._write(f"[DEBUG] {message}")


__all__ = ["Console"]
