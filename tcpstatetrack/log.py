"""Buffered log file with periodic flushing and size-limited truncation."""

from __future__ import annotations

import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Optional

from .log_entries import LogEntry

SESSION_TRUNCATE_MESSAGE = "Log truncated at start of new session\n"
SIZE_TRUNCATE_MESSAGE = "Log truncated due to size limit\n"


@dataclass
class FlushPolicy:
    """When buffered entries are written out and when the file is cut back."""

    max_updates: int = 1000
    max_minutes: int = 5
    max_size: int = 10 * 1024 * 1024


class Log:
    """Append log entries to a file, buffering them between flushes."""

    def __init__(self, filename: str | Path, enabled: bool,
                 policy: Optional[FlushPolicy] = None) -> None:
        self.filename = Path(filename)
        self.enabled = enabled
        self.policy = policy if policy is not None else FlushPolicy()
        self._file: Optional[IO[str]] = None
        self._buffer: list[LogEntry] = []
        self._update_count = 0
        self._last_flush = time.monotonic()
        self._lock = threading.RLock()
        if self.enabled:
            self._file = self._open("Failed to open log file: ")

    def _open(self, failure_message: str) -> Optional[IO[str]]:
        try:
            return self.filename.open("a", encoding="utf-8")
        except OSError:
            print(f"{failure_message}{self.filename}", file=sys.stderr)
            return None

    def log(self, entry: LogEntry) -> None:
        """Buffer an entry, flushing when the policy says so."""
        if not self.enabled or self._file is None:
            return
        with self._lock:
            self._buffer.append(entry)
            self._update_count += 1
            elapsed_minutes = int((time.monotonic() - self._last_flush) // 60)
            if (self._update_count >= self.policy.max_updates
                    or elapsed_minutes >= self.policy.max_minutes):
                self.flush()
                self._update_count = 0
                self._last_flush = time.monotonic()

    def flush(self) -> None:
        """Write all buffered entries to the file."""
        with self._lock:
            if self._file is None or not self._buffer:
                return
            self._check_size_and_truncate()
            if self._file is None:
                return
            for entry in self._buffer:
                self._file.write(entry.format() + "\n")
            self._file.flush()
            self._buffer.clear()

    def truncate(self) -> None:
        """Empty the file, leaving a note that a new session started."""
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
            self.filename.write_text(SESSION_TRUNCATE_MESSAGE, encoding="utf-8")
            if self.enabled:
                self._file = self._open("Failed to reopen log file after truncation: ")

    def _check_size_and_truncate(self) -> None:
        if self.filename.exists() and self.filename.stat().st_size > self.policy.max_size:
            if self._file is not None:
                self._file.close()
            self.filename.write_text(SIZE_TRUNCATE_MESSAGE, encoding="utf-8")
            self._file = self._open("Failed to reopen log file: ")

    def close(self) -> None:
        """Flush remaining entries and close the file."""
        with self._lock:
            if self._file is None:
                return
            self.flush()
            self._file.close()
            self._file = None

    def __enter__(self) -> Log:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()