"""Filesystem NDJSON event sink with concurrency-safe appends.

Events are appended as one JSON line per event.  Two log destinations:

- ``logs/events.ndjson``  -- global event log
- ``logs/sheets/<sheet>.ndjson``  -- per-sheet log

Writes use ``json.dumps(sort_keys=True)`` for deterministic output.

Each append acquires an exclusive ``fcntl.flock`` on the target file and
reads acquire a shared lock.  On platforms without ``fcntl`` (Windows),
locking is skipped with a stderr warning.
"""

from __future__ import annotations

import json
import os
import re
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from sheetcalc.logging.events import SheetcalcEvent

# Try to import fcntl for file locking (Unix only)
try:
    import fcntl

    _HAS_FCNTL = True
except ImportError:
    _HAS_FCNTL = False
    print(
        "[sheetcalc] fcntl not available; log file locking disabled",
        file=sys.stderr,
    )

# Path-component validation: reject anything that could escape the logs dir
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9_\-]+$")

# Default tail-read size (2 MB)
_DEFAULT_TAIL_BYTES = 2 * 1024 * 1024


class EventSink:
    """Append-only NDJSON log writer with file locking."""

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self._fsync = fsync
        self._tail_bytes = tail_bytes if tail_bytes is not None else _DEFAULT_TAIL_BYTES

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        (self.logs_dir / "sheets").mkdir(exist_ok=True)

    def write(self, event: SheetcalcEvent, *, sheet: str | None = None) -> None:
        """Append *event* to the global log and optionally a per-sheet log."""
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"

        self._append(self.logs_dir / "events.ndjson", line)

        if sheet and _SAFE_ID_RE.match(sheet):
            self._append(self.logs_dir / "sheets" / f"{sheet}.ndjson", line)

    # ------------------------------------------------------------------
    # Query helpers (used by the CLI)
    # ------------------------------------------------------------------

    def read_global(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        label: str | None = None,
        sheet: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Read events from the global log, most-recent-first, with filters."""
        limit = min(limit, 2000)

        events = self._read_ndjson(self.logs_dir / "events.ndjson")

        if level:
            events = [e for e in events if e.get("level") == level]
        if event_type:
            events = [e for e in events if e.get("event_type") == event_type]
        if label:
            events = [
                e for e in events
                if e.get("context", {}).get("label") == label
            ]
        if sheet:
            events = [
                e for e in events
                if e.get("context", {}).get("sheet") == sheet
            ]

        events.reverse()
        return events[:limit]

    def read_sheet_log(self, sheet: str) -> list[dict[str, Any]]:
        """Read all events for a specific sheet, oldest first."""
        if not _SAFE_ID_RE.match(sheet):
            return []
        return self._read_ndjson(self.logs_dir / "sheets" / f"{sheet}.ndjson")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _append(self, path: Path, line: str) -> None:
        """Append a single line to *path* under exclusive file lock."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_APPEND)
        try:
            with _flocked(fd, exclusive=True):
                os.write(fd, line.encode("utf-8"))
                if self._fsync:
                    os.fsync(fd)
        finally:
            os.close(fd)

    def _read_ndjson(self, path: Path) -> list[dict[str, Any]]:
        """Read the tail of an NDJSON file, skipping unparseable lines."""
        if not path.exists():
            return []

        events: list[dict[str, Any]] = []
        for line in self._read_tail(path).splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events

    def _read_tail(self, path: Path) -> str:
        """Return at most the last ``tail_bytes`` of *path*, whole lines only."""
        fd = os.open(str(path), os.O_RDONLY)
        try:
            with _flocked(fd, exclusive=False):
                size = os.fstat(fd).st_size
                start = max(0, size - self._tail_bytes)
                os.lseek(fd, start, os.SEEK_SET)
                data = os.read(fd, size - start)
        finally:
            os.close(fd)
        if start > 0:
            # Cut mid-line; keep from the next full line.
            _, _, data = data.partition(b"\n")
        return data.decode("utf-8", errors="replace")


@contextmanager
def _flocked(fd: int, *, exclusive: bool) -> Iterator[None]:
    """Hold an advisory ``flock`` on *fd* where the platform has one."""
    if not _HAS_FCNTL:
        yield
        return
    fcntl.flock(fd, fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
    try:
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
