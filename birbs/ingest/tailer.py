"""
Append-only log tailing.

``LogTailer`` follows one growing file and yields each newly appended,
newline-terminated line exactly once, in order. Waiting is driven by
filesystem change notifications (``watchfiles``), not by polling the file.

The committed cursor always sits just past the last complete line that was
delivered, so a partially written trailing line is re-read (and delivered)
only once a later append completes it, and stopping the tailer never loses
delivered progress.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional

from watchfiles import watch

from ..core.errors import FileShrunk

logger = logging.getLogger(__name__)

# Milliseconds watchfiles waits to group bursts of change events
DEFAULT_DEBOUNCE_MS = 200

ChangeSource = Callable[[Path, threading.Event], Iterable[object]]


@dataclass
class WatchCursor:
    """Byte position in ``path`` up to which content has been delivered."""

    path: Path
    position: int


def notify_changes(path: Path, stop_event: threading.Event, debounce_ms: int = DEFAULT_DEBOUNCE_MS):
    """Yield once per batch of filesystem changes to ``path``.

    Exits when ``stop_event`` is set. The underlying watcher is released when
    the generator is closed.
    """
    yield from watch(
        path,
        watch_filter=None,
        debounce=debounce_ms,
        stop_event=stop_event,
        recursive=False,
    )


class LogTailer:
    """Deliver lines appended to a file after the tailer was opened.

    Use as a context manager; the file handle is held for the session::

        with LogTailer(path) as tailer:
            for line in tailer.follow(stop_event):
                ...
    """

    def __init__(self, path: Path, changes: Optional[ChangeSource] = None):
        """
        Args:
            path: File to follow
            changes: Factory returning an iterable that yields once per change
                notification; defaults to :func:`notify_changes`
        """
        self.path = Path(path)
        self._changes = changes or notify_changes
        self._file = None
        self.cursor: Optional[WatchCursor] = None

    def __enter__(self) -> "LogTailer":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        self._file = open(self.path, "rb")
        size = os.fstat(self._file.fileno()).st_size
        self.cursor = WatchCursor(path=self.path, position=size)
        logger.debug(f"Tailing {self.path} from byte {size}")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def _read_complete(self) -> List[bytes]:
        """Complete lines (with terminators) past the cursor, without committing them."""
        if self._file is None or self.cursor is None:
            raise RuntimeError("LogTailer is not open")

        size = os.fstat(self._file.fileno()).st_size
        if size == self.cursor.position:
            return []
        if size < self.cursor.position:
            raise FileShrunk(path=self.path, cursor=self.cursor.position, size=size)

        self._file.seek(self.cursor.position)
        data = self._file.read(size - self.cursor.position)

        end = data.rfind(b"\n")
        if end == -1:
            return []
        return [line + b"\n" for line in data[:end].split(b"\n")]

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.rstrip(b"\r\n").decode("utf-8", errors="replace")

    def read_new_lines(self) -> List[str]:
        """Read complete lines appended since the cursor and advance it.

        Returns:
            Newly completed lines without their terminators (may be empty)

        Raises:
            FileShrunk: The file is now shorter than the cursor
        """
        raw_lines = self._read_complete()
        self.cursor.position += sum(len(raw) for raw in raw_lines)
        return [self._decode(raw) for raw in raw_lines]

    def follow(self, stop_event: Optional[threading.Event] = None) -> Iterator[str]:
        """Yield appended lines until ``stop_event`` is set.

        The cursor advances one line at a time as each line is handed out,
        so lines left undelivered at stop are still ahead of it.
        Spurious notifications (no size change) are ignored.
        """
        stop_event = stop_event or threading.Event()
        changes = iter(self._changes(self.path, stop_event))
        try:
            for _ in changes:
                if stop_event.is_set():
                    break
                try:
                    raw_lines = self._read_complete()
                except OSError as e:
                    logger.warning(f"Failed to read {self.path}, waiting for next change: {e}")
                    continue
                for raw in raw_lines:
                    self.cursor.position += len(raw)
                    yield self._decode(raw)
                    if stop_event.is_set():
                        return
        finally:
            # release the watch handle
            close = getattr(changes, "close", None)
            if close is not None:
                close()
