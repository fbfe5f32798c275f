"""
=============================================================================
FILE WATCHER
=============================================================================

Polls the served directory and reports changes so the memory cache can drop
entries before anyone asks for them.

    ┌──────────────┐   every `interval` s   ┌──────────────────────────┐
    │ FileWatcher  │ ─────── scan ────────► │ {path: (mtime_ns, size)} │
    │ (thread)     │                        └────────────┬─────────────┘
    └──────┬───────┘                                     │ diff with
           │                                             │ previous scan
           ▼                                             ▼
    callback(FileEvent("change", "/srv/public/app.js", is_directory=False))

Polling instead of inotify/FSEvents keeps this portable and dependency-free.
For a dev-server tree of a few thousand files a scan takes milliseconds.

The watcher is an optimization only. The static pipeline compares mtimes on
every request, so a missed or late event never serves stale content.
=============================================================================
"""

import fnmatch
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_IGNORED = (
    "*/.git/*",
    "*/node_modules/*",
    "*/__pycache__/*",
    "*.swp",
    "*~",
)

Snapshot = Dict[str, Tuple[int, int]]


@dataclass(frozen=True)
class FileEvent:
    """One detected change. kind is "add", "change", "unlink" or "unlink_dir"."""

    kind: str
    path: str
    is_directory: bool = False


class FileWatcher(threading.Thread):
    """
    Background polling watcher.

    Example:
        watcher = FileWatcher("./public", on_event, interval=0.5)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        root_dir: Path | str,
        callback: Callable[[FileEvent], None],
        interval: float = 1.0,
        ignored: Optional[Iterable[str]] = None,
    ):
        super().__init__(name="FileWatcher", daemon=True)
        self.root_dir = Path(root_dir).resolve()
        self.callback = callback
        self.interval = interval
        self.ignored = tuple(ignored) if ignored is not None else DEFAULT_IGNORED
        self._stop_event = threading.Event()
        self._snapshot: Snapshot = {}
        self._dirs: set[str] = set()

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    def run(self):
        self._snapshot, self._dirs = self.scan()
        logger.info(f"Watching {self.root_dir} ({len(self._snapshot)} files)")

        while not self._stop_event.wait(self.interval):
            try:
                self.poll()
            except Exception as e:
                # A failed scan (e.g. root briefly missing) must not kill the thread
                logger.exception(f"File watcher scan failed: {e}")

        logger.debug("File watcher stopped")

    def stop(self, timeout: Optional[float] = 2.0):
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)

    # ─────────────────────────────────────────────────────────────────────
    # SCANNING
    # ─────────────────────────────────────────────────────────────────────

    def is_ignored(self, path: str) -> bool:
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.ignored)

    def scan(self) -> Tuple[Snapshot, set[str]]:
        """Walk the tree once. Returns (files → (mtime_ns, size), directories)."""
        files: Snapshot = {}
        dirs: set[str] = set()

        for dirpath, dirnames, filenames in os.walk(self.root_dir):
            # Prune ignored directories in place so os.walk skips them
            dirnames[:] = [
                d for d in dirnames
                if not self.is_ignored(os.path.join(dirpath, d) + os.sep)
            ]
            dirs.update(os.path.join(dirpath, d) for d in dirnames)

            for name in filenames:
                full = os.path.join(dirpath, name)
                if self.is_ignored(full):
                    continue
                try:
                    st = os.stat(full)
                except OSError:
                    continue  # vanished between listdir and stat
                files[full] = (st.st_mtime_ns, st.st_size)

        return files, dirs

    def poll(self) -> list[FileEvent]:
        """Scan, diff against the previous scan, dispatch events."""
        files, dirs = self.scan()
        events: list[FileEvent] = []

        for path, signature in files.items():
            previous = self._snapshot.get(path)
            if previous is None:
                events.append(FileEvent("add", path))
            elif previous != signature:
                events.append(FileEvent("change", path))

        for path in self._snapshot.keys() - files.keys():
            events.append(FileEvent("unlink", path))

        for path in self._dirs - dirs:
            events.append(FileEvent("unlink_dir", path, is_directory=True))

        self._snapshot, self._dirs = files, dirs

        for event in events:
            logger.debug(f"File {event.kind}: {event.path}")
            self.callback(event)
        return events
