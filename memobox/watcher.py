from __future__ import annotations

import fnmatch
import glob
import logging
import os
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

LOGGER = logging.getLogger("watcher")


def expand_pattern(pattern: str) -> str:
    """Expand ``~`` and make the pattern absolute and normalised."""
    return os.path.abspath(os.path.expanduser(pattern))


def watch_root(pattern: str) -> Path:
    """Return the deepest directory of a glob pattern that has no wildcards."""
    parts = Path(expand_pattern(pattern)).parts
    fixed = []
    for part in parts:
        if glob.has_magic(part):
            break
        fixed.append(part)
    else:
        # No wildcard at all: the pattern names a single file.
        fixed = fixed[:-1]
    if not fixed:
        return Path(".")
    return Path(*fixed)


def matches(path: Path, pattern: str) -> bool:
    expanded = expand_pattern(pattern)
    candidate = os.path.abspath(os.fsdecode(path))
    if fnmatch.fnmatch(candidate, expanded):
        return True
    # "dir/**/*.m4a" should also match files directly inside "dir".
    return "**/" in expanded and fnmatch.fnmatch(candidate, expanded.replace("**/", "", 1))


class RecordingHandler(FileSystemEventHandler):
    """Dispatch events for new or updated recording files."""

    def __init__(self, pattern: str, callback: Callable[[Path], None]) -> None:
        super().__init__()
        self._pattern = pattern
        self._callback = callback

    def on_created(self, event: FileSystemEvent) -> None:  # pragma: no cover - relies on filesystem
        self._handle_path(event, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:  # pragma: no cover - relies on filesystem
        self._handle_path(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:  # pragma: no cover - relies on filesystem
        self._handle_path(event, event.dest_path)

    def _handle_path(self, event: FileSystemEvent, raw_path) -> None:
        if event.is_directory:
            return
        path = Path(os.fsdecode(raw_path))
        if not matches(path, self._pattern):
            return
        self._callback(path)


def start_watcher(pattern: str, callback: Callable[[Path], None]) -> Observer:
    """Start a watchdog observer for the directory a glob pattern points into."""
    directory = watch_root(pattern)
    recursive = "**" in pattern or len(Path(expand_pattern(pattern)).parts) - len(directory.parts) > 1
    observer = Observer()
    observer.schedule(RecordingHandler(pattern, callback), str(directory), recursive=recursive)
    observer.start()
    LOGGER.info("Watching %s for new recordings", directory)
    return observer
