from __future__ import annotations

import glob
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Tuple

from watchdog.observers import Observer

from .config import Settings, load_settings, require
from .labeller import Categorizer
from .metadata import probe_duration
from .paths import ensure_directories
from .progress import ProgressTracker
from .store import MemoStore, is_valid_label
from .transcribe import WhisperTranscriber
from .watcher import expand_pattern, start_watcher
from .workers import WorkerPool

LOGGER = logging.getLogger("service")


@dataclass
class ImportReport:
    found: int = 0
    skipped: int = 0
    transcribed: int = 0
    labelled: int = 0
    failed: int = 0


class ImportService:
    """Transcribe new recordings and label unlabelled memos."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        store: Optional[MemoStore] = None,
        transcriber: Optional[WhisperTranscriber] = None,
        categorizer: Optional[Categorizer] = None,
        show_progress: bool = True,
    ) -> None:
        self.settings = ensure_directories(settings or load_settings())
        self.pattern: str = require(self.settings, "memos_glob")
        self.store = store or MemoStore(self.settings.db_path)
        self._owns_store = store is None
        self.transcriber = transcriber or WhisperTranscriber(self.settings)
        self._categorizer = categorizer
        self.show_progress = show_progress
        self.report = ImportReport()
        self._report_lock = threading.Lock()
        self._inflight: Set[str] = set()
        self._inflight_lock = threading.Lock()
        self._observer: Optional[Observer] = None
        self._transcribe_pool: Optional[WorkerPool[Path]] = None
        self._label_pool: Optional[WorkerPool[Tuple[str, str]]] = None

    @property
    def categorizer(self) -> Categorizer:
        if self._categorizer is None:
            self._categorizer = Categorizer(self.settings)
        return self._categorizer

    def close(self) -> None:
        if self._owns_store:
            self.store.close()

    # Scanning

    def find_pending(self) -> List[Path]:
        """Return audio files matching the glob that are not stored yet."""
        files = sorted(Path(p) for p in glob.glob(expand_pattern(self.pattern), recursive=True))
        files = [path for path in files if path.is_file()]
        LOGGER.info("Found %d memos", len(files))
        self.report.found = len(files)

        known = self.store.known_names()
        seen: Set[str] = set()
        pending: List[Path] = []
        for path in files:
            name = path.name
            if name in known:
                continue
            if name in seen:
                LOGGER.warning("Skipping %s: another file named %s is already queued", path, name)
                self.report.skipped += 1
                continue
            try:
                size = path.stat().st_size
            except OSError as err:
                LOGGER.warning("Skipping %s: %s", path, err)
                self.report.skipped += 1
                continue
            if size > self.settings.max_file_size:
                LOGGER.info("Skipping large file %s", path)
                self.report.skipped += 1
                continue
            seen.add(name)
            pending.append(path)
        return pending

    # Transcription

    def transcribe_file(self, path: Path) -> bool:
        """Transcribe one recording and store it. Returns True when a memo was added."""
        name = path.name
        if probe_duration(path) is None:
            LOGGER.warning("File seems to be corrupted: %s", path)
            self._count("skipped")
            return False

        try:
            text = self.transcriber.transcribe(path, label=name)
        except Exception as err:
            LOGGER.error("Failed to transcribe %s: %s", name, err)
            self._count("failed")
            return False

        if not text:
            LOGGER.warning("Empty transcript for %s", name)
            self._count("failed")
            return False

        self.store.add(name, text)
        self._count("transcribed")
        return True

    def transcribe_pending(self, files: Optional[List[Path]] = None) -> int:
        files = self.find_pending() if files is None else files
        before = self.report.transcribed
        with ProgressTracker("Transcribing", len(files), enabled=self.show_progress) as tracker:

            def handle(path: Path) -> None:
                tracker.started(path.name)
                try:
                    self.transcribe_file(path)
                finally:
                    tracker.finished(path.name)

            self._drain(WorkerPool("transcribe", handle, self.settings.transcription_concurrency), files)
        return self.report.transcribed - before

    # Labelling

    def label_memo(self, name: str, content: str) -> bool:
        label = self.categorizer.categorize(content)
        if not is_valid_label(label):
            LOGGER.error("%s: unknown label %r", name, label)
            self._count("failed")
            return False
        self.store.set_label(name, label)
        self._count("labelled")
        return True

    def label_pending(self) -> int:
        memos = self.store.unlabelled()
        before = self.report.labelled
        with ProgressTracker("Labelling", len(memos), enabled=self.show_progress) as tracker:

            def handle(item: Tuple[str, str]) -> None:
                name, content = item
                tracker.started(name)
                try:
                    self.label_memo(name, content)
                finally:
                    tracker.finished(name)

            self._drain(WorkerPool("label", handle, self.settings.labelling_concurrency), memos)
        return self.report.labelled - before

    def run(self, label: bool = True) -> ImportReport:
        self.transcribe_pending()
        if label:
            self.label_pending()
        LOGGER.info(
            "Import finished: %d transcribed, %d labelled, %d skipped, %d failed",
            self.report.transcribed,
            self.report.labelled,
            self.report.skipped,
            self.report.failed,
        )
        return self.report

    # Watching

    def start_watching(self, label: bool = True) -> None:
        """Keep transcribing (and labelling) recordings as they show up."""
        self._label_pool = WorkerPool("label", self._label_item, self.settings.labelling_concurrency) if label else None
        self._transcribe_pool = WorkerPool(
            "transcribe", self._watch_item, self.settings.transcription_concurrency
        )
        if self._label_pool:
            self._label_pool.start()
        self._transcribe_pool.start()
        self._observer = start_watcher(self.pattern, self.enqueue_path)

    def stop_watching(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        for pool in (self._transcribe_pool, self._label_pool):
            if pool:
                pool.stop()
        self._transcribe_pool = self._label_pool = None

    def enqueue_path(self, path: Path) -> None:
        name = path.name
        with self._inflight_lock:
            if name in self._inflight or self.store.exists(name):
                return
            self._inflight.add(name)
        LOGGER.debug("Enqueueing %s", name)
        assert self._transcribe_pool is not None
        self._transcribe_pool.submit(path)

    def _watch_item(self, path: Path) -> None:
        try:
            if not self._wait_until_ready(path):
                return
            if path.stat().st_size > self.settings.max_file_size:
                LOGGER.info("Skipping large file %s", path)
                self._count("skipped")
                return
            if self.transcribe_file(path) and self._label_pool:
                memo = self.store.get(path.name)
                self._label_pool.submit((memo.name, memo.content))
        finally:
            with self._inflight_lock:
                self._inflight.discard(path.name)

    def _label_item(self, item: Tuple[str, str]) -> None:
        self.label_memo(*item)

    def _wait_until_ready(self, path: Path, attempts: int = 3, delay: float = 1.0) -> bool:
        # Newly recorded files may still be written; retry a few times.
        for _ in range(attempts):
            try:
                if path.stat().st_size > 0:
                    return True
                LOGGER.debug("Memo %s is empty, recording may still be in progress. Retrying...", path.name)
            except OSError as err:
                LOGGER.debug("Memo %s not ready (%s). Retrying...", path.name, err)
            time.sleep(delay)
        LOGGER.error("Giving up on %s after repeated readiness checks", path.name)
        return False

    # Helpers

    def _drain(self, pool: WorkerPool, items) -> None:
        with pool:
            for item in items:
                pool.submit(item)
            pool.join()

    def _count(self, field: str) -> None:
        with self._report_lock:
            setattr(self.report, field, getattr(self.report, field) + 1)
