from __future__ import annotations

import threading
from typing import List, Optional

from rich.progress import Progress, SpinnerColumn, TaskID, TextColumn


class ProgressTracker:
    """Spinner showing how many items are left and which are in flight."""

    def __init__(self, verb: str, total: int = 0, enabled: bool = True) -> None:
        self.verb = verb
        self.total = total
        self.remaining = total
        self._current: List[str] = []
        self._lock = threading.Lock()
        self._progress = Progress(
            SpinnerColumn(finished_text="[green]✔[/green]"),
            TextColumn("{task.description}"),
            disable=not enabled,
        )
        self._task: Optional[TaskID] = None

    def describe(self) -> str:
        text = f"{self.verb}... {self.remaining}/{self.total} left"
        if self._current:
            text += " [" + " ".join(self._current) + "]"
        return text

    def __enter__(self) -> "ProgressTracker":
        self._progress.start()
        self._task = self._progress.add_task(self.describe(), total=None)
        return self

    def __exit__(self, *exc) -> None:
        if self._task is not None:
            self._progress.update(self._task, description=self.describe(), total=1, completed=1)
        self._progress.stop()

    def started(self, name: str) -> None:
        with self._lock:
            self._current.append(name)
            self._refresh()

    def finished(self, name: str) -> None:
        with self._lock:
            if name in self._current:
                self._current.remove(name)
            self.remaining = max(self.remaining - 1, 0)
            self._refresh()

    def _refresh(self) -> None:
        if self._task is not None:
            self._progress.update(self._task, description=self.describe())
