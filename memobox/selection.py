from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .store import PARAGRAPH_SEPARATOR, Memo


@dataclass(frozen=True)
class Focus:
    index: int
    name: str


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class Selection:
    """Focus cursor and marked rows of a memo list.

    Commands act on the marked memos, or on the focused one when nothing is
    marked.
    """

    def __init__(self, rows: Sequence[Memo] = ()) -> None:
        self.rows: List[Memo] = []
        self.focused: Optional[Focus] = None
        self.marked: List[str] = []
        self.refresh(rows)

    def refresh(self, rows: Sequence[Memo]) -> None:
        """Adopt a freshly loaded row list, keeping focus and marks where possible."""
        self.rows = list(rows)
        self._recalc_focused()
        names = {row.name for row in self.rows}
        self.marked = [name for name in self.marked if name in names]

    def _recalc_focused(self) -> None:
        if not self.rows:
            self.focused = None
            return
        if self.focused is None:
            self.focused = Focus(0, self.rows[0].name)
            return
        index = next((i for i, row in enumerate(self.rows) if row.name == self.focused.name), -1)
        if index == -1:
            index = _clamp(self.focused.index, 0, len(self.rows) - 1)
        self.focused = Focus(index, self.rows[index].name)

    def focus_at(self, index: int) -> None:
        if 0 <= index < len(self.rows):
            self.focused = Focus(index, self.rows[index].name)

    def focus_next(self) -> None:
        if self.focused is None or self.focused.index >= len(self.rows) - 1:
            return
        self.focus_at(self.focused.index + 1)

    def focus_prev(self) -> None:
        if self.focused is None or self.focused.index == 0:
            return
        self.focus_at(self.focused.index - 1)

    def toggle_mark(self) -> None:
        if self.focused is None:
            return
        name = self.focused.name
        if name in self.marked:
            self.marked.remove(name)
        else:
            self.marked.append(name)

    def unmark_all(self) -> None:
        self.marked = []

    def targets(self) -> List[str]:
        if self.focused is not None and not self.marked:
            return [self.focused.name]
        return list(self.marked)

    def merge_targets(self) -> List[str]:
        return list(self.marked) if len(self.marked) >= 2 else []

    def copy_text(self) -> str:
        targets = set(self.targets())
        return PARAGRAPH_SEPARATOR.join(row.content for row in self.rows if row.name in targets)
