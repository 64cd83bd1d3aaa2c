from __future__ import annotations

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple

LOGGER = logging.getLogger("store")

LABEL_PATTERN = re.compile(r"^[a-z]+$")
PARAGRAPH_SEPARATOR = "\n\n"
NAME_SEPARATOR = ","
UNKNOWN_LABEL = "unknown"


class MemoNotFoundError(LookupError):
    """Raised when a memo name is not in the store."""

    def __init__(self, names: Sequence[str]) -> None:
        self.names = list(names)
        super().__init__(f"Memo not found: {', '.join(self.names)}")


class InvalidLabelError(ValueError):
    """Raised when a label is not a single lowercase word."""


@dataclass(frozen=True)
class Memo:
    name: str
    content: str
    label: Optional[str] = None

    @property
    def parts(self) -> List[str]:
        """File names this memo was built from (several after a merge)."""
        return [part for part in self.name.split(NAME_SEPARATOR) if part]


def is_valid_label(label: str | None) -> bool:
    return label is not None and LABEL_PATTERN.fullmatch(label) is not None


def _unique(names: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    result = []
    for name in names:
        if name not in seen:
            seen.add(name)
            result.append(name)
    return result


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class MemoStore:
    """Persist memos in a sqlite database shared by worker threads."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memos (
                name TEXT PRIMARY KEY,
                content TEXT,
                label TEXT
            );
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "MemoStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def load(self) -> List[Memo]:
        with self._lock:
            cursor = self._conn.execute("SELECT name, content, label FROM memos ORDER BY name ASC;")
            return [Memo(name, content or "", label) for name, content, label in cursor.fetchall()]

    def get(self, name: str) -> Memo:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT name, content, label FROM memos WHERE name = ? LIMIT 1;", (name,)
            )
            row = cursor.fetchone()
        if row is None:
            raise MemoNotFoundError([name])
        return Memo(row[0], row[1] or "", row[2])

    def get_many(self, names: Sequence[str]) -> List[Memo]:
        """Return the requested memos ordered by name; unknown names are left out."""
        names = _unique(names)
        if not names:
            return []
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT name, content, label FROM memos WHERE name IN ({_placeholders(len(names))}) "
                "ORDER BY name ASC;",
                names,
            )
            return [Memo(name, content or "", label) for name, content, label in cursor.fetchall()]

    def exists(self, name: str) -> bool:
        with self._lock:
            cursor = self._conn.execute("SELECT 1 FROM memos WHERE name = ? LIMIT 1;", (name,))
            return cursor.fetchone() is not None

    def known_names(self) -> Set[str]:
        with self._lock:
            cursor = self._conn.execute("SELECT name FROM memos;")
            return {row[0] for row in cursor.fetchall()}

    def add(self, name: str, content: str) -> None:
        with self._lock:
            self._conn.execute("INSERT INTO memos (name, content) VALUES (?, ?);", (name, content))
            self._conn.commit()
        LOGGER.debug("Stored transcript for %s", name)

    def kill(self, names: Sequence[str]) -> int:
        names = _unique(names)
        if not names:
            return 0
        with self._lock:
            cursor = self._conn.execute(
                f"DELETE FROM memos WHERE name IN ({_placeholders(len(names))});", names
            )
            self._conn.commit()
            deleted = cursor.rowcount
        LOGGER.info("Deleted %d memo(s)", deleted)
        return deleted

    def merge(self, names: Sequence[str]) -> Memo | None:
        """Fold several memos into one row and return it.

        Rows are combined in name order: names are joined with ``,``, contents
        with a blank line, and the first label other than ``unknown`` wins.
        """
        names = _unique(names)
        if len(names) < 2:
            return None

        with self._lock:
            cursor = self._conn.execute(
                f"SELECT name, content, label FROM memos WHERE name IN ({_placeholders(len(names))}) "
                "ORDER BY name ASC;",
                names,
            )
            rows = [Memo(name, content or "", label) for name, content, label in cursor.fetchall()]
            found = {row.name for row in rows}
            missing = [name for name in names if name not in found]
            if missing:
                raise MemoNotFoundError(missing)

            merged = Memo(
                name=NAME_SEPARATOR.join(row.name for row in rows),
                content=PARAGRAPH_SEPARATOR.join(row.content for row in rows),
                label=next(
                    (row.label for row in rows if row.label is not None and row.label != UNKNOWN_LABEL),
                    UNKNOWN_LABEL,
                ),
            )
            with self._conn:
                self._conn.execute(
                    f"DELETE FROM memos WHERE name IN ({_placeholders(len(names))});", names
                )
                self._conn.execute(
                    "INSERT INTO memos (name, content, label) VALUES (?, ?, ?);",
                    (merged.name, merged.content, merged.label),
                )
        LOGGER.info("Merged %d memos into %s", len(rows), merged.name)
        return merged

    def set_content(self, name: str, content: str) -> None:
        with self._lock:
            cursor = self._conn.execute("UPDATE memos SET content = ? WHERE name = ?;", (content, name))
            self._conn.commit()
            updated = cursor.rowcount
        if not updated:
            raise MemoNotFoundError([name])

    def set_label(self, name: str, label: str) -> None:
        if not is_valid_label(label):
            raise InvalidLabelError(f"Label must be a single lowercase word, got {label!r}")
        with self._lock:
            cursor = self._conn.execute("UPDATE memos SET label = ? WHERE name = ?;", (label, name))
            self._conn.commit()
            updated = cursor.rowcount
        if not updated:
            raise MemoNotFoundError([name])

    def unlabelled(self) -> List[Tuple[str, str]]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT name, content FROM memos WHERE label IS NULL ORDER BY name ASC;"
            )
            return [(name, content or "") for name, content in cursor.fetchall()]
