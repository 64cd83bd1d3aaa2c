from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from .config import Settings, load_settings, require
from .paths import ensure_directories, require_accessible_path
from .store import NAME_SEPARATOR, Memo, MemoNotFoundError, MemoStore
from .things import build_items, build_url

LOGGER = logging.getLogger("commands")


def resolve_binary(binary: str, description: str) -> str:
    path = shutil.which(binary)
    if path:
        return path
    candidate = Path(binary).expanduser()
    if candidate.exists():
        return str(candidate)
    raise FileNotFoundError(f"Unable to locate {description} executable '{binary}'.")


def expand_names(names: Sequence[str]) -> List[str]:
    """Split merged memo names back into the recordings they came from."""
    files: List[str] = []
    for name in names:
        files.extend(part for part in name.split(NAME_SEPARATOR) if part)
    return files


class MemoCommands:
    """Operations a memo browser invokes on the local store."""

    def __init__(self, settings: Optional[Settings] = None, store: Optional[MemoStore] = None) -> None:
        self.settings = settings or load_settings()
        if store is None:
            ensure_directories(self.settings)
            store = MemoStore(self.settings.db_path)
        self.store = store

    def close(self) -> None:
        self.store.close()

    def load(self) -> List[Memo]:
        return self.store.load()

    def kill(self, names: Sequence[str]) -> int:
        if not names:
            return 0
        return self.store.kill(names)

    def merge(self, names: Sequence[str]) -> Memo | None:
        return self.store.merge(names)

    def set_content(self, name: str, new_content: str) -> None:
        self.store.set_content(name, new_content)

    def set_label(self, name: str, label: str) -> None:
        self.store.set_label(name, label)

    def open(self, names: Sequence[str]) -> subprocess.Popen:
        """Play the recordings one after another with the configured player."""
        storage: Path = require(self.settings, "storage_dir")
        require_accessible_path(storage, "Voice memo storage directory")

        files = expand_names(names)
        if not files:
            raise ValueError("Nothing to play")
        for name in files:
            path = storage / name
            if not path.exists():
                raise FileNotFoundError(f"File {path} doesn't exist")

        player = resolve_binary(self.settings.player, "player")
        cmd = [player, *self.settings.player_args, *files]
        LOGGER.info("Playing %s", ", ".join(files))
        return subprocess.Popen(cmd, cwd=str(storage))

    def add_to_things(self, names: Sequence[str]) -> str:
        """Send memo contents to the Things inbox and return the URL used.

        Memos stay in the store.
        """
        if not self.settings.things_app.exists():
            raise FileNotFoundError(f"Things is not installed (expected at {self.settings.things_app})")

        memos = self.store.get_many(names)
        found = {memo.name for memo in memos}
        missing = [name for name in names if name not in found]
        if missing:
            LOGGER.warning("Not in the store, skipping: %s", ", ".join(missing))
        if not memos:
            raise MemoNotFoundError(missing)

        url = build_url(build_items(memos), reveal=True)
        opener = resolve_binary(self.settings.url_opener, "URL opener")
        LOGGER.info("Adding %d memo(s) to Things", len(memos))
        subprocess.Popen([opener, url])
        return url
