"""Build ``things:///json`` URLs for adding to-dos to Things 3.

See https://culturedcode.com/things/support/articles/2803573/#json
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional
from urllib.parse import quote, urlencode

from .store import Memo

THINGS_JSON_URL = "things:///json"


@dataclass(frozen=True)
class Todo:
    title: str
    notes: Optional[str] = None

    def to_item(self) -> dict:
        return {"type": "to-do", "attributes": asdict(self)}


def build_items(memos: Iterable[Memo]) -> List[dict]:
    return [Todo(title=memo.content).to_item() for memo in memos]


def build_url(items: List[dict], reveal: bool = True) -> str:
    query = urlencode(
        {"data": json.dumps(items, separators=(",", ":")), "reveal": str(reveal).lower()},
        quote_via=quote,
    )
    return f"{THINGS_JSON_URL}?{query}"
