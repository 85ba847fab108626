"""In-process selection cache keyed by checkpoint fingerprint.

Entries expire lazily on lookup; there is no background sweep. Writes for the
same key simply replace the previous entry, so concurrent requests need no
lock. Nothing here survives a process restart.
"""
from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Iterable, List, Optional

from .config import CACHE_MAX_ENTRIES, CACHE_TTL_SEC
from .types import AnsweredQuestion, CacheEntry, Question


def fingerprint(current_question_index: int, answers: Iterable[AnsweredQuestion]) -> str:
    pairs = sorted(f"{a.question_id}:{a.value}" for a in answers)
    return f"adaptive-{int(current_question_index)}-{'|'.join(pairs)}"


class SelectionCache:
    def __init__(
        self,
        ttl_sec: float = CACHE_TTL_SEC,
        max_entries: int | None = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_sec = float(ttl_sec)
        self.max_entries = max_entries
        self._clock = clock
        self._items: "OrderedDict[str, CacheEntry]" = OrderedDict()

    def get(self, key: str) -> Optional[CacheEntry]:
        entry = self._items.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self.ttl_sec:
            self._items.pop(key, None)
            return None
        return entry

    def set(self, key: str, questions: List[Question], adaptive: bool = True) -> CacheEntry:
        entry = CacheEntry(
            key=key, selected_questions=list(questions), created_at=self._clock(), adaptive=adaptive
        )
        self._items.pop(key, None)
        self._items[key] = entry
        if self.max_entries and len(self._items) > self.max_entries:
            self._items.popitem(last=False)
        return entry

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["SelectionCache", "fingerprint"]
