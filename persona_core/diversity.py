from __future__ import annotations

from typing import Dict, List, Sequence, Set

from .config import ADAPTIVE_BATCH_SIZE
from .types import Question


def select_diverse(remaining: Sequence[Question], max_count: int = ADAPTIVE_BATCH_SIZE) -> List[Question]:
    """Deterministic trait-balancing pick used when adaptive parsing yields nothing.

    Rarer traits go first (ties keep first-appearance order), one question per
    trait, then the rest of ``remaining`` in catalog order. An empty input
    returns an empty list, which callers treat as end of test.
    """

    limit = max(0, min(int(max_count), len(remaining)))
    if limit == 0:
        return []

    groups: Dict[str, List[int]] = {}
    for idx, q in enumerate(remaining):
        groups.setdefault(q.trait, []).append(idx)
    # sorted() is stable and dicts keep insertion order
    ranked = sorted(groups.items(), key=lambda kv: len(kv[1]))

    chosen: List[int] = []
    seen_texts: Set[str] = set()

    def _take(idx: int) -> bool:
        text = remaining[idx].text
        if idx in chosen or text in seen_texts:
            return False
        chosen.append(idx)
        seen_texts.add(text)
        return True

    for _trait, indices in ranked:
        if len(chosen) >= limit:
            break
        for idx in indices:
            if _take(idx):
                break

    for idx in range(len(remaining)):
        if len(chosen) >= limit:
            break
        _take(idx)

    return [remaining[i] for i in chosen]


__all__ = ["select_diverse"]
