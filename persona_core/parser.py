"""Turn free-text completion output into 1-based question indices."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, List, Optional, Tuple

log = logging.getLogger(__name__)

_ARRAY_RX = re.compile(r"\[[\s\S]*?\]")
_LIST_RX = re.compile(r"\d+(?:\s*,\s*\d+)+")
_INT_RX = re.compile(r"\d+")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _json_numbers(text: str) -> List[int]:
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return []
    if not isinstance(parsed, list):
        return []
    out: List[int] = []
    for val in parsed:
        iv = _as_int(val)
        if iv is None:
            # arrays with any non-number element are rejected whole
            return []
        out.append(iv)
    return out


def _in_range(values: List[int], candidate_count: int) -> List[int]:
    return [v for v in values if 1 <= v <= candidate_count]


def _whole_text(raw: str, candidate_count: int) -> List[int]:
    return _json_numbers(raw.strip())


def _bracketed(raw: str, candidate_count: int) -> List[int]:
    m = _ARRAY_RX.search(raw)
    if not m:
        return []
    return _json_numbers(m.group(0))


def _comma_run(raw: str, candidate_count: int) -> List[int]:
    m = _LIST_RX.search(raw)
    if not m:
        return []
    return _in_range([int(tok.strip()) for tok in m.group(0).split(",")], candidate_count)


def _all_integers(raw: str, candidate_count: int) -> List[int]:
    return _in_range([int(tok) for tok in _INT_RX.findall(raw)], candidate_count)


_STRATEGIES: Tuple[Tuple[str, Callable[[str, int], List[int]]], ...] = (
    ("json", _whole_text),
    ("bracketed", _bracketed),
    ("comma_run", _comma_run),
    ("integers", _all_integers),
)


def parse_indices(raw_text: str, candidate_count: int) -> List[int]:
    """Return 1-based indices found in ``raw_text``; empty when nothing usable.

    Strategies are tried in order and the first one yielding at least one
    integer wins. Only the regex strategies filter to ``[1, candidate_count]``;
    JSON arrays are range-checked by the caller.
    """

    if not isinstance(raw_text, str) or not raw_text.strip():
        return []
    for name, strategy in _STRATEGIES:
        try:
            found = strategy(raw_text, int(candidate_count))
        except Exception as exc:
            log.debug("parse strategy %s failed: %s", name, exc)
            continue
        if found:
            log.debug("parse strategy %s -> %s", name, found)
            return found
        log.debug("parse strategy %s yielded nothing", name)
    return []


__all__ = ["parse_indices"]
