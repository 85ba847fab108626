from __future__ import annotations

from persona_core.diversity import select_diverse
from persona_core.types import Question

from tests.conftest import LIKERT, build_synthetic_catalog


def _q(qid: str, trait: str, text: str | None = None) -> Question:
    return Question(id=qid, text=text or f"text {qid}", trait=trait, options=list(LIKERT))


def test_rarer_traits_are_picked_first():
    remaining = [
        _q("o1", "openness"),
        _q("o2", "openness"),
        _q("o3", "openness"),
        _q("c1", "conscientiousness"),
        _q("c2", "conscientiousness"),
        _q("e1", "extraversion"),
    ]
    picked = select_diverse(remaining)
    assert [q.id for q in picked] == ["e1", "c1", "o1"]


def test_selection_is_deterministic():
    remaining = build_synthetic_catalog()[6:]
    first = select_diverse(remaining)
    second = select_diverse(list(remaining))
    assert [q.id for q in first] == [q.id for q in second]
    assert len({q.trait for q in first}) == 3


def test_backfills_in_catalog_order_when_traits_run_out():
    remaining = [_q(f"o{i}", "openness") for i in range(5)]
    assert [q.id for q in select_diverse(remaining)] == ["o0", "o1", "o2"]


def test_never_exceeds_remaining_or_max_count():
    remaining = [_q("a", "openness"), _q("b", "neuroticism")]
    assert len(select_diverse(remaining, max_count=3)) == 2
    assert len(select_diverse(build_synthetic_catalog(), max_count=4)) == 4
    assert select_diverse(remaining, max_count=0) == []


def test_empty_remaining_means_end_of_test():
    assert select_diverse([]) == []


def test_duplicate_texts_are_never_returned_together():
    remaining = [
        _q("a", "openness", "Same words"),
        _q("b", "extraversion", "Same words"),
        _q("c", "openness"),
    ]
    picked = select_diverse(remaining)
    texts = [q.text for q in picked]
    assert len(texts) == len(set(texts))
    assert [q.id for q in picked] == ["b", "c"]
