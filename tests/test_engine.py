from __future__ import annotations

import time

import pytest

from persona_core.cache import SelectionCache
from persona_core.diversity import select_diverse
from persona_core.engine import AdaptiveSelector, EngineSettings, resolve_indices
from persona_core.llm_bridge import CompletionError, CompletionTimeout
from persona_core.types import HistoricalSession, Question, SelectionRequest

from tests.conftest import LIKERT, FakeCompletion, answers_for, build_synthetic_catalog


def _request(catalog, idx: int = 5) -> SelectionRequest:
    return SelectionRequest(current_answers=answers_for(catalog, idx + 1), current_question_index=idx)


def _ids(questions) -> list[str]:
    return [q.id for q in questions]


@pytest.mark.asyncio
async def test_adaptive_pick_maps_one_based_indices():
    catalog = build_synthetic_catalog()
    fake = FakeCompletion("[2, 7, 12]")
    engine = AdaptiveSelector(completion=fake)

    result = await engine.select(_request(catalog), [], catalog)

    assert result.used_adaptive_logic is True
    assert result.diagnostic_error is None
    assert _ids(result.next_questions) == ["q8", "q13", "q18"]
    assert fake.calls[0]["temperature"] == pytest.approx(0.3)
    assert fake.calls[0]["max_tokens"] == 100
    assert fake.calls[0]["timeout"] < engine.settings.deadline_sec


@pytest.mark.asyncio
async def test_duplicate_index_is_backfilled_from_catalog_order():
    catalog = build_synthetic_catalog()
    engine = AdaptiveSelector(completion=FakeCompletion("[3,3,9]"))

    result = await engine.select(_request(catalog), [], catalog)

    assert result.used_adaptive_logic is True
    assert _ids(result.next_questions) == ["q9", "q15", "q7"]


@pytest.mark.asyncio
async def test_duplicate_texts_are_dropped_before_backfill():
    catalog = build_synthetic_catalog()
    twin = Question(id="q8", text=catalog[6].text, trait=catalog[7].trait, options=list(LIKERT))
    catalog[7] = twin
    engine = AdaptiveSelector(completion=FakeCompletion("[1, 2, 3]"))

    result = await engine.select(_request(catalog), [], catalog)

    texts = [q.text for q in result.next_questions]
    assert len(texts) == 3 and len(set(texts)) == 3
    assert _ids(result.next_questions) == ["q7", "q9", "q10"]


@pytest.mark.asyncio
async def test_near_the_end_all_remaining_are_returned_in_order():
    catalog = build_synthetic_catalog()
    fake = FakeCompletion("[1]")
    engine = AdaptiveSelector(completion=fake)

    result = await engine.select(_request(catalog, idx=15), [], catalog)

    assert _ids(result.next_questions) == ["q17", "q18", "q19", "q20"]
    assert result.used_adaptive_logic is False
    assert result.diagnostic_error is None
    assert fake.calls == []


@pytest.mark.asyncio
async def test_empty_remaining_returns_empty_selection():
    catalog = build_synthetic_catalog()
    result = await AdaptiveSelector(completion=FakeCompletion()).select(_request(catalog, idx=19), [], catalog)
    assert result.next_questions == []


@pytest.mark.asyncio
async def test_cache_hit_skips_the_completion_service():
    catalog = build_synthetic_catalog()
    fake = FakeCompletion("[2, 7, 12]")
    engine = AdaptiveSelector(completion=fake)

    first = await engine.select(_request(catalog), [], catalog)
    second = await engine.select(_request(catalog), [], catalog)

    assert len(fake.calls) == 1
    assert second.used_adaptive_logic is True
    assert _ids(second.next_questions) == _ids(first.next_questions)


@pytest.mark.asyncio
async def test_expired_cache_entry_triggers_a_new_call():
    catalog = build_synthetic_catalog()
    now = [0.0]
    fake = FakeCompletion("[2, 7, 12]")
    engine = AdaptiveSelector(completion=fake, cache=SelectionCache(ttl_sec=3600, clock=lambda: now[0]))

    await engine.select(_request(catalog), [], catalog)
    now[0] = 3601.0
    await engine.select(_request(catalog), [], catalog)

    assert len(fake.calls) == 2


@pytest.mark.asyncio
async def test_slow_service_falls_back_within_deadline():
    catalog = build_synthetic_catalog()
    settings = EngineSettings(deadline_sec=0.5, completion_timeout_sec=0.05)
    engine = AdaptiveSelector(completion=FakeCompletion(delay=5.0), settings=settings)

    t0 = time.monotonic()
    result = await engine.select(_request(catalog), [], catalog)
    elapsed = time.monotonic() - t0

    assert elapsed < settings.deadline_sec
    assert result.used_adaptive_logic is False
    assert result.diagnostic_error and result.diagnostic_error.startswith("timeout")
    assert result.next_questions == select_diverse(catalog[6:])


@pytest.mark.asyncio
async def test_sub_deadline_is_clamped_inside_engine_deadline():
    catalog = build_synthetic_catalog()
    settings = EngineSettings(deadline_sec=0.2, completion_timeout_sec=30.0)
    fake = FakeCompletion(delay=5.0)
    engine = AdaptiveSelector(completion=fake, settings=settings)

    t0 = time.monotonic()
    result = await engine.select(_request(catalog), [], catalog)

    assert time.monotonic() - t0 < 0.5
    assert fake.calls[0]["timeout"] < settings.deadline_sec
    assert result.used_adaptive_logic is False
    assert len(result.next_questions) == 3


@pytest.mark.parametrize(
    "fake, reason",
    [
        (FakeCompletion(exc=CompletionError("connection refused")), "service error"),
        (FakeCompletion(exc=CompletionTimeout("completion timed out")), "timeout"),
        (FakeCompletion(exc=RuntimeError("unexpected")), "service error"),
        (FakeCompletion("AI personalization timed out. Continuing."), "timeout"),
        (FakeCompletion("Error processing your request"), "service error"),
        (FakeCompletion("I cannot determine this."), "unparseable response"),
        (FakeCompletion("   "), "empty result"),
        (FakeCompletion("[40, 50]"), "out-of-range indices"),
    ],
)
@pytest.mark.asyncio
async def test_failure_paths_resolve_to_diversity_fallback(fake, reason):
    catalog = build_synthetic_catalog()
    engine = AdaptiveSelector(completion=fake)

    result = await engine.select(_request(catalog), [], catalog)

    assert result.used_adaptive_logic is False
    assert result.diagnostic_error.startswith(reason)
    assert len(result.next_questions) == 3
    assert result.next_questions == select_diverse(catalog[6:])


@pytest.mark.asyncio
async def test_cached_fallback_is_not_reported_as_adaptive():
    catalog = build_synthetic_catalog()
    fake = FakeCompletion("no idea")
    engine = AdaptiveSelector(completion=fake)

    await engine.select(_request(catalog), [], catalog)
    again = await engine.select(_request(catalog), [], catalog)

    assert len(fake.calls) == 1
    assert again.used_adaptive_logic is False
    assert again.diagnostic_error == "cached fallback selection"


@pytest.mark.asyncio
async def test_never_reoffers_answered_questions():
    catalog = build_synthetic_catalog()
    engine = AdaptiveSelector(completion=FakeCompletion("[1, 2, 3, 4]"))
    result = await engine.select(_request(catalog), [], catalog)
    answered = {q.id for q in catalog[:6]}
    assert not answered & set(_ids(result.next_questions))
    assert len(result.next_questions) == 3


@pytest.mark.asyncio
async def test_prompt_carries_answers_history_and_candidates():
    catalog = build_synthetic_catalog()
    fake = FakeCompletion("[1, 2, 3]")
    history = [HistoricalSession(trait_scores={"openness": 3.456}) for _ in range(5)]

    await AdaptiveSelector(completion=fake).select(_request(catalog), history, catalog)

    system, user = fake.calls[0]["messages"]
    assert system["role"] == "system" and "JSON array" in system["content"]
    assert user["role"] == "user"
    assert "Q1: Synthetic statement #1" in user["content"]
    assert "Test 3: openness: 3.46" in user["content"]
    assert "Test 4:" not in user["content"]
    assert f"14. {catalog[19].text} (Trait: {catalog[19].trait})" in user["content"]


def test_resolve_indices_truncates_to_batch_before_range_check():
    remaining = build_synthetic_catalog()[6:]
    assert resolve_indices([99, 98, 97, 1], remaining, 3) == []
    assert _ids(resolve_indices([99, 2], remaining, 3)) == ["q8", "q7", "q9"]
