# persona_core/engine.py
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence
import asyncio, logging, time

from .types import AnsweredQuestion, HistoricalSession, Question, SelectionRequest, SelectionResult
from .cache import SelectionCache, fingerprint
from .config import (
    ADAPTIVE_BATCH_SIZE,
    BYPASS_THRESHOLD,
    CACHE_LOG_INTERVAL_SEC,
    COMPLETION_ERROR_MARKERS,
    COMPLETION_MAX_TOKENS,
    COMPLETION_TEMPERATURE,
    COMPLETION_TIMEOUT_SEC,
    ENGINE_DEADLINE_SEC,
    HISTORY_LIMIT,
    completion_budget,
)
from .diversity import select_diverse
from .llm_bridge import CompletionClient, CompletionError, CompletionFn, CompletionTimeout
from .parser import parse_indices
from .prompts import build_messages
from .ratelog import RateLimitedLogger


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineSettings:
    deadline_sec: float = ENGINE_DEADLINE_SEC
    completion_timeout_sec: float = COMPLETION_TIMEOUT_SEC
    batch_size: int = ADAPTIVE_BATCH_SIZE
    bypass_threshold: int = BYPASS_THRESHOLD
    history_limit: int = HISTORY_LIMIT
    temperature: float = COMPLETION_TEMPERATURE
    max_tokens: int = COMPLETION_MAX_TOKENS
    cache_log_interval_sec: float = CACHE_LOG_INTERVAL_SEC

    @property
    def completion_deadline(self) -> float:
        return completion_budget(self.deadline_sec, self.completion_timeout_sec)


class _Fallback(Exception):
    """Internal signal: abandon the adaptive path with a diagnostic."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def resolve_indices(indices: Sequence[int], remaining: Sequence[Question], batch_size: int) -> List[Question]:
    """Map 1-based picks onto ``remaining``, dedupe by text and backfill in catalog order.

    Returns an empty list when none of the first ``batch_size`` picks is in range.
    """

    picked: List[Question] = []
    texts: set[str] = set()
    for one_based in list(indices)[:batch_size]:
        zero = int(one_based) - 1
        if not 0 <= zero < len(remaining):
            continue
        q = remaining[zero]
        if q.text in texts:
            continue
        picked.append(q)
        texts.add(q.text)
    if not picked:
        return []
    for q in remaining:
        if len(picked) >= batch_size:
            break
        if q.text in texts:
            continue
        picked.append(q)
        texts.add(q.text)
    return picked


class AdaptiveSelector:
    """Chooses the next question batch at the checkpoint.

    ``select`` never raises and always answers within ``settings.deadline_sec``;
    every failure resolves to the diversity fallback with a diagnostic.
    """

    def __init__(
        self,
        completion: Optional[CompletionFn] = None,
        cache: Optional[SelectionCache] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.settings = settings or EngineSettings()
        self.completion = completion if completion is not None else CompletionClient()
        self.cache = cache if cache is not None else SelectionCache()
        self._cache_log = RateLimitedLogger(log, self.settings.cache_log_interval_sec)

    async def select(
        self,
        request: SelectionRequest,
        history: Sequence[HistoricalSession],
        catalog: Sequence[Question],
    ) -> SelectionResult:
        s = self.settings
        try:
            idx = max(0, int(request.current_question_index))
            remaining = list(catalog[idx + 1:])
        except Exception as exc:
            log.warning("adaptive select: bad request (%s)", exc)
            return SelectionResult([], False, f"internal error: {exc}")

        if len(remaining) <= s.bypass_threshold:
            return SelectionResult(remaining, False, None)

        key = fingerprint(idx, request.current_answers)
        t0 = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self._select_adaptive(key, request.current_answers, history, remaining),
                timeout=s.deadline_sec,
            )
        except asyncio.TimeoutError:
            result = self._fallback(key, remaining, f"timeout: no selection within {s.deadline_sec:.1f}s")
        except _Fallback as fb:
            result = self._fallback(key, remaining, fb.reason)
        except Exception as exc:
            log.warning("adaptive select failed unexpectedly: %s", exc, exc_info=True)
            result = self._fallback(key, remaining, f"internal error: {exc}")
        log.info(
            "adaptive select idx=%d -> %d questions adaptive=%s in %dms",
            idx,
            len(result.next_questions),
            result.used_adaptive_logic,
            int((time.monotonic() - t0) * 1000),
        )
        return result

    async def _select_adaptive(
        self,
        key: str,
        answers: Sequence[AnsweredQuestion],
        history: Sequence[HistoricalSession],
        remaining: List[Question],
    ) -> SelectionResult:
        s = self.settings
        cached = self.cache.get(key)
        if cached is not None:
            self._cache_log.info("adaptive select: using cached questions")
            return SelectionResult(
                list(cached.selected_questions),
                cached.adaptive,
                None if cached.adaptive else "cached fallback selection",
            )

        messages = build_messages(answers, list(history)[: s.history_limit], remaining, s.batch_size)
        raw = await self._complete(messages)

        marker = next((m for m in COMPLETION_ERROR_MARKERS if m in raw), None)
        if marker == "timed out":
            raise _Fallback("timeout: completion service reported a timeout")
        if marker is not None:
            raise _Fallback(f"service error: completion reported failure ({raw[:80].strip()})")
        if not raw.strip():
            raise _Fallback("empty result: completion returned no text")

        indices = parse_indices(raw, len(remaining))
        if not indices:
            log.debug("adaptive select: unparseable response %r", raw[:200])
            raise _Fallback("unparseable response: no question indices found")

        picked = resolve_indices(indices, remaining, s.batch_size)
        if not picked:
            raise _Fallback(f"out-of-range indices: {indices[: s.batch_size]}")

        self.cache.set(key, picked, adaptive=True)
        return SelectionResult(picked, True, None)

    async def _complete(self, messages) -> str:
        s = self.settings
        budget = s.completion_deadline
        try:
            raw = await asyncio.wait_for(
                self.completion(
                    messages,
                    temperature=s.temperature,
                    max_tokens=s.max_tokens,
                    timeout=budget,
                ),
                timeout=budget,
            )
        except (asyncio.TimeoutError, CompletionTimeout):
            raise _Fallback(f"timeout: completion service exceeded {budget:.1f}s")
        except CompletionError as exc:
            raise _Fallback(f"service error: {exc}")
        except Exception as exc:
            raise _Fallback(f"service error: {type(exc).__name__}: {exc}")
        if not isinstance(raw, str):
            raise _Fallback("empty result: completion returned no text")
        return raw

    def _fallback(self, key: str, remaining: List[Question], reason: str) -> SelectionResult:
        picked = select_diverse(remaining, self.settings.batch_size)
        self.cache.set(key, picked, adaptive=False)
        log.warning("adaptive select fallback (%s); using diversity selection", reason)
        return SelectionResult(picked, False, reason)


__all__ = ["AdaptiveSelector", "EngineSettings", "resolve_indices"]
