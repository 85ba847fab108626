"""Respondent-facing driver for one questionnaire session.

The orchestrator walks the catalog in order and, once the checkpoint answer is
committed, races a single adaptive selection request against two timers
(request abort and UI auto-advance). Whoever settles the checkpoint first wins;
the loser is cancelled and anything it delivers afterwards is ignored. Forward
progress is guaranteed: every failure path falls back to the catalog's own
order with a dismissible notice.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .config import (
    ADAPTIVE_BATCH_SIZE,
    ADAPTIVE_ENABLED,
    CHECKPOINT_INDEX,
    CLIENT_ABORT_SEC,
    CLIENT_AUTO_ADVANCE_SEC,
    CONFIRM_DELAY_SEC,
    ERROR_ADVANCE_DELAY_SEC,
)
from .question_bank import question_from_dict
from .scoring import trait_scores
from .types import AnsweredQuestion, HistoricalSession, Question, SelectionRequest, SelectionResult

log = logging.getLogger(__name__)


class State(str, Enum):
    ANSWERING_STANDARD = "answering_standard"
    AWAITING_ADAPTIVE = "awaiting_adaptive"
    ANSWERING_ADAPTIVE = "answering_adaptive"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Timings:
    abort_sec: float = CLIENT_ABORT_SEC
    auto_advance_sec: float = CLIENT_AUTO_ADVANCE_SEC
    confirm_delay_sec: float = CONFIRM_DELAY_SEC
    error_advance_delay_sec: float = ERROR_ADVANCE_DELAY_SEC


class CancellationToken:
    """Marks a checkpoint as settled; results delivered after that are no-ops."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "") -> bool:
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason
        return True


@dataclass
class Notice:
    message: str
    dismissed: bool = False


class OrchestratorError(RuntimeError):
    pass


SelectFn = Callable[[SelectionRequest, CancellationToken], Awaitable[SelectionResult]]
CompleteFn = Callable[[List[AnsweredQuestion], Dict[str, float]], Any]
NoticeFn = Callable[[Notice], Any]


@dataclass
class _Checkpoint:
    token: CancellationToken
    tasks: List["asyncio.Task[Any]"] = field(default_factory=list)


class QuestionnaireOrchestrator:
    def __init__(
        self,
        catalog: Sequence[Question],
        select: SelectFn,
        *,
        timings: Optional[Timings] = None,
        checkpoint_index: int = CHECKPOINT_INDEX,
        batch_size: int = ADAPTIVE_BATCH_SIZE,
        adaptive_enabled: bool = ADAPTIVE_ENABLED,
        on_complete: Optional[CompleteFn] = None,
        on_notice: Optional[NoticeFn] = None,
    ):
        self.catalog = list(catalog)
        self.sequence: List[Question] = list(catalog)
        self.timings = timings or Timings()
        self.checkpoint_index = int(checkpoint_index)
        self.batch_size = int(batch_size)
        self.adaptive_enabled = adaptive_enabled
        self._select = select
        self._on_complete = on_complete
        self._on_notice = on_notice

        self.state = State.ANSWERING_STANDARD if self.sequence else State.COMPLETED
        self.position = 0
        self.answers: List[AnsweredQuestion] = []
        self.notices: List[Notice] = []
        self.loading = False
        self.adaptive_indicator = False
        self.injected: List[Question] = []
        self.scores: Optional[Dict[str, float]] = None
        self._checkpoint: Optional[_Checkpoint] = None
        self._pending: List["asyncio.Task[Any]"] = []

    # ---- read side ----
    def current_question(self) -> Optional[Question]:
        if self.state is State.COMPLETED or self.loading:
            return None
        if 0 <= self.position < len(self.sequence):
            return self.sequence[self.position]
        return None

    @property
    def progress(self) -> float:
        if not self.sequence:
            return 1.0
        return min(1.0, len(self.answers) / len(self.sequence))

    def active_notices(self) -> List[Notice]:
        return [n for n in self.notices if not n.dismissed]

    def dismiss_notices(self) -> None:
        for n in self.notices:
            n.dismissed = True

    # ---- write side ----
    async def answer(self, value: int) -> None:
        q = self.current_question()
        if q is None:
            raise OrchestratorError(f"no question to answer in state {self.state.value}")
        if q.options and value not in {o.value for o in q.options}:
            raise ValueError(f"{value!r} is not an option for question {q.id}")
        self.answers.append(
            AnsweredQuestion(
                question_id=q.id,
                trait=q.trait,
                value=int(value),
                question_text=q.text,
                answer_text=q.option_text(value),
            )
        )

        if self.position >= len(self.sequence) - 1:
            await self._finish()
            return
        if self._at_checkpoint():
            self._begin_checkpoint()
            return
        self.position += 1

    def skip_personalization(self) -> bool:
        """Drop the pending adaptive request; only valid while awaiting it."""

        if self.state is not State.AWAITING_ADAPTIVE or self._checkpoint is None:
            return False
        if not self._claim("skipped"):
            return False
        self._go_standard("Personalization skipped. Continuing with standard test.", delay=0.0)
        return True

    async def wait_settled(self) -> None:
        """Wait for the checkpoint race and any confirmation delay to finish."""

        while True:
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- checkpoint choreography ----
    def _at_checkpoint(self) -> bool:
        return (
            self.adaptive_enabled
            and self._checkpoint is None
            and self.position == self.checkpoint_index
        )

    def _begin_checkpoint(self) -> None:
        token = CancellationToken()
        self._checkpoint = _Checkpoint(token=token)
        self.state = State.AWAITING_ADAPTIVE
        self.loading = True
        request = SelectionRequest(
            current_answers=list(self.answers),
            current_question_index=self.position,
        )
        log.info("checkpoint reached at question %d; requesting adaptive selection", self.position + 1)
        self._checkpoint.tasks = [
            self._spawn(self._run_request(request, token)),
            self._spawn(self._auto_advance(token)),
        ]

    def _spawn(self, coro: Awaitable[Any]) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(coro)
        self._pending.append(task)
        return task

    def _claim(self, reason: str) -> bool:
        cp = self._checkpoint
        if cp is None or not cp.token.cancel(reason):
            return False
        current = asyncio.current_task() if _loop_running() else None
        for task in cp.tasks:
            if task is not current and not task.done():
                task.cancel()
        return True

    async def _run_request(self, request: SelectionRequest, token: CancellationToken) -> None:
        try:
            result = await asyncio.wait_for(self._select(request, token), timeout=self.timings.abort_sec)
        except asyncio.TimeoutError:
            if self._claim("aborted"):
                log.warning("adaptive request aborted after %.1fs", self.timings.abort_sec)
                self._go_standard(
                    "Request timed out. Continuing with standard test.",
                    delay=self.timings.error_advance_delay_sec,
                )
            return
        except Exception as exc:
            if self._claim("failed"):
                log.warning("adaptive request failed: %s", exc)
                self._go_standard(
                    "Failed to fetch adaptive questions. Continuing with standard test.",
                    delay=self.timings.error_advance_delay_sec,
                )
            return

        if token.cancelled or not self._claim("answered"):
            log.info("checkpoint already passed; discarding adaptive response")
            return

        injected = self._usable(result.next_questions)
        if not injected:
            msg = result.diagnostic_error or "No adaptive questions returned."
            self._go_standard(f"Personalization unavailable: {msg} Continuing with standard test.", delay=0.0)
            return

        self._splice(injected)
        if result.used_adaptive_logic:
            self.state = State.ANSWERING_ADAPTIVE
            self.adaptive_indicator = True
        else:
            self.state = State.ANSWERING_STANDARD
        if result.diagnostic_error:
            self._notify(f"Personalization limited: {result.diagnostic_error}")
        self._spawn(self._advance_after(self.timings.confirm_delay_sec))

    async def _auto_advance(self, token: CancellationToken) -> None:
        await asyncio.sleep(self.timings.auto_advance_sec)
        if token.cancelled:
            return
        if self._claim("auto-advance"):
            log.info("auto-advance after %.1fs; continuing with standard questions", self.timings.auto_advance_sec)
            self._go_standard("Personalization is taking longer than expected. Continuing with standard test.", delay=0.0)

    def _go_standard(self, message: str, delay: float) -> None:
        self.state = State.ANSWERING_STANDARD
        self.adaptive_indicator = False
        self._notify(message)
        if delay > 0:
            self._spawn(self._advance_after(delay))
        else:
            self._advance_past_checkpoint()

    async def _advance_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._advance_past_checkpoint()

    def _advance_past_checkpoint(self) -> None:
        if not self.loading:
            return
        self.loading = False
        self.position = self.checkpoint_index + 1

    def _usable(self, questions: Sequence[Question]) -> List[Question]:
        answered = {a.question_id for a in self.answers}
        texts: set[str] = set()
        out: List[Question] = []
        for q in questions:
            if q.id in answered or q.text in texts:
                continue
            out.append(q)
            texts.add(q.text)
        return out

    def _splice(self, injected: List[Question]) -> None:
        head = self.sequence[: self.checkpoint_index + 1]
        ids = {q.id for q in injected}
        texts = {q.text for q in injected}
        tail = [q for q in self.sequence[self.checkpoint_index + 1:] if q.id not in ids and q.text not in texts]
        self.injected = list(injected)
        self.sequence = head + list(injected) + tail

    def _notify(self, message: str) -> None:
        notice = Notice(message)
        self.notices.append(notice)
        if self._on_notice is not None:
            self._on_notice(notice)

    async def _finish(self) -> None:
        self.state = State.COMPLETED
        self.loading = False
        self.scores = trait_scores(self.answers, self.sequence)
        if self._on_complete is not None:
            out = self._on_complete(list(self.answers), dict(self.scores))
            if inspect.isawaitable(out):
                await out


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


# ---- transports ----
def answer_to_dict(a: AnsweredQuestion) -> Dict[str, Any]:
    return {
        "questionId": a.question_id,
        "trait": a.trait,
        "value": a.value,
        "answerValue": a.value,
        "questionText": a.question_text,
        "answerText": a.answer_text,
    }


def request_to_dict(request: SelectionRequest) -> Dict[str, Any]:
    return {
        "currentAnswers": [answer_to_dict(a) for a in request.current_answers],
        "currentQuestionIndex": request.current_question_index,
    }


def result_from_dict(data: Dict[str, Any]) -> SelectionResult:
    qs = [question_from_dict(q) for q in data.get("nextQuestions") or []]
    adaptive = bool(data.get("isAdaptive")) and data.get("success") is not False
    return SelectionResult(next_questions=qs, used_adaptive_logic=adaptive, diagnostic_error=data.get("error"))


class EngineSelectionClient:
    """Calls an in-process ``AdaptiveSelector`` directly."""

    def __init__(self, selector: Any, catalog: Sequence[Question], history: Sequence[HistoricalSession] = ()):
        self.selector = selector
        self.catalog = list(catalog)
        self.history = list(history)

    async def __call__(self, request: SelectionRequest, token: CancellationToken) -> SelectionResult:
        return await self.selector.select(request, self.history, self.catalog)


class HttpSelectionClient:
    """Posts the checkpoint request to ``/api/test/adaptive``."""

    def __init__(
        self,
        base_url: str,
        *,
        user_id: Optional[str] = None,
        timeout: float = CLIENT_ABORT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.user_id = user_id
        self.timeout = timeout
        self.transport = transport

    async def __call__(self, request: SelectionRequest, token: CancellationToken) -> SelectionResult:
        headers = {"X-User-Id": self.user_id} if self.user_id else {}
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post("/api/test/adaptive", json=request_to_dict(request), headers=headers)
            resp.raise_for_status()
            data = resp.json()
        if token.cancelled:
            log.debug("adaptive response arrived after checkpoint was settled (%s)", token.reason)
        return result_from_dict(data)


__all__ = [
    "CancellationToken",
    "EngineSelectionClient",
    "HttpSelectionClient",
    "Notice",
    "OrchestratorError",
    "State",
    "QuestionnaireOrchestrator",
    "Timings",
    "answer_to_dict",
    "request_to_dict",
    "result_from_dict",
]
