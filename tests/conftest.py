from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from persona_core.question_bank import TRAITS
from persona_core.types import AnsweredQuestion, Option, Question

LIKERT = [
    Option(1, "Strongly Disagree"),
    Option(2, "Disagree"),
    Option(3, "Neutral"),
    Option(4, "Agree"),
    Option(5, "Strongly Agree"),
]


def build_synthetic_catalog(size: int = 20, *, traits: list[str] | None = None) -> list[Question]:
    """Create a deterministic catalog cycling through the trait list."""

    cycle = traits or list(TRAITS)
    return [
        Question(
            id=f"q{idx + 1}",
            text=f"Synthetic statement #{idx + 1} about {cycle[idx % len(cycle)]}",
            trait=cycle[idx % len(cycle)],
            weight=1.0,
            options=list(LIKERT),
        )
        for idx in range(size)
    ]


def answers_for(catalog: list[Question], count: int, value: int = 3) -> list[AnsweredQuestion]:
    return [
        AnsweredQuestion(
            question_id=q.id,
            trait=q.trait,
            value=value,
            question_text=q.text,
            answer_text=q.option_text(value),
        )
        for q in catalog[:count]
    ]


class FakeCompletion:
    """Stand-in for the completion service: canned reply, optional delay or error."""

    def __init__(self, reply: str = "[1, 2, 3]", *, delay: float = 0.0, exc: Optional[BaseException] = None):
        self.reply = reply
        self.delay = delay
        self.exc = exc
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, messages, *, temperature: float, max_tokens: int, timeout: float) -> str:
        self.calls.append(
            {"messages": messages, "temperature": temperature, "max_tokens": max_tokens, "timeout": timeout}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.reply


@pytest.fixture
def synthetic_catalog() -> list[Question]:
    return build_synthetic_catalog()
