from __future__ import annotations
from typing import Dict, List, Sequence

from .config import ADAPTIVE_BATCH_SIZE, HISTORY_LIMIT
from .question_bank import TRAITS
from .types import AnsweredQuestion, HistoricalSession, Question

SYSTEM_PROMPT = (
    "You are an expert in psychometric testing and adaptive assessments. "
    "Select the most informative next questions for a personality test, based on the "
    "user's current answers and their previous test results.\n\n"
    "Prefer questions that:\n"
    "1. Provide the most information about traits that are currently uncertain\n"
    "2. Confirm or challenge patterns seen in previous test results\n"
    "3. Explore areas that seem most relevant to this specific user\n\n"
    "IMPORTANT: Return ONLY a JSON array of numbers with the indices of the questions you select. "
    "For example: [2, 7, 12]\n"
    "Do not include any explanations, text, or other content in your response."
)


def format_answers(answers: Sequence[AnsweredQuestion]) -> str:
    lines = [
        f"Q{n}: {a.question_text} - Answer: {a.answer_text} (Value: {a.value})"
        for n, a in enumerate(answers, start=1)
    ]
    return "\n".join(lines) or "No answers provided yet."


def format_history(history: Sequence[HistoricalSession], limit: int = HISTORY_LIMIT) -> str:
    lines = []
    for n, sess in enumerate(list(history)[:limit], start=1):
        scores = sess.trait_scores or {}
        # canonical trait order first, then anything unknown in stored order
        order = [t for t in TRAITS if t in scores] + [t for t in scores if t not in TRAITS]
        traits = ", ".join(f"{trait}: {float(scores[trait]):.2f}" for trait in order)
        lines.append(f"Test {n}: {traits}")
    return "\n".join(lines) or "No previous test data available."


def format_candidates(remaining: Sequence[Question]) -> str:
    return "\n".join(f"{i}. {q.text} (Trait: {q.trait})" for i, q in enumerate(remaining, start=1))


def build_messages(
    answers: Sequence[AnsweredQuestion],
    history: Sequence[HistoricalSession],
    remaining: Sequence[Question],
    count: int = ADAPTIVE_BATCH_SIZE,
) -> List[Dict[str, str]]:
    user = (
        "Here are the user's current answers in this test:\n\n"
        f"{format_answers(answers)}\n\n"
        "Here are the trait scores from previous tests:\n\n"
        f"{format_history(history)}\n\n"
        "Here are the remaining questions to choose from:\n\n"
        f"{format_candidates(remaining)}\n\n"
        f"Select the indices of the {count} most informative questions for this user.\n\n"
        "IMPORTANT: Return ONLY a JSON array of numbers. For example: [2, 7, 12]\n"
        "Do not include any explanations or other text in your response."
    )
    return [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": user}]
