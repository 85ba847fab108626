from __future__ import annotations
from typing import Dict, Iterable, List
from .question_bank import TRAITS
from .types import AnsweredQuestion, Question


def trait_scores(answers: Iterable[AnsweredQuestion], catalog: List[Question]) -> Dict[str, float]:
    """Weighted mean answer value per trait; traits without answers score 0."""

    by_id = {q.id: q for q in catalog}
    sums: Dict[str, float] = {t: 0.0 for t in TRAITS}
    weights: Dict[str, float] = {t: 0.0 for t in TRAITS}
    for ans in answers:
        q = by_id.get(ans.question_id)
        if q is None or q.weight <= 0:
            continue
        sums.setdefault(q.trait, 0.0)
        weights.setdefault(q.trait, 0.0)
        sums[q.trait] += float(ans.value) * float(q.weight)
        weights[q.trait] += float(q.weight)
    return {t: (sums[t] / weights[t] if weights[t] else 0.0) for t in sums}


HIGH_SCORE = 4.0
LOW_SCORE = 2.0

# (above HIGH_SCORE, below LOW_SCORE) per trait
INSIGHT_TEXT: Dict[str, tuple[str, str]] = {
    "openness": (
        "You show a high level of openness to new experiences, indicating creativity and intellectual curiosity.",
        "You tend to prefer routine and familiar situations, valuing tradition and conventional approaches.",
    ),
    "conscientiousness": (
        "Your high conscientiousness suggests you are organized, responsible, and goal-oriented.",
        "You may prefer a more flexible and spontaneous approach to life, valuing freedom over structure.",
    ),
    "extraversion": (
        "Your high extraversion indicates you are energized by social interactions and enjoy being around others.",
        "You tend to be more reserved and may prefer solitary activities or small group settings.",
    ),
    "agreeableness": (
        "Your high agreeableness suggests you are compassionate, cooperative, and value harmony in relationships.",
        "You may be more direct and competitive, prioritizing personal goals over social harmony.",
    ),
    "neuroticism": (
        "You may experience emotions more intensely and be more sensitive to stress and negative situations.",
        "You tend to be emotionally stable and resilient, handling stress and challenges with composure.",
    ),
}


def insights(scores: Dict[str, float]) -> List[str]:
    """One sentence per trait scoring above 4 or below 2, in trait order.

    A score of 0 means the trait had no answers and yields nothing.
    """

    out: List[str] = []
    for trait in TRAITS:
        score = float(scores.get(trait, 0.0))
        if trait not in INSIGHT_TEXT or score <= 0:
            continue
        high, low = INSIGHT_TEXT[trait]
        if score > HIGH_SCORE:
            out.append(high)
        elif score < LOW_SCORE:
            out.append(low)
    return out
