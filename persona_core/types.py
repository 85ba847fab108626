from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Literal
Trait = Literal["openness","conscientiousness","extraversion","agreeableness","neuroticism"]
@dataclass(frozen=True)
class Option:
    value: int; text: str
@dataclass(frozen=True)
class Question:
    id: str; text: str; trait: Trait
    weight: float = 1.0
    options: List[Option] = field(default_factory=list)

    def option_text(self, value: int) -> str:
        for opt in self.options:
            if opt.value == value:
                return opt.text
        return ""
@dataclass(frozen=True)
class AnsweredQuestion:
    question_id: str; trait: Trait; value: int
    question_text: str = ""
    answer_text: str = ""
@dataclass
class HistoricalSession:
    trait_scores: Dict[str, float] = field(default_factory=dict)
    past_answers: List[AnsweredQuestion] = field(default_factory=list)
@dataclass
class SelectionRequest:
    current_answers: List[AnsweredQuestion]
    current_question_index: int
@dataclass
class SelectionResult:
    next_questions: List[Question]
    used_adaptive_logic: bool
    diagnostic_error: Optional[str] = None
@dataclass(frozen=True)
class CacheEntry:
    key: str
    selected_questions: List[Question]
    created_at: float
    adaptive: bool = True
