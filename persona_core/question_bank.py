from __future__ import annotations
import json, importlib.resources as ir
from typing import Any, Dict, List
from .types import Option, Question
TRAITS = ["openness","conscientiousness","extraversion","agreeableness","neuroticism"]
def question_from_dict(raw: Dict[str, Any]) -> Question:
    opts = [Option(value=int(o["value"]), text=str(o["text"])) for o in raw.get("options") or []]
    return Question(id=str(raw["id"]), text=str(raw["text"]), trait=raw["trait"],
                    weight=float(raw.get("weight", 1.0)), options=opts)
def load_bank() -> List[Question]:
    data = ir.files(__package__).joinpath("data/bank.json").read_text(encoding="utf-8")
    raw = json.loads(data)
    return [question_from_dict(r) for r in raw]
_BANK: List[Question] | None = None
def get_questions() -> List[Question]:
    """Catalog for the running process; stable for the lifetime of a session."""
    global _BANK
    if _BANK is None:
        _BANK = load_bank()
    return list(_BANK)
